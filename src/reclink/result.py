"""Explicit success/failure values for fallible boundaries.

Configuration loading, per-source resolution and per-pair scoring return a
``Result`` instead of raising, so callers decide at each boundary whether a
failure is fatal or converted into a skip.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from .errors import LinkageError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Err:
    """Failed outcome carrying the error that caused it."""

    error: LinkageError

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.error

    def unwrap_or(self, default):
        return default


Result = Union[Ok[T], Err]
