"""Error taxonomy for reclink.

Configuration and validation errors are fatal and raised before any scoring
begins. Data errors affect a single candidate pair and execution errors a single
reference source; both are converted to a skip plus a log entry by the resolver.
"""

from typing import Any


class LinkageError(Exception):
    """Base class for all reclink errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for logs and reports."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            **self.context,
        }

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class ConfigurationError(LinkageError):
    """Missing or contradictory matching configuration."""

    def __init__(
        self,
        message: str,
        parameter: str | None = None,
        expected: str | None = None,
    ):
        super().__init__(message, parameter=parameter, expected=expected)
        self.parameter = parameter
        self.expected = expected


class StrategyError(ConfigurationError):
    """Unknown blocking strategy or similarity method."""

    def __init__(self, message: str, strategy: str, parameter: str | None = None):
        super().__init__(message, parameter=parameter, expected="a registered strategy")
        self.strategy = strategy
        self.context["strategy"] = strategy


class ValidationError(LinkageError):
    """A required input is absent or has the wrong type."""

    def __init__(
        self,
        message: str,
        field_path: str,
        value: Any = None,
        expected: str | None = None,
    ):
        super().__init__(message, field_path=field_path, expected=expected)
        self.field_path = field_path
        self.value = value
        self.expected = expected


class DataError(LinkageError):
    """A record or candidate pair carries unusable data."""

    def __init__(
        self,
        message: str,
        record_id: str | None = None,
        field: str | None = None,
    ):
        super().__init__(message, record_id=record_id, field=field)
        self.record_id = record_id
        self.field = field


class ExecutionError(LinkageError):
    """A reference source is unreachable or empty."""

    def __init__(self, message: str, source_id: str | None = None):
        super().__init__(message, source_id=source_id)
        self.source_id = source_id
