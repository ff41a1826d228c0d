"""Record-level models: records, field mappings, blocking keys and candidate pairs."""

import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_INTEGER_ID = re.compile(r"-?[0-9]+")


class Record(BaseModel):
    """A single input record.

    Field order is preserved. Records are immutable once read by the engine.
    """

    record_id: str = Field(..., min_length=1, description="Identifier unique within its record set")
    fields: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @field_validator("record_id", mode="before")
    @classmethod
    def _coerce_record_id(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return str(value)
        return value

    def get(self, field_name: str | None, default: Any = None) -> Any:
        """Get a field value by name."""
        if field_name is None:
            return default
        return self.fields.get(field_name, default)

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(self.fields)

    @classmethod
    def from_row(cls, row: dict[str, Any], id_field: str = "id") -> "Record":
        """Build a record from a flat row whose id lives in ``id_field``."""
        fields = {k: v for k, v in row.items() if k != id_field}
        return cls(record_id=row.get(id_field), fields=fields)


def record_id_key(record_id: str) -> tuple[int | str, ...]:
    """Total ordering of record ids: integer-like ids numerically, then strings.

    Ids with equal integer values ("1", "01") fall back to their text.
    """
    text = str(record_id)
    if _INTEGER_ID.fullmatch(text):
        return (0, int(text), text)
    return (1, text)


class FieldMapping(BaseModel):
    """Maps a semantic type onto concrete field names for a (source, reference) pair."""

    semantic_type: str = Field(..., min_length=1)
    source_field: str | None = None
    target_field: str | None = None
    weight: float | None = Field(default=None, ge=0.0)
    standardization: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


@dataclass(frozen=True, slots=True)
class BlockingKey:
    """A derived blocking value computed from one record."""

    strategy: str
    value: str
    weight: float = 1.0

    @property
    def token(self) -> tuple[str, str]:
        """Identity used to join source and target keys."""
        return (self.strategy, self.value)


@dataclass(frozen=True, slots=True)
class CandidatePair:
    """A (source, target) record pair selected for full scoring."""

    source_record_id: str
    target_record_id: str
    reference_source_id: str
    matched_keys: tuple[BlockingKey, ...] = field(default_factory=tuple)
    block_weight: float = 0.0
