"""Binding rule fields to concrete record fields.

Rules name fields by semantic type (``firstName``) or by column name. A
``FieldResolver`` binds those names to the columns of one side of a
(source, reference) pair: explicit ``FieldMapping`` entries first, then
alias inference against the record set's field names.
"""

from typing import Any, Literal

from ..models.records import FieldMapping, Record
from .semantic_types import FieldInferenceCache, FieldKind, field_kind
from .standardizer import standardize, standardize_strict

Side = Literal["source", "target"]


class FieldResolver:
    """Resolves rule field names for one side of a (source, reference) pair."""

    def __init__(
        self,
        field_names: tuple[str, ...],
        mappings: list[FieldMapping] | None = None,
        side: Side = "source",
        cache: FieldInferenceCache | None = None,
    ):
        self.field_names = tuple(field_names)
        self.side = side
        self._mappings = {m.semantic_type: m for m in mappings or []}
        self._cache = cache or FieldInferenceCache()

    def mapping(self, name: str) -> FieldMapping | None:
        return self._mappings.get(name)

    def resolve(self, name: str) -> str | None:
        """Concrete field for a rule field name, or None when absent."""
        mapping = self._mappings.get(name)
        if mapping is not None:
            concrete = mapping.source_field if self.side == "source" else mapping.target_field
            if concrete:
                return concrete
        return self._cache.resolve(name, self.field_names)

    def kind(self, name: str) -> FieldKind:
        """Field kind used to standardize values of a rule field."""
        mapping = self._mappings.get(name)
        if mapping is not None:
            return field_kind(mapping.semantic_type)
        kind = field_kind(name)
        if kind == FieldKind.STRING:
            concrete = self.resolve(name)
            if concrete:
                return field_kind(concrete)
        return kind

    def options(self, name: str) -> dict[str, Any]:
        mapping = self._mappings.get(name)
        return dict(mapping.standardization) if mapping else {}

    def raw(self, record: Record, name: str) -> Any:
        """Raw value of a rule field in a record, None when unmapped."""
        return record.get(self.resolve(name))

    def value(self, record: Record, name: str) -> Any:
        """Standardized value; never raises."""
        return standardize(self.raw(record, name), self.kind(name), self.options(name))

    def strict_value(self, record: Record, name: str) -> Any:
        """Standardized value; raises DataError for unusable input."""
        return standardize_strict(self.raw(record, name), self.kind(name), self.options(name))
