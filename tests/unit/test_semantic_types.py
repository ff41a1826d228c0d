"""Unit tests for semantic types and field binding.

Run with: pytest tests/unit/test_semantic_types.py -v
"""

from reclink.matching.fields import FieldResolver
from reclink.matching.semantic_types import (
    FieldInferenceCache,
    FieldKind,
    detect_semantic_type,
    field_kind,
    infer_field,
)
from reclink.models import FieldMapping, Record


class TestDetection:
    """Tests for detecting semantic types from column names."""

    def test_exact_alias(self):
        """Test that a known spelling is recognized."""
        assert detect_semantic_type("fname") == "firstName"
        assert detect_semantic_type("Postal_Code") == "zipCode"

    def test_contained_alias(self):
        """Test that the longest contained alias wins."""
        assert detect_semantic_type("customer_email_address") == "email"

    def test_unknown_name(self):
        """Test that unknown columns are not guessed."""
        assert detect_semantic_type("qqq") is None

    def test_field_kind(self):
        """Test kind resolution for types, kinds and aliases."""
        assert field_kind("firstName") == FieldKind.NAME
        assert field_kind("zip") == FieldKind.ZIP
        assert field_kind("dob") == FieldKind.DATE
        assert field_kind("something_else") == FieldKind.STRING
        assert field_kind(None) == FieldKind.STRING


class TestInference:
    """Tests for binding semantic types to concrete columns."""

    def test_direct_name(self):
        """Test that an existing column name is used as is."""
        assert infer_field("zip", ["id", "zip"]) == "zip"

    def test_case_and_separator_insensitive(self):
        """Test that first_name satisfies firstName."""
        assert infer_field("firstName", ["first_name", "last_name"]) == "first_name"

    def test_alias(self):
        """Test alias-based binding."""
        assert infer_field("lastName", ["fname", "lname"]) == "lname"
        assert infer_field("zipCode", ["postal_code"]) == "postal_code"

    def test_missing(self):
        """Test that a record set without the field binds to None."""
        assert infer_field("email", ["first_name"]) is None

    def test_cache_memoizes(self):
        """Test that inference is computed once per signature."""
        cache = FieldInferenceCache()
        assert cache.resolve("firstName", ("fname",)) == "fname"
        assert cache.resolve("firstName", ("fname",)) == "fname"
        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0


class TestFieldResolver:
    """Tests for per-side field resolution."""

    def test_explicit_mapping_wins(self):
        """Test that a mapping overrides inference on its side."""
        mapping = FieldMapping(semantic_type="lastName", source_field="surname_txt", target_field="ln")
        source = FieldResolver(("surname_txt", "last_name"), [mapping], side="source")
        target = FieldResolver(("ln",), [mapping], side="target")

        assert source.resolve("lastName") == "surname_txt"
        assert target.resolve("lastName") == "ln"

    def test_standardized_value(self):
        """Test that values are standardized by the field kind."""
        resolver = FieldResolver(("zip",))
        record = Record(record_id="1", fields={"zip": "12345-6789"})
        assert resolver.value(record, "zipCode") == "12345"

    def test_unmapped_field_is_none(self):
        """Test that an unbound field reads as None."""
        resolver = FieldResolver(("zip",))
        record = Record(record_id="1", fields={"zip": "12345"})
        assert resolver.raw(record, "email") is None

    def test_kind_from_mapping(self):
        """Test that a mapping's semantic type selects the kind."""
        mapping = FieldMapping(semantic_type="dateOfBirth", source_field="born")
        resolver = FieldResolver(("born",), [mapping])
        assert resolver.kind("dateOfBirth") == FieldKind.DATE
