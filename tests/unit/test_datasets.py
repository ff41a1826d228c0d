"""Unit tests for record sets and providers.

Run with: pytest tests/unit/test_datasets.py -v
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from reclink.datasets import InMemoryCatalog, RecordSet, load_record_set
from reclink.errors import ExecutionError, ValidationError
from reclink.models import Record
from reclink.models.records import record_id_key


class TestRecordSet:
    """Tests for record set construction."""

    def test_from_rows(self):
        """Test that flat rows become records keyed by id."""
        record_set = RecordSet("people", [{"id": 1, "name": "Jon"}, {"id": "x", "zip": "1"}])

        assert record_set.ids == ["1", "x"]
        assert record_set.get("1").get("name") == "Jon"
        assert record_set.field_names == ("name", "zip")
        assert "x" in record_set

    def test_duplicate_ids(self):
        """Test that repeated ids are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            RecordSet("people", [{"id": 1}, {"id": 1}])
        assert exc_info.value.field_path == "people[1].id"

    def test_missing_id(self):
        """Test that rows without ids are rejected."""
        with pytest.raises(ValidationError):
            RecordSet("people", [{"name": "Jon"}])

    def test_records_are_immutable(self):
        """Test that the engine cannot mutate records."""
        record = Record(record_id="1", fields={"a": 1})
        with pytest.raises(PydanticValidationError):
            record.record_id = "2"

    def test_record_id_key(self):
        """Test integer-like ids sort numerically before strings."""
        assert sorted(["b", "10", "9", "a"], key=record_id_key) == ["9", "10", "a", "b"]

    @pytest.mark.parametrize("record_id", ["--1", "²", "1-", "-", "1.5", " 7"])
    def test_record_id_key_odd_ids(self, record_id):
        """Test that ids that only look numeric sort as strings."""
        assert record_id_key(record_id) == (1, record_id)

    def test_record_id_key_total_order(self):
        """Test that numerically equal ids still get distinct keys."""
        assert record_id_key("1") != record_id_key("01")
        assert sorted(["1", "01", "-2", "x"], key=record_id_key) == ["-2", "01", "1", "x"]


class TestCatalog:
    """Tests for the in-memory provider."""

    def test_load_registered(self):
        """Test loading registered data."""
        catalog = InMemoryCatalog({"crm": [{"id": 1}]})
        assert len(catalog.load("crm")) == 1

    def test_callable_loader(self):
        """Test that loaders are invoked on load."""
        catalog = InMemoryCatalog()
        catalog.register("crm", lambda: [{"id": 1}, {"id": 2}])
        assert catalog.load("crm").ids == ["1", "2"]

    def test_unknown_dataset(self):
        """Test that unknown datasets are execution errors."""
        with pytest.raises(ExecutionError):
            InMemoryCatalog().load("nope")


class TestLoadRecordSet:
    """Tests for provider failure normalization."""

    def test_empty_dataset(self):
        """Test that empty reference data is unusable."""
        catalog = InMemoryCatalog({"crm": []})
        with pytest.raises(ExecutionError):
            load_record_set(catalog, "crm")

    def test_empty_allowed(self):
        """Test that an empty source can be allowed."""
        catalog = InMemoryCatalog({"people": []})
        assert len(load_record_set(catalog, "people", allow_empty=True)) == 0

    def test_provider_failure_wrapped(self):
        """Test that provider exceptions become execution errors."""

        def broken():
            raise ConnectionError("database down")

        catalog = InMemoryCatalog({"crm": broken})

        with pytest.raises(ExecutionError) as exc_info:
            load_record_set(catalog, "crm", source_id="crm-source")
        assert exc_info.value.source_id == "crm-source"
        assert "database down" in str(exc_info.value)
