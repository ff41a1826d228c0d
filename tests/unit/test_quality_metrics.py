"""Unit tests for match quality tracking.

Run with: pytest tests/unit/test_quality_metrics.py -v
"""

import pytest

from reclink.matching.fields import FieldResolver
from reclink.models import Record
from reclink.quality import MatchQualityTracker, QualityDimension


def _records():
    return [
        Record(record_id="1", fields={"first_name": "Jon", "email": "jon@example.com"}),
        Record(record_id="2", fields={"first_name": "Ann", "email": None}),
    ]


class TestMappingCompleteness:
    """Tests for mapped field completeness."""

    def test_partial_completeness(self):
        """Test the share of populated (record, field) slots."""
        tracker = MatchQualityTracker("run-1")
        metric = tracker.measure_mapping_completeness(
            "people",
            _records(),
            ["firstName", "email"],
            FieldResolver(("first_name", "email")),
        )

        assert metric.value == pytest.approx(0.75)
        assert metric.passed is False
        assert metric.dimension == QualityDimension.COMPLETENESS

    def test_unmapped_field_counts_as_empty(self):
        """Test that a field missing from the record set lowers completeness."""
        tracker = MatchQualityTracker("run-1")
        metric = tracker.measure_mapping_completeness(
            "people",
            _records(),
            ["firstName", "phoneNumber"],
            FieldResolver(("first_name", "email")),
        )

        assert metric.value == pytest.approx(0.5)
        assert metric.details["unmapped_fields"] == ["phoneNumber"]

    def test_empty_records(self):
        """Test that nothing to measure passes."""
        tracker = MatchQualityTracker("run-1")
        metric = tracker.measure_mapping_completeness("people", [], ["firstName"], FieldResolver(()))

        assert metric.value == 1.0
        assert metric.passed


class TestMatchRate:
    """Tests for the match rate measurement."""

    def test_below_target(self):
        """Test that a low match rate fails against the target."""
        tracker = MatchQualityTracker("run-1", thresholds={QualityDimension.MATCH_RATE: 0.8})
        metric = tracker.measure_match_rate(1, 4)

        assert metric.value == 0.25
        assert metric.threshold == 0.8
        assert not metric.passed

    def test_explicit_target(self):
        """Test an explicit target override."""
        tracker = MatchQualityTracker("run-1")
        assert tracker.measure_match_rate(3, 4, target=0.5).passed


class TestReport:
    """Tests for quality reports."""

    def test_warnings_for_failed_metrics(self):
        """Test that failed measurements become warnings."""
        tracker = MatchQualityTracker("run-1")
        tracker.measure_match_rate(1, 4)
        tracker.measure_match_rate(4, 4)

        report = tracker.generate_report()

        assert not report.passed
        assert len(report.warnings) == 1
        assert "achieved_match_rate" in report.warnings[0]
        assert report.overall_score == pytest.approx(0.625)

    def test_empty_report(self):
        """Test a report without measurements."""
        report = MatchQualityTracker("run-1").generate_report()

        assert report.passed
        assert report.warnings == []
