"""Unit tests for KPI-driven historical matching.

Run with: pytest tests/unit/test_historical.py -v
"""

from unittest.mock import MagicMock

import pytest

from reclink.errors import ExecutionError
from reclink.models import (
    ConfidenceTier,
    KPIConfig,
    MatchResult,
    MatchScore,
    Record,
    ReferenceSource,
)
from reclink.resolution.historical import HistoricalMatcher, match_rate
from reclink.resolution.resolver import ScoredCandidate, SourceScan
from reclink.result import Err, Ok


def _records(count):
    return [Record(record_id=str(i), fields={}) for i in range(1, count + 1)]


def _scan(source_id, record_ids):
    """A scan accepting one candidate for each given record."""
    accepted = {
        rid: [ScoredCandidate(
            source_record_id=rid,
            target_record_id=f"{source_id}-{rid}",
            reference_source_id=source_id,
            score=MatchScore(composite=0.9, tier=ConfidenceTier.HIGH),
            priority=0,
            declaration_index=1,
            dataset=source_id,
        )]
        for rid in record_ids
    }
    return SourceScan(source_id=source_id, accepted=accepted, candidate_pairs=len(record_ids))


def _resolver(scans):
    """Resolver double returning the given scan per source id."""
    resolver = MagicMock()
    resolver.config.effective_max_matches = 1

    def resolve_source(source, records, historical=False):
        return scans[source.id]

    def to_results(selected):
        return [
            MatchResult(
                source_record_id=c.source_record_id,
                target_record_id=c.target_record_id,
                reference_source_id=c.reference_source_id,
                score=c.score,
                historical=True,
            )
            for c in selected
        ]

    resolver.resolve_source.side_effect = resolve_source
    resolver.to_results.side_effect = to_results
    return resolver


KPI = KPIConfig(
    target_match_rate=0.75,
    confidence_threshold=0.6,
    checkpoint_rate=0.7,
    early_termination_threshold=0.7,
)


class TestMatchRate:
    """Tests for the match rate helper."""

    def test_rate(self):
        """Test matched over total."""
        assert match_rate(1, 4) == 0.25

    def test_empty_source(self):
        """Test that an empty source counts as fully matched."""
        assert match_rate(0, 0) == 1.0


class TestHistoricalMatcher:
    """Tests for checkpoint, termination and fallback behavior."""

    def test_checkpoint_skips_all_sources(self):
        """Test that a high primary rate skips the historical pass."""
        resolver = _resolver({})
        matcher = HistoricalMatcher(resolver, KPI, [ReferenceSource(id="archive")])

        outcome = matcher.run(_records(4), {"1", "2", "3"})

        assert outcome.decision == "skip_all"
        assert outcome.matches == {}
        resolver.resolve_source.assert_not_called()

    def test_only_unmatched_records_consulted(self):
        """Test that primary matches are never offered to historical sources."""
        resolver = _resolver({"archive": Ok(_scan("archive", ["2"]))})
        matcher = HistoricalMatcher(resolver, KPI, [ReferenceSource(id="archive")])

        matcher.run(_records(4), {"1"})

        _, records = resolver.resolve_source.call_args.args
        assert [r.record_id for r in records] == ["2", "3", "4"]
        assert resolver.resolve_source.call_args.kwargs == {"historical": True}

    def test_early_termination(self):
        """Test that reaching the termination rate stops further sources."""
        resolver = _resolver({
            "archive": Ok(_scan("archive", ["2", "3"])),
            "legacy": Ok(_scan("legacy", ["4"])),
        })
        matcher = HistoricalMatcher(
            resolver, KPI, [ReferenceSource(id="archive"), ReferenceSource(id="legacy")]
        )

        outcome = matcher.run(_records(4), {"1"})

        assert outcome.decision == "terminated"
        assert outcome.sources_consulted == ["archive"]
        assert set(outcome.matches) == {"2", "3"}
        assert outcome.final_match_rate == pytest.approx(0.75)
        assert resolver.resolve_source.call_count == 1

    def test_greedy_across_sources(self):
        """Test that a record matched by an earlier source is not offered to a later one."""
        kpi = KPI.model_copy(update={"early_termination_threshold": 1.0})
        resolver = _resolver({
            "archive": Ok(_scan("archive", ["2"])),
            "legacy": Ok(_scan("legacy", ["3"])),
        })
        matcher = HistoricalMatcher(
            resolver, kpi, [ReferenceSource(id="archive"), ReferenceSource(id="legacy")]
        )

        outcome = matcher.run(_records(4), {"1"})

        _, legacy_records = resolver.resolve_source.call_args_list[1].args
        assert [r.record_id for r in legacy_records] == ["3", "4"]
        assert outcome.matches["3"][0].reference_source_id == "legacy"
        assert outcome.decision == "exhausted"

    def test_unusable_source_skipped(self):
        """Test that a source that fails to load does not stop the pass."""
        resolver = _resolver({
            "archive": Err(ExecutionError("Dataset archive is empty", source_id="archive")),
            "legacy": Ok(_scan("legacy", ["2"])),
        })
        matcher = HistoricalMatcher(
            resolver, KPI, [ReferenceSource(id="archive"), ReferenceSource(id="legacy")]
        )

        outcome = matcher.run(_records(4), {"1"})

        assert outcome.skipped_sources == ["archive"]
        assert outcome.sources_consulted == ["legacy"]
        assert outcome.match_count == 1

    def test_no_sources(self):
        """Test that nothing happens without historical sources."""
        outcome = HistoricalMatcher(_resolver({}), KPI, []).run(_records(2), set())

        assert outcome.decision == "not_run"
        assert outcome.final_match_rate == 0.0
