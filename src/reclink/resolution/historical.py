"""KPI-driven historical matching.

Historical sources are older, lower-quality reference data consulted only to
lift coverage after primary matching:

1. If the primary match rate already reaches the checkpoint rate, no
   historical source is consulted.
2. Otherwise sources are consulted in declared order, each only for the
   source records still unmatched.
3. A historical match is accepted only when its score adjusted by the
   source's quality weight reaches the KPI confidence threshold.
4. Once the running match rate reaches the early-termination threshold no
   further source is consulted.

This is a greedy pass: a record accepted from an earlier source is never
offered to a later one, even if the later source would have matched it
better.
"""

from dataclasses import dataclass, field

from ..logging import get_context_logger, log_kpi_decision
from ..models.records import Record
from ..models.results import MatchResult
from ..models.rules import KPIConfig, ReferenceSource
from .resolver import RuleResolver, select_matches

logger = get_context_logger(__name__)


@dataclass
class HistoricalOutcome:
    """What the historical pass added."""

    matches: dict[str, list[MatchResult]] = field(default_factory=dict)
    sources_consulted: list[str] = field(default_factory=list)
    skipped_sources: list[str] = field(default_factory=list)
    initial_match_rate: float = 0.0
    final_match_rate: float = 0.0
    decision: str = "not_run"
    candidate_pairs: int = 0
    dropped_pairs: int = 0

    @property
    def match_count(self) -> int:
        return len(self.matches)


def match_rate(matched: int, total: int) -> float:
    """Share of source records matched; an empty source counts as fully matched."""
    if total <= 0:
        return 1.0
    return matched / total


class HistoricalMatcher:
    """Supplements primary matches from historical sources under a KPI loop."""

    def __init__(
        self,
        resolver: RuleResolver,
        kpi: KPIConfig,
        sources: list[ReferenceSource],
    ):
        """Initialize the matcher.

        Args:
            resolver: Resolver used to score historical sources
            kpi: Match-rate checkpoint, threshold and early-termination settings
            sources: Historical sources in quality-descending order
        """
        self.resolver = resolver
        self.kpi = kpi
        self.sources = list(sources)

    def run(self, records: list[Record], matched_ids: set[str]) -> HistoricalOutcome:
        """Run the historical pass after primary matching is final.

        Args:
            records: All source records, in input order
            matched_ids: Source record ids already matched by primary sources

        Returns:
            Historical matches keyed by source record id
        """
        total = len(records)
        matched = set(matched_ids)
        rate = match_rate(len(matched), total)
        outcome = HistoricalOutcome(initial_match_rate=rate, final_match_rate=rate)

        if not self.sources:
            return outcome

        if rate >= self.kpi.checkpoint_rate:
            outcome.decision = "skip_all"
            log_kpi_decision("skip_all", rate, self.kpi.checkpoint_rate)
            return outcome

        outcome.decision = "exhausted"
        max_matches = self.resolver.config.effective_max_matches

        for source in self.sources:
            if rate >= self.kpi.early_termination_threshold:
                outcome.decision = "terminated"
                log_kpi_decision(
                    "terminate", rate, self.kpi.early_termination_threshold, source.id
                )
                break

            unmatched = [r for r in records if r.record_id not in matched]
            if not unmatched:
                outcome.decision = "complete"
                break

            log_kpi_decision("consult", rate, self.kpi.early_termination_threshold, source.id)
            scanned = self.resolver.resolve_source(source, unmatched, historical=True)
            if not scanned.is_ok:
                outcome.skipped_sources.append(source.id)
                continue

            scan = scanned.unwrap()
            outcome.sources_consulted.append(source.id)
            outcome.candidate_pairs += scan.candidate_pairs
            outcome.dropped_pairs += scan.dropped_pairs

            for record in unmatched:
                accepted = scan.accepted.get(record.record_id)
                if not accepted:
                    continue
                selected = select_matches(accepted, max_matches)
                outcome.matches[record.record_id] = self.resolver.to_results(selected)
                matched.add(record.record_id)

            rate = match_rate(len(matched), total)
            outcome.final_match_rate = rate
            logger.info(
                f"Historical source {source.id} raised match rate to {rate:.2%}",
                extra={
                    "source_id": source.id,
                    "match_rate": rate,
                    "accepted": len(scan.accepted),
                },
            )

        return outcome
