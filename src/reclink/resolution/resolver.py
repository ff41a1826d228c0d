"""Waterfall rule resolution.

For each source record, reference sources are consulted in priority order.
Every candidate pair is scored, gated on required fields, adjusted by the
source's confidence multiplier and classified into a tier. The selected
match sorts first by tier, then source priority, then score, with the
source's declaration order and the target id as final tie-breaks.
"""

import threading
from dataclasses import dataclass, field
from typing import Iterable

from ..blocking.index import (
    BlockingIndex,
    IndexCache,
    all_pairs_for,
    candidates_for,
    generate_keys,
    index_record_set,
)
from ..datasets import RecordSet, RecordSetProvider, load_record_set
from ..errors import DataError, ExecutionError
from ..logging import get_context_logger, log_pair_dropped, log_resolution_event, log_source_skipped
from ..matching.fields import FieldResolver
from ..matching.semantic_types import FieldInferenceCache
from ..matching.similarity import composite_score, default_method, score
from ..matching.standardizer import is_empty
from ..models.records import CandidatePair, Record, record_id_key
from ..models.results import ConfidenceTier, MatchResult, MatchScore
from ..models.rules import MatchingRules, PipelineConfig, ReferenceSource
from ..result import Err, Ok, Result

logger = get_context_logger(__name__)


@dataclass
class SourceContext:
    """A reference source prepared for one run: loaded, mapped and indexed."""

    source: ReferenceSource
    rules: MatchingRules
    record_set: RecordSet
    source_fields: FieldResolver
    target_fields: FieldResolver
    index: BlockingIndex
    declaration_index: int
    historical: bool = False
    exclude_self: bool = False

    @property
    def source_id(self) -> str:
        return self.source.id

    @property
    def multiplier(self) -> float:
        """Historical sources are discounted by quality weight, primaries by multiplier."""
        if self.historical:
            return self.source.quality_weight
        return self.source.confidence_multiplier


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate pair that survived scoring and acceptance."""

    source_record_id: str
    target_record_id: str
    reference_source_id: str
    score: MatchScore
    priority: int
    declaration_index: int
    dataset: str

    def sort_key(self) -> tuple:
        return (
            self.score.tier.rank,
            self.priority,
            -self.score.composite,
            self.declaration_index,
            record_id_key(self.target_record_id),
        )


@dataclass
class SourceScan:
    """Accepted candidates of one reference source for a batch of records."""

    source_id: str
    accepted: dict[str, list[ScoredCandidate]] = field(default_factory=dict)
    candidate_pairs: int = 0
    dropped_pairs: int = 0


@dataclass
class ResolutionBatch:
    """Selected matches for a batch of source records."""

    matches: dict[str, list[MatchResult]] = field(default_factory=dict)
    candidate_pairs: int = 0
    dropped_pairs: int = 0
    sources_consulted: list[str] = field(default_factory=list)


def select_matches(
    candidates: Iterable[ScoredCandidate],
    max_matches: int,
) -> list[ScoredCandidate]:
    """Rank candidates and keep the best ``max_matches`` distinct targets."""
    selected: list[ScoredCandidate] = []
    seen: set[tuple[str, str]] = set()
    for candidate in sorted(candidates, key=ScoredCandidate.sort_key):
        target = (candidate.dataset, candidate.target_record_id)
        if target in seen:
            continue
        seen.add(target)
        selected.append(candidate)
        if len(selected) >= max_matches:
            break
    return selected


class RuleResolver:
    """Resolves source records against prioritized reference sources.

    Rule configuration is checked at construction, before any scoring.
    Reference sources are loaded and indexed once per run; the prepared
    contexts are read-only afterwards and shared by worker threads.
    """

    def __init__(
        self,
        config: PipelineConfig,
        provider: RecordSetProvider,
        source_set: RecordSet,
        index_cache: IndexCache | None = None,
        inference_cache: FieldInferenceCache | None = None,
    ):
        """Initialize the resolver.

        Args:
            config: Run configuration
            provider: Record-set provider for reference datasets
            source_set: The source records being resolved
            index_cache: Cache of built reference indexes
            inference_cache: Cache of inferred field bindings

        Raises:
            ConfigurationError: If the rule configuration is unusable
        """
        config.validate_rules()
        self.config = config
        self.provider = provider
        self.source_set = source_set
        self.thresholds = config.thresholds
        self.index_cache = index_cache or IndexCache()
        self.inference_cache = inference_cache or FieldInferenceCache()
        self.skipped_sources: list[str] = []
        self._contexts: dict[str, Result[SourceContext]] = {}
        self._lock = threading.Lock()

    # =========================
    # Preparation
    # =========================

    def prepare_source(self, source: ReferenceSource, historical: bool = False) -> Result[SourceContext]:
        """Load, map and index a reference source once.

        Returns:
            Ok with the prepared context, or Err with the ExecutionError
            that made the source unusable
        """
        with self._lock:
            if source.id in self._contexts:
                return self._contexts[source.id]

            try:
                outcome = Ok(self._build_context(source, historical))
            except ExecutionError as e:
                self.skipped_sources.append(source.id)
                log_source_skipped(
                    source.id, e.message, phase="historical" if historical else "primary"
                )
                outcome = Err(e)

            self._contexts[source.id] = outcome
            return outcome

    def _build_context(self, source: ReferenceSource, historical: bool) -> SourceContext:
        rules = self.config.rules_for(source)
        if source.dataset == self.source_set.name:
            record_set = self.source_set
            if not record_set:
                raise ExecutionError(f"Dataset {source.dataset} is empty", source_id=source.id)
        else:
            record_set = load_record_set(self.provider, source.dataset, source_id=source.id)

        source_fields = FieldResolver(
            self.source_set.field_names, source.field_mappings, "source", self.inference_cache
        )
        target_fields = FieldResolver(
            record_set.field_names, source.field_mappings, "target", self.inference_cache
        )

        index = self.index_cache.get_or_build(
            source.id,
            lambda: index_record_set(
                record_set, rules.blocking, target_fields, self.config.min_key_length
            ),
        )
        if not rules.blocking:
            logger.warning(
                f"No blocking rules for {source.id}, comparing all pairs",
                extra={
                    "reference_source_id": source.id,
                    "max_per_record": self.config.max_candidates_per_record,
                },
            )

        return SourceContext(
            source=source,
            rules=rules,
            record_set=record_set,
            source_fields=source_fields,
            target_fields=target_fields,
            index=index,
            declaration_index=self.config.declaration_index(source.id),
            historical=historical,
            exclude_self=source.dataset == self.source_set.name,
        )

    def prepare_primary(self) -> list[SourceContext]:
        """Prepare every primary source in priority order.

        Sources that fail to load are skipped.

        Raises:
            ExecutionError: If no primary source could be prepared
        """
        contexts = []
        for source in self.config.primary_sources():
            outcome = self.prepare_source(source)
            if outcome.is_ok:
                contexts.append(outcome.unwrap())

        if not contexts:
            raise ExecutionError(
                "No primary reference source could be loaded",
                source_id=",".join(s.id for s in self.config.reference_sources),
            )
        return contexts

    # =========================
    # Scoring
    # =========================

    def candidate_pairs(self, context: SourceContext, record: Record) -> list[CandidatePair]:
        """Candidate pairs of one source record within one reference source."""
        limit = self.config.max_candidates_per_record
        if not context.rules.blocking:
            return all_pairs_for(
                record.record_id, context.index.record_ids, context.source_id,
                limit, context.exclude_self,
            )

        keys = generate_keys(
            record, context.rules.blocking, context.source_fields, self.config.min_key_length
        )
        return candidates_for(
            record.record_id, keys, context.index, context.source_id,
            limit, context.exclude_self,
        )

    def score_pair(self, context: SourceContext, source_record: Record, target_record: Record) -> Result[MatchScore]:
        """Score one candidate pair.

        Returns:
            Ok with the adjusted score and tier, or Err with the DataError
            that made the pair unusable
        """
        for name in context.source.required_fields:
            if is_empty(context.source_fields.raw(source_record, name)):
                return Err(DataError(
                    f"Required field {name} is null", record_id=source_record.record_id, field=name
                ))
            if is_empty(context.target_fields.raw(target_record, name)):
                return Err(DataError(
                    f"Required field {name} is null", record_id=target_record.record_id, field=name
                ))

        components: dict[str, float] = {}
        weighted: list[tuple[float, float]] = []
        try:
            for position, rule in enumerate(context.rules.scoring):
                kind = context.target_fields.kind(rule.field)
                method, options = (rule.method, {}) if rule.method else default_method(kind)
                options.update(rule.options)

                value = score(
                    context.source_fields.strict_value(source_record, rule.field),
                    context.target_fields.strict_value(target_record, rule.field),
                    method,
                    options,
                )

                mapping = context.target_fields.mapping(rule.field)
                weight = mapping.weight if mapping and mapping.weight is not None else rule.weight

                label = rule.field if rule.field not in components else f"{rule.field}#{position}"
                components[label] = value
                weighted.append((value, weight))
        except DataError as e:
            if e.record_id is None:
                e.record_id = source_record.record_id
                e.context["record_id"] = source_record.record_id
            return Err(e)

        composite = min(1.0, composite_score(weighted) * context.multiplier)
        return Ok(MatchScore(
            components=components,
            composite=composite,
            tier=self.thresholds.classify(composite),
        ))

    def accepts(self, context: SourceContext, match_score: MatchScore) -> bool:
        """Whether a scored pair is kept as a candidate match."""
        if context.historical:
            return match_score.composite >= self.config.kpi.confidence_threshold
        return match_score.tier != ConfidenceTier.NONE

    def scan(self, context: SourceContext, records: Iterable[Record]) -> SourceScan:
        """Score every candidate of the given records against one source."""
        scan = SourceScan(source_id=context.source_id)
        for record in records:
            accepted = []
            for pair in self.candidate_pairs(context, record):
                scan.candidate_pairs += 1
                target = context.record_set.get(pair.target_record_id)
                if target is None:
                    outcome = Err(DataError(
                        f"Target record {pair.target_record_id} is not in {context.source.dataset}",
                        record_id=pair.target_record_id,
                    ))
                else:
                    outcome = self.score_pair(context, record, target)
                if not outcome.is_ok:
                    scan.dropped_pairs += 1
                    log_pair_dropped(
                        record.record_id, pair.target_record_id, context.source_id,
                        outcome.error.message,
                    )
                    continue

                match_score = outcome.unwrap()
                if self.accepts(context, match_score):
                    accepted.append(ScoredCandidate(
                        source_record_id=record.record_id,
                        target_record_id=pair.target_record_id,
                        reference_source_id=context.source_id,
                        score=match_score,
                        priority=context.source.priority,
                        declaration_index=context.declaration_index,
                        dataset=context.source.dataset,
                    ))
            if accepted:
                scan.accepted[record.record_id] = accepted
        return scan

    def resolve_source(
        self,
        source: ReferenceSource,
        records: Iterable[Record],
        historical: bool = False,
    ) -> Result[SourceScan]:
        """Score a batch of source records against one reference source.

        Returns:
            Ok with the accepted candidates, or Err when the source is unusable
        """
        prepared = self.prepare_source(source, historical=historical)
        if not prepared.is_ok:
            return prepared
        return Ok(self.scan(prepared.unwrap(), records))

    # =========================
    # Selection
    # =========================

    def to_results(self, selected: list[ScoredCandidate]) -> list[MatchResult]:
        """Turn selected candidates into ranked match results."""
        results = []
        for rank, candidate in enumerate(selected, start=1):
            prepared = self._contexts[candidate.reference_source_id].unwrap()
            results.append(MatchResult(
                source_record_id=candidate.source_record_id,
                target_record_id=candidate.target_record_id,
                reference_source_id=candidate.reference_source_id,
                score=candidate.score,
                rank=rank,
                historical=prepared.historical,
                appended_fields=self._appended_fields(prepared, candidate.target_record_id),
            ))
        return results

    def _appended_fields(self, context: SourceContext, target_record_id: str) -> dict:
        if not context.source.append_fields:
            return {}
        target = context.record_set.get(target_record_id)
        appended = {}
        for name in context.source.append_fields:
            concrete = context.target_fields.resolve(name) or name
            appended[name] = target.get(concrete)
        return appended

    def resolve_records(self, records: list[Record], contexts: list[SourceContext]) -> ResolutionBatch:
        """Run the waterfall over a batch of source records.

        Sources are consulted in the given (priority) order. A record whose
        selected matches are already all HIGH is not offered to later
        sources, which could only rank below them.
        """
        max_matches = self.config.effective_max_matches
        batch = ResolutionBatch()
        pooled: dict[str, list[ScoredCandidate]] = {r.record_id: [] for r in records}
        open_records = list(records)

        for context in contexts:
            if not open_records:
                break
            scan = self.scan(context, open_records)
            batch.candidate_pairs += scan.candidate_pairs
            batch.dropped_pairs += scan.dropped_pairs
            batch.sources_consulted.append(context.source_id)

            for record_id, accepted in scan.accepted.items():
                pooled[record_id].extend(accepted)

            open_records = [r for r in open_records if not self._settled(pooled[r.record_id], max_matches)]

        for record in records:
            selected = select_matches(pooled[record.record_id], max_matches)
            batch.matches[record.record_id] = self.to_results(selected)
            best = selected[0] if selected else None
            log_resolution_event(
                record.record_id,
                best.reference_source_id if best else None,
                best.target_record_id if best else None,
                best.score.composite if best else 0.0,
                best.score.tier.value if best else ConfidenceTier.NONE.value,
            )
        return batch

    @staticmethod
    def _settled(candidates: list[ScoredCandidate], max_matches: int) -> bool:
        selected = select_matches(candidates, max_matches)
        return len(selected) >= max_matches and all(
            c.score.tier == ConfidenceTier.HIGH for c in selected
        )
