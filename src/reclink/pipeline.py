"""Match pipeline orchestration.

Sequences a run: load source records, prepare and index reference sources,
resolve the waterfall in parallel shards, run the historical fallback after
the primary barrier, cluster after the resolution barrier, then compute run
metrics.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

from .blocking.index import IndexCache
from .datasets import RecordSet, RecordSetProvider, load_record_set
from .logging import get_context_logger, log_run_complete
from .matching.semantic_types import FieldInferenceCache
from .models.records import Record
from .models.results import ConfidenceTier, MatchResult, PipelineResult, RunMetrics
from .models.rules import PipelineConfig
from .quality.metrics import MatchQualityTracker, QualityDimension
from .resolution.clustering import ClusterBuilder
from .resolution.historical import HistoricalMatcher, HistoricalOutcome
from .resolution.resolver import ResolutionBatch, RuleResolver, SourceContext

logger = get_context_logger(__name__)


def shard(records: list[Record], size: int) -> list[list[Record]]:
    """Split records into consecutive shards of at most ``size``."""
    return [records[i:i + size] for i in range(0, len(records), size)]


class MatchPipeline:
    """Runs entity resolution for one configuration.

    Usage:
        pipeline = MatchPipeline(config, catalog)
        result = await pipeline.run()
    """

    def __init__(
        self,
        config: PipelineConfig,
        provider: RecordSetProvider,
        inference_cache: FieldInferenceCache | None = None,
    ):
        """Initialize the pipeline.

        Args:
            config: Run configuration
            provider: Record-set provider for source and reference datasets
            inference_cache: Field inference cache shared across runs

        Raises:
            ConfigurationError: If the rule configuration is unusable
        """
        config.validate_rules()
        self.config = config
        self.provider = provider
        self.inference_cache = inference_cache or FieldInferenceCache()

    def clear_cache(self) -> None:
        """Drop cached field inferences."""
        self.inference_cache.clear()

    async def run(self) -> PipelineResult:
        """Execute the pipeline.

        Returns:
            Match results, clusters and run metrics

        Raises:
            ExecutionError: If the source dataset or every primary source is unusable
        """
        run_id = uuid4().hex
        started = time.perf_counter()
        log = get_context_logger(__name__, run_id=run_id)

        source_set = load_record_set(
            self.provider, self.config.source_dataset, allow_empty=True
        )
        records = list(source_set)
        log.info(
            f"Starting match run over {len(records)} source records",
            extra={
                "source_dataset": source_set.name,
                "reference_sources": [s.id for s in self.config.reference_sources],
            },
        )

        # Reference data is reloaded every run, so indexes never outlive it
        resolver = RuleResolver(
            self.config,
            self.provider,
            source_set,
            index_cache=IndexCache(),
            inference_cache=self.inference_cache,
        )
        contexts = resolver.prepare_primary()

        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            tasks = [
                loop.run_in_executor(executor, resolver.resolve_records, part, contexts)
                for part in shard(records, self.config.shard_size)
            ]
            batches: list[ResolutionBatch] = await asyncio.gather(*tasks)

            # Primary barrier: the match count is reduced here by one writer
            primary: dict[str, list[MatchResult]] = {}
            for batch in batches:
                primary.update(batch.matches)
            matched_ids = {rid for rid, found in primary.items() if found}

            historical = HistoricalOutcome()
            if self.config.historical_sources:
                matcher = HistoricalMatcher(
                    resolver, self.config.kpi, self.config.historical_sources
                )
                historical = await loop.run_in_executor(
                    executor, matcher.run, records, matched_ids
                )

        matches: list[MatchResult] = []
        for record in records:
            matches.extend(primary.get(record.record_id) or historical.matches.get(record.record_id, []))

        # Resolution barrier: clustering needs every accepted edge
        clusters = []
        if self.config.cluster.enabled:
            builder = ClusterBuilder(self.config.cluster)
            builder.add_matches(matches, source_set.name, self._datasets())
            clusters = builder.build()

        metrics = self._metrics(records, matches, batches, historical, resolver)
        metrics.warnings.extend(self._quality_warnings(run_id, source_set, contexts, metrics))
        metrics.duration_seconds = time.perf_counter() - started

        log_run_complete(
            run_id,
            metrics.total_source_records,
            metrics.matched_records,
            len(clusters),
            metrics.duration_seconds,
        )
        return PipelineResult(run_id=run_id, matches=matches, clusters=clusters, metrics=metrics)

    def run_sync(self) -> PipelineResult:
        """Execute the pipeline from synchronous code."""
        return asyncio.run(self.run())

    def _datasets(self) -> dict[str, str]:
        sources = self.config.reference_sources + self.config.historical_sources
        return {s.id: s.dataset for s in sources}

    def _metrics(
        self,
        records: list[Record],
        matches: list[MatchResult],
        batches: list[ResolutionBatch],
        historical: HistoricalOutcome,
        resolver: RuleResolver,
    ) -> RunMetrics:
        best = [m for m in matches if m.rank == 1]
        tiers = [m.tier for m in best]
        per_source: dict[str, int] = {}
        for match in matches:
            per_source[match.reference_source_id] = per_source.get(match.reference_source_id, 0) + 1

        total = len(records)
        return RunMetrics(
            total_source_records=total,
            matched_records=len(best),
            high_confidence_count=tiers.count(ConfidenceTier.HIGH),
            medium_confidence_count=tiers.count(ConfidenceTier.MEDIUM),
            low_confidence_count=tiers.count(ConfidenceTier.LOW),
            per_source_match_counts=per_source,
            achieved_match_rate=len(best) / total if total else 0.0,
            average_confidence=sum(m.confidence for m in best) / len(best) if best else 0.0,
            historical_match_count=historical.match_count,
            historical_sources_consulted=list(historical.sources_consulted),
            skipped_sources=list(resolver.skipped_sources),
            candidate_pairs=sum(b.candidate_pairs for b in batches) + historical.candidate_pairs,
            dropped_pairs=sum(b.dropped_pairs for b in batches) + historical.dropped_pairs,
        )

    def _quality_warnings(
        self,
        run_id: str,
        source_set: RecordSet,
        contexts: list[SourceContext],
        metrics: RunMetrics,
    ) -> list[str]:
        tracker = MatchQualityTracker(
            run_id,
            thresholds={QualityDimension.MATCH_RATE: self.config.kpi.target_match_rate},
        )
        for context in contexts:
            fields = [rule.field for rule in context.rules.scoring]
            tracker.measure_mapping_completeness(
                f"{source_set.name}->{context.source_id}",
                source_set,
                fields,
                context.source_fields,
            )
            tracker.measure_mapping_completeness(
                context.source_id,
                context.record_set,
                fields,
                context.target_fields,
            )
        if metrics.total_source_records:
            tracker.measure_match_rate(
                metrics.matched_records, metrics.total_source_records
            )

        report = tracker.generate_report()
        return report.warnings
