"""Match quality tracking for reclink.

Measures warning-level quality conditions of a run: completeness of the
mapped fields and achieved match rate against target. Failed measurements
become run warnings; they never abort a run.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable
from uuid import UUID, uuid4

from ..logging import get_context_logger, log_data_quality
from ..matching.fields import FieldResolver
from ..matching.standardizer import is_empty
from ..models.records import Record

logger = get_context_logger(__name__)


class QualityDimension(str, Enum):
    """Match quality dimensions measured by the engine."""

    COMPLETENESS = "completeness"  # Do mapped fields carry values?
    MATCH_RATE = "match_rate"  # Did enough source records match?


@dataclass
class QualityMetric:
    """A single quality metric measurement."""

    id: UUID
    run_id: str
    dimension: QualityDimension
    metric_name: str
    value: float
    threshold: float
    passed: bool
    measured_at: datetime
    details: dict[str, Any] | None = None

    @property
    def warning(self) -> str:
        return (
            f"{self.metric_name} {self.value:.2%} below "
            f"{self.dimension.value} threshold {self.threshold:.2%}"
        )


@dataclass
class QualityReport:
    """Quality report for one pipeline run."""

    run_id: str
    measured_at: datetime
    metrics: list[QualityMetric]
    overall_score: float
    passed: bool

    @property
    def warnings(self) -> list[str]:
        return [m.warning for m in self.metrics if not m.passed]


class MatchQualityTracker:
    """Tracks and reports match quality metrics.

    Measures quality across dimensions:
    - Completeness: Share of (record, mapped field) slots holding a value
    - Match rate: Share of source records with an accepted match
    """

    # Default quality thresholds by dimension
    DEFAULT_THRESHOLDS = {
        QualityDimension.COMPLETENESS: 0.90,
        QualityDimension.MATCH_RATE: 0.75,
    }

    def __init__(self, run_id: str, thresholds: dict[QualityDimension, float] | None = None):
        """Initialize tracker for a pipeline run.

        Args:
            run_id: Pipeline run identifier
            thresholds: Overrides of the default thresholds
        """
        self.run_id = run_id
        self.thresholds = {**self.DEFAULT_THRESHOLDS, **(thresholds or {})}
        self._metrics: list[QualityMetric] = []

    def measure_mapping_completeness(
        self,
        label: str,
        records: Iterable[Record],
        fields: list[str],
        resolver: FieldResolver,
    ) -> QualityMetric:
        """Measure how completely rule fields are populated in a record set.

        A rule field that cannot be mapped onto the record set counts as
        empty for every record.

        Args:
            label: What was measured, e.g. ``source->crm``
            records: Records to measure
            fields: Rule field names
            resolver: Binding of rule fields to the record set

        Returns:
            Completeness metric
        """
        records = list(records)
        unmapped = [name for name in fields if resolver.resolve(name) is None]

        if not records or not fields:
            return self._record(self._create_metric(
                QualityDimension.COMPLETENESS,
                f"mapping_completeness:{label}",
                1.0,
                details={"total_records": len(records)},
            ))

        total_checks = len(records) * len(fields)
        complete_checks = 0
        for record in records:
            for name in fields:
                if not is_empty(resolver.raw(record, name)):
                    complete_checks += 1

        return self._record(self._create_metric(
            QualityDimension.COMPLETENESS,
            f"mapping_completeness:{label}",
            complete_checks / total_checks,
            details={
                "total_records": len(records),
                "fields": fields,
                "unmapped_fields": unmapped,
                "complete_checks": complete_checks,
                "total_checks": total_checks,
            },
        ))

    def measure_match_rate(
        self,
        matched: int,
        total: int,
        target: float | None = None,
    ) -> QualityMetric:
        """Measure achieved match rate against the target rate.

        Args:
            matched: Source records with at least one match
            total: Source records processed
            target: Target match rate, defaults to the dimension threshold

        Returns:
            Match rate metric
        """
        rate = matched / total if total else 1.0
        return self._record(self._create_metric(
            QualityDimension.MATCH_RATE,
            "achieved_match_rate",
            rate,
            threshold=target,
            details={"matched_records": matched, "total_records": total},
        ))

    def _record(self, metric: QualityMetric) -> QualityMetric:
        self._metrics.append(metric)
        log_data_quality(
            self.run_id,
            metric.metric_name,
            metric.value,
            metric.passed,
            metric.details,
        )
        return metric

    def _create_metric(
        self,
        dimension: QualityDimension,
        metric_name: str,
        value: float,
        threshold: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> QualityMetric:
        """Create a quality metric with threshold comparison.

        Args:
            dimension: Quality dimension being measured
            metric_name: Name of the specific metric
            value: Measured value (0.0 to 1.0)
            threshold: Threshold overriding the dimension default
            details: Additional measurement details

        Returns:
            Quality metric with pass/fail status
        """
        if threshold is None:
            threshold = self.thresholds.get(dimension, 0.9)
        return QualityMetric(
            id=uuid4(),
            run_id=self.run_id,
            dimension=dimension,
            metric_name=metric_name,
            value=value,
            threshold=threshold,
            passed=value >= threshold,
            measured_at=datetime.now(timezone.utc),
            details=details,
        )

    def generate_report(self) -> QualityReport:
        """Generate quality report from collected metrics.

        Returns:
            Quality report with overall score
        """
        if not self._metrics:
            return QualityReport(
                run_id=self.run_id,
                measured_at=datetime.now(timezone.utc),
                metrics=[],
                overall_score=1.0,
                passed=True,
            )

        overall_score = sum(m.value for m in self._metrics) / len(self._metrics)
        all_passed = all(m.passed for m in self._metrics)

        report = QualityReport(
            run_id=self.run_id,
            measured_at=datetime.now(timezone.utc),
            metrics=self._metrics.copy(),
            overall_score=overall_score,
            passed=all_passed,
        )

        logger.info(
            "quality_report_generated",
            extra={
                "run_id": self.run_id,
                "overall_score": overall_score,
                "passed": all_passed,
                "metric_count": len(self._metrics),
            },
        )

        return report
