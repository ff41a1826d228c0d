"""Output models: scores, match results, clusters and run metrics."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ConfidenceTier(str, Enum):
    """Discretized confidence of a match."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NONE = "NONE"

    @property
    def rank(self) -> int:
        """Sort rank, HIGH first."""
        return _TIER_RANK[self]


_TIER_RANK = {
    ConfidenceTier.HIGH: 0,
    ConfidenceTier.MEDIUM: 1,
    ConfidenceTier.LOW: 2,
    ConfidenceTier.NONE: 3,
}


class MatchScore(BaseModel):
    """Per-field component scores plus the composite confidence."""

    components: dict[str, float] = Field(default_factory=dict)
    composite: float = Field(..., ge=0.0, le=1.0)
    tier: ConfidenceTier = ConfidenceTier.NONE

    model_config = ConfigDict(frozen=True)


class MatchResult(BaseModel):
    """The accepted match of one source record against one reference record."""

    source_record_id: str
    target_record_id: str
    reference_source_id: str
    score: MatchScore
    rank: int = Field(default=1, ge=1)
    historical: bool = False
    appended_fields: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def confidence(self) -> float:
        return self.score.composite

    @property
    def tier(self) -> ConfidenceTier:
        return self.score.tier

    @property
    def is_high_confidence(self) -> bool:
        """Check if this match landed in the HIGH tier."""
        return self.score.tier == ConfidenceTier.HIGH


class Cluster(BaseModel):
    """Records connected directly or indirectly by accepted matches."""

    cluster_id: str
    representative: str
    members: tuple[str, ...]
    edge_count: int = 0
    average_confidence: float = 0.0
    density: float = 0.0

    model_config = ConfigDict(frozen=True)

    @property
    def size(self) -> int:
        return len(self.members)


class RunMetrics(BaseModel):
    """Run-level metrics handed to the reporting collaborator."""

    total_source_records: int = 0
    matched_records: int = 0
    high_confidence_count: int = 0
    medium_confidence_count: int = 0
    low_confidence_count: int = 0
    per_source_match_counts: dict[str, int] = Field(default_factory=dict)
    achieved_match_rate: float = 0.0
    average_confidence: float = 0.0
    historical_match_count: int = 0
    historical_sources_consulted: list[str] = Field(default_factory=list)
    skipped_sources: list[str] = Field(default_factory=list)
    candidate_pairs: int = 0
    dropped_pairs: int = 0
    duration_seconds: float = 0.0
    warnings: list[str] = Field(default_factory=list)


class PipelineResult(BaseModel):
    """Everything one pipeline run produces."""

    run_id: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    matches: list[MatchResult] = Field(default_factory=list)
    clusters: list[Cluster] = Field(default_factory=list)
    metrics: RunMetrics = Field(default_factory=RunMetrics)

    def matches_for(self, source_record_id: str) -> list[MatchResult]:
        """Get the matches of one source record, best first."""
        return [m for m in self.matches if m.source_record_id == source_record_id]
