"""Data models for reclink."""

from .records import BlockingKey, CandidatePair, FieldMapping, Record
from .results import (
    Cluster,
    ConfidenceTier,
    MatchResult,
    MatchScore,
    PipelineResult,
    RunMetrics,
)
from .rules import (
    BlockingRule,
    ClusterConfig,
    KPIConfig,
    MatchingRules,
    PipelineConfig,
    ReferenceSource,
    ScoringRule,
    Thresholds,
    normalize_thresholds,
)

__all__ = [
    # Records
    "BlockingKey",
    "CandidatePair",
    "FieldMapping",
    "Record",
    # Results
    "Cluster",
    "ConfidenceTier",
    "MatchResult",
    "MatchScore",
    "PipelineResult",
    "RunMetrics",
    # Rules
    "BlockingRule",
    "ClusterConfig",
    "KPIConfig",
    "MatchingRules",
    "PipelineConfig",
    "ReferenceSource",
    "ScoringRule",
    "Thresholds",
    "normalize_thresholds",
]
