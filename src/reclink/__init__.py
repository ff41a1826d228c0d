"""reclink: rule-based entity resolution and record linkage."""

from .datasets import InMemoryCatalog, RecordSet
from .errors import (
    ConfigurationError,
    DataError,
    ExecutionError,
    LinkageError,
    StrategyError,
    ValidationError,
)
from .models import (
    BlockingRule,
    Cluster,
    ClusterConfig,
    ConfidenceTier,
    FieldMapping,
    KPIConfig,
    MatchingRules,
    MatchResult,
    MatchScore,
    PipelineConfig,
    PipelineResult,
    Record,
    ReferenceSource,
    RunMetrics,
    ScoringRule,
    Thresholds,
)
from .pipeline import MatchPipeline
from .result import Err, Ok

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Pipeline
    "MatchPipeline",
    # Data
    "InMemoryCatalog",
    "Record",
    "RecordSet",
    # Configuration
    "BlockingRule",
    "ClusterConfig",
    "FieldMapping",
    "KPIConfig",
    "MatchingRules",
    "PipelineConfig",
    "ReferenceSource",
    "ScoringRule",
    "Thresholds",
    # Results
    "Cluster",
    "ConfidenceTier",
    "MatchResult",
    "MatchScore",
    "PipelineResult",
    "RunMetrics",
    # Errors
    "ConfigurationError",
    "DataError",
    "Err",
    "ExecutionError",
    "LinkageError",
    "Ok",
    "StrategyError",
    "ValidationError",
]
