"""Match quality tracking."""

from .metrics import MatchQualityTracker, QualityDimension, QualityMetric, QualityReport

__all__ = [
    "MatchQualityTracker",
    "QualityDimension",
    "QualityMetric",
    "QualityReport",
]
