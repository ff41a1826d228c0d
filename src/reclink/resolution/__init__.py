"""Match resolution for reclink.

Implements:
- Waterfall resolution across prioritized reference sources
- KPI-driven historical fallback
- Transitive clustering of accepted matches
"""

from .clustering import ClusterBuilder, UnionFind, node_sort_key, qualify
from .historical import HistoricalMatcher, HistoricalOutcome, match_rate
from .resolver import (
    ResolutionBatch,
    RuleResolver,
    ScoredCandidate,
    SourceContext,
    SourceScan,
    select_matches,
)

__all__ = [
    # Waterfall
    "ResolutionBatch",
    "RuleResolver",
    "ScoredCandidate",
    "SourceContext",
    "SourceScan",
    "select_matches",
    # Historical
    "HistoricalMatcher",
    "HistoricalOutcome",
    "match_rate",
    # Clustering
    "ClusterBuilder",
    "UnionFind",
    "node_sort_key",
    "qualify",
]
