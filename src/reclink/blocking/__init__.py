"""Blocking: prune the comparison space before scoring."""

from .index import (
    BlockingIndex,
    IndexCache,
    build_index,
    candidates,
    candidates_for,
    generate_keys,
    index_record_set,
)
from .strategies import (
    STRATEGIES,
    BlockingStrategy,
    derive_keys,
    resolve_strategy,
    validate_blocking_rule,
)

__all__ = [
    # Index
    "BlockingIndex",
    "IndexCache",
    "build_index",
    "candidates",
    "candidates_for",
    "generate_keys",
    "index_record_set",
    # Strategies
    "STRATEGIES",
    "BlockingStrategy",
    "derive_keys",
    "resolve_strategy",
    "validate_blocking_rule",
]
