"""Blocking key generation, inverted indexes and candidate generation.

A source record and a target record become a candidate pair when they share
at least one blocking key. Candidates per source record are ranked by the
summed weight of their shared keys and truncated, which bounds the number of
comparisons at sources x max_candidates_per_record.
"""

import itertools
import threading
from collections import defaultdict
from typing import Callable, Iterable

from ..datasets import RecordSet
from ..logging import get_context_logger
from ..matching.fields import FieldResolver
from ..models.records import BlockingKey, CandidatePair, Record
from ..models.rules import BlockingRule
from .strategies import BlockingStrategy, composite_components, derive_keys, resolve_strategy

logger = get_context_logger(__name__)

# Upper bound on keys a single composite rule may produce for one record
MAX_COMPOSITE_KEYS = 25


def rule_label(rule: BlockingRule) -> str:
    """Name identifying a blocking rule on both sides of a pair."""
    if resolve_strategy(rule.strategy) == BlockingStrategy.COMPOSITE:
        parts = [f"{c.strategy}:{c.field}" for c in composite_components(rule)]
        return "composite(" + "+".join(parts) + ")"
    return f"{rule.strategy}:{rule.field}"


def _rule_values(record: Record, rule: BlockingRule, resolver: FieldResolver) -> list[str]:
    if resolve_strategy(rule.strategy) != BlockingStrategy.COMPOSITE:
        return derive_keys(rule.strategy, resolver.value(record, rule.field), rule.params)

    parts = []
    for component in composite_components(rule):
        values = derive_keys(
            component.strategy, resolver.value(record, component.field), component.params
        )
        if not values:
            return []
        parts.append(values)

    separator = str(rule.params.get("separator", "_"))
    combos = itertools.islice(itertools.product(*parts), MAX_COMPOSITE_KEYS)
    return [separator.join(combo) for combo in combos]


def generate_keys(
    record: Record,
    rules: list[BlockingRule],
    resolver: FieldResolver,
    min_key_length: int = 1,
) -> list[BlockingKey]:
    """Generate the blocking keys of one record.

    Keys shorter than ``min_key_length`` are dropped so near-empty values
    never block records together.

    Args:
        record: Record to derive keys from
        rules: Blocking rules
        resolver: Field resolver for the record's side
        min_key_length: Minimum standardized key length

    Returns:
        Distinct keys in rule order
    """
    keys: dict[tuple[str, str], BlockingKey] = {}
    for rule in rules:
        label = rule_label(rule)
        for value in _rule_values(record, rule, resolver):
            if len(value) < min_key_length:
                continue
            keys.setdefault((label, value), BlockingKey(label, value, rule.weight))
    return list(keys.values())


class BlockingIndex:
    """Inverted index from blocking key to record ids of one record set.

    Built once and read-only afterwards, so it can be shared across worker
    threads.
    """

    def __init__(
        self,
        rules: list[BlockingRule],
        resolver: FieldResolver,
        min_key_length: int = 1,
    ):
        self.rules = list(rules)
        self.resolver = resolver
        self.min_key_length = min_key_length
        self._postings: dict[tuple[str, str], list[str]] = defaultdict(list)
        self._keys: dict[str, list[BlockingKey]] = {}
        self._order: dict[str, int] = {}

    def add(self, record: Record) -> list[BlockingKey]:
        """Index one record and return its keys."""
        keys = generate_keys(record, self.rules, self.resolver, self.min_key_length)
        self._order.setdefault(record.record_id, len(self._order))
        self._keys[record.record_id] = keys
        for key in keys:
            self._postings[key.token].append(record.record_id)
        return keys

    def keys_for(self, record_id: str) -> list[BlockingKey]:
        return self._keys.get(record_id, [])

    def lookup(self, key: BlockingKey) -> list[str]:
        """Record ids sharing a key."""
        return self._postings.get(key.token, [])

    def position(self, record_id: str) -> int:
        """Insertion position of a record, used as the stable tie-break."""
        return self._order[record_id]

    @property
    def record_ids(self) -> list[str]:
        return list(self._order)

    @property
    def key_count(self) -> int:
        return len(self._postings)

    def __len__(self) -> int:
        return len(self._order)

    def as_dict(self) -> dict[tuple[str, str], list[str]]:
        """Copy of the key -> record ids mapping."""
        return {token: list(ids) for token, ids in self._postings.items()}


def build_index(
    record_set: Iterable[Record],
    rules: list[BlockingRule],
    resolver: FieldResolver,
    min_key_length: int = 1,
) -> BlockingIndex:
    """Build a blocking index over a record set."""
    index = BlockingIndex(rules, resolver, min_key_length)
    for record in record_set:
        index.add(record)
    return index


def candidates_for(
    source_record_id: str,
    source_keys: list[BlockingKey],
    target_index: BlockingIndex,
    reference_source_id: str,
    max_per_record: int,
    exclude_self: bool = False,
) -> list[CandidatePair]:
    """Rank and truncate the candidates of one source record.

    Ranking is block weight descending, then number of shared keys
    descending, then target insertion order.
    """
    shared: dict[str, list[BlockingKey]] = defaultdict(list)
    for key in source_keys:
        for target_id in target_index.lookup(key):
            if exclude_self and target_id == source_record_id:
                continue
            shared[target_id].append(key)

    ranked = sorted(
        shared.items(),
        key=lambda item: (
            -sum(k.weight for k in item[1]),
            -len(item[1]),
            target_index.position(item[0]),
        ),
    )

    return [
        CandidatePair(
            source_record_id=source_record_id,
            target_record_id=target_id,
            reference_source_id=reference_source_id,
            matched_keys=tuple(keys),
            block_weight=sum(k.weight for k in keys),
        )
        for target_id, keys in ranked[:max_per_record]
    ]


def all_pairs_for(
    source_record_id: str,
    target_ids: list[str],
    reference_source_id: str,
    max_per_record: int,
    exclude_self: bool = False,
) -> list[CandidatePair]:
    """Unblocked candidates: every target in order, truncated."""
    pairs = []
    for target_id in target_ids:
        if exclude_self and target_id == source_record_id:
            continue
        pairs.append(CandidatePair(source_record_id, target_id, reference_source_id))
        if len(pairs) >= max_per_record:
            break
    return pairs


def candidates(
    source_index: BlockingIndex,
    target_index: BlockingIndex,
    max_per_record: int,
    reference_source_id: str,
    exclude_self: bool = False,
) -> list[CandidatePair]:
    """Candidate pairs for every record of the source index.

    Falls back to truncated all-pairs when no blocking rules are configured.
    """
    pairs: list[CandidatePair] = []
    unblocked = not target_index.rules
    if unblocked:
        logger.warning(
            f"No blocking rules for {reference_source_id}, comparing all pairs",
            extra={"reference_source_id": reference_source_id, "max_per_record": max_per_record},
        )

    for source_id in source_index.record_ids:
        if unblocked:
            pairs.extend(all_pairs_for(
                source_id, target_index.record_ids, reference_source_id,
                max_per_record, exclude_self,
            ))
        else:
            pairs.extend(candidates_for(
                source_id, source_index.keys_for(source_id), target_index,
                reference_source_id, max_per_record, exclude_self,
            ))
    return pairs


class IndexCache:
    """Request-scoped cache of built blocking indexes.

    Each key has its own lock so concurrent callers build an index at most
    once while builds of different keys proceed in parallel.
    """

    def __init__(self):
        self._indexes: dict[str, BlockingIndex] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        self.builds = 0

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def get_or_build(self, key: str, builder: Callable[[], BlockingIndex]) -> BlockingIndex:
        """Return the cached index for a key, building it on first use."""
        with self._lock_for(key):
            index = self._indexes.get(key)
            if index is None:
                index = builder()
                self._indexes[key] = index
                self.builds += 1
            return index

    def __contains__(self, key: str) -> bool:
        return key in self._indexes

    def clear(self) -> None:
        """Drop every cached index."""
        with self._guard:
            self._indexes.clear()
            self._locks.clear()


def index_record_set(
    record_set: RecordSet,
    rules: list[BlockingRule],
    resolver: FieldResolver,
    min_key_length: int,
) -> BlockingIndex:
    """Build an index over a record set and log its size."""
    index = build_index(record_set, rules, resolver, min_key_length)
    logger.debug(
        f"Indexed {len(index)} records of {record_set.name} under {index.key_count} keys",
        extra={"dataset": record_set.name, "record_count": len(index), "key_count": index.key_count},
    )
    return index
