"""Transitive clustering of accepted matches.

Accepted matches form an undirected graph over qualified record ids
(``<dataset>:<record_id>``). Connected components are computed with
union-find, so chains of pairwise matches merge into one entity cluster.
"""

from collections import Counter, defaultdict
from typing import Iterable

from ..logging import get_context_logger
from ..models.records import record_id_key
from ..models.results import Cluster, MatchResult
from ..models.rules import ClusterConfig

logger = get_context_logger(__name__)


def qualify(dataset: str, record_id: str) -> str:
    """Qualified node id of a record."""
    return f"{dataset}:{record_id}"


def node_sort_key(node: str) -> tuple:
    """Fixed node ordering: dataset name, then record id."""
    dataset, _, record_id = node.partition(":")
    return (dataset, record_id_key(record_id))


class UnionFind:
    """Disjoint sets with path compression and union by size."""

    def __init__(self):
        self._parent: dict[str, str] = {}
        self._size: dict[str, int] = {}

    def add(self, node: str) -> None:
        if node not in self._parent:
            self._parent[node] = node
            self._size[node] = 1

    def find(self, node: str) -> str:
        self.add(node)
        root = node
        while self._parent[root] != root:
            root = self._parent[root]
        # Path compression
        while self._parent[node] != root:
            self._parent[node], node = root, self._parent[node]
        return root

    def union(self, a: str, b: str) -> str:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return root_a
        if self._size[root_a] < self._size[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        self._size[root_a] += self._size[root_b]
        return root_a

    def groups(self) -> dict[str, list[str]]:
        """Members of every set keyed by root."""
        result: dict[str, list[str]] = defaultdict(list)
        for node in self._parent:
            result[self.find(node)].append(node)
        return dict(result)

    def __len__(self) -> int:
        return len(self._parent)


class ClusterBuilder:
    """Builds entity clusters from accepted match edges.

    ``ClusterConfig.max_depth`` only applies to relaxation-based closure;
    union-find reaches the full closure without an iteration bound.
    """

    def __init__(self, config: ClusterConfig | None = None):
        self.config = config or ClusterConfig()
        self._edges: dict[tuple[str, str], float] = {}
        self._nodes: set[str] = set()
        self.ignored_edges = 0

    def add_edge(self, a: str, b: str, confidence: float = 1.0) -> None:
        """Add an undirected edge between two qualified ids."""
        if confidence < self.config.min_confidence:
            self.ignored_edges += 1
            return
        self._nodes.update((a, b))
        if a == b:
            return
        key = (a, b) if node_sort_key(a) <= node_sort_key(b) else (b, a)
        self._edges[key] = max(confidence, self._edges.get(key, 0.0))

    def add_matches(
        self,
        matches: Iterable[MatchResult],
        source_dataset: str,
        datasets: dict[str, str],
    ) -> None:
        """Add match results as edges.

        Args:
            matches: Accepted match results
            source_dataset: Dataset of the source records
            datasets: Reference source id -> dataset
        """
        for match in matches:
            self.add_edge(
                qualify(source_dataset, match.source_record_id),
                qualify(datasets[match.reference_source_id], match.target_record_id),
                match.confidence,
            )

    def build(self) -> list[Cluster]:
        """Compute clusters, ordered by representative.

        Every node of an accepted edge lands in exactly one cluster.
        """
        forest = UnionFind()
        for node in sorted(self._nodes, key=node_sort_key):
            forest.add(node)
        for a, b in sorted(self._edges, key=lambda e: (node_sort_key(e[0]), node_sort_key(e[1]))):
            forest.union(a, b)

        edges_by_root: dict[str, list[float]] = defaultdict(list)
        for (a, _), confidence in self._edges.items():
            edges_by_root[forest.find(a)].append(confidence)

        clusters = []
        for root, members in forest.groups().items():
            ordered = tuple(sorted(members, key=node_sort_key))
            confidences = edges_by_root.get(root, [])
            size = len(ordered)
            possible = size * (size - 1) / 2
            clusters.append(Cluster(
                cluster_id=f"cluster:{ordered[0]}",
                representative=ordered[0],
                members=ordered,
                edge_count=len(confidences),
                average_confidence=sum(confidences) / len(confidences) if confidences else 0.0,
                density=len(confidences) / possible if possible else 0.0,
            ))

        clusters.sort(key=lambda c: node_sort_key(c.representative))
        logger.debug(
            f"Built {len(clusters)} clusters from {len(self._edges)} edges",
            extra={"cluster_count": len(clusters), "edge_count": len(self._edges)},
        )
        return clusters

    def summarize(self, clusters: list[Cluster] | None = None) -> dict:
        """Summary statistics over clusters.

        Returns:
            Cluster count, clustered records, average and largest size, and
            the size distribution
        """
        clusters = self.build() if clusters is None else clusters
        sizes = [c.size for c in clusters]
        return {
            "total_clusters": len(clusters),
            "records_in_clusters": sum(sizes),
            "average_cluster_size": sum(sizes) / len(sizes) if sizes else 0.0,
            "largest_cluster_size": max(sizes, default=0),
            "size_distribution": dict(sorted(Counter(sizes).items())),
        }
