"""Unit tests for transitive clustering.

Run with: pytest tests/unit/test_clustering.py -v
"""

import pytest

from reclink.models import ClusterConfig, ConfidenceTier, MatchResult, MatchScore
from reclink.resolution.clustering import ClusterBuilder, UnionFind, node_sort_key, qualify


def _match(source_id, target_id, reference="crm", confidence=0.9):
    return MatchResult(
        source_record_id=source_id,
        target_record_id=target_id,
        reference_source_id=reference,
        score=MatchScore(composite=confidence, tier=ConfidenceTier.HIGH),
    )


class TestUnionFind:
    """Tests for the disjoint-set structure."""

    def test_union_and_find(self):
        """Test that unions merge sets."""
        forest = UnionFind()
        forest.union("a", "b")
        forest.union("c", "d")
        forest.union("b", "d")

        assert forest.find("a") == forest.find("c")
        assert len(forest.groups()) == 1

    def test_singletons(self):
        """Test that added nodes start in their own sets."""
        forest = UnionFind()
        forest.add("a")
        forest.add("b")
        assert len(forest.groups()) == 2


class TestNodeOrdering:
    """Tests for qualified id ordering."""

    def test_numeric_ids_sort_numerically(self):
        """Test that record 9 sorts before record 10."""
        nodes = [qualify("crm", "10"), qualify("crm", "9"), qualify("archive", "500")]
        assert sorted(nodes, key=node_sort_key) == ["archive:500", "crm:9", "crm:10"]

    def test_numerically_equal_ids_are_ordered(self):
        """Test that ids with the same integer value still have a fixed order."""
        assert sorted(["d:1", "d:01", "d:-1"], key=node_sort_key) == ["d:-1", "d:01", "d:1"]

    def test_representative_with_equal_integer_ids(self):
        """Test that the representative does not depend on insertion order."""
        forward = ClusterBuilder()
        forward.add_edge("d:1", "d:01")
        forward.add_edge("d:01", "e:x")
        backward = ClusterBuilder()
        backward.add_edge("e:x", "d:01")
        backward.add_edge("d:01", "d:1")

        [first], [second] = forward.build(), backward.build()

        assert first.representative == second.representative == "d:01"
        assert first.members == second.members == ("d:01", "d:1", "e:x")


class TestClusterBuilder:
    """Tests for cluster construction."""

    def test_transitive_chain(self):
        """Test that A-B and B-C put A, B and C in one cluster."""
        builder = ClusterBuilder()
        builder.add_edge("x:a", "x:b", 0.9)
        builder.add_edge("x:b", "x:c", 0.8)

        [cluster] = builder.build()

        assert cluster.members == ("x:a", "x:b", "x:c")
        assert cluster.representative == "x:a"
        assert cluster.cluster_id == "cluster:x:a"
        assert cluster.edge_count == 2
        assert cluster.average_confidence == pytest.approx(0.85)
        assert cluster.density == pytest.approx(2 / 3)

    def test_separate_components(self):
        """Test that unconnected edges form separate clusters in fixed order."""
        builder = ClusterBuilder()
        builder.add_edge("x:2", "y:2")
        builder.add_edge("x:1", "y:1")

        clusters = builder.build()

        assert [c.representative for c in clusters] == ["x:1", "x:2"]

    def test_every_node_in_exactly_one_cluster(self):
        """Test that clusters partition the matched nodes."""
        builder = ClusterBuilder()
        for a, b in [("x:1", "y:1"), ("x:2", "y:1"), ("x:3", "y:3"), ("x:4", "x:3")]:
            builder.add_edge(a, b)

        clusters = builder.build()
        members = [m for c in clusters for m in c.members]

        assert len(members) == len(set(members)) == 6
        assert len(clusters) == 2

    def test_duplicate_edges_counted_once(self):
        """Test that reversed duplicates keep the higher confidence."""
        builder = ClusterBuilder()
        builder.add_edge("x:1", "y:1", 0.7)
        builder.add_edge("y:1", "x:1", 0.9)

        [cluster] = builder.build()

        assert cluster.edge_count == 1
        assert cluster.average_confidence == pytest.approx(0.9)

    def test_min_confidence(self):
        """Test that weak edges are ignored."""
        builder = ClusterBuilder(ClusterConfig(min_confidence=0.8))
        builder.add_edge("x:1", "y:1", 0.5)

        assert builder.build() == []
        assert builder.ignored_edges == 1

    def test_add_matches_qualifies_ids(self):
        """Test that match results become qualified edges."""
        builder = ClusterBuilder()
        builder.add_matches(
            [_match("1", "101"), _match("2", "101")],
            "people",
            {"crm": "crm_dataset"},
        )

        [cluster] = builder.build()

        assert cluster.members == ("crm_dataset:101", "people:1", "people:2")

    def test_build_is_deterministic(self):
        """Test that insertion order does not change the output."""
        edges = [("x:3", "y:1"), ("x:1", "y:1"), ("x:2", "y:2")]
        forward, backward = ClusterBuilder(), ClusterBuilder()
        for a, b in edges:
            forward.add_edge(a, b)
        for a, b in reversed(edges):
            backward.add_edge(b, a)

        assert forward.build() == backward.build()

    def test_summarize(self):
        """Test summary statistics."""
        builder = ClusterBuilder()
        builder.add_edge("x:1", "y:1")
        builder.add_edge("x:1", "y:2")
        builder.add_edge("x:2", "y:3")

        summary = builder.summarize()

        assert summary["total_clusters"] == 2
        assert summary["records_in_clusters"] == 5
        assert summary["largest_cluster_size"] == 3
        assert summary["size_distribution"] == {2: 1, 3: 1}
