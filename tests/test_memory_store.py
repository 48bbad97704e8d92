"""Tests for the in-memory store's create-if-absent writes."""

from crategraph.graph import Batch, EdgeKey, EdgeUpsert, NodeKey, NodeUpsert, RelType


def _node(name):
    key = NodeKey("Function", f"demo:crate::{name}")
    return NodeUpsert(key, "demo", {"uid": key.uid, "project": "demo"})


def _calls(src, dst):
    key = EdgeKey(NodeKey("Function", f"demo:crate::{src}"), RelType.CALLS,
                  NodeKey("Function", f"demo:crate::{dst}"))
    return EdgeUpsert(key, "demo", {"uid": key.uid, "project": "demo"})


class TestWriteBatch:

    def test_edge_to_node_in_same_batch(self, memory_store):
        """An edge whose endpoints are created earlier in the same batch is written."""
        result = memory_store.write_batch(
            Batch(0, [_node("a"), _node("b"), _calls("a", "b")]))
        assert result.nodes_created == 2
        assert result.edges_created == 1
        assert memory_store.edge_triples("CALLS") == {
            ("demo:crate::a", "CALLS", "demo:crate::b"),
        }

    def test_edge_to_committed_node(self, memory_store):
        """Endpoints committed by an earlier batch count as existing."""
        memory_store.write_batch(Batch(0, [_node("a")]))
        result = memory_store.write_batch(Batch(1, [_node("b"), _calls("a", "b")]))
        assert result.edges_created == 1
        assert memory_store.committed_batches == [0, 1]

    def test_dangling_edge_is_skipped(self, memory_store):
        """An edge with a missing endpoint is dropped, like MATCH ... MERGE."""
        result = memory_store.write_batch(
            Batch(0, [_node("a"), _calls("a", "missing"), _calls("a", "a")]))
        assert result.edges_created == 1
        assert memory_store.edge_triples() == {
            ("demo:crate::a", "CALLS", "demo:crate::a"),
        }

    def test_many_edges_in_one_batch(self, memory_store):
        """A wide batch of nodes and edges is written in one pass."""
        names = [f"f{i:04d}" for i in range(2000)]
        ops = [_node(n) for n in names]
        ops += [_calls(a, b) for a, b in zip(names, names[1:])]
        result = memory_store.write_batch(Batch(0, ops))
        assert result.nodes_created == 2000
        assert result.edges_created == 1999
