"""Tests for the KGLite-backed store."""

import pytest

kglite = pytest.importorskip("kglite", reason="requires kglite")

from crategraph import index_project  # noqa: E402
from crategraph.graph.stores.kglite_store import KGLiteStore  # noqa: E402


FILES = {
    "src/lib.rs": """
        pub struct Server;
        impl Server { pub fn start(&self) { helper(); } }
        fn helper() {}
    """,
}


def _count(graph, query):
    return graph.cypher(query)[0]["cnt"]


@pytest.fixture
def store():
    s = KGLiteStore()
    s.connect()
    return s


class TestStatements:

    def test_node_statement_uses_merge(self, store, analyse):
        """Node statements should MERGE on id and set properties on create."""
        from crategraph.graph import GraphModelBuilder
        table, _, _ = analyse(FILES)
        changes = GraphModelBuilder("demo").declarations_fragment(table)
        node = next(n for n in changes.nodes if n.label == "Struct")
        query, params = KGLiteStore.node_statement(node)
        assert query.startswith("MERGE (n:Struct {id: $uid}) ON CREATE SET")
        assert params["uid"] == "demo:crate::Server"
        assert "Server" in params.values()

    def test_edge_statement_matches_endpoints(self, store, analyse):
        """Edge statements should MATCH both endpoints before the MERGE."""
        from crategraph.graph import GraphModelBuilder
        table, _, _ = analyse(FILES)
        changes = GraphModelBuilder("demo").declarations_fragment(table)
        edge = changes.edges[0]
        query, params = KGLiteStore.edge_statement(edge)
        assert query.startswith("MATCH (a:File {id: $src})")
        assert "MERGE (a)-[:CONTAINS]->(b)" in query
        assert params["src"] == "demo:src/lib.rs"


class TestWrites:

    def test_index_into_graph(self, store, write_crate):
        """Indexing should produce Function nodes and a CALLS edge in the graph."""
        root = write_crate(FILES)
        index_project(root, store)
        graph = store.graph
        assert _count(graph, "MATCH (n:Function) RETURN count(n) AS cnt") == 2
        assert _count(graph, "MATCH (:Function)-[r:CALLS]->(:Function) "
                             "RETURN count(r) AS cnt") == 1
        rows = graph.cypher("MATCH (s:Struct) RETURN s.title AS title")
        assert rows[0]["title"] == "Server"

    def test_rerun_does_not_duplicate(self, store, write_crate):
        """Indexing twice with another batch size should not add nodes or edges."""
        root = write_crate(FILES)
        index_project(root, store)
        nodes = store.graph.graph_info()["node_count"]
        edges = _count(store.graph, "MATCH ()-[r]->() RETURN count(r) AS cnt")

        index_project(root, store, batch_size=3)
        assert store.graph.graph_info()["node_count"] == nodes
        assert _count(store.graph, "MATCH ()-[r]->() RETURN count(r) AS cnt") == edges

    def test_created_counts_come_from_mutation_stats(self, store, write_crate):
        """The first run reports every node and edge as created; a rerun reports none."""
        root = write_crate(FILES)
        first = index_project(root, store, batch_size=4)
        assert first.nodes_created == first.nodes
        assert first.edges_created == first.edges
        assert any(line.startswith("  Created:") for line in first.summary_lines())

        second = index_project(root, store)
        assert second.nodes_created == 0
        assert second.edges_created == 0

    def test_save_and_reload(self, tmp_path, write_crate):
        """A graph saved on close should load back on the next connect."""
        root = write_crate(FILES)
        path = tmp_path / "out" / "graph.kgl"
        first = KGLiteStore(save_to=path)
        index_project(root, first)
        first.close()
        assert path.exists()

        second = KGLiteStore(save_to=path)
        second.connect()
        assert _count(second.graph, "MATCH (n:Function) RETURN count(n) AS cnt") == 2

    def test_prune_removes_stale_function(self, store, write_crate):
        """--prune should delete functions that disappeared from the source."""
        root = write_crate(FILES)
        index_project(root, store)
        (root / "src" / "lib.rs").write_text("pub struct Server;\n")

        report = index_project(root, store, prune=True)
        assert report.pruned_nodes == 2
        assert _count(store.graph, "MATCH (n:Function) RETURN count(n) AS cnt") == 0
        assert _count(store.graph, "MATCH (n:Struct) RETURN count(n) AS cnt") == 1
