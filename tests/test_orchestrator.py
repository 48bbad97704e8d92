"""End-to-end indexing runs against the in-memory store."""

import pytest

from crategraph import index_project, index_projects
from crategraph.errors import BatchWriteError


FOO_BAR = {
    "src/lib.rs": """
        pub fn foo() { bar(); }
        fn bar() {}
    """,
}


class TestIndexProject:

    def test_foo_calls_bar(self, write_crate, memory_store):
        """foo() calling bar() should store both functions and the CALLS edge."""
        root = write_crate(FOO_BAR, name="p")
        report = index_project(root, memory_store)

        assert report.project == "p"
        assert report.files == 1
        assert report.declarations == 2
        assert set(memory_store.nodes_with_label("Function")) == {
            "p:crate::foo", "p:crate::bar",
        }
        assert memory_store.edge_triples("CALLS") == {
            ("p:crate::foo", "CALLS", "p:crate::bar"),
        }
        assert memory_store.edge_triples("CONTAINS_FILE") == {
            ("p", "CONTAINS_FILE", "p:src/lib.rs"),
        }
        assert report.diagnostic_counts()["UnresolvedReference"] == 0

    def test_rerun_is_idempotent(self, write_crate, memory_store):
        """Indexing unchanged sources again should create nothing."""
        root = write_crate(FOO_BAR)
        index_project(root, memory_store, batch_size=2)
        nodes, edges = dict(memory_store.nodes), dict(memory_store.edges)

        second = index_project(root, memory_store, batch_size=3)
        assert memory_store.nodes == nodes
        assert memory_store.edges == edges
        assert second.nodes_created == 0
        assert second.edges_created == 0

    def test_explicit_project_name(self, write_crate, memory_store):
        """An explicit project name should prefix every uid."""
        root = write_crate(FOO_BAR)
        report = index_project(root, memory_store, project="renamed")
        assert report.project == "renamed"
        assert "renamed:crate::foo" in memory_store.nodes_with_label("Function")

    def test_unresolved_reference_is_reported(self, write_crate, memory_store):
        """A call to an unknown function is reported and writes no edge."""
        root = write_crate({"src/lib.rs": "fn foo() { nowhere(); }\n"})
        report = index_project(root, memory_store)
        (diag,) = report.diagnostics.of_kind("UnresolvedReference")
        assert diag.name == "nowhere"
        assert memory_store.edge_triples("CALLS") == set()

    def test_parse_failure_keeps_file_node(self, write_crate, memory_store):
        """A file that fails to parse still gets its File node."""
        root = write_crate({
            "src/lib.rs": "fn good() {}\n",
            "src/bad.rs": "fn broken( {\n",
        })
        report = index_project(root, memory_store)
        assert report.files == 2
        assert report.failed == 1
        files = memory_store.nodes_with_label("File")
        assert set(files) == {"demo:src/lib.rs", "demo:src/bad.rs"}
        assert files["demo:src/bad.rs"]["loc"] == 1
        (diag,) = report.diagnostics.of_kind("ParseError")
        assert diag.file_path == "src/bad.rs"
        assert "demo:crate::good" in memory_store.nodes_with_label("Function")

    def test_duplicate_declaration(self, write_crate, memory_store):
        """The first declaration of a duplicated name should win."""
        root = write_crate({
            "src/lib.rs": "fn helper() {}\n",
            "src/main.rs": "fn helper() {}\n",
        })
        report = index_project(root, memory_store)
        assert len(report.diagnostics.of_kind("DuplicateDeclaration")) == 1
        helper = memory_store.nodes_with_label("Function")["demo:crate::helper"]
        assert helper["file_path"] == "src/lib.rs"

    def test_skips_target_directory(self, write_crate, memory_store):
        """Sources under target/ should not be indexed."""
        root = write_crate({
            "src/lib.rs": "fn a() {}\n",
            "target/debug/build/gen.rs": "fn generated() {}\n",
        })
        report = index_project(root, memory_store)
        assert report.files == 1

    def test_prune_removes_stale_entities(self, write_crate, memory_store):
        """Runs are additive unless prune=True."""
        root = write_crate(FOO_BAR)
        index_project(root, memory_store)
        (root / "src" / "lib.rs").write_text("pub fn foo() {}\n")

        additive = index_project(root, memory_store)
        assert additive.pruned_nodes == 0
        assert "demo:crate::bar" in memory_store.nodes_with_label("Function")

        report = index_project(root, memory_store, prune=True)
        assert report.pruned_nodes == 1
        assert "demo:crate::bar" not in memory_store.nodes_with_label("Function")
        assert memory_store.edge_triples("CALLS") == set()

    def test_prune_goes_through_writer_with_retry(self, write_crate, flaky_store_cls):
        """A prune that fails once is retried on the writer thread."""
        root = write_crate(FOO_BAR)
        store = flaky_store_cls({})
        index_project(root, store)
        (root / "src" / "lib.rs").write_text("pub fn foo() {}\n")

        store.prune_failures = 1
        report = index_project(root, store, prune=True, backoff=0)
        assert report.pruned_nodes == 1
        assert store.prune_threads == ["crategraph-writer"] * 2
        assert "demo:crate::bar" not in store.nodes_with_label("Function")

    def test_shared_writer_prunes_each_project(self, write_crate, flaky_store_cls):
        """index_projects(prune=True) prunes every project on the shared writer."""
        one = write_crate(FOO_BAR, name="one")
        two = write_crate(FOO_BAR, name="two")
        store = flaky_store_cls({})
        index_projects([(one, None), (two, None)], store)
        for root in (one, two):
            (root / "src" / "lib.rs").write_text("pub fn foo() {}\n")

        reports = index_projects([(one, None), (two, None)], store, prune=True)
        assert [r.pruned_nodes for r in reports] == [1, 1]
        assert set(store.prune_threads) == {"crategraph-writer"}
        assert set(store.nodes_with_label("Function")) == {
            "one:crate::foo", "two:crate::foo",
        }

    def test_write_failure_is_fatal(self, write_crate, flaky_store_cls):
        """A batch that never succeeds should abort the run."""
        root = write_crate(FOO_BAR)
        store = flaky_store_cls({1: 99})
        with pytest.raises(BatchWriteError) as info:
            index_project(root, store, batch_size=2, max_attempts=2, backoff=0)
        assert info.value.batch_index == 1
        assert store.committed_batches == [0]

    def test_no_prune_after_abort(self, write_crate, flaky_store_cls):
        """An aborted run must not prune anything."""
        root = write_crate(FOO_BAR)
        store = flaky_store_cls({})
        index_project(root, store)
        before = set(store.nodes)

        store.failures = {0: 99}
        with pytest.raises(BatchWriteError):
            index_project(root, store, prune=True, max_attempts=1, backoff=0)
        assert set(store.nodes) == before


class TestIndexProjects:

    def test_projects_are_isolated(self, write_crate, memory_store):
        """Two projects with the same names should not link to each other."""
        one = write_crate({"src/lib.rs": "fn run() { helper(); }\nfn helper() {}\n"},
                          name="one")
        two = write_crate({"src/lib.rs": "fn run() {}\nfn helper() {}\n"},
                          name="two")
        reports = index_projects([(one, None), (two, None)], memory_store)

        assert [r.project for r in reports] == ["one", "two"]
        assert memory_store.edge_triples("CALLS") == {
            ("one:crate::run", "CALLS", "one:crate::helper"),
        }
        assert len(memory_store.nodes_with_label("Project")) == 2
        two_keys = [key for key, props in memory_store.nodes.items()
                    if props.get("project") == "two"]
        assert two_keys
        assert all(key.uid.startswith("two:") for key in two_keys)

    def test_concurrent_runs_match_sequential(self, write_crate, memory_store):
        """Concurrent runs through one writer should match sequential runs."""
        from crategraph.graph import MemoryStore

        files = {
            "src/lib.rs": "pub struct S;\nimpl S { fn go(&self) { self.stop(); } fn stop(&self) {} }\n",
            "src/util.rs": "pub fn helper() { crate::util::inner(); }\nfn inner() {}\n",
        }
        roots = [(write_crate(files, name=f"p{i}"), None) for i in range(4)]
        index_projects(roots, memory_store, workers=2)

        sequential = MemoryStore()
        for root, _ in roots:
            index_project(root, sequential)
        assert memory_store.nodes == sequential.nodes
        assert memory_store.edges == sequential.edges
