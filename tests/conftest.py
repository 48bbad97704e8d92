"""Shared fixtures for the crategraph test suite."""

import importlib.util
import textwrap

import pytest


# Every module imports crategraph.analysis, which needs tree-sitter-rust
if (importlib.util.find_spec("tree_sitter") is None
        or importlib.util.find_spec("tree_sitter_rust") is None):
    collect_ignore_glob = ["test_*.py"]


@pytest.fixture
def rust_parser():
    from crategraph.analysis import RustParser
    return RustParser()


@pytest.fixture
def parse(rust_parser):
    """Parse dedented Rust source as if it lived at ``path``."""
    def _parse(source: str, path: str = "src/lib.rs"):
        return rust_parser.parse_source(path, textwrap.dedent(source))
    return _parse


@pytest.fixture
def analyse(rust_parser):
    """Parse several files and build the symbol table.

    Returns ``(table, duplicate diagnostics, parsed files)``.
    """
    from crategraph.analysis import build_symbol_table

    def _analyse(files: dict[str, str], project: str = "demo"):
        parsed = [rust_parser.parse_source(path, textwrap.dedent(src))
                  for path, src in files.items()]
        table, duplicates = build_symbol_table(project, parsed)
        return table, duplicates, parsed
    return _analyse


@pytest.fixture
def memory_store():
    from crategraph.graph import MemoryStore
    store = MemoryStore()
    store.connect()
    return store


@pytest.fixture
def write_crate(tmp_path):
    """Write ``{relative path: source}`` under a fresh project directory."""
    def _write(files: dict[str, str], name: str = "demo"):
        root = tmp_path / name
        for rel, src in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(src), encoding="utf8")
        root.mkdir(parents=True, exist_ok=True)
        return root
    return _write


@pytest.fixture
def flaky_store_cls():
    """MemoryStore subclass that fails chosen batches a number of times.

    ``failures`` maps batch index -> how many attempts fail before one
    succeeds. Use a large count to make a batch fail for good.
    ``prune_failures`` does the same for prune calls, whose calling
    threads are recorded in ``prune_threads``.
    """
    import threading

    from crategraph.graph import MemoryStore

    class FlakyStore(MemoryStore):
        def __init__(self, failures: dict[int, int], prune_failures: int = 0):
            super().__init__()
            self.failures = dict(failures)
            self.attempts: dict[int, int] = {}
            self.prune_failures = prune_failures
            self.prune_threads: list[str] = []

        def prune(self, project, keep_nodes, keep_edges):
            self.prune_threads.append(threading.current_thread().name)
            if self.prune_failures > 0:
                self.prune_failures -= 1
                raise RuntimeError("transaction conflict during prune")
            return super().prune(project, keep_nodes, keep_edges)

        def write_batch(self, batch):
            self.attempts[batch.index] = self.attempts.get(batch.index, 0) + 1
            if self.failures.get(batch.index, 0) > 0:
                self.failures[batch.index] -= 1
                raise ConnectionError(f"transient failure on batch {batch.index}")
            return super().write_batch(batch)

    return FlakyStore
