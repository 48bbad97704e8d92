"""Dict-backed store used for dry runs and tests."""

from __future__ import annotations

import threading
from typing import Any

from ..model import EdgeKey, NodeKey
from .base import Batch, GraphStore, WriteResult


class MemoryStore(GraphStore):
    """In-process store with the same create-if-absent semantics.

    A batch is staged and applied under one lock, so it is all-or-nothing.
    An edge whose endpoints do not exist is skipped, matching what a
    ``MATCH ... MERGE`` does in a Cypher store.
    """

    name = "memory"

    def __init__(self) -> None:
        self.nodes: dict[NodeKey, dict[str, Any]] = {}
        self.edges: dict[EdgeKey, dict[str, Any]] = {}
        self.committed_batches: list[int] = []
        self.connected = False
        self._lock = threading.Lock()

    def connect(self) -> None:
        self.connected = True

    def close(self) -> None:
        self.connected = False

    def write_batch(self, batch: Batch) -> WriteResult:
        with self._lock:
            new_nodes = {}
            for node in batch.nodes:
                if node.key not in self.nodes and node.key not in new_nodes:
                    new_nodes[node.key] = dict(node.properties)

            def known(node_key: NodeKey) -> bool:
                return node_key in self.nodes or node_key in new_nodes

            new_edges = {}
            for edge in batch.edges:
                key = edge.key
                if key in self.edges or key in new_edges:
                    continue
                if known(key.source) and known(key.target):
                    new_edges[key] = dict(edge.properties)
            self.nodes.update(new_nodes)
            self.edges.update(new_edges)
            self.committed_batches.append(batch.index)
        return WriteResult(nodes_created=len(new_nodes),
                           edges_created=len(new_edges))

    def prune(self, project: str, keep_nodes: set[str],
              keep_edges: set[str]) -> tuple[int, int]:
        with self._lock:
            stale_nodes = {
                key for key, props in self.nodes.items()
                if props.get("project") == project and key.uid not in keep_nodes
            }
            stale_edges = {
                key for key, props in self.edges.items()
                if key.source in stale_nodes or key.target in stale_nodes
                or (props.get("project") == project and key.uid not in keep_edges)
            }
            for key in stale_edges:
                del self.edges[key]
            for key in stale_nodes:
                del self.nodes[key]
        return len(stale_nodes), len(stale_edges)

    # ── Inspection helpers ─────────────────────────────────────────────

    def nodes_with_label(self, label: str) -> dict[str, dict[str, Any]]:
        return {k.uid: v for k, v in self.nodes.items() if k.label == label}

    def edge_triples(self, rel_type: str | None = None) -> set[tuple[str, str, str]]:
        """``(source uid, type, target uid)`` for every stored edge."""
        return {
            (k.source.uid, k.rel_type.value, k.target.uid)
            for k in self.edges
            if rel_type is None or k.rel_type.value == rel_type
        }
