"""In-process store backed by a KGLite knowledge graph."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import kglite

from ...errors import StoreConnectionError
from ..model import EdgeUpsert, NodeUpsert
from .base import Batch, GraphStore, WriteResult


def _scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


class KGLiteStore(GraphStore):
    """Writes change-sets into a :class:`kglite.KnowledgeGraph`.

    Each batch runs as one ``graph.begin()`` transaction of Cypher
    ``MERGE`` statements keyed on the node ``id`` (our ``uid``). When
    ``save_to`` is given, an existing ``.kgl`` file there is loaded on
    connect and the graph is saved back on close, so repeated runs
    accumulate into the same file.
    """

    name = "kglite"

    def __init__(self, graph: kglite.KnowledgeGraph | None = None,
                 save_to: str | Path | None = None, timeout: float = 30.0):
        self.graph = graph
        self.save_to = Path(save_to) if save_to is not None else None
        self.timeout = timeout

    def connect(self) -> None:
        if self.graph is not None:
            return
        try:
            if self.save_to is not None and self.save_to.exists():
                self.graph = kglite.load(str(self.save_to))
            else:
                self.graph = kglite.KnowledgeGraph()
        except Exception as exc:
            raise StoreConnectionError(
                f"cannot open KGLite graph {self.save_to}: {exc}"
            ) from exc

    def close(self) -> None:
        if self.graph is not None and self.save_to is not None:
            self.save_to.parent.mkdir(parents=True, exist_ok=True)
            self.graph.save(str(self.save_to))

    # ── Writes ──────────────────────────────────────────────────────────

    @staticmethod
    def node_statement(node: NodeUpsert) -> tuple[str, dict[str, Any]]:
        props = {k: v for k, v in node.properties.items()
                 if k != "uid" and _scalar(v)}
        props.setdefault("title", node.properties.get("name")
                         or node.properties.get("path") or node.uid)
        params: dict[str, Any] = {"uid": node.uid}
        assignments = []
        for i, (key, value) in enumerate(sorted(props.items())):
            params[f"p{i}"] = value
            assignments.append(f"n.{key} = $p{i}")
        query = f"MERGE (n:{node.label} {{id: $uid}})"
        if assignments:
            query += " ON CREATE SET " + ", ".join(assignments)
        return query, params

    @staticmethod
    def edge_statement(edge: EdgeUpsert) -> tuple[str, dict[str, Any]]:
        key = edge.key
        query = (
            f"MATCH (a:{key.source.label} {{id: $src}}), "
            f"(b:{key.target.label} {{id: $dst}}) "
            f"MERGE (a)-[:{key.rel_type.value}]->(b)"
        )
        return query, {"src": key.source.uid, "dst": key.target.uid}

    def write_batch(self, batch: Batch) -> WriteResult:
        nodes_created = edges_created = 0
        with self.graph.begin(timeout_ms=int(self.timeout * 1000)) as tx:
            for op in batch.operations:
                if isinstance(op, NodeUpsert):
                    query, params = self.node_statement(op)
                else:
                    query, params = self.edge_statement(op)
                stats = tx.cypher(query, params=params).stats or {}
                nodes_created += stats.get("nodes_created", 0)
                edges_created += stats.get("relationships_created", 0)
        return WriteResult(nodes_created=nodes_created, edges_created=edges_created)

    def prune(self, project: str, keep_nodes: set[str],
              keep_edges: set[str]) -> tuple[int, int]:
        rows = self.graph.cypher(
            "MATCH (a)-[r]->(b) WHERE a.project = $project OR a.id = $project "
            "RETURN a.id AS src, labels(a) AS src_labels, type(r) AS rel, "
            "b.id AS dst, labels(b) AS dst_labels",
            params={"project": project},
        )
        stale_edges = [r for r in rows
                       if f"{r['src']}-[{r['rel']}]->{r['dst']}" not in keep_edges]
        stale_nodes = [
            r for r in self.graph.cypher(
                "MATCH (n) WHERE n.project = $project "
                "RETURN n.id AS uid, labels(n) AS labels",
                params={"project": project},
            )
            if r["uid"] not in keep_nodes
        ]
        with self.graph.begin(timeout_ms=int(self.timeout * 1000)) as tx:
            for r in stale_edges:
                tx.cypher(
                    f"MATCH (a:{_label(r['src_labels'])} {{id: $src}})"
                    f"-[r:{r['rel']}]->(b:{_label(r['dst_labels'])} {{id: $dst}}) "
                    "DELETE r",
                    params={"src": r["src"], "dst": r["dst"]},
                )
            for r in stale_nodes:
                tx.cypher(
                    f"MATCH (n:{_label(r['labels'])} {{id: $uid}}) DETACH DELETE n",
                    params={"uid": r["uid"]},
                )
        return len(stale_nodes), len(stale_edges)


def _label(labels: Any) -> str:
    if isinstance(labels, (list, tuple)):
        return labels[0]
    return str(labels)
