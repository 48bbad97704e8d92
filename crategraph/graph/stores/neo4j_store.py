"""Neo4j store using the official neo4j Python driver."""

from __future__ import annotations

from collections import defaultdict
from typing import Any

from neo4j import GraphDatabase, Query
from neo4j.exceptions import AuthError, DriverError, Neo4jError, ServiceUnavailable

from ...errors import StoreConnectionError
from ..model import LABEL_ORDER, REL_ORDER
from .base import Batch, GraphStore, WriteResult

NODE_QUERY = """
UNWIND $rows AS row
MERGE (n:{label} {{uid: row.uid}})
ON CREATE SET n += row.props
"""

EDGE_QUERY = """
UNWIND $rows AS row
MATCH (a:{source} {{uid: row.src}})
MATCH (b:{target} {{uid: row.dst}})
MERGE (a)-[r:{rel}]->(b)
ON CREATE SET r += row.props
"""

PRUNE_EDGES_QUERY = """
MATCH ()-[r]->()
WHERE r.project = $project AND NOT r.uid IN $keep
DELETE r
"""

PRUNE_NODES_QUERY = """
MATCH (n)
WHERE n.project = $project AND NOT n.uid IN $keep
DETACH DELETE n
"""


class Neo4jStore(GraphStore):
    """Writes batches with ``UNWIND ... MERGE`` inside managed transactions.

    Node upserts are grouped by label and edge upserts by
    (type, source label, target label) so each group is one statement.
    """

    name = "neo4j"

    def __init__(self, uri: str, user: str, password: str, *,
                 database: str | None = None, timeout: float = 30.0,
                 driver=None):
        self.uri = uri
        self.user = user
        self.password = password
        self.database = database
        self.timeout = timeout
        self._driver = driver

    def connect(self) -> None:
        try:
            if self._driver is None:
                self._driver = GraphDatabase.driver(
                    self.uri,
                    auth=(self.user, self.password),
                    connection_timeout=self.timeout,
                )
            self._driver.verify_connectivity()
            with self._session() as session:
                for label in LABEL_ORDER:
                    session.run(
                        f"CREATE CONSTRAINT {label.lower()}_uid IF NOT EXISTS "
                        f"FOR (n:{label}) REQUIRE n.uid IS UNIQUE"
                    ).consume()
        except (ServiceUnavailable, AuthError, Neo4jError, DriverError,
                OSError, ValueError) as exc:
            raise StoreConnectionError(
                f"cannot connect to Neo4j at {self.uri}: {exc}"
            ) from exc

    def close(self) -> None:
        if self._driver is not None:
            self._driver.close()
            self._driver = None

    def _session(self):
        return self._driver.session(database=self.database)

    def _query(self, text: str) -> Query:
        return Query(text, timeout=self.timeout)

    # ── Writes ──────────────────────────────────────────────────────────

    @staticmethod
    def group_batch(batch: Batch) -> tuple[dict, dict]:
        """Group a batch into ``{label: rows}`` and ``{(rel, src, dst): rows}``."""
        node_rows: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for node in batch.nodes:
            node_rows[node.label].append({"uid": node.uid, "props": node.properties})
        edge_rows: dict[tuple[str, str, str], list[dict[str, Any]]] = defaultdict(list)
        for edge in batch.edges:
            key = edge.key
            edge_rows[(key.rel_type.value, key.source.label, key.target.label)].append({
                "src": key.source.uid,
                "dst": key.target.uid,
                "props": edge.properties,
            })
        return node_rows, edge_rows

    def _write_groups(self, tx, node_rows: dict, edge_rows: dict) -> WriteResult:
        result = WriteResult(nodes_created=0, edges_created=0)
        for label in sorted(node_rows, key=lambda lb: LABEL_ORDER.get(lb, 99)):
            summary = tx.run(
                self._query(NODE_QUERY.format(label=label)), rows=node_rows[label],
            ).consume()
            result.nodes_created += summary.counters.nodes_created
        for rel, source, target in sorted(edge_rows, key=lambda k: REL_ORDER.get(k[0], 99)):
            summary = tx.run(
                self._query(EDGE_QUERY.format(rel=rel, source=source, target=target)),
                rows=edge_rows[(rel, source, target)],
            ).consume()
            result.edges_created += summary.counters.relationships_created
        return result

    def write_batch(self, batch: Batch) -> WriteResult:
        node_rows, edge_rows = self.group_batch(batch)
        with self._session() as session:
            return session.execute_write(self._write_groups, node_rows, edge_rows)

    def _prune(self, tx, project: str, keep_nodes: list[str],
               keep_edges: list[str]) -> tuple[int, int]:
        edges = tx.run(self._query(PRUNE_EDGES_QUERY),
                       project=project, keep=keep_edges).consume()
        nodes = tx.run(self._query(PRUNE_NODES_QUERY),
                       project=project, keep=keep_nodes).consume()
        return (nodes.counters.nodes_deleted,
                edges.counters.relationships_deleted
                + nodes.counters.relationships_deleted)

    def prune(self, project: str, keep_nodes: set[str],
              keep_edges: set[str]) -> tuple[int, int]:
        with self._session() as session:
            return session.execute_write(
                self._prune, project, sorted(keep_nodes), sorted(keep_edges),
            )
