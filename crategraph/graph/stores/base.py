"""Graph-store client contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from ..model import EdgeUpsert, NodeUpsert, Upsert


@dataclass
class Batch:
    """A bounded list of upserts written in one store transaction."""
    index: int
    operations: list[Upsert] = field(default_factory=list)

    @property
    def nodes(self) -> list[NodeUpsert]:
        return [op for op in self.operations if isinstance(op, NodeUpsert)]

    @property
    def edges(self) -> list[EdgeUpsert]:
        return [op for op in self.operations if isinstance(op, EdgeUpsert)]

    def __len__(self) -> int:
        return len(self.operations)


@dataclass
class WriteResult:
    """What a committed batch changed. None when the store cannot tell."""
    nodes_created: int | None = None
    edges_created: int | None = None


class GraphStore(ABC):
    """Base class that all graph stores must extend.

    Every write is create-if-absent keyed by ``uid``: writing a batch twice
    leaves the store as if it was written once, which is what makes batch
    retries and re-runs safe.
    """

    name = "store"

    @abstractmethod
    def connect(self) -> None:
        """Open and verify the connection. Raises StoreConnectionError."""
        ...

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""

    @abstractmethod
    def write_batch(self, batch: Batch) -> WriteResult:
        """Apply every upsert of ``batch`` in a single transaction."""
        ...

    @abstractmethod
    def prune(self, project: str, keep_nodes: set[str],
              keep_edges: set[str]) -> tuple[int, int]:
        """Delete ``project``'s nodes and edges whose uid is not kept.

        Returns ``(nodes_deleted, edges_deleted)``. Other projects are
        never touched.
        """
        ...

    def __enter__(self) -> "GraphStore":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
