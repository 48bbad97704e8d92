"""Graph-store backends and the store registry."""

from .base import Batch, GraphStore, WriteResult
from .memory import MemoryStore

STORE_NAMES = ("neo4j", "kglite", "memory")


def get_store(name: str, **options) -> GraphStore:
    """Get a store instance by backend name.

    Backends with optional dependencies are imported on demand.
    """
    if name == "neo4j":
        from .neo4j_store import Neo4jStore
        return Neo4jStore(**options)
    elif name == "kglite":
        from .kglite_store import KGLiteStore
        return KGLiteStore(**options)
    elif name == "memory":
        return MemoryStore()
    else:
        raise ValueError(f"Unsupported store: {name}")


__all__ = [
    "Batch", "GraphStore", "WriteResult", "MemoryStore",
    "STORE_NAMES", "get_store",
]
