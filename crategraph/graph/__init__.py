"""Graph model, upsert emitter and store backends."""

from .emitter import EmitReport, UpsertEmitter
from .model import (
    ChangeSet, EdgeKey, EdgeUpsert, GraphModelBuilder, NodeKey, NodeUpsert,
    RelType, declaration_key, file_key, project_key,
)
from .stores import Batch, GraphStore, MemoryStore, WriteResult, get_store

__all__ = [
    "EmitReport", "UpsertEmitter",
    "ChangeSet", "EdgeKey", "EdgeUpsert", "GraphModelBuilder", "NodeKey",
    "NodeUpsert", "RelType", "declaration_key", "file_key", "project_key",
    "Batch", "GraphStore", "MemoryStore", "WriteResult", "get_store",
]
