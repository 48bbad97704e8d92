"""Translate resolved facts into a deduplicated change-set of graph upserts.

Identities are stable strings so that re-running on unchanged input maps
every node and edge onto the one written last time:

* Project: ``<project>``
* File: ``<project>:<relative path>``
* Function / Struct / Trait: ``<project>:<qualified name>``
* edge: ``<source uid>-[<TYPE>]-><target uid>``
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Union

from ..analysis.models import Declaration, DeclKind, RefKind, ResolvedReference
from ..analysis.symbols import SymbolTable

PROJECT_LABEL = "Project"
FILE_LABEL = "File"

# Write order: endpoints before the edges that need them
LABEL_ORDER = {
    PROJECT_LABEL: 0,
    FILE_LABEL: 1,
    DeclKind.STRUCT.value: 2,
    DeclKind.TRAIT.value: 3,
    DeclKind.FUNCTION.value: 4,
}


class RelType(str, Enum):
    CONTAINS_FILE = "CONTAINS_FILE"
    CONTAINS = "CONTAINS"
    CALLS = "CALLS"
    INSTANTIATES = "INSTANTIATES"
    IMPLEMENTS = "IMPLEMENTS"


REL_ORDER = {rel: i for i, rel in enumerate(RelType)}

_FACT_RELATION = {
    RefKind.CALL: RelType.CALLS,
    RefKind.INSTANTIATION: RelType.INSTANTIATES,
    RefKind.IMPL_BLOCK: RelType.IMPLEMENTS,
}


@dataclass(frozen=True, order=True)
class NodeKey:
    label: str
    uid: str


@dataclass(frozen=True, order=True)
class EdgeKey:
    source: NodeKey
    rel_type: RelType
    target: NodeKey

    @property
    def uid(self) -> str:
        return f"{self.source.uid}-[{self.rel_type.value}]->{self.target.uid}"


@dataclass(frozen=True)
class NodeUpsert:
    """Create the node if no node with this key exists, else no-op."""
    key: NodeKey
    project: str
    properties: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def label(self) -> str:
        return self.key.label

    @property
    def uid(self) -> str:
        return self.key.uid


@dataclass(frozen=True)
class EdgeUpsert:
    """Create the edge if no edge with this identity exists, else no-op."""
    key: EdgeKey
    project: str
    properties: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def rel_type(self) -> RelType:
        return self.key.rel_type

    @property
    def uid(self) -> str:
        return self.key.uid


Upsert = Union[NodeUpsert, EdgeUpsert]


def project_key(project: str) -> NodeKey:
    return NodeKey(PROJECT_LABEL, project)


def file_key(project: str, path: str) -> NodeKey:
    return NodeKey(FILE_LABEL, f"{project}:{path}")


def declaration_key(project: str, decl: Declaration) -> NodeKey:
    return NodeKey(decl.kind.value, f"{project}:{decl.qualified_name}")


class ChangeSet:
    """Node and edge upserts keyed by identity.

    Adding the same identity twice keeps the first one, so merging
    fragments gives the same set whatever order they arrive in.
    """

    def __init__(self) -> None:
        self._nodes: dict[NodeKey, NodeUpsert] = {}
        self._edges: dict[EdgeKey, EdgeUpsert] = {}

    def add_node(self, node: NodeUpsert) -> None:
        self._nodes.setdefault(node.key, node)

    def add_edge(self, edge: EdgeUpsert) -> None:
        self._edges.setdefault(edge.key, edge)

    def merge(self, other: "ChangeSet") -> "ChangeSet":
        """Merge another ChangeSet into this one (mutates self)."""
        for node in other._nodes.values():
            self.add_node(node)
        for edge in other._edges.values():
            self.add_edge(edge)
        return self

    @property
    def nodes(self) -> list[NodeUpsert]:
        return sorted(self._nodes.values(),
                      key=lambda n: (LABEL_ORDER.get(n.label, 99), n.uid))

    @property
    def edges(self) -> list[EdgeUpsert]:
        return sorted(self._edges.values(),
                      key=lambda e: (REL_ORDER[e.rel_type], e.uid))

    def operations(self) -> list[Upsert]:
        """All upserts in write order: nodes by label, then edges."""
        return [*self.nodes, *self.edges]

    def node_uids(self) -> set[str]:
        return {k.uid for k in self._nodes}

    def edge_uids(self) -> set[str]:
        return {k.uid for k in self._edges}

    def has_node(self, key: NodeKey) -> bool:
        return key in self._nodes

    def has_edge(self, key: EdgeKey) -> bool:
        return key in self._edges

    def __len__(self) -> int:
        return len(self._nodes) + len(self._edges)

    def summary(self) -> dict[str, dict[str, int]]:
        return {
            "nodes": dict(Counter(k.label for k in self._nodes)),
            "edges": dict(Counter(k.rel_type.value for k in self._edges)),
        }


class GraphModelBuilder:
    """Builds change-set fragments for one project."""

    def __init__(self, project: str):
        self.project = project

    def _node(self, key: NodeKey, **props: Any) -> NodeUpsert:
        props["uid"] = key.uid
        if key.label != PROJECT_LABEL:
            props["project"] = self.project
        return NodeUpsert(key=key, project=self.project, properties=props)

    def _edge(self, source: NodeKey, rel: RelType, target: NodeKey) -> EdgeUpsert:
        key = EdgeKey(source, rel, target)
        return EdgeUpsert(key=key, project=self.project,
                          properties={"uid": key.uid, "project": self.project})

    def files_fragment(self, files: Iterable[tuple[str, int]]) -> ChangeSet:
        """Project node, File nodes and their CONTAINS_FILE edges.

        ``files`` yields ``(relative path, line count)`` for every file of
        the run, including files that failed to parse.
        """
        changes = ChangeSet()
        proj = project_key(self.project)
        changes.add_node(self._node(proj, name=self.project))
        for path, loc in files:
            key = file_key(self.project, path)
            changes.add_node(self._node(
                key, path=path, filename=PurePosixPath(path).name, loc=loc,
            ))
            changes.add_edge(self._edge(proj, RelType.CONTAINS_FILE, key))
        return changes

    def declarations_fragment(self, table: SymbolTable) -> ChangeSet:
        """One node per authoritative declaration, owned by its File."""
        changes = ChangeSet()
        for decl in table:
            key = declaration_key(self.project, decl)
            props: dict[str, Any] = {
                "name": decl.name,
                "qualified_name": decl.qualified_name,
                "module_path": decl.module_path,
                "file_path": decl.file_path,
                "line_number": decl.span.start_line,
                "end_line": decl.span.end_line,
                "visibility": decl.visibility,
            }
            if decl.kind == DeclKind.FUNCTION:
                props.update(
                    signature=decl.signature,
                    is_async=decl.is_async,
                    is_method=decl.is_method,
                    owner=decl.owner,
                )
            changes.add_node(self._node(key, **props))
            changes.add_edge(self._edge(
                file_key(self.project, decl.file_path), RelType.CONTAINS, key,
            ))
        return changes

    def references_fragment(self, facts: Iterable[ResolvedReference]) -> ChangeSet:
        """CALLS / INSTANTIATES / IMPLEMENTS edges; repeats collapse."""
        changes = ChangeSet()
        for fact in facts:
            changes.add_edge(self._edge(
                declaration_key(self.project, fact.source),
                _FACT_RELATION[fact.kind],
                declaration_key(self.project, fact.target),
            ))
        return changes

    def build(self, files: Iterable[tuple[str, int]], table: SymbolTable,
              fact_groups: Iterable[Iterable[ResolvedReference]]) -> ChangeSet:
        changes = self.files_fragment(files)
        changes.merge(self.declarations_fragment(table))
        for facts in fact_groups:
            changes.merge(self.references_fragment(facts))
        return changes
