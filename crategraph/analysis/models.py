"""Data models shared by the parse, symbol and resolve stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class DeclKind(str, Enum):
    """Tag for the declaration variants. Values double as graph labels."""
    FUNCTION = "Function"
    STRUCT = "Struct"
    TRAIT = "Trait"


class RefKind(str, Enum):
    CALL = "Call"
    INSTANTIATION = "Instantiation"
    IMPL_BLOCK = "ImplBlock"


@dataclass(frozen=True, order=True)
class Span:
    """Source span; lines are 1-based, columns 0-based."""
    start_line: int
    start_col: int
    end_line: int
    end_col: int

    @property
    def position(self) -> tuple[int, int]:
        return (self.start_line, self.start_col)


@dataclass(frozen=True)
class Declaration:
    """A Function, Struct or Trait declared in one file.

    All three kinds share this record; ``kind`` is the tag. Identity
    within a project is the qualified name.
    """
    kind: DeclKind
    name: str
    module_path: str             # e.g. "crate::net::tcp"
    file_path: str               # relative, "/"-separated
    span: Span
    owner: str | None = None     # impl self type / trait name for methods
    visibility: str = "private"
    signature: str | None = None
    is_async: bool = False

    @property
    def qualified_name(self) -> str:
        if self.owner:
            return f"{self.module_path}::{self.owner}::{self.name}"
        return f"{self.module_path}::{self.name}"

    @property
    def is_method(self) -> bool:
        return self.owner is not None

    @property
    def sort_key(self) -> tuple[str, int, int]:
        """Deterministic first-seen order: file path, then position."""
        return (self.file_path, *self.span.position)


@dataclass(frozen=True)
class Reference:
    """A raw, unresolved use of a name found in one file.

    ``paths`` holds one name path for calls and instantiations, and two
    for impl blocks: ``(self type, trait)``.
    """
    kind: RefKind
    paths: tuple[tuple[str, ...], ...]
    file_path: str
    module_path: str
    span: Span
    enclosing: str | None = None       # qualified name of the enclosing fn
    owner: str | None = None           # enclosing impl/trait type name
    is_method_call: bool = False       # recv.name(...) on a non-self receiver

    @property
    def display_name(self) -> str:
        return " for ".join("::".join(p) for p in reversed(self.paths))


@dataclass
class ParsedFile:
    """Everything the parser extracted from one file."""
    path: str
    module_path: str
    loc: int
    declarations: list[Declaration] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedReference:
    """A reference matched to its source and target declarations."""
    kind: RefKind
    source: Declaration
    target: Declaration
    best_effort: bool = False    # picked among several fallback candidates
