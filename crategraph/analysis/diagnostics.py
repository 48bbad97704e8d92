"""Non-fatal diagnostics collected during a run."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from enum import Enum

import pandas as pd

from .models import Span


class DiagnosticKind(str, Enum):
    PARSE_ERROR = "ParseError"
    DUPLICATE_DECLARATION = "DuplicateDeclaration"
    AMBIGUOUS_REFERENCE = "AmbiguousReference"
    UNRESOLVED_REFERENCE = "UnresolvedReference"


@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    message: str
    file_path: str
    span: Span | None = None
    name: str | None = None

    @property
    def line(self) -> int | None:
        return self.span.start_line if self.span else None

    def __str__(self) -> str:
        where = f"{self.file_path}:{self.line}" if self.span else self.file_path
        return f"[{self.kind.value}] {where}: {self.message}"


class DiagnosticLog:
    """Append-only, thread-safe collection of diagnostics for one run."""

    def __init__(self) -> None:
        self._items: list[Diagnostic] = []
        self._lock = threading.Lock()

    def add(self, diagnostic: Diagnostic) -> None:
        with self._lock:
            self._items.append(diagnostic)

    def extend(self, diagnostics) -> None:
        with self._lock:
            self._items.extend(diagnostics)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        with self._lock:
            return iter(list(self._items))

    def of_kind(self, kind: DiagnosticKind) -> list[Diagnostic]:
        return [d for d in self if d.kind == kind]

    def counts(self) -> dict[str, int]:
        """Count per kind; every kind is present, zero when unseen."""
        counter = Counter(d.kind for d in self)
        return {kind.value: counter.get(kind, 0) for kind in DiagnosticKind}

    def to_df(self) -> pd.DataFrame:
        """Diagnostics as a DataFrame, sorted by file and line."""
        columns = ["kind", "file_path", "line", "name", "message"]
        rows = [{
            "kind": d.kind.value,
            "file_path": d.file_path,
            "line": d.line,
            "name": d.name,
            "message": d.message,
        } for d in self]
        if not rows:
            return pd.DataFrame(columns=columns)
        df = pd.DataFrame(rows, columns=columns)
        return df.sort_values(["file_path", "line"], kind="stable",
                              na_position="first").reset_index(drop=True)
