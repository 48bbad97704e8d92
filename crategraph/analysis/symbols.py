"""Project-wide symbol table: the barrier between parsing and resolution."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from .diagnostics import Diagnostic, DiagnosticKind
from .models import Declaration, DeclKind, ParsedFile


class SymbolTable:
    """Read-only index of one project's declarations.

    ``by_qualified_name`` holds exactly one authoritative declaration per
    qualified name. ``by_name`` groups the same declarations by simple
    name, each group sorted by (file path, position).
    """

    def __init__(self, project: str, declarations: Iterable[Declaration]):
        self.project = project
        table: dict[str, Declaration] = {}
        names: dict[str, list[Declaration]] = defaultdict(list)
        for decl in declarations:
            table[decl.qualified_name] = decl
            names[decl.name].append(decl)
        self._table = MappingProxyType(table)
        self._names = MappingProxyType({
            name: tuple(sorted(group, key=lambda d: d.sort_key))
            for name, group in names.items()
        })

    @property
    def by_qualified_name(self) -> Mapping[str, Declaration]:
        return self._table

    @property
    def by_name(self) -> Mapping[str, tuple[Declaration, ...]]:
        return self._names

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, qualified_name: str) -> bool:
        return qualified_name in self._table

    def __iter__(self):
        return iter(self._table.values())

    def get(self, qualified_name: str, kinds: Iterable[DeclKind] | None = None
            ) -> Declaration | None:
        decl = self._table.get(qualified_name)
        if decl is None or (kinds is not None and decl.kind not in kinds):
            return None
        return decl

    def candidates(self, name: str, kinds: Iterable[DeclKind]
                   ) -> list[Declaration]:
        """Declarations with this simple name and an accepted kind, in order."""
        kinds = frozenset(kinds)
        return [d for d in self._names.get(name, ()) if d.kind in kinds]


def build_symbol_table(project: str, parsed_files: Iterable[ParsedFile]
                       ) -> tuple[SymbolTable, list[Diagnostic]]:
    """Aggregate declarations from every parsed file of a project.

    First seen by (file path, position) wins. Every later declaration with
    the same qualified name yields a DuplicateDeclaration diagnostic and is
    left out of the table.
    """
    all_decls = [d for f in parsed_files for d in f.declarations]
    all_decls.sort(key=lambda d: d.sort_key)

    kept: dict[str, Declaration] = {}
    diagnostics: list[Diagnostic] = []
    for decl in all_decls:
        qname = decl.qualified_name
        first = kept.get(qname)
        if first is None:
            kept[qname] = decl
            continue
        diagnostics.append(Diagnostic(
            kind=DiagnosticKind.DUPLICATE_DECLARATION,
            message=(f"{decl.kind.value} {qname} already declared at "
                     f"{first.file_path}:{first.span.start_line}"),
            file_path=decl.file_path,
            span=decl.span,
            name=qname,
        ))

    return SymbolTable(project, kept.values()), diagnostics
