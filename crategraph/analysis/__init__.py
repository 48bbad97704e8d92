"""Per-file parsing and project-wide resolution of Rust sources.

Usage::

    from crategraph.analysis import RustParser, build_symbol_table, Resolver

    parsed = RustParser().parse_source("src/lib.rs", text)
    table, duplicates = build_symbol_table("my-crate", [parsed])
    facts, diagnostics = Resolver(table).resolve_all(parsed.references)
"""

try:
    import tree_sitter  # noqa: F401
except ImportError:
    raise ImportError(
        "crategraph.analysis requires tree-sitter. "
        "Install with: pip install tree-sitter tree-sitter-rust"
    ) from None

from .diagnostics import Diagnostic, DiagnosticKind, DiagnosticLog
from .models import (
    Declaration, DeclKind, ParsedFile, Reference, RefKind,
    ResolvedReference, Span,
)
from .parser import RustParser, file_to_module_path
from .resolver import Resolver
from .symbols import SymbolTable, build_symbol_table

__all__ = [
    "Diagnostic", "DiagnosticKind", "DiagnosticLog",
    "Declaration", "DeclKind", "ParsedFile", "Reference", "RefKind",
    "ResolvedReference", "Span",
    "RustParser", "file_to_module_path",
    "Resolver",
    "SymbolTable", "build_symbol_table",
]
