"""Rust source parser using tree-sitter-rust.

Turns one file's text into declaration and reference records. The parser
never looks at any other file; cross-file work starts at the symbol table.
"""

from __future__ import annotations

import threading

import tree_sitter_rust as ts_rust
from tree_sitter import Language, Parser

from ..errors import ParseError
from .models import Declaration, DeclKind, ParsedFile, Reference, RefKind
from .syntax import (
    count_lines, first_syntax_error, get_signature, get_visibility,
    is_async_fn, node_span, node_text, path_segments, walk_preorder,
)

RUST_LANGUAGE = Language(ts_rust.language())

RUST_NOISE_NAMES: frozenset[str] = frozenset({
    # Iterator / collection methods
    "len", "is_empty", "contains", "get", "insert", "remove", "push", "pop",
    "clear", "extend", "iter", "next", "collect", "map", "filter",
    "with_capacity", "reserve",
    # Clone / conversion traits
    "clone", "to_string", "to_owned", "from", "into", "as_ref", "as_mut",
    # Common trait methods
    "new", "default", "fmt", "eq", "ne", "cmp", "partial_cmp", "hash",
    "deref", "drop",
    # Option/Result methods
    "unwrap", "expect", "ok", "err", "map_err", "unwrap_or",
    "unwrap_or_else", "unwrap_or_default",
    # Display / Debug
    "write", "writeln",
    # Set/Get patterns
    "set",
})

# Paths starting with these never name project items
RUST_PRELUDE_NAMES: frozenset[str] = frozenset({
    "Some", "None", "Ok", "Err", "Box", "Vec", "String", "Option", "Result",
    "Rc", "Arc", "Cell", "RefCell", "Mutex", "RwLock", "HashMap", "HashSet",
    "BTreeMap", "BTreeSet", "VecDeque", "std", "core", "alloc",
})

# Item kinds that open a new scope inside a function body
_NESTED_ITEMS = frozenset({"function_item", "impl_item", "trait_item", "mod_item"})


def file_to_module_path(rel_path: str) -> str:
    """Map a crate-relative file path to its module path.

    ``src/lib.rs`` -> ``crate``, ``src/net/mod.rs`` -> ``crate::net``,
    ``src/net/tcp.rs`` -> ``crate::net::tcp``.
    """
    parts = [p for p in rel_path.replace("\\", "/").split("/") if p]
    if len(parts) > 1 and parts[0] == "src":
        parts = parts[1:]
    if parts:
        last = parts[-1]
        if last.endswith(".rs"):
            last = last[:-3]
        parts[-1] = last
        if last in ("mod", "lib", "main"):
            parts = parts[:-1]
    if not parts:
        return "crate"
    return "crate::" + "::".join(parts)


class RustParser:
    """Extracts declarations and references from Rust source text.

    Safe to share between threads: each thread gets its own tree-sitter
    parser.
    """

    noise_names = RUST_NOISE_NAMES

    def __init__(self):
        self._local = threading.local()

    @property
    def _parser(self) -> Parser:
        parser = getattr(self._local, "parser", None)
        if parser is None:
            parser = Parser(RUST_LANGUAGE)
            self._local.parser = parser
        return parser

    # ── Public API ──────────────────────────────────────────────────────

    def parse_source(self, rel_path: str, text: str | bytes) -> ParsedFile:
        """Parse one file. Raises ParseError on malformed syntax."""
        if isinstance(text, bytes):
            try:
                text.decode("utf8")
            except UnicodeDecodeError as exc:
                raise ParseError(rel_path, f"not valid UTF-8: {exc}") from None
            source = text
        else:
            source = text.encode("utf8")

        tree = self._parser.parse(source)
        root = tree.root_node
        bad = first_syntax_error(root)
        if bad is not None:
            what = "missing " + bad.type if bad.is_missing else "unexpected syntax"
            raise ParseError(rel_path, what, line=bad.start_point[0] + 1)

        module_path = file_to_module_path(rel_path)
        parsed = ParsedFile(path=rel_path, module_path=module_path,
                            loc=count_lines(source))
        self._parse_items(root, source, module_path, parsed)
        parsed.declarations.sort(key=lambda d: d.span.position)
        parsed.references.sort(key=lambda r: r.span.position)
        return parsed

    # ── Items ───────────────────────────────────────────────────────────

    def _parse_items(self, root, source: bytes, root_module: str,
                     parsed: ParsedFile) -> None:
        """Walk item-level nodes, descending into inline ``mod`` blocks."""
        worklist = [(root, root_module)]
        while worklist:
            container, module_path = worklist.pop()
            for child in container.children:
                if child.type == "function_item":
                    self._add_function(child, source, module_path, parsed)

                elif child.type == "struct_item":
                    name = child.child_by_field_name("name")
                    if name is not None:
                        parsed.declarations.append(Declaration(
                            kind=DeclKind.STRUCT,
                            name=node_text(name, source),
                            module_path=module_path,
                            file_path=parsed.path,
                            span=node_span(child),
                            visibility=get_visibility(child),
                        ))

                elif child.type == "trait_item":
                    self._add_trait(child, source, module_path, parsed)

                elif child.type == "impl_item":
                    self._add_impl(child, source, module_path, parsed)

                elif child.type == "mod_item":
                    name = child.child_by_field_name("name")
                    body = child.child_by_field_name("body")
                    if name is not None and body is not None:
                        inner = f"{module_path}::{node_text(name, source)}"
                        worklist.append((body, inner))

    def _add_function(self, node, source: bytes, module_path: str,
                      parsed: ParsedFile, owner: str | None = None) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        decl = Declaration(
            kind=DeclKind.FUNCTION,
            name=node_text(name_node, source),
            module_path=module_path,
            file_path=parsed.path,
            span=node_span(node),
            owner=owner,
            visibility=get_visibility(node),
            signature=get_signature(node, source),
            is_async=is_async_fn(node, source),
        )
        parsed.declarations.append(decl)
        body = node.child_by_field_name("body")
        if body is not None:
            parsed.references.extend(
                self._extract_references(body, source, decl, parsed.path)
            )

    def _add_trait(self, node, source: bytes, module_path: str,
                   parsed: ParsedFile) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        name = node_text(name_node, source)
        parsed.declarations.append(Declaration(
            kind=DeclKind.TRAIT,
            name=name,
            module_path=module_path,
            file_path=parsed.path,
            span=node_span(node),
            visibility=get_visibility(node),
        ))
        body = node.child_by_field_name("body")
        if body is None:
            return
        for item in body.children:
            if item.type in ("function_item", "function_signature_item"):
                self._add_function(item, source, module_path, parsed, owner=name)

    def _add_impl(self, node, source: bytes, module_path: str,
                  parsed: ParsedFile) -> None:
        type_node = node.child_by_field_name("type")
        if type_node is None:
            return
        self_path = self._type_path(type_node, source)
        trait_node = node.child_by_field_name("trait")
        if self_path and trait_node is not None:
            trait_path = self._type_path(trait_node, source)
            if trait_path:
                parsed.references.append(Reference(
                    kind=RefKind.IMPL_BLOCK,
                    paths=(self_path, trait_path),
                    file_path=parsed.path,
                    module_path=module_path,
                    span=node_span(node),
                ))

        if self_path:
            owner = self_path[-1]
        else:
            # tuples, slices, dyn Trait: keep the methods under the type's text
            owner = "".join(node_text(type_node, source).split())
        body = node.child_by_field_name("body")
        if body is None:
            return
        for item in body.children:
            if item.type == "function_item":
                self._add_function(item, source, module_path, parsed, owner=owner)

    def _type_path(self, node, source: bytes) -> tuple[str, ...] | None:
        """Name path of a type node; None for tuples, slices, trait objects.

        Handles type_identifier, scoped_type_identifier
        (``crate::shapes::Foo``) and the wrappers around them: generic_type
        (``Foo<T>``), reference_type (``&'a mut Foo``) and pointer_type
        (``*const Foo``).
        """
        while node is not None and node.type in (
                "generic_type", "reference_type", "pointer_type"):
            node = node.child_by_field_name("type")
        if node is None:
            return None
        if node.type in ("type_identifier", "scoped_type_identifier"):
            return path_segments(node_text(node, source)) or None
        return None

    # ── References inside bodies ────────────────────────────────────────

    def _extract_references(self, body, source: bytes, enclosing: Declaration,
                            file_path: str) -> list[Reference]:
        """Collect calls and struct literals in a function body.

        Receiver hints are syntactic only. ``self.inner.flush()`` becomes
        a method call on ``flush`` with no owner, because finding the type
        of ``inner`` would need type inference.
        """
        refs: list[Reference] = []
        owner = enclosing.owner

        def add(kind: RefKind, path: tuple[str, ...], node,
                is_method_call: bool = False) -> None:
            refs.append(Reference(
                kind=kind,
                paths=(path,),
                file_path=file_path,
                module_path=enclosing.module_path,
                span=node_span(node),
                enclosing=enclosing.qualified_name,
                owner=owner,
                is_method_call=is_method_call,
            ))

        skip_nested = lambda n: n is not body and n.type in _NESTED_ITEMS  # noqa: E731
        for node in walk_preorder(body, skip=skip_nested):
            if node.type == "call_expression":
                func = node.child_by_field_name("function")
                if func is not None and func.type == "generic_function":
                    func = func.child_by_field_name("function")
                if func is None:
                    continue
                if func.type in ("identifier", "scoped_identifier"):
                    text = node_text(func, source)
                    if text.startswith("<"):
                        continue  # <T as Trait>::method
                    path = path_segments(text)
                    if path and path[0] not in RUST_PRELUDE_NAMES:
                        add(RefKind.CALL, path, node)
                elif func.type == "field_expression":
                    field = func.child_by_field_name("field")
                    value = func.child_by_field_name("value")
                    if field is None or field.type != "field_identifier":
                        continue
                    method = node_text(field, source)
                    if value is not None and node_text(value, source) == "self" and owner:
                        add(RefKind.CALL, ("Self", method), node)
                    elif method not in self.noise_names:
                        add(RefKind.CALL, (method,), node, is_method_call=True)

            elif node.type == "struct_expression":
                name = node.child_by_field_name("name")
                if name is None:
                    continue
                path = path_segments(node_text(name, source))
                if path and path[0] not in RUST_PRELUDE_NAMES:
                    add(RefKind.INSTANTIATION, path, node)

        return refs
