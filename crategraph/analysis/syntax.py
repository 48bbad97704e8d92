"""Shared tree-sitter helpers. All traversals are iterative."""

from __future__ import annotations

from collections.abc import Iterator

from .models import Span


def node_text(node, source: bytes) -> str:
    """Extract the text of a tree-sitter node."""
    return source[node.start_byte:node.end_byte].decode("utf8")


def count_lines(source: bytes) -> int:
    """Count lines of code in source bytes."""
    return source.count(b"\n") + (1 if source and not source.endswith(b"\n") else 0)


def node_span(node) -> Span:
    return Span(
        start_line=node.start_point[0] + 1,
        start_col=node.start_point[1],
        end_line=node.end_point[0] + 1,
        end_col=node.end_point[1],
    )


def walk_preorder(root, skip=None) -> Iterator:
    """Yield ``root`` and its descendants in source order.

    ``skip`` is an optional predicate; a node it accepts is yielded but
    its children are not visited.
    """
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        if skip is not None and skip(node):
            continue
        # reversed so the leftmost child is popped first
        stack.extend(reversed(node.children))


def first_syntax_error(root):
    """Return the first ERROR or MISSING node under ``root``, or None."""
    if not root.has_error:
        return None
    for node in walk_preorder(root, skip=lambda n: not n.has_error):
        if node.type == "ERROR" or node.is_missing:
            return node
    return root


def strip_generics(text: str) -> str:
    """Remove every balanced ``<...>`` group (turbofish and type args)."""
    out = []
    depth = 0
    for ch in text:
        if ch == "<":
            depth += 1
        elif ch == ">" and depth:
            depth -= 1
        elif depth == 0:
            out.append(ch)
    return "".join(out)


def path_segments(text: str) -> tuple[str, ...]:
    """Split a Rust path such as ``crate::a::Foo::<T>::new`` into segments."""
    cleaned = "".join(strip_generics(text).split())
    return tuple(seg for seg in cleaned.split("::") if seg)


def get_visibility(node) -> str:
    for child in node.children:
        if child.type == "visibility_modifier":
            text = child.text.decode("utf8")
            if "crate" in text:
                return "pub(crate)"
            return "pub"
    return "private"


def get_signature(node, source: bytes) -> str:
    """Function header text up to (not including) the body."""
    parts = []
    for child in node.children:
        if child.type == "block" or child.type == ";":
            break
        parts.append(node_text(child, source))
    return " ".join(parts)


def is_async_fn(node, source: bytes) -> bool:
    for child in node.children:
        if child.type == "function_modifiers":
            return "async" in node_text(child, source).split()
        if not child.is_named and node_text(child, source) == "async":
            return True
        if child.type == "identifier" or node_text(child, source) == "fn":
            break
    return False
