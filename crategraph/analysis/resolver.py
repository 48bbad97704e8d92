"""Best-effort resolution of raw references against the symbol table.

Resolution is lexical. It knows about ``crate::``, ``self::``,
``super::`` and ``Self::`` prefixes and about receiver hints, but not
about imports, generics, trait bounds or shadowing.
"""

from __future__ import annotations

from collections.abc import Iterable

from .diagnostics import Diagnostic, DiagnosticKind
from .models import Declaration, DeclKind, Reference, RefKind, ResolvedReference
from .symbols import SymbolTable

# A call to a tuple struct is an instantiation
CALL_KINDS = (DeclKind.FUNCTION, DeclKind.STRUCT)
INSTANTIATION_KINDS = (DeclKind.STRUCT,)
IMPL_SELF_KINDS = (DeclKind.STRUCT,)
IMPL_TRAIT_KINDS = (DeclKind.TRAIT,)


def parent_module(module_path: str) -> str | None:
    if "::" not in module_path:
        return None
    return module_path.rsplit("::", 1)[0]


def scoped_name(path: tuple[str, ...], module_path: str,
                owner: str | None) -> str | None:
    """Qualified name a path denotes when read from inside ``module_path``.

    Returns None when the path cannot be anchored (``Self`` outside an
    impl, ``super`` above the crate root).
    """
    segments = list(path)
    head = segments[0]
    if head == "crate":
        base, rest = "crate", segments[1:]
    elif head == "self":
        base, rest = module_path, segments[1:]
    elif head == "super":
        base, rest = module_path, segments
        while rest and rest[0] == "super":
            base = parent_module(base)
            if base is None:
                return None
            rest = rest[1:]
    elif head == "Self":
        if not owner:
            return None
        base, rest = module_path, [owner, *segments[1:]]
    else:
        base, rest = module_path, segments
    if not rest:
        return None
    return "::".join([base, *rest])


def _qualifier(path: tuple[str, ...], owner: str | None) -> str | None:
    """Owner-type hint from a path like ``Server::start`` or ``Self::start``."""
    if len(path) < 2:
        return None
    hint = path[-2]
    if hint == "Self":
        return owner
    if hint in ("crate", "self", "super"):
        return None
    return hint


def _qualified_by(decl: Declaration, qualifier: str) -> bool:
    """True when ``qualifier::name`` can denote ``decl``: its owner type or module."""
    if decl.owner is not None:
        return decl.owner == qualifier
    return decl.module_path.rsplit("::", 1)[-1] == qualifier


class Resolver:
    """Resolves one project's references. Read-only; safe across threads."""

    def __init__(self, table: SymbolTable):
        self.table = table

    def resolve_path(self, path: tuple[str, ...], kinds: Iterable[DeclKind],
                     module_path: str, owner: str | None = None,
                     method_call: bool = False
                     ) -> tuple[Declaration | None, list[Declaration]]:
        """Resolve a name path.

        Returns ``(declaration, fallback_candidates)``. The candidate list
        is empty when the exact scoped match succeeded.
        """
        kinds = tuple(kinds)
        if not method_call:
            qname = scoped_name(path, module_path, owner)
            if qname is not None:
                exact = self.table.get(qname, kinds)
                if exact is not None:
                    return exact, []

        simple = path[-1]
        if simple == "Self":
            if not owner:
                return None, []
            simple = owner
        candidates = self.table.candidates(simple, kinds)
        if method_call:
            candidates = [d for d in candidates if d.is_method]
        hint = _qualifier(path, owner)
        if hint is not None:
            preferred = [d for d in candidates if _qualified_by(d, hint)]
            if preferred or path[-2] != "Self":
                # an unmatched qualifier (enum variant, foreign type) stays unresolved
                candidates = preferred
        if not candidates:
            return None, []
        return candidates[0], candidates

    def resolve(self, ref: Reference
                ) -> tuple[ResolvedReference | None, list[Diagnostic]]:
        if ref.kind == RefKind.IMPL_BLOCK:
            return self._resolve_impl(ref)

        source = self.table.get(ref.enclosing) if ref.enclosing else None
        if source is None or not _encloses(source, ref):
            # the enclosing function lost a duplicate-name conflict
            return None, []

        kinds = CALL_KINDS if ref.kind == RefKind.CALL else INSTANTIATION_KINDS
        if ref.is_method_call:
            kinds = (DeclKind.FUNCTION,)
        path = ref.paths[0]
        target, candidates = self.resolve_path(
            path, kinds, ref.module_path, ref.owner, ref.is_method_call,
        )
        diagnostics = []
        if target is None:
            diagnostics.append(_unresolved(ref, path))
            return None, diagnostics
        if len(candidates) > 1:
            diagnostics.append(_ambiguous(ref, path, target, candidates))

        kind = ref.kind
        if kind == RefKind.CALL and target.kind == DeclKind.STRUCT:
            kind = RefKind.INSTANTIATION
        return ResolvedReference(
            kind=kind, source=source, target=target,
            best_effort=len(candidates) > 1,
        ), diagnostics

    def _resolve_impl(self, ref: Reference
                      ) -> tuple[ResolvedReference | None, list[Diagnostic]]:
        self_path, trait_path = ref.paths
        diagnostics = []
        sides = []
        for path, kinds in ((self_path, IMPL_SELF_KINDS),
                            (trait_path, IMPL_TRAIT_KINDS)):
            decl, candidates = self.resolve_path(path, kinds, ref.module_path)
            if decl is None:
                diagnostics.append(_unresolved(ref, path))
            elif len(candidates) > 1:
                diagnostics.append(_ambiguous(ref, path, decl, candidates))
            sides.append((decl, candidates))

        (struct, s_cands), (trait, t_cands) = sides
        if struct is None or trait is None:
            return None, diagnostics
        return ResolvedReference(
            kind=RefKind.IMPL_BLOCK, source=struct, target=trait,
            best_effort=len(s_cands) > 1 or len(t_cands) > 1,
        ), diagnostics

    def resolve_all(self, refs: Iterable[Reference]
                    ) -> tuple[list[ResolvedReference], list[Diagnostic]]:
        resolved: list[ResolvedReference] = []
        diagnostics: list[Diagnostic] = []
        for ref in refs:
            fact, diags = self.resolve(ref)
            if fact is not None:
                resolved.append(fact)
            diagnostics.extend(diags)
        return resolved, diagnostics


def _encloses(decl: Declaration, ref: Reference) -> bool:
    if decl.file_path != ref.file_path:
        return False
    start = (decl.span.start_line, decl.span.start_col)
    end = (decl.span.end_line, decl.span.end_col)
    return start <= ref.span.position <= end


def _unresolved(ref: Reference, path: tuple[str, ...]) -> Diagnostic:
    name = "::".join(path)
    return Diagnostic(
        kind=DiagnosticKind.UNRESOLVED_REFERENCE,
        message=f"{ref.kind.value} `{name}` matches no declaration",
        file_path=ref.file_path,
        span=ref.span,
        name=name,
    )


def _ambiguous(ref: Reference, path: tuple[str, ...], picked: Declaration,
               candidates: list[Declaration]) -> Diagnostic:
    name = "::".join(path)
    return Diagnostic(
        kind=DiagnosticKind.AMBIGUOUS_REFERENCE,
        message=(f"{ref.kind.value} `{name}` matches {len(candidates)} "
                 f"declarations; using {picked.qualified_name}"),
        file_path=ref.file_path,
        span=ref.span,
        name=name,
    )
