"""Run the indexing pipeline for one project (or several).

Phases, per project:

1. Parse every file in parallel (no shared state).
2. Barrier: build the project's symbol table.
3. Resolve each file's references in parallel against the frozen table.
4. Merge the change-set fragments.
5. Hand the change-set to the single-writer emitter.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from .analysis import (
    Diagnostic, DiagnosticKind, DiagnosticLog, ParsedFile, Resolver,
    RustParser, Span, build_symbol_table,
)
from .analysis.syntax import count_lines
from .config import Settings
from .discovery import discover_files, relative_path
from .errors import ParseError
from .graph import ChangeSet, GraphModelBuilder, GraphStore, UpsertEmitter, get_store


@dataclass
class FileOutcome:
    path: str
    loc: int
    parsed: ParsedFile | None = None
    error: ParseError | None = None


@dataclass
class IndexReport:
    project: str
    files: int = 0
    parsed: int = 0
    failed: int = 0
    declarations: int = 0
    nodes: int = 0
    edges: int = 0
    batches: int = 0
    nodes_created: int | None = None
    edges_created: int | None = None
    retries: int = 0
    pruned_nodes: int = 0
    pruned_edges: int = 0
    elapsed: float = 0.0
    diagnostics: DiagnosticLog = field(default_factory=DiagnosticLog, repr=False)
    changes: ChangeSet | None = field(default=None, repr=False)

    def diagnostic_counts(self) -> dict[str, int]:
        return self.diagnostics.counts()

    def summary_lines(self) -> list[str]:
        lines = [
            f"Project {self.project}: {self.files} files "
            f"({self.parsed} parsed, {self.failed} failed), "
            f"{self.declarations} declarations",
            f"  Change-set: {self.nodes} nodes, {self.edges} edges "
            f"in {self.batches} batch(es)",
        ]
        if self.nodes_created is not None and self.edges_created is not None:
            lines.append(f"  Created: {self.nodes_created} nodes, "
                         f"{self.edges_created} edges")
        if self.pruned_nodes or self.pruned_edges:
            lines.append(f"  Pruned: {self.pruned_nodes} nodes, "
                         f"{self.pruned_edges} edges")
        counts = ", ".join(f"{k}={v}" for k, v in self.diagnostic_counts().items())
        lines.append(f"  Diagnostics: {counts}")
        return lines


class ProjectIndexer:
    """Parses, resolves and models one project. Holds no store state.

    Each instance owns its own symbol table for the duration of
    :meth:`analyse`, so several projects can be analysed at once.
    """

    def __init__(self, root: str | Path, project: str | None = None, *,
                 parser: RustParser | None = None, workers: int = 4,
                 extensions: tuple[str, ...] = (".rs",), verbose: bool = False):
        self.root = Path(root).resolve()
        self.project = project or self.root.name
        self.parser = parser or RustParser()
        self.workers = workers
        self.extensions = extensions
        self.verbose = verbose

    def _parse_one(self, path: Path) -> FileOutcome:
        rel = relative_path(path, self.root)
        if self.verbose:
            print(f"  Processing: {rel}")
        try:
            source = path.read_bytes()
        except OSError as exc:
            return FileOutcome(rel, 0, error=ParseError(rel, f"cannot read: {exc}"))
        loc = count_lines(source)
        try:
            return FileOutcome(rel, loc, parsed=self.parser.parse_source(rel, source))
        except ParseError as exc:
            return FileOutcome(rel, loc, error=exc)

    def analyse(self, report: IndexReport | None = None) -> tuple[ChangeSet, IndexReport]:
        report = report or IndexReport(project=self.project)
        diagnostics = report.diagnostics

        paths = discover_files(self.root, self.extensions)
        if self.verbose:
            print(f"  Found {len(paths)} rust files in {self.root}")

        # Phase 1: parse (parallel)
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            outcomes = list(pool.map(self._parse_one, paths))

        parsed = []
        for outcome in outcomes:
            if outcome.error is not None:
                err = outcome.error
                diagnostics.add(Diagnostic(
                    kind=DiagnosticKind.PARSE_ERROR,
                    message=err.message,
                    file_path=outcome.path,
                    span=Span(err.line, 0, err.line, 0) if err.line else None,
                ))
                if self.verbose:
                    print(f"  Skipping {err}")
            else:
                parsed.append(outcome.parsed)

        # Phase 2: symbol table (barrier)
        table, duplicates = build_symbol_table(self.project, parsed)
        diagnostics.extend(duplicates)

        # Phase 3: resolve (parallel, read-only table)
        resolver = Resolver(table)
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            resolved = list(pool.map(
                lambda pf: resolver.resolve_all(pf.references), parsed,
            ))
        for _, diags in resolved:
            diagnostics.extend(diags)

        # Phase 4: model
        builder = GraphModelBuilder(self.project)
        changes = builder.build(
            ((o.path, o.loc) for o in outcomes),
            table,
            (facts for facts, _ in resolved),
        )

        summary = changes.summary()
        report.files = len(outcomes)
        report.parsed = len(parsed)
        report.failed = len(outcomes) - len(parsed)
        report.declarations = len(table)
        report.nodes = sum(summary["nodes"].values())
        report.edges = sum(summary["edges"].values())
        report.changes = changes
        if self.verbose:
            print(f"  Parsed: {report.parsed}/{report.files} files, "
                  f"{report.declarations} declarations, "
                  f"{report.nodes} nodes, {report.edges} edges")
        return changes, report


def index_project(root: str | Path, store: GraphStore, *,
                  project: str | None = None,
                  emitter: UpsertEmitter | None = None,
                  batch_size: int = 500, max_attempts: int = 3,
                  backoff: float = 0.5, workers: int = 4,
                  prune: bool = False, verbose: bool = False,
                  extensions: tuple[str, ...] = (".rs",),
                  parser: RustParser | None = None,
                  connect: bool = True) -> IndexReport:
    """Index one project into ``store``.

    Connects first, so an unreachable store fails before any work is
    written. Without a shared ``emitter`` a private one is started and
    stopped around the write.

    Raises:
        StoreConnectionError: the store could not be reached.
        BatchWriteError: a batch failed after all retries.
        PruneError: the prune failed after all retries.
        IndexingCancelled: the shared emitter was cancelled.
    """
    t0 = time.time()
    indexer = ProjectIndexer(root, project, parser=parser, workers=workers,
                             extensions=extensions, verbose=verbose)
    if verbose:
        print(f"Indexing project: {indexer.project}")

    if connect:
        store.connect()
    changes, report = indexer.analyse()

    if emitter is None:
        with UpsertEmitter(store, batch_size=batch_size, max_attempts=max_attempts,
                           backoff=backoff, verbose=verbose) as own:
            _emit(own, changes, report, prune)
    else:
        _emit(emitter, changes, report, prune)

    report.elapsed = time.time() - t0
    if verbose:
        print(f"Indexing complete for project: {report.project} "
              f"({report.elapsed:.2f}s)")
    return report


def _emit(emitter: UpsertEmitter, changes: ChangeSet, report: IndexReport,
          prune: bool) -> None:
    # a failed write raises here, so an aborted run never prunes
    emitted = emitter.submit(changes).result()
    report.batches = emitted.batches_written
    report.nodes_created = emitted.nodes_created
    report.edges_created = emitted.edges_created
    report.retries = emitted.retries

    if prune:
        report.pruned_nodes, report.pruned_edges = emitter.submit_prune(
            report.project, changes.node_uids(), changes.edge_uids(),
        ).result()


def index_projects(roots: list[tuple[str | Path, str | None]], store: GraphStore, *,
                   batch_size: int = 500, max_attempts: int = 3,
                   backoff: float = 0.5, workers: int = 4, prune: bool = False,
                   verbose: bool = False) -> list[IndexReport]:
    """Index several projects concurrently through one shared writer.

    ``roots`` holds ``(path, project name or None)`` pairs. Reports come
    back in input order. The first fatal error is raised after every
    project has finished or failed.
    """
    store.connect()
    with UpsertEmitter(store, batch_size=batch_size, max_attempts=max_attempts,
                       backoff=backoff, verbose=verbose) as emitter:
        with ThreadPoolExecutor(max_workers=max(1, len(roots))) as pool:
            futures = [
                pool.submit(index_project, root, store, project=name,
                            emitter=emitter, workers=workers, prune=prune,
                            verbose=verbose, connect=False)
                for root, name in roots
            ]
            outcomes = [(f.exception(), f) for f in futures]
    for exc, _ in outcomes:
        if exc is not None:
            raise exc
    return [f.result() for _, f in outcomes]


def run(settings: Settings, store: GraphStore | None = None) -> IndexReport:
    """Index ``settings.path`` with the configured store; always closes it."""
    store = store or get_store(settings.store, **settings.store_options())
    try:
        return index_project(
            settings.path, store,
            project=settings.project_name,
            batch_size=settings.batch_size,
            max_attempts=settings.max_attempts,
            backoff=settings.backoff,
            workers=settings.workers,
            prune=settings.prune,
            verbose=settings.verbose,
            extensions=settings.extensions,
        )
    finally:
        store.close()
