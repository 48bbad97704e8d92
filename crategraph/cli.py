"""Command-line entry point.

Usage::

    crategraph index --path ./my-crate --uri bolt://localhost:7687 \\
        --user neo4j --password secret
    crategraph index --path ./my-crate --store kglite --save-to graph.kgl
    crategraph index --path ./my-crate --dry-run -v
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from . import __version__
from .analysis import DiagnosticKind
from .config import load_env_file, settings_from_args
from .errors import CrategraphError
from .graph.stores import STORE_NAMES

# Printed even without -v; the others only appear as counts
ALWAYS_SHOWN = frozenset({DiagnosticKind.PARSE_ERROR, DiagnosticKind.DUPLICATE_DECLARATION})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crategraph",
        description="Index Rust sources into a property graph",
    )
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    index = sub.add_parser("index", help="Index one project directory")
    index.add_argument("--path", required=True,
                       help="Project root directory to index")
    index.add_argument("--project", default=None,
                       help="Project name (default: directory name)")
    index.add_argument("--uri", default=None, help="Neo4j URI (env NEO4J_URI)")
    index.add_argument("--user", default=None, help="Neo4j user (env NEO4J_USER)")
    index.add_argument("--password", default=None,
                       help="Neo4j password (env NEO4J_PASS)")
    index.add_argument("--store", choices=STORE_NAMES, default=None,
                       help="Graph store backend (default: neo4j)")
    index.add_argument("--save-to", default=None,
                       help="kglite store: save the graph to this .kgl file")
    index.add_argument("--batch-size", type=int, default=None,
                       help="Upserts per batch (env CRATEGRAPH_BATCH_SIZE, default 500)")
    index.add_argument("--max-attempts", type=int, default=None,
                       help="Write attempts per batch (default 3)")
    index.add_argument("--workers", type=int, default=None,
                       help="Parser threads (env CRATEGRAPH_WORKERS)")
    index.add_argument("--prune", action="store_true",
                       help="Delete this project's nodes and edges not seen in this run")
    index.add_argument("--dry-run", action="store_true",
                       help="Analyse only; write to an in-memory store")
    index.add_argument("--diagnostics-csv", default=None,
                       help="Write all diagnostics to this CSV file")
    index.add_argument("-v", "--verbose", action="store_true",
                       help="Print progress")
    return parser


def cmd_index(args: argparse.Namespace) -> int:
    from .orchestrator import run

    settings = settings_from_args(args)
    if settings.store == "neo4j":
        print(f"Connecting to Neo4j at {settings.uri}")
    report = run(settings)

    for line in report.summary_lines():
        print(line)
    for diag in report.diagnostics:
        if settings.verbose or diag.kind in ALWAYS_SHOWN:
            print(f"  warning: {diag}", file=sys.stderr)

    if args.diagnostics_csv:
        out = Path(args.diagnostics_csv)
        report.diagnostics.to_df().to_csv(out, index=False)
        print(f"Diagnostics written to {out}")

    print(f"✅ Indexing complete for project: {report.project}")
    return 0


def main(argv: list[str] | None = None) -> int:
    load_env_file()
    args = build_parser().parse_args(argv)
    try:
        if args.command == "index":
            return cmd_index(args)
    except CrategraphError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 1


if __name__ == "__main__":
    sys.exit(main())
