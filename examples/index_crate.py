#!/usr/bin/env python3
"""
Index a Rust crate into an embedded KGLite graph and run a few queries.

Usage:
    python index_crate.py path/to/crate [graph.kgl]

Dependencies:
    pip install crategraph
"""

import sys
from pathlib import Path

import kglite

from crategraph import index_project
from crategraph.graph.stores.kglite_store import KGLiteStore


def run_demo_queries(graph: kglite.KnowledgeGraph):
    print("\n=== Most-Called Functions (top 10) ===")
    result = graph.cypher("""
        MATCH (caller:Function)-[:CALLS]->(f:Function)
        RETURN f.qualified_name AS function, count(caller) AS callers
        ORDER BY callers DESC
        LIMIT 10
    """)
    for row in result:
        print(f"  {row['function']}: called by {row['callers']} functions")

    print("\n=== Largest Files by Declarations ===")
    result = graph.cypher("""
        MATCH (f:File)-[:CONTAINS]->(item)
        RETURN f.path AS file, f.loc AS lines, count(item) AS declarations
        ORDER BY declarations DESC
        LIMIT 10
    """)
    for row in result:
        print(f"  {row['file']}: {row['declarations']} items, {row['lines']} lines")

    print("\n=== Trait Implementations ===")
    result = graph.cypher("""
        MATCH (s:Struct)-[:IMPLEMENTS]->(t:Trait)
        RETURN t.name AS trait, collect(s.name) AS structs
        ORDER BY trait
    """)
    for row in result:
        print(f"  {row['trait']}: {', '.join(row['structs'])}")

    print("\n=== Struct Constructors ===")
    result = graph.cypher("""
        MATCH (f:Function)-[:INSTANTIATES]->(s:Struct)
        RETURN s.name AS struct, count(f) AS sites
        ORDER BY sites DESC
        LIMIT 10
    """)
    for row in result:
        print(f"  {row['struct']}: built in {row['sites']} functions")


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    root = Path(sys.argv[1]).resolve()
    save_to = sys.argv[2] if len(sys.argv) > 2 else None

    if not root.is_dir():
        print(f"Error: {root} is not a directory")
        sys.exit(1)

    store = KGLiteStore(save_to=save_to)
    report = index_project(root, store, verbose=True)
    for line in report.summary_lines():
        print(line)

    run_demo_queries(store.graph)
    store.close()
    if save_to:
        print(f"\nSaved graph to {save_to}")


if __name__ == "__main__":
    main()
