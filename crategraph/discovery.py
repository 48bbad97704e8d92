"""Find the source files of a project."""

from __future__ import annotations

from pathlib import Path

SKIP_DIRS: frozenset[str] = frozenset({
    "target", ".git", ".hg", ".svn", "node_modules", ".cargo",
    ".idea", ".vscode", "__pycache__",
})


def discover_files(root: Path, extensions: tuple[str, ...] = (".rs",)) -> list[Path]:
    """Return matching files under ``root``, sorted by relative path."""
    root = Path(root)
    found = []
    for ext in extensions:
        for path in root.rglob(f"*{ext}"):
            rel_parts = path.relative_to(root).parts
            if any(part in SKIP_DIRS for part in rel_parts[:-1]):
                continue
            if path.is_file():
                found.append(path)
    return sorted(set(found), key=lambda p: p.relative_to(root).as_posix())


def relative_path(path: Path, root: Path) -> str:
    """``/``-separated path of ``path`` relative to ``root``."""
    return Path(path).relative_to(root).as_posix()
