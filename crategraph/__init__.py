"""crategraph - index Rust crates into a property graph of declarations and references."""

__version__ = "0.1.0"

from .config import Settings, settings_from_args  # noqa: E402
from .errors import (  # noqa: E402
    BatchWriteError,
    ConfigError,
    CrategraphError,
    IndexingCancelled,
    ParseError,
    PruneError,
    StoreConnectionError,
)
from .orchestrator import IndexReport, index_project, index_projects, run  # noqa: E402

__all__ = [
    "__version__",
    "Settings",
    "settings_from_args",
    "BatchWriteError",
    "ConfigError",
    "CrategraphError",
    "IndexingCancelled",
    "ParseError",
    "PruneError",
    "StoreConnectionError",
    "IndexReport",
    "index_project",
    "index_projects",
    "run",
]
