"""Exception types raised by the indexer.

Recoverable problems (a file that does not parse, a name that does not
resolve) are recorded as diagnostics and never raised past the
orchestrator. The exceptions below that reach the caller are fatal for
the run.
"""

from __future__ import annotations


class CrategraphError(Exception):
    """Base class for all indexer errors."""


class ParseError(CrategraphError):
    """A single source file could not be parsed.

    Scoped to one file: the orchestrator records it and moves on.
    """

    def __init__(self, path: str, message: str, line: int | None = None):
        self.path = path
        self.message = message
        self.line = line
        where = f"{path}:{line}" if line is not None else path
        super().__init__(f"{where}: {message}")


class ConfigError(CrategraphError):
    """Missing or invalid configuration."""


class StoreConnectionError(CrategraphError):
    """The graph store could not be reached. Raised before any write."""


class BatchWriteError(CrategraphError):
    """A batch kept failing after every retry attempt.

    Batches with a lower index were committed and stay committed.
    """

    def __init__(self, batch_index: int, attempts: int, cause: BaseException):
        self.batch_index = batch_index
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"batch {batch_index} failed after {attempts} attempt(s): {cause}"
        )


class IndexingCancelled(CrategraphError):
    """Raised to producers that submit work after the run was cancelled."""


class PruneError(CrategraphError):
    """Deleting a project's stale nodes and edges failed after every retry.

    Every batch of the run was committed before the prune started.
    """

    def __init__(self, project: str, attempts: int, cause: BaseException):
        self.project = project
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"prune of {project} failed after {attempts} attempt(s): {cause}"
        )
