"""Single-writer emitter: turns change-sets into batched store writes.

Any number of producers call :meth:`UpsertEmitter.submit`; one writer
thread drains a bounded queue and writes batches strictly in submission
order. Concurrent runs that touch the same identity therefore never race
on the store's create-if-absent semantics.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import BatchWriteError, IndexingCancelled, PruneError
from .model import ChangeSet, Upsert
from .stores.base import Batch, GraphStore, WriteResult

_STOP = object()


@dataclass
class EmitReport:
    """Totals for everything one submission (or the emitter) wrote."""
    batches_written: int = 0
    operations_written: int = 0
    nodes_created: int | None = 0
    edges_created: int | None = 0
    retries: int = 0

    def add(self, batch: Batch, result: WriteResult, retries: int) -> None:
        self.batches_written += 1
        self.operations_written += len(batch)
        self.retries += retries
        # once the store cannot tell, the total is unknown
        if self.nodes_created is not None:
            self.nodes_created = (None if result.nodes_created is None
                                  else self.nodes_created + result.nodes_created)
        if self.edges_created is not None:
            self.edges_created = (None if result.edges_created is None
                                  else self.edges_created + result.edges_created)


class _Submission:
    """Tracks the batches of one submit() call and resolves its future."""

    def __init__(self, total: int):
        self.future: Future = Future()
        self.remaining = total
        self.report = EmitReport()
        if total == 0:
            self.future.set_result(self.report)

    def done(self, batch: Batch, result: WriteResult, retries: int) -> None:
        self.report.add(batch, result, retries)
        self.remaining -= 1
        if self.remaining == 0 and not self.future.done():
            self.future.set_result(self.report)

    def fail(self, exc: BaseException) -> None:
        if not self.future.done():
            self.future.set_exception(exc)


@dataclass
class _PruneRequest:
    project: str
    keep_nodes: set[str]
    keep_edges: set[str]
    future: Future = field(default_factory=Future)


def chunk(operations: list[Upsert], size: int) -> list[list[Upsert]]:
    return [operations[i:i + size] for i in range(0, len(operations), size)]


class UpsertEmitter:
    """Batches upserts and writes them through one writer thread.

    A failing batch is retried as a whole with exponential backoff. When
    every attempt fails the emitter stops: that batch's submission fails
    with :class:`BatchWriteError`, batches queued behind it are dropped,
    and batches committed before it stay committed.

    Usage::

        with UpsertEmitter(store, batch_size=500) as emitter:
            report = emitter.submit(changes).result()
    """

    def __init__(self, store: GraphStore, *, batch_size: int = 500,
                 max_attempts: int = 3, backoff: float = 0.5,
                 max_backoff: float = 8.0, queue_size: int = 64,
                 poll_timeout: float = 1.0, verbose: bool = False):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.max_backoff = max_backoff
        self.poll_timeout = poll_timeout
        self.verbose = verbose
        self.report = EmitReport()
        self.error: BatchWriteError | None = None

        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._cancelled = threading.Event()
        self._index_lock = threading.Lock()
        self._next_index = 0
        self._thread: threading.Thread | None = None

    # ── Lifecycle ───────────────────────────────────────────────────────

    def start(self) -> "UpsertEmitter":
        if self._thread is None:
            self._thread = threading.Thread(
                target=self._run, name="crategraph-writer", daemon=True,
            )
            self._thread.start()
        return self

    def close(self) -> None:
        """Finish queued batches (unless cancelled) and stop the writer."""
        if self._thread is None:
            return
        self._put(_STOP, check_cancelled=False)
        self._thread.join()
        self._thread = None

    def cancel(self) -> None:
        """Stop writing. Committed batches are not undone."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def __enter__(self) -> "UpsertEmitter":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            self.cancel()
        self.close()

    # ── Producers ───────────────────────────────────────────────────────

    def submit(self, changes: ChangeSet | list[Upsert]) -> Future:
        """Queue a change-set for writing.

        Returns a future resolving to the submission's :class:`EmitReport`,
        or raising :class:`BatchWriteError` / :class:`IndexingCancelled`.
        """
        if self._thread is None:
            raise RuntimeError("emitter is not started")
        self._raise_if_stopped()
        operations = (changes.operations() if isinstance(changes, ChangeSet)
                      else list(changes))
        chunks = chunk(operations, self.batch_size)
        submission = _Submission(len(chunks))
        # indices are reserved up front so one submission's batches are contiguous
        with self._index_lock:
            first = self._next_index
            self._next_index += len(chunks)
            for offset, ops in enumerate(chunks):
                try:
                    self._put((Batch(first + offset, ops), submission))
                except IndexingCancelled as exc:
                    submission.fail(self.error or exc)
                    break
        return submission.future

    def submit_prune(self, project: str, keep_nodes: set[str],
                     keep_edges: set[str]) -> Future:
        """Queue a prune of ``project`` behind everything submitted so far.

        The store's prune runs on the writer thread under the same retry
        policy as batches, so it never overlaps a batch write. The future
        resolves to ``(nodes deleted, edges deleted)``, or raises
        :class:`PruneError` / :class:`IndexingCancelled`. A failed prune
        does not stop the emitter.
        """
        if self._thread is None:
            raise RuntimeError("emitter is not started")
        self._raise_if_stopped()
        request = _PruneRequest(project, set(keep_nodes), set(keep_edges))
        try:
            self._put(request)
        except IndexingCancelled as exc:
            request.future.set_exception(self.error or exc)
        return request.future

    def _put(self, item, check_cancelled: bool = True) -> None:
        while True:
            if check_cancelled and self._cancelled.is_set():
                raise IndexingCancelled("emitter was cancelled")
            try:
                self._queue.put(item, timeout=self.poll_timeout)
                return
            except queue.Full:
                continue

    def _raise_if_stopped(self) -> None:
        if self.error is not None:
            raise self.error
        if self._cancelled.is_set():
            raise IndexingCancelled("emitter was cancelled")

    # ── Writer ──────────────────────────────────────────────────────────

    def _run(self) -> None:
        while True:
            try:
                item = self._queue.get(timeout=self.poll_timeout)
            except queue.Empty:
                continue
            if item is _STOP:
                return
            if isinstance(item, _PruneRequest):
                self._prune(item)
                continue
            batch, submission = item
            if self._cancelled.is_set():
                submission.fail(self.error or IndexingCancelled(
                    f"batch {batch.index} not written: emitter was cancelled"
                ))
                continue
            try:
                result, retries = self._write_with_retry(batch)
            except BatchWriteError as exc:
                self.error = exc
                self._cancelled.set()
                submission.fail(exc)
                continue
            self.report.add(batch, result, retries)
            submission.done(batch, result, retries)

    def _prune(self, request: _PruneRequest) -> None:
        if self._cancelled.is_set():
            request.future.set_exception(self.error or IndexingCancelled(
                f"prune of {request.project} skipped: emitter was cancelled"
            ))
            return
        try:
            counts, retries = self._call_with_retry(
                lambda: self.store.prune(request.project, request.keep_nodes,
                                         request.keep_edges),
                f"Prune of {request.project}",
                lambda attempts, exc: PruneError(request.project, attempts, exc),
            )
        except PruneError as exc:
            request.future.set_exception(exc)
            return
        self.report.retries += retries
        if self.verbose:
            print(f"  Pruned {request.project}: {counts[0]} nodes, {counts[1]} edges")
        request.future.set_result(counts)

    def _write_with_retry(self, batch: Batch) -> tuple[WriteResult, int]:
        result, retries = self._call_with_retry(
            lambda: self.store.write_batch(batch),
            f"Batch {batch.index}",
            lambda attempts, exc: BatchWriteError(batch.index, attempts, exc),
        )
        if self.verbose:
            print(f"  Batch {batch.index}: {len(batch)} upserts written")
        return result, retries

    def _call_with_retry(self, call, label: str, error):
        """Run ``call`` with exponential backoff; returns ``(result, retries)``.

        After the last failed attempt raises ``error(attempts, cause)``.
        """
        attempts = 0

        def note_retry(retry_state) -> None:
            if self.verbose:
                exc = retry_state.outcome.exception()
                print(f"  {label} attempt {retry_state.attempt_number} "
                      f"failed ({exc}); retrying")

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff, max=self.max_backoff),
            retry=retry_if_exception_type(Exception),
            before_sleep=note_retry,
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = call()
        except Exception as exc:
            raise error(attempts, exc) from exc
        return result, attempts - 1
