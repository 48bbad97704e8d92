"""Tests for batching, retry and abort behaviour of the upsert emitter."""

import pytest

from crategraph.errors import BatchWriteError, IndexingCancelled, PruneError
from crategraph.graph import ChangeSet, NodeUpsert, UpsertEmitter
from crategraph.graph.model import NodeKey


def _changes(n, prefix="f"):
    changes = ChangeSet()
    for i in range(n):
        key = NodeKey("Function", f"demo:crate::{prefix}{i:03d}")
        changes.add_node(NodeUpsert(key, "demo", {"uid": key.uid, "project": "demo"}))
    return changes


class TestBatching:

    def test_batches_respect_size(self, memory_store):
        """10 upserts with batch_size=4 should be written as 3 batches."""
        with UpsertEmitter(memory_store, batch_size=4) as emitter:
            report = emitter.submit(_changes(10)).result()
        assert report.batches_written == 3
        assert report.operations_written == 10
        assert report.nodes_created == 10
        assert memory_store.committed_batches == [0, 1, 2]

    def test_empty_submission(self, memory_store):
        """An empty change-set resolves immediately with no batches."""
        with UpsertEmitter(memory_store) as emitter:
            report = emitter.submit(ChangeSet()).result()
        assert report.batches_written == 0

    def test_rewrite_creates_nothing(self, memory_store):
        """Submitting the same nodes twice should create them once."""
        with UpsertEmitter(memory_store, batch_size=3) as emitter:
            emitter.submit(_changes(5)).result()
            second = emitter.submit(_changes(5)).result()
        assert second.nodes_created == 0
        assert len(memory_store.nodes) == 5

    def test_batch_indices_are_global(self, memory_store):
        """Batch indices keep counting across submissions."""
        with UpsertEmitter(memory_store, batch_size=2) as emitter:
            emitter.submit(_changes(4, "a")).result()
            emitter.submit(_changes(4, "b")).result()
        assert memory_store.committed_batches == [0, 1, 2, 3]
        assert emitter.report.batches_written == 4

    def test_submit_requires_start(self, memory_store):
        """submit() before start() should raise RuntimeError."""
        emitter = UpsertEmitter(memory_store)
        with pytest.raises(RuntimeError):
            emitter.submit(_changes(1))

    def test_invalid_batch_size(self, memory_store):
        """batch_size=0 should be rejected."""
        with pytest.raises(ValueError):
            UpsertEmitter(memory_store, batch_size=0)


class TestRetry:

    def test_transient_failure_is_retried(self, flaky_store_cls):
        """A batch failing twice then succeeding is written on the third attempt."""
        store = flaky_store_cls({1: 2})
        with UpsertEmitter(store, batch_size=2, max_attempts=3, backoff=0) as emitter:
            report = emitter.submit(_changes(6)).result()
        assert report.batches_written == 3
        assert report.retries == 2
        assert store.attempts[1] == 3
        assert len(store.nodes) == 6

    def test_exhausted_retries_abort(self, flaky_store_cls):
        """A batch failing every attempt raises BatchWriteError and stops the writer."""
        store = flaky_store_cls({1: 99})
        emitter = UpsertEmitter(store, batch_size=2, max_attempts=3, backoff=0)
        with emitter:
            future = emitter.submit(_changes(6))
            with pytest.raises(BatchWriteError) as info:
                future.result()
        err = info.value
        assert err.batch_index == 1
        assert err.attempts == 3
        assert isinstance(err.cause, ConnectionError)
        # the batch before the failure stays committed, nothing after it is written
        assert store.committed_batches == [0]
        assert 2 not in store.attempts
        assert emitter.error is err

    def test_submit_after_abort_raises(self, flaky_store_cls):
        """submit() after an aborted batch should raise the same error."""
        store = flaky_store_cls({0: 99})
        with UpsertEmitter(store, batch_size=2, max_attempts=1, backoff=0) as emitter:
            with pytest.raises(BatchWriteError):
                emitter.submit(_changes(2)).result()
            with pytest.raises(BatchWriteError):
                emitter.submit(_changes(2))


class TestCancel:

    def test_cancel_stops_new_work(self, memory_store):
        """After cancel() new submissions raise IndexingCancelled."""
        with UpsertEmitter(memory_store) as emitter:
            emitter.submit(_changes(3)).result()
            emitter.cancel()
            with pytest.raises(IndexingCancelled):
                emitter.submit(_changes(3, "g"))
        assert emitter.cancelled
        # committed work is not undone
        assert len(memory_store.nodes) == 3

    def test_exception_in_block_cancels(self, memory_store):
        """An exception inside the with block should cancel the emitter."""
        emitter = UpsertEmitter(memory_store)
        with pytest.raises(KeyError):
            with emitter:
                raise KeyError("boom")
        assert emitter.cancelled


class TestPrune:

    def test_prune_runs_on_writer_after_batches(self, flaky_store_cls):
        """submit_prune() should delete stale uids on the writer thread after earlier batches."""
        store = flaky_store_cls({})
        with UpsertEmitter(store, batch_size=2) as emitter:
            emitter.submit(_changes(4)).result()
            keep = {"demo:crate::f000", "demo:crate::f001"}
            counts = emitter.submit_prune("demo", keep, set()).result()
        assert counts == (2, 0)
        assert {key.uid for key in store.nodes} == keep
        assert store.prune_threads == ["crategraph-writer"]

    def test_failed_prune_is_retried(self, flaky_store_cls):
        """A prune that conflicts once should be retried like a batch."""
        store = flaky_store_cls({}, prune_failures=1)
        with UpsertEmitter(store, max_attempts=3, backoff=0) as emitter:
            emitter.submit(_changes(3)).result()
            counts = emitter.submit_prune("demo", set(), set()).result()
        assert counts == (3, 0)
        assert len(store.prune_threads) == 2
        assert emitter.report.retries == 1

    def test_exhausted_prune_raises_without_stopping(self, flaky_store_cls):
        """A prune failing every attempt raises PruneError; later batches still write."""
        store = flaky_store_cls({}, prune_failures=99)
        with UpsertEmitter(store, max_attempts=2, backoff=0) as emitter:
            with pytest.raises(PruneError) as info:
                emitter.submit_prune("demo", set(), set()).result()
            emitter.submit(_changes(2)).result()
        assert info.value.attempts == 2
        assert info.value.project == "demo"
        assert len(store.nodes) == 2

    def test_prune_after_abort_is_skipped(self, flaky_store_cls):
        """Once a batch has failed for good, a queued prune must not delete anything."""
        store = flaky_store_cls({0: 99})
        with UpsertEmitter(store, max_attempts=1, backoff=0) as emitter:
            with pytest.raises(BatchWriteError):
                emitter.submit(_changes(2)).result()
            with pytest.raises(BatchWriteError):
                emitter.submit_prune("demo", set(), set())
        assert store.prune_threads == []
