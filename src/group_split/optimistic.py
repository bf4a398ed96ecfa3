"""Optimistic local updates with commit-or-rollback against a remote store.

Every mutation follows the same three phases:
1. Snapshot the piece of local state the change touches
2. Apply the change locally so readers see it immediately
3. Submit the remote write to a worker thread; if it fails, restore the
   snapshot and surface a ``PersistenceError`` through the returned future
"""

import logging
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Generic, TypeVar

from .exceptions import PersistenceError

logger = logging.getLogger(__name__)

S = TypeVar("S")
R = TypeVar("R")


class OptimisticChange(Generic[S, R]):
    """One speculative change: how to snapshot, apply, commit and restore it."""

    def __init__(
        self,
        operation: str,
        snapshot: Callable[[], S],
        apply: Callable[[], None],
        commit: Callable[[], R],
        restore: Callable[[S], None],
    ):
        """
        Initialize the change.

        Args:
            operation: Human-readable name used in logs and errors
            snapshot: Captures the state ``restore`` needs to undo ``apply``
            apply: Mutates local state speculatively
            commit: Performs the remote write; its return value is the result
            restore: Puts the snapshot back after a failed commit
        """
        self.operation = operation
        self.snapshot = snapshot
        self.apply = apply
        self.commit = commit
        self.restore = restore


class OptimisticUpdater:
    """Runs ``OptimisticChange`` objects, committing them off the caller's thread."""

    def __init__(self, executor: Executor | None = None, max_workers: int = 4):
        """Initialize the updater with an optional caller-owned executor."""
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="group-split-write"
        )

    def close(self):
        """Wait for pending writes and stop the worker pool if we own it."""
        if self._owns_executor:
            self.executor.shutdown(wait=True)

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def submit(self, change: OptimisticChange[S, R]) -> Future[R]:
        """
        Apply a change locally and start its remote commit.

        Snapshot and apply run synchronously so the local view is updated
        before this returns. Errors from ``apply`` propagate directly and
        nothing is submitted.

        Returns:
            Future resolving to the commit result, or raising
            ``PersistenceError`` after the local change was reverted
        """
        saved = change.snapshot()
        change.apply()
        logger.debug(f"Applied {change.operation} locally, committing")
        return self.executor.submit(self._commit_or_rollback, change, saved)

    def _commit_or_rollback(self, change: OptimisticChange[S, R], saved: S) -> R:
        try:
            result = change.commit()
        except Exception as e:
            change.restore(saved)
            logger.error(f"Failed to {change.operation}, reverted local change: {e}")
            raise PersistenceError(change.operation) from e

        logger.info(f"Committed {change.operation}")
        return result
