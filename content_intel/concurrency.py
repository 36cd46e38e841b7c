"""
Request-scoped cancellation and failure-isolated parallel execution.

A CancelScope carries a wall-clock deadline plus an abort flag. Engines call
scope.check() between stages and bound every network timeout with
scope.bound(). run_isolated() runs independent callables on a thread pool;
one task failing never affects the others, but cancellation aborts them all.
"""

import logging
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Mapping, Optional

from .errors import OperationCancelled

logger = logging.getLogger(__name__)

# How often a running pool re-checks its scope
POLL_INTERVAL = 0.05


class CancelScope:
    """Deadline and abort flag shared by every stage of one request."""

    def __init__(self, timeout: Optional[float] = None):
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._aborted = False
        self.reason = None

    def cancel(self, reason: str = 'Operation aborted') -> None:
        self._aborted = True
        self.reason = reason

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._aborted or self.expired

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self) -> None:
        """Raise OperationCancelled if the scope was aborted or has expired."""
        if self._aborted:
            raise OperationCancelled(self.reason or 'Operation aborted')
        if self.expired:
            raise OperationCancelled('Deadline exceeded')

    def bound(self, timeout: Optional[float]) -> Optional[float]:
        """Clamp a per-call timeout to the time left in this scope."""
        self.check()
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)


def check_scope(scope: Optional[CancelScope]) -> None:
    if scope is not None:
        scope.check()


def bound_timeout(scope: Optional[CancelScope], timeout: Optional[float]) -> Optional[float]:
    if scope is None:
        return timeout
    return scope.bound(timeout)


@dataclass
class TaskOutcome:
    """Result of one isolated task: either a value or the exception it raised."""

    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_isolated(
    tasks: Mapping[Hashable, Callable[[], Any]],
    scope: Optional[CancelScope] = None,
    max_workers: Optional[int] = None,
) -> Dict[Hashable, TaskOutcome]:
    """
    Run callables in parallel and capture each failure separately.

    Args:
        tasks: Mapping of key -> zero-argument callable
        scope: Optional cancel scope polled while tasks run
        max_workers: Thread pool size (defaults to one thread per task)

    Returns:
        Dict mapping each key to its TaskOutcome

    Raises:
        OperationCancelled: scope aborted/expired, or a task raised it.
            Outcomes of tasks that did finish are discarded.
    """
    if not tasks:
        return {}
    check_scope(scope)

    workers = max(1, min(max_workers or len(tasks), len(tasks)))
    executor = ThreadPoolExecutor(max_workers=workers)
    futures = {executor.submit(fn): key for key, fn in tasks.items()}
    pending = set(futures)
    try:
        while pending:
            check_scope(scope)
            _, pending = wait(
                pending,
                timeout=POLL_INTERVAL if scope is not None else None,
                return_when=FIRST_COMPLETED,
            )
    except OperationCancelled:
        executor.shutdown(wait=False, cancel_futures=True)
        raise
    executor.shutdown(wait=False)

    outcomes = {}
    for future, key in futures.items():
        error = future.exception()
        if isinstance(error, OperationCancelled):
            raise error
        if error is not None:
            logger.warning('Task %s failed: %s', key, error)
            outcomes[key] = TaskOutcome(error=error)
        else:
            outcomes[key] = TaskOutcome(value=future.result())
    return outcomes
