"""
Unit tests for cancel scopes and isolated parallel execution.
"""

import threading
import time

import pytest

from content_intel.concurrency import CancelScope, bound_timeout, run_isolated
from content_intel.errors import OperationCancelled


def _boom():
    raise ValueError('boom')


class TestCancelScope:
    """Tests for CancelScope."""

    def test_scope_without_deadline(self):
        scope = CancelScope()
        assert scope.remaining() is None
        assert scope.cancelled is False
        assert scope.bound(5) == 5
        assert scope.bound(None) is None

    def test_bound_clamps_to_remaining_time(self):
        scope = CancelScope(timeout=1)
        assert scope.bound(30) <= 1
        assert scope.bound(None) <= 1

    def test_cancel_records_reason(self):
        scope = CancelScope()
        scope.cancel('client went away')
        with pytest.raises(OperationCancelled) as exc_info:
            scope.check()
        assert exc_info.value.message == 'client went away'
        assert exc_info.value.to_dict()['stage'] == 'cancelled'

    def test_expired_deadline(self):
        scope = CancelScope(timeout=0)
        assert scope.expired is True
        with pytest.raises(OperationCancelled):
            scope.check()

    def test_bound_timeout_without_scope(self):
        assert bound_timeout(None, 7) == 7


class TestRunIsolated:
    """Tests for run_isolated()."""

    def test_failures_are_isolated(self):
        outcomes = run_isolated({'ok': lambda: 1, 'bad': _boom})
        assert outcomes['ok'].ok is True
        assert outcomes['ok'].value == 1
        assert outcomes['bad'].ok is False
        assert isinstance(outcomes['bad'].error, ValueError)

    def test_empty_task_map(self):
        assert run_isolated({}) == {}

    def test_tasks_run_concurrently(self):
        barrier = threading.Barrier(3, timeout=2)
        outcomes = run_isolated({i: barrier.wait for i in range(3)})
        assert all(outcome.ok for outcome in outcomes.values())

    def test_cancelled_scope_runs_nothing(self):
        calls = []
        scope = CancelScope()
        scope.cancel()
        with pytest.raises(OperationCancelled):
            run_isolated({'a': lambda: calls.append('a')}, scope)
        assert calls == []

    def test_deadline_aborts_running_tasks(self):
        release = threading.Event()
        started = time.monotonic()
        try:
            with pytest.raises(OperationCancelled):
                run_isolated({'slow': lambda: release.wait(5)}, CancelScope(timeout=0.1))
            assert time.monotonic() - started < 2
        finally:
            release.set()

    def test_cancellation_raised_by_a_task_propagates(self):
        def cancelled():
            raise OperationCancelled('stop')

        with pytest.raises(OperationCancelled):
            run_isolated({'a': lambda: 1, 'b': cancelled})
