"""
Per-instance periodic task runner used for auto-persistence.
"""

import threading
import time

import pytest

from aura_memory.core.heartbeat import Heartbeat


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestHeartbeatRegistration:
    """Test task validation."""

    def test_invalid_func(self):
        """Test registering with non-callable function."""
        with pytest.raises(ValueError, match="Task function must be callable"):
            Heartbeat("bad_task", 30, "not_callable")

    def test_invalid_interval(self):
        """Test registering with invalid interval."""
        with pytest.raises(ValueError, match="Interval must be > 0 seconds"):
            Heartbeat("bad_task", 0, lambda: None)

    def test_initial_status(self):
        heartbeat = Heartbeat("idle", 30, lambda: None)
        status = heartbeat.get_status()

        assert status["name"] == "idle"
        assert status["status"] == "stopped"
        assert status["last_run"] is None
        assert status["next_run"] is None


class TestHeartbeatExecution:
    """Test task execution and error handling."""

    def test_run_once_success(self):
        calls = []
        heartbeat = Heartbeat("counter", 30, lambda: calls.append(1))

        assert heartbeat.run_once() is True
        assert calls == [1]
        assert heartbeat.run_count == 1
        assert heartbeat.get_status()["next_run"] == heartbeat.last_run + 30

    def test_run_once_failure_is_recorded(self):
        def failing():
            raise RuntimeError("Task failed")

        heartbeat = Heartbeat("failing", 30, failing)

        assert heartbeat.run_once() is False
        assert heartbeat.failure_count == 1
        assert heartbeat.run_count == 0

    def test_background_loop_runs_repeatedly(self):
        calls = []
        heartbeat = Heartbeat("fast", 0.02, lambda: calls.append(time.monotonic()))
        heartbeat.start()
        try:
            assert _wait_for(lambda: len(calls) >= 3)
            assert heartbeat.running
        finally:
            heartbeat.stop()

        assert not heartbeat.running

    def test_failures_do_not_stop_loop(self):
        attempts = []

        def flaky():
            attempts.append(1)
            raise RuntimeError("still broken")

        heartbeat = Heartbeat("flaky", 0.02, flaky)
        heartbeat.start()
        try:
            assert _wait_for(lambda: len(attempts) >= 3)
        finally:
            heartbeat.stop()

        assert heartbeat.failure_count >= 3

    def test_stop_is_prompt(self):
        heartbeat = Heartbeat("slow", 60, lambda: None)
        heartbeat.start()

        started = time.monotonic()
        heartbeat.stop()

        assert time.monotonic() - started < 2.0
        assert heartbeat.run_count == 0

    def test_double_start_rejected(self):
        heartbeat = Heartbeat("once", 60, lambda: None)
        heartbeat.start()
        try:
            with pytest.raises(RuntimeError):
                heartbeat.start()
        finally:
            heartbeat.stop()

    def test_independent_instances(self):
        a_calls, b_calls = [], []
        a = Heartbeat("a", 0.02, lambda: a_calls.append(1))
        b = Heartbeat("b", 60, lambda: b_calls.append(1))
        a.start()
        b.start()
        try:
            assert _wait_for(lambda: len(a_calls) >= 2)
        finally:
            a.stop()
            b.stop()

        assert b_calls == []

    def test_stop_from_task_thread(self):
        stopped = threading.Event()
        holder = {}

        def stop_self():
            holder["heartbeat"].stop()
            stopped.set()

        heartbeat = Heartbeat("self_stop", 0.02, stop_self)
        holder["heartbeat"] = heartbeat
        heartbeat.start()

        assert stopped.wait(5.0)
        assert _wait_for(lambda: not heartbeat.running)
