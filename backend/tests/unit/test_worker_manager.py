"""Unit tests for the WorkerManager scheduler."""

import threading
import time
from contextlib import contextmanager
from unittest.mock import patch

import pytest
from prometheus_client import REGISTRY

from observability import get_run_id
from workers import SyncTask, WorkerManager


class CountingTask(SyncTask):
    """Counts runs and signals every completed run."""

    def __init__(self, name="counting", interval=0.01, fail=False):
        self.name = name
        self.interval = interval
        self.fail = fail
        self.runs = 0
        self.run_ids = []
        self.ran = threading.Event()

    def run(self, stop_event):
        self.runs += 1
        self.run_ids.append(get_run_id())
        self.ran.set()
        if self.fail:
            raise RuntimeError("provider exploded")
        return {"runs": self.runs}


class BlockingTask(SyncTask):
    """Runs until released, ignoring the stop event unless told otherwise."""

    def __init__(self, honor_stop=True):
        self.name = "blocking"
        self.interval = 0.01
        self.honor_stop = honor_stop
        self.started = threading.Event()
        self.release = threading.Event()

    def run(self, stop_event):
        self.started.set()
        if self.honor_stop:
            stop_event.wait(5)
        else:
            self.release.wait(5)
        return {}


def task_runs(task, status):
    return REGISTRY.get_sample_value("syncengine_task_runs_total", {"task": task, "status": status}) or 0


class TestRegistration:
    """Test add() validation and lookup."""

    def test_tasks_in_registration_order(self):
        manager = WorkerManager([CountingTask("b"), CountingTask("a")])
        assert manager.task_names == ["b", "a"]
        assert [t.name for t in manager.tasks] == ["b", "a"]

    def test_duplicate_name_rejected(self):
        manager = WorkerManager([CountingTask("dup")])
        with pytest.raises(ValueError, match="already registered"):
            manager.add(CountingTask("dup"))

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            WorkerManager([CountingTask("")])

    @pytest.mark.parametrize("interval", [0, -5])
    def test_non_positive_interval_rejected(self, interval):
        with pytest.raises(ValueError, match="interval"):
            WorkerManager([CountingTask("t", interval=interval)])

    def test_get_unknown_task(self):
        manager = WorkerManager([CountingTask("known")])
        with pytest.raises(KeyError) as exc_info:
            manager.get("missing")
        assert "known" in str(exc_info.value)

    def test_cannot_add_while_running(self):
        manager = WorkerManager([CountingTask("slow", interval=60)])
        manager.start()
        try:
            with pytest.raises(RuntimeError):
                manager.add(CountingTask("late"))
        finally:
            assert manager.stop(timeout=2)


class TestRunOnce:
    """Test synchronous execution."""

    def test_returns_stats_and_counts_success(self):
        task = CountingTask("once_ok")
        before = task_runs("once_ok", "success")

        assert WorkerManager([task]).run_once("once_ok") == {"runs": 1}
        assert task_runs("once_ok", "success") == before + 1

    def test_failure_returns_none_and_counts_error(self):
        task = CountingTask("once_fail", fail=True)
        before = task_runs("once_fail", "error")

        assert WorkerManager([task]).run_once("once_fail") is None
        assert task_runs("once_fail", "error") == before + 1

    def test_each_run_gets_a_fresh_run_id(self):
        task = CountingTask("run_ids")
        manager = WorkerManager([task])
        manager.run_once("run_ids")
        manager.run_once("run_ids")
        assert "no-run-id" not in task.run_ids
        assert task.run_ids[0] != task.run_ids[1]
        assert get_run_id() == "no-run-id"


class TestAdvisoryLocks:
    """Test the optional cross-instance guard."""

    def test_locked_run_is_skipped(self):
        @contextmanager
        def held_elsewhere(name, session_factory=None):
            yield False

        task = CountingTask("locked_task")
        manager = WorkerManager([task], use_advisory_locks=True)
        before = task_runs("locked_task", "locked")

        with patch("workers.manager.advisory_lock", held_elsewhere):
            assert manager.run_once("locked_task") is None

        assert task.runs == 0
        assert task_runs("locked_task", "locked") == before + 1

    def test_lock_name_includes_task(self):
        names = []

        @contextmanager
        def acquire(name, session_factory=None):
            names.append(name)
            yield True

        manager = WorkerManager([CountingTask("named")], use_advisory_locks=True)
        with patch("workers.manager.advisory_lock", acquire):
            assert manager.run_once("named") == {"runs": 1}
        assert names == ["syncengine:named"]

    def test_sqlite_always_acquires(self, session_factory):
        task = CountingTask("sqlite_lock")
        manager = WorkerManager([task], use_advisory_locks=True, session_factory=session_factory)
        assert manager.run_once("sqlite_lock") == {"runs": 1}


class TestThreads:
    """Test start/stop lifecycle."""

    def test_tasks_run_repeatedly_until_stopped(self):
        task = CountingTask("repeat", interval=0.01)
        manager = WorkerManager([task])
        manager.start()
        try:
            deadline = time.monotonic() + 5
            while task.runs < 3 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            assert manager.stop(timeout=2) is True
        assert task.runs >= 3

    def test_first_run_waits_one_interval(self):
        task = CountingTask("patient", interval=60)
        manager = WorkerManager([task])
        manager.start()
        assert manager.stop(timeout=2) is True
        assert task.runs == 0

    def test_failing_task_keeps_its_schedule(self):
        task = CountingTask("flaky", interval=0.01, fail=True)
        manager = WorkerManager([task])
        manager.start()
        try:
            deadline = time.monotonic() + 5
            while task.runs < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            manager.stop(timeout=2)
        assert task.runs >= 2

    def test_stop_interrupts_task_waiting_on_stop_event(self):
        task = BlockingTask(honor_stop=True)
        manager = WorkerManager([task])
        manager.start()
        assert task.started.wait(5)

        start = time.monotonic()
        assert manager.stop(timeout=2) is True
        assert time.monotonic() - start < 2

    def test_stop_reports_timeout(self):
        task = BlockingTask(honor_stop=False)
        manager = WorkerManager([task])
        manager.start()
        assert task.started.wait(5)
        try:
            assert manager.stop(timeout=0.05) is False
        finally:
            task.release.set()
            assert manager.stop(timeout=5) is True

    def test_wait_returns_after_stop_event(self):
        manager = WorkerManager([CountingTask("waiter", interval=60)])
        manager.start()
        threading.Timer(0.05, manager.stop_event.set).start()
        manager.wait()
        assert manager.stop(timeout=2) is True
