"""
Worker Manager - runs sync tasks on their intervals in background threads

Each task gets its own thread. A thread waits the task's interval on the
shared stop event, runs the task, logs and counts anything it raises, and
waits again. stop() sets the event and joins the threads, so shutdown ends
at the next wait or at the next stop_event check inside a run.

The manager assumes a single running instance. With use_advisory_locks a
PostgreSQL advisory lock named after the task guards every run, so a second
instance skips runs that are already in progress elsewhere.
"""

import logging
import threading
import time
from typing import Any, Dict, Iterable, List, Optional

from database import SessionFactory, advisory_lock
from observability import run_context, task_duration_seconds, task_runs_total, worker_tasks_running

from .base import SyncTask

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Owns the sync tasks and their threads.

    Usage:
        manager = WorkerManager([poller, refresher, tracker])
        manager.start()
        ...
        manager.stop(timeout=30)
    """

    def __init__(
        self,
        tasks: Iterable[SyncTask] = (),
        use_advisory_locks: bool = False,
        session_factory: Optional[SessionFactory] = None,
    ):
        self._tasks: Dict[str, SyncTask] = {}
        self._threads: List[threading.Thread] = []
        self.stop_event = threading.Event()
        self.use_advisory_locks = use_advisory_locks
        self.session_factory = session_factory
        for task in tasks:
            self.add(task)

    def add(self, task: SyncTask) -> None:
        """Register a task before start().

        Raises:
            ValueError: If a task with the same name is registered
            RuntimeError: If the manager is already running
        """
        if self._threads:
            raise RuntimeError("Cannot add tasks to a running WorkerManager")
        if not task.name:
            raise ValueError(f"Task {task!r} has no name")
        if task.name in self._tasks:
            raise ValueError(f"Task '{task.name}' is already registered")
        if task.interval <= 0:
            raise ValueError(f"Task '{task.name}' interval must be positive, got {task.interval}")
        self._tasks[task.name] = task

    @property
    def tasks(self) -> List[SyncTask]:
        return list(self._tasks.values())

    @property
    def task_names(self) -> List[str]:
        return list(self._tasks)

    def get(self, name: str) -> SyncTask:
        try:
            return self._tasks[name]
        except KeyError:
            raise KeyError(f"Unknown task '{name}'. Registered tasks: {', '.join(self._tasks) or 'none'}") from None

    def start(self) -> None:
        """Start one daemon thread per registered task."""
        if self._threads:
            raise RuntimeError("WorkerManager already started")
        self.stop_event.clear()
        for task in self._tasks.values():
            thread = threading.Thread(
                target=self._loop,
                args=(task,),
                name=f"syncengine-{task.name}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()
            logger.info(f"Started task {task.name} every {task.interval}s", extra={"task": task.name})

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Signal every task to stop and wait for the threads.

        Args:
            timeout: Total seconds to wait for all threads (None waits forever)

        Returns:
            True if every thread finished within the timeout
        """
        self.stop_event.set()
        deadline = None if timeout is None else time.monotonic() + timeout

        for thread in self._threads:
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
            thread.join(remaining)

        alive = [thread.name for thread in self._threads if thread.is_alive()]
        if alive:
            logger.warning(f"Threads still running after shutdown timeout: {', '.join(alive)}")
            return False

        self._threads = []
        logger.info("All sync tasks stopped")
        return True

    def wait(self) -> None:
        """Block until stop() is called."""
        self.stop_event.wait()

    def run_once(self, name: str) -> Optional[Dict[str, Any]]:
        """Run a task synchronously in the calling thread.

        Returns:
            The task's stats, or None if it failed or the run was skipped
        """
        return self._execute(self.get(name))

    def _loop(self, task: SyncTask) -> None:
        while not self.stop_event.wait(task.interval):
            try:
                self._execute(task)
            except Exception as e:
                # Advisory lock failures end up here; task errors are handled in _run_task
                logger.error(f"Task {task.name} could not run: {e}", exc_info=True, extra={"task": task.name})
                task_runs_total.labels(task=task.name, status="error").inc()

    def _execute(self, task: SyncTask) -> Optional[Dict[str, Any]]:
        with run_context():
            if self.use_advisory_locks:
                with advisory_lock(f"syncengine:{task.name}", self.session_factory) as acquired:
                    if not acquired:
                        logger.info(f"Task {task.name} is running elsewhere, skipping", extra={"task": task.name})
                        task_runs_total.labels(task=task.name, status="locked").inc()
                        return None
                    return self._run_task(task)
            return self._run_task(task)

    def _run_task(self, task: SyncTask) -> Optional[Dict[str, Any]]:
        start = time.monotonic()
        worker_tasks_running.inc()
        try:
            stats = task.run(self.stop_event)
        except Exception as e:
            logger.error(f"Task {task.name} failed: {e}", exc_info=True, extra={"task": task.name})
            task_runs_total.labels(task=task.name, status="error").inc()
            return None
        finally:
            worker_tasks_running.dec()
            task_duration_seconds.labels(task=task.name).observe(time.monotonic() - start)

        task_runs_total.labels(task=task.name, status="success").inc()
        logger.debug(f"Task {task.name} finished in {time.monotonic() - start:.2f}s", extra={"task": task.name})
        return stats
