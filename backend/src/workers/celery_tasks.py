"""Celery runner for the sync tasks.

Alternative to the in-process WorkerManager: Celery Beat enqueues one
syncengine.run_task message per task interval and a Celery worker executes
the named task through the same manager code path (run context, advisory
lock, metrics).

Tasks:
- run_sync_task: Run one registered sync task by name

Example:
    app = create_celery_app()
    app.worker_main(["worker", "--beat", "--loglevel=INFO"])
"""

import logging
from functools import lru_cache
from typing import Any, Dict, Iterable, Optional

from celery import Celery, shared_task

from config import Settings, get_settings

from .base import SyncTask
from .manager import WorkerManager

logger = logging.getLogger(__name__)

RUN_TASK_NAME = "syncengine.run_task"


@lru_cache()
def get_manager() -> WorkerManager:
    """Build the worker manager once per Celery worker process."""
    from main import build_manager

    return build_manager()


@shared_task(name=RUN_TASK_NAME, bind=True)
def run_sync_task(self, task_name: str) -> Dict[str, Any]:
    """Run one sync task to completion.

    Args:
        task_name: Registered task name (e.g. "allegro_order_poller")

    Returns:
        Dict with 'status' ("success" or "skipped"), 'task' and the task's stats

    Raises:
        KeyError: If no task with that name is registered
    """
    manager = get_manager()
    stats = manager.run_once(task_name)
    if stats is None:
        logger.warning(f"Sync task {task_name} produced no result", extra={"task": task_name})
        return {"status": "skipped", "task": task_name}
    return {"status": "success", "task": task_name, **stats}


def build_beat_schedule(tasks: Iterable[SyncTask]) -> Dict[str, Dict[str, Any]]:
    """One Beat entry per sync task, firing at the task's interval.

    Messages expire after one interval so a stalled worker does not pile up
    runs of the same task.
    """
    schedule: Dict[str, Dict[str, Any]] = {}
    for task in tasks:
        interval = float(task.interval)
        schedule[task.name] = {
            "task": RUN_TASK_NAME,
            "schedule": interval,
            "args": (task.name,),
            "options": {"expires": interval},
        }
    return schedule


def create_celery_app(settings: Optional[Settings] = None, manager: Optional[WorkerManager] = None) -> Celery:
    settings = settings or get_settings()
    app = Celery(
        "syncengine",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )
    app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
    )
    app.conf.beat_schedule = build_beat_schedule((manager or get_manager()).tasks)
    return app
