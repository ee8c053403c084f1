"""Base class for periodic sync tasks.

A sync task is a plain object with a name, an interval and a run() method.
The same task objects are driven by the in-process WorkerManager or, in
Celery deployments, by the syncengine.run_task Celery task.

Task Pattern:
=============

class MyTask(SyncTask):
    def __init__(self, admin_repo, interval):
        self.name = "my_task"
        self.interval = interval
        self.admin_repo = admin_repo

    def run(self, stop_event):
        stats = {"checked": 0, "errors": 0}
        for record in self.admin_repo.list_active_integrations(["..."]):
            if stop_event.is_set():
                break
            try:
                ...  # one integration
            except Exception as e:
                logger.error(f"...: {e}", exc_info=True)
                stats["errors"] += 1
        return stats

Rules every task follows:
1. Read integration rows through IntegrationAdminRepository only
2. Write tenant data inside database.tenant_transaction() only
3. Catch and count failures per integration; never let one tenant stop the run
4. Check stop_event between units of work
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict


class SyncTask(ABC):
    """Periodic unit of work scheduled by the worker manager."""

    name: str = ""
    interval: float = 60.0

    @abstractmethod
    def run(self, stop_event: threading.Event) -> Dict[str, Any]:
        """Execute one run.

        Args:
            stop_event: Set when the process is shutting down

        Returns:
            Dict with run statistics
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(name={self.name!r}, interval={self.interval})>"
