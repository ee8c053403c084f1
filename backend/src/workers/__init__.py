"""Background sync tasks and the manager that schedules them.

Every task is a SyncTask with a name, an interval and a run(stop_event)
method returning a stats dict. WorkerManager runs them in threads; the
Celery runner in workers.celery_tasks runs them from Celery Beat instead.
"""

from .base import SyncTask
from .manager import WorkerManager
from .oauth_refresher import HttpxTokenClient, OAuthRefresher
from .order_poller import OrderPoller, default_order_mapper, resolve_carrier
from .stock_sync import StockSync
from .tracking_poller import TrackingPoller, group_shipments

__all__ = [
    "SyncTask",
    "WorkerManager",
    "OrderPoller",
    "default_order_mapper",
    "resolve_carrier",
    "OAuthRefresher",
    "HttpxTokenClient",
    "TrackingPoller",
    "group_shipments",
    "StockSync",
]
