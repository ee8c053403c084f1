"""Sync Engine - process root for the background workers

Builds everything once from Settings and hands it down:
- Logging configuration
- Credential vault from ENCRYPTION_KEY
- Provider registry from the bundled registration table
- Sync tasks (order pollers, OAuth refresher, tracking poller, stock sync)
- Worker manager running the tasks until SIGINT/SIGTERM

Run with `syncengine-workers` or `python main.py` from backend/src.
"""

import logging
import signal
import sys
from typing import List, Optional

import httpx

from config import Settings, get_settings
from database import SessionFactory
from infrastructure.encryption import CredentialVault, VaultError
from infrastructure.repositories import IntegrationAdminRepository
from integrations.catalog import build_registry
from integrations.registry import ProviderRegistry
from observability import configure_logging
from workers import (
    OAuthRefresher,
    OrderPoller,
    StockSync,
    SyncTask,
    TrackingPoller,
    WorkerManager,
)
from workers.oauth_refresher import HttpxTokenClient

logger = logging.getLogger(__name__)


def build_tasks(
    settings: Settings,
    registry: ProviderRegistry,
    vault: CredentialVault,
    admin_repo: IntegrationAdminRepository,
    session_factory: Optional[SessionFactory] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> List[SyncTask]:
    """Create the sync tasks for this process.

    ENABLED_ORDER_POLLERS restricts the order pollers; names that are not
    registered marketplaces are logged and ignored.
    """
    enabled = settings.enabled_order_pollers()
    if enabled is None:
        poller_names = registry.marketplace_names()
    else:
        poller_names = []
        for name in enabled:
            if registry.has_marketplace(name):
                poller_names.append(name)
            else:
                logger.warning(f"ENABLED_ORDER_POLLERS names unknown marketplace '{name}', ignoring")

    tasks: List[SyncTask] = [
        OrderPoller(
            name,
            registry,
            vault,
            admin_repo,
            interval=settings.order_poll_interval(name),
            session_factory=session_factory,
        )
        for name in poller_names
    ]
    tasks.append(OAuthRefresher(
        vault,
        admin_repo,
        interval=settings.OAUTH_REFRESH_INTERVAL_SECONDS,
        threshold_seconds=settings.OAUTH_REFRESH_THRESHOLD_SECONDS,
        token_client=HttpxTokenClient(timeout=settings.HTTP_TIMEOUT_SECONDS, transport=transport),
    ))
    tasks.append(TrackingPoller(
        registry,
        vault,
        admin_repo,
        interval=settings.TRACKING_POLL_INTERVAL_SECONDS,
        session_factory=session_factory,
    ))
    tasks.append(StockSync(
        registry,
        vault,
        admin_repo,
        interval=settings.STOCK_SYNC_INTERVAL_SECONDS,
        session_factory=session_factory,
    ))
    return tasks


def build_manager(
    settings: Optional[Settings] = None,
    session_factory: Optional[SessionFactory] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> WorkerManager:
    """Wire vault, registry, repositories and tasks into a WorkerManager.

    Raises:
        ValueError, InvalidKeyLengthError: If ENCRYPTION_KEY is unusable
    """
    settings = settings or get_settings()
    vault = CredentialVault(settings.encryption_key_bytes())
    registry = build_registry(http_timeout=settings.HTTP_TIMEOUT_SECONDS, transport=transport)
    admin_repo = IntegrationAdminRepository(session_factory)

    tasks = build_tasks(settings, registry, vault, admin_repo, session_factory, transport)
    return WorkerManager(
        tasks,
        use_advisory_locks=settings.USE_ADVISORY_LOCKS,
        session_factory=session_factory,
    )


def main() -> int:
    settings = get_settings()
    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    try:
        manager = build_manager(settings)
    except (ValueError, VaultError) as e:
        logger.error(f"Sync engine cannot start: {e}")
        return 1

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
        manager.stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    logger.info(f"Sync engine starting with tasks: {', '.join(manager.task_names)}")
    manager.start()
    manager.wait()

    if not manager.stop(timeout=settings.SHUTDOWN_TIMEOUT_SECONDS):
        return 1
    logger.info("Sync engine stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
