"""Stock Sync - pushes listing stock levels to marketplaces."""

import logging
import threading
from typing import Any, Dict, Optional

from database import SessionFactory, tenant_transaction
from infrastructure.encryption import CredentialVault
from infrastructure.repositories import IntegrationAdminRepository, IntegrationRecord, ListingRepository
from integrations.ports import StockUpdater, supports
from integrations.registry import ProviderRegistry
from observability import integration_errors_total, listings_synced_total

from .base import SyncTask

logger = logging.getLogger(__name__)


class StockSync(SyncTask):
    """
    Periodic stock push for marketplaces that accept stock updates.

    Integrations whose provider lacks the StockUpdater capability are
    skipped. Each listing is marked synced or error individually, so one
    rejected offer does not hold back the rest.
    """

    name = "stock_sync"

    def __init__(
        self,
        registry: ProviderRegistry,
        vault: CredentialVault,
        admin_repo: IntegrationAdminRepository,
        interval: float,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.interval = interval
        self.registry = registry
        self.vault = vault
        self.admin_repo = admin_repo
        self.session_factory = session_factory

    def run(self, stop_event: threading.Event) -> Dict[str, Any]:
        stats = {
            "integrations_checked": 0,
            "integrations_skipped": 0,
            "listings_synced": 0,
            "listings_failed": 0,
            "errors": 0,
        }

        for integration in self.admin_repo.list_active_integrations(self.registry.marketplace_names()):
            if stop_event.is_set():
                break
            stats["integrations_checked"] += 1
            self._sync_integration(integration, stop_event, stats)

        logger.info(f"Stock sync completed: {stats}", extra={"task": self.name})
        return stats

    def _sync_integration(
        self,
        integration: IntegrationRecord,
        stop_event: threading.Event,
        stats: Dict[str, Any],
    ) -> None:
        log_extra = {
            "task": self.name,
            "provider": integration.provider,
            "tenant_id": str(integration.tenant_id),
            "integration_id": str(integration.id),
        }

        try:
            credentials = self.vault.decrypt_json(integration.credentials or "")
            provider = self.registry.build_marketplace(integration.provider, credentials, integration.settings)
        except Exception as e:
            logger.error(f"Cannot prepare provider for integration {integration.id}: {e}", extra=log_extra)
            stats["errors"] += 1
            integration_errors_total.labels(task=self.name, provider=integration.provider, stage="build").inc()
            return

        try:
            if not supports(provider, StockUpdater):
                logger.debug(f"{integration.provider} does not accept stock updates, skipping", extra=log_extra)
                stats["integrations_skipped"] += 1
                return

            provider.stop_event = stop_event
            with tenant_transaction(integration.tenant_id, self.session_factory) as session:
                repo = ListingRepository(session)
                for listing in repo.list_syncable(integration.id):
                    if stop_event.is_set():
                        break
                    listing_extra = dict(log_extra, listing_id=str(listing.id), external_id=listing.external_id)
                    try:
                        provider.update_stock(listing.external_id, int(listing.stock_quantity or 0))
                    except Exception as e:
                        logger.warning(f"Stock update for offer {listing.external_id} failed: {e}", extra=listing_extra)
                        repo.mark_error(listing)
                        stats["listings_failed"] += 1
                        listings_synced_total.labels(provider=integration.provider, status="error").inc()
                        continue
                    repo.mark_synced(listing)
                    stats["listings_synced"] += 1
                    listings_synced_total.labels(provider=integration.provider, status="success").inc()
        except Exception as e:
            logger.error(f"Stock sync failed for integration {integration.id}: {e}", exc_info=True, extra=log_extra)
            stats["errors"] += 1
            integration_errors_total.labels(task=self.name, provider=integration.provider, stage="stock").inc()
        finally:
            provider.close()
