"""Tracking Poller - follows open shipments at their carriers.

Every 10 minutes, reads shipments that have a tracking number and a
non-terminal status, asks the carrier for tracking events and stores the
canonical status of the latest event when it differs from the stored one.
"""

import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from database import SessionFactory, tenant_transaction
from infrastructure.encryption import CredentialVault
from infrastructure.repositories import IntegrationAdminRepository, ShipmentRepository, TrackableShipment
from integrations.ports import CarrierProvider
from integrations.registry import ProviderRegistry
from observability import integration_errors_total, shipment_status_updates_total

from .base import SyncTask

logger = logging.getLogger(__name__)


def group_shipments(
    shipments: List[TrackableShipment],
) -> "OrderedDict[Tuple[str, Optional[str]], List[TrackableShipment]]":
    """Group shipments by (carrier, encrypted credentials), keeping read order."""
    groups: "OrderedDict[Tuple[str, Optional[str]], List[TrackableShipment]]" = OrderedDict()
    for shipment in shipments:
        groups.setdefault((shipment.provider, shipment.credentials), []).append(shipment)
    return groups


class TrackingPoller(SyncTask):
    """
    Periodic tracking refresh for carrier shipments.

    Credentials are decrypted and the carrier built once per group of
    shipments sharing them. A shipment gets exactly one write when its
    mapped status changed and none otherwise.
    """

    name = "tracking_poller"

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
        stats = {"shipments_checked": 0, "updated": 0, "errors": 0}

        for (provider_name, encrypted), shipments in group_shipments(self.admin_repo.list_trackable_shipments()).items():
            if stop_event.is_set():
                break

            if not encrypted:
                logger.warning(
                    f"No active {provider_name} integration for {len(shipments)} shipment(s), skipping",
                    extra={"task": self.name, "provider": provider_name},
                )
                continue

            provider = self._build_carrier(provider_name, encrypted, shipments[0], stats)
            if provider is None:
                continue

            try:
                for shipment in shipments:
                    if stop_event.is_set():
                        break
                    stats["shipments_checked"] += 1
                    self._track_shipment(provider, shipment, stats)
            finally:
                provider.close()

        logger.info(f"Tracking poll completed: {stats}", extra={"task": self.name})
        return stats

    def _build_carrier(
        self,
        provider_name: str,
        encrypted: str,
        first: TrackableShipment,
        stats: Dict[str, Any],
    ) -> Optional[CarrierProvider]:
        log_extra = {"task": self.name, "provider": provider_name, "tenant_id": str(first.tenant_id)}
        try:
            credentials = self.vault.decrypt_json(encrypted)
        except Exception as e:
            logger.error(f"Cannot decrypt {provider_name} credentials: {e}", extra=log_extra)
            stats["errors"] += 1
            integration_errors_total.labels(task=self.name, provider=provider_name, stage="decrypt").inc()
            return None

        try:
            return self.registry.build_carrier(provider_name, credentials, first.settings)
        except Exception as e:
            logger.error(f"Cannot build carrier {provider_name}: {e}", extra=log_extra)
            stats["errors"] += 1
            integration_errors_total.labels(task=self.name, provider=provider_name, stage="build").inc()
            return None

    def _track_shipment(self, provider: CarrierProvider, shipment: TrackableShipment, stats: Dict[str, Any]) -> None:
        log_extra = {
            "task": self.name,
            "provider": shipment.provider,
            "tenant_id": str(shipment.tenant_id),
            "shipment_id": str(shipment.id),
        }

        try:
            events = provider.get_tracking(shipment.tracking_number)
        except Exception as e:
            logger.error(
                f"Tracking {shipment.tracking_number} failed: {e}",
                exc_info=True,
                extra=log_extra,
            )
            stats["errors"] += 1
            integration_errors_total.labels(task=self.name, provider=shipment.provider, stage="tracking").inc()
            return

        if not events:
            return

        latest = events[-1]
        status, ok = provider.map_status(latest.status)
        if not ok:
            logger.debug(f"Unmapped {shipment.provider} status {latest.status!r}", extra=log_extra)
            return
        if status == shipment.status:
            return

        try:
            with tenant_transaction(shipment.tenant_id, self.session_factory) as session:
                rows = ShipmentRepository(session).update_status(shipment.id, status)
        except Exception as e:
            logger.error(f"Updating shipment status failed: {e}", exc_info=True, extra=log_extra)
            stats["errors"] += 1
            integration_errors_total.labels(task=self.name, provider=shipment.provider, stage="tracking").inc()
            return

        if rows:
            stats["updated"] += 1
            shipment_status_updates_total.labels(provider=shipment.provider, status=status).inc()
            logger.info(f"Shipment {shipment.status} -> {status}", extra=log_extra)
