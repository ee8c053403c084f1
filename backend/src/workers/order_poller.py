"""Order Poller - imports new marketplace orders incrementally.

One OrderPoller runs per marketplace provider. Each run walks the active
integrations of that provider, asks the marketplace for orders newer than
the stored cursor and inserts the ones not seen before. Duplicates are
detected by the (tenant_id, source, external_id) key, so re-delivered
orders are a no-op.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError

from database import SessionFactory, tenant_transaction
from infrastructure.encryption import CredentialVault
from infrastructure.repositories import (
    IntegrationAdminRepository,
    IntegrationRecord,
    OrderRepository,
    ShipmentRepository,
)
from integrations.ports import MarketplaceProvider, NormalizedOrder
from integrations.registry import ProviderRegistry
from models import Order, OrderStatus, PaymentStatus, Shipment, ShipmentStatus
from observability import integration_errors_total, orders_duplicate_total, orders_imported_total

from .base import SyncTask

logger = logging.getLogger(__name__)

OrderMapper = Callable[[NormalizedOrder, IntegrationRecord, MarketplaceProvider], Order]


def default_order_mapper(
    normalized: NormalizedOrder,
    integration: IntegrationRecord,
    provider: MarketplaceProvider,
) -> Order:
    """Map a normalized marketplace order onto a new Order row.

    Unknown native statuses land as pending. Delivery details come from the
    provider's raw_data extras when present.
    """
    status, ok = provider.map_status(normalized.external_status)
    if not ok:
        status = OrderStatus.PENDING

    raw = normalized.raw_data or {}
    return Order(
        tenant_id=integration.tenant_id,
        integration_id=integration.id,
        source=integration.provider,
        external_id=normalized.external_id,
        status=status,
        external_status=normalized.external_status,
        customer_name=normalized.customer.name or None,
        customer_email=normalized.customer.email or None,
        customer_phone=normalized.customer.phone or None,
        shipping_address=normalized.shipping_address.to_dict(),
        billing_address=normalized.billing_address.to_dict() if normalized.billing_address else None,
        items=[item.to_dict() for item in normalized.items],
        total_amount=normalized.total_amount,
        currency=normalized.currency or "PLN",
        payment_status=normalized.payment_status or PaymentStatus.PENDING,
        payment_method=normalized.payment_method or None,
        delivery_method=raw.get("delivery_method_name") or raw.get("delivery_method") or None,
        pickup_point_id=raw.get("pickup_point_id") or None,
        fulfillment_channel=raw.get("fulfillment_channel") or None,
        customer_note=raw.get("customer_note") or None,
        ordered_at=normalized.ordered_at,
        metadata_={
            "external_id": normalized.external_id,
            "external_status": normalized.external_status,
            "integration_id": str(integration.id),
        },
        tags=[],
    )


def resolve_carrier(settings: Dict[str, Any], delivery_method: Optional[str]) -> Optional[str]:
    """Pick the carrier for an auto-created shipment.

    A carrier_mapping key matches when it occurs, case-insensitively, in the
    order's delivery method name. Keys are tried in sorted order, then
    default_carrier applies.
    """
    mapping = settings.get("carrier_mapping") or {}
    if delivery_method and isinstance(mapping, dict):
        method = delivery_method.lower()
        for key in sorted(mapping):
            if key and key.lower() in method:
                return mapping[key]
    return settings.get("default_carrier") or None


class OrderPoller(SyncTask):
    """
    Periodic order import for one marketplace provider.

    Per integration: decrypt credentials, build the provider, poll once from
    the stored cursor, insert new orders in tenant transactions, store the
    cursor when it moved. Failures skip the integration (or the single order)
    and are retried on the next run; there is no retry inside a run.
    """

    def __init__(
        self,
        provider_name: str,
        registry: ProviderRegistry,
        vault: CredentialVault,
        admin_repo: IntegrationAdminRepository,
        interval: float,
        session_factory: Optional[SessionFactory] = None,
        order_mapper: Optional[OrderMapper] = None,
    ):
        self.provider_name = provider_name
        self.name = f"{provider_name}_order_poller"
        self.interval = interval
        self.registry = registry
        self.vault = vault
        self.admin_repo = admin_repo
        self.session_factory = session_factory
        self.order_mapper = order_mapper or default_order_mapper

    def run(self, stop_event: threading.Event) -> Dict[str, Any]:
        stats = {
            "integrations_checked": 0,
            "orders_imported": 0,
            "orders_skipped": 0,
            "errors": 0,
        }

        for integration in self.admin_repo.list_active_integrations([self.provider_name]):
            if stop_event.is_set():
                break
            stats["integrations_checked"] += 1
            self._sync_integration(integration, stop_event, stats)

        logger.info(f"{self.name} completed: {stats}", extra={"task": self.name, "provider": self.provider_name})
        return stats

    def _error(self, stage: str, stats: Dict[str, Any]) -> None:
        stats["errors"] += 1
        integration_errors_total.labels(task=self.name, provider=self.provider_name, stage=stage).inc()

    def _sync_integration(
        self,
        integration: IntegrationRecord,
        stop_event: threading.Event,
        stats: Dict[str, Any],
    ) -> None:
        log_extra = {
            "task": self.name,
            "provider": self.provider_name,
            "tenant_id": str(integration.tenant_id),
            "integration_id": str(integration.id),
        }

        try:
            credentials = self.vault.decrypt_json(integration.credentials or "")
        except Exception as e:
            logger.error(f"Cannot decrypt credentials for integration {integration.id}: {e}", extra=log_extra)
            self._error("decrypt", stats)
            return

        try:
            provider = self.registry.build_marketplace(self.provider_name, credentials, integration.settings)
        except Exception as e:
            logger.error(f"Cannot build provider for integration {integration.id}: {e}", extra=log_extra)
            self._error("build", stats)
            return

        try:
            provider.stop_event = stop_event
            cursor = integration.sync_cursor or ""

            try:
                orders, new_cursor = provider.poll_orders(cursor)
            except Exception as e:
                logger.error(
                    f"Polling orders failed for integration {integration.id}: {e}",
                    exc_info=True,
                    extra=log_extra,
                )
                self._error("poll", stats)
                return

            for normalized in orders:
                if stop_event.is_set():
                    # Leave the cursor so the unprocessed orders come back next run
                    logger.info(f"Stop requested, leaving cursor of integration {integration.id}", extra=log_extra)
                    return
                self._import_order(provider, integration, normalized, stats, log_extra)

            if new_cursor != cursor:
                try:
                    self.admin_repo.update_sync_cursor(integration.id, new_cursor)
                except Exception as e:
                    logger.error(
                        f"Storing cursor failed for integration {integration.id}: {e}",
                        exc_info=True,
                        extra=log_extra,
                    )
                    self._error("cursor", stats)
        finally:
            provider.close()

    def _import_order(
        self,
        provider: MarketplaceProvider,
        integration: IntegrationRecord,
        normalized: NormalizedOrder,
        stats: Dict[str, Any],
        log_extra: Dict[str, Any],
    ) -> None:
        order_extra = dict(log_extra, external_id=normalized.external_id)
        try:
            with tenant_transaction(integration.tenant_id, self.session_factory) as session:
                repo = OrderRepository(session)
                if repo.find_by_external_id(integration.provider, normalized.external_id) is not None:
                    created = None
                else:
                    created = repo.create(self.order_mapper(normalized, integration, provider))
                    order_id = created.id
                    delivery_method = created.delivery_method
                    pickup_point_id = created.pickup_point_id
        except IntegrityError:
            # Inserted concurrently by another run; same outcome as a duplicate
            created = None
        except Exception as e:
            logger.error(f"Importing order {normalized.external_id} failed: {e}", exc_info=True, extra=order_extra)
            self._error("order", stats)
            return

        if created is None:
            stats["orders_skipped"] += 1
            orders_duplicate_total.labels(provider=self.provider_name).inc()
            logger.debug(f"Order {normalized.external_id} already imported", extra=order_extra)
            return

        stats["orders_imported"] += 1
        orders_imported_total.labels(provider=self.provider_name).inc()
        logger.info(f"Imported order {normalized.external_id}", extra=order_extra)

        if integration.settings.get("auto_create_shipment"):
            self._auto_create_shipment(integration, order_id, delivery_method, pickup_point_id, order_extra)

    def _auto_create_shipment(
        self,
        integration: IntegrationRecord,
        order_id: Any,
        delivery_method: Optional[str],
        pickup_point_id: Optional[str],
        log_extra: Dict[str, Any],
    ) -> None:
        """Insert a 'created' shipment for a new order. Best effort."""
        carrier = resolve_carrier(integration.settings, delivery_method)
        if not carrier:
            logger.warning(
                f"No carrier resolved for delivery method {delivery_method!r}, shipment not created",
                extra=log_extra,
            )
            return

        carrier_data: Dict[str, Any] = {}
        if pickup_point_id:
            carrier_data["target_point"] = pickup_point_id

        try:
            with tenant_transaction(integration.tenant_id, self.session_factory) as session:
                shipment = ShipmentRepository(session).create(Shipment(
                    order_id=order_id,
                    provider=carrier,
                    status=ShipmentStatus.CREATED,
                    carrier_data=carrier_data,
                ))
                shipment_id = shipment.id
        except Exception as e:
            logger.error(f"Auto-creating {carrier} shipment failed: {e}", exc_info=True, extra=log_extra)
            return

        logger.info(
            f"Auto-created {carrier} shipment for order {order_id}",
            extra=dict(log_extra, shipment_id=str(shipment_id)),
        )
