"""Tenant-scoped repositories for orders, shipments and listings.

Each repository must be built on a session opened by
database.tenant_transaction(); every query filters by that tenant.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from models import Order, Shipment, ProductListing, ListingSyncStatus, utc_now


class TenantRepository:
    """Base class binding a repository to the session's tenant."""

    def __init__(self, db: Session):
        """Initialize repository with a tenant-scoped session.

        Args:
            db: Session from tenant_transaction()

        Raises:
            RuntimeError: If the session carries no tenant context
        """
        tenant_id = db.info.get("tenant_id")
        if tenant_id is None:
            raise RuntimeError(
                f"{type(self).__name__} requires a session opened with tenant_transaction()"
            )
        self.db = db
        self.tenant_id: UUID = tenant_id


class OrderRepository(TenantRepository):
    """Repository for orders table operations."""

    def find_by_external_id(self, source: str, external_id: str) -> Optional[Order]:
        """Look up an order by its dedup key within the tenant."""
        return self.db.execute(
            select(Order).where(
                Order.tenant_id == self.tenant_id,
                Order.source == source,
                Order.external_id == external_id,
            )
        ).scalar_one_or_none()

    def create(self, order: Order) -> Order:
        order.tenant_id = self.tenant_id
        self.db.add(order)
        self.db.flush()
        return order


class ShipmentRepository(TenantRepository):
    """Repository for shipments table operations."""

    def create(self, shipment: Shipment) -> Shipment:
        shipment.tenant_id = self.tenant_id
        self.db.add(shipment)
        self.db.flush()
        return shipment

    def update_status(self, shipment_id: UUID, status: str) -> int:
        """Set a shipment's canonical status.

        Returns:
            Number of rows updated (0 if the shipment is not in this tenant)
        """
        result = self.db.execute(
            update(Shipment)
            .where(Shipment.id == shipment_id, Shipment.tenant_id == self.tenant_id)
            .values(status=status, updated_at=utc_now())
        )
        return result.rowcount


class ListingRepository(TenantRepository):
    """Repository for product_listings table operations."""

    def list_syncable(self, integration_id: UUID) -> List[ProductListing]:
        """Active listings with a marketplace offer id."""
        return list(self.db.execute(
            select(ProductListing).where(
                ProductListing.tenant_id == self.tenant_id,
                ProductListing.integration_id == integration_id,
                ProductListing.status == "active",
                ProductListing.external_id.is_not(None),
            ).order_by(ProductListing.created_at, ProductListing.id)
        ).scalars().all())

    def mark_synced(self, listing: ProductListing, synced_at: Optional[datetime] = None) -> None:
        listing.sync_status = ListingSyncStatus.SYNCED
        listing.last_synced_at = synced_at or utc_now()

    def mark_error(self, listing: ProductListing) -> None:
        listing.sync_status = ListingSyncStatus.ERROR
