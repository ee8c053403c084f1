"""Repositories: administrative (cross-tenant) and tenant-scoped."""

from .integration_admin_repository import (
    IntegrationAdminRepository,
    IntegrationRecord,
    TrackableShipment,
)
from .tenant_repositories import (
    TenantRepository,
    OrderRepository,
    ShipmentRepository,
    ListingRepository,
)

__all__ = [
    "IntegrationAdminRepository",
    "IntegrationRecord",
    "TrackableShipment",
    "TenantRepository",
    "OrderRepository",
    "ShipmentRepository",
    "ListingRepository",
]
