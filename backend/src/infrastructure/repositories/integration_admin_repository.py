"""Administrative (cross-tenant) data access for sync bookkeeping.

Everything in this module reads or writes across tenants without a tenant
context: listing integrations to sync, storing sync cursors and refreshed
credentials, and finding shipments to track. Tenant-owned business data is
written only through database.tenant_transaction() and the tenant
repositories.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, select, update

from database import SessionFactory, get_db_session
from models import Integration, IntegrationStatus, Shipment, ShipmentStatus, utc_now

logger = logging.getLogger(__name__)


@dataclass
class IntegrationRecord:
    """Detached snapshot of an integration row."""
    id: UUID
    tenant_id: UUID
    provider: str
    credentials: Optional[str]
    settings: Dict[str, Any] = field(default_factory=dict)
    sync_cursor: Optional[str] = None


@dataclass
class TrackableShipment:
    """Open shipment with the credentials of its carrier integration."""
    id: UUID
    tenant_id: UUID
    provider: str
    tracking_number: str
    status: str
    carrier_data: Dict[str, Any] = field(default_factory=dict)
    credentials: Optional[str] = None
    settings: Dict[str, Any] = field(default_factory=dict)


class IntegrationAdminRepository:
    """Cross-tenant repository used by the sync tasks.

    Opens one short session per call so no connection is held for a whole
    task run.
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self.session_factory = session_factory

    def list_active_integrations(self, providers: Iterable[str]) -> List[IntegrationRecord]:
        """List active integrations of the given providers across all tenants.

        Args:
            providers: Provider names to include

        Returns:
            Integration snapshots ordered by creation time
        """
        providers = list(providers)
        if not providers:
            return []

        with get_db_session(self.session_factory) as session:
            rows = session.execute(
                select(Integration)
                .where(
                    Integration.status == IntegrationStatus.ACTIVE,
                    Integration.provider.in_(providers),
                )
                .order_by(Integration.created_at, Integration.id)
            ).scalars().all()

            return [
                IntegrationRecord(
                    id=row.id,
                    tenant_id=row.tenant_id,
                    provider=row.provider,
                    credentials=row.credentials,
                    settings=dict(row.settings or {}),
                    sync_cursor=row.sync_cursor,
                )
                for row in rows
            ]

    def update_sync_cursor(self, integration_id: UUID, cursor: str) -> None:
        """Store a new sync cursor and stamp last_sync_at."""
        now = utc_now()
        with get_db_session(self.session_factory) as session:
            session.execute(
                update(Integration)
                .where(Integration.id == integration_id)
                .values(sync_cursor=cursor, last_sync_at=now, updated_at=now)
            )
        logger.debug(f"Advanced sync cursor of integration {integration_id}")

    def update_credentials(self, integration_id: UUID, encrypted_credentials: str) -> None:
        """Overwrite the encrypted credential blob of an integration."""
        with get_db_session(self.session_factory) as session:
            session.execute(
                update(Integration)
                .where(Integration.id == integration_id)
                .values(credentials=encrypted_credentials, updated_at=utc_now())
            )

    def list_trackable_shipments(self) -> List[TrackableShipment]:
        """List shipments with a tracking number and a non-terminal status.

        Each shipment is joined to its integration's credentials and settings
        when that integration is active; otherwise credentials are None.
        """
        with get_db_session(self.session_factory) as session:
            rows = session.execute(
                select(
                    Shipment.id,
                    Shipment.tenant_id,
                    Shipment.provider,
                    Shipment.tracking_number,
                    Shipment.status,
                    Shipment.carrier_data,
                    Integration.credentials,
                    Integration.settings,
                )
                .outerjoin(
                    Integration,
                    and_(
                        Integration.id == Shipment.integration_id,
                        Integration.status == IntegrationStatus.ACTIVE,
                    ),
                )
                .where(
                    Shipment.tracking_number.is_not(None),
                    Shipment.tracking_number != "",
                    Shipment.status.not_in(sorted(ShipmentStatus.TERMINAL)),
                )
                .order_by(Shipment.created_at, Shipment.id)
            ).all()

            return [
                TrackableShipment(
                    id=row.id,
                    tenant_id=row.tenant_id,
                    provider=row.provider,
                    tracking_number=row.tracking_number,
                    status=row.status,
                    carrier_data=dict(row.carrier_data or {}),
                    credentials=row.credentials,
                    settings=dict(row.settings or {}),
                )
                for row in rows
            ]
