"""Integration model - a tenant's connection to one external provider."""

import uuid

from sqlalchemy import Column, Text, DateTime, Index, Uuid

from .base import Base, PortableJSONB, utc_now


class IntegrationStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"


class IntegrationKind:
    MARKETPLACE = "marketplace"
    CARRIER = "carrier"


class Integration(Base):
    """Tenant integration with a marketplace or carrier.

    Rows are created by tenant admins; the sync engine only reads them and
    updates sync bookkeeping (cursor, last sync time, refreshed credentials).

    Attributes:
        id: Primary key UUID
        tenant_id: Owning tenant
        provider: Registry name of the provider (e.g. 'allegro', 'inpost')
        kind: 'marketplace' or 'carrier'
        status: 'active' or 'inactive'
        credentials: Encrypted credential blob (base64 nonce + ciphertext)
        settings: Provider/tenant specific settings (carrier mapping, ...)
        sync_cursor: Opaque provider cursor, NULL until the first sync
        last_sync_at: When the cursor was last advanced
    """

    __tablename__ = "integrations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False)
    provider = Column(Text, nullable=False)
    kind = Column(Text, nullable=False, default=IntegrationKind.MARKETPLACE)
    status = Column(Text, nullable=False, default=IntegrationStatus.ACTIVE)
    credentials = Column(Text, nullable=True)
    settings = Column(PortableJSONB, nullable=False, default=dict)
    sync_cursor = Column(Text, nullable=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("idx_integrations_provider_status", provider, status),
        Index("uq_integrations_tenant_provider", tenant_id, provider, unique=True),
    )

    def __repr__(self):
        return f"<Integration(id={self.id}, tenant_id={self.tenant_id}, provider={self.provider})>"
