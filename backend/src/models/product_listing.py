"""ProductListing model - an offer published on a marketplace."""

import uuid

from sqlalchemy import Column, Text, Integer, DateTime, Index, Uuid

from .base import Base, utc_now


class ListingSyncStatus:
    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"


class ProductListing(Base):
    """Marketplace offer whose stock level is pushed by the stock sync task."""

    __tablename__ = "product_listings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False)
    integration_id = Column(Uuid, nullable=False)
    external_id = Column(Text, nullable=True)  # offer id at the marketplace
    status = Column(Text, nullable=False, default="active")
    stock_quantity = Column(Integer, nullable=False, default=0)
    sync_status = Column(Text, nullable=False, default=ListingSyncStatus.PENDING)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("idx_product_listings_integration_status", integration_id, status),
    )

    def __repr__(self):
        return f"<ProductListing(id={self.id}, external_id={self.external_id})>"
