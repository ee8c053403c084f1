"""Shipment model - parcels handed to carriers and tracked by the engine."""

import uuid

from sqlalchemy import Column, Text, DateTime, Index, Uuid

from .base import Base, PortableJSONB, utc_now


class ShipmentStatus:
    """Canonical shipment status vocabulary."""
    CREATED = "created"
    LABEL_READY = "label_ready"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    RETURNED = "returned"
    FAILED = "failed"
    CANCELLED = "cancelled"

    ALL = frozenset({
        CREATED, LABEL_READY, PICKED_UP, IN_TRANSIT, OUT_FOR_DELIVERY,
        DELIVERED, RETURNED, FAILED,
    })

    # No further tracking once a shipment reaches one of these
    TERMINAL = frozenset({DELIVERED, RETURNED, FAILED, CANCELLED})


class Shipment(Base):
    """Shipment of an order with a carrier.

    Attributes:
        provider: Carrier registry name (e.g. 'inpost')
        integration_id: Carrier integration used to create it (may be NULL
            for manually created shipments)
        tracking_number: Carrier tracking number, NULL until known
        status: Canonical status (ShipmentStatus)
        carrier_data: Carrier-specific data (target point, label format, ...)
    """

    __tablename__ = "shipments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False)
    order_id = Column(Uuid, nullable=True)
    integration_id = Column(Uuid, nullable=True)
    provider = Column(Text, nullable=False)
    tracking_number = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default=ShipmentStatus.CREATED)
    carrier_data = Column(PortableJSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("idx_shipments_tenant_status", tenant_id, status),
        Index("idx_shipments_tracking", tracking_number),
    )

    def __repr__(self):
        return f"<Shipment(id={self.id}, provider={self.provider}, status={self.status})>"
