"""Order model - canonical order rows imported from marketplaces.

Deduplication key: (tenant_id, source, external_id).
"""

import uuid

from sqlalchemy import Column, Text, DateTime, Numeric, Index, Uuid

from .base import Base, PortableJSONB, utc_now


class OrderStatus:
    """Canonical order status vocabulary."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"

    ALL = frozenset({PENDING, CONFIRMED, SHIPPED, DELIVERED, CANCELLED, RETURNED})


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"


class Order(Base):
    """Persisted order.

    Attributes:
        source: Provider the order came from (e.g. 'allegro')
        external_id: Order id at the provider
        status: Canonical status (OrderStatus)
        external_status: Provider's native status string
        shipping_address / billing_address: Address dicts
        items: Line item dicts (amounts stored as decimal strings)
        delivery_method / pickup_point_id / fulfillment_channel / customer_note:
            Provider-specific fields extracted by the order mapper
        metadata_: Free-form JSON (column "metadata")
    """

    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False)
    integration_id = Column(Uuid, nullable=True)
    source = Column(Text, nullable=False)
    external_id = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default=OrderStatus.PENDING)
    external_status = Column(Text, nullable=True)

    customer_name = Column(Text, nullable=True)
    customer_email = Column(Text, nullable=True)
    customer_phone = Column(Text, nullable=True)
    shipping_address = Column(PortableJSONB, nullable=False, default=dict)
    billing_address = Column(PortableJSONB, nullable=True)
    items = Column(PortableJSONB, nullable=False, default=list)

    total_amount = Column(Numeric(18, 4), nullable=False, default=0)
    currency = Column(Text, nullable=False, default="PLN")
    payment_status = Column(Text, nullable=False, default=PaymentStatus.PENDING)
    payment_method = Column(Text, nullable=True)

    delivery_method = Column(Text, nullable=True)
    pickup_point_id = Column(Text, nullable=True)
    fulfillment_channel = Column(Text, nullable=True)
    customer_note = Column(Text, nullable=True)

    ordered_at = Column(DateTime(timezone=True), nullable=True)
    metadata_ = Column("metadata", PortableJSONB, nullable=False, default=dict)
    tags = Column(PortableJSONB, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("uq_orders_tenant_source_external", tenant_id, source, external_id, unique=True),
        Index("idx_orders_tenant_status", tenant_id, status),
    )

    def __repr__(self):
        return f"<Order(id={self.id}, source={self.source}, external_id={self.external_id})>"
