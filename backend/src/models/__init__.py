"""SQLAlchemy models used by the sync engine"""

from .base import Base, PortableJSONB, utc_now
from .integration import Integration, IntegrationStatus, IntegrationKind
from .order import Order, OrderStatus, PaymentStatus
from .shipment import Shipment, ShipmentStatus
from .product_listing import ProductListing, ListingSyncStatus

__all__ = [
    "Base",
    "PortableJSONB",
    "utc_now",
    "Integration",
    "IntegrationStatus",
    "IntegrationKind",
    "Order",
    "OrderStatus",
    "PaymentStatus",
    "Shipment",
    "ShipmentStatus",
    "ProductListing",
    "ListingSyncStatus",
]
