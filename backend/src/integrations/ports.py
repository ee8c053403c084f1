"""
Provider ports - interfaces every marketplace and carrier adapter implements

Sync tasks depend only on these abstractions, never on a concrete provider.
Optional operations are expressed as capability mixins: a provider that can
update stock inherits StockUpdater, and callers branch on supports() instead
of catching "not supported" errors.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from .status import StatusMapper


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ProviderError(Exception):
    """Base exception for provider-related errors."""
    pass


class ProviderConfigError(ProviderError):
    """
    Credentials or settings are missing or malformed.

    Raised at construction time, before any network I/O.
    """
    pass


class ProviderAPIError(ProviderError):
    """Provider API returned an error status or the request failed in transit."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TokenRefreshError(ProviderAPIError):
    """OAuth token endpoint rejected the refresh or returned an unusable body."""
    pass


class UnknownProviderError(ProviderError):
    """No provider is registered under the requested name."""
    pass


class UnsupportedCapabilityError(ProviderError):
    """Provider does not implement a requested optional capability."""
    pass


# ---------------------------------------------------------------------------
# Normalized data
# ---------------------------------------------------------------------------

@dataclass
class Address:
    name: str = ""
    street: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = ""
    phone: str = ""
    email: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "street": self.street,
            "city": self.city,
            "postal_code": self.postal_code,
            "country": self.country,
            "phone": self.phone,
            "email": self.email,
        }


@dataclass
class Customer:
    name: str = ""
    email: str = ""
    phone: str = ""


@dataclass
class OrderItem:
    """Single line of a marketplace order."""
    external_id: str
    name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    sku: str = ""
    ean: str = ""
    tax_rate: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "external_id": self.external_id,
            "name": self.name,
            "sku": self.sku,
            "ean": self.ean,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "total_price": str(self.total_price),
            "tax_rate": str(self.tax_rate) if self.tax_rate is not None else None,
        }


@dataclass
class NormalizedOrder:
    """
    Order as returned by a marketplace, in the common shape.

    Produced fresh by every poll; either inserted as a new Order row or
    discarded as a duplicate.

    Attributes:
        external_id: Marketplace order id (dedup key together with tenant and provider)
        external_status: Native status string, translated by the provider's status mapper
        raw_data: Provider-specific extras (delivery method, pickup point, notes)
    """
    external_id: str
    external_status: str
    customer: Customer = field(default_factory=Customer)
    shipping_address: Address = field(default_factory=Address)
    billing_address: Optional[Address] = None
    items: List[OrderItem] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    currency: str = "PLN"
    payment_status: str = ""
    payment_method: str = ""
    ordered_at: Optional[datetime] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TrackingEvent:
    status: str
    timestamp: Optional[datetime] = None
    location: str = ""
    details: str = ""


@dataclass
class PickupPoint:
    id: str
    name: str
    street: str = ""
    city: str = ""
    postal_code: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    type: str = ""


@dataclass
class CarrierReceiver:
    name: str
    phone: str = ""
    email: str = ""
    street: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = "PL"


@dataclass
class CarrierParcel:
    """Physical parcel. Dimensions in centimetres, weight in kilograms."""
    size_code: str = ""
    weight_kg: Decimal = Decimal("0")
    width_cm: Decimal = Decimal("0")
    height_cm: Decimal = Decimal("0")
    depth_cm: Decimal = Decimal("0")


@dataclass
class CarrierShipmentRequest:
    order_id: str
    receiver: CarrierReceiver
    parcel: CarrierParcel = field(default_factory=CarrierParcel)
    service_type: str = ""
    target_point: str = ""
    sending_method: str = ""
    cod_amount: Decimal = Decimal("0")
    cod_currency: str = ""
    insured_value: Decimal = Decimal("0")
    reference: str = ""


@dataclass
class CarrierShipmentResponse:
    external_id: str
    tracking_number: str
    status: str
    label_url: str = ""


@dataclass
class RateRequest:
    from_postal_code: str = ""
    from_country: str = ""
    to_postal_code: str = ""
    to_country: str = ""
    weight: Decimal = Decimal("0")
    width: Decimal = Decimal("0")
    height: Decimal = Decimal("0")
    length: Decimal = Decimal("0")
    cod: Decimal = Decimal("0")
    is_pickup_point: bool = False

    @property
    def is_domestic(self) -> bool:
        return self.from_country in ("", "PL") and self.to_country in ("", "PL")


@dataclass
class Rate:
    carrier_name: str
    carrier_code: str
    service_name: str
    price: Decimal
    currency: str
    estimated_days: int
    pickup_point: bool = False


@dataclass
class DispatchOrderAddress:
    street: str
    building_number: str
    city: str
    post_code: str
    country_code: str = "PL"


@dataclass
class DispatchOrderContact:
    name: str
    phone: str
    email: str
    comment: str = ""


# ---------------------------------------------------------------------------
# Core interfaces
# ---------------------------------------------------------------------------

class MarketplaceProvider(ABC):
    """
    Abstract interface for marketplace integrations.

    Implementations are built by the ProviderRegistry from decrypted
    credentials and integration settings, one instance per integration per
    task run.
    """

    provider_name: str = ""
    status_mapper: StatusMapper

    @abstractmethod
    def poll_orders(self, cursor: str) -> Tuple[List[NormalizedOrder], str]:
        """
        Fetch orders created or changed since cursor.

        Args:
            cursor: Opaque provider-defined bookmark ("" on first sync)

        Returns:
            Tuple of (orders, new_cursor). new_cursor equals cursor when the
            provider reported no progress.

        Raises:
            ProviderAPIError: If the provider API call fails
        """
        pass

    @abstractmethod
    def get_order(self, external_id: str) -> NormalizedOrder:
        """Fetch a single order by its marketplace id."""
        pass

    def map_status(self, native_status: str) -> Tuple[Optional[str], bool]:
        """Translate a native order status into the canonical order vocabulary."""
        return self.status_mapper.map(native_status)

    def close(self) -> None:
        """Release HTTP resources. Safe to call more than once."""
        pass


class CarrierProvider(ABC):
    """
    Abstract interface for carrier (shipping) integrations.
    """

    provider_name: str = ""
    status_mapper: StatusMapper

    @abstractmethod
    def create_shipment(self, request: CarrierShipmentRequest) -> CarrierShipmentResponse:
        pass

    @abstractmethod
    def get_label(self, external_id: str, format: str = "pdf") -> bytes:
        pass

    @abstractmethod
    def get_tracking(self, tracking_number: str) -> List[TrackingEvent]:
        """
        Fetch tracking events for a parcel.

        Returns:
            Events in chronological order (most recent last)
        """
        pass

    def map_status(self, native_status: str) -> Tuple[Optional[str], bool]:
        """Translate a native carrier status into the canonical shipment vocabulary."""
        return self.status_mapper.map(native_status)

    def supports_pickup_points(self) -> bool:
        return False

    def search_pickup_points(self, query: str) -> List[PickupPoint]:
        return []

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Optional capabilities
# ---------------------------------------------------------------------------

class OfferPublisher(ABC):
    @abstractmethod
    def push_offer(self, listing_data: Dict[str, Any]) -> str:
        """Create an offer on the marketplace and return its external id."""
        pass


class StockUpdater(ABC):
    @abstractmethod
    def update_stock(self, external_offer_id: str, quantity: int) -> None:
        pass


class PriceUpdater(ABC):
    @abstractmethod
    def update_price(self, external_offer_id: str, price: Decimal) -> None:
        pass


class FulfillmentUpdater(ABC):
    """Push order fulfillment state and tracking numbers back to the marketplace."""

    @abstractmethod
    def update_fulfillment(self, external_order_id: str, status: str) -> None:
        pass

    @abstractmethod
    def add_tracking(self, external_order_id: str, carrier_id: str, waybill: str) -> None:
        pass


class ShipmentCanceller(ABC):
    @abstractmethod
    def cancel_shipment(self, external_id: str) -> None:
        pass


class RateQuoter(ABC):
    @abstractmethod
    def get_rates(self, request: RateRequest) -> List[Rate]:
        pass


class DispatchOrderCreator(ABC):
    """Carriers that accept courier pickup requests for already created shipments."""

    @abstractmethod
    def create_dispatch_order(
        self,
        shipment_external_ids: List[str],
        address: DispatchOrderAddress,
        contact: DispatchOrderContact,
    ) -> str:
        pass


C = TypeVar("C")


def supports(provider: Any, capability: Type[Any]) -> bool:
    """
    Check whether a provider implements an optional capability.

    Example:
        if supports(provider, StockUpdater):
            provider.update_stock(offer_id, 5)
    """
    return isinstance(provider, capability)


def require_capability(provider: Any, capability: Type[C]) -> C:
    """
    Return provider typed as the capability, or raise.

    Raises:
        UnsupportedCapabilityError: If provider does not implement capability
    """
    if not isinstance(provider, capability):
        name = getattr(provider, "provider_name", type(provider).__name__)
        raise UnsupportedCapabilityError(
            f"Provider '{name}' does not support {capability.__name__}"
        )
    return provider
