"""Marketplace and carrier integrations.

Ports (provider contracts and normalized records), the provider registry,
status mappers, webhook signatures and the bundled provider catalog.
"""

from .catalog import CARRIERS, MARKETPLACES, build_registry
from .ports import (
    CarrierProvider,
    MarketplaceProvider,
    ProviderAPIError,
    ProviderConfigError,
    ProviderError,
    TokenRefreshError,
    UnknownProviderError,
    UnsupportedCapabilityError,
    require_capability,
    supports,
)
from .registry import ProviderRegistry
from .status import StatusMapper, order_status_mapper, shipment_status_mapper
from .webhooks import compute_webhook_signature, verify_webhook_signature

__all__ = [
    "CARRIERS",
    "MARKETPLACES",
    "build_registry",
    "CarrierProvider",
    "MarketplaceProvider",
    "ProviderAPIError",
    "ProviderConfigError",
    "ProviderError",
    "TokenRefreshError",
    "UnknownProviderError",
    "UnsupportedCapabilityError",
    "require_capability",
    "supports",
    "ProviderRegistry",
    "StatusMapper",
    "order_status_mapper",
    "shipment_status_mapper",
    "compute_webhook_signature",
    "verify_webhook_signature",
]
