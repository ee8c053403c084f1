"""
Provider catalog - the registration table handed to ProviderRegistry

Adding a provider means adding one line here. Names are the values stored
in integrations.provider and shipments.provider.
"""

from typing import Optional

import httpx

from .base_provider import DEFAULT_TIMEOUT_SECONDS
from .carriers import (
    DHLProvider,
    DPDProvider,
    FedExProvider,
    GLSProvider,
    InPostProvider,
    OrlenPaczkaProvider,
    PocztaPolskaProvider,
    UPSProvider,
)
from .marketplaces import (
    AllegroProvider,
    AmazonProvider,
    EbayProvider,
    ErliProvider,
    KauflandProvider,
    MiraklProvider,
    OLXProvider,
    WooCommerceProvider,
)
from .registry import ProviderRegistry

MARKETPLACES = (
    ("allegro", AllegroProvider),
    ("amazon", AmazonProvider),
    ("ebay", EbayProvider),
    ("erli", ErliProvider),
    ("kaufland", KauflandProvider),
    ("mirakl", MiraklProvider),
    ("olx", OLXProvider),
    ("woocommerce", WooCommerceProvider),
)

CARRIERS = (
    ("dhl", DHLProvider),
    ("dpd", DPDProvider),
    ("fedex", FedExProvider),
    ("gls", GLSProvider),
    ("inpost", InPostProvider),
    ("orlen_paczka", OrlenPaczkaProvider),
    ("poczta_polska", PocztaPolskaProvider),
    ("ups", UPSProvider),
)


def _factory(provider_class, timeout: float, transport: Optional[httpx.BaseTransport]):
    def build(credentials, settings):
        return provider_class(credentials, settings, timeout=timeout, transport=transport)
    return build


def build_registry(
    http_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    transport: Optional[httpx.BaseTransport] = None,
) -> ProviderRegistry:
    """Build the registry of every bundled provider.

    Args:
        http_timeout: Per-request timeout for provider HTTP clients
        transport: httpx transport override (tests pass httpx.MockTransport)
    """
    return ProviderRegistry(
        marketplaces=[(name, _factory(cls, http_timeout, transport)) for name, cls in MARKETPLACES],
        carriers=[(name, _factory(cls, http_timeout, transport)) for name, cls in CARRIERS],
    )
