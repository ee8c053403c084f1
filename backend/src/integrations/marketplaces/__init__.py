"""Marketplace provider implementations."""

from .allegro import AllegroProvider, allegro_token_url
from .amazon import AmazonProvider
from .ebay import EbayProvider
from .erli import ErliProvider
from .kaufland import KauflandProvider
from .mirakl import MiraklProvider
from .olx import OLXProvider
from .woocommerce import WooCommerceProvider

__all__ = [
    "AllegroProvider",
    "allegro_token_url",
    "AmazonProvider",
    "EbayProvider",
    "ErliProvider",
    "KauflandProvider",
    "MiraklProvider",
    "OLXProvider",
    "WooCommerceProvider",
]
