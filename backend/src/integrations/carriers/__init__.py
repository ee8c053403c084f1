"""Carrier provider implementations."""

from .dhl import DHLProvider
from .dpd import DPDProvider
from .fedex import FedExProvider
from .gls import GLSProvider
from .inpost import InPostProvider
from .orlen_paczka import OrlenPaczkaProvider
from .poczta_polska import PocztaPolskaProvider
from .ups import UPSProvider

__all__ = [
    "DHLProvider",
    "DPDProvider",
    "FedExProvider",
    "GLSProvider",
    "InPostProvider",
    "OrlenPaczkaProvider",
    "PocztaPolskaProvider",
    "UPSProvider",
]
