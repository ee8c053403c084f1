"""
Provider Registry - resolution of provider names to adapter factories

The registry is built once by the process root from an explicit
registration table and then passed to every task that needs it. It holds
no module-level state, so tests build their own registries freely.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .ports import CarrierProvider, MarketplaceProvider, UnknownProviderError

MarketplaceFactory = Callable[[Dict[str, Any], Dict[str, Any]], MarketplaceProvider]
CarrierFactory = Callable[[Dict[str, Any], Dict[str, Any]], CarrierProvider]


def _build_table(kind: str, entries: Iterable[Tuple[str, Callable]]) -> Dict[str, Callable]:
    table: Dict[str, Callable] = {}
    for name, factory in entries:
        if not name or not name.strip():
            raise ValueError(f"{kind} provider name cannot be empty")
        if not callable(factory):
            raise ValueError(f"{kind} provider '{name}' factory is not callable")
        if name in table:
            raise ValueError(f"{kind} provider '{name}' is registered more than once")
        table[name] = factory
    return table


class ProviderRegistry:
    """
    Registry for marketplace and carrier provider factories.

    A factory takes (credentials, settings) and returns a ready provider. It
    validates credentials and raises ProviderConfigError before any network
    I/O.

    Usage:
        registry = ProviderRegistry(
            marketplaces=[("allegro", AllegroProvider)],
            carriers=[("inpost", InPostProvider)],
        )
        provider = registry.build_marketplace("allegro", credentials, settings)
        orders, cursor = provider.poll_orders(cursor)

    Thread-safety: the tables are never mutated after construction, so
    concurrent lookups from worker threads need no locking.
    """

    def __init__(
        self,
        marketplaces: Iterable[Tuple[str, MarketplaceFactory]] = (),
        carriers: Iterable[Tuple[str, CarrierFactory]] = (),
    ):
        """
        Build the registry.

        Args:
            marketplaces: (name, factory) pairs for marketplace providers
            carriers: (name, factory) pairs for carrier providers

        Raises:
            ValueError: If a name is empty or appears twice within one kind
        """
        self._marketplaces = _build_table("marketplace", marketplaces)
        self._carriers = _build_table("carrier", carriers)

    def build_marketplace(
        self,
        name: str,
        credentials: Dict[str, Any],
        settings: Optional[Dict[str, Any]] = None,
    ) -> MarketplaceProvider:
        """
        Build a marketplace provider instance.

        Raises:
            UnknownProviderError: If name is not registered
            ProviderConfigError: If credentials are missing required fields
        """
        factory = self._marketplaces.get(name)
        if factory is None:
            raise UnknownProviderError(
                f"Unknown marketplace provider: '{name}'. "
                f"Available providers: {self._available(self._marketplaces)}"
            )
        return factory(credentials, settings or {})

    def build_carrier(
        self,
        name: str,
        credentials: Dict[str, Any],
        settings: Optional[Dict[str, Any]] = None,
    ) -> CarrierProvider:
        """
        Build a carrier provider instance.

        Raises:
            UnknownProviderError: If name is not registered
            ProviderConfigError: If credentials are missing required fields
        """
        factory = self._carriers.get(name)
        if factory is None:
            raise UnknownProviderError(
                f"Unknown carrier provider: '{name}'. "
                f"Available providers: {self._available(self._carriers)}"
            )
        return factory(credentials, settings or {})

    def marketplace_names(self) -> List[str]:
        return sorted(self._marketplaces)

    def carrier_names(self) -> List[str]:
        return sorted(self._carriers)

    def has_marketplace(self, name: str) -> bool:
        return name in self._marketplaces

    def has_carrier(self, name: str) -> bool:
        return name in self._carriers

    @staticmethod
    def _available(table: Dict[str, Callable]) -> str:
        return ', '.join(sorted(table)) if table else 'none'
