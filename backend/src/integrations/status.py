"""Status mapping from provider-native strings to canonical statuses."""

from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from models.order import OrderStatus
from models.shipment import ShipmentStatus

ORDER_STATUSES: FrozenSet[str] = frozenset(OrderStatus.ALL)
SHIPMENT_STATUSES: FrozenSet[str] = frozenset(ShipmentStatus.ALL)


class StatusMapper:
    """
    Pure lookup table translating native statuses into a canonical vocabulary.

    Every target value is checked against the vocabulary at construction, so
    a typo in a table fails at import time rather than writing a bogus
    status into the database.

    Example:
        mapper = StatusMapper({"DELIVERED": "delivered"}, SHIPMENT_STATUSES)
        mapper.map("DELIVERED")   # ("delivered", True)
        mapper.map("???")         # (None, False)
    """

    def __init__(self, table: Dict[str, str], vocabulary: Iterable[str], case_sensitive: bool = True):
        vocabulary = frozenset(vocabulary)
        invalid = sorted({v for v in table.values() if v not in vocabulary})
        if invalid:
            raise ValueError(f"Status table maps to unknown canonical statuses: {', '.join(invalid)}")

        self.case_sensitive = case_sensitive
        self.vocabulary = vocabulary
        self._table = dict(table) if case_sensitive else {k.lower(): v for k, v in table.items()}

    def map(self, native_status: str) -> Tuple[Optional[str], bool]:
        key = native_status if self.case_sensitive else (native_status or "").lower()
        canonical = self._table.get(key)
        if canonical is None:
            return None, False
        return canonical, True

    def native_statuses(self) -> FrozenSet[str]:
        return frozenset(self._table)


def order_status_mapper(table: Dict[str, str], case_sensitive: bool = True) -> StatusMapper:
    return StatusMapper(table, ORDER_STATUSES, case_sensitive=case_sensitive)


def shipment_status_mapper(table: Dict[str, str], case_sensitive: bool = True) -> StatusMapper:
    return StatusMapper(table, SHIPMENT_STATUSES, case_sensitive=case_sensitive)
