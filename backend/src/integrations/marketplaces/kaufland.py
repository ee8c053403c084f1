"""
Kaufland Seller API marketplace provider

Kaufland exposes order units (one per purchased item); units are grouped by
id_order into one normalized order each. Every request is signed with
HMAC-SHA256 over "METHOD\\nURL\\nBODY\\nTIMESTAMP".
"""

import hashlib
import hmac
import json
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from ..base_provider import BaseProvider
from ..parsing import format_rfc3339, latest_timestamp, parse_datetime, to_decimal, to_int
from ..ports import Address, Customer, MarketplaceProvider, NormalizedOrder, OrderItem, ProviderConfigError
from ..status import order_status_mapper

API_URL = "https://sellerapi.kaufland.com/v2"

KAUFLAND_STATUS_MAPPER = order_status_mapper({
    "open": "pending",
    "need_to_be_sent": "confirmed",
    "received": "confirmed",
    "sent": "shipped",
    "sent_and_autopaid": "shipped",
    "returned": "returned",
    "return_requested": "returned",
    "cancelled": "cancelled",
})

PAID_STATUSES = frozenset({"received", "sent", "returned"})


def sign_request(secret_key: str, method: str, full_url: str, body: bytes, timestamp: str) -> str:
    """Hex HMAC-SHA256 signature Kaufland expects in the Shop-Signature header."""
    message = "\n".join([method, full_url, body.decode("utf-8"), timestamp])
    return hmac.new(secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def _street(block: Dict[str, Any]) -> str:
    street = block.get("street", "")
    if block.get("house_number"):
        street += " " + block["house_number"]
    return street


class KauflandProvider(BaseProvider, MarketplaceProvider):
    """Kaufland adapter (orders only).

    Credentials: api_key, secret_key, sandbox (optional, sent as Shop-Storefront).
    Cursor: the latest ts_created_iso of any fetched unit.
    """

    provider_name = "kaufland"
    status_mapper = KAUFLAND_STATUS_MAPPER

    def __init__(
        self,
        credentials: Dict[str, Any],
        settings: Optional[Dict[str, Any]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        **kwargs: Any,
    ):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["api_key", "secret_key"])
        self.api_url = self.settings.get("api_url") or API_URL
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _signed(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, body: Any = None) -> Any:
        full_url = str(httpx.URL(f"{self.api_url}{path}", params=params or {}))
        payload = json.dumps(body).encode("utf-8") if body is not None else b""
        timestamp = format_rfc3339(self.clock())

        headers = {
            "Shop-Client-Key": self.credentials["api_key"],
            "Shop-Timestamp": timestamp,
            "Shop-Signature": sign_request(self.credentials["secret_key"], method, full_url, payload, timestamp),
        }
        if payload:
            headers["Content-Type"] = "application/json"
        if self.sandbox:
            headers["Shop-Storefront"] = "sandbox"

        return self.request_json(method, full_url, headers=headers, content=payload or None)

    def poll_orders(self, cursor: str) -> Tuple[List[NormalizedOrder], str]:
        params: Dict[str, Any] = {"limit": 50, "sort": "ts_created_iso:asc"}
        if cursor:
            params["ts_created_from_iso"] = cursor

        units = (self._signed("GET", "/order-units", params=params) or {}).get("data") or []
        if not units:
            return [], cursor

        grouped: "OrderedDict[int, List[Dict[str, Any]]]" = OrderedDict()
        for unit in units:
            grouped.setdefault(to_int(unit.get("id_order")), []).append(unit)

        orders: List[NormalizedOrder] = []
        new_cursor = cursor
        for order_id in sorted(grouped):
            group = grouped[order_id]
            orders.append(self._map_order(order_id, group))
            for unit in group:
                new_cursor = latest_timestamp(new_cursor, unit.get("ts_created_iso"))

        return orders, new_cursor

    def get_order(self, external_id: str) -> NormalizedOrder:
        try:
            unit_id = int(external_id)
        except ValueError:
            raise ProviderConfigError(f"kaufland: invalid order unit ID {external_id!r}")
        unit = (self._signed("GET", f"/order-units/{unit_id}") or {}).get("data") or {}
        return self._map_order(to_int(unit.get("id_order")), [unit])

    def _map_order(self, order_id: int, units: List[Dict[str, Any]]) -> NormalizedOrder:
        first = units[0]
        shipping = first.get("shipping_address") or {}
        billing = first.get("billing_address") or {}
        email = (first.get("buyer") or {}).get("email", "")
        status = first.get("status", "")

        customer_name = f"{shipping.get('first_name', '')} {shipping.get('last_name', '')}".strip()

        order = NormalizedOrder(
            external_id=str(order_id),
            external_status=status,
            customer=Customer(name=customer_name, email=email, phone=shipping.get("phone", "")),
            shipping_address=Address(
                name=customer_name,
                street=_street(shipping),
                city=shipping.get("city", ""),
                postal_code=shipping.get("postcode", ""),
                country=shipping.get("country", ""),
                phone=shipping.get("phone", ""),
                email=email,
            ),
            billing_address=Address(
                name=f"{billing.get('first_name', '')} {billing.get('last_name', '')}".strip(),
                street=_street(billing),
                city=billing.get("city", ""),
                postal_code=billing.get("postcode", ""),
                country=billing.get("country", ""),
                phone=billing.get("phone", ""),
                email=email,
            ),
            currency=first.get("currency") or "EUR",
            payment_status="paid" if status in PAID_STATUSES else "pending",
            ordered_at=parse_datetime(first.get("ts_created_iso")),
            raw_data={"kaufland_order_id": order_id, "kaufland_status": status},
        )

        total = Decimal("0")
        for unit in units:
            item = unit.get("item") or {}
            quantity = to_int(unit.get("quantity"), 1)
            unit_price = to_decimal(unit.get("price"))
            line_total = unit_price * quantity
            total += line_total
            eans = item.get("eans") or []
            order.items.append(OrderItem(
                external_id=str(unit.get("id_order_unit", "")),
                name=item.get("title", ""),
                ean=eans[0] if eans else item.get("ean", ""),
                quantity=quantity,
                unit_price=unit_price,
                total_price=line_total,
            ))
        order.total_amount = total

        return order
