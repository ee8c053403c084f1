"""Mirakl marketplace provider (any Mirakl-operated marketplace, by base URL)."""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from ..base_provider import BaseProvider
from ..parsing import latest_timestamp, parse_datetime, to_decimal, to_int
from ..ports import (
    Address,
    Customer,
    MarketplaceProvider,
    NormalizedOrder,
    OrderItem,
    PriceUpdater,
    ProviderAPIError,
    StockUpdater,
)
from ..status import order_status_mapper

MIRAKL_STATUS_MAPPER = order_status_mapper({
    "STAGING": "pending",
    "WAITING_ACCEPTANCE": "pending",
    "WAITING_DEBIT": "pending",
    "WAITING_DEBIT_PAYMENT": "pending",
    "SHIPPING": "confirmed",
    "SHIPPED": "shipped",
    "TO_COLLECT": "shipped",
    "RECEIVED": "delivered",
    "CLOSED": "delivered",
    "REFUSED": "cancelled",
    "CANCELED": "cancelled",
    "REFUNDED": "returned",
})

PAID_STATUSES = frozenset({"SHIPPING", "SHIPPED", "TO_COLLECT", "RECEIVED", "CLOSED"})


class MiraklProvider(BaseProvider, MarketplaceProvider, StockUpdater, PriceUpdater):
    """Mirakl seller API adapter. Offers are addressed by shop SKU.

    Credentials: base_url, api_key.
    Cursor: the latest created_date seen.
    """

    provider_name = "mirakl"
    status_mapper = MIRAKL_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["base_url", "api_key"])
        self.api_url = credentials["base_url"].rstrip("/")

    def default_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "Authorization": self.credentials["api_key"]}

    def poll_orders(self, cursor: str) -> Tuple[List[NormalizedOrder], str]:
        params: Dict[str, Any] = {"sort": "dateCreated", "order": "asc", "max": 100}
        if cursor:
            params["start_date"] = cursor

        raw_orders = (self.request_json("GET", f"{self.api_url}/api/orders", params=params) or {}).get("orders") or []
        if not raw_orders:
            return [], cursor

        orders = []
        new_cursor = cursor
        for raw in raw_orders:
            orders.append(self._map_order(raw))
            new_cursor = latest_timestamp(new_cursor, raw.get("created_date"))
        return orders, new_cursor

    def get_order(self, external_id: str) -> NormalizedOrder:
        data = self.request_json("GET", f"{self.api_url}/api/orders", params={"order_ids": external_id}) or {}
        raw_orders = data.get("orders") or []
        if not raw_orders:
            raise ProviderAPIError(f"mirakl: order {external_id} not found", status_code=404)
        return self._map_order(raw_orders[0])

    def _update_offer(self, offer: Dict[str, Any]) -> None:
        offer["update_delete"] = "update"
        self.request("POST", f"{self.api_url}/api/offers", json={"offers": [offer]})

    def update_stock(self, external_offer_id: str, quantity: int) -> None:
        self._update_offer({"shop_sku": external_offer_id, "quantity": quantity})

    def update_price(self, external_offer_id: str, price: Decimal) -> None:
        self._update_offer({"shop_sku": external_offer_id, "price": float(price)})

    def _map_order(self, raw: Dict[str, Any]) -> NormalizedOrder:
        customer = raw.get("customer") or {}
        shipping = customer.get("shipping_address") or {}
        email = customer.get("email", "")
        status = raw.get("order_state", "")

        street = shipping.get("street_1", "")
        if shipping.get("street_2"):
            street += ", " + shipping["street_2"]

        order = NormalizedOrder(
            external_id=raw.get("order_id", ""),
            external_status=status,
            customer=Customer(
                name=f"{customer.get('firstname', '')} {customer.get('lastname', '')}".strip(),
                email=email,
                phone=shipping.get("phone", ""),
            ),
            shipping_address=Address(
                name=f"{shipping.get('firstname', '')} {shipping.get('lastname', '')}".strip(),
                street=street,
                city=shipping.get("city", ""),
                postal_code=shipping.get("zip_code", ""),
                country=shipping.get("country", ""),
                phone=shipping.get("phone", ""),
                email=email,
            ),
            total_amount=to_decimal(raw.get("total_price")),
            currency=raw.get("currency_iso_code") or "EUR",
            payment_status="paid" if status in PAID_STATUSES else "pending",
            payment_method=raw.get("payment_type", ""),
            ordered_at=parse_datetime(raw.get("created_date")),
            raw_data={"mirakl_status": status},
        )

        for line in raw.get("order_lines") or []:
            quantity = to_int(line.get("quantity"), 1)
            price = to_decimal(line.get("price_unit", line.get("price")))
            order.items.append(OrderItem(
                external_id=str(line.get("order_line_id", "")),
                name=line.get("product_title", ""),
                sku=line.get("offer_sku", ""),
                quantity=quantity,
                unit_price=price,
                total_price=price * quantity,
            ))

        return order
