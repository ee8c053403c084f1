"""Erli.pl marketplace provider."""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from ..base_provider import BaseProvider
from ..parsing import parse_datetime, to_decimal, to_int
from ..ports import (
    Address,
    Customer,
    MarketplaceProvider,
    NormalizedOrder,
    OfferPublisher,
    OrderItem,
    PriceUpdater,
    StockUpdater,
)
from ..status import order_status_mapper

API_URL = "https://api.erli.pl/v2"
SANDBOX_API_URL = "https://api-sandbox.erli.pl/v2"

ERLI_STATUS_MAPPER = order_status_mapper({
    "pending": "pending",
    "purchased": "pending",
    "paid": "confirmed",
    "readyToSend": "confirmed",
    "sent": "shipped",
    "delivered": "delivered",
    "cancelled": "cancelled",
    "returned": "returned",
})


class ErliProvider(BaseProvider, MarketplaceProvider, OfferPublisher, StockUpdater, PriceUpdater):
    """Erli adapter.

    Credentials: api_token, sandbox (optional).
    Cursor: the pagination token from meta.nextCursor; unchanged when absent.
    Products are keyed by the seller's own externalId.
    """

    provider_name = "erli"
    status_mapper = ERLI_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["api_token"])
        self.api_url = SANDBOX_API_URL if self.sandbox else API_URL

    def default_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self.credentials['api_token']}"}

    def poll_orders(self, cursor: str) -> Tuple[List[NormalizedOrder], str]:
        params = {"cursor": cursor} if cursor else None
        data = self.request_json("GET", f"{self.api_url}/orders", params=params) or {}
        raw_orders = data.get("data") or []
        if not raw_orders:
            return [], cursor

        orders = [self._map_order(raw) for raw in raw_orders]
        next_cursor = (data.get("meta") or {}).get("nextCursor")
        return orders, next_cursor or cursor

    def get_order(self, external_id: str) -> NormalizedOrder:
        return self._map_order(self.request_json("GET", f"{self.api_url}/orders/{external_id}") or {})

    def push_offer(self, listing_data: Dict[str, Any]) -> str:
        self.request("POST", f"{self.api_url}/products", json=listing_data)
        return str(listing_data.get("externalId", ""))

    def update_stock(self, external_offer_id: str, quantity: int) -> None:
        self.request("PATCH", f"{self.api_url}/products/{external_offer_id}", json={"stock": quantity})

    def update_price(self, external_offer_id: str, price: Decimal) -> None:
        self.request("PATCH", f"{self.api_url}/products/{external_offer_id}", json={"price": float(price)})

    def _map_order(self, raw: Dict[str, Any]) -> NormalizedOrder:
        address = raw.get("address") or {}
        status = raw.get("status", "")

        order = NormalizedOrder(
            external_id=str(raw.get("id", "")),
            external_status=status,
            customer=Customer(
                name=raw.get("buyerName", ""),
                email=raw.get("buyerEmail", ""),
                phone=raw.get("buyerPhone", ""),
            ),
            shipping_address=Address(
                name=address.get("name", ""),
                street=address.get("street", ""),
                city=address.get("city", ""),
                postal_code=address.get("postCode", ""),
                country=address.get("country", ""),
                phone=raw.get("buyerPhone", ""),
                email=raw.get("buyerEmail", ""),
            ),
            total_amount=to_decimal(raw.get("totalAmount")),
            currency=raw.get("currency") or "PLN",
            payment_status=raw.get("paymentStatus") or "",
            ordered_at=parse_datetime(raw.get("createdAt")),
            raw_data={"erli_status": status},
        )

        delivery = raw.get("delivery") or {}
        if delivery.get("name"):
            order.raw_data["delivery_method_name"] = delivery["name"]
        if delivery.get("pickupPointId"):
            order.raw_data["pickup_point_id"] = delivery["pickupPointId"]

        for item in raw.get("items") or []:
            quantity = to_int(item.get("quantity"), 1)
            price = to_decimal(item.get("price"))
            order.items.append(OrderItem(
                external_id=str(item.get("id", "")),
                name=item.get("name", ""),
                sku=item.get("sku") or "",
                quantity=quantity,
                unit_price=price,
                total_price=price * quantity,
            ))

        return order
