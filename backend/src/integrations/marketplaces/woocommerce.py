"""WooCommerce REST API (wc/v3) marketplace provider."""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from ..base_provider import BaseProvider
from ..parsing import format_amount, parse_datetime, to_decimal, to_int
from ..ports import (
    Address,
    Customer,
    FulfillmentUpdater,
    MarketplaceProvider,
    NormalizedOrder,
    OfferPublisher,
    OrderItem,
    PriceUpdater,
    ProviderConfigError,
    StockUpdater,
)
from ..status import order_status_mapper

WOOCOMMERCE_STATUS_MAPPER = order_status_mapper({
    "pending": "pending",
    "on-hold": "pending",
    "checkout-draft": "pending",
    "processing": "confirmed",
    "completed": "delivered",
    "cancelled": "cancelled",
    "failed": "cancelled",
    "refunded": "returned",
})

PAID_STATUSES = frozenset({"processing", "completed", "on-hold"})

PAGE_SIZE = 50


def _person_name(block: Dict[str, Any]) -> str:
    return f"{block.get('first_name', '')} {block.get('last_name', '')}".strip()


class WooCommerceProvider(
    BaseProvider,
    MarketplaceProvider,
    OfferPublisher,
    StockUpdater,
    PriceUpdater,
    FulfillmentUpdater,
):
    """WooCommerce adapter authenticated with consumer key and secret (HTTP basic).

    Cursor: the latest date_modified seen (store-local ISO timestamp). Orders
    are listed oldest modification first, one page per poll, so a full page
    leaves the rest for the next poll without skipping any.
    """

    provider_name = "woocommerce"
    status_mapper = WOOCOMMERCE_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["store_url", "consumer_key", "consumer_secret"])
        self.api_url = f"{credentials['store_url'].rstrip('/')}/wp-json/wc/v3"
        self.auth = (credentials["consumer_key"], credentials["consumer_secret"])

    def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        return self.request_json(method, f"{self.api_url}{path}", auth=self.auth, **kwargs)

    @staticmethod
    def _numeric_id(value: str, kind: str) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ProviderConfigError(f"woocommerce: invalid {kind} ID {value!r}")

    # -- orders --------------------------------------------------------------

    def poll_orders(self, cursor: str) -> Tuple[List[NormalizedOrder], str]:
        params: Dict[str, Any] = {"per_page": PAGE_SIZE, "orderby": "modified", "order": "asc"}
        if cursor:
            params["modified_after"] = cursor

        raw_orders = self._call("GET", "/orders", params=params) or []
        if not raw_orders:
            return [], cursor

        orders: List[NormalizedOrder] = []
        new_cursor = cursor
        for raw in raw_orders:
            orders.append(self._map_order(raw))
            modified = raw.get("date_modified") or ""
            if modified > new_cursor:
                new_cursor = modified

        return orders, new_cursor

    def get_order(self, external_id: str) -> NormalizedOrder:
        order_id = self._numeric_id(external_id, "order")
        return self._map_order(self._call("GET", f"/orders/{order_id}") or {})

    # -- products ------------------------------------------------------------

    def push_offer(self, listing_data: Dict[str, Any]) -> str:
        created = self._call("POST", "/products", json=listing_data) or {}
        return str(created.get("id", ""))

    def update_stock(self, external_offer_id: str, quantity: int) -> None:
        product_id = self._numeric_id(external_offer_id, "product")
        self._call("PUT", f"/products/{product_id}", json={
            "manage_stock": True,
            "stock_quantity": quantity,
        })

    def update_price(self, external_offer_id: str, price: Decimal) -> None:
        product_id = self._numeric_id(external_offer_id, "product")
        self._call("PUT", f"/products/{product_id}", json={"regular_price": format_amount(price)})

    # -- fulfillment ---------------------------------------------------------

    def update_fulfillment(self, external_order_id: str, status: str) -> None:
        order_id = self._numeric_id(external_order_id, "order")
        self._call("PUT", f"/orders/{order_id}", json={"status": status})

    def add_tracking(self, external_order_id: str, carrier_id: str, waybill: str) -> None:
        order_id = self._numeric_id(external_order_id, "order")
        self._call("POST", f"/orders/{order_id}/notes", json={
            "note": f"Shipment sent with {carrier_id}, tracking number: {waybill}",
            "customer_note": True,
        })

    # -- mapping -------------------------------------------------------------

    def _map_order(self, raw: Dict[str, Any]) -> NormalizedOrder:
        shipping = raw.get("shipping") or {}
        billing = raw.get("billing") or {}
        status = raw.get("status", "")

        customer_name = _person_name(shipping) or _person_name(billing)

        order = NormalizedOrder(
            external_id=str(raw.get("id", "")),
            external_status=status,
            customer=Customer(
                name=customer_name,
                email=billing.get("email", ""),
                phone=billing.get("phone", ""),
            ),
            shipping_address=Address(
                name=_person_name(shipping),
                street=shipping.get("address_1", ""),
                city=shipping.get("city", ""),
                postal_code=shipping.get("postcode", ""),
                country=shipping.get("country", ""),
                phone=billing.get("phone", ""),
                email=billing.get("email", ""),
            ),
            billing_address=Address(
                name=_person_name(billing),
                street=billing.get("address_1", ""),
                city=billing.get("city", ""),
                postal_code=billing.get("postcode", ""),
                country=billing.get("country", ""),
                phone=billing.get("phone", ""),
                email=billing.get("email", ""),
            ),
            total_amount=to_decimal(raw.get("total")),
            currency=raw.get("currency") or "PLN",
            payment_status="paid" if status in PAID_STATUSES else "pending",
            payment_method=raw.get("payment_method_title", ""),
            ordered_at=parse_datetime(raw.get("date_created")),
            raw_data={
                "woocommerce_order_id": raw.get("id"),
                "payment_method": raw.get("payment_method", ""),
            },
        )

        if raw.get("customer_note"):
            order.raw_data["customer_note"] = raw["customer_note"]

        for line in raw.get("line_items") or []:
            order.items.append(OrderItem(
                external_id=str(line.get("product_id", "")),
                name=line.get("name", ""),
                sku=line.get("sku") or "",
                quantity=to_int(line.get("quantity")),
                unit_price=to_decimal(line.get("price")),
                total_price=to_decimal(line.get("total")),
            ))

        return order
