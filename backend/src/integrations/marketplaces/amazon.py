"""
Amazon Selling Partner API marketplace provider

Orders are listed with CreatedAfter = cursor (or 24 hours ago on first
sync) and all NextToken pages are followed. Items are fetched per order.
Calls are throttled to roughly one request per second; the throttling
sleep ends early on shutdown.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from ..base_provider import BaseProvider
from ..parsing import format_rfc3339, parse_datetime, to_decimal, to_int
from ..ports import (
    Address,
    Customer,
    MarketplaceProvider,
    NormalizedOrder,
    OrderItem,
    ProviderAPIError,
)
from ..status import order_status_mapper

logger = logging.getLogger(__name__)

API_URL = "https://sellingpartnerapi-eu.amazon.com"
SANDBOX_API_URL = "https://sandbox.sellingpartnerapi-eu.amazon.com"
LWA_TOKEN_URL = "https://api.amazon.com/auth/o2/token"

AMAZON_STATUS_MAPPER = order_status_mapper({
    "PendingAvailability": "pending",
    "Pending": "pending",
    "Unshipped": "confirmed",
    "PartiallyShipped": "confirmed",
    "Shipped": "shipped",
    "InvoiceUnconfirmed": "shipped",
    "Canceled": "cancelled",
    "Unfulfillable": "cancelled",
})


class AmazonProvider(BaseProvider, MarketplaceProvider):
    """Amazon SP-API adapter (orders only; listings need the Feeds API).

    Credentials: client_id, client_secret, refresh_token, marketplace_id
    (optional), sandbox (optional).
    """

    provider_name = "amazon"
    status_mapper = AMAZON_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["client_id", "client_secret", "refresh_token"])
        self.api_url = SANDBOX_API_URL if self.sandbox else API_URL
        self.marketplace_id = credentials.get("marketplace_id") or ""
        self.throttle_seconds = float(self.settings.get("throttle_seconds", 1.0))
        self._access_token: Optional[str] = None
        self._access_token_expires: Optional[datetime] = None

    # -- auth ----------------------------------------------------------------

    def _get_access_token(self) -> str:
        """Exchange the refresh token for an LWA access token, cached until expiry."""
        now = datetime.now(timezone.utc)
        if self._access_token and self._access_token_expires and now < self._access_token_expires:
            return self._access_token

        data = self.request_json(
            "POST",
            LWA_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": self.credentials["refresh_token"],
                "client_id": self.credentials["client_id"],
                "client_secret": self.credentials["client_secret"],
            },
        ) or {}
        token = data.get("access_token")
        if not token:
            raise ProviderAPIError("amazon: LWA token response has no access_token")

        # Refresh a minute early
        expires_in = to_int(data.get("expires_in"), 3600)
        self._access_token = token
        self._access_token_expires = now + timedelta(seconds=max(expires_in - 60, 0))
        return token

    def _api_get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request_json(
            "GET",
            f"{self.api_url}{path}",
            params=params,
            headers={"x-amz-access-token": self._get_access_token()},
        ) or {}

    # -- orders --------------------------------------------------------------

    def poll_orders(self, cursor: str) -> Tuple[List[NormalizedOrder], str]:
        created_after = cursor or format_rfc3339(datetime.now(timezone.utc) - timedelta(hours=24))

        orders: List[NormalizedOrder] = []
        new_cursor = cursor
        cursor_frozen = False
        next_token = ""

        while True:
            params: Dict[str, Any] = {"CreatedAfter": created_after}
            if self.marketplace_id:
                params["MarketplaceIds"] = self.marketplace_id
            if next_token:
                params["NextToken"] = next_token

            payload = self._api_get("/orders/v0/orders", params).get("payload") or {}

            for raw in payload.get("Orders") or []:
                if not self.throttle(self.throttle_seconds):
                    return orders, new_cursor

                order_id = raw.get("AmazonOrderId", "")
                try:
                    items = self._fetch_all_items(order_id)
                except ProviderAPIError as e:
                    logger.error(
                        f"Failed to fetch Amazon order items for {order_id}: {e}",
                        extra={"provider": self.provider_name, "external_id": order_id},
                    )
                    # Later orders are still imported, but the cursor stays
                    # before this one so it is listed again next poll
                    cursor_frozen = True
                    continue

                orders.append(self._map_order(raw, items))
                if not cursor_frozen:
                    new_cursor = raw.get("LastUpdateDate") or raw.get("PurchaseDate") or new_cursor

            next_token = payload.get("NextToken") or ""
            if not next_token:
                break
            if not self.throttle(self.throttle_seconds):
                break

        return orders, new_cursor

    def _fetch_all_items(self, order_id: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        next_token = ""
        while True:
            params = {"NextToken": next_token} if next_token else None
            payload = self._api_get(f"/orders/v0/orders/{order_id}/orderItems", params).get("payload") or {}
            items.extend(payload.get("OrderItems") or [])
            next_token = payload.get("NextToken") or ""
            if not next_token:
                return items
            if not self.throttle(self.throttle_seconds):
                return items

    def get_order(self, external_id: str) -> NormalizedOrder:
        payload = self._api_get(f"/orders/v0/orders/{external_id}").get("payload") or {}
        return self._map_order(payload, self._fetch_all_items(external_id))

    # -- mapping -------------------------------------------------------------

    def _map_order(self, raw: Dict[str, Any], items: List[Dict[str, Any]]) -> NormalizedOrder:
        status = raw.get("OrderStatus", "")
        buyer_email = (raw.get("BuyerInfo") or {}).get("BuyerEmail", "")
        ship_to = raw.get("ShippingAddress") or {}

        street = ship_to.get("AddressLine1", "")
        if ship_to.get("AddressLine2"):
            street += ", " + ship_to["AddressLine2"]

        order = NormalizedOrder(
            external_id=raw.get("AmazonOrderId", ""),
            external_status=status,
            customer=Customer(
                name=ship_to.get("Name", ""),
                email=buyer_email,
                phone=ship_to.get("Phone", ""),
            ),
            shipping_address=Address(
                name=ship_to.get("Name", ""),
                street=street,
                city=ship_to.get("City", ""),
                postal_code=ship_to.get("PostalCode", ""),
                country=ship_to.get("CountryCode", ""),
                phone=ship_to.get("Phone", ""),
                email=buyer_email if ship_to else "",
            ),
            currency="PLN",
            payment_method=raw.get("PaymentMethod", ""),
            ordered_at=parse_datetime(raw.get("PurchaseDate")),
            raw_data={
                "fulfillment_channel": raw.get("FulfillmentChannel", ""),
                "marketplace_id": raw.get("MarketplaceId", ""),
                "payment_method": raw.get("PaymentMethod", ""),
            },
        )

        order_total = raw.get("OrderTotal") or {}
        order.total_amount = to_decimal(order_total.get("Amount"))
        if order_total.get("CurrencyCode"):
            order.currency = order_total["CurrencyCode"]

        canonical, _ = self.map_status(status)
        order.payment_status = "paid" if canonical in ("shipped", "confirmed") else "pending"

        items_total = Decimal("0")
        for item in items:
            quantity = to_int(item.get("QuantityOrdered"))
            # ItemPrice covers the whole quantity
            line_price = to_decimal((item.get("ItemPrice") or {}).get("Amount"))
            unit_price = line_price / quantity if quantity > 0 else line_price
            total_price = unit_price * quantity
            items_total += total_price
            order.items.append(OrderItem(
                external_id=item.get("OrderItemId", ""),
                name=item.get("Title", ""),
                sku=item.get("SellerSKU", ""),
                ean=item.get("ASIN", ""),
                quantity=quantity,
                unit_price=unit_price,
                total_price=total_price,
            ))

        if order.total_amount <= 0:
            order.total_amount = items_total

        return order
