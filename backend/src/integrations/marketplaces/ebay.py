"""eBay Sell Fulfillment API marketplace provider (orders only)."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..base_provider import BaseProvider
from ..parsing import latest_timestamp, parse_datetime, to_decimal, to_int
from ..ports import Address, Customer, MarketplaceProvider, NormalizedOrder, OrderItem, ProviderAPIError
from ..status import order_status_mapper

API_URL = "https://api.ebay.com"
SANDBOX_API_URL = "https://api.sandbox.ebay.com"
OAUTH_SCOPE = "https://api.ebay.com/oauth/api_scope/sell.fulfillment"

EBAY_STATUS_MAPPER = order_status_mapper({
    "NOT_STARTED": "pending",
    "IN_PROGRESS": "confirmed",
    "FULFILLED": "shipped",
})

PAID_STATUSES = frozenset({"PAID", "FULLY_REFUNDED", "PARTIALLY_REFUNDED"})


class EbayProvider(BaseProvider, MarketplaceProvider):
    """eBay adapter.

    Credentials: app_id, cert_id, refresh_token, dev_id (optional), sandbox (optional).
    Cursor: the latest creationDate seen.
    """

    provider_name = "ebay"
    status_mapper = EBAY_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["app_id", "cert_id", "refresh_token"])
        self.api_url = SANDBOX_API_URL if self.sandbox else API_URL
        self._access_token: Optional[str] = None
        self._access_token_expires: Optional[datetime] = None

    def _get_access_token(self) -> str:
        now = datetime.now(timezone.utc)
        if self._access_token and self._access_token_expires and now < self._access_token_expires:
            return self._access_token

        data = self.request_json(
            "POST",
            f"{self.api_url}/identity/v1/oauth2/token",
            auth=(self.credentials["app_id"], self.credentials["cert_id"]),
            data={
                "grant_type": "refresh_token",
                "refresh_token": self.credentials["refresh_token"],
                "scope": OAUTH_SCOPE,
            },
        ) or {}
        token = data.get("access_token")
        if not token:
            raise ProviderAPIError("ebay: token response has no access_token")
        self._access_token = token
        self._access_token_expires = now + timedelta(seconds=max(to_int(data.get("expires_in"), 7200) - 60, 0))
        return token

    def _api_get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request_json(
            "GET",
            f"{self.api_url}{path}",
            params=params,
            headers={"Authorization": f"Bearer {self._get_access_token()}"},
        ) or {}

    def poll_orders(self, cursor: str) -> Tuple[List[NormalizedOrder], str]:
        params: Dict[str, Any] = {"limit": 50}
        if cursor:
            params["filter"] = f"creationdate:[{cursor}..]"

        raw_orders = self._api_get("/sell/fulfillment/v1/order", params).get("orders") or []
        if not raw_orders:
            return [], cursor

        orders = []
        new_cursor = cursor
        for raw in raw_orders:
            orders.append(self._map_order(raw))
            new_cursor = latest_timestamp(new_cursor, raw.get("creationDate"))
        return orders, new_cursor

    def get_order(self, external_id: str) -> NormalizedOrder:
        return self._map_order(self._api_get(f"/sell/fulfillment/v1/order/{external_id}"))

    def _map_order(self, raw: Dict[str, Any]) -> NormalizedOrder:
        total = (raw.get("pricingSummary") or {}).get("total") or {}
        buyer = raw.get("buyer") or {}
        reg_info = buyer.get("buyerRegistrationAddress") or {}
        payment_status = raw.get("orderPaymentStatus", "")
        fulfillment_status = raw.get("orderFulfillmentStatus", "")

        order = NormalizedOrder(
            external_id=raw.get("orderId", ""),
            external_status=fulfillment_status,
            customer=Customer(
                name=reg_info.get("fullName") or buyer.get("username", ""),
                email=reg_info.get("email", ""),
                phone=(reg_info.get("primaryPhone") or {}).get("phoneNumber", ""),
            ),
            total_amount=to_decimal(total.get("value")),
            currency=total.get("currency") or "PLN",
            payment_status="paid" if payment_status in PAID_STATUSES else "pending",
            ordered_at=parse_datetime(raw.get("creationDate")),
            raw_data={
                "ebay_order_id": raw.get("orderId", ""),
                "ebay_legacy_order_id": raw.get("legacyOrderId", ""),
                "ebay_fulfillment_status": fulfillment_status,
                "ebay_payment_status": payment_status,
            },
        )

        instructions = raw.get("fulfillmentStartInstructions") or []
        if instructions:
            ship_to = (instructions[0].get("shippingStep") or {}).get("shipTo") or {}
            contact = ship_to.get("contactAddress") or {}
            street = contact.get("addressLine1", "")
            if contact.get("addressLine2"):
                street += ", " + contact["addressLine2"]
            order.shipping_address = Address(
                name=ship_to.get("fullName", ""),
                street=street,
                city=contact.get("city", ""),
                postal_code=contact.get("postalCode", ""),
                country=contact.get("countryCode", ""),
                phone=(ship_to.get("primaryPhone") or {}).get("phoneNumber", ""),
                email=ship_to.get("email", ""),
            )

        for line in raw.get("lineItems") or []:
            order.items.append(OrderItem(
                external_id=line.get("lineItemId", ""),
                name=line.get("title", ""),
                sku=line.get("sku") or "",
                quantity=to_int(line.get("quantity")),
                unit_price=to_decimal((line.get("lineItemCost") or {}).get("value")),
                total_price=to_decimal((line.get("total") or {}).get("value")),
            ))

        return order
