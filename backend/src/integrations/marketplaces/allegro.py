"""
Allegro marketplace provider

Orders are discovered through the order event journal
(GET /order/events?type=READY_FOR_PROCESSING). Each event references a
checkout form that is fetched in full. The sync cursor is the id of the last
event before the first checkout form that failed to load, so that form is
requested again on the next poll.
"""

import logging
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
    ProviderAPIError,
    StockUpdater,
)
from ..status import order_status_mapper

logger = logging.getLogger(__name__)

API_URL = "https://api.allegro.pl"
AUTH_URL = "https://allegro.pl/auth/oauth"
SANDBOX_API_URL = "https://api.allegro.pl.allegrosandbox.pl"
SANDBOX_AUTH_URL = "https://allegro.pl.allegrosandbox.pl/auth/oauth"

MEDIA_TYPE = "application/vnd.allegro.public.v1+json"

# Checkout form statuses plus fulfillment statuses
ALLEGRO_STATUS_MAPPER = order_status_mapper({
    "BOUGHT": "pending",
    "FILLED_IN": "pending",
    "READY_FOR_PROCESSING": "confirmed",
    "CANCELLED": "cancelled",
    "BUYER_CANCELLED": "cancelled",
    "AUTO_CANCELLED": "cancelled",
    "NEW": "pending",
    "PROCESSING": "confirmed",
    "SUSPENDED": "pending",
    "READY_FOR_SHIPMENT": "confirmed",
    "READY_FOR_PICKUP": "shipped",
    "SENT": "shipped",
    "PICKED_UP": "delivered",
    "RETURNED": "returned",
})


def allegro_token_url(credentials: Dict[str, Any]) -> str:
    """OAuth token endpoint for the environment selected by the credentials."""
    base = SANDBOX_AUTH_URL if credentials.get("sandbox") else AUTH_URL
    return f"{base}/token"


class AllegroProvider(
    BaseProvider,
    MarketplaceProvider,
    OfferPublisher,
    StockUpdater,
    PriceUpdater,
    FulfillmentUpdater,
):
    """Allegro REST API adapter.

    Credentials: client_id, client_secret, access_token, refresh_token,
    token_expiry (RFC 3339), sandbox (optional).
    """

    provider_name = "allegro"
    status_mapper = ALLEGRO_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["client_id", "client_secret", "access_token"])
        self.api_url = SANDBOX_API_URL if self.sandbox else API_URL

    def default_headers(self) -> Dict[str, str]:
        return {
            "Accept": MEDIA_TYPE,
            "Authorization": f"Bearer {self.credentials['access_token']}",
        }

    # -- orders --------------------------------------------------------------

    def poll_orders(self, cursor: str) -> Tuple[List[NormalizedOrder], str]:
        params = {"type": "READY_FOR_PROCESSING"}
        if cursor:
            params["from"] = cursor

        data = self.request_json("GET", f"{self.api_url}/order/events", params=params) or {}
        events = data.get("events") or []
        if not events:
            return [], cursor

        orders: List[NormalizedOrder] = []
        new_cursor = cursor
        cursor_frozen = False
        for event in events:
            form_id = ((event.get("order") or {}).get("checkoutForm") or {}).get("id")
            if not form_id:
                continue
            try:
                form = self._get_checkout_form(form_id)
            except ProviderAPIError as e:
                logger.error(
                    f"Failed to fetch Allegro checkout form {form_id}: {e}",
                    extra={"provider": self.provider_name, "external_id": form_id},
                )
                # The cursor must not pass an event that was not imported
                cursor_frozen = True
                continue
            orders.append(self._map_order(form))
            if not cursor_frozen:
                new_cursor = event.get("id") or new_cursor

        return orders, new_cursor

    def get_order(self, external_id: str) -> NormalizedOrder:
        return self._map_order(self._get_checkout_form(external_id))

    def _get_checkout_form(self, form_id: str) -> Dict[str, Any]:
        return self.request_json("GET", f"{self.api_url}/order/checkout-forms/{form_id}") or {}

    # -- offers --------------------------------------------------------------

    def push_offer(self, listing_data: Dict[str, Any]) -> str:
        data = self.request_json(
            "POST",
            f"{self.api_url}/sale/product-offers",
            json=listing_data,
            headers={"Content-Type": MEDIA_TYPE},
        ) or {}
        return str(data.get("id", ""))

    def update_stock(self, external_offer_id: str, quantity: int) -> None:
        self.request(
            "PATCH",
            f"{self.api_url}/sale/product-offers/{external_offer_id}",
            json={"stock": {"available": quantity}},
            headers={"Content-Type": MEDIA_TYPE},
        )

    def update_price(self, external_offer_id: str, price: Decimal) -> None:
        self.request(
            "PATCH",
            f"{self.api_url}/sale/product-offers/{external_offer_id}",
            json={"sellingMode": {"price": {"amount": format_amount(price), "currency": "PLN"}}},
            headers={"Content-Type": MEDIA_TYPE},
        )

    # -- fulfillment ---------------------------------------------------------

    def update_fulfillment(self, external_order_id: str, status: str) -> None:
        self.request(
            "PUT",
            f"{self.api_url}/order/checkout-forms/{external_order_id}/fulfillment",
            json={"status": status},
            headers={"Content-Type": MEDIA_TYPE},
        )
        logger.info(
            f"Allegro fulfillment updated to {status}",
            extra={"provider": self.provider_name, "external_id": external_order_id},
        )

    def add_tracking(self, external_order_id: str, carrier_id: str, waybill: str) -> None:
        self.request(
            "POST",
            f"{self.api_url}/order/checkout-forms/{external_order_id}/shipments",
            json={"carrierId": carrier_id, "waybill": waybill},
            headers={"Content-Type": MEDIA_TYPE},
        )

    # -- mapping -------------------------------------------------------------

    def _map_order(self, form: Dict[str, Any]) -> NormalizedOrder:
        delivery = form.get("delivery") or {}
        address = delivery.get("address") or {}
        buyer = form.get("buyer") or {}
        payment = form.get("payment") or {}
        paid = payment.get("paidAmount") or {}

        full_name = f"{address.get('firstName', '')} {address.get('lastName', '')}".strip()
        email = buyer.get("email", "")

        order = NormalizedOrder(
            external_id=form.get("id", ""),
            external_status=form.get("status", ""),
            customer=Customer(name=full_name, email=email, phone=buyer.get("phoneNumber") or ""),
            shipping_address=Address(
                name=full_name,
                street=address.get("street", ""),
                city=address.get("city", ""),
                postal_code=address.get("zipCode", ""),
                country=address.get("countryCode", ""),
                phone=address.get("phoneNumber", ""),
                email=email,
            ),
            currency=paid.get("currency") or "PLN",
            payment_method=payment.get("type", ""),
            ordered_at=parse_datetime(form.get("updatedAt")),
        )

        method = delivery.get("method") or {}
        if method.get("name"):
            order.raw_data["delivery_method_id"] = method.get("id", "")
            order.raw_data["delivery_method_name"] = method["name"]

        pickup_point = delivery.get("pickupPoint")
        if pickup_point:
            order.raw_data["pickup_point_id"] = pickup_point.get("id", "")
            order.raw_data["pickup_point_name"] = pickup_point.get("name", "")

        for line in form.get("lineItems") or []:
            offer = line.get("offer") or {}
            quantity = to_int(line.get("quantity"), 1)
            unit_price = to_decimal((line.get("price") or {}).get("amount"))
            order.items.append(OrderItem(
                external_id=offer.get("id", ""),
                name=offer.get("name", ""),
                sku=(offer.get("external") or {}).get("id") or "",
                quantity=quantity,
                unit_price=unit_price,
                total_price=unit_price * quantity,
            ))

        paid_amount = to_decimal(paid.get("amount"))
        if paid_amount > 0:
            order.payment_status = "paid"
            order.total_amount = paid_amount
        else:
            order.payment_status = "pending"
            order.total_amount = sum((item.total_price for item in order.items), Decimal("0"))

        return order
