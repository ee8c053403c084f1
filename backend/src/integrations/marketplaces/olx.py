"""OLX Partner API marketplace provider. Transactions are treated as orders."""

from typing import Any, Dict, List, Optional, Tuple

from ..base_provider import BaseProvider
from ..parsing import latest_timestamp, parse_datetime, to_decimal, to_int
from ..ports import Address, Customer, MarketplaceProvider, NormalizedOrder, OrderItem, ProviderAPIError
from ..status import order_status_mapper

API_URL = "https://www.olx.pl/api/partner"
TOKEN_URL = "https://www.olx.pl/api/open/oauth/token"

OLX_STATUS_MAPPER = order_status_mapper({
    "new": "pending",
    "pending": "pending",
    "paid": "confirmed",
    "shipped": "shipped",
    "completed": "delivered",
    "cancelled": "cancelled",
    "refunded": "returned",
})

PAID_STATUSES = frozenset({"completed", "paid"})


class OLXProvider(BaseProvider, MarketplaceProvider):
    """OLX adapter (orders only; classifieds have no stock).

    Credentials: client_id, client_secret, access_token (optional; obtained
    with the client_credentials grant when absent).
    Cursor: the latest created_at seen.
    """

    provider_name = "olx"
    status_mapper = OLX_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["client_id", "client_secret"])
        self._access_token: Optional[str] = credentials.get("access_token") or None

    def _get_access_token(self) -> str:
        if self._access_token:
            return self._access_token
        data = self.request_json("POST", TOKEN_URL, data={
            "grant_type": "client_credentials",
            "client_id": self.credentials["client_id"],
            "client_secret": self.credentials["client_secret"],
            "scope": "v2 read write",
        }) or {}
        token = data.get("access_token")
        if not token:
            raise ProviderAPIError("olx: token response has no access_token")
        self._access_token = token
        return token

    def _list_transactions(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        data = self.request_json(
            "GET",
            f"{API_URL}/transactions",
            params=params,
            headers={"Authorization": f"Bearer {self._get_access_token()}", "Version": "2.0"},
        ) or {}
        return data.get("data") or []

    def poll_orders(self, cursor: str) -> Tuple[List[NormalizedOrder], str]:
        params: Dict[str, Any] = {"limit": 50}
        if cursor:
            params["created_after"] = cursor

        transactions = self._list_transactions(params)
        if not transactions:
            return [], cursor

        orders = []
        new_cursor = cursor
        for tx in transactions:
            orders.append(self._map_transaction(tx))
            new_cursor = latest_timestamp(new_cursor, tx.get("created_at"))
        return orders, new_cursor

    def get_order(self, external_id: str) -> NormalizedOrder:
        # No single-transaction endpoint; scan the most recent ones
        for tx in self._list_transactions({"limit": 100}):
            if str(tx.get("id")) == external_id:
                return self._map_transaction(tx)
        raise ProviderAPIError(f"olx: order {external_id} not found", status_code=404)

    def _map_transaction(self, tx: Dict[str, Any]) -> NormalizedOrder:
        status = tx.get("status", "")
        amount = to_decimal(tx.get("amount"))
        buyer_email = tx.get("buyer_email", "")
        shipping = tx.get("shipping_address")

        if shipping:
            address = Address(
                name=shipping.get("name", ""),
                street=shipping.get("street", ""),
                city=shipping.get("city", ""),
                postal_code=shipping.get("postal_code", ""),
                country=shipping.get("country", ""),
                phone=shipping.get("phone", ""),
                email=buyer_email,
            )
        else:
            address = Address(name=tx.get("buyer_name", ""), email=buyer_email, phone=tx.get("buyer_phone", ""))

        quantity = to_int(tx.get("quantity")) or 1

        return NormalizedOrder(
            external_id=str(tx.get("id", "")),
            external_status=status,
            customer=Customer(
                name=tx.get("buyer_name", ""),
                email=buyer_email,
                phone=tx.get("buyer_phone", ""),
            ),
            shipping_address=address,
            items=[OrderItem(
                external_id=str(tx.get("advert_id", "")),
                name=tx.get("advert_title", ""),
                quantity=quantity,
                unit_price=amount / quantity,
                total_price=amount,
            )],
            total_amount=amount,
            currency=tx.get("currency") or "PLN",
            payment_status="paid" if status in PAID_STATUSES else "pending",
            ordered_at=parse_datetime(tx.get("created_at")),
            raw_data={
                "olx_transaction_id": tx.get("id"),
                "olx_advert_id": tx.get("advert_id"),
                "olx_status": status,
            },
        )
