"""Helpers shared by the carrier adapters."""

import base64
import binascii
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from ..parsing import parse_datetime, to_int
from ..ports import CarrierShipmentRequest, ProviderAPIError, TrackingEvent


def decode_label(encoded: Optional[str], provider_name: str) -> bytes:
    """Decode a base64 label document returned inside a JSON body."""
    if not encoded:
        raise ProviderAPIError(f"{provider_name}: no label data in response")
    try:
        return base64.b64decode(encoded)
    except (binascii.Error, ValueError) as e:
        raise ProviderAPIError(f"{provider_name}: decode label data: {e}") from e


def money(amount: Decimal, currency: str = "") -> Dict[str, Any]:
    return {"amount": float(amount), "currency": currency or "PLN"}


def cod_and_insurance(request: CarrierShipmentRequest) -> Dict[str, Any]:
    """Optional cod/insurance blocks in the {amount, currency} shape most carriers take."""
    extra: Dict[str, Any] = {}
    if request.cod_amount > 0:
        extra["cod"] = money(request.cod_amount, request.cod_currency)
    if request.insured_value > 0:
        extra["insurance"] = money(request.insured_value)
    return extra


def tracking_events(
    raw_events: Iterable[Dict[str, Any]],
    status_key: str = "status",
    timestamp_key: str = "timestamp",
    location_key: str = "location",
    details_key: str = "details",
) -> List[TrackingEvent]:
    """Build TrackingEvents oldest first from a list of event objects."""
    events = [
        TrackingEvent(
            status=str(raw.get(status_key) or ""),
            timestamp=parse_datetime(raw.get(timestamp_key)),
            location=raw.get(location_key) or "",
            details=raw.get(details_key) or "",
        )
        for raw in raw_events or []
    ]
    events.sort(key=lambda e: (e.timestamp is not None, e.timestamp))
    return events


class ClientCredentialsAuth:
    """Cached OAuth2 client_credentials token for carriers that use one.

    Mixed into a BaseProvider subclass that sets token_url, and keeps the
    token until a minute before it expires.
    """

    token_url = ""
    # FedEx wants the client credentials in the form body, UPS in basic auth
    credentials_in_body = False

    _access_token: Optional[str] = None
    _access_token_expires: Optional[datetime] = None

    def access_token(self) -> str:
        now = datetime.now(timezone.utc)
        if self._access_token and self._access_token_expires and now < self._access_token_expires:
            return self._access_token

        form = {"grant_type": "client_credentials"}
        kwargs: Dict[str, Any] = {}
        if self.credentials_in_body:
            form["client_id"] = self.credentials["client_id"]
            form["client_secret"] = self.credentials["client_secret"]
        else:
            kwargs["auth"] = (self.credentials["client_id"], self.credentials["client_secret"])

        data = self.request_json("POST", self.token_url, data=form, **kwargs) or {}
        token = data.get("access_token")
        if not token:
            raise ProviderAPIError(f"{self.provider_name}: token response has no access_token")
        self._access_token = token
        self._access_token_expires = now + timedelta(seconds=max(to_int(data.get("expires_in"), 3600) - 60, 0))
        return token

    def bearer(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token()}"}
