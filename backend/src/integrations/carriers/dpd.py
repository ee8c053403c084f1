"""DPD Poland carrier provider."""

import logging
from typing import Any, Dict, List, Optional

from ..base_provider import BaseProvider
from ..ports import (
    CarrierProvider,
    CarrierShipmentRequest,
    CarrierShipmentResponse,
    PickupPoint,
    ProviderAPIError,
    ShipmentCanceller,
    TrackingEvent,
)
from ..status import shipment_status_mapper
from .common import decode_label, money, tracking_events

logger = logging.getLogger(__name__)

API_URL = "https://dpd.com.pl/api/v1"
SANDBOX_API_URL = "https://dpd-sandbox.com.pl/api/v1"

DPD_STATUS_MAPPER = shipment_status_mapper({
    "REGISTERED": "created",
    "LABEL_GENERATED": "label_ready",
    "RECEIVED_FROM_SENDER": "picked_up",
    "IN_TRANSPORT": "in_transit",
    "AT_DEPOT": "in_transit",
    "RELEASED_FOR_DELIVERY": "out_for_delivery",
    "AWAITING_PICKUP": "out_for_delivery",
    "DELIVERED": "delivered",
    "RETURNED_TO_SENDER": "returned",
    "UNDELIVERABLE": "failed",
})


class DPDProvider(BaseProvider, CarrierProvider, ShipmentCanceller):
    """DPD adapter with session-token authentication.

    Credentials: login, password, master_fid, sandbox (optional).
    The session token is obtained lazily and renewed once on a 401.
    """

    provider_name = "dpd"
    status_mapper = DPD_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["login", "password", "master_fid"])
        self.api_url = SANDBOX_API_URL if self.sandbox else API_URL
        self._session_token: Optional[str] = None

    def _login(self) -> str:
        data = self.request_json("POST", f"{self.api_url}/auth/login", json={
            "login": self.credentials["login"],
            "password": self.credentials["password"],
            "masterFid": self.credentials["master_fid"],
        }) or {}
        token = data.get("token")
        if not token:
            raise ProviderAPIError("dpd: authentication response has no token")
        self._session_token = token
        return token

    def _call(self, method: str, path: str, **kwargs: Any):
        token = self._session_token or self._login()
        try:
            return self.request(method, f"{self.api_url}{path}", headers={"Authorization": f"Bearer {token}"}, **kwargs)
        except ProviderAPIError as e:
            if e.status_code != 401:
                raise
            logger.info("DPD session expired, logging in again", extra={"provider": self.provider_name})
            token = self._login()
            return self.request(method, f"{self.api_url}{path}", headers={"Authorization": f"Bearer {token}"}, **kwargs)

    def _call_json(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        response = self._call(method, path, **kwargs)
        return response.json() if response.content else {}

    def create_shipment(self, request: CarrierShipmentRequest) -> CarrierShipmentResponse:
        body: Dict[str, Any] = {
            "receiver": {
                "name": request.receiver.name,
                "email": request.receiver.email,
                "phone": request.receiver.phone,
                "street": request.receiver.street,
                "city": request.receiver.city,
                "postalCode": request.receiver.postal_code,
                "countryCode": request.receiver.country,
            },
            "parcels": [{
                "weight": float(request.parcel.weight_kg),
                "sizeX": float(request.parcel.width_cm),
                "sizeY": float(request.parcel.height_cm),
                "sizeZ": float(request.parcel.depth_cm),
            }],
        }
        if request.reference:
            body["reference"] = request.reference

        services: Dict[str, Any] = {}
        if request.cod_amount > 0:
            services["cod"] = money(request.cod_amount, request.cod_currency)
        if request.insured_value > 0:
            services["declaredValue"] = money(request.insured_value)
        if services:
            body["services"] = services

        data = self._call_json("POST", "/parcels", json=body)
        return CarrierShipmentResponse(
            external_id=str(data.get("parcelId", "")),
            tracking_number=data.get("waybill", ""),
            status=data.get("status", ""),
        )

    def get_label(self, external_id: str, format: str = "pdf") -> bytes:
        data = self._call_json("GET", f"/parcels/{external_id}/label")
        return decode_label(data.get("labelData"), self.provider_name)

    def get_tracking(self, tracking_number: str) -> List[TrackingEvent]:
        data = self._call_json("GET", f"/tracking/{tracking_number}")
        return tracking_events(data.get("events"), timestamp_key="dateTime", details_key="description")

    def cancel_shipment(self, external_id: str) -> None:
        self._call("DELETE", f"/parcels/{external_id}")

    def supports_pickup_points(self) -> bool:
        return True

    def search_pickup_points(self, query: str) -> List[PickupPoint]:
        # DPD Pickup lives behind a separate API that is not wired up yet
        return []
