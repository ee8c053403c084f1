"""DHL Parcel Poland carrier provider."""

from typing import Any, Dict, List, Optional

from ..base_provider import BaseProvider
from ..ports import (
    CarrierProvider,
    CarrierShipmentRequest,
    CarrierShipmentResponse,
    ShipmentCanceller,
    TrackingEvent,
)
from ..status import shipment_status_mapper
from .common import cod_and_insurance, decode_label, tracking_events

API_URL = "https://api-pl.dhl.com"
SANDBOX_API_URL = "https://api-sandbox-pl.dhl.com"

# DHL Parcel domestic
DEFAULT_SERVICE = "AH"

DHL_STATUS_MAPPER = shipment_status_mapper({
    "CREATED": "created",
    "LABEL_PRINTED": "label_ready",
    "PICKED_UP": "picked_up",
    "IN_TRANSIT": "in_transit",
    "AT_TERMINAL": "in_transit",
    "OUT_FOR_DELIVERY": "out_for_delivery",
    "AWAITING_PICKUP": "out_for_delivery",
    "DELIVERED": "delivered",
    "RETURNED": "returned",
    "UNDELIVERABLE": "failed",
})


class DHLProvider(BaseProvider, CarrierProvider, ShipmentCanceller):
    """DHL Parcel adapter (HTTP basic auth).

    Credentials: username, password, account_number, sandbox (optional).
    """

    provider_name = "dhl"
    status_mapper = DHL_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["username", "password", "account_number"])
        self.api_url = SANDBOX_API_URL if self.sandbox else API_URL

    def request(self, method: str, url: str, **kwargs: Any):
        kwargs.setdefault("auth", (self.credentials["username"], self.credentials["password"]))
        return super().request(method, url, **kwargs)

    def create_shipment(self, request: CarrierShipmentRequest) -> CarrierShipmentResponse:
        body: Dict[str, Any] = {
            "shipperAccount": self.credentials["account_number"],
            "receiver": {
                "name": request.receiver.name,
                "email": request.receiver.email,
                "phone": request.receiver.phone,
                "street": request.receiver.street,
                "city": request.receiver.city,
                "postalCode": request.receiver.postal_code,
                "country": request.receiver.country,
            },
            "piece": {
                "weight": float(request.parcel.weight_kg),
                "width": float(request.parcel.width_cm),
                "height": float(request.parcel.height_cm),
                "length": float(request.parcel.depth_cm),
            },
            "serviceType": request.service_type or DEFAULT_SERVICE,
        }
        if request.reference:
            body["reference"] = request.reference
        body.update(cod_and_insurance(request))

        data = self.request_json("POST", f"{self.api_url}/shipments", json=body) or {}
        return CarrierShipmentResponse(
            external_id=data.get("shipmentId", ""),
            tracking_number=data.get("trackingNumber", ""),
            status=data.get("status", ""),
            label_url=data.get("labelUrl", ""),
        )

    def get_label(self, external_id: str, format: str = "pdf") -> bytes:
        data = self.request_json("GET", f"{self.api_url}/shipments/{external_id}/label") or {}
        return decode_label(data.get("labelData"), self.provider_name)

    def get_tracking(self, tracking_number: str) -> List[TrackingEvent]:
        data = self.request_json("GET", f"{self.api_url}/tracking/{tracking_number}") or {}
        return tracking_events(data.get("events"))

    def cancel_shipment(self, external_id: str) -> None:
        self.request("DELETE", f"{self.api_url}/shipments/{external_id}")
