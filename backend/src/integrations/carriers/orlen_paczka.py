"""Orlen Paczka carrier provider (parcels to Orlen station pickup points)."""

from typing import Any, Dict, List, Optional

from ..base_provider import BaseProvider
from ..ports import (
    CarrierProvider,
    CarrierShipmentRequest,
    CarrierShipmentResponse,
    PickupPoint,
    ShipmentCanceller,
    TrackingEvent,
)
from ..status import shipment_status_mapper
from .common import cod_and_insurance, decode_label, tracking_events

API_URL = "https://api.orlenpaczka.pl"
SANDBOX_API_URL = "https://api-sandbox.orlenpaczka.pl"

POINT_SEARCH_LIMIT = 20

ORLEN_STATUS_MAPPER = shipment_status_mapper({
    "CREATED": "created",
    "LABEL_READY": "label_ready",
    "POSTED": "picked_up",
    "IN_TRANSIT": "in_transit",
    "READY_FOR_PICKUP": "out_for_delivery",
    "DELIVERED": "delivered",
    "RETURNED": "returned",
    "EXPIRED": "failed",
})


class OrlenPaczkaProvider(BaseProvider, CarrierProvider, ShipmentCanceller):
    """Orlen Paczka adapter. Every shipment goes to a pickup point.

    Credentials: api_key, partner_id, sandbox (optional).
    """

    provider_name = "orlen_paczka"
    status_mapper = ORLEN_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["api_key", "partner_id"])
        self.api_url = SANDBOX_API_URL if self.sandbox else API_URL

    def default_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.credentials['api_key']}",
            "X-Partner-ID": str(self.credentials["partner_id"]),
        }

    def create_shipment(self, request: CarrierShipmentRequest) -> CarrierShipmentResponse:
        parcel: Dict[str, Any] = {
            "weight": float(request.parcel.weight_kg),
            "width": float(request.parcel.width_cm),
            "height": float(request.parcel.height_cm),
            "length": float(request.parcel.depth_cm),
        }
        if request.parcel.size_code:
            parcel["sizeCode"] = request.parcel.size_code

        body: Dict[str, Any] = {
            "receiver": {
                "name": request.receiver.name,
                "email": request.receiver.email,
                "phone": request.receiver.phone,
            },
            "parcel": parcel,
            "targetPoint": request.target_point,
        }
        if request.reference:
            body["reference"] = request.reference
        body.update(cod_and_insurance(request))

        data = self.request_json("POST", f"{self.api_url}/v1/shipments", json=body) or {}
        return CarrierShipmentResponse(
            external_id=str(data.get("shipmentId", "")),
            tracking_number=data.get("trackingNumber", ""),
            status=data.get("status", ""),
            label_url=data.get("labelUrl", ""),
        )

    def get_label(self, external_id: str, format: str = "pdf") -> bytes:
        data = self.request_json("GET", f"{self.api_url}/v1/shipments/{external_id}/label") or {}
        return decode_label(data.get("labelData"), self.provider_name)

    def get_tracking(self, tracking_number: str) -> List[TrackingEvent]:
        data = self.request_json(
            "GET", f"{self.api_url}/v1/tracking", params={"trackingNumber": tracking_number}
        ) or {}
        return tracking_events(data.get("events"))

    def cancel_shipment(self, external_id: str) -> None:
        self.request("DELETE", f"{self.api_url}/v1/shipments/{external_id}")

    def supports_pickup_points(self) -> bool:
        return True

    def search_pickup_points(self, query: str) -> List[PickupPoint]:
        data = self.request_json(
            "GET", f"{self.api_url}/v1/points", params={"query": query, "limit": POINT_SEARCH_LIMIT}
        ) or {}
        return [
            PickupPoint(
                id=str(point.get("id", "")),
                name=point.get("name", ""),
                street=point.get("street", ""),
                city=point.get("city", ""),
                postal_code=point.get("postalCode", ""),
                latitude=point.get("latitude"),
                longitude=point.get("longitude"),
                type=point.get("type", ""),
            )
            for point in data.get("points") or []
        ]
