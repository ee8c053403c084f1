"""GLS Poland carrier provider."""

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
from .common import decode_label, tracking_events

API_URL = "https://api.gls-poland.com/v1"
SANDBOX_API_URL = "https://api-sandbox.gls-poland.com/v1"

GLS_STATUS_MAPPER = shipment_status_mapper({
    "PREADVICE": "created",
    "INPICKUP": "picked_up",
    "INTRANSIT": "in_transit",
    "INWAREHOUSE": "in_transit",
    "INDELIVERY": "out_for_delivery",
    "DELIVERED": "delivered",
    "DELIVEREDPS": "delivered",
    "FINAL": "delivered",
    "RETURNED": "returned",
    "NOTDELIVERED": "failed",
})


class GLSProvider(BaseProvider, CarrierProvider, ShipmentCanceller):
    """GLS adapter.

    Credentials: api_key, sandbox (optional).
    COD and insurance are requested as service codes; amounts are taken
    from the account defaults on GLS's side.
    """

    provider_name = "gls"
    status_mapper = GLS_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["api_key"])
        self.api_url = SANDBOX_API_URL if self.sandbox else API_URL

    def default_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self.credentials['api_key']}"}

    def create_shipment(self, request: CarrierShipmentRequest) -> CarrierShipmentResponse:
        services = []
        if request.cod_amount > 0:
            services.append("COD")
        if request.insured_value > 0:
            services.append("INS")

        body: Dict[str, Any] = {
            "consignee": {
                "name": request.receiver.name,
                "email": request.receiver.email,
                "phone": request.receiver.phone,
                "street": request.receiver.street,
                "city": request.receiver.city,
                "zipCode": request.receiver.postal_code,
                "countryCode": request.receiver.country,
            },
            "parcels": [{
                "weight": float(request.parcel.weight_kg),
                "width": float(request.parcel.width_cm),
                "height": float(request.parcel.height_cm),
                "length": float(request.parcel.depth_cm),
            }],
            "services": services,
        }
        if request.reference:
            body["reference"] = request.reference

        data = self.request_json("POST", f"{self.api_url}/parcels", json=body) or {}
        parcel_ids = data.get("parcelIds") or []
        track_ids = data.get("trackIds") or []
        return CarrierShipmentResponse(
            external_id=str(parcel_ids[0]) if parcel_ids else "",
            tracking_number=str(track_ids[0]) if track_ids else "",
            status="PREADVICE",
        )

    def get_label(self, external_id: str, format: str = "pdf") -> bytes:
        data = self.request_json("GET", f"{self.api_url}/parcels/{external_id}/label") or {}
        return decode_label(data.get("labelData"), self.provider_name)

    def get_tracking(self, tracking_number: str) -> List[TrackingEvent]:
        data = self.request_json("GET", f"{self.api_url}/tracking/{tracking_number}") or {}
        return tracking_events(data.get("events"))

    def cancel_shipment(self, external_id: str) -> None:
        self.request("DELETE", f"{self.api_url}/parcels/{external_id}")

    def supports_pickup_points(self) -> bool:
        return True

    def search_pickup_points(self, query: str) -> List[PickupPoint]:
        # GLS ParcelShop search is a separate API that is not wired up yet
        return []
