"""UPS carrier provider."""

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
from .common import ClientCredentialsAuth, decode_label, tracking_events

API_URL = "https://onlinetools.ups.com/api"
SANDBOX_API_URL = "https://wwwcie.ups.com/api"

# UPS Standard
DEFAULT_SERVICE = "11"
# Customer supplied package
PACKAGING_TYPE = "02"

UPS_STATUS_MAPPER = shipment_status_mapper({
    "M": "created",
    "MV": "created",
    "P": "picked_up",
    "I": "in_transit",
    "O": "out_for_delivery",
    "D": "delivered",
    "RS": "returned",
    "X": "failed",
})


class UPSProvider(ClientCredentialsAuth, BaseProvider, CarrierProvider, ShipmentCanceller):
    """UPS adapter.

    Credentials: client_id, client_secret, sandbox (optional).
    Status codes are the UPS activity type codes (M = manifest, D = delivered, ...).
    """

    provider_name = "ups"
    status_mapper = UPS_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["client_id", "client_secret"])
        self.api_url = SANDBOX_API_URL if self.sandbox else API_URL
        self.token_url = f"{self.api_url}/security/v1/oauth/token"

    def create_shipment(self, request: CarrierShipmentRequest) -> CarrierShipmentResponse:
        ship_to: Dict[str, Any] = {
            "Name": request.receiver.name,
            "Address": {
                "AddressLine": [request.receiver.street],
                "City": request.receiver.city,
                "PostalCode": request.receiver.postal_code,
                "CountryCode": request.receiver.country,
            },
        }
        if request.receiver.phone:
            ship_to["Phone"] = {"Number": request.receiver.phone}

        body: Dict[str, Any] = {
            "ShipTo": ship_to,
            "Service": {"Code": request.service_type or DEFAULT_SERVICE},
            "Package": [{
                "PackagingType": {"Code": PACKAGING_TYPE},
                "Dimensions": {
                    "UnitOfMeasurement": {"Code": "CM"},
                    "Length": f"{request.parcel.depth_cm:.0f}",
                    "Width": f"{request.parcel.width_cm:.0f}",
                    "Height": f"{request.parcel.height_cm:.0f}",
                },
                "PackageWeight": {
                    "UnitOfMeasurement": {"Code": "KGS"},
                    "Weight": f"{request.parcel.weight_kg:.1f}",
                },
            }],
        }
        if request.reference:
            body["ReferenceNumber"] = {"Value": request.reference}

        data = self.request_json("POST", f"{self.api_url}/shipments/v1/ship", json=body, headers=self.bearer()) or {}
        label_url = ""
        if data.get("labelImage"):
            label_url = "data:application/pdf;base64," + data["labelImage"]

        return CarrierShipmentResponse(
            external_id=data.get("shipmentId", ""),
            tracking_number=data.get("trackingNumber", ""),
            status="M",
            label_url=label_url,
        )

    def get_label(self, external_id: str, format: str = "pdf") -> bytes:
        data = self.request_json(
            "GET", f"{self.api_url}/shipments/v1/{external_id}/label", headers=self.bearer()
        ) or {}
        return decode_label(data.get("labelImage"), self.provider_name)

    def get_tracking(self, tracking_number: str) -> List[TrackingEvent]:
        data = self.request_json(
            "GET", f"{self.api_url}/track/v1/details/{tracking_number}", headers=self.bearer()
        ) or {}
        return tracking_events(data.get("events"), details_key="description")

    def cancel_shipment(self, external_id: str) -> None:
        self.request("DELETE", f"{self.api_url}/shipments/v1/void/cancel/{external_id}", headers=self.bearer())
