"""Poczta Polska (Pocztex via eNadawca) carrier provider."""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..base_provider import BaseProvider
from ..parsing import to_decimal
from ..ports import (
    CarrierProvider,
    CarrierShipmentRequest,
    CarrierShipmentResponse,
    Rate,
    RateQuoter,
    RateRequest,
    ShipmentCanceller,
    TrackingEvent,
)
from ..status import shipment_status_mapper
from .common import cod_and_insurance, decode_label, tracking_events

API_URL = "https://api.poczta-polska.pl/enadawca/v1"
SANDBOX_API_URL = "https://api-sandbox.poczta-polska.pl/enadawca/v1"

# Pocztex courier 48h
DEFAULT_SERVICE = "POCZTEX_KURIER_48"

MAX_WEIGHT_KG = Decimal("20")
COD_SURCHARGE = Decimal("5.50")

POCZTA_POLSKA_STATUS_MAPPER = shipment_status_mapper({
    "CREATED": "created",
    "LABEL_GENERATED": "label_ready",
    "POSTED": "picked_up",
    "ACCEPTED": "picked_up",
    "IN_TRANSIT": "in_transit",
    "SORTING": "in_transit",
    "OUT_FOR_DELIVERY": "out_for_delivery",
    "AWAITING_PICKUP": "out_for_delivery",
    "DELIVERED": "delivered",
    "RETURNED": "returned",
    "UNDELIVERED": "failed",
})


def pocztex_price(weight: Decimal) -> Decimal:
    if weight > 10:
        return Decimal("19.00")
    if weight > 5:
        return Decimal("16.50")
    return Decimal("14.00")


class PocztaPolskaProvider(BaseProvider, CarrierProvider, ShipmentCanceller, RateQuoter):
    """Poczta Polska adapter.

    Credentials: api_key, partner_id, sandbox (optional).
    """

    provider_name = "poczta_polska"
    status_mapper = POCZTA_POLSKA_STATUS_MAPPER

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
        body: Dict[str, Any] = {
            "serviceType": request.service_type or DEFAULT_SERVICE,
            "receiver": {
                "name": request.receiver.name,
                "email": request.receiver.email,
                "phone": request.receiver.phone,
                "street": request.receiver.street,
                "city": request.receiver.city,
                "postalCode": request.receiver.postal_code,
                "country": request.receiver.country,
            },
            "parcel": {
                "weight": float(request.parcel.weight_kg),
                "width": float(request.parcel.width_cm),
                "height": float(request.parcel.height_cm),
                "length": float(request.parcel.depth_cm),
            },
        }
        if request.reference:
            body["reference"] = request.reference
        body.update(cod_and_insurance(request))

        data = self.request_json("POST", f"{self.api_url}/shipments", json=body) or {}
        return CarrierShipmentResponse(
            external_id=str(data.get("shipmentId", "")),
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

    def get_rates(self, request: RateRequest) -> List[Rate]:
        """Static Pocztex Kurier 48 tariff, domestic parcels up to 20 kg."""
        if not request.is_domestic:
            return []

        weight = to_decimal(request.weight)
        if weight > MAX_WEIGHT_KG:
            return []

        price = pocztex_price(weight)
        if request.cod > 0:
            price += COD_SURCHARGE

        return [Rate(
            carrier_name="Poczta Polska",
            carrier_code="poczta_polska",
            service_name="Pocztex Kurier 48",
            price=price,
            currency="PLN",
            estimated_days=2,
        )]
