"""FedEx carrier provider (Ship and Track APIs)."""

import logging
from typing import Any, Dict, List, Optional

from ..base_provider import BaseProvider
from ..parsing import parse_datetime
from ..ports import (
    CarrierProvider,
    CarrierShipmentRequest,
    CarrierShipmentResponse,
    ShipmentCanceller,
    TrackingEvent,
)
from ..status import shipment_status_mapper
from .common import ClientCredentialsAuth, decode_label, money

logger = logging.getLogger(__name__)

API_URL = "https://apis.fedex.com"
SANDBOX_API_URL = "https://apis-sandbox.fedex.com"

DEFAULT_SERVICE = "FEDEX_INTERNATIONAL_PRIORITY"

LABEL_SPECIFICATION = {
    "labelFormatType": "COMMON2D",
    "imageType": "PDF",
    "labelStockType": "PAPER_4X6",
}

FEDEX_STATUS_MAPPER = shipment_status_mapper({
    "OC": "created",
    "PU": "picked_up",
    "IT": "in_transit",
    "AR": "in_transit",
    "DP": "in_transit",
    "OD": "out_for_delivery",
    "DL": "delivered",
    "RS": "returned",
    "DE": "failed",
})


class FedExProvider(ClientCredentialsAuth, BaseProvider, CarrierProvider, ShipmentCanceller):
    """FedEx adapter. Shipments are addressed by master tracking number.

    Credentials: client_id, client_secret, account_number, sandbox (optional).
    """

    provider_name = "fedex"
    status_mapper = FEDEX_STATUS_MAPPER
    credentials_in_body = True

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["client_id", "client_secret", "account_number"])
        self.api_url = SANDBOX_API_URL if self.sandbox else API_URL
        self.token_url = f"{self.api_url}/oauth/token"

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        headers = self.bearer()
        headers["X-locale"] = "en_US"
        return self.request_json("POST", f"{self.api_url}{path}", json=body, headers=headers) or {}

    def _account(self) -> Dict[str, str]:
        return {"value": self.credentials["account_number"]}

    def create_shipment(self, request: CarrierShipmentRequest) -> CarrierShipmentResponse:
        package: Dict[str, Any] = {"weight": {"units": "KG", "value": float(request.parcel.weight_kg)}}
        if request.parcel.width_cm or request.parcel.height_cm or request.parcel.depth_cm:
            package["dimensions"] = {
                "units": "CM",
                "length": float(request.parcel.depth_cm),
                "width": float(request.parcel.width_cm),
                "height": float(request.parcel.height_cm),
            }

        shipment: Dict[str, Any] = {
            "serviceType": request.service_type or DEFAULT_SERVICE,
            "packagingType": "YOUR_PACKAGING",
            "recipients": [{
                "contact": {
                    "personName": request.receiver.name,
                    "phoneNumber": request.receiver.phone,
                    "emailAddress": request.receiver.email,
                },
                "address": {
                    "streetLines": [request.receiver.street],
                    "city": request.receiver.city,
                    "postalCode": request.receiver.postal_code,
                    "countryCode": request.receiver.country,
                },
            }],
            "requestedPackageLineItems": [package],
            "labelSpecification": LABEL_SPECIFICATION,
        }
        if request.cod_amount > 0:
            cod = money(request.cod_amount, request.cod_currency)
            shipment["shipmentSpecialServices"] = {
                "specialServiceTypes": ["COD"],
                "codDetail": {"codCollectionAmount": cod},
            }
        if request.reference:
            shipment["customerReferences"] = [
                {"customerReferenceType": "CUSTOMER_REFERENCE", "value": request.reference}
            ]

        data = self._post("/ship/v1/shipments", {
            "accountNumber": self._account(),
            "requestedShipment": shipment,
        })

        response = CarrierShipmentResponse(external_id="", tracking_number="", status="OC")
        transactions = (data.get("output") or {}).get("transactionShipments") or []
        if transactions:
            first = transactions[0]
            response.external_id = first.get("masterTrackingNumber", "")
            response.tracking_number = first.get("masterTrackingNumber", "")
            pieces = first.get("pieceResponses") or []
            documents = (pieces[0].get("packageDocuments") or []) if pieces else []
            for document in documents:
                if document.get("url"):
                    response.label_url = document["url"]
                    break
                if document.get("encodedLabel"):
                    response.label_url = "data:application/pdf;base64," + document["encodedLabel"]
                    break
        else:
            logger.warning("FedEx shipment response has no transactionShipments", extra={"provider": self.provider_name})

        return response

    def get_label(self, external_id: str, format: str = "pdf") -> bytes:
        data = self._post("/ship/v1/shipments/label", {
            "accountNumber": self._account(),
            "trackingNumber": external_id,
            "labelSpecification": LABEL_SPECIFICATION,
        })
        for result in (data.get("output") or {}).get("labelResults") or []:
            for label in result.get("labels") or []:
                return decode_label(label.get("encodedLabel"), self.provider_name)
        return decode_label(None, self.provider_name)

    def get_tracking(self, tracking_number: str) -> List[TrackingEvent]:
        data = self._post("/track/v1/trackingnumbers", {
            "trackingInfo": [{"trackingNumberInfo": {"trackingNumber": tracking_number}}],
            "includeDetailedScans": True,
        })

        events = []
        for complete in (data.get("output") or {}).get("completeTrackResults") or []:
            for result in complete.get("trackResults") or []:
                for scan in result.get("scanEvents") or []:
                    scan_location = scan.get("scanLocation") or {}
                    location = scan_location.get("city", "")
                    if location and scan_location.get("countryCode"):
                        location += ", " + scan_location["countryCode"]
                    events.append(TrackingEvent(
                        status=scan.get("eventType", ""),
                        timestamp=parse_datetime(scan.get("date")),
                        location=location,
                        details=scan.get("eventDescription", ""),
                    ))

        events.sort(key=lambda e: (e.timestamp is not None, e.timestamp))
        return events

    def cancel_shipment(self, external_id: str) -> None:
        self.request(
            "PUT",
            f"{self.api_url}/ship/v1/shipments/cancel",
            json={"accountNumber": self._account(), "trackingNumber": external_id},
            headers=self.bearer(),
        )
