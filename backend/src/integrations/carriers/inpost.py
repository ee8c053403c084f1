"""
InPost ShipX carrier provider

Shipment creation is asynchronous on InPost's side: the created shipment
first collects offers, then one offer is bought. The provider polls the
shipment a bounded number of times for offers and buys the first one.
Cancellation is not offered by the ShipX API, so this provider does not
implement ShipmentCanceller.
"""

import logging
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..base_provider import BaseProvider
from ..parsing import parse_datetime, to_decimal
from ..ports import (
    CarrierProvider,
    CarrierShipmentRequest,
    CarrierShipmentResponse,
    DispatchOrderAddress,
    DispatchOrderContact,
    DispatchOrderCreator,
    PickupPoint,
    ProviderAPIError,
    Rate,
    RateQuoter,
    RateRequest,
    TrackingEvent,
)
from ..status import shipment_status_mapper

logger = logging.getLogger(__name__)

API_URL = "https://api-shipx-pl.easypack24.net"
SANDBOX_API_URL = "https://sandbox-api-shipx-pl.easypack24.net"
POINTS_URL = "https://api-pl-points.easypack24.net"
SANDBOX_POINTS_URL = "https://sandbox-api-pl-points.easypack24.net"

SERVICE_LOCKER_STANDARD = "inpost_locker_standard"
SERVICE_COURIER_STANDARD = "inpost_courier_standard"

OFFER_POLL_ATTEMPTS = 10

LABEL_FORMATS = {"pdf": "pdf", "zpl": "zpl", "epl": "epl"}

# Locker point codes look like KRA01M or WAW-123A; anything else is a city
POINT_CODE_PATTERN = re.compile(r"^[A-Z]{2,4}-?[A-Z]*\d")

INPOST_STATUS_MAPPER = shipment_status_mapper({
    "created": "created",
    "offers_prepared": "created",
    "offer_selected": "created",
    "confirmed": "label_ready",
    "dispatched_by_sender": "picked_up",
    "collected_from_sender": "picked_up",
    "taken_by_courier": "in_transit",
    "adopted_at_source_branch": "in_transit",
    "sent_from_source_branch": "in_transit",
    "adopted_at_sorting_center": "in_transit",
    "sent_from_sorting_center": "in_transit",
    "adopted_at_target_branch": "in_transit",
    "out_for_delivery": "out_for_delivery",
    "ready_to_pickup": "out_for_delivery",
    "avizo": "out_for_delivery",
    "delivered": "delivered",
    "picked_up": "delivered",
    "returned_to_sender": "returned",
    "missing": "failed",
    "claim_rejected": "failed",
})


def _locker_rate(service_name: str, price: Decimal) -> Rate:
    return Rate(
        carrier_name="InPost",
        carrier_code="inpost",
        service_name=service_name,
        price=price,
        currency="PLN",
        estimated_days=2,
        pickup_point=True,
    )


class InPostProvider(BaseProvider, CarrierProvider, RateQuoter, DispatchOrderCreator):
    """InPost adapter.

    Credentials: api_token, organization_id, sandbox (optional).
    Settings: offer_poll_delay (seconds, default 0.5) scales the wait between
    offer polls.
    """

    provider_name = "inpost"
    status_mapper = INPOST_STATUS_MAPPER

    def __init__(self, credentials: Dict[str, Any], settings: Optional[Dict[str, Any]] = None, **kwargs: Any):
        super().__init__(credentials, settings, **kwargs)
        self.validate_required_fields(credentials, ["api_token", "organization_id"])
        self.api_url = SANDBOX_API_URL if self.sandbox else API_URL
        self.points_url = SANDBOX_POINTS_URL if self.sandbox else POINTS_URL
        self.organization_id = str(credentials["organization_id"])
        self.offer_poll_delay = float(self.settings.get("offer_poll_delay", 0.5))

    def default_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self.credentials['api_token']}"}

    # -- shipments -----------------------------------------------------------

    def create_shipment(self, request: CarrierShipmentRequest) -> CarrierShipmentResponse:
        if request.target_point:
            service = SERVICE_LOCKER_STANDARD
        else:
            service = request.service_type or SERVICE_COURIER_STANDARD

        parcel: Dict[str, Any] = {
            "weight": {"amount": float(request.parcel.weight_kg), "unit": "kg"},
        }
        if request.parcel.size_code:
            parcel["template"] = request.parcel.size_code
        if request.parcel.width_cm or request.parcel.height_cm or request.parcel.depth_cm:
            # ShipX takes millimetres
            parcel["dimensions"] = {
                "width": float(request.parcel.width_cm * 10),
                "height": float(request.parcel.height_cm * 10),
                "length": float(request.parcel.depth_cm * 10),
                "unit": "mm",
            }

        receiver: Dict[str, Any] = {
            "name": request.receiver.name,
            "phone": request.receiver.phone,
            "email": request.receiver.email,
        }
        if not request.target_point:
            receiver["address"] = {
                "street": request.receiver.street,
                "city": request.receiver.city,
                "post_code": request.receiver.postal_code,
                "country_code": request.receiver.country,
            }

        body: Dict[str, Any] = {
            "receiver": receiver,
            "parcels": [parcel],
            "service": service,
        }
        if request.reference:
            body["reference"] = request.reference

        custom_attributes = {}
        if request.target_point:
            custom_attributes["target_point"] = request.target_point
        if request.sending_method:
            custom_attributes["sending_method"] = request.sending_method
        if custom_attributes:
            body["custom_attributes"] = custom_attributes

        if request.cod_amount > 0:
            body["cod"] = {"amount": float(request.cod_amount), "currency": request.cod_currency or "PLN"}
        if request.insured_value > 0:
            body["insurance"] = {"amount": float(request.insured_value), "currency": "PLN"}

        shipment = self.request_json(
            "POST",
            f"{self.api_url}/v1/organizations/{self.organization_id}/shipments",
            json=body,
        ) or {}
        shipment = self._buy_first_offer(shipment)

        return CarrierShipmentResponse(
            external_id=str(shipment.get("id", "")),
            tracking_number=shipment.get("tracking_number") or "",
            status=shipment.get("status", ""),
        )

    def _buy_first_offer(self, shipment: Dict[str, Any]) -> Dict[str, Any]:
        shipment_id = shipment.get("id")
        offer_id = None

        for attempt in range(OFFER_POLL_ATTEMPTS):
            offers = shipment.get("offers") or []
            if offers:
                offer_id = offers[0].get("id")
                break
            if shipment.get("status") == "confirmed":
                break
            if not self.throttle(self.offer_poll_delay * (attempt + 1)):
                break
            try:
                shipment = self.request_json("GET", f"{self.api_url}/v1/shipments/{shipment_id}") or shipment
            except ProviderAPIError as e:
                logger.warning(f"InPost shipment poll failed for {shipment_id}: {e}")
                break

        self._check_transactions(shipment, shipment_id)

        if shipment.get("status") != "confirmed":
            if offer_id is None:
                logger.warning(
                    f"InPost shipment {shipment_id} has no offers after polling (status {shipment.get('status')})"
                )
                return shipment
            try:
                shipment = self.request_json(
                    "POST",
                    f"{self.api_url}/v1/shipments/{shipment_id}/buy",
                    json={"offer_id": offer_id},
                ) or shipment
            except ProviderAPIError as e:
                logger.warning(f"InPost buy failed for shipment {shipment_id} offer {offer_id}: {e}")
                return shipment
            self._check_transactions(shipment, shipment_id)

        return shipment

    @staticmethod
    def _check_transactions(shipment: Dict[str, Any], shipment_id: Any) -> None:
        for transaction in shipment.get("transactions") or []:
            if transaction.get("status") == "failure":
                raise ProviderAPIError(
                    f"inpost: payment for shipment {shipment_id} failed, check the InPost account billing"
                )

    def get_label(self, external_id: str, format: str = "pdf") -> bytes:
        response = self.request(
            "GET",
            f"{self.api_url}/v1/shipments/{external_id}/label",
            params={"format": LABEL_FORMATS.get(format, "pdf"), "type": "normal"},
        )
        return response.content

    def get_tracking(self, tracking_number: str) -> List[TrackingEvent]:
        data = self.request_json("GET", f"{self.api_url}/v1/tracking/{tracking_number}") or {}
        events = [
            TrackingEvent(
                status=detail.get("status", ""),
                timestamp=parse_datetime(detail.get("datetime")),
                location=detail.get("agency") or "",
                details=detail.get("origin_status") or "",
            )
            for detail in data.get("tracking_details") or []
        ]
        # ShipX lists the newest event first
        events.sort(key=lambda e: (e.timestamp is not None, e.timestamp))
        return events

    def create_dispatch_order(
        self,
        shipment_external_ids: List[str],
        address: DispatchOrderAddress,
        contact: DispatchOrderContact,
    ) -> str:
        body = {
            "shipments": [int(i) for i in shipment_external_ids],
            "address": {
                "street": address.street,
                "building_number": address.building_number,
                "city": address.city,
                "post_code": address.post_code,
                "country_code": address.country_code,
            },
            "name": contact.name,
            "phone": contact.phone,
            "email": contact.email,
        }
        if contact.comment:
            body["comment"] = contact.comment

        order = self.request_json(
            "POST",
            f"{self.api_url}/v1/organizations/{self.organization_id}/dispatch_orders",
            json=body,
        ) or {}
        return str(order.get("id", ""))

    # -- pickup points -------------------------------------------------------

    def supports_pickup_points(self) -> bool:
        return True

    def search_pickup_points(self, query: str) -> List[PickupPoint]:
        params: Dict[str, Any] = {"type": "parcel_locker", "per_page": 10}
        if POINT_CODE_PATTERN.match(query):
            params["name"] = query
        else:
            params["city"] = query

        data = self.request_json("GET", f"{self.points_url}/v1/points", params=params) or {}
        points = []
        for item in data.get("items") or []:
            details = item.get("address_details") or {}
            location = item.get("location") or {}
            street = details.get("street", "")
            if details.get("building_number"):
                street += " " + details["building_number"]
            types = item.get("type") or []
            points.append(PickupPoint(
                id=item.get("name", ""),
                name=item.get("name", ""),
                street=street,
                city=details.get("city", ""),
                postal_code=details.get("post_code", ""),
                latitude=location.get("latitude"),
                longitude=location.get("longitude"),
                type=types[0] if types else "",
            ))
        return points

    # -- rates ---------------------------------------------------------------

    def get_rates(self, request: RateRequest) -> List[Rate]:
        """Static tariff: locker sizes A/B/C and standard courier, domestic only."""
        if not request.is_domestic:
            return []

        weight = to_decimal(request.weight)
        width, height, length = request.width, request.height, request.length
        cod_surcharge = Decimal("3.50") if request.cod > 0 else Decimal("0")

        fits_a = weight <= 8 and width <= 38 and height <= 8 and length <= 64
        fits_b = weight <= 25 and width <= 38 and height <= 19 and length <= 64
        fits_c = weight <= 25 and width <= 41 and height <= 38 and length <= 64

        rates = []
        if fits_a:
            rates.append(_locker_rate("Paczkomat A (mała)", Decimal("12.99") + cod_surcharge))
        if fits_b:
            rates.append(_locker_rate("Paczkomat B (średnia)", Decimal("13.99") + cod_surcharge))
        if fits_c:
            rates.append(_locker_rate("Paczkomat C (duża)", Decimal("15.49") + cod_surcharge))

        if weight <= 25:
            price = Decimal("19.99") if weight > 10 else Decimal("16.99")
            if request.cod > 0:
                price += Decimal("4.00")
            rates.append(Rate(
                carrier_name="InPost",
                carrier_code="inpost",
                service_name="Kurier Standard",
                price=price,
                currency="PLN",
                estimated_days=1,
                pickup_point=False,
            ))

        return rates
