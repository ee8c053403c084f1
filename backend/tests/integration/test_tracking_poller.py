"""Integration tests for the tracking poller

Tests cover:
- One write when the mapped status changed, none otherwise
- Unmapped carrier statuses are ignored
- Shipments without an active carrier integration are skipped
- Terminal shipments are not tracked
- Grouping by carrier and credentials
"""

import threading
from unittest.mock import patch
from uuid import uuid4

import pytest

from infrastructure.repositories import TrackableShipment
from integrations.ports import CarrierProvider, ProviderAPIError, TrackingEvent
from integrations.registry import ProviderRegistry
from integrations.status import shipment_status_mapper
from models import IntegrationKind, Shipment
from workers import TrackingPoller, group_shipments

pytestmark = pytest.mark.integration

CREDENTIALS = {"api_key": "k"}


class FakeCarrier(CarrierProvider):
    provider_name = "fakecarrier"
    status_mapper = shipment_status_mapper({
        "ACCEPTED": "picked_up",
        "ON_THE_WAY": "in_transit",
        "HANDED_OVER": "delivered",
    })

    def __init__(self, events, built):
        self.events = events
        self.closed = False
        self.tracked = []
        built.append(self)

    def create_shipment(self, request):
        raise ProviderAPIError("not used")

    def get_label(self, external_id, format="pdf"):
        raise ProviderAPIError("not used")

    def get_tracking(self, tracking_number):
        self.tracked.append(tracking_number)
        result = self.events.get(tracking_number, [])
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        self.closed = True


def events(*statuses):
    return [TrackingEvent(status=status) for status in statuses]


def fetch_shipment(session_factory, shipment_id):
    session = session_factory()
    try:
        return session.get(Shipment, shipment_id)
    finally:
        session.close()


@pytest.fixture
def built():
    return []


@pytest.fixture
def make_poller(vault, admin_repo, session_factory, built):
    def _make(tracking):
        registry = ProviderRegistry(carriers=[("fakecarrier", lambda credentials, settings: FakeCarrier(tracking, built))])
        return TrackingPoller(registry, vault, admin_repo, interval=600, session_factory=session_factory)

    return _make


@pytest.fixture
def carrier(make_integration):
    return make_integration("fakecarrier", CREDENTIALS, kind=IntegrationKind.CARRIER)


class TestStatusUpdates:
    """Test status writes."""

    def test_changed_status_is_written_once(self, make_poller, carrier, make_shipment, session_factory):
        shipment = make_shipment("fakecarrier", "T1", status="created", integration_id=carrier.id)

        stats = make_poller({"T1": events("ACCEPTED", "ON_THE_WAY")}).run(threading.Event())

        assert stats == {"shipments_checked": 1, "updated": 1, "errors": 0}
        assert fetch_shipment(session_factory, shipment.id).status == "in_transit"

    def test_equal_status_writes_nothing(self, make_poller, carrier, make_shipment):
        make_shipment("fakecarrier", "T1", status="in_transit", integration_id=carrier.id)

        with patch("workers.tracking_poller.ShipmentRepository") as repository:
            stats = make_poller({"T1": events("ACCEPTED", "ON_THE_WAY")}).run(threading.Event())

        repository.assert_not_called()
        assert stats["updated"] == 0
        assert stats["shipments_checked"] == 1

    def test_unmapped_status_is_ignored(self, make_poller, carrier, make_shipment, session_factory):
        shipment = make_shipment("fakecarrier", "T1", status="picked_up", integration_id=carrier.id)

        stats = make_poller({"T1": events("ACCEPTED", "CUSTOMS_HOLD")}).run(threading.Event())

        assert stats["updated"] == 0
        assert stats["errors"] == 0
        assert fetch_shipment(session_factory, shipment.id).status == "picked_up"

    def test_no_events_writes_nothing(self, make_poller, carrier, make_shipment, session_factory):
        shipment = make_shipment("fakecarrier", "T1", status="created", integration_id=carrier.id)

        stats = make_poller({}).run(threading.Event())

        assert stats["updated"] == 0
        assert fetch_shipment(session_factory, shipment.id).status == "created"

    def test_tracking_failure_is_isolated(self, make_poller, carrier, make_shipment, session_factory, built):
        make_shipment("fakecarrier", "T1", integration_id=carrier.id)
        second = make_shipment("fakecarrier", "T2", integration_id=carrier.id)

        stats = make_poller({
            "T1": ProviderAPIError("fakecarrier: 500", status_code=500),
            "T2": events("HANDED_OVER"),
        }).run(threading.Event())

        assert stats == {"shipments_checked": 2, "updated": 1, "errors": 1}
        assert fetch_shipment(session_factory, second.id).status == "delivered"
        assert built[0].closed is True


class TestSelection:
    """Test which shipments are tracked."""

    def test_terminal_shipments_are_not_tracked(self, make_poller, carrier, make_shipment, built):
        for number, status in [("D", "delivered"), ("R", "returned"), ("F", "failed"), ("C", "cancelled")]:
            make_shipment("fakecarrier", number, status=status, integration_id=carrier.id)

        stats = make_poller({}).run(threading.Event())

        assert stats["shipments_checked"] == 0
        assert built == []

    def test_shipments_without_tracking_number_are_not_tracked(self, make_poller, carrier, make_shipment):
        make_shipment("fakecarrier", tracking_number=None, integration_id=carrier.id)
        make_shipment("fakecarrier", tracking_number="", integration_id=carrier.id)

        assert make_poller({}).run(threading.Event())["shipments_checked"] == 0

    def test_no_active_integration_is_skipped(self, make_poller, make_integration, make_shipment, built):
        inactive = make_integration("fakecarrier", CREDENTIALS, kind=IntegrationKind.CARRIER, status="inactive")
        make_shipment("fakecarrier", "T1", integration_id=inactive.id)
        make_shipment("fakecarrier", "T2", integration_id=None)

        stats = make_poller({"T1": events("ACCEPTED")}).run(threading.Event())

        assert stats == {"shipments_checked": 0, "updated": 0, "errors": 0}
        assert built == []

    def test_carrier_built_once_per_credentials(self, make_poller, carrier, make_integration, make_shipment, built):
        other_tenant = uuid4()
        other = make_integration("fakecarrier", {"api_key": "other"}, kind=IntegrationKind.CARRIER, tenant=other_tenant)
        make_shipment("fakecarrier", "A1", integration_id=carrier.id)
        make_shipment("fakecarrier", "A2", integration_id=carrier.id)
        make_shipment("fakecarrier", "B1", integration_id=other.id, tenant=other_tenant)

        stats = make_poller({}).run(threading.Event())

        assert stats["shipments_checked"] == 3
        assert sorted(len(provider.tracked) for provider in built) == [1, 2]

    def test_undecryptable_credentials_count_once_per_group(self, make_poller, make_integration, make_shipment, built):
        broken = make_integration("fakecarrier", kind=IntegrationKind.CARRIER, encrypted="bm90LXJlYWxseS1lbmNyeXB0ZWQ=")
        make_shipment("fakecarrier", "T1", integration_id=broken.id)
        make_shipment("fakecarrier", "T2", integration_id=broken.id)

        stats = make_poller({}).run(threading.Event())

        assert stats == {"shipments_checked": 0, "updated": 0, "errors": 1}
        assert built == []

    def test_stop_event_ends_run(self, make_poller, carrier, make_shipment):
        make_shipment("fakecarrier", "T1", integration_id=carrier.id)
        stop_event = threading.Event()
        stop_event.set()

        assert make_poller({"T1": events("ACCEPTED")}).run(stop_event)["shipments_checked"] == 0


class TestGroupShipments:
    """Test grouping of trackable shipments."""

    @staticmethod
    def shipment(provider, credentials):
        return TrackableShipment(
            id=uuid4(),
            tenant_id=uuid4(),
            provider=provider,
            tracking_number="T",
            status="created",
            credentials=credentials,
        )

    def test_groups_by_provider_and_credentials_in_order(self):
        a1 = self.shipment("inpost", "blob-a")
        b1 = self.shipment("dpd", "blob-b")
        a2 = self.shipment("inpost", "blob-a")
        c1 = self.shipment("inpost", "blob-c")
        orphan = self.shipment("inpost", None)

        groups = group_shipments([a1, b1, a2, c1, orphan])

        assert list(groups) == [
            ("inpost", "blob-a"),
            ("dpd", "blob-b"),
            ("inpost", "blob-c"),
            ("inpost", None),
        ]
        assert groups[("inpost", "blob-a")] == [a1, a2]

    def test_empty(self):
        assert list(group_shipments([])) == []
