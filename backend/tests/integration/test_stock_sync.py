"""Integration tests for stock sync."""

import threading
from uuid import uuid4

import pytest
from sqlalchemy import select

from integrations.ports import MarketplaceProvider, ProviderAPIError, StockUpdater
from integrations.registry import ProviderRegistry
from integrations.status import order_status_mapper
from models import ListingSyncStatus, ProductListing
from workers import StockSync

pytestmark = pytest.mark.integration

CREDENTIALS = {"api_token": "t"}


class ReadOnlyMarketplace(MarketplaceProvider):
    provider_name = "readonly"
    status_mapper = order_status_mapper({"NEW": "pending"})

    def __init__(self, built):
        self.closed = False
        built.append(self)

    def poll_orders(self, cursor):
        return [], cursor

    def get_order(self, external_id):
        raise ProviderAPIError("not used", status_code=404)

    def close(self):
        self.closed = True


class StockMarketplace(ReadOnlyMarketplace, StockUpdater):
    provider_name = "stockmarket"

    def __init__(self, built, rejected=()):
        super().__init__(built)
        self.rejected = set(rejected)
        self.stop_event = None
        self.pushed = []

    def update_stock(self, external_offer_id, quantity):
        if external_offer_id in self.rejected:
            raise ProviderAPIError(f"offer {external_offer_id} not found", status_code=404)
        self.pushed.append((external_offer_id, quantity))


def listings_by_offer(session_factory):
    session = session_factory()
    try:
        return {row.external_id: row for row in session.execute(select(ProductListing)).scalars()}
    finally:
        session.close()


@pytest.fixture
def built():
    return []


@pytest.fixture
def make_sync(vault, admin_repo, session_factory, built):
    def _make(rejected=()):
        registry = ProviderRegistry(marketplaces=[
            ("stockmarket", lambda credentials, settings: StockMarketplace(built, rejected)),
            ("readonly", lambda credentials, settings: ReadOnlyMarketplace(built)),
        ])
        return StockSync(registry, vault, admin_repo, interval=300, session_factory=session_factory)

    return _make


class TestStockPush:
    """Test pushing stock and marking listings."""

    def test_listings_marked_synced(self, make_sync, make_integration, make_listing, session_factory, built):
        integration = make_integration("stockmarket", CREDENTIALS)
        make_listing(integration.id, "OFFER-1", stock_quantity=5)
        make_listing(integration.id, "OFFER-2", stock_quantity=0)

        stats = make_sync().run(threading.Event())

        assert stats == {
            "integrations_checked": 1,
            "integrations_skipped": 0,
            "listings_synced": 2,
            "listings_failed": 0,
            "errors": 0,
        }
        assert sorted(built[0].pushed) == [("OFFER-1", 5), ("OFFER-2", 0)]
        listings = listings_by_offer(session_factory)
        assert listings["OFFER-1"].sync_status == ListingSyncStatus.SYNCED
        assert listings["OFFER-1"].last_synced_at is not None
        assert built[0].closed is True

    def test_rejected_offer_marked_error(self, make_sync, make_integration, make_listing, session_factory):
        integration = make_integration("stockmarket", CREDENTIALS)
        make_listing(integration.id, "GONE")
        make_listing(integration.id, "OK")

        stats = make_sync(rejected={"GONE"}).run(threading.Event())

        assert stats["listings_synced"] == 1
        assert stats["listings_failed"] == 1
        assert stats["errors"] == 0
        listings = listings_by_offer(session_factory)
        assert listings["GONE"].sync_status == ListingSyncStatus.ERROR
        assert listings["OK"].sync_status == ListingSyncStatus.SYNCED

    def test_inactive_listings_are_left_alone(self, make_sync, make_integration, make_listing, session_factory, built):
        integration = make_integration("stockmarket", CREDENTIALS)
        make_listing(integration.id, "ENDED", status="ended")

        stats = make_sync().run(threading.Event())

        assert stats["listings_synced"] == 0
        assert built[0].pushed == []
        assert listings_by_offer(session_factory)["ENDED"].sync_status == ListingSyncStatus.PENDING

    def test_listings_of_other_integrations_are_not_pushed(self, make_sync, make_integration, make_listing, built):
        first = make_integration("stockmarket", CREDENTIALS)
        other_tenant = uuid4()
        second = make_integration("stockmarket", CREDENTIALS, tenant=other_tenant)
        make_listing(first.id, "A")
        make_listing(second.id, "B", tenant=other_tenant)

        make_sync().run(threading.Event())

        assert sorted(offer for provider in built for offer, _ in provider.pushed) == ["A", "B"]
        assert all(len(provider.pushed) == 1 for provider in built)


class TestSkipsAndErrors:
    """Test integrations that cannot be synced."""

    def test_provider_without_stock_updates_is_skipped(self, make_sync, make_integration, make_listing, built):
        integration = make_integration("readonly", CREDENTIALS)
        make_listing(integration.id, "OFFER-1")

        stats = make_sync().run(threading.Event())

        assert stats["integrations_skipped"] == 1
        assert stats["listings_synced"] == 0
        assert built[0].closed is True

    def test_undecryptable_credentials(self, make_sync, make_integration, make_listing):
        broken = make_integration("stockmarket", encrypted="bm90LXJlYWxseS1lbmNyeXB0ZWQ=")
        make_listing(broken.id, "OFFER-1")
        make_integration("readonly", CREDENTIALS)

        stats = make_sync().run(threading.Event())

        assert stats["integrations_checked"] == 2
        assert stats["errors"] == 1
        assert stats["integrations_skipped"] == 1

    def test_stop_event_ends_run(self, make_sync, make_integration):
        make_integration("stockmarket", CREDENTIALS)
        stop_event = threading.Event()
        stop_event.set()

        assert make_sync().run(stop_event)["integrations_checked"] == 0
