"""Unit tests for the provider registry, the bundled catalog and capabilities."""

import pytest

from integrations import (
    CARRIERS,
    MARKETPLACES,
    ProviderConfigError,
    ProviderRegistry,
    UnknownProviderError,
    UnsupportedCapabilityError,
    build_registry,
    require_capability,
    supports,
)
from integrations.ports import (
    DispatchOrderCreator,
    FulfillmentUpdater,
    OfferPublisher,
    PriceUpdater,
    RateQuoter,
    ShipmentCanceller,
    StockUpdater,
)

VALID_CREDENTIALS = {
    "allegro": {"client_id": "id", "client_secret": "secret", "access_token": "at"},
    "amazon": {"client_id": "id", "client_secret": "secret", "refresh_token": "rt"},
    "ebay": {"app_id": "app", "cert_id": "cert", "refresh_token": "rt"},
    "erli": {"api_token": "token"},
    "kaufland": {"api_key": "key", "secret_key": "secret"},
    "mirakl": {"base_url": "https://marketplace.example.com", "api_key": "key"},
    "olx": {"client_id": "id", "client_secret": "secret"},
    "woocommerce": {"store_url": "https://shop.example.com", "consumer_key": "ck", "consumer_secret": "cs"},
    "dhl": {"username": "user", "password": "pass", "account_number": "123"},
    "dpd": {"login": "user", "password": "pass", "master_fid": "1495"},
    "fedex": {"client_id": "id", "client_secret": "secret", "account_number": "510087"},
    "gls": {"api_key": "key"},
    "inpost": {"api_token": "token", "organization_id": "1234"},
    "orlen_paczka": {"api_key": "key", "partner_id": "p1"},
    "poczta_polska": {"api_key": "key", "partner_id": "p1"},
    "ups": {"client_id": "id", "client_secret": "secret"},
}


class FakeProvider:
    provider_name = "fake"

    def __init__(self, credentials, settings):
        self.credentials = credentials
        self.settings = settings


class TestProviderRegistry:
    """Test registration and lookup."""

    def test_build_marketplace_passes_credentials_and_settings(self):
        registry = ProviderRegistry(marketplaces=[("fake", FakeProvider)])
        provider = registry.build_marketplace("fake", {"k": "v"}, {"s": 1})
        assert provider.credentials == {"k": "v"}
        assert provider.settings == {"s": 1}

    def test_missing_settings_default_to_empty_dict(self):
        registry = ProviderRegistry(carriers=[("fake", FakeProvider)])
        assert registry.build_carrier("fake", {}).settings == {}

    def test_unknown_provider_lists_available(self):
        registry = ProviderRegistry(marketplaces=[("alpha", FakeProvider), ("beta", FakeProvider)])
        with pytest.raises(UnknownProviderError) as exc_info:
            registry.build_marketplace("gamma", {})
        assert "gamma" in str(exc_info.value)
        assert "alpha, beta" in str(exc_info.value)

    def test_kinds_are_separate(self):
        registry = ProviderRegistry(marketplaces=[("fake", FakeProvider)])
        with pytest.raises(UnknownProviderError):
            registry.build_carrier("fake", {})
        assert registry.has_marketplace("fake")
        assert not registry.has_carrier("fake")

    def test_duplicate_name_rejected(self):
        with pytest.raises(ValueError):
            ProviderRegistry(marketplaces=[("fake", FakeProvider), ("fake", FakeProvider)])

    def test_same_name_in_both_kinds_allowed(self):
        registry = ProviderRegistry(marketplaces=[("fake", FakeProvider)], carriers=[("fake", FakeProvider)])
        assert registry.marketplace_names() == ["fake"]
        assert registry.carrier_names() == ["fake"]

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty_name_rejected(self, name):
        with pytest.raises(ValueError):
            ProviderRegistry(carriers=[(name, FakeProvider)])

    def test_non_callable_factory_rejected(self):
        with pytest.raises(ValueError):
            ProviderRegistry(carriers=[("fake", "not callable")])

    def test_registries_are_independent(self):
        first = ProviderRegistry(marketplaces=[("one", FakeProvider)])
        second = ProviderRegistry(marketplaces=[("two", FakeProvider)])
        assert first.marketplace_names() == ["one"]
        assert second.marketplace_names() == ["two"]


class TestCatalog:
    """Test the bundled registration table."""

    def test_all_providers_registered(self):
        registry = build_registry()
        assert registry.marketplace_names() == [
            "allegro", "amazon", "ebay", "erli", "kaufland", "mirakl", "olx", "woocommerce",
        ]
        assert registry.carrier_names() == [
            "dhl", "dpd", "fedex", "gls", "inpost", "orlen_paczka", "poczta_polska", "ups",
        ]

    @pytest.mark.parametrize("name,provider_class", MARKETPLACES)
    def test_marketplace_builds_with_valid_credentials(self, name, provider_class):
        provider = build_registry().build_marketplace(name, VALID_CREDENTIALS[name])
        assert isinstance(provider, provider_class)
        assert provider.provider_name == name
        provider.close()

    @pytest.mark.parametrize("name,provider_class", CARRIERS)
    def test_carrier_builds_with_valid_credentials(self, name, provider_class):
        provider = build_registry().build_carrier(name, VALID_CREDENTIALS[name])
        assert isinstance(provider, provider_class)
        assert provider.provider_name == name
        provider.close()

    @pytest.mark.parametrize("name", [name for name, _ in MARKETPLACES])
    def test_marketplace_missing_credentials_rejected(self, name):
        with pytest.raises(ProviderConfigError):
            build_registry().build_marketplace(name, {})

    @pytest.mark.parametrize("name", [name for name, _ in CARRIERS])
    def test_carrier_missing_credentials_rejected(self, name):
        with pytest.raises(ProviderConfigError):
            build_registry().build_carrier(name, {})

    def test_blank_required_field_rejected(self):
        with pytest.raises(ProviderConfigError) as exc_info:
            build_registry().build_carrier("inpost", {"api_token": "  ", "organization_id": "1"})
        assert "api_token (empty)" in str(exc_info.value)

    def test_non_object_credentials_rejected(self):
        with pytest.raises(ProviderConfigError):
            build_registry().build_marketplace("erli", ["api_token"])


class TestCapabilities:
    """Test capability queries on the bundled providers."""

    @pytest.fixture
    def registry(self):
        return build_registry()

    @pytest.mark.parametrize("name,capabilities", [
        ("allegro", {OfferPublisher, StockUpdater, PriceUpdater, FulfillmentUpdater}),
        ("woocommerce", {OfferPublisher, StockUpdater, PriceUpdater, FulfillmentUpdater}),
        ("erli", {OfferPublisher, StockUpdater, PriceUpdater}),
        ("mirakl", {StockUpdater, PriceUpdater}),
        ("amazon", set()),
        ("ebay", set()),
        ("kaufland", set()),
        ("olx", set()),
    ])
    def test_marketplace_capabilities(self, registry, name, capabilities):
        provider = registry.build_marketplace(name, VALID_CREDENTIALS[name])
        for capability in (OfferPublisher, StockUpdater, PriceUpdater, FulfillmentUpdater):
            assert supports(provider, capability) == (capability in capabilities)

    @pytest.mark.parametrize("name,capabilities", [
        ("inpost", {RateQuoter, DispatchOrderCreator}),
        ("poczta_polska", {RateQuoter, ShipmentCanceller}),
        ("dhl", {ShipmentCanceller}),
        ("dpd", {ShipmentCanceller}),
        ("fedex", {ShipmentCanceller}),
        ("gls", {ShipmentCanceller}),
        ("orlen_paczka", {ShipmentCanceller}),
        ("ups", {ShipmentCanceller}),
    ])
    def test_carrier_capabilities(self, registry, name, capabilities):
        provider = registry.build_carrier(name, VALID_CREDENTIALS[name])
        for capability in (RateQuoter, DispatchOrderCreator, ShipmentCanceller):
            assert supports(provider, capability) == (capability in capabilities)

    def test_require_capability_returns_provider(self, registry):
        provider = registry.build_marketplace("allegro", VALID_CREDENTIALS["allegro"])
        assert require_capability(provider, StockUpdater) is provider

    def test_require_capability_raises_for_missing(self, registry):
        provider = registry.build_marketplace("amazon", VALID_CREDENTIALS["amazon"])
        with pytest.raises(UnsupportedCapabilityError) as exc_info:
            require_capability(provider, StockUpdater)
        assert "amazon" in str(exc_info.value)
        assert "StockUpdater" in str(exc_info.value)

    @pytest.mark.parametrize("name,expected", [
        ("inpost", True),
        ("orlen_paczka", True),
        ("dpd", True),
        ("gls", True),
        ("dhl", False),
        ("ups", False),
        ("fedex", False),
        ("poczta_polska", False),
    ])
    def test_pickup_point_support(self, registry, name, expected):
        assert registry.build_carrier(name, VALID_CREDENTIALS[name]).supports_pickup_points() is expected
