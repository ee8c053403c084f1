"""Unit tests for the process root wiring."""

import logging
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

import main
from config import Settings
from infrastructure.encryption import CredentialVault, InvalidKeyLengthError
from infrastructure.repositories import IntegrationAdminRepository
from integrations import build_registry
from workers import OAuthRefresher, OrderPoller, StockSync, TrackingPoller

VALID_KEY = "ab" * 32

ALL_TASKS = [
    "allegro_order_poller",
    "amazon_order_poller",
    "ebay_order_poller",
    "erli_order_poller",
    "kaufland_order_poller",
    "mirakl_order_poller",
    "olx_order_poller",
    "woocommerce_order_poller",
    "oauth_refresher",
    "tracking_poller",
    "stock_sync",
]


def _tasks(settings, session_factory=None):
    vault = CredentialVault(bytes.fromhex(VALID_KEY))
    return main.build_tasks(
        settings,
        build_registry(),
        vault,
        IntegrationAdminRepository(session_factory),
        session_factory,
    )


class TestBuildTasks:
    """Test which tasks a process runs."""

    def test_default_runs_every_marketplace(self):
        tasks = _tasks(Settings(ENCRYPTION_KEY=VALID_KEY, ENABLED_ORDER_POLLERS=None))
        assert [t.name for t in tasks] == ALL_TASKS

    def test_task_types_and_intervals(self):
        settings = Settings(
            ENCRYPTION_KEY=VALID_KEY,
            ORDER_POLL_INTERVAL_SECONDS=120,
            ALLEGRO_ORDER_POLL_INTERVAL_SECONDS=45,
            OAUTH_REFRESH_INTERVAL_SECONDS=1800,
            OAUTH_REFRESH_THRESHOLD_SECONDS=3600,
            TRACKING_POLL_INTERVAL_SECONDS=600,
            STOCK_SYNC_INTERVAL_SECONDS=300,
        )
        tasks = {t.name: t for t in _tasks(settings)}

        assert isinstance(tasks["allegro_order_poller"], OrderPoller)
        assert tasks["allegro_order_poller"].interval == 45
        assert tasks["ebay_order_poller"].interval == 120
        assert isinstance(tasks["oauth_refresher"], OAuthRefresher)
        assert tasks["oauth_refresher"].interval == 1800
        assert tasks["oauth_refresher"].threshold == timedelta(seconds=3600)
        assert isinstance(tasks["tracking_poller"], TrackingPoller)
        assert tasks["tracking_poller"].interval == 600
        assert isinstance(tasks["stock_sync"], StockSync)
        assert tasks["stock_sync"].interval == 300

    def test_enabled_pollers_ignore_unknown_names(self, caplog):
        settings = Settings(ENCRYPTION_KEY=VALID_KEY, ENABLED_ORDER_POLLERS="allegro,nosuch")

        with caplog.at_level(logging.WARNING, logger="main"):
            tasks = _tasks(settings)

        assert [t.name for t in tasks] == ["allegro_order_poller", "oauth_refresher", "tracking_poller", "stock_sync"]
        assert any("nosuch" in record.getMessage() for record in caplog.records)


class TestBuildManager:
    """Test manager construction from settings."""

    def test_registers_all_tasks(self, session_factory):
        manager = main.build_manager(Settings(ENCRYPTION_KEY=VALID_KEY), session_factory=session_factory)
        assert manager.task_names == ALL_TASKS
        assert manager.use_advisory_locks is False

    def test_advisory_lock_setting(self, session_factory):
        manager = main.build_manager(
            Settings(ENCRYPTION_KEY=VALID_KEY, USE_ADVISORY_LOCKS=True),
            session_factory=session_factory,
        )
        assert manager.use_advisory_locks is True
        assert manager.session_factory is session_factory

    @pytest.mark.parametrize("key,error", [
        ("zz" * 32, ValueError),
        ("", InvalidKeyLengthError),
        ("ab" * 16, InvalidKeyLengthError),
    ])
    def test_unusable_key(self, key, error):
        with pytest.raises(error):
            main.build_manager(Settings(ENCRYPTION_KEY=key))


class TestMain:
    """Test the process entry point."""

    def test_bad_key_exits_with_error(self):
        with patch("main.get_settings", return_value=Settings(ENCRYPTION_KEY="zz")), \
                patch("main.configure_logging"):
            assert main.main() == 1

    def test_short_key_exits_with_error(self):
        with patch("main.get_settings", return_value=Settings(ENCRYPTION_KEY="ab" * 16)), \
                patch("main.configure_logging"):
            assert main.main() == 1

    def test_clean_shutdown(self):
        manager = MagicMock()
        manager.task_names = ["stock_sync"]
        manager.stop.return_value = True

        with patch("main.get_settings", return_value=Settings(ENCRYPTION_KEY=VALID_KEY)), \
                patch("main.configure_logging"), \
                patch("main.build_manager", return_value=manager), \
                patch("main.signal.signal") as install_handler:
            assert main.main() == 0

        manager.start.assert_called_once()
        manager.wait.assert_called_once()
        manager.stop.assert_called_once_with(timeout=30.0)
        assert install_handler.call_count == 2

    def test_shutdown_timeout_exits_with_error(self):
        manager = MagicMock()
        manager.task_names = []
        manager.stop.return_value = False

        with patch("main.get_settings", return_value=Settings(ENCRYPTION_KEY=VALID_KEY)), \
                patch("main.configure_logging"), \
                patch("main.build_manager", return_value=manager), \
                patch("main.signal.signal"):
            assert main.main() == 1

    def test_signal_handler_sets_stop_event(self):
        manager = MagicMock()
        manager.task_names = []
        manager.stop.return_value = True
        handlers = {}

        def install(signum, handler):
            handlers[signum] = handler

        with patch("main.get_settings", return_value=Settings(ENCRYPTION_KEY=VALID_KEY)), \
                patch("main.configure_logging"), \
                patch("main.build_manager", return_value=manager), \
                patch("main.signal.signal", side_effect=install):
            main.main()

        handlers[main.signal.SIGTERM](main.signal.SIGTERM, None)
        manager.stop_event.set.assert_called_once()
