"""Tests for the native usage panel service."""

import pytest
from unittest.mock import MagicMock

from native_usage.collectors.base import CollectorError
from native_usage.data.models import (
    CLAMP_NOTICE,
    CachedSnapshot,
    TimeRange,
    UsagePanel,
    UsageSummary,
)
from native_usage.data.persistence import SnapshotStore
from native_usage.service.config import Config
from native_usage.service.panel import NativeUsagePanelService, create_panel_service


def failing_collector(message="127.0.0.1:8318 request failed: refused"):
    collector = MagicMock()
    collector.fetch_usage.side_effect = CollectorError("native_usage", message)
    return collector


def working_collector(payload):
    collector = MagicMock()
    collector.fetch_usage.return_value = payload
    return collector


@pytest.fixture
def store(temp_data_dir, clock):
    return SnapshotStore(temp_data_dir, clock=clock)


def seed(store, range_key, requests=7, message=None):
    panel = UsagePanel(
        status="ok",
        effective_range="30d" if range_key == "all" else range_key,
        message=message,
        summary=UsageSummary(total_requests=requests, total_tokens=70),
        rows=[],
        last_synced_at="2026-01-22T12:00:00+00:00",
    )
    store.save_native_snapshot(range_key, panel)
    return panel


class TestFreshness:
    def test_fresh_cache_served_without_fetch(self, store, clock):
        cached = seed(store, "7d")
        collector = working_collector({"total_requests": 99})
        service = NativeUsagePanelService(store, collector, clock=clock)

        clock.advance(60)
        panel = service.get_panel(TimeRange.LAST_7D)

        assert panel == cached
        collector.fetch_usage.assert_not_called()

    def test_expired_cache_triggers_refresh(self, store, clock):
        seed(store, "7d")
        collector = working_collector({"total_requests": 99})
        service = NativeUsagePanelService(store, collector, clock=clock)

        clock.advance(61)
        panel = service.get_panel("7d")

        collector.fetch_usage.assert_called_once_with("7d")
        assert panel.status == "ok"
        assert panel.summary.total_requests == 99
        snapshot = store.load_native_snapshot("7d")
        assert snapshot.synced_ts == int(clock.now)
        assert snapshot.panel.summary.total_requests == 99

    def test_force_refresh_ignores_fresh_cache(self, store, clock):
        seed(store, "7d")
        collector = working_collector({"total_requests": 99})
        service = NativeUsagePanelService(store, collector, clock=clock)

        panel = service.get_panel("7d", force_refresh=True)

        collector.fetch_usage.assert_called_once_with("7d")
        assert panel.summary.total_requests == 99

    def test_fresh_record_without_panel(self, clock):
        store = MagicMock()
        store.load_native_snapshot.return_value = CachedSnapshot(panel=None, synced_ts=int(clock.now))
        collector = working_collector({})
        service = NativeUsagePanelService(store, collector, clock=clock)

        panel = service.get_panel("24h")

        assert panel.status == "unavailable"
        assert panel.message == "Native usage has not been fetched yet."
        collector.fetch_usage.assert_not_called()


class TestAllTimeClamp:
    def test_fetches_30d_and_stores_under_all(self, store, clock):
        collector = working_collector({"total_requests": 1})
        service = NativeUsagePanelService(store, collector, clock=clock)

        panel = service.get_panel(TimeRange.ALL_TIME)

        collector.fetch_usage.assert_called_once_with("30d")
        assert panel.effective_range == "30d"
        assert panel.message == CLAMP_NOTICE
        assert store.list_range_keys() == ["all"]

    def test_fresh_cache_gets_notice(self, store, clock):
        seed(store, "all", message="Hello.")
        service = NativeUsagePanelService(store, working_collector({}), clock=clock)

        panel = service.get_panel("all")

        assert panel.message == f"Hello. {CLAMP_NOTICE}"

    def test_stale_fallback_gets_notice(self, store, clock):
        seed(store, "all")
        service = NativeUsagePanelService(store, failing_collector("boom"), clock=clock)

        panel = service.get_panel("all", force_refresh=True)

        assert panel.message.endswith(CLAMP_NOTICE)
        assert panel.message.startswith("Native refresh failed: boom.")

    def test_unavailable_gets_notice(self, store, clock):
        service = NativeUsagePanelService(store, failing_collector("boom"), clock=clock)

        panel = service.get_panel("all")

        assert panel.message == f"Native usage is unavailable: boom {CLAMP_NOTICE}"


class TestFailureHandling:
    def test_stale_fallback_keeps_store_untouched(self, store, clock):
        seed(store, "7d", requests=5)
        before = store.load_native_snapshot("7d")
        service = NativeUsagePanelService(store, failing_collector("http://x request failed: refused"), clock=clock)

        clock.advance(10)
        panel = service.get_panel("7d", force_refresh=True)

        assert panel.status == "stale"
        assert panel.message == (
            "Native refresh failed: http://x request failed: refused. Showing most recent snapshot."
        )
        assert panel.summary.total_requests == 5
        assert store.load_native_snapshot("7d") == before

    def test_stale_fallback_from_expired_cache(self, store, clock):
        seed(store, "7d")
        service = NativeUsagePanelService(store, failing_collector(), clock=clock)

        clock.advance(3600)
        panel = service.get_panel("7d")

        assert panel.status == "stale"

    def test_unavailable_without_cache_writes_once(self, clock):
        store = MagicMock()
        store.load_native_snapshot.return_value = None
        service = NativeUsagePanelService(store, failing_collector("down"), clock=clock)

        panel = service.get_panel("24h", force_refresh=True)

        assert panel.status == "unavailable"
        assert panel.summary is None
        assert "Native usage is unavailable:" in panel.message
        store.save_native_snapshot.assert_called_once_with("24h", panel)

    def test_store_read_error_treated_as_no_cache(self, clock):
        store = MagicMock()
        store.load_native_snapshot.side_effect = OSError("disk gone")
        service = NativeUsagePanelService(store, working_collector({"total_tokens": 3}), clock=clock)

        panel = service.get_panel("7d")

        assert panel.status == "ok"
        assert panel.summary.total_tokens == 3

    def test_store_write_error_is_logged(self, clock, capsys):
        store = MagicMock()
        store.load_native_snapshot.return_value = None
        store.save_native_snapshot.side_effect = OSError("read-only")
        service = NativeUsagePanelService(store, working_collector({"total_tokens": 3}), clock=clock)

        panel = service.get_panel("7d")

        assert panel.status == "ok"
        assert "Failed to persist native usage snapshot: read-only" in capsys.readouterr().out

    def test_unexpected_collector_error(self, store, clock):
        collector = MagicMock()
        collector.fetch_usage.side_effect = RuntimeError("kaboom")
        service = NativeUsagePanelService(store, collector, clock=clock)

        panel = service.get_panel("7d")

        assert panel.status == "unavailable"
        assert panel.message == "Native usage is unavailable: kaboom"

    def test_unknown_range(self, store, clock):
        collector = working_collector({})
        service = NativeUsagePanelService(store, collector, clock=clock)

        panel = service.get_panel("90d")

        assert panel.status == "unavailable"
        collector.fetch_usage.assert_not_called()


class TestCreatePanelService:
    def test_wires_from_config(self, temp_data_dir):
        config = Config.from_dict({
            "data_dir": str(temp_data_dir),
            "management": {"base_url": "http://127.0.0.1:9001"},
        })

        service = create_panel_service(config)

        assert service.store.data_dir == temp_data_dir
        assert service.collector.config.base_url == "http://127.0.0.1:9001"
        assert service.collector.key_provider.key_path == temp_data_dir / "management_key"
