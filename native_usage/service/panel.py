"""Native usage panel service.

Decides between serving the cached snapshot and refreshing it from the
management API, and falls back to the snapshot (or an 'unavailable' panel)
when the refresh fails. get_panel never raises.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Optional, Union

from ..collectors.management import ManagementUsageCollector
from ..data.keys import KEY_FILE_NAME, ManagedKeyProvider
from ..data.models import (
    NOT_FETCHED_MESSAGE,
    CachedSnapshot,
    PanelStatus,
    TimeRange,
    UsagePanel,
    append_clamp_notice,
    make_unavailable_panel,
)
from ..data.normalization import normalize_usage_payload
from ..data.persistence import SnapshotStore
from .config import Config

NATIVE_REFRESH_TTL_SECONDS = 60


def _log(msg: str) -> None:
    """Print with flush so messages interleave correctly with callers' output."""
    print(msg, flush=True)


def _error_text(exc: Exception) -> str:
    return getattr(exc, "message", None) or str(exc)


class NativeUsagePanelService:
    """Serves usage panels from the snapshot store, refreshing when stale.

    Store reads and writes are best-effort: a failed read counts as no
    cache and a failed write is only logged.
    """

    def __init__(
        self,
        store: SnapshotStore,
        collector: ManagementUsageCollector,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.collector = collector
        self._clock = clock

    def get_panel(self, usage_range: Union[TimeRange, str], force_refresh: bool = False) -> UsagePanel:
        """Return the usage panel for a range.

        Args:
            usage_range: TimeRange or its string form ('24h', '7d', '30d', 'all')
            force_refresh: Skip the freshness check and query the API

        Returns:
            UsagePanel with status ok, stale or unavailable
        """
        try:
            time_range = TimeRange.parse(usage_range)
        except ValueError as e:
            return make_unavailable_panel(str(usage_range), f"Native usage is unavailable: {e}")

        range_key = time_range.key
        effective_range = time_range.effective

        cached = self._load_snapshot(range_key)
        cached_is_fresh = cached is not None and cached.is_fresh(self._clock(), NATIVE_REFRESH_TTL_SECONDS)

        if not force_refresh and cached_is_fresh:
            if cached.panel is not None:
                panel = cached.panel
            else:
                panel = make_unavailable_panel(effective_range, NOT_FETCHED_MESSAGE)
            return self._finish(panel, time_range)

        try:
            payload = self.collector.fetch_usage(effective_range)
            panel = normalize_usage_payload(payload, effective_range)
        except Exception as e:
            return self._fallback(time_range, cached, _error_text(e))

        self._finish(panel, time_range)
        self._save_snapshot(range_key, panel, "native usage snapshot")
        return panel

    def _fallback(self, time_range: TimeRange, cached: Optional[CachedSnapshot], error: str) -> UsagePanel:
        """Build the panel returned after a failed refresh."""
        if cached is not None and cached.panel is not None:
            # Served but not re-persisted, the stored timestamp stays as is
            _log(f"[native_usage] Refresh for {time_range.key} failed, serving snapshot: {error}")
            panel = cached.panel.copy()
            panel.status = PanelStatus.STALE.value
            panel.message = f"Native refresh failed: {error}. Showing most recent snapshot."
            return self._finish(panel, time_range)

        _log(f"[native_usage] Refresh for {time_range.key} failed with no snapshot: {error}")
        panel = make_unavailable_panel(time_range.effective, f"Native usage is unavailable: {error}")
        self._finish(panel, time_range)
        self._save_snapshot(time_range.key, panel, "unavailable snapshot")
        return panel

    @staticmethod
    def _finish(panel: UsagePanel, time_range: TimeRange) -> UsagePanel:
        if time_range.is_clamped:
            append_clamp_notice(panel)
        return panel

    def _load_snapshot(self, range_key: str) -> Optional[CachedSnapshot]:
        try:
            return self.store.load_native_snapshot(range_key)
        except Exception as e:
            _log(f"[native_usage] Failed to load native usage snapshot: {e}")
            return None

    def _save_snapshot(self, range_key: str, panel: UsagePanel, label: str) -> None:
        try:
            self.store.save_native_snapshot(range_key, panel)
        except Exception as e:
            _log(f"[native_usage] Failed to persist {label}: {e}")


def create_panel_service(config: Optional[Config] = None) -> NativeUsagePanelService:
    """Wire the default store, key provider and collector from config."""
    config = config or Config.load()
    data_dir = Path(config.data_dir).expanduser() if config.data_dir else None
    store = SnapshotStore(data_dir)

    key_path = Path(config.key_file).expanduser() if config.key_file else store.data_dir / KEY_FILE_NAME
    collector = ManagementUsageCollector(
        key_provider=ManagedKeyProvider(key_path),
        config=config.management,
    )
    return NativeUsagePanelService(store, collector)
