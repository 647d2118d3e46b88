"""Data layer - models, normalization, snapshot persistence and keys."""

from .persistence import SnapshotStore, get_data_dir
from .keys import KeyProviderError, ManagedKeyProvider, get_default_key_provider
from .normalization import normalize_usage_payload
from .models import (
    TimeRange,
    PanelStatus,
    UsageSummary,
    UsageRow,
    UsagePanel,
    CachedSnapshot,
    make_unavailable_panel,
    append_clamp_notice,
)

__all__ = [
    "SnapshotStore",
    "get_data_dir",
    "KeyProviderError",
    "ManagedKeyProvider",
    "get_default_key_provider",
    "normalize_usage_payload",
    "TimeRange",
    "PanelStatus",
    "UsageSummary",
    "UsageRow",
    "UsagePanel",
    "CachedSnapshot",
    "make_unavailable_panel",
    "append_clamp_notice",
]
