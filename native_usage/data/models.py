"""Data models for the native usage panel.

This module defines the structures shared by the normalizer, the
management collector, the snapshot store and the panel service:

1. RANGES
   - TimeRange values are the cache keys ('24h', '7d', '30d', 'all')
   - 'all' is resolved to '30d' for every backend query

2. PANEL STATUS
   - ok: freshly fetched (summary always present)
   - stale: a previous snapshot served after a failed refresh
   - unavailable: nothing to show (summary always absent)

3. EXPLICIT UNITS
   - Counts: requests, tokens (integers)
   - Time: ISO-8601 UTC strings for display, epoch seconds for freshness
"""

from __future__ import annotations

import copy
import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


CLAMP_NOTICE = "Native panel is currently clamped to 30d."
NOT_FETCHED_MESSAGE = "Native usage has not been fetched yet."


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat()


# =============================================================================
# Enumerations
# =============================================================================


class TimeRange(str, Enum):
    """Logical reporting window selectable in the panel."""

    LAST_24H = "24h"
    LAST_7D = "7d"
    LAST_30D = "30d"
    ALL_TIME = "all"  # Display only, queried as 30d

    @property
    def key(self) -> str:
        """Canonical string used as the snapshot cache key."""
        return self.value

    @property
    def effective(self) -> str:
        """Range string actually sent to the management API."""
        if self is TimeRange.ALL_TIME:
            return TimeRange.LAST_30D.value
        return self.value

    @property
    def is_clamped(self) -> bool:
        return self is TimeRange.ALL_TIME

    @classmethod
    def parse(cls, value: Any) -> "TimeRange":
        """Parse a range from its canonical string form.

        Raises:
            ValueError: If the value is not a known range.
        """
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"Unknown usage range: {value!r}") from None


class PanelStatus(str, Enum):
    """Status of a usage panel."""

    OK = "ok"
    STALE = "stale"
    UNAVAILABLE = "unavailable"


# =============================================================================
# Panel Model
# =============================================================================


@dataclass
class UsageSummary:
    """Aggregate counters for a range."""

    total_requests: int = 0  # Unit: requests
    total_tokens: int = 0  # Unit: tokens

    def to_dict(self) -> Dict[str, Any]:
        return {"total_requests": self.total_requests, "total_tokens": self.total_tokens}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageSummary":
        return cls(
            total_requests=int(data.get("total_requests") or 0),
            total_tokens=int(data.get("total_tokens") or 0),
        )


@dataclass
class UsageRow:
    """One reporting line of the per-model breakdown."""

    source: str  # 'native' unless the backend names a provider
    model: str
    auth_index: Optional[str] = None  # Per-account index label
    requests: int = 0  # Unit: requests
    tokens: int = 0  # Unit: tokens

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "model": self.model,
            "auth_index": self.auth_index,
            "requests": self.requests,
            "tokens": self.tokens,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageRow":
        auth_index = data.get("auth_index")
        return cls(
            source=str(data.get("source") or "native"),
            model=str(data.get("model") or "unknown"),
            auth_index=str(auth_index) if auth_index is not None else None,
            requests=int(data.get("requests") or 0),
            tokens=int(data.get("tokens") or 0),
        )


@dataclass
class UsagePanel:
    """The unit returned to panel callers.

    Distinguishes between:
    - status: ok, stale or unavailable
    - effective_range: the range actually queried ('all' shows as '30d')
    - message: optional human-readable explanation shown above the table
    """

    status: str  # 'ok', 'stale', 'unavailable'
    effective_range: str
    message: Optional[str] = None
    summary: Optional[UsageSummary] = None
    rows: List[UsageRow] = field(default_factory=list)
    last_synced_at: Optional[str] = None  # ISO timestamp

    @property
    def panel_status(self) -> PanelStatus:
        """Return status as enum."""
        return PanelStatus(self.status)

    def copy(self) -> "UsagePanel":
        """Return a deep copy that can be modified without touching the cache."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "effective_range": self.effective_range,
            "message": self.message,
            "summary": self.summary.to_dict() if self.summary else None,
            "rows": [row.to_dict() for row in self.rows],
            "last_synced_at": self.last_synced_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsagePanel":
        summary = data.get("summary")
        rows = data.get("rows") or []
        return cls(
            status=str(data.get("status") or PanelStatus.UNAVAILABLE.value),
            effective_range=str(data.get("effective_range") or ""),
            message=data.get("message"),
            summary=UsageSummary.from_dict(summary) if isinstance(summary, dict) else None,
            rows=[UsageRow.from_dict(row) for row in rows if isinstance(row, dict)],
            last_synced_at=data.get("last_synced_at"),
        )


@dataclass
class CachedSnapshot:
    """Persisted envelope around a panel.

    synced_ts is epoch seconds of the last write and drives freshness.
    panel may be None if the stored record could not be decoded.
    """

    panel: Optional[UsagePanel]
    synced_ts: Optional[int] = None  # Unit: seconds since epoch

    def is_fresh(self, now: float, ttl_seconds: int) -> bool:
        """Check whether the snapshot is young enough to serve without refresh."""
        if self.synced_ts is None:
            return False
        return now - self.synced_ts <= ttl_seconds


# =============================================================================
# Builders
# =============================================================================


def make_unavailable_panel(effective_range: str, message: str) -> UsagePanel:
    """Build a panel that has nothing to show."""
    return UsagePanel(
        status=PanelStatus.UNAVAILABLE.value,
        effective_range=effective_range,
        message=message,
        summary=None,
        rows=[],
        last_synced_at=utc_now_iso(),
    )


def append_clamp_notice(panel: UsagePanel) -> UsagePanel:
    """Append the 30d clamp sentence to the panel message in place."""
    if panel.message:
        panel.message = f"{panel.message} {CLAMP_NOTICE}"
    else:
        panel.message = CLAMP_NOTICE
    return panel
