"""Schema-tolerant normalization of management API usage payloads.

The management API does not commit to a response schema: counters may sit
at the top level or several objects deep, and field names differ between
backend versions. This module extracts a UsagePanel by alias lookup rather
than by schema.

Key normalizations:
1. Counters → aliases in priority order, each at its first depth-first occurrence
2. Rows → first non-empty candidate array, one UsageRow per JSON object
3. Missing rows with nonzero totals → one synthetic 'all-models' row
"""

from __future__ import annotations

import math
import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from .models import PanelStatus, UsagePanel, UsageRow, UsageSummary, utc_now_iso


# =============================================================================
# Alias Tables (priority order)
# =============================================================================

TOTAL_REQUEST_KEYS = ("total_requests", "request_count", "requests", "totalRequests")
TOTAL_TOKEN_KEYS = ("total_tokens", "tokens", "token_count", "totalTokens")

ROW_ARRAY_KEYS = (
    "rows",
    "items",
    "models",
    "model_usage",
    "usage_by_model",
    "by_model",
)

ROW_MODEL_KEYS = ("model", "model_name", "name")
ROW_SOURCE_KEYS = ("source", "provider", "type")
ROW_AUTH_INDEX_KEYS = ("auth_index", "account_index", "authIndex", "accountIndex")
ROW_REQUEST_KEYS = ("requests", "request_count", "count")
ROW_TOKEN_KEYS = ("total_tokens", "tokens", "token_count", "totalTokens")

DEFAULT_SOURCE = "native"
DEFAULT_MODEL = "unknown"
SYNTHETIC_MODEL = "all-models"

_INTEGER_STRING = re.compile(r"[+-]?[0-9]+")


# =============================================================================
# Coercion
# =============================================================================


def coerce_int(value: Any) -> Optional[int]:
    """Coerce a JSON value to an integer count.

    Accepts integers, floats (rounded half away from zero) and strings
    holding an optionally signed integer. Booleans, non-finite floats and
    everything else return None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return int(math.copysign(math.floor(abs(value) + 0.5), value))
    if isinstance(value, str) and _INTEGER_STRING.fullmatch(value):
        return int(value)
    return None


def coerce_label(value: Any) -> Optional[str]:
    """Coerce a JSON value to a display label (strings and numbers only)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return None


# =============================================================================
# Tree Search
# =============================================================================


_MISSING = object()


def find_value_by_key(payload: Any, key: str) -> Any:
    """Depth-first search for the first occurrence of a key.

    An object's own key is checked before its values, values are searched
    in insertion order and array elements in order.

    Returns:
        The value stored under the first occurrence, or _MISSING
    """
    if isinstance(payload, dict):
        if key in payload:
            return payload[key]
        for nested in payload.values():
            found = find_value_by_key(nested, key)
            if found is not _MISSING:
                return found
    elif isinstance(payload, list):
        for item in payload:
            found = find_value_by_key(item, key)
            if found is not _MISSING:
                return found
    return _MISSING


def find_first(payload: Any, keys: Sequence[str], convert: Callable[[Any], Any]) -> Any:
    """Resolve aliases in priority order against the whole tree.

    Only the first occurrence of each alias is considered. If its value
    converts to None the next alias is tried; later occurrences of the
    same alias are never looked at.

    Args:
        payload: Parsed JSON tree
        keys: Aliases in priority order
        convert: Returns the converted value, or None to reject the hit

    Returns:
        The first converted value, or None if nothing matched
    """
    for key in keys:
        value = find_value_by_key(payload, key)
        if value is _MISSING:
            continue
        converted = convert(value)
        if converted is not None:
            return converted
    return None


def find_first_int(payload: Any, keys: Sequence[str]) -> Optional[int]:
    """Resolve counter aliases in priority order to an integer."""
    return find_first(payload, keys, coerce_int)


def _non_empty_list(value: Any) -> Optional[List[Any]]:
    if isinstance(value, list) and value:
        return value
    return None


def _lookup(obj: Dict[str, Any], keys: Sequence[str], convert: Callable[[Any], Any]) -> Any:
    """Alias lookup restricted to a single object (no recursion)."""
    for key in keys:
        if key in obj:
            converted = convert(obj[key])
            if converted is not None:
                return converted
    return None


# =============================================================================
# Rows
# =============================================================================


def row_from_object(obj: Dict[str, Any]) -> UsageRow:
    """Convert one row-like JSON object to a UsageRow."""
    source = _lookup(obj, ROW_SOURCE_KEYS, coerce_label)
    model = _lookup(obj, ROW_MODEL_KEYS, coerce_label)
    return UsageRow(
        source=source if source is not None else DEFAULT_SOURCE,
        model=model if model is not None else DEFAULT_MODEL,
        auth_index=_lookup(obj, ROW_AUTH_INDEX_KEYS, coerce_label),
        requests=_lookup(obj, ROW_REQUEST_KEYS, coerce_int) or 0,
        tokens=_lookup(obj, ROW_TOKEN_KEYS, coerce_int) or 0,
    )


def extract_rows(payload: Any) -> List[UsageRow]:
    """Extract breakdown rows from the first non-empty candidate array.

    Once a candidate array is found no other candidate is tried, even if
    none of its elements is an object.
    """
    source = find_first(payload, ROW_ARRAY_KEYS, _non_empty_list)
    if source is None:
        return []
    return [row_from_object(item) for item in source if isinstance(item, dict)]


# =============================================================================
# Panel
# =============================================================================


def normalize_usage_payload(payload: Any, effective_range: str) -> UsagePanel:
    """Build an 'ok' panel from a raw management API payload.

    Args:
        payload: Parsed JSON body of the usage endpoint
        effective_range: Range string that was queried

    Returns:
        UsagePanel with summary and rows populated
    """
    total_requests = find_first_int(payload, TOTAL_REQUEST_KEYS) or 0
    total_tokens = find_first_int(payload, TOTAL_TOKEN_KEYS) or 0

    rows = extract_rows(payload)
    if not rows and (total_requests != 0 or total_tokens != 0):
        rows.append(
            UsageRow(
                source=DEFAULT_SOURCE,
                model=SYNTHETIC_MODEL,
                auth_index=None,
                requests=total_requests,
                tokens=total_tokens,
            )
        )

    return UsagePanel(
        status=PanelStatus.OK.value,
        effective_range=effective_range,
        message=None,
        summary=UsageSummary(total_requests=total_requests, total_tokens=total_tokens),
        rows=rows,
        last_synced_at=utc_now_iso(),
    )
