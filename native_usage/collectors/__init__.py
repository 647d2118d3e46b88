"""Data collectors - local management API sources."""

from .base import BaseCollector, CollectorError
from .management import (
    ManagementUsageCollector,
    get_shared_session,
    sanitize_channel,
)

__all__ = [
    "BaseCollector",
    "CollectorError",
    "ManagementUsageCollector",
    "get_shared_session",
    "sanitize_channel",
]
