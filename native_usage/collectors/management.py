"""Local management API collector.

Talks to the proxy's management API on the loopback interface. The usage
endpoint has accepted its range under different query parameter names and
its secret under different headers across backend versions, so fetching
usage negotiates: every endpoint form is tried with every header form, in
a fixed order, until one answers with a 2xx JSON body.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import requests
from requests.adapters import HTTPAdapter

from .base import BaseCollector, CollectorError
from ..data.keys import get_default_key_provider
from ..data.normalization import normalize_usage_payload
from ..service.config import ManagementConfig

NO_RESPONSE_ERROR = "No response from native usage endpoint"

# Alternate secret headers, tried after the bearer token
SECRET_HEADER_NAMES = ("X-Management-Secret", "X-Secret-Key", "X-API-Key")
RANGE_PARAM_NAMES = ("range", "period")
MODEL_DEFINITIONS_KEY_HEADER = "X-Management-Key"


_shared_session: Optional[requests.Session] = None
_shared_session_lock = threading.Lock()


def get_shared_session() -> requests.Session:
    """Process-wide session for management API calls, built on first use.

    Transport retries are disabled: callers decide how many attempts
    are made.
    """
    global _shared_session
    with _shared_session_lock:
        if _shared_session is None:
            session = requests.Session()
            adapter = HTTPAdapter(max_retries=0, pool_connections=1, pool_maxsize=4)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
            # Loopback only, never route through an environment proxy
            session.trust_env = False
            session.headers.update({"User-Agent": "native-usage-panel/1.0"})
            _shared_session = session
        return _shared_session


def _valid_header_value(value: str) -> bool:
    """Check a value can be sent as an HTTP header value."""
    if not value or value != value.strip():
        return False
    try:
        value.encode("latin-1")
    except UnicodeEncodeError:
        return False
    return all(ord(c) >= 0x20 and ord(c) != 0x7F for c in value)


def build_usage_endpoints(usage_url: str, effective_range: str) -> List[str]:
    """Usage endpoint forms in priority order."""
    endpoints = [f"{usage_url}?{urlencode({param: effective_range})}" for param in RANGE_PARAM_NAMES]
    endpoints.append(usage_url)
    return endpoints


def build_auth_header_variants(key: str) -> List[Dict[str, str]]:
    """Authentication header forms in priority order.

    Forms whose value cannot be sent as a header are left out.
    """
    variants = []
    bearer = f"Bearer {key}"
    if _valid_header_value(bearer):
        variants.append({"Authorization": bearer})
    if _valid_header_value(key):
        for name in SECRET_HEADER_NAMES:
            variants.append({name: key})
    return variants


def sanitize_channel(channel: str) -> str:
    """Validate a model-definitions channel name.

    Raises:
        ValueError: If the channel is empty or has characters outside
            ASCII letters, digits, '-' and '_'.
    """
    trimmed = (channel or "").strip()
    if not trimmed:
        raise ValueError("channel is required")
    for c in trimmed:
        if not (c.isascii() and (c.isalnum() or c in "-_")):
            raise ValueError("channel contains invalid characters")
    return trimmed.lower()


class ManagementUsageCollector(BaseCollector):
    """Collector for native usage from the local management API."""

    def __init__(
        self,
        key_provider=None,
        config: Optional[ManagementConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self._key_provider = key_provider
        self.config = config or ManagementConfig()
        self._session = session

    @property
    def name(self) -> str:
        return "native_usage"

    @property
    def display_name(self) -> str:
        return "Native Usage"

    @property
    def session(self) -> requests.Session:
        return self._session if self._session is not None else get_shared_session()

    @property
    def key_provider(self):
        if self._key_provider is None:
            self._key_provider = get_default_key_provider()
        return self._key_provider

    def is_available(self) -> bool:
        """Management API is available if anything answers on the base URL."""
        try:
            self.session.get(self.config.base_url, timeout=(self.config.connect_timeout, 2))
            return True
        except requests.RequestException:
            return False

    def collect(self) -> Dict[str, Any]:
        """Fetch and normalize usage for the configured default range.

        Returns:
            Panel dictionary with 'status', 'summary' and 'rows' keys.

        Raises:
            CollectorError: If every attempt fails.
        """
        effective_range = self.config.default_range
        payload = self.fetch_usage(effective_range)
        return normalize_usage_payload(payload, effective_range).to_dict()

    def _load_key(self) -> str:
        try:
            return self.key_provider.get_or_create_management_key()
        except Exception as e:
            raise CollectorError(self.name, f"Failed to load managed management key: {e}", e)

    def build_attempts(self, effective_range: str, key: str) -> List[Tuple[str, Dict[str, str]]]:
        """All (endpoint, headers) pairs, endpoints outer, headers inner."""
        return [
            (endpoint, headers)
            for endpoint in build_usage_endpoints(self.config.usage_url, effective_range)
            for headers in build_auth_header_variants(key)
        ]

    def fetch_usage(self, effective_range: str) -> Any:
        """Fetch the raw usage document.

        The first 2xx response with a JSON body wins. Transport errors,
        non-2xx statuses and invalid JSON move on to the next combination.

        Returns:
            Parsed JSON payload

        Raises:
            CollectorError: With the last recorded failure once every
                combination has been tried, or if the key is unavailable.
        """
        key = self._load_key()
        session = self.session
        timeout = (self.config.connect_timeout, self.config.read_timeout)

        last_error = NO_RESPONSE_ERROR
        attempts = self.build_attempts(effective_range, key)
        for endpoint, headers in attempts:
            try:
                resp = session.get(endpoint, headers=headers, timeout=timeout)
            except requests.RequestException as e:
                last_error = f"{endpoint} request failed: {e}"
                continue

            if not 200 <= resp.status_code < 300:
                last_error = f"{endpoint} returned HTTP {resp.status_code}"
                continue

            try:
                return resp.json()
            except ValueError as e:
                last_error = f"{endpoint} returned invalid JSON: {e}"
                continue

        print(f"[{self.name}] All {len(attempts)} management attempts failed: {last_error}", flush=True)
        raise CollectorError(self.name, last_error)

    def fetch_model_definitions(self, channel: str) -> Dict[str, Any]:
        """Fetch provider model definitions for a channel.

        Raises:
            ValueError: If the channel name is invalid.
            CollectorError: If the request fails or the body is not JSON.
        """
        channel = sanitize_channel(channel)
        key = self._load_key()
        if not _valid_header_value(key):
            raise CollectorError(self.name, "Invalid management key")

        url = self.config.model_definitions_url(channel)
        try:
            resp = self.session.get(
                url,
                headers={MODEL_DEFINITIONS_KEY_HEADER: key},
                timeout=self.config.request_timeout,
            )
        except requests.RequestException as e:
            raise CollectorError(self.name, f"Failed to reach management API: {e}", e)

        if not 200 <= resp.status_code < 300:
            raise CollectorError(self.name, f"Management API error ({resp.status_code}): {resp.text}")

        try:
            return resp.json()
        except ValueError as e:
            raise CollectorError(self.name, f"Failed to parse model definitions: {e}", e)
