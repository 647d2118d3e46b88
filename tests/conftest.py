"""Pytest configuration and shared fixtures."""

import pytest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import MagicMock


class FakeClock:
    """Settable clock standing in for time.time."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticKeyProvider:
    """Key provider returning a fixed key, or raising if given an exception."""

    def __init__(self, key="test-key", error=None):
        self.key = key
        self.error = error
        self.calls = 0

    def get_or_create_management_key(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.key


@pytest.fixture
def temp_data_dir():
    """Create a temporary data directory for tests."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def key_provider():
    return StaticKeyProvider()


@pytest.fixture
def make_response():
    """Factory for fake requests responses."""

    def _make(status_code=200, payload=None, json_error=None, text=""):
        resp = MagicMock()
        resp.status_code = status_code
        resp.text = text
        if json_error is not None:
            resp.json.side_effect = json_error
        else:
            resp.json.return_value = payload
        return resp

    return _make


@pytest.fixture
def sample_usage_payload():
    """Usage document in the shape recent backends return."""
    return {
        "usage": {
            "total_requests": 12,
            "total_tokens": 3400,
            "models": [
                {
                    "model": "gpt-4o",
                    "provider": "openai",
                    "auth_index": 0,
                    "requests": 8,
                    "total_tokens": 2400,
                },
                {
                    "model_name": "claude-sonnet-4",
                    "request_count": "4",
                    "tokens": 1000.4,
                },
            ],
        }
    }


@pytest.fixture
def sample_flat_payload():
    """Usage document from older backends: totals only, no breakdown."""
    return {"total_requests": 42, "total_tokens": 100}
