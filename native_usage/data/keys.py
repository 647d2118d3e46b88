"""Management key provider.

The local management API authenticates with a shared secret. The secret is
taken from NATIVE_USAGE_MANAGEMENT_KEY when set, otherwise read from a key
file in the data directory, which is created with a random key on first use.
"""

from __future__ import annotations

import os
import secrets
import threading
from pathlib import Path
from typing import Optional

from .persistence import get_data_dir

KEY_ENV_VAR = "NATIVE_USAGE_MANAGEMENT_KEY"
KEY_FILE_NAME = "management_key"


class KeyProviderError(Exception):
    """Exception raised when the management key cannot be loaded or created."""


class ManagedKeyProvider:
    """Supplies the management key, creating it lazily.

    The key is resolved at most once per instance and then reused.
    """

    def __init__(self, key_path: Optional[Path] = None, env_var: str = KEY_ENV_VAR):
        self._key_path = Path(key_path) if key_path else None
        self._env_var = env_var
        self._key: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def key_path(self) -> Path:
        if self._key_path is None:
            self._key_path = get_data_dir() / KEY_FILE_NAME
        return self._key_path

    def get_or_create_management_key(self) -> str:
        """Return the management key.

        Raises:
            KeyProviderError: If the key file cannot be read or written.
        """
        with self._lock:
            if self._key is None:
                self._key = self._resolve_key()
            return self._key

    def _resolve_key(self) -> str:
        if env_key := os.environ.get(self._env_var, "").strip():
            return env_key

        path = self.key_path
        try:
            if path.exists():
                existing = path.read_text(encoding="utf-8").strip()
                if existing:
                    return existing
            return self._write_new_key(path)
        except OSError as e:
            raise KeyProviderError(f"cannot access {path}: {e}") from e

    @staticmethod
    def _write_new_key(path: Path) -> str:
        key = secrets.token_hex(24)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Owner read/write only
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(key)
        return key


_default_provider: Optional[ManagedKeyProvider] = None
_default_provider_lock = threading.Lock()


def get_default_key_provider() -> ManagedKeyProvider:
    """Process-wide key provider, constructed on first use."""
    global _default_provider
    with _default_provider_lock:
        if _default_provider is None:
            _default_provider = ManagedKeyProvider()
        return _default_provider
