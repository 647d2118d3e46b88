"""Configuration management for the native usage panel.

Supports YAML-based configuration of the management API location,
request timeouts and the data directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_BASE_URL = "http://127.0.0.1:8318"
DEFAULT_USAGE_PATH = "/v0/management/usage"
DEFAULT_MODEL_DEFINITIONS_PATH = "/v0/management/model-definitions"


@dataclass
class ManagementConfig:
    """Location and timeouts of the local management API."""

    base_url: str = DEFAULT_BASE_URL
    usage_path: str = DEFAULT_USAGE_PATH
    model_definitions_path: str = DEFAULT_MODEL_DEFINITIONS_PATH
    connect_timeout: float = 3.0  # seconds, per usage attempt
    read_timeout: float = 8.0  # seconds, per usage attempt
    request_timeout: float = 5.0  # seconds, other management calls
    default_range: str = "30d"  # range queried by collect()

    @property
    def usage_url(self) -> str:
        return self.base_url.rstrip("/") + self.usage_path

    def model_definitions_url(self, channel: str) -> str:
        return f"{self.base_url.rstrip('/')}{self.model_definitions_path}/{channel}"


@dataclass
class Config:
    """Main configuration container."""

    management: ManagementConfig = field(default_factory=ManagementConfig)

    # Data directory override
    data_dir: Optional[str] = None
    # Management key file override (defaults to <data_dir>/management_key)
    key_file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary."""
        mgmt_data = data.get("management", {}) or {}
        management = ManagementConfig(
            base_url=mgmt_data.get("base_url", DEFAULT_BASE_URL),
            usage_path=mgmt_data.get("usage_path", DEFAULT_USAGE_PATH),
            model_definitions_path=mgmt_data.get("model_definitions_path", DEFAULT_MODEL_DEFINITIONS_PATH),
            connect_timeout=float(mgmt_data.get("connect_timeout", 3.0)),
            read_timeout=float(mgmt_data.get("read_timeout", 8.0)),
            request_timeout=float(mgmt_data.get("request_timeout", 5.0)),
            default_range=str(mgmt_data.get("default_range", "30d")),
        )

        return cls(
            management=management,
            data_dir=data.get("data_dir"),
            key_file=data.get("key_file"),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load config from YAML file."""
        if not path.exists():
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """Load config from path or defaults.

        Checks in order:
        1. Provided path
        2. NATIVE_USAGE_CONFIG env var
        3. ./configs/config.yaml
        4. ./config.yaml
        5. ~/.native_usage/config.yaml
        6. Default config
        """
        paths_to_try = []

        if config_path:
            paths_to_try.append(Path(config_path))

        if env_path := os.environ.get("NATIVE_USAGE_CONFIG"):
            paths_to_try.append(Path(env_path))

        paths_to_try.extend([
            Path("./configs/config.yaml"),
            Path("./config.yaml"),
            Path.home() / ".native_usage" / "config.yaml",
        ])

        for path in paths_to_try:
            if path.exists():
                return cls.from_yaml(path)

        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "management": {
                "base_url": self.management.base_url,
                "usage_path": self.management.usage_path,
                "model_definitions_path": self.management.model_definitions_path,
                "connect_timeout": self.management.connect_timeout,
                "read_timeout": self.management.read_timeout,
                "request_timeout": self.management.request_timeout,
                "default_range": self.management.default_range,
            },
            "data_dir": self.data_dir,
            "key_file": self.key_file,
        }
