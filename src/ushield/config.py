"""
Configuration management for the UShield client.

Handles loading, validation, and access to client configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ushield.gateway.base import DEVICE_CHANGED_EVENT


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/ushield/ushield.yaml")


@dataclass
class ClientConfig:
    """Client general settings."""

    log_level: str = "info"
    log_file: str | None = None


@dataclass
class GatewayConfig:
    """Backend connection settings."""

    base_url: str = "http://127.0.0.1:7878"
    api_key: str | None = None
    timeout: float | None = None
    reconnect_delay: float = 2.0
    event_name: str = DEVICE_CHANGED_EVENT

    def __post_init__(self) -> None:
        # Load API key from environment if not set
        if self.api_key is None:
            self.api_key = os.environ.get("USHIELD_API_KEY")


@dataclass
class APIConfig:
    """Dashboard API server settings."""

    host: str = "127.0.0.1"
    port: int = 8700
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"]
    )


@dataclass
class UShieldConfig:
    """Main configuration container."""

    client: ClientConfig = field(default_factory=ClientConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    api: APIConfig = field(default_factory=APIConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UShieldConfig:
        """Create configuration from dictionary."""
        return cls(
            client=ClientConfig(**data.get("client", {})),
            gateway=GatewayConfig(**data.get("gateway", {})),
            api=APIConfig(**data.get("api", {})),
        )


def load_config(path: str | Path | None = None) -> UShieldConfig:
    """
    Load configuration from YAML file.

    Args:
        path: Path to configuration file. If None, uses default paths.

    Returns:
        UShieldConfig instance with loaded settings.

    Raises:
        FileNotFoundError: If an explicit config file does not exist.
        yaml.YAMLError: If config file is invalid YAML.
    """
    if path is None:
        candidates = [
            DEFAULT_CONFIG_PATH,
            Path("config/ushield.yaml"),
            Path("ushield.yaml"),
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break

    if path is None:
        return UShieldConfig()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return UShieldConfig.from_dict(data)


def validate_config(config: UShieldConfig) -> list[str]:
    """
    Validate configuration and return list of errors.

    Args:
        config: Configuration to validate.

    Returns:
        List of error messages. Empty list if valid.
    """
    errors: list[str] = []

    valid_log_levels = {"debug", "info", "warning", "error"}
    if config.client.log_level not in valid_log_levels:
        errors.append(f"Invalid log_level: {config.client.log_level}")

    if not config.gateway.base_url.startswith(("http://", "https://")):
        errors.append(f"Invalid gateway base_url: {config.gateway.base_url}")

    if config.gateway.timeout is not None and config.gateway.timeout <= 0:
        errors.append(f"Invalid gateway timeout: {config.gateway.timeout}")

    if config.gateway.reconnect_delay < 0:
        errors.append(f"Invalid reconnect_delay: {config.gateway.reconnect_delay}")

    if not config.gateway.event_name:
        errors.append("Gateway event_name must not be empty")

    if not (1 <= config.api.port <= 65535):
        errors.append(f"Invalid API port: {config.api.port}")

    return errors
