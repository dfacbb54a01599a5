"""Configuration loading for listsync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

RESYNC_MODES = ("merge", "push")


@dataclass
class NodeConfig:
    name: str = "listsync-node"


@dataclass
class RelayConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    path: str = "/ws"
    send_timeout_seconds: float = 5.0


@dataclass
class ClientConfig:
    """Configuration for the client-side synchronizer."""

    relay_url: str = "ws://localhost:8080/ws"
    store_path: str = "~/.listsync/entries.db"
    store_key: str = "cross-browser-todos"
    reconnect_delay_seconds: float = 5.0
    resync_mode: str = "merge"  # "merge" or "push"

    @property
    def relay_http_url(self) -> str:
        """HTTP base URL of the relay, derived from the WebSocket URL."""
        url = self.relay_url
        if url.startswith("wss://"):
            url = "https://" + url[len("wss://"):]
        elif url.startswith("ws://"):
            url = "http://" + url[len("ws://"):]
        scheme, sep, rest = url.partition("://")
        host = rest.split("/", 1)[0]
        return f"{scheme}{sep}{host}"


@dataclass
class Config:
    node: NodeConfig = field(default_factory=NodeConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    client: ClientConfig = field(default_factory=ClientConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with LISTSYNC_ prefix."""
    return os.environ.get(f"LISTSYNC_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Node overrides
    if name := _get_env("NODE_NAME"):
        config.node.name = name

    # Relay overrides
    if host := _get_env("RELAY_HOST"):
        config.relay.host = host
    if port := _get_env("RELAY_PORT"):
        config.relay.port = int(port)
    if path := _get_env("RELAY_PATH"):
        config.relay.path = path
    if send_timeout := _get_env("SEND_TIMEOUT"):
        config.relay.send_timeout_seconds = float(send_timeout)

    # Client overrides
    if relay_url := _get_env("RELAY_URL"):
        config.client.relay_url = relay_url
    if store_path := _get_env("STORE_PATH"):
        config.client.store_path = store_path
    if store_key := _get_env("STORE_KEY"):
        config.client.store_key = store_key
    if delay := _get_env("RECONNECT_DELAY"):
        config.client.reconnect_delay_seconds = float(delay)
    if mode := _get_env("RESYNC_MODE"):
        config.client.resync_mode = mode.lower()

    return config


def _validate(config: Config) -> None:
    if config.client.resync_mode not in RESYNC_MODES:
        raise ValueError(
            f"Invalid resync_mode {config.client.resync_mode!r}, "
            f"expected one of {', '.join(RESYNC_MODES)}"
        )
    if config.client.reconnect_delay_seconds < 0:
        raise ValueError("reconnect_delay_seconds must not be negative")
    if config.relay.send_timeout_seconds <= 0:
        raise ValueError("send_timeout_seconds must be positive")
    if not config.relay.path.startswith("/"):
        config.relay.path = "/" + config.relay.path


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded and validated Config object.

    Raises:
        ValueError: If a setting has an invalid value.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse node config
            if "node" in data:
                config.node = NodeConfig(
                    name=data["node"].get("name", config.node.name)
                )

            # Parse relay config
            if "relay" in data:
                relay_data = data["relay"]
                config.relay = RelayConfig(
                    host=relay_data.get("host", config.relay.host),
                    port=int(relay_data.get("port", config.relay.port)),
                    path=relay_data.get("path", config.relay.path),
                    send_timeout_seconds=float(
                        relay_data.get(
                            "send_timeout_seconds", config.relay.send_timeout_seconds
                        )
                    ),
                )

            # Parse client config
            if "client" in data:
                client_data = data["client"]
                config.client = ClientConfig(
                    relay_url=client_data.get("relay_url", config.client.relay_url),
                    store_path=client_data.get("store_path", config.client.store_path),
                    store_key=client_data.get("store_key", config.client.store_key),
                    reconnect_delay_seconds=float(
                        client_data.get(
                            "reconnect_delay_seconds",
                            config.client.reconnect_delay_seconds,
                        )
                    ),
                    resync_mode=str(
                        client_data.get("resync_mode", config.client.resync_mode)
                    ).lower(),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    _validate(config)

    return config
