"""Tests for configuration loading."""

import pytest

from listsync.config import ClientConfig, Config, load_config


class TestDefaults:
    """Tests for built-in defaults."""

    def test_default_config(self):
        config = load_config(None)

        assert config.node.name == "listsync-node"
        assert config.relay.port == 8080
        assert config.relay.path == "/ws"
        assert config.relay.send_timeout_seconds == 5.0
        assert config.client.relay_url == "ws://localhost:8080/ws"
        assert config.client.reconnect_delay_seconds == 5.0
        assert config.client.resync_mode == "merge"

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "nope.yaml")

        assert config == Config()


class TestYAML:
    """Tests for loading from a YAML file."""

    def test_load_sections(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            """
node:
  name: kitchen
relay:
  port: 9000
  path: sync
  send_timeout_seconds: 2
client:
  relay_url: ws://pi.local:9000/sync
  store_key: groceries
  reconnect_delay_seconds: 1
  resync_mode: PUSH
"""
        )

        config = load_config(path)

        assert config.node.name == "kitchen"
        assert config.relay.port == 9000
        assert config.relay.path == "/sync"
        assert config.relay.host == "0.0.0.0"
        assert config.relay.send_timeout_seconds == 2.0
        assert config.client.relay_url == "ws://pi.local:9000/sync"
        assert config.client.store_key == "groceries"
        assert config.client.store_path == "~/.listsync/entries.db"
        assert config.client.reconnect_delay_seconds == 1.0
        assert config.client.resync_mode == "push"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert load_config(path) == Config()

    def test_invalid_resync_mode(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("client:\n  resync_mode: pull\n")

        with pytest.raises(ValueError):
            load_config(path)


class TestEnvOverrides:
    """Tests for LISTSYNC_ environment variables."""

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("relay:\n  port: 9000\n")
        monkeypatch.setenv("LISTSYNC_RELAY_PORT", "9100")
        monkeypatch.setenv("LISTSYNC_RELAY_URL", "ws://other:9100/ws")
        monkeypatch.setenv("LISTSYNC_RECONNECT_DELAY", "0.5")
        monkeypatch.setenv("LISTSYNC_RESYNC_MODE", "push")
        monkeypatch.setenv("LISTSYNC_NODE_NAME", "garage")
        monkeypatch.setenv("LISTSYNC_SEND_TIMEOUT", "0.25")

        config = load_config(path)

        assert config.relay.port == 9100
        assert config.client.relay_url == "ws://other:9100/ws"
        assert config.client.reconnect_delay_seconds == 0.5
        assert config.client.resync_mode == "push"
        assert config.node.name == "garage"
        assert config.relay.send_timeout_seconds == 0.25

    def test_negative_delay_rejected(self, monkeypatch):
        monkeypatch.setenv("LISTSYNC_RECONNECT_DELAY", "-1")

        with pytest.raises(ValueError):
            load_config(None)


    def test_zero_send_timeout_rejected(self, monkeypatch):
        monkeypatch.setenv("LISTSYNC_SEND_TIMEOUT", "0")

        with pytest.raises(ValueError):
            load_config(None)

@pytest.mark.parametrize(
    "relay_url,expected",
    [
        ("ws://localhost:8080/ws", "http://localhost:8080"),
        ("wss://lists.example.com/sync", "https://lists.example.com"),
        ("ws://10.0.0.5:9000", "http://10.0.0.5:9000"),
    ],
)
def test_relay_http_url(relay_url, expected):
    assert ClientConfig(relay_url=relay_url).relay_http_url == expected
