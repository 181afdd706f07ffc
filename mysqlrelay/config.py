from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .errors import ConfigError

logger = logging.getLogger(__name__)

PROXY_FLOW = "proxy"
TUNNEL_FLOW = "tunnel"

_REQUIRED_KEYS: Dict[str, tuple[str, ...]] = {
    PROXY_FLOW: ("MYSQL_SERVER", "MYSQL_PORT"),
    TUNNEL_FLOW: ("TUNNEL_NAME", "TUNNEL_HOSTNAME", "MYSQL_SERVER", "MYSQL_PORT"),
}

_DEFAULTS: Dict[str, str] = {
    "UPSTREAM_NAME": "mysql_backend",
    "PROXY_CONFIG_FILE": "mysql_proxy.conf",
    "PROXY_CONNECT_TIMEOUT": "10s",
    "PROXY_TIMEOUT": "1h",
    "UPSTREAM_KEEPALIVE": "",
    "UPSTREAM_MAX_FAILS": "3",
    "UPSTREAM_FAIL_TIMEOUT": "30s",
    "TUNNEL_CONFIG_DIR": "/etc/cloudflared",
}


@dataclass(frozen=True)
class RelayConfig:
    """Immutable view over the settings file."""

    raw: Mapping[str, str] = field(default_factory=dict)
    source: Optional[str] = None

    def get(self, key: str) -> str:
        value = self.raw.get(key)
        if value is None or value == "":
            return _DEFAULTS.get(key, "")
        return value

    @property
    def mysql_server(self) -> str:
        return self.get("MYSQL_SERVER")

    @property
    def mysql_port(self) -> int:
        return _port(self.get("MYSQL_PORT"), "MYSQL_PORT")

    @property
    def listen_port(self) -> int:
        if self.get("LISTEN_PORT"):
            return _port(self.get("LISTEN_PORT"), "LISTEN_PORT")
        return self.mysql_port

    @property
    def upstream_name(self) -> str:
        return self.get("UPSTREAM_NAME")

    @property
    def proxy_config_file(self) -> str:
        return self.get("PROXY_CONFIG_FILE")

    @property
    def proxy_connect_timeout(self) -> str:
        return self.get("PROXY_CONNECT_TIMEOUT")

    @property
    def proxy_timeout(self) -> str:
        return self.get("PROXY_TIMEOUT")

    @property
    def upstream_keepalive(self) -> str:
        return self.get("UPSTREAM_KEEPALIVE")

    @property
    def upstream_max_fails(self) -> str:
        return self.get("UPSTREAM_MAX_FAILS")

    @property
    def upstream_fail_timeout(self) -> str:
        return self.get("UPSTREAM_FAIL_TIMEOUT")

    @property
    def tunnel_name(self) -> str:
        return self.get("TUNNEL_NAME")

    @property
    def tunnel_hostname(self) -> str:
        return self.get("TUNNEL_HOSTNAME")

    @property
    def tunnel_config_dir(self) -> str:
        return self.get("TUNNEL_CONFIG_DIR")

    def require(self, flow: str) -> None:
        """Fail fast when a key the flow depends on is empty or malformed."""

        if flow not in _REQUIRED_KEYS:
            raise ValueError(f"Unknown flow: {flow}")

        missing = [k for k in _REQUIRED_KEYS[flow] if not self.get(k)]
        if missing:
            raise ConfigError(
                f"Required settings missing in {self.source or 'config'}: {', '.join(missing)}"
            )

        _port(self.get("MYSQL_PORT"), "MYSQL_PORT")
        if self.get("LISTEN_PORT"):
            _port(self.get("LISTEN_PORT"), "LISTEN_PORT")


def _port(value: str, key: str) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer between 1 and 65535, got {value!r}") from None
    if not 1 <= port <= 65535:
        raise ConfigError(f"{key} must be an integer between 1 and 65535, got {port}")
    return port


def parse_shell_config(text: str) -> Dict[str, str]:
    """Parse a flat KEY=value file written for the shell to source.

    ``export`` prefixes, quoting and comments follow python-dotenv. Variable
    expansion and command substitution are not evaluated; a bare ``KEY``
    reads as empty.
    """

    values = dotenv_values(stream=io.StringIO(text), interpolate=False)
    return {k: "" if v is None else v for k, v in values.items()}


def _load_yaml_config(text: str) -> Dict[str, str]:
    data: Any = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ConfigError("YAML config must contain a mapping/object")
    return {str(k).upper(): "" if v is None else str(v) for k, v in data.items()}


def load_config(path: str) -> RelayConfig:
    p = Path(path)
    if not p.is_file():
        raise ConfigError(f"Config file {path} not found!")

    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml_config(text)
    else:
        raw = parse_shell_config(text)

    logger.info("Configuration loaded from %s (%d keys)", path, len(raw))
    return RelayConfig(raw=raw, source=str(p))
