from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, TypeVar, Union

import yaml

from shared.errors import ConfigError
from shared.log import get_logger
from shared.utils import is_hostport, is_ws_url, ws_url

logger = get_logger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_GREETING = "Hello from Python client!"

# Environment variable -> (section, field)
_ENV_OVERRIDES = {
    "ECHO_HOST": ("server", "host"),
    "ECHO_PORT": ("server", "port"),
    "ECHO_URL": ("client", "url"),
    "ECHO_GREETING": ("client", "greeting"),
    "ECHO_MAX_ATTEMPTS": ("client", "max_attempts"),
    "ECHO_RECONNECT_DELAY": ("client", "reconnect_delay"),
    "ECHO_CONNECT_TIMEOUT": ("client", "connect_timeout"),
}


@dataclass(frozen=True)
class ClientConfig:
    url: str = ws_url(DEFAULT_HOST, DEFAULT_PORT)
    greeting: str = DEFAULT_GREETING
    connect_timeout: float = 5.0
    max_attempts: int = 3
    reconnect_delay: float = 2.0
    close_grace: float = 1.0
    # Seconds between periodic messages; None disables the periodic sender
    send_interval: Optional[float] = None

    def validate(self) -> "ClientConfig":
        if not is_ws_url(self.url):
            raise ConfigError(f"Invalid WebSocket URL: {self.url!r}")
        if self.max_attempts < 0:
            raise ConfigError("max_attempts must be >= 0")
        for name in ("connect_timeout", "reconnect_delay", "close_grace"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0")
        if self.send_interval is not None and self.send_interval <= 0:
            raise ConfigError("send_interval must be > 0")
        return self


@dataclass(frozen=True)
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    drain_delay: float = 1.0

    @property
    def url(self) -> str:
        return ws_url(self.host, self.port)

    def validate(self) -> "ServerConfig":
        if not self.host:
            raise ConfigError("host must not be empty")
        # Port 0 lets the OS pick a free port (used by tests)
        if self.port != 0 and not is_hostport(f"{self.host}:{self.port}"):
            raise ConfigError(f"Invalid listen address: {self.host}:{self.port!r}")
        if self.drain_delay < 0:
            raise ConfigError("drain_delay must be >= 0")
        return self


ConfigT = TypeVar("ConfigT", ClientConfig, ServerConfig)


def _coerce(config_cls: type, name: str, value: Any) -> Any:
    """Convert a raw YAML/env value to the type of the dataclass field."""
    default = next(f.default for f in fields(config_cls) if f.name == name)
    if value is None:
        return None
    try:
        if isinstance(default, bool):
            return bool(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float) or name == "send_interval":
            return float(value)
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from exc


def _apply(config: ConfigT, values: Mapping[str, Any], source: str) -> ConfigT:
    known = {f.name for f in fields(config)}
    changes: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            logger.warning("Ignoring unknown %s setting %r", source, key)
            continue
        changes[key] = _coerce(type(config), key, value)
    return replace(config, **changes) if changes else config


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a YAML config file with 'client:' and/or 'server:' sections."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Error reading {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def _env_section(section: str, environ: Mapping[str, str]) -> Dict[str, str]:
    return {
        key: environ[var]
        for var, (sect, key) in _ENV_OVERRIDES.items()
        if sect == section and environ.get(var)
    }


def _load(
    config: ConfigT,
    section: str,
    path: Optional[Union[str, Path]],
    environ: Optional[Mapping[str, str]],
    overrides: Mapping[str, Any],
) -> ConfigT:
    environ = os.environ if environ is None else environ
    path = path or environ.get("ECHO_CONFIG")
    if path:
        section_data = load_yaml(path).get(section) or {}
        if not isinstance(section_data, dict):
            raise ConfigError(f"{path}: '{section}' must be a mapping")
        config = _apply(config, section_data, f"{path}:{section}")
    config = _apply(config, _env_section(section, environ), "environment")
    config = _apply(config, {k: v for k, v in overrides.items() if v is not None}, "command line")
    return config.validate()


def load_client_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> ClientConfig:
    """Defaults, then YAML file, then environment, then explicit overrides."""
    return _load(ClientConfig(), "client", path, environ, overrides)


def load_server_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> ServerConfig:
    """Defaults, then YAML file, then environment, then explicit overrides."""
    return _load(ServerConfig(), "server", path, environ, overrides)
