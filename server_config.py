"""Server settings: defaults, then an optional INI file, then environment."""
import configparser
import logging
import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from notification_bus import DEFAULT_CAPACITY

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8087
DEFAULT_MAX_MESSAGE_SIZE = 64 * 1024
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_CONFIG_FILE = "server.ini"
CONFIG_PATH_ENV = "PRESENCE_CONFIG"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    bus_capacity: int = DEFAULT_CAPACITY
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE
    log_level: str = DEFAULT_LOG_LEVEL

    def validated(self):
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"port out of range: {self.port}")
        if self.bus_capacity < 1:
            raise ConfigError(f"bus_capacity must be at least 1, got {self.bus_capacity}")
        if self.max_message_size < 1:
            raise ConfigError(f"max_message_size must be positive, got {self.max_message_size}")
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ConfigError(f"unknown log level {self.log_level!r}")
        return self

    def with_overrides(self, **overrides):
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _to_int(key, value):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {value!r}") from None


def _from_mapping(section: Mapping[str, str], keys: Mapping[str, str]):
    values = {}
    for source_key, field in keys.items():
        raw = section.get(source_key)
        if raw is None or not str(raw).strip():
            continue
        raw = str(raw).strip()
        if field in ("port", "bus_capacity", "max_message_size"):
            values[field] = _to_int(source_key, raw)
        elif field == "log_level":
            values[field] = raw.upper()
        else:
            values[field] = raw
    return values


_INI_KEYS = {
    "host": "host",
    "port": "port",
    "bus_capacity": "bus_capacity",
    "max_message_size": "max_message_size",
    "log_level": "log_level",
}

_ENV_KEYS = {
    "BIND_ADDRESS": "host",
    "PORT": "port",
    "BUS_CAPACITY": "bus_capacity",
    "MAX_MESSAGE_SIZE": "max_message_size",
    "LOG_LEVEL": "log_level",
}


def load_config(filename: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> ServerConfig:
    """Build the config once at startup. A missing INI file is not an error."""
    if environ is None:
        environ = os.environ
    if filename is None:
        filename = environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_FILE

    values = {}
    parser = configparser.ConfigParser()
    try:
        parser.read(filename)
    except configparser.Error as e:
        raise ConfigError(f"cannot parse {filename}: {e}") from e
    if parser.has_section("server"):
        values.update(_from_mapping(parser["server"], _INI_KEYS))
    values.update(_from_mapping(environ, _ENV_KEYS))
    return ServerConfig(**values).validated()
