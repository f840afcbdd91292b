"""Configuration: frozen dataclass built from defaults, then a YAML file, then env vars."""

import logging
import os
from dataclasses import dataclass, field, fields

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATHS = (
    "/etc/nginx/nginx.conf",
    "/usr/local/etc/nginx/nginx.conf",
    "/opt/nginx/nginx.conf",
    "/usr/local/nginx/conf/nginx.conf",
)

DEFAULT_LOG_PATHS = {
    "access": "/var/log/nginx/access.log",
    "error": "/var/log/nginx/error.log",
}


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def _parse_list(value, sep: str = ",") -> tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    return tuple(part.strip() for part in str(value).split(sep) if part.strip())


@dataclass(frozen=True)
class Config:
    host: str = "127.0.0.1"
    port: int = 8081
    secret_key: str = ""
    session_cookie_name: str = "nginx_console_session"
    platform: str = "auto"
    service_name: str = "nginx"
    nginx_binary: str = "nginx"
    config_paths: tuple[str, ...] = DEFAULT_CONFIG_PATHS
    default_log_paths: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_LOG_PATHS)
    )
    credential_ttl_seconds: int = 900
    command_timeout_seconds: float = 30.0
    poll_interval: float = 0.5
    watch_categories: tuple[str, ...] = ("access", "error")
    use_fs_events: bool = True
    supervisor_interval_seconds: int = 10
    recent_lines: int = 200
    log_level: str = "INFO"


_ENV_KEYS = {
    "host": "CONSOLE_HOST",
    "port": "CONSOLE_PORT",
    "secret_key": "CONSOLE_SECRET_KEY",
    "platform": "CONSOLE_PLATFORM",
    "service_name": "NGINX_SERVICE",
    "nginx_binary": "NGINX_BINARY",
    "config_paths": "NGINX_CONFIG_PATHS",
    "credential_ttl_seconds": "CREDENTIAL_TTL_SECONDS",
    "command_timeout_seconds": "COMMAND_TIMEOUT_SECONDS",
    "poll_interval": "POLL_INTERVAL",
    "watch_categories": "WATCH_CATEGORIES",
    "use_fs_events": "USE_FS_EVENTS",
    "supervisor_interval_seconds": "SUPERVISOR_INTERVAL_SECONDS",
    "recent_lines": "RECENT_LINES",
    "log_level": "LOG_LEVEL",
}


def load_yaml_config(path: str | None) -> dict:
    """Load the ``console`` section (or the whole document) of a YAML file."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as e:
        logger.warning("Invalid YAML in %s (%s), using defaults", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file %s is not a mapping, using defaults", path)
        return {}
    logger.info("Loaded YAML config from %s", path)
    return data.get("console", data)


def _coerce(name: str, value):
    if name in ("port", "credential_ttl_seconds", "supervisor_interval_seconds",
                "recent_lines"):
        return int(value)
    if name in ("command_timeout_seconds", "poll_interval"):
        return float(value)
    if name == "use_fs_events":
        return _parse_bool(value)
    if name == "config_paths":
        return _parse_list(value, sep=":")
    if name == "watch_categories":
        return _parse_list(value)
    if name == "default_log_paths":
        return {str(k): str(v) for k, v in dict(value).items()}
    if name == "log_level":
        return str(value).upper()
    return str(value)


def load_config(yaml_path: str | None = None) -> Config:
    """Build Config from defaults, then the YAML file, then env vars (highest)."""
    if yaml_path is None:
        yaml_path = os.environ.get("CONFIG_PATH")

    known = {f.name for f in fields(Config)}
    kwargs: dict = {}

    for key, value in load_yaml_config(yaml_path).items():
        key = key.replace("-", "_")
        if key not in known:
            logger.warning("Ignoring unknown config key %r", key)
            continue
        kwargs[key] = _coerce(key, value)

    for name, env_key in _ENV_KEYS.items():
        raw = os.environ.get(env_key)
        if raw is not None:
            kwargs[name] = _coerce(name, raw)

    return Config(**kwargs)
