"""Configuration management for the HocTap API service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

logger = logging.getLogger("hoctap.config")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the database connection and HTTP server."""

    db_host: str = "localhost"
    db_port: int = 3306
    db_user: str = "root"
    db_password: str = ""
    db_name: str = "hoctap_api"
    db_max_open_conns: int = 25
    db_max_idle_conns: int = 10
    database_url: Optional[str] = None
    server_host: str = "0.0.0.0"
    server_port: int = 8080
    seed_on_startup: bool = True
    log_level: str = "INFO"


def _clean(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_int(name: str, value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid integer value {value!r} for {name}") from exc


def _as_bool(name: str, value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value {value!r} for {name}")


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML override file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config.yaml").resolve(strict=False)


def load_config_file(config_path: Path) -> Dict[str, str]:
    """Read ``KEY: value`` overrides from a YAML file.

    A missing file is not an error: a warning is logged and an empty mapping is
    returned so that environment variables and defaults apply.
    """
    if not config_path.exists():
        logger.warning("Could not load config file %s; using environment variables or defaults", config_path)
        return {}

    with config_path.open("r", encoding="utf-8") as handle:
        try:
            raw = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid configuration file {config_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping of settings")

    values: Dict[str, str] = {}
    for key, value in raw.items():
        cleaned = _clean(value)
        if cleaned is not None:
            values[str(key).strip().upper()] = cleaned
    return values


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build :class:`Settings` from the environment and the optional config file.

    Non-empty environment variables win over the config file, which wins over
    the built-in defaults.
    """
    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = resolve_config_path(env.get("HOCTAP_CONFIG"))
    file_values = load_config_file(config_path)

    def lookup(name: str) -> Optional[str]:
        return _clean(env.get(name)) or file_values.get(name)

    defaults = Settings()
    return Settings(
        db_host=lookup("DB_HOST") or defaults.db_host,
        db_port=_as_int("DB_PORT", lookup("DB_PORT"), defaults.db_port),
        db_user=lookup("DB_USER") or defaults.db_user,
        db_password=lookup("DB_PASSWORD") or defaults.db_password,
        db_name=lookup("DB_NAME") or defaults.db_name,
        db_max_open_conns=_as_int("DB_MAX_OPEN_CONNS", lookup("DB_MAX_OPEN_CONNS"), defaults.db_max_open_conns),
        db_max_idle_conns=_as_int("DB_MAX_IDLE_CONNS", lookup("DB_MAX_IDLE_CONNS"), defaults.db_max_idle_conns),
        database_url=lookup("DATABASE_URL"),
        server_host=lookup("SERVER_HOST") or defaults.server_host,
        server_port=_as_int("SERVER_PORT", lookup("SERVER_PORT"), defaults.server_port),
        seed_on_startup=_as_bool("SEED_ON_STARTUP", lookup("SEED_ON_STARTUP"), defaults.seed_on_startup),
        log_level=(lookup("LOG_LEVEL") or defaults.log_level).upper(),
    )


__all__ = ["Settings", "load_config_file", "load_settings", "resolve_config_path"]
