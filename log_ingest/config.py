"""Configuration: a frozen dataclass loaded from YAML and environment variables."""

import os
from dataclasses import dataclass, fields
from typing import Optional

import yaml

from log_ingest.exceptions import ConfigError


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _default_workers() -> int:
    return max(1, min(4, os.cpu_count() or 1))


@dataclass(frozen=True)
class Config:
    storage_dir: str = "./data/store"
    tmp_dir: Optional[str] = None
    chunk_size_bytes: int = 32 * 1024 * 1024  # 32 MB per read
    max_workers: int = 0  # 0 -> min(4, cpu_count)
    bulk_batch_size: int = 10000
    bulk_timeout_seconds: float = 30.0
    bulk_timeout_per_document_ms: float = 1.0
    server_host: str = "0.0.0.0"
    server_port: int = 5000
    max_upload_mb: int = 1024
    record_sessions: bool = True
    log_level: str = "INFO"

    @property
    def workers(self) -> int:
        return self.max_workers if self.max_workers > 0 else _default_workers()

    def validate(self) -> "Config":
        if self.chunk_size_bytes <= 0:
            raise ConfigError(f"chunk_size_bytes must be positive, got {self.chunk_size_bytes}")
        if self.max_workers < 0:
            raise ConfigError(f"max_workers must be >= 0, got {self.max_workers}")
        if self.bulk_batch_size <= 0:
            raise ConfigError(f"bulk_batch_size must be positive, got {self.bulk_batch_size}")
        if self.bulk_timeout_seconds <= 0:
            raise ConfigError("bulk_timeout_seconds must be positive")
        if not 0 < self.server_port < 65536:
            raise ConfigError(f"server_port out of range: {self.server_port}")
        return self


_ENV_VARS = {
    "storage_dir": "STORAGE_DIR",
    "tmp_dir": "TMP_DIR",
    "chunk_size_bytes": "CHUNK_SIZE_BYTES",
    "max_workers": "MAX_WORKERS",
    "bulk_batch_size": "BULK_BATCH_SIZE",
    "bulk_timeout_seconds": "BULK_TIMEOUT_SECONDS",
    "bulk_timeout_per_document_ms": "BULK_TIMEOUT_PER_DOCUMENT_MS",
    "server_host": "SERVER_HOST",
    "server_port": "SERVER_PORT",
    "max_upload_mb": "MAX_UPLOAD_MB",
    "record_sessions": "RECORD_SESSIONS",
    "log_level": "LOG_LEVEL",
}


def _coerce(name: str, value):
    """Convert a YAML or env value to the type of the matching default."""
    default = getattr(Config, name)
    try:
        if isinstance(default, bool):
            return value if isinstance(value, bool) else _parse_bool(str(value))
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from exc
    return None if value is None else str(value)


def load_yaml(path: str) -> dict:
    """Load the ``ingest`` section (or the whole document) of a YAML file."""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not data:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")
    section = data.get("ingest", data)
    if not isinstance(section, dict):
        raise ConfigError(f"'ingest' section of {path} must be a mapping")
    return section


def load_config(path: Optional[str] = None) -> Config:
    """Build Config from defaults <- YAML file <- env vars (highest priority).

    The YAML path defaults to ``CONFIG_PATH`` or ``config.yml``; a missing
    file is not an error.
    """
    path = path or os.environ.get("CONFIG_PATH", "config.yml")
    known = {f.name for f in fields(Config)}

    kwargs = {}
    for key, value in load_yaml(path).items():
        if key not in known:
            raise ConfigError(f"Unknown config key: {key}")
        kwargs[key] = _coerce(key, value)

    for name, env_var in _ENV_VARS.items():
        raw = os.environ.get(env_var)
        if raw is not None:
            kwargs[name] = _coerce(name, raw)

    return Config(**kwargs).validate()
