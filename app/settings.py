"""Environment-driven settings for the descriptor service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from permission_model import EXPECTED_PERMISSION_VERSION


PACKAGED_CONFIG_DIR = Path(__file__).resolve().parent / "config"

ENTITY_METADATA_FILE = "entity-metadata.json"
PERMISSIONS_FILE = "permissions.json"
NAV_CONFIG_FILE = "nav-config.json"


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    api_base_url: str = "http://localhost:3001/api"
    config_dir: Path = PACKAGED_CONFIG_DIR
    config_ttl_s: float = 300.0
    http_timeout_s: float = 15.0
    expected_permission_version: str = EXPECTED_PERMISSION_VERSION
    log_level: str = "INFO"
    nav_route_prefix: str = ""
    cors_origins: Tuple[str, ...] = field(default_factory=tuple)
    dev_backend: bool = False

    @property
    def entity_metadata_path(self) -> Path:
        return self.config_dir / ENTITY_METADATA_FILE

    @property
    def permissions_path(self) -> Path:
        return self.config_dir / PERMISSIONS_FILE

    @property
    def nav_config_path(self) -> Path:
        return self.config_dir / NAV_CONFIG_FILE

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "Settings":
        if env_file is not None:
            _load_env_file(env_file)
        config_dir = os.getenv("TROSS_CONFIG_DIR", "").strip()
        return cls(
            api_base_url=os.getenv("TROSS_API_BASE_URL", "").strip() or cls.api_base_url,
            config_dir=Path(config_dir) if config_dir else PACKAGED_CONFIG_DIR,
            config_ttl_s=_env_float("TROSS_CONFIG_TTL_S", 300.0),
            http_timeout_s=_env_float("TROSS_HTTP_TIMEOUT_S", 15.0),
            expected_permission_version=os.getenv("TROSS_EXPECTED_PERMISSION_VERSION", "").strip()
            or EXPECTED_PERMISSION_VERSION,
            log_level=os.getenv("TROSS_LOG_LEVEL", "").strip().upper() or "INFO",
            nav_route_prefix=os.getenv("TROSS_NAV_ROUTE_PREFIX", "").strip(),
            cors_origins=tuple(
                origin.strip().rstrip("/")
                for origin in os.getenv("TROSS_CORS_ORIGINS", "").split(",")
                if origin.strip()
            ),
            dev_backend=_env_flag("TROSS_DEV_BACKEND"),
        )
