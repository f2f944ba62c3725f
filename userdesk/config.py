"""Configuration for the UserDesk service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

DEFAULT_API_URL = "http://localhost:8080"
TRANSPORTS = ("direct", "http")

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def resolve_database_path(env_value: Optional[str], base_path: Path | None = None) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        raw = Path(env_value).expanduser()
        if not raw.is_absolute() and base_path is not None:
            raw = base_path / raw
        return raw.resolve(strict=False)
    return (_PROJECT_ROOT / "data" / "userdesk.sqlite3").resolve(strict=False)


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    candidate = (_PROJECT_ROOT / "config" / "userdesk.yaml").resolve(strict=False)
    return candidate if candidate.exists() else None


@dataclass(frozen=True)
class Settings:
    """Runtime settings; a single base URL selects the API deployment."""

    database_path: Path
    api_url: str = DEFAULT_API_URL
    dashboard_transport: str = "direct"
    secure_cookies: bool = False
    allow_signup: bool = True
    session_ttl_hours: int = 8
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.dashboard_transport not in TRANSPORTS:
            raise ValueError(
                f"dashboard_transport must be one of {', '.join(TRANSPORTS)}"
            )
        if self.session_ttl_hours <= 0:
            raise ValueError("session_ttl_hours must be positive")
        if not self.api_url.strip():
            raise ValueError("api_url must not be empty")

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""
        known = {
            "database_path",
            "api_url",
            "dashboard_transport",
            "secure_cookies",
            "allow_signup",
            "session_ttl_hours",
            "log_level",
        }
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        raw_path = data.get("database_path")
        return Settings(
            database_path=resolve_database_path(str(raw_path) if raw_path else None, base_path),
            api_url=str(data.get("api_url") or DEFAULT_API_URL),
            dashboard_transport=str(data.get("dashboard_transport", "direct")).strip().lower(),
            secure_cookies=bool(data.get("secure_cookies", False)),
            allow_signup=bool(data.get("allow_signup", True)),
            session_ttl_hours=int(data.get("session_ttl_hours", 8)),
            log_level=str(data.get("log_level", "INFO")).upper(),
        )


def _apply_environment(settings: Settings, environ: Mapping[str, str]) -> Settings:
    overrides: Dict[str, object] = {}
    if environ.get("USERDESK_DB_PATH"):
        overrides["database_path"] = resolve_database_path(environ["USERDESK_DB_PATH"])
    if environ.get("USERDESK_API_URL"):
        overrides["api_url"] = environ["USERDESK_API_URL"].strip()
    if environ.get("USERDESK_DASHBOARD_TRANSPORT"):
        overrides["dashboard_transport"] = environ["USERDESK_DASHBOARD_TRANSPORT"].strip().lower()
    if "USERDESK_SESSION_SECURE" in environ:
        overrides["secure_cookies"] = _env_flag(environ["USERDESK_SESSION_SECURE"])
    if "USERDESK_ALLOW_SIGNUP" in environ:
        overrides["allow_signup"] = _env_flag(environ["USERDESK_ALLOW_SIGNUP"], True)
    if environ.get("USERDESK_LOG_LEVEL"):
        overrides["log_level"] = environ["USERDESK_LOG_LEVEL"].strip().upper()
    if not overrides:
        return settings
    return replace(settings, **overrides)


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from YAML (when present) and apply environment overrides."""
    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("USERDESK_CONFIG"))

    if path is not None:
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")
        settings = Settings.from_dict(raw, base_path=path.parent)
    else:
        settings = Settings(database_path=resolve_database_path(None))

    return _apply_environment(settings, env)


__all__ = [
    "DEFAULT_API_URL",
    "Settings",
    "load_settings",
    "resolve_config_path",
    "resolve_database_path",
]
