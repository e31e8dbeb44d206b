"""
Configuration for the E-Commerce API.

Values come from environment variables (a local ``.env`` file is loaded
first, if present):

- DATABASE_URL     MongoDB connection string. Unset means no database.
- DATABASE_NAME    Database name. Default: "ecommerce"
- JWT_SECRET       Token signing key. Default: "fallback-secret"
- JWT_EXPIRES_IN   Token lifetime, e.g. "7d", "12h", "30m" or "3600".
                   Default: "7d"
- HOST / PORT      Bind address for uvicorn. Default: 0.0.0.0:3000
- CORS_ORIGINS     Comma-separated origins, "*" for all. Default: "*"
- LOG_LEVEL        Logging level name. Default: "INFO"
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_JWT_SECRET = "fallback-secret"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$", re.IGNORECASE)
_UNITS = {
    "": "seconds",
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def parse_duration(value: str) -> timedelta:
    """Parse "7d" / "12h" / "30m" / "45s" / "3600" into a timedelta."""
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_UNITS[unit.lower()]: int(amount)})


def _parse_origins(raw: str) -> List[str]:
    raw = (raw or "").strip()
    if not raw or raw == "*":
        return ["*"]
    return [p.strip() for p in raw.split(",") if p.strip()]


@dataclass
class Settings:
    database_url: Optional[str] = None
    database_name: str = "ecommerce"
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_expires_in: timedelta = timedelta(days=7)
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        port_raw = os.getenv("PORT", "").strip()
        try:
            port = int(port_raw) if port_raw else cls.port
        except ValueError:
            port = cls.port

        expires_raw = os.getenv("JWT_EXPIRES_IN", "").strip()
        try:
            expires_in = parse_duration(expires_raw) if expires_raw else timedelta(days=7)
        except ValueError:
            expires_in = timedelta(days=7)

        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            database_name=os.getenv("DATABASE_NAME") or cls.database_name,
            jwt_secret=os.getenv("JWT_SECRET") or DEFAULT_JWT_SECRET,
            jwt_expires_in=expires_in,
            host=os.getenv("HOST") or cls.host,
            port=port,
            cors_origins=_parse_origins(os.getenv("CORS_ORIGINS", "*")),
            log_level=(os.getenv("LOG_LEVEL") or cls.log_level).upper(),
        )


_SETTINGS: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process settings, reading the environment on first use."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS


def set_settings(settings: Optional[Settings]) -> None:
    """Replace the process settings (tests pass explicit values here)."""
    global _SETTINGS
    _SETTINGS = settings


__all__ = ["Settings", "get_settings", "set_settings", "parse_duration"]
