"""Shared site configuration pulled from environment variables.

Static values (table ids, currency, timeouts) are resolved once at import.
Credentials are read through :func:`require_setting` at call time so a missing
secret surfaces as a per-request configuration error instead of a boot crash.
"""
from __future__ import annotations

import os


class ConfigurationError(RuntimeError):
    """Raised when a required environment variable is missing."""

    def __init__(self, name: str):
        super().__init__(f"Missing required setting {name}")
        self.name = name


def _get_env_setting(key: str, default: str = "") -> str:
    value = os.getenv(key)
    if value is None:
        return default.strip()
    return value.strip()


def _bool_env(name: str, default: str = "false") -> bool:
    value = os.getenv(name, default)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _float_env(name: str, default: float) -> float:
    raw = _get_env_setting(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def setting(name: str, default: str = "") -> str:
    """Return an environment setting as seen right now."""
    return _get_env_setting(name, default)


def require_setting(name: str) -> str:
    value = setting(name)
    if not value:
        raise ConfigurationError(name)
    return value


AIRTABLE_API_URL = _get_env_setting("AIRTABLE_API_URL", "https://api.airtable.com/v0").rstrip("/")
AIRTABLE_SESSIONS_TABLE = _get_env_setting("AIRTABLE_SESSIONS_TABLE", "tblympiL1p6PmQz9i")
AIRTABLE_COUPONS_TABLE = _get_env_setting("AIRTABLE_COUPONS_TABLE", "tblBaUQKmYuIMsVQm")
AIRTABLE_COMPANIES_TABLE = _get_env_setting("AIRTABLE_COMPANIES_TABLE", "tbl90HikZUp0GEkKZ")
AIRTABLE_REGISTRATIONS_TABLE = _get_env_setting("AIRTABLE_REGISTRATIONS_TABLE", "tblhp9Llw7zSRqRnt")

HTTP_TIMEOUT_SECONDS = _float_env("HTTP_TIMEOUT_SECONDS", 20.0)
STRIPE_CURRENCY = _get_env_setting("STRIPE_CURRENCY", "usd").lower()
STRIPE_DESCRIPTION_DEFAULT = "IAML Program Registration"
SESSION_COOKIE_SECURE = _bool_env("SESSION_COOKIE_SECURE", "true")

__all__ = [
    "ConfigurationError",
    "setting",
    "require_setting",
    "AIRTABLE_API_URL",
    "AIRTABLE_SESSIONS_TABLE",
    "AIRTABLE_COUPONS_TABLE",
    "AIRTABLE_COMPANIES_TABLE",
    "AIRTABLE_REGISTRATIONS_TABLE",
    "HTTP_TIMEOUT_SECONDS",
    "STRIPE_CURRENCY",
    "STRIPE_DESCRIPTION_DEFAULT",
    "SESSION_COOKIE_SECURE",
]
