"""Runtime configuration normalization helpers.

These helpers keep CLI flag and persisted-setting interpretation deterministic
across entrypoints.
"""

from __future__ import annotations

DEFAULT_API_URL = "http://localhost:8880/api"
API_URL_SETTING_KEY = "beefweb_api_url"
BACKENDS = ("fake", "beefweb")

POLL_INTERVAL_MIN_S = 0.5
POLL_INTERVAL_MAX_S = 30.0
DEFAULT_POLL_INTERVAL_S = 2.0


def resolve_log_level(*, verbose: bool, quiet: bool) -> str:
    """Resolve effective log level from CLI flags.

    Precedence is deterministic: --quiet overrides --verbose.
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    return "INFO"


def normalize_api_url(value: str | None) -> str:
    """Trim whitespace and trailing slashes from a configured API base URL.

    An empty result is returned as-is; callers treat it as missing
    configuration rather than substituting the default.
    """
    if value is None:
        return ""
    return value.strip().rstrip("/")


def resolve_api_url(stored: str | None) -> str:
    """Return the effective API URL for a stored setting value."""
    if stored is None or not stored.strip():
        return DEFAULT_API_URL
    return normalize_api_url(stored)


def clamp_poll_interval(value: float) -> float:
    """Clamp polling cadence to the supported range."""
    return max(POLL_INTERVAL_MIN_S, min(POLL_INTERVAL_MAX_S, float(value)))
