"""Configuration loaded from environment variables (.env supported)."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from errors import CredentialError

# Load .env from project root
load_dotenv(Path(__file__).resolve().parents[2] / ".env")

logger = logging.getLogger(__name__)

# Strava OAuth2
STRAVA_CLIENT_ID = os.environ.get("STRAVA_CLIENT_ID", "")
STRAVA_CLIENT_SECRET = os.environ.get("STRAVA_CLIENT_SECRET", "")
STRAVA_REFRESH_TOKEN = os.environ.get("STRAVA_REFRESH_TOKEN", "")
STRAVA_BASE_URL = os.environ.get("STRAVA_BASE_URL", "https://www.strava.com/api/v3")
STRAVA_TOKEN_URL = os.environ.get("STRAVA_TOKEN_URL", "https://www.strava.com/oauth/token")

DEFAULT_DETAIL_MAX = 30
# Year the curated running baseline is folded into when neither the baseline
# document nor STATS_BASELINE_YEAR names one.
FALLBACK_BASELINE_YEAR = 2025

REQUIRED_STRAVA_VARS = (
    "STRAVA_CLIENT_ID",
    "STRAVA_CLIENT_SECRET",
    "STRAVA_REFRESH_TOKEN",
)


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def get_strava_credentials() -> dict[str, str]:
    """Return client id/secret and refresh token, failing on the first missing one."""
    values = {
        "STRAVA_CLIENT_ID": os.environ.get("STRAVA_CLIENT_ID") or STRAVA_CLIENT_ID,
        "STRAVA_CLIENT_SECRET": os.environ.get("STRAVA_CLIENT_SECRET") or STRAVA_CLIENT_SECRET,
        "STRAVA_REFRESH_TOKEN": os.environ.get("STRAVA_REFRESH_TOKEN") or STRAVA_REFRESH_TOKEN,
    }
    for name in REQUIRED_STRAVA_VARS:
        if not values[name]:
            raise CredentialError(f"Missing env var: {name}")
    return {
        "client_id": values["STRAVA_CLIENT_ID"],
        "client_secret": values["STRAVA_CLIENT_SECRET"],
        "refresh_token": values["STRAVA_REFRESH_TOKEN"],
    }


def get_initial_after_epoch() -> int:
    """Lower bound used when no watermark has been persisted yet."""
    return max(0, _int_env("STRAVA_INITIAL_AFTER_EPOCH", 0))


def get_detail_max() -> int:
    """Per-run cap on activity detail lookups. 0 disables the backfill."""
    return max(0, _int_env("STRAVA_DETAIL_MAX", DEFAULT_DETAIL_MAX))


def get_baseline_year() -> int | None:
    """STATS_BASELINE_YEAR, or None when unset."""
    raw = os.environ.get("STATS_BASELINE_YEAR", "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer STATS_BASELINE_YEAR=%r", raw)
        return None


def get_http_timeout() -> float | None:
    raw = os.environ.get("STRAVA_HTTP_TIMEOUT", "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric STRAVA_HTTP_TIMEOUT=%r", raw)
        return None


def get_http_retries() -> int:
    return max(0, _int_env("STRAVA_HTTP_RETRIES", 0))


def get_data_root() -> Path:
    return Path(os.environ.get("SYNC_DATA_ROOT") or Path.cwd())


def get_data_paths(root: Path | None = None) -> dict[str, Path]:
    """Locations of the persisted JSON documents under the site root."""
    root = Path(root) if root is not None else get_data_root()
    strava_dir = root / "src" / "data" / "strava"
    return {
        "baseline": strava_dir / "baseline.json",
        "state": strava_dir / "state.json",
        "activities": strava_dir / "activities.min.json",
        "stats": root / "src" / "data" / "sports-stats.json",
    }
