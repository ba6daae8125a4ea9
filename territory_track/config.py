"""Settings for the ride tracker.

Module-level constants read once at import. Most tunables can be overridden
through an environment variable of the same name; backend credentials come
only from the environment (or a local `.env`).
"""

from __future__ import annotations

import importlib
import os


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except Exception:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# Backend settings
# ---------------------------------------------------------------------------
# Supabase project URL and anon key. Do not hardcode secrets.
SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")

# Request timeout in seconds.
REQUEST_TIMEOUT = _env_int("REQUEST_TIMEOUT", 15)

# HTTP session pool sizes.
HTTP_POOL_CONNECTIONS = 10
HTTP_POOL_MAXSIZE = 10

# Transport-level retries for 5xx responses (urllib3 Retry).
BACKEND_MAX_RETRIES = _env_int("BACKEND_MAX_RETRIES", 3)
BACKEND_BACKOFF_FACTOR = _env_float("BACKEND_BACKOFF_FACTOR", 0.5)

# Seconds a fetched ride history stays cached per owner.
RIDE_HISTORY_CACHE_TTL_SECONDS = _env_int("RIDE_HISTORY_CACHE_TTL_SECONDS", 60)
RIDE_HISTORY_CACHE_SIZE = _env_int("RIDE_HISTORY_CACHE_SIZE", 32)

# Rows returned by the leaderboard view.
LEADERBOARD_LIMIT = _env_int("LEADERBOARD_LIMIT", 50)

# Rows scanned when computing the daily ride streak.
STREAK_LOOKBACK_RIDES = _env_int("STREAK_LOOKBACK_RIDES", 60)


# ---------------------------------------------------------------------------
# Recording pipeline
# ---------------------------------------------------------------------------
# H3 resolution used for every cell id. Fixed for the lifetime of the data;
# changing it invalidates stored fingerprints and tiles.
H3_RESOLUTION = _env_int("H3_RESOLUTION", 10)

# Minimum accepted samples before a session can be saved.
MIN_RIDE_POINTS = _env_int("MIN_RIDE_POINTS", 10)

# Samples with a horizontal accuracy above this (metres) are rejected.
MAX_ACCURACY_METERS = _env_float("MAX_ACCURACY_METERS", 50.0)

# Accuracy (metres) at or below which the GPS signal is reported as good.
GPS_GOOD_ACCURACY_METERS = _env_float("GPS_GOOD_ACCURACY_METERS", 20.0)

# Implied speed ceilings (m/s) per activity kind; jumps above are rejected.
MAX_SPEED_CYCLING_MS = _env_float("MAX_SPEED_CYCLING_MS", 18.0)
MAX_SPEED_RUNNING_MS = _env_float("MAX_SPEED_RUNNING_MS", 8.0)
MAX_SPEED_HIKING_MS = _env_float("MAX_SPEED_HIKING_MS", 4.0)

# Duration display timer interval.
TICK_INTERVAL_SECONDS = _env_float("TICK_INTERVAL_SECONDS", 1.0)


# ---------------------------------------------------------------------------
# Territory rules
# ---------------------------------------------------------------------------
# Same-route rides needed inside the window to unlock claiming.
UNLOCK_THRESHOLD = _env_int("UNLOCK_THRESHOLD", 3)
UNLOCK_WINDOW_DAYS = _env_int("UNLOCK_WINDOW_DAYS", 7)

# Owned tiles decay after this many days without a ride.
TERRITORY_DECAY_DAYS = _env_int("TERRITORY_DECAY_DAYS", 7)

# Warn about decay when this many days (or fewer) remain.
TERRITORY_DECAY_WARNING_DAYS = _env_int("TERRITORY_DECAY_WARNING_DAYS", 3)

# Claim tiles automatically when a saved ride unlocks its route.
AUTO_CLAIM_ON_UNLOCK = _env_bool("AUTO_CLAIM_ON_UNLOCK", False)


# ---------------------------------------------------------------------------
# Gamification
# ---------------------------------------------------------------------------
# Cumulative XP required for each level (level N needs LEVEL_XP[N-1]).
LEVEL_XP = [0, 100, 250, 500, 1000, 1750, 2750, 4000, 5500, 7500, 10000]

# XP awarded per 100 m, per minute and per distinct cell touched.
XP_PER_100_METERS = 1
XP_PER_MINUTE = 1
XP_PER_CELL = 2


# ---------------------------------------------------------------------------
# Map output
# ---------------------------------------------------------------------------
MAP_TILE_COLOR = "#06b6d4"
MAP_TRACK_COLOR = "#a855f7"
MAP_DEFAULT_ZOOM = 15
