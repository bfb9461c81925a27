"""
config.py

Single source of truth for:
- Environment variable reads
- Cache and search constants
- Admin config DB helpers (runtime overrides)

Nothing here should contain route handlers or business logic beyond config resolution.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent


# =====================================================================
# SECTION: ENV VARS
# =====================================================================

# Amadeus
AMADEUS_CLIENT_ID = os.getenv("AMADEUS_CLIENT_ID", "")
AMADEUS_CLIENT_SECRET = os.getenv("AMADEUS_CLIENT_SECRET", "")
AMADEUS_BASE_URL = os.getenv("AMADEUS_BASE_URL", "https://test.api.amadeus.com").rstrip("/")
AMADEUS_TIMEOUT_SECONDS = float(os.getenv("AMADEUS_TIMEOUT_SECONDS", "15"))

# Flight provider routing
# Only "amadeus" is wired today. Other values fail loudly in providers/factory.py.
API_MODE = os.getenv("API_MODE", "amadeus").lower().strip()

# HTTP server
PORT = int(os.getenv("PORT", "5000"))
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
SERVICE_NAME = "Globe Fare Backend API"
SERVICE_VERSION = "1.0.0"

# Filesystem layout
CACHE_DIR = Path(os.getenv("CACHE_DIR", str(BASE_DIR / "cache")))
PIVOTS_DIR = Path(os.getenv("PIVOTS_DIR", str(BASE_DIR / "pivots")))
RESULTS_DIR = Path(os.getenv("RESULTS_DIR", str(BASE_DIR / "results")))

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'globefare.db'}")


# =====================================================================
# SECTION: CACHE POLICY
# One policy for every cache path. Aggregate (destination, date) entries
# with at least CACHE_LOCK_MIN_FLIGHTS flights are locked for
# CACHE_LOCK_HOURS, smaller ones are retried after CACHE_SHORT_TTL_HOURS.
# =====================================================================

CACHE_LOCK_HOURS = float(os.getenv("CACHE_LOCK_HOURS", "12"))
CACHE_SHORT_TTL_HOURS = float(os.getenv("CACHE_SHORT_TTL_HOURS", "2"))
CACHE_LOCK_MIN_FLIGHTS = int(os.getenv("CACHE_LOCK_MIN_FLIGHTS", "15"))
ROUTE_CACHE_TTL_HOURS = float(os.getenv("ROUTE_CACHE_TTL_HOURS", "12"))
CACHE_DELETE_HOURS = float(os.getenv("CACHE_DELETE_HOURS", "24"))
CACHE_FORMAT_VERSION = "1.0"

FLIGHT_MEMORY_LIMIT = int(os.getenv("FLIGHT_MEMORY_LIMIT", "500"))


# =====================================================================
# SECTION: SEARCH CAPS
# Defaults here, runtime overrides through admin_config (see below).
# =====================================================================

MAX_PIVOTS = 20
PIVOT_CONCURRENCY = 5
FLIGHTS_PER_PIVOT = 2
OFFERS_PER_PIVOT = 5
MAX_RESULTS = 15
SEARCH_DEADLINE_SECONDS = 30

BATCH_MAX_RESULTS = 15
BATCH_TARGETS = [
    code.strip().upper()
    for code in os.getenv("BATCH_TARGETS", "BKK,DPS").split(",")
    if code.strip()
]


# =====================================================================
# SECTION: ADMIN CONFIG DB HELPERS
# Read runtime configuration values stored in admin_config table.
# =====================================================================

def _get_config_row(db, key: str):
    from models import AdminConfig
    return db.query(AdminConfig).filter(AdminConfig.key == key).first()


def get_config_str(key: str, default_value: Optional[str] = None) -> Optional[str]:
    """Read a config value from admin_config as string."""
    from db import SessionLocal
    db = SessionLocal()
    try:
        row = _get_config_row(db, key)
        if not row or row.value is None:
            return default_value
        return str(row.value)
    finally:
        db.close()


def get_config_int(key: str, default_value: int) -> int:
    """Read a config value from admin_config and cast to int."""
    raw = get_config_str(key, None)
    if raw is None:
        return default_value
    try:
        return int(raw)
    except ValueError:
        return default_value


def set_config_value(key: str, value: Optional[str], description: Optional[str] = None) -> None:
    """Upsert a runtime override in admin_config."""
    from db import SessionLocal
    from models import AdminConfig
    db = SessionLocal()
    try:
        row = _get_config_row(db, key)
        if row is None:
            row = AdminConfig(key=key)
            db.add(row)
        row.value = None if value is None else str(value)
        if description is not None:
            row.description = description
        db.commit()
    finally:
        db.close()


# =====================================================================
# SECTION: CREDENTIAL HELPERS
# =====================================================================

def amadeus_configured() -> bool:
    return bool(AMADEUS_CLIENT_ID.strip() and AMADEUS_CLIENT_SECRET.strip())


def mask_secret(s: str) -> str:
    if not s:
        return ""
    if len(s) <= 6:
        return "*" * len(s)
    return f"{s[:3]}***{s[-3:]}"
