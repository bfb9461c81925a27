"""
services/cache_service.py

Flat-file JSON cache for flight search results.

Three kinds of files live under CACHE_DIR:
- route entries      flight-{FROM}-{TO}-{DATE}.json        raw provider response for one origin
- aggregate entries  flight-cache-{TO}-{DATE}.json         standardized flights for a destination
- no-data markers    no-data/no-data-{FROM}-{TO}-{DATE}.json

TTL policy (single source, see config.py "CACHE POLICY"):
- route entries expire after ROUTE_CACHE_TTL_HOURS
- aggregate entries expire after CACHE_LOCK_HOURS when they hold at least
  CACHE_LOCK_MIN_FLIGHTS flights, else after CACHE_SHORT_TTL_HOURS
- any cache file older than CACHE_DELETE_HOURS (by mtime) is deleted by
  clean_old_cache_files()

Writes go through a temp file + os.replace so readers never see a partial
file. There is no locking: concurrent writers of the same key race and the
last one wins.
"""

import json
import logging
import os
import tempfile
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

import config
from schemas.flights import (
    AggregateCacheEntry,
    CacheFileStatus,
    CacheStatusResponse,
    RouteCacheEntry,
    SelectionStats,
)

logger = logging.getLogger(__name__)

ROUTE_PREFIX = "flight-"
AGGREGATE_PREFIX = "flight-cache-"
NO_DATA_DIRNAME = "no-data"

_MS_PER_HOUR = 60 * 60 * 1000


# =====================================================================
# SECTION: PATHS AND FILE HELPERS
# =====================================================================

def cache_dir() -> Path:
    return Path(config.CACHE_DIR)


def no_data_dir() -> Path:
    return cache_dir() / NO_DATA_DIRNAME


def ensure_directories() -> None:
    for d in (cache_dir(), no_data_dir(), Path(config.RESULTS_DIR)):
        if not d.exists():
            d.mkdir(parents=True, exist_ok=True)
            logger.info(f"[cache] created directory {d}")


def route_cache_path(origin: str, destination: str, date: str) -> Path:
    return cache_dir() / f"{ROUTE_PREFIX}{origin.upper()}-{destination.upper()}-{date}.json"


def aggregate_cache_path(destination: str, date: str) -> Path:
    return cache_dir() / f"{AGGREGATE_PREFIX}{destination.upper()}-{date}.json"


def no_data_path(origin: str, destination: str, date: str) -> Path:
    return no_data_dir() / f"no-data-{origin.upper()}-{destination.upper()}-{date}.json"


def is_aggregate_file(name: str) -> bool:
    return name.startswith(AGGREGATE_PREFIX) and name.endswith(".json")


def is_cache_file(name: str) -> bool:
    # flight-cache-* also starts with flight-
    return name.startswith(ROUTE_PREFIX) and name.endswith(".json")


def write_json_atomic(path: Path, payload: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return path


def read_json(path: Path) -> Optional[Dict[str, Any]]:
    """Parsed JSON object at path, or None when missing, unreadable or not an object."""
    if not path.exists():
        return None
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as e:
        logger.warning(f"[cache] unreadable cache file {path.name}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"[cache] unexpected cache payload in {path.name}: {type(data).__name__}")
        return None
    return data


# =====================================================================
# SECTION: AGE AND TTL
# =====================================================================

def now_ms() -> int:
    return int(time.time() * 1000)


def age_hours(entry: Dict[str, Any], now: Optional[int] = None) -> float:
    """Age of a cache entry from its millisecond `timestamp`. Missing timestamp counts as epoch."""
    now = now_ms() if now is None else now
    try:
        ts = int(entry.get("timestamp") or 0)
    except (TypeError, ValueError):
        ts = 0
    return (now - ts) / _MS_PER_HOUR


def aggregate_ttl_hours(flight_count: int) -> float:
    if flight_count >= config.CACHE_LOCK_MIN_FLIGHTS:
        return config.CACHE_LOCK_HOURS
    return config.CACHE_SHORT_TTL_HOURS


def _iso_in(hours: float) -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# =====================================================================
# SECTION: ROUTE CACHE (one origin -> destination -> date)
# =====================================================================

def load_route_cache(origin: str, destination: str, date: str) -> Optional[Dict[str, Any]]:
    path = route_cache_path(origin, destination, date)
    data = read_json(path)
    if data is None:
        return None

    age = age_hours(data)
    if age > config.ROUTE_CACHE_TTL_HOURS:
        logger.info(f"[cache] route expired file={path.name} age_h={age:.1f}")
        return None

    try:
        entry = RouteCacheEntry.model_validate(data)
    except ValidationError as e:
        logger.warning(f"[cache] invalid route entry file={path.name}: {e.error_count()} errors")
        return None

    return entry.model_dump(by_alias=True)


def save_route_cache(
    origin: str,
    destination: str,
    date: str,
    response: Dict[str, Any],
    source: str = "amadeus-api",
) -> Path:
    ts = now_ms()
    entry = RouteCacheEntry(
        from_=origin.upper(),
        to=destination.upper(),
        date=date,
        data=list(response.get("data") or []),
        dictionaries=dict(response.get("dictionaries") or {}),
        timestamp=ts,
        cached_at=_iso_now(),
        expires_at=_iso_in(config.ROUTE_CACHE_TTL_HOURS),
        source=source,
    )
    path = write_json_atomic(route_cache_path(origin, destination, date), entry.model_dump(by_alias=True))
    logger.info(f"[cache] saved route file={path.name} offers={len(entry.data)}")
    return path


# =====================================================================
# SECTION: AGGREGATE CACHE (destination -> date)
# =====================================================================

def read_aggregate_cache(destination: str, date: str) -> Optional[Dict[str, Any]]:
    """Aggregate entry regardless of age. Used for the stale fallback."""
    path = aggregate_cache_path(destination, date)
    data = read_json(path)
    if data is None:
        return None
    try:
        entry = AggregateCacheEntry.model_validate(data)
    except ValidationError as e:
        logger.warning(f"[cache] invalid aggregate entry file={path.name}: {e.error_count()} errors")
        return None
    return entry.model_dump()


def load_aggregate_cache(destination: str, date: str) -> Optional[Dict[str, Any]]:
    """Aggregate entry only while it is inside its adaptive TTL."""
    entry = read_aggregate_cache(destination, date)
    if entry is None:
        return None

    count = len(entry.get("flights") or [])
    ttl = aggregate_ttl_hours(count)
    age = age_hours(entry)
    valid = age < ttl

    logger.info(
        f"[cache] aggregate {destination.upper()} {date} age_h={age:.2f} flights={count} "
        f"ttl_h={ttl} status={'VALID' if valid else 'EXPIRED'}"
    )
    if not valid:
        return None
    return entry


def save_aggregate_cache(
    destination: str,
    date: str,
    flights: List[Dict[str, Any]],
    stats: Optional[SelectionStats] = None,
    source: str = "dynamic-search-direct-priority",
) -> Path:
    stats = stats or SelectionStats(total_found=len(flights), returned=len(flights))
    entry = AggregateCacheEntry(
        destination=destination.upper(),
        date=date,
        flights=flights,
        timestamp=now_ms(),
        cached_at=_iso_now(),
        expires_at=_iso_in(aggregate_ttl_hours(len(flights))),
        source=source,
        format_version=config.CACHE_FORMAT_VERSION,
        **stats.model_dump(),
    )
    path = write_json_atomic(aggregate_cache_path(destination, date), entry.model_dump())
    logger.info(f"[cache] saved aggregate file={path.name} flights={len(flights)} source={source}")
    return path


# =====================================================================
# SECTION: NO-DATA MARKERS
# =====================================================================

def save_no_data_info(origin: str, destination: str, date: str) -> Path:
    info = {
        "from": origin.upper(),
        "to": destination.upper(),
        "date": date,
        "timestamp": now_ms(),
        "checked_at": _iso_now(),
    }
    return write_json_atomic(no_data_path(origin, destination, date), info)


# =====================================================================
# SECTION: MAINTENANCE
# =====================================================================

def clean_old_cache_files(max_age_hours: Optional[float] = None) -> int:
    """Delete route and aggregate files whose mtime is older than max_age_hours."""
    max_age = config.CACHE_DELETE_HOURS if max_age_hours is None else max_age_hours
    d = cache_dir()
    if not d.exists():
        return 0

    now = time.time()
    deleted = 0
    for path in d.iterdir():
        if not path.is_file() or not is_cache_file(path.name):
            continue
        try:
            age = (now - path.stat().st_mtime) / 3600
            if age > max_age:
                path.unlink()
                deleted += 1
                logger.info(f"[cache cleanup] deleted {path.name} age_h={age:.1f}")
        except OSError as e:
            logger.warning(f"[cache cleanup] could not process {path.name}: {e}")

    if deleted:
        logger.info(f"[cache cleanup] deleted {deleted} old cache files")
    return deleted


def clear_cache() -> int:
    """Delete every aggregate file. Route entries are left alone."""
    d = cache_dir()
    if not d.exists():
        return 0
    deleted = 0
    for path in d.iterdir():
        if path.is_file() and is_aggregate_file(path.name):
            path.unlink()
            deleted += 1
    logger.info(f"[cache] cleared {deleted} aggregate files")
    return deleted


def cache_status() -> CacheStatusResponse:
    d = cache_dir()
    files: List[CacheFileStatus] = []
    if d.exists():
        now = time.time()
        for path in sorted(d.iterdir()):
            if not path.is_file() or not is_aggregate_file(path.name):
                continue
            age = (now - path.stat().st_mtime) / 3600
            data = read_json(path) or {}
            count = len(data.get("flights") or [])
            ttl = aggregate_ttl_hours(count)
            files.append(CacheFileStatus(
                file=path.name,
                age_hours=round(age, 2),
                valid=age < ttl,
                expires_in_hours=round(ttl - age, 2),
                flight_count=count,
            ))

    return CacheStatusResponse(
        success=True,
        cache_files=files,
        total_files=len(files),
        cache_settings={
            "lock_hours": config.CACHE_LOCK_HOURS,
            "short_ttl_hours": config.CACHE_SHORT_TTL_HOURS,
            "lock_min_flights": config.CACHE_LOCK_MIN_FLIGHTS,
            "route_ttl_hours": config.ROUTE_CACHE_TTL_HOURS,
            "delete_hours": config.CACHE_DELETE_HOURS,
        },
    )
