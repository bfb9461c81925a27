"""routers/flights.py - Flight search, cache admin, refresh and flight memory routes."""

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from config import CACHE_LOCK_MIN_FLIGHTS
from schemas.flights import FlightMemoryOut, FlightsResponse, RefreshResponse
from services.cache_service import (
    age_hours,
    cache_status,
    clear_cache,
    load_aggregate_cache,
    read_aggregate_cache,
)
from services.flight_service import process_flights
from services.memory_service import recent_flights
from services.search_service import SEARCH_SOURCE, NoPivotsError, run_destination_search

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

MAX_ADULTS = 9


# =====================================================================
# SECTION: REQUEST HELPERS
# =====================================================================

def _base36(n: int) -> str:
    chars = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = chars[r] + out
    return out or "0"


def make_request_id(to: Optional[str], date: Optional[str]) -> str:
    return f"{to}-{date}-{_base36(int(time.time() * 1000))}"


def validate_search_params(
    to: Optional[str],
    date: Optional[str],
    people: Optional[int] = None,
) -> Tuple[Optional[str], Dict[str, Any]]:
    """Returns (error, details). error is None when the parameters are usable."""
    if not to or not date:
        return "Missing required parameters: to and date", {
            "received_params": {"to": to, "date": date},
            "required_params": ["to", "date"],
        }

    if len(to) != 3 or not (to.isascii() and to.isalpha()):
        return "Invalid destination", {"details": ["Destination must be a 3-letter IATA code"]}

    try:
        travel_date = datetime.strptime(date, "%Y-%m-%d").date()
    except ValueError:
        return "Invalid date", {"details": ["Date must be in YYYY-MM-DD format"]}

    if travel_date < datetime.now().date():
        return "Invalid date", {"details": ["Date cannot be in the past"]}

    if people is not None and not 1 <= people <= MAX_ADULTS:
        return "Invalid passenger count", {"details": [f"people must be between 1 and {MAX_ADULTS}"]}

    return None, {}


def _standardized(raw_flights) -> List[Dict[str, Any]]:
    return [f.to_json() for f in process_flights(raw_flights)]


def _flights_payload(
    flights,
    source: str,
    message: Optional[str] = None,
    **meta: Any,
) -> Dict[str, Any]:
    return FlightsResponse(
        success=True,
        flights=flights,
        source=source,
        count=len(flights),
        message=message,
        meta=meta,
    ).model_dump(exclude_none=True)


# =====================================================================
# SECTION: FLIGHT SEARCH
# =====================================================================

@router.get("/flights")
def get_flights(
    to: Optional[str] = None,
    date: Optional[str] = None,
    people: Optional[int] = None,
):
    request_id = make_request_id(to, date)
    logger.info(f"[flights][{request_id}] request to={to} date={date} people={people}")

    error, details = validate_search_params(to, date, people)
    if error:
        logger.warning(f"[flights][{request_id}] rejected: {error}")
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": error,
                "flights": [],
                "meta": {"destination": to, "date": date, "source": "validation-error", **details},
            },
        )

    to = to.upper()
    adults = people or 1

    try:
        # 1. Fresh aggregate cache
        cached = load_aggregate_cache(to, date)
        flights = _standardized(cached.get("flights")) if cached else []
        if flights:
            logger.info(f"[flights][{request_id}] cache hit flights={len(flights)}")
            protected = len(flights) >= CACHE_LOCK_MIN_FLIGHTS
            return _flights_payload(
                flights,
                "cache",
                destination=to,
                date=date,
                cache_age_hours=round(age_hours(cached), 2),
                cache_protected=protected,
                cached_at=cached.get("cached_at"),
                request_id=request_id,
            )

        # 2. Fan-out search
        outcome = None
        try:
            outcome = run_destination_search(to, date, adults=adults, request_id=request_id)
        except NoPivotsError:
            logger.warning(f"[flights][{request_id}] no pivot file for {to}")
            return _flights_payload(
                [],
                "no-pivots",
                message=f"No flight data available for destination {to}",
                destination=to,
                date=date,
                request_id=request_id,
            )
        except (ValueError, OSError) as e:
            logger.error(f"[flights][{request_id}] search failed: {type(e).__name__}: {e}")

        if outcome is not None and outcome.selected:
            stats = outcome.stats
            return _flights_payload(
                outcome.selected,
                SEARCH_SOURCE,
                destination=to,
                date=date,
                pivots_searched=outcome.pivots_searched,
                total_flights_found=stats.total_found,
                direct_flights_found=stats.direct_found,
                connecting_flights_found=stats.connecting_found,
                direct_returned=stats.direct_returned,
                connecting_returned=stats.connecting_returned,
                returned=stats.returned,
                pivots_failed=outcome.failed,
                pivots_timed_out=outcome.timed_out,
                flight_type="direct-priority-with-connecting-fallback",
                request_id=request_id,
            )

        # 3. Any cache, whatever its age
        stale = read_aggregate_cache(to, date)
        flights = _standardized(stale.get("flights")) if stale else []
        if flights:
            logger.warning(f"[flights][{request_id}] serving stale cache flights={len(flights)}")
            return _flights_payload(
                flights,
                "stale-fallback",
                destination=to,
                date=date,
                cache_age_hours=round(age_hours(stale), 2),
                cached_at=stale.get("cached_at"),
                warning="Using older data, live search returned nothing",
                request_id=request_id,
            )

        # 4. Nothing at all
        logger.info(f"[flights][{request_id}] no data")
        return _flights_payload(
            [],
            "no-data",
            message=f"No flights found for {to} on {date}",
            destination=to,
            date=date,
            request_id=request_id,
        )

    except Exception as e:
        logger.exception(f"[flights][{request_id}] unexpected error")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal server error",
                "message": str(e),
                "flights": [],
                "meta": {
                    "destination": to,
                    "date": date,
                    "error_type": type(e).__name__,
                    "request_id": request_id,
                },
            },
        )


@router.post("/flights")
def flights_action(action: Optional[str] = None):
    if action == "clear-cache":
        try:
            deleted = clear_cache()
        except OSError as e:
            logger.error(f"[flights] clear-cache failed: {e}")
            return JSONResponse(status_code=500, content={"success": False, "error": "Failed to clear cache"})
        return {"success": True, "message": f"Cleared {deleted} cache files", "deleted": deleted}

    if action == "cache-status":
        try:
            return cache_status().model_dump()
        except OSError as e:
            logger.error(f"[flights] cache-status failed: {e}")
            return JSONResponse(status_code=500, content={"success": False, "error": "Failed to get cache status"})

    return JSONResponse(status_code=400, content={"success": False, "error": "Invalid action"})


# =====================================================================
# SECTION: REFRESH
# =====================================================================

@router.api_route("/refresh", methods=["GET", "POST"], response_model=RefreshResponse, response_model_exclude_none=True)
def refresh(to: Optional[str] = None, date: Optional[str] = None, people: Optional[int] = None):
    error, details = validate_search_params(to, date, people)
    if error:
        logger.warning(f"[refresh] rejected to={to} date={date}: {error}")
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": error, **details},
        )

    to = to.upper()
    request_id = make_request_id(to, date)
    logger.info(f"[refresh][{request_id}] refreshing {to} {date}")

    try:
        outcome = run_destination_search(to, date, adults=people or 1, request_id=request_id, use_cache=False)
    except NoPivotsError as e:
        return JSONResponse(status_code=404, content={"success": False, "message": str(e)})
    except Exception as e:
        logger.exception(f"[refresh][{request_id}] failed")
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Internal server error during refresh", "error": str(e)},
        )

    if not outcome.selected:
        logger.warning(f"[refresh][{request_id}] no flights for any pivot to {to}")
        return JSONResponse(
            status_code=404,
            content={"success": False, "message": "No flights found for any pivot location."},
        )

    return RefreshResponse(
        success=True,
        message="Flight data refreshed and cached.",
        count=len(outcome.selected),
        destination=to,
        date=date,
    )


# =====================================================================
# SECTION: FLIGHT MEMORY
# =====================================================================

@router.get("/memory")
def get_memory(limit: int = Query(50, ge=1, le=500)):
    rows = recent_flights(limit)
    flights = [FlightMemoryOut.model_validate(r).model_dump(mode="json") for r in rows]
    return {"success": True, "count": len(flights), "flights": flights}
