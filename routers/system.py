"""routers/system.py - Service info, health check, API docs and debug routes."""

import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from sqlalchemy.exc import SQLAlchemyError

import config
from db import SessionLocal
from models import FlightMemory
from routers.flights import validate_search_params
from services.cache_service import age_hours, aggregate_cache_path, aggregate_ttl_hours, read_aggregate_cache
from services.pivot_service import available_destinations, load_pivots, pivots_path

router = APIRouter()

STARTED_AT = time.monotonic()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def list_routes(app) -> list:
    routes = []
    for route in app.routes:
        if not isinstance(route, APIRoute) or not route.include_in_schema:
            continue
        methods = "|".join(sorted(route.methods))
        routes.append(f"{methods} {route.path}")
    return routes


# =====================================================================
# SECTION: HEALTH AND INFO ROUTES
# =====================================================================

@router.get("/")
def home():
    return {
        "service": config.SERVICE_NAME,
        "version": config.SERVICE_VERSION,
        "status": "running",
        "endpoints": {
            "flights": "/api/flights?to=DESTINATION&date=YYYY-MM-DD",
            "refresh": "/api/refresh?to=DESTINATION&date=YYYY-MM-DD",
            "health": "/health",
        },
        "timestamp": _now_iso(),
    }


@router.get("/health")
def health():
    return {
        "status": "healthy",
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "timestamp": _now_iso(),
    }


@router.get("/api")
def api_docs():
    example_date = (datetime.now().date() + timedelta(days=30)).isoformat()
    return {
        "name": "Globe Fare API",
        "version": config.SERVICE_VERSION,
        "endpoints": {
            "GET /": "Service information",
            "GET /health": "Health check",
            "GET /api": "API documentation",
            "GET /api/flights": "Get flights for destination and date",
            "POST /api/flights?action=clear-cache|cache-status": "Cache administration",
            "GET|POST /api/refresh": "Refresh flight data for destination",
            "GET /api/memory": "Recently fetched flights",
            "GET /api/debug": "Configuration and cache diagnostics",
        },
        "destinations": available_destinations(),
        "examples": {
            "flights": f"/api/flights?to=DPS&date={example_date}",
            "refresh": f"/api/refresh?to=DPS&date={example_date}",
        },
    }


@router.get("/routes")
def list_routes_handler(request: Request):
    return list_routes(request.app)


# =====================================================================
# SECTION: DEBUG
# =====================================================================

def _pivot_check(to: str) -> dict:
    path = pivots_path(to)
    try:
        pivots = load_pivots(to)
    except ValueError as e:
        return {"name": "Pivot File", "success": False, "file": path.name, "error": str(e)}
    if pivots is None:
        return {"name": "Pivot File", "success": False, "file": path.name, "error": "not found"}
    return {"name": "Pivot File", "success": True, "file": path.name, "count": len(pivots), "sample": pivots[:5]}


def _cache_check(to: str, date: str) -> dict:
    entry = read_aggregate_cache(to, date)
    name = aggregate_cache_path(to, date).name
    if entry is None:
        return {"name": "Aggregate Cache", "success": False, "file": name, "exists": False}
    count = len(entry.get("flights") or [])
    age = age_hours(entry)
    return {
        "name": "Aggregate Cache",
        "success": True,
        "file": name,
        "exists": True,
        "flight_count": count,
        "age_hours": round(age, 2),
        "valid": age < aggregate_ttl_hours(count),
    }


def _memory_check() -> dict:
    db = SessionLocal()
    try:
        total = db.query(FlightMemory).count()
    except SQLAlchemyError as e:
        return {"name": "Flight Memory", "success": False, "error": str(e)}
    finally:
        db.close()
    return {"name": "Flight Memory", "success": True, "rows": total, "limit": config.FLIGHT_MEMORY_LIMIT}


@router.get("/api/debug")
def debug(to: Optional[str] = None, date: Optional[str] = None):
    to = to or "BKK"
    date = date or (datetime.now().date() + timedelta(days=30)).isoformat()
    error, details = validate_search_params(to, date)
    if error:
        return JSONResponse(status_code=400, content={"success": False, "error": error, **details})
    to = to.upper()

    return {
        "timestamp": _now_iso(),
        "environment": {
            "api_mode": config.API_MODE,
            "amadeus_configured": config.amadeus_configured(),
            "amadeus_client_id": config.mask_secret(config.AMADEUS_CLIENT_ID),
            "amadeus_base_url": config.AMADEUS_BASE_URL,
            "cache_dir": str(config.CACHE_DIR),
            "pivots_dir": str(config.PIVOTS_DIR),
            "frontend_url": config.FRONTEND_URL,
        },
        "testParams": {"to": to, "date": date},
        "tests": [_pivot_check(to), _cache_check(to, date), _memory_check()],
    }
