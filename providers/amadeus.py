"""
providers/amadeus.py

Amadeus Self-Service API helpers:
- OAuth2 client-credentials token, cached until shortly before expiry
- Low-level HTTP wrapper (amadeus_get)
- Flight offers search with the per-route file cache in front of it
- Offer-to-Flight mapping

Errors surface as HTTPException, like every other provider:
  500  credentials missing
  502  network failure / timeout talking to Amadeus
  4xx/5xx  passed through from Amadeus
"""

import logging
import threading
import time
from typing import Any, Dict, Optional

import requests
from fastapi import HTTPException

import config
from schemas.flights import Flight
from services.cache_service import load_route_cache, save_route_cache

logger = logging.getLogger(__name__)

TOKEN_PATH = "/v1/security/oauth2/token"
FLIGHT_OFFERS_PATH = "/v2/shopping/flight-offers"

# Refresh this many seconds before Amadeus says the token expires
_TOKEN_EARLY_REFRESH_SECONDS = 60


# =====================================================================
# SECTION: TOKEN CACHE
# =====================================================================

_TOKEN_LOCK = threading.Lock()
_TOKEN: Dict[str, Any] = {"access_token": None, "expires_at": 0.0}


def _fetch_token() -> str:
    if not config.amadeus_configured():
        raise HTTPException(status_code=500, detail="Amadeus credentials are not configured")

    url = config.AMADEUS_BASE_URL + TOKEN_PATH
    try:
        resp = requests.post(
            url,
            data={
                "grant_type": "client_credentials",
                "client_id": config.AMADEUS_CLIENT_ID,
                "client_secret": config.AMADEUS_CLIENT_SECRET,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=config.AMADEUS_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        raise HTTPException(status_code=502, detail=f"Amadeus token request failed: {e}")

    if resp.status_code != 200:
        logger.error(f"[amadeus] token status={resp.status_code} body={(resp.text or '')[:200]}")
        status = 502 if resp.status_code >= 500 else resp.status_code
        raise HTTPException(status_code=status, detail="Amadeus authentication failed")

    data = resp.json()
    token = data.get("access_token")
    if not token:
        raise HTTPException(status_code=502, detail="Amadeus token response had no access_token")

    expires_in = int(data.get("expires_in") or 1799)
    _TOKEN["access_token"] = token
    _TOKEN["expires_at"] = time.monotonic() + expires_in - _TOKEN_EARLY_REFRESH_SECONDS
    logger.info(f"[amadeus] token acquired expires_in={expires_in}s")
    return token


def get_access_token() -> str:
    with _TOKEN_LOCK:
        if _TOKEN["access_token"] and time.monotonic() < _TOKEN["expires_at"]:
            return _TOKEN["access_token"]
        return _fetch_token()


def invalidate_token() -> None:
    with _TOKEN_LOCK:
        _TOKEN["access_token"] = None
        _TOKEN["expires_at"] = 0.0


# =====================================================================
# SECTION: LOW LEVEL HTTP HELPERS
# =====================================================================

def amadeus_get(path: str, params: Optional[dict] = None) -> dict:
    url = config.AMADEUS_BASE_URL + path

    for attempt in (1, 2):
        token = get_access_token()
        try:
            resp = requests.get(
                url,
                headers={"Authorization": f"Bearer {token}"},
                params=params or {},
                timeout=config.AMADEUS_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise HTTPException(status_code=502, detail=f"Amadeus request failed: {e}")

        if resp.status_code == 401 and attempt == 1:
            logger.warning(f"[amadeus] GET {path} 401, refreshing token and retrying")
            invalidate_token()
            continue
        break

    try:
        data = resp.json()
    except ValueError:
        data = {"raw": resp.text}

    if resp.status_code >= 400:
        safe_body = (resp.text or "").replace("\n", "\\n").replace("\r", "\\r")
        logger.error(f"[amadeus] GET {path} status={resp.status_code} body={safe_body[:1200]}")
        raise HTTPException(status_code=resp.status_code, detail=data)

    logger.info(f"[amadeus] GET {path} status={resp.status_code}")
    return data if isinstance(data, dict) else {"data": data}


# =====================================================================
# SECTION: FLIGHT OFFERS
# =====================================================================

def search_flight_offers(
    origin: str,
    destination: str,
    date: str,
    adults: int = 1,
    max_results: int = 5,
    use_cache: bool = True,
) -> Dict[str, Any]:
    """
    Raw Amadeus flight-offers body for one origin/destination/date:
    {"data": [...offers], "dictionaries": {...}}.

    Served from the route cache while it is fresh. The returned dict carries
    "__source" ("route-cache" or "amadeus-api") and "__timestamp".
    """
    origin = origin.upper()
    destination = destination.upper()

    if use_cache:
        cached = load_route_cache(origin, destination, date)
        if cached is not None:
            logger.info(f"[amadeus] route cache hit {origin}->{destination} {date}")
            return {
                "data": cached.get("data") or [],
                "dictionaries": cached.get("dictionaries") or {},
                "__source": "route-cache",
                "__timestamp": cached.get("timestamp"),
            }

    params = {
        "originLocationCode": origin,
        "destinationLocationCode": destination,
        "departureDate": date,
        "adults": max(1, int(adults or 1)),
        "max": max(1, int(max_results or 1)),
    }
    body = amadeus_get(FLIGHT_OFFERS_PATH, params=params)

    offers = body.get("data") or []
    if not isinstance(offers, list):
        offers = []
    result = {"data": offers, "dictionaries": body.get("dictionaries") or {}}
    save_route_cache(origin, destination, date, result)

    result["__source"] = "amadeus-api"
    result["__timestamp"] = int(time.time() * 1000)
    return result


# =====================================================================
# SECTION: OFFER MAPPING
# =====================================================================

def map_offer_to_flight(offer: dict, index: int = 0, carriers: Optional[Dict[str, str]] = None) -> Flight:
    """
    First itinerary of an Amadeus offer as a Flight.

    PRICE CONTRACT:
    - offer.price.total is the TOTAL for all travelers in the request
    - Flight.price carries it unchanged
    """
    if not isinstance(offer, dict):
        raise ValueError(f"offer must be a dict, got {type(offer).__name__}")
    itineraries = offer.get("itineraries") or []
    if not isinstance(itineraries, list) or not itineraries:
        raise ValueError("offer has no itineraries")
    itinerary = itineraries[0] or {}
    if not isinstance(itinerary, dict):
        raise ValueError("offer itinerary is not an object")
    segments = itinerary.get("segments") or []
    if not isinstance(segments, list) or not segments:
        raise ValueError("offer itinerary has no segments")
    if not all(isinstance(s, dict) for s in segments):
        raise ValueError("offer itinerary has malformed segments")

    first = segments[0]
    last = segments[-1]
    carrier = (first.get("carrierCode") or "XX").upper()
    number = first.get("number") or str(index + 1).zfill(3)
    origin = ((first.get("departure") or {}).get("iataCode") or "").upper()
    destination = ((last.get("arrival") or {}).get("iataCode") or "").upper()
    departure = (first.get("departure") or {}).get("at") or ""

    price = offer.get("price") or {}
    try:
        total = float(price.get("total") or price.get("grandTotal") or 0)
    except (TypeError, ValueError):
        total = 0.0

    seats = offer.get("numberOfBookableSeats")
    offer_id = offer.get("id") or str(index + 1)
    name = (carriers or {}).get(carrier)

    return Flight(
        id=f"{origin}-{destination}-{departure[:10] or 'nodate'}-{offer_id}",
        airline=carrier,
        airlineCode=carrier,
        flightNumber=f"{carrier}{number}",
        from_=origin,
        to=destination,
        departure=departure,
        arrival=(last.get("arrival") or {}).get("at") or "",
        duration=itinerary.get("duration") or "N/A",
        stops=max(0, len(segments) - 1),
        price=total,
        currency=price.get("currency") or "EUR",
        aircraft=(first.get("aircraft") or {}).get("code") or "N/A",
        availableSeats=int(seats) if isinstance(seats, (int, float)) else None,
        segments=segments,
        airlineName=name.title() if name else None,
    )
