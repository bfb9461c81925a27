"""
services/flight_service.py

Flight record helpers:
- Standardization of the loosely-typed flight dicts found in caches and
  provider responses into schemas.flights.Flight
- Display enrichment (airline / airport names)
- Duration and console formatting (batch runner output)
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from airlines import get_airline_name
from airports import get_airport_name
from schemas.flights import Flight

logger = logging.getLogger(__name__)


# =====================================================================
# SECTION: FIELD FALLBACK CHAINS
# Different producers used different key names for the same field.
# First non-empty value wins.
# =====================================================================

_FROM_KEYS = ("from", "origin", "departure_airport", "departureAirport")
_TO_KEYS = ("to", "destination", "arrival_airport", "arrivalAirport")
_DEPARTURE_KEYS = ("departure", "departure_time", "departureTime")
_ARRIVAL_KEYS = ("arrival", "arrival_time", "arrivalTime")
_DURATION_KEYS = ("duration", "flight_duration", "flightDuration")
_STOPS_KEYS = ("stops", "number_of_stops", "numberOfStops")
_PRICE_KEYS = ("price", "total_price", "totalPrice")
_AIRCRAFT_KEYS = ("aircraft", "airplane", "aircraftType")
_SEATS_KEYS = ("availableSeats", "available_seats", "seatsAvailable", "numberOfBookableSeats")


def first_of(raw: Dict[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    for k in keys:
        v = raw.get(k)
        if v not in (None, ""):
            return v
    return default


def _to_float(value: Any) -> float:
    if isinstance(value, dict):
        # Amadeus style {"total": "123.45", "currency": "EUR"}
        value = value.get("total") or value.get("grandTotal")
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# =====================================================================
# SECTION: STANDARDIZATION
# =====================================================================

def _from_segments(raw: Dict[str, Any], segments: List[Dict[str, Any]], index: int) -> Flight:
    first = segments[0] if segments else {}
    last = segments[-1] if segments else {}
    carrier = raw.get("airline") or raw.get("airlineCode") or first.get("carrierCode") or ""
    number = first.get("number") or ""

    stops = _to_int(raw.get("stops"))
    if stops is None:
        stops = max(0, len(segments) - 1)

    origin = raw.get("from") or (first.get("departure") or {}).get("iataCode") or ""
    destination = raw.get("to") or (last.get("arrival") or {}).get("iataCode") or ""
    departure = raw.get("departure") or (first.get("departure") or {}).get("at") or ""
    flight_number = raw.get("flightNumber") or f"{carrier}{number}"

    return _finalize(
        raw,
        index,
        airline=carrier,
        airlineCode=raw.get("airlineCode") or carrier,
        flightNumber=flight_number,
        from_=origin,
        to=destination,
        departure=departure,
        arrival=raw.get("arrival") or (last.get("arrival") or {}).get("at") or "",
        duration=raw.get("duration"),
        stops=stops,
        price=_to_float(raw.get("price")),
        currency=raw.get("currency") or "EUR",
        aircraft=raw.get("aircraft") if isinstance(raw.get("aircraft"), str) else (first.get("aircraft") or {}).get("code"),
        availableSeats=_to_int(first_of(raw, _SEATS_KEYS)),
        segments=segments,
    )


def _from_loose_dict(raw: Dict[str, Any], index: int) -> Flight:
    airline = raw.get("airline") or raw.get("airlineCode") or ""
    return _finalize(
        raw,
        index,
        airline=airline,
        airlineCode=raw.get("airlineCode") or airline,
        flightNumber=raw.get("flightNumber") or "",
        from_=first_of(raw, _FROM_KEYS, ""),
        to=first_of(raw, _TO_KEYS, ""),
        departure=first_of(raw, _DEPARTURE_KEYS, ""),
        arrival=first_of(raw, _ARRIVAL_KEYS, ""),
        duration=first_of(raw, _DURATION_KEYS),
        stops=_to_int(first_of(raw, _STOPS_KEYS, 0)) or 0,
        price=_to_float(first_of(raw, _PRICE_KEYS, 0)),
        currency=raw.get("currency") or "EUR",
        aircraft=first_of(raw, _AIRCRAFT_KEYS),
        availableSeats=_to_int(first_of(raw, _SEATS_KEYS)),
        segments=list(raw.get("segments") or []),
    )


def _finalize(raw: Dict[str, Any], index: int, **fields: Any) -> Flight:
    code = (fields.get("airlineCode") or "XX").upper()
    fields["airlineCode"] = code
    fields["airline"] = fields.get("airline") or "Unknown Airline"
    fields["flightNumber"] = fields.get("flightNumber") or f"{code}000"
    fields["from_"] = str(fields.get("from_") or "").upper()
    fields["to"] = str(fields.get("to") or "").upper()
    fields["stops"] = max(0, int(fields.get("stops") or 0))
    if fields.get("duration") is not None:
        fields["duration"] = str(fields["duration"])
    if fields.get("aircraft") is not None:
        fields["aircraft"] = str(fields["aircraft"])
    for key in ("airlineName", "originName", "destinationName"):
        if raw.get(key) and not fields.get(key):
            fields[key] = str(raw[key])

    flight_id = raw.get("id")
    if not flight_id:
        flight_id = f"flight-{code}-{fields['flightNumber']}-{fields['from_'] or 'UNK'}-{fields['departure'] or index}"

    return Flight(id=str(flight_id), **fields)


def standardize_flight(raw: Dict[str, Any], index: int = 0) -> Flight:
    """
    Turn any known flight shape into a Flight.

    Raw Amadeus offers (with "itineraries") go through the provider mapper,
    cached flights that still carry Amadeus segments are rebuilt from them,
    anything else goes through the key fallback chains.
    """
    if not isinstance(raw, dict):
        raise TypeError(f"flight must be a dict, got {type(raw).__name__}")

    if raw.get("itineraries"):
        from providers.amadeus import map_offer_to_flight
        return map_offer_to_flight(raw, index=index)

    segments = raw.get("segments")
    if isinstance(segments, list) and segments and isinstance(segments[0], dict) and "departure" in segments[0]:
        return _from_segments(raw, segments, index)

    return _from_loose_dict(raw, index)


def process_flights(raw_flights: Any) -> List[Flight]:
    """Standardize a list of raw flights, logging and skipping the ones that fail."""
    if not isinstance(raw_flights, list):
        logger.warning(f"[flights] expected list, got {type(raw_flights).__name__}")
        return []

    out: List[Flight] = []
    for idx, raw in enumerate(raw_flights):
        try:
            out.append(standardize_flight(raw, index=idx))
        except (AttributeError, TypeError, ValueError, ValidationError) as e:
            logger.error(f"[flights] could not standardize flight index={idx}: {e}")
    return out


# =====================================================================
# SECTION: ENRICHMENT AND FORMATTING
# =====================================================================

def enrich_flight(flight: Flight, carriers: Optional[Dict[str, str]] = None) -> Flight:
    carriers = carriers or {}
    name = carriers.get(flight.airlineCode)
    if name:
        name = name.title()
    return flight.model_copy(update={
        "airlineName": name or get_airline_name(flight.airlineCode),
        "originName": get_airport_name(flight.from_),
        "destinationName": get_airport_name(flight.to),
    })


_ISO_DURATION = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?")


def format_duration(value: Any) -> str:
    """PT2H30M -> "2h 30m"; an int is read as minutes; "2h 30m" passes through."""
    if value in (None, "", 0):
        return "--h --m"

    if isinstance(value, (int, float)):
        hours, mins = divmod(int(value), 60)
    else:
        text = str(value)
        if not text.startswith("P"):
            return text
        m = _ISO_DURATION.match(text)
        if not m:
            return text
        days, hours, mins = (int(g or 0) for g in m.groups())
        hours += days * 24

    if hours == 0 and mins == 0:
        return "--h --m"
    if hours == 0:
        return f"{mins}m"
    return f"{hours}h {mins}m" if mins else f"{hours}h"


def _format_dt(value: Any) -> str:
    if not value:
        return ""
    try:
        if isinstance(value, (int, float)):
            dt = datetime.fromtimestamp(value / 1000)
        else:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (TypeError, ValueError, OverflowError, OSError):
        return str(value)
    return dt.strftime("%d.%m.%Y %H:%M")


def format_flight_line(flight: Dict[str, Any]) -> str:
    """One-line console summary of a flight or batch result."""
    origin = flight.get("from") or ""
    destination = flight.get("to") or ""
    airline = flight.get("airline") or ""
    currency = flight.get("currency") or "EUR"

    line = (
        f"{get_airport_name(origin)} → {get_airport_name(destination)} | "
        f"{flight.get('price')} {currency} | {get_airline_name(airline)} ({airline})"
    )
    if flight.get("duration"):
        line += f" | {format_duration(flight['duration'])}"
    if flight.get("departure"):
        line += f" | Departure: {_format_dt(flight['departure'])}"
    fetched = flight.get("fetchedAt") or flight.get("__timestamp")
    if fetched:
        line += f" | updated: {_format_dt(fetched)}"
    return line
