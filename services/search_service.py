"""
services/search_service.py

All search execution logic:
- Pivot fan-out (search_pivots): one provider call per pivot airport on a
  bounded thread pool, with a single deadline for the whole search
- Direct-priority selection (select_direct_priority)
- Destination search (run_destination_search): fan-out + selection +
  aggregate cache + flight memory, used by /api/flights and /api/refresh
- Batch runner (run_batch_search): sequential sweep over configured
  targets writing results-{CODE}.json files

Per-pivot failures never fail the search. They are logged and reported in
the outcome (failed / timed_out / empty).
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

import config
from config import (
    BATCH_MAX_RESULTS,
    BATCH_TARGETS,
    FLIGHTS_PER_PIVOT,
    MAX_PIVOTS,
    MAX_RESULTS,
    OFFERS_PER_PIVOT,
    PIVOT_CONCURRENCY,
    SEARCH_DEADLINE_SECONDS,
    get_config_int,
)
from providers.amadeus import map_offer_to_flight
from providers.factory import fetch_flight
from schemas.flights import SelectionStats
from services.cache_service import (
    clean_old_cache_files,
    save_aggregate_cache,
    save_no_data_info,
    write_json_atomic,
)
from services.flight_service import enrich_flight, format_flight_line
from services.memory_service import append_to_flight_memory
from services.pivot_service import load_pivots

logger = logging.getLogger(__name__)

SEARCH_SOURCE = "dynamic-search-direct-priority"


class NoPivotsError(LookupError):
    """Raised when a destination has no pivot file."""

    def __init__(self, destination: str):
        self.destination = destination
        super().__init__(f"No pivot file found for destination: {destination}")


class SearchOutcome(BaseModel):
    destination: str
    date: str
    request_id: Optional[str] = None
    pivots_searched: int = 0
    flights: List[Dict[str, Any]] = Field(default_factory=list)
    selected: List[Dict[str, Any]] = Field(default_factory=list)
    stats: SelectionStats = Field(default_factory=SelectionStats)
    failed: List[str] = Field(default_factory=list)
    timed_out: List[str] = Field(default_factory=list)
    empty: List[str] = Field(default_factory=list)


# =====================================================================
# SECTION: SELECTION
# =====================================================================

def _price(f: Dict[str, Any]) -> float:
    try:
        return float(f.get("price") or 0)
    except (TypeError, ValueError):
        return 0.0


def select_direct_priority(
    flights: List[Dict[str, Any]],
    limit: int = MAX_RESULTS,
) -> Tuple[List[Dict[str, Any]], SelectionStats]:
    """
    Direct flights first (cheapest first, up to limit), then the cheapest
    connecting flights fill the remaining slots.
    """
    limit = max(0, int(limit))
    direct = sorted((f for f in flights if int(f.get("stops") or 0) == 0), key=_price)
    connecting = sorted((f for f in flights if int(f.get("stops") or 0) > 0), key=_price)

    selected = direct[:limit]
    direct_taken = len(selected)
    remaining = limit - direct_taken
    if remaining > 0:
        selected.extend(connecting[:remaining])

    stats = SelectionStats(
        total_found=len(flights),
        direct_found=len(direct),
        connecting_found=len(connecting),
        direct_returned=direct_taken,
        connecting_returned=len(selected) - direct_taken,
        returned=len(selected),
    )
    return selected, stats


# =====================================================================
# SECTION: PIVOT FAN-OUT
# =====================================================================

def _offers_to_flights(response: Dict[str, Any], keep: int) -> List[Dict[str, Any]]:
    carriers = ((response.get("dictionaries") or {}).get("carriers")) or {}
    flights = []
    for idx, offer in enumerate(response.get("data") or []):
        try:
            flight = map_offer_to_flight(offer, index=idx, carriers=carriers)
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"[search] skipping malformed offer index={idx}: {e}")
            continue
        flights.append(enrich_flight(flight, carriers))

    flights.sort(key=lambda f: f.price)
    return [f.to_json() for f in flights[:keep]]


def _search_pivot(
    pivot: str,
    destination: str,
    date: str,
    adults: int,
    use_cache: bool,
    request_id: Optional[str],
) -> List[Dict[str, Any]]:
    logger.info(f"[search][{request_id}] searching {pivot} -> {destination}")
    response = fetch_flight(
        pivot,
        destination,
        date,
        adults=adults,
        max_results=OFFERS_PER_PIVOT,
        use_cache=use_cache,
    )
    flights = _offers_to_flights(response, keep=FLIGHTS_PER_PIVOT)
    if not flights:
        save_no_data_info(pivot, destination, date)
    for f in flights:
        logger.debug(
            f"[search][{request_id}] found {f['from']} -> {f['to']} price={f['price']} "
            f"airline={f['airline']} stops={f['stops']}"
        )
    return flights


def search_pivots(
    destination: str,
    date: str,
    adults: int = 1,
    request_id: Optional[str] = None,
    use_cache: bool = True,
) -> SearchOutcome:
    """
    Query every pivot airport (up to MAX_PIVOTS) for the destination.

    At most PIVOT_CONCURRENCY provider calls run at once. The whole search
    shares one SEARCH_DEADLINE_SECONDS deadline; pivots still queued or
    running when it passes are cancelled and reported as timed out.
    Raises NoPivotsError when the destination has no pivot file.
    """
    destination = destination.upper()
    pivots = load_pivots(destination)
    if pivots is None:
        raise NoPivotsError(destination)

    max_pivots = get_config_int("MAX_PIVOTS", MAX_PIVOTS)
    workers = max(1, get_config_int("PIVOT_CONCURRENCY", PIVOT_CONCURRENCY))
    deadline = max(1, get_config_int("SEARCH_DEADLINE_SECONDS", SEARCH_DEADLINE_SECONDS))

    pivots = pivots[:max(0, max_pivots)]
    outcome = SearchOutcome(
        destination=destination,
        date=date,
        request_id=request_id,
        pivots_searched=len(pivots),
    )
    if not pivots:
        return outcome

    logger.info(
        f"[search][{request_id}] fan-out destination={destination} date={date} "
        f"pivots={','.join(pivots)} workers={workers} deadline_s={deadline}"
    )

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"pivot-{destination}")
    try:
        futures = [
            (pivot, executor.submit(_search_pivot, pivot, destination, date, adults, use_cache, request_id))
            for pivot in pivots
        ]
        done, _not_done = wait([f for _, f in futures], timeout=deadline)

        # Pivot order, so equal prices always merge the same way
        for pivot, fut in futures:
            if fut not in done:
                fut.cancel()
                outcome.timed_out.append(pivot)
                logger.warning(f"[search][{request_id}] {pivot} -> {destination} timed out after {deadline}s")
                continue
            try:
                flights = fut.result()
            except Exception as e:
                outcome.failed.append(pivot)
                detail = getattr(e, "detail", None) or str(e)
                logger.warning(f"[search][{request_id}] {pivot} -> {destination} failed: {type(e).__name__}: {detail}")
                continue
            if not flights:
                outcome.empty.append(pivot)
                continue
            outcome.flights.extend(flights)
    finally:
        # Running calls finish in the background, bounded by the HTTP timeout
        executor.shutdown(wait=False, cancel_futures=True)

    logger.info(
        f"[search][{request_id}] found={len(outcome.flights)} pivots={len(pivots)} "
        f"failed={len(outcome.failed)} timed_out={len(outcome.timed_out)} empty={len(outcome.empty)}"
    )
    return outcome


# =====================================================================
# SECTION: DESTINATION SEARCH
# =====================================================================

def run_destination_search(
    destination: str,
    date: str,
    adults: int = 1,
    request_id: Optional[str] = None,
    use_cache: bool = True,
) -> SearchOutcome:
    """Fan-out, direct-priority selection, then cache and memory writes when anything was found."""
    outcome = search_pivots(destination, date, adults=adults, request_id=request_id, use_cache=use_cache)

    limit = get_config_int("MAX_RESULTS", MAX_RESULTS)
    selected, stats = select_direct_priority(outcome.flights, limit=limit)
    outcome.selected = selected
    outcome.stats = stats

    if not selected:
        return outcome

    logger.info(
        f"[search][{request_id}] returning {stats.returned} flights: "
        f"{stats.direct_returned} direct + {stats.connecting_returned} connecting"
    )
    for i, f in enumerate(selected, start=1):
        stop_text = "DIRECT" if not f.get("stops") else f"{f['stops']} stop{'s' if f['stops'] > 1 else ''}"
        logger.debug(f"[search][{request_id}] {i}. {f['from']} -> {f['to']}: {f['price']} ({f['airline']}) {stop_text}")

    try:
        save_aggregate_cache(outcome.destination, date, selected, stats=stats, source=SEARCH_SOURCE)
    except OSError as e:
        logger.warning(f"[search][{request_id}] failed to save aggregate cache: {e}")

    append_to_flight_memory(selected, source=SEARCH_SOURCE, travel_date=date)
    return outcome


# =====================================================================
# SECTION: BATCH RUNNER
# Sequential sweep, one cheapest offer per pivot, kept for scheduled runs.
# =====================================================================

def _batch_target(target: str, date: str, adults: int) -> List[Dict[str, Any]]:
    try:
        pivots = load_pivots(target)
    except ValueError as e:
        logger.error(f"[batch] unreadable pivots for {target}: {e}")
        return []
    if pivots is None:
        logger.warning(f"[batch] pivots file not found for {target}")
        return []

    logger.info(f"[batch] {target}: {len(pivots)} pivots")
    results: List[Dict[str, Any]] = []

    for pivot in pivots:
        try:
            response = fetch_flight(pivot, target, date, adults=adults, max_results=OFFERS_PER_PIVOT)
            flights = _offers_to_flights(response, keep=1)
        except Exception as e:
            detail = getattr(e, "detail", None) or str(e)
            logger.error(f"[batch] error on {pivot} -> {target}: {type(e).__name__}: {detail}")
            continue

        if not flights:
            logger.warning(f"[batch] no data for {pivot} -> {target}")
            save_no_data_info(pivot, target, date)
            continue

        f = flights[0]
        result = {
            "from": pivot,
            "to": target,
            "price": f["price"],
            "currency": f["currency"],
            "airline": f["airline"],
            "departure": f["departure"],
            "arrival": f["arrival"],
            "duration": f["duration"],
            "stops": f["stops"],
            "segments": f["segments"],
            "__source": response.get("__source"),
            "__timestamp": response.get("__timestamp"),
        }
        results.append(result)
        append_to_flight_memory([result], source=response.get("__source"), travel_date=date)

    return results


def run_batch_search(
    date: str,
    targets: Optional[List[str]] = None,
    adults: int = 1,
    max_results: int = BATCH_MAX_RESULTS,
) -> Dict[str, List[Dict[str, Any]]]:
    """
    For every target destination, query each pivot in turn (route cache
    first), keep the cheapest max_results and write
    RESULTS_DIR/results-{CODE}.json. Returns {code: results}.
    """
    logger.info("[batch] starting flight search")
    try:
        clean_old_cache_files()
    except OSError as e:
        logger.warning(f"[batch] cache cleanup failed: {e}")

    out: Dict[str, List[Dict[str, Any]]] = {}
    for target in [t.upper() for t in (targets or BATCH_TARGETS)]:
        results = _batch_target(target, date, adults)
        results.sort(key=_price)
        top = results[:max_results]

        for r in top:
            logger.info(f"[batch] {format_flight_line(r)}")

        path = Path(config.RESULTS_DIR) / f"results-{target}.json"
        try:
            write_json_atomic(path, top)
            logger.info(f"[batch] saved {path} ({path.stat().st_size} bytes)")
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"[batch] error writing results for {target}: {e}")
        out[target] = top

    logger.info("[batch] flight search completed")
    return out


