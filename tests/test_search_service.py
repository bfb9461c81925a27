import json
import threading
import time
from pathlib import Path

import pytest
from fastapi import HTTPException

import config
from config import set_config_value
from db import SessionLocal
from models import FlightMemory
from services import search_service
from services.cache_service import no_data_path, read_aggregate_cache
from services.search_service import (
    NoPivotsError,
    run_batch_search,
    run_destination_search,
    search_pivots,
    select_direct_priority,
)


def _flight(i, price, stops):
    return {"id": f"f{i}", "from": "SIN", "to": "BKK", "price": price, "stops": stops}


def _fake_fetch(responses, calls=None):
    """fetch_flight stand-in: responses maps origin -> response dict or exception."""

    def fetch(origin, destination, date, adults=1, max_results=5, use_cache=True, api_mode=None):
        if calls is not None:
            calls.append({"origin": origin, "destination": destination, "adults": adults, "use_cache": use_cache})
        result = responses.get(origin, {"data": [], "dictionaries": {}})
        if isinstance(result, Exception):
            raise result
        return result

    return fetch


def _memory_count():
    db = SessionLocal()
    try:
        return db.query(FlightMemory).count()
    finally:
        db.close()


# =====================================================================
# SECTION: SELECTION
# =====================================================================

def test_direct_flights_come_first_then_cheapest_connecting():
    flights = [_flight(0, 300, 0), _flight(1, 150, 0), _flight(2, 90, 1)]
    flights += [_flight(10 + i, 100 + i, 1 + i % 2) for i in range(20)]

    selected, stats = select_direct_priority(flights, limit=15)

    assert len(selected) == 15
    assert [f["price"] for f in selected[:2]] == [150, 300]
    assert all(f["stops"] > 0 for f in selected[2:])
    connecting_prices = [f["price"] for f in selected[2:]]
    assert connecting_prices == sorted(connecting_prices)
    assert connecting_prices[0] == 90
    assert stats.direct_found == 2
    assert stats.connecting_found == 21
    assert stats.direct_returned == 2
    assert stats.connecting_returned == 13
    assert stats.total_found == 23


def test_direct_flights_alone_can_fill_the_limit():
    flights = [_flight(i, 500 - i, 0) for i in range(20)] + [_flight(99, 1, 1)]
    selected, stats = select_direct_priority(flights, limit=15)

    assert len(selected) == 15
    assert all(f["stops"] == 0 for f in selected)
    assert selected[0]["price"] == 481
    assert stats.connecting_returned == 0


def test_selection_of_nothing():
    selected, stats = select_direct_priority([], limit=15)
    assert selected == []
    assert stats.returned == 0


# =====================================================================
# SECTION: FAN-OUT
# =====================================================================

def test_search_pivots_keeps_two_cheapest_per_pivot(monkeypatch, write_pivots, offer, provider_response):
    write_pivots("BKK", ["SIN", "KUL"])
    responses = {
        "SIN": provider_response([
            offer("SIN", "BKK", 300, offer_id="1"),
            offer("SIN", "BKK", 100, offer_id="2"),
            offer("SIN", "BKK", 200, offer_id="3"),
        ]),
        "KUL": provider_response([offer("KUL", "BKK", 150, carrier="AK")], carriers={"AK": "AIRASIA"}),
    }
    monkeypatch.setattr(search_service, "fetch_flight", _fake_fetch(responses))

    outcome = search_pivots("bkk", "2026-12-01", request_id="t1")

    assert outcome.destination == "BKK"
    assert outcome.pivots_searched == 2
    assert sorted(f["price"] for f in outcome.flights) == [100, 150, 200]
    kul = [f for f in outcome.flights if f["from"] == "KUL"][0]
    assert kul["airlineName"] == "Airasia"
    assert outcome.failed == []
    assert outcome.timed_out == []


def test_failing_and_empty_pivots_do_not_fail_the_search(monkeypatch, write_pivots, offer, provider_response):
    write_pivots("BKK", ["SIN", "KUL", "HKG"])
    responses = {
        "SIN": provider_response([offer("SIN", "BKK", 120)]),
        "KUL": HTTPException(status_code=502, detail="Amadeus request failed"),
        "HKG": provider_response([]),
    }
    monkeypatch.setattr(search_service, "fetch_flight", _fake_fetch(responses))

    outcome = search_pivots("BKK", "2026-12-01")

    assert [f["from"] for f in outcome.flights] == ["SIN"]
    assert outcome.failed == ["KUL"]
    assert outcome.empty == ["HKG"]
    assert no_data_path("HKG", "BKK", "2026-12-01").exists()


def test_malformed_offer_is_skipped_not_the_whole_pivot(monkeypatch, write_pivots, offer, provider_response):
    write_pivots("BKK", ["SIN"])
    responses = {
        "SIN": provider_response([
            {"itineraries": ["junk"]},
            {"itineraries": [{"segments": ["junk"]}]},
            offer("SIN", "BKK", 140),
        ]),
    }
    monkeypatch.setattr(search_service, "fetch_flight", _fake_fetch(responses))

    outcome = search_pivots("BKK", "2026-12-01")

    assert outcome.failed == []
    assert [f["price"] for f in outcome.flights] == [140]


def test_search_pivots_caps_pivot_count(monkeypatch, write_pivots):
    write_pivots("BKK", ["SIN", "KUL", "HKG", "DOH"])
    calls = []
    monkeypatch.setattr(search_service, "fetch_flight", _fake_fetch({}, calls))
    monkeypatch.setattr(search_service, "MAX_PIVOTS", 2)

    outcome = search_pivots("BKK", "2026-12-01")

    assert outcome.pivots_searched == 2
    assert sorted(c["origin"] for c in calls) == ["KUL", "SIN"]


def test_admin_config_overrides_pivot_cap(monkeypatch, write_pivots):
    write_pivots("BKK", ["SIN", "KUL", "HKG"])
    calls = []
    monkeypatch.setattr(search_service, "fetch_flight", _fake_fetch({}, calls))
    set_config_value("MAX_PIVOTS", "1")

    search_pivots("BKK", "2026-12-01")

    assert [c["origin"] for c in calls] == ["SIN"]


MANY_PIVOTS = ["SIN", "KUL", "HKG", "DOH", "DXB", "IST", "LHR", "CDG", "FRA", "AMS", "HEL", "JFK"]


def _tracking_fetch(state, delay=0.05):
    """Records how many provider calls are in flight at once."""
    lock = threading.Lock()

    def fetch(origin, *args, **kwargs):
        with lock:
            state["running"] += 1
            state["peak"] = max(state["peak"], state["running"])
        try:
            time.sleep(delay)
        finally:
            with lock:
                state["running"] -= 1
        return {"data": [], "dictionaries": {}}

    return fetch


def test_concurrent_provider_calls_are_bounded(monkeypatch, write_pivots):
    write_pivots("BKK", MANY_PIVOTS)
    state = {"running": 0, "peak": 0}
    monkeypatch.setattr(search_service, "fetch_flight", _tracking_fetch(state))
    monkeypatch.setattr(search_service, "PIVOT_CONCURRENCY", 3)

    outcome = search_pivots("BKK", "2026-12-01")

    assert outcome.pivots_searched == 12
    assert len(outcome.empty) == 12
    assert 1 <= state["peak"] <= 3


def test_admin_config_overrides_concurrency(monkeypatch, write_pivots):
    write_pivots("BKK", MANY_PIVOTS[:6])
    state = {"running": 0, "peak": 0}
    monkeypatch.setattr(search_service, "fetch_flight", _tracking_fetch(state))
    set_config_value("PIVOT_CONCURRENCY", "1")

    outcome = search_pivots("BKK", "2026-12-01")

    assert len(outcome.empty) == 6
    assert state["peak"] == 1


def test_slow_pivot_is_reported_as_timed_out(monkeypatch, write_pivots, offer, provider_response):
    write_pivots("BKK", ["SIN", "KUL"])
    release = threading.Event()
    fast = _fake_fetch({"SIN": provider_response([offer("SIN", "BKK", 100)])})

    def fetch(origin, *args, **kwargs):
        if origin == "KUL":
            release.wait(10)
            return provider_response([offer("KUL", "BKK", 50)])
        return fast(origin, *args, **kwargs)

    monkeypatch.setattr(search_service, "fetch_flight", fetch)
    monkeypatch.setattr(search_service, "SEARCH_DEADLINE_SECONDS", 1)

    try:
        outcome = search_pivots("BKK", "2026-12-01")
    finally:
        release.set()

    assert outcome.timed_out == ["KUL"]
    assert [f["price"] for f in outcome.flights] == [100]


def test_missing_pivot_file_raises():
    with pytest.raises(NoPivotsError):
        search_pivots("XYZ", "2026-12-01")


def test_run_destination_search_saves_cache_and_memory(monkeypatch, write_pivots, offer, provider_response):
    write_pivots("DPS", ["SIN", "KUL"])
    responses = {
        "SIN": provider_response([offer("SIN", "DPS", 180, stops=1), offer("SIN", "DPS", 220)]),
        "KUL": provider_response([offer("KUL", "DPS", 90, carrier="AK", stops=1)]),
    }
    calls = []
    monkeypatch.setattr(search_service, "fetch_flight", _fake_fetch(responses, calls))

    outcome = run_destination_search("DPS", "2026-12-01", adults=2)

    assert [f["price"] for f in outcome.selected] == [220, 90, 180]
    assert outcome.stats.direct_returned == 1
    assert all(c["adults"] == 2 for c in calls)

    cached = read_aggregate_cache("DPS", "2026-12-01")
    assert cached["returned"] == 3
    assert cached["source"] == search_service.SEARCH_SOURCE
    assert [f["price"] for f in cached["flights"]] == [220, 90, 180]
    assert _memory_count() == 3


def test_run_destination_search_with_no_results_writes_nothing(monkeypatch, write_pivots):
    write_pivots("DPS", ["SIN"])
    monkeypatch.setattr(search_service, "fetch_flight", _fake_fetch({}))

    outcome = run_destination_search("DPS", "2026-12-01")

    assert outcome.selected == []
    assert read_aggregate_cache("DPS", "2026-12-01") is None
    assert _memory_count() == 0


# =====================================================================
# SECTION: BATCH RUNNER
# =====================================================================

def test_run_batch_search_writes_sorted_capped_results(monkeypatch, write_pivots, offer, provider_response):
    write_pivots("BKK", ["SIN", "KUL", "HKG", "DOH"])
    responses = {
        "SIN": provider_response([offer("SIN", "BKK", 300), offer("SIN", "BKK", 250)]),
        "KUL": provider_response([offer("KUL", "BKK", 80)], source="route-cache"),
        "HKG": provider_response([]),
        "DOH": RuntimeError("boom"),
    }
    monkeypatch.setattr(search_service, "fetch_flight", _fake_fetch(responses))

    results = run_batch_search("2026-12-01", targets=["bkk", "DPS"], max_results=5)

    assert [r["price"] for r in results["BKK"]] == [80, 250]
    assert results["BKK"][0]["__source"] == "route-cache"
    assert results["DPS"] == []

    written = json.loads((Path(config.RESULTS_DIR) / "results-BKK.json").read_text(encoding="utf-8"))
    assert [r["from"] for r in written] == ["KUL", "SIN"]
    assert no_data_path("HKG", "BKK", "2026-12-01").exists()
    assert _memory_count() == 2


def test_run_batch_search_respects_max_results(monkeypatch, write_pivots, offer, provider_response):
    write_pivots("BKK", ["SIN", "KUL", "HKG"])
    responses = {
        code: provider_response([offer(code, "BKK", price)])
        for code, price in (("SIN", 300), ("KUL", 100), ("HKG", 200))
    }
    monkeypatch.setattr(search_service, "fetch_flight", _fake_fetch(responses))

    results = run_batch_search("2026-12-01", targets=["BKK"], max_results=2)

    assert [r["from"] for r in results["BKK"]] == ["KUL", "HKG"]
