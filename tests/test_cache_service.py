import json
import os
import time

import config
from services import cache_service
from services.cache_service import (
    aggregate_cache_path,
    cache_status,
    clean_old_cache_files,
    clear_cache,
    load_aggregate_cache,
    load_route_cache,
    no_data_path,
    read_aggregate_cache,
    route_cache_path,
    save_aggregate_cache,
    save_no_data_info,
    save_route_cache,
    write_json_atomic,
)


def _flights(n, destination="BKK"):
    return [
        {"id": f"f{i}", "from": "SIN", "to": destination, "price": 100.0 + i, "stops": 0}
        for i in range(n)
    ]


def _age_entry(path, hours):
    data = json.loads(path.read_text(encoding="utf-8"))
    data["timestamp"] = cache_service.now_ms() - int(hours * 3600 * 1000)
    path.write_text(json.dumps(data), encoding="utf-8")


def test_route_cache_round_trip_and_expiry():
    save_route_cache("sin", "bkk", "2026-12-01", {"data": [{"id": "1"}], "dictionaries": {"carriers": {}}})

    path = route_cache_path("SIN", "BKK", "2026-12-01")
    assert path.name == "flight-SIN-BKK-2026-12-01.json"

    cached = load_route_cache("SIN", "BKK", "2026-12-01")
    assert cached["from"] == "SIN"
    assert cached["data"] == [{"id": "1"}]
    assert cached["source"] == "amadeus-api"

    _age_entry(path, config.ROUTE_CACHE_TTL_HOURS + 1)
    assert load_route_cache("SIN", "BKK", "2026-12-01") is None


def test_missing_or_corrupt_route_cache_is_a_miss():
    assert load_route_cache("KUL", "BKK", "2026-12-01") is None

    path = route_cache_path("KUL", "BKK", "2026-12-01")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("{not json", encoding="utf-8")
    assert load_route_cache("KUL", "BKK", "2026-12-01") is None


def test_large_aggregate_entry_is_locked_for_long_ttl():
    save_aggregate_cache("BKK", "2026-12-01", _flights(config.CACHE_LOCK_MIN_FLIGHTS))
    _age_entry(aggregate_cache_path("BKK", "2026-12-01"), config.CACHE_SHORT_TTL_HOURS + 1)

    entry = load_aggregate_cache("BKK", "2026-12-01")
    assert entry is not None
    assert len(entry["flights"]) == config.CACHE_LOCK_MIN_FLIGHTS
    assert entry["format_version"] == config.CACHE_FORMAT_VERSION


def test_small_aggregate_entry_expires_after_short_ttl():
    save_aggregate_cache("BKK", "2026-12-01", _flights(3))
    _age_entry(aggregate_cache_path("BKK", "2026-12-01"), config.CACHE_SHORT_TTL_HOURS + 1)

    assert load_aggregate_cache("BKK", "2026-12-01") is None
    # Still readable for the stale fallback
    stale = read_aggregate_cache("BKK", "2026-12-01")
    assert len(stale["flights"]) == 3


def test_aggregate_entry_past_lock_ttl_expires():
    save_aggregate_cache("DPS", "2026-12-01", _flights(20, "DPS"))
    _age_entry(aggregate_cache_path("DPS", "2026-12-01"), config.CACHE_LOCK_HOURS + 0.5)

    assert load_aggregate_cache("DPS", "2026-12-01") is None


def test_save_no_data_info_writes_marker():
    path = save_no_data_info("sin", "bkk", "2026-12-01")
    assert path == no_data_path("SIN", "BKK", "2026-12-01")
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["from"] == "SIN"
    assert data["to"] == "BKK"


def test_write_json_atomic_leaves_no_temp_files(tmp_path):
    target = tmp_path / "out" / "payload.json"
    write_json_atomic(target, [{"a": 1}])
    write_json_atomic(target, [{"a": 2}])

    assert json.loads(target.read_text(encoding="utf-8")) == [{"a": 2}]
    assert [p.name for p in target.parent.iterdir()] == ["payload.json"]


def test_clean_old_cache_files_uses_mtime():
    old = save_route_cache("SIN", "BKK", "2026-12-01", {"data": []})
    fresh = save_aggregate_cache("BKK", "2026-12-01", _flights(2))
    marker = save_no_data_info("KUL", "BKK", "2026-12-01")

    past = time.time() - (config.CACHE_DELETE_HOURS + 1) * 3600
    os.utime(old, (past, past))

    assert clean_old_cache_files() == 1
    assert not old.exists()
    assert fresh.exists()
    assert marker.exists()


def test_clear_cache_removes_only_aggregate_files():
    route = save_route_cache("SIN", "BKK", "2026-12-01", {"data": []})
    save_aggregate_cache("BKK", "2026-12-01", _flights(2))
    save_aggregate_cache("DPS", "2026-12-01", _flights(2, "DPS"))

    assert clear_cache() == 2
    assert route.exists()
    assert read_aggregate_cache("BKK", "2026-12-01") is None


def test_cache_status_reports_aggregate_files():
    save_aggregate_cache("BKK", "2026-12-01", _flights(16))
    save_route_cache("SIN", "BKK", "2026-12-01", {"data": []})

    status = cache_status()
    assert status.success is True
    assert status.total_files == 1
    entry = status.cache_files[0]
    assert entry.file == "flight-cache-BKK-2026-12-01.json"
    assert entry.valid is True
    assert entry.flight_count == 16
    assert status.cache_settings["lock_min_flights"] == config.CACHE_LOCK_MIN_FLIGHTS
