"""Pytest configuration and fixtures."""

import json
import os
import shutil
import sys
import tempfile
from datetime import date, timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Point every path and the database at a scratch directory before config is imported
_TMP = Path(tempfile.mkdtemp(prefix="globefare-tests-"))
os.environ["CACHE_DIR"] = str(_TMP / "cache")
os.environ["PIVOTS_DIR"] = str(_TMP / "pivots")
os.environ["RESULTS_DIR"] = str(_TMP / "results")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["AMADEUS_CLIENT_ID"] = "test-client-id"
os.environ["AMADEUS_CLIENT_SECRET"] = "test-client-secret"
os.environ["API_MODE"] = "amadeus"

import config  # noqa: E402
from db import Base, SessionLocal, engine  # noqa: E402
from models import AdminConfig, FlightMemory  # noqa: E402
import providers.amadeus as amadeus  # noqa: E402

Base.metadata.create_all(bind=engine)


def _empty_dir(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


@pytest.fixture(autouse=True)
def clean_state():
    for d in (config.CACHE_DIR, config.PIVOTS_DIR, config.RESULTS_DIR):
        _empty_dir(Path(d))

    db = SessionLocal()
    try:
        db.query(FlightMemory).delete()
        db.query(AdminConfig).delete()
        db.commit()
    finally:
        db.close()

    amadeus.invalidate_token()
    yield


@pytest.fixture
def future_date() -> str:
    return (date.today() + timedelta(days=30)).isoformat()


@pytest.fixture
def write_pivots():
    def _write(destination, codes):
        path = Path(config.PIVOTS_DIR) / f"pivots-{destination}.json"
        path.write_text(json.dumps(codes), encoding="utf-8")
        return path

    return _write


def make_offer(origin, destination, price, carrier="TG", stops=0, travel_date="2026-12-01", offer_id="1"):
    """Minimal Amadeus flight-offer with stops + 1 segments."""
    hubs = ["DOH", "IST", "DXB"]
    points = [origin] + hubs[:stops] + [destination]
    segments = []
    for i in range(len(points) - 1):
        segments.append({
            "departure": {"iataCode": points[i], "at": f"{travel_date}T{8 + i * 4:02d}:00:00"},
            "arrival": {"iataCode": points[i + 1], "at": f"{travel_date}T{11 + i * 4:02d}:00:00"},
            "carrierCode": carrier,
            "number": str(100 + i),
            "aircraft": {"code": "789"},
        })
    return {
        "id": offer_id,
        "numberOfBookableSeats": 7,
        "itineraries": [{"duration": f"PT{3 + stops * 4}H", "segments": segments}],
        "price": {"currency": "EUR", "total": f"{price:.2f}"},
    }


def make_response(offers, carriers=None, source="amadeus-api"):
    return {
        "data": offers,
        "dictionaries": {"carriers": carriers or {"TG": "THAI AIRWAYS INTERNATIONAL"}},
        "__source": source,
        "__timestamp": 1767225600000,
    }


@pytest.fixture
def offer():
    return make_offer


@pytest.fixture
def provider_response():
    return make_response
