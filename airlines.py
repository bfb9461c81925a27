# airlines.py

# =====================================================================
# SECTION START: AIRLINE NAMES
# IATA carrier code -> human-readable airline name, read once from
# data/airlines.json ([{"id": "TG", "name": "Thai Airways", ...}]).
# Amadeus responses also carry a "dictionaries.carriers" map which takes
# precedence when present (services/flight_service.py).
# =====================================================================

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)

AIRLINES_FILE = Path(__file__).resolve().parent / "data" / "airlines.json"


@lru_cache(maxsize=1)
def load_airline_names() -> Dict[str, str]:
    try:
        with AIRLINES_FILE.open("r", encoding="utf-8") as fh:
            rows = json.load(fh)
    except (OSError, ValueError) as e:
        logger.warning(f"[airlines] could not load {AIRLINES_FILE.name}: {e}")
        return {}

    names: Dict[str, str] = {}
    for row in rows if isinstance(rows, list) else []:
        if not isinstance(row, dict):
            continue
        code = str(row.get("id") or row.get("iata") or "").upper().strip()
        if code and row.get("name"):
            names[code] = row["name"]
    return names

# =====================================================================
# SECTION END: AIRLINE NAMES
# =====================================================================


def get_airline_name(code: str) -> str:
    """Airline name for a carrier code, or the code itself when unknown."""
    if not code:
        return ""
    return load_airline_names().get(code.upper().strip(), code)
