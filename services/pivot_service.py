"""services/pivot_service.py - Pivot airport lists (alternate origins per destination)."""

import json
import logging
from pathlib import Path
from typing import List, Optional

import config

logger = logging.getLogger(__name__)


def pivots_path(destination: str) -> Path:
    return Path(config.PIVOTS_DIR) / f"pivots-{destination.upper()}.json"


def load_pivots(destination: str) -> Optional[List[str]]:
    """
    IATA codes of the pivot airports for a destination, in file order.

    Accepts both shapes found in the wild:
      [{"iata": "SIN", ...}, ...]   and   ["SIN", "KUL", ...]

    Returns None when there is no pivot file (callers map that to
    "no-pivots"), and an empty list when the file exists but holds no codes.
    Raises ValueError when the file is not valid JSON or not a list.
    """
    path = pivots_path(destination)
    if not path.exists():
        return None

    with path.open("r", encoding="utf-8") as fh:
        raw = json.load(fh)

    if not isinstance(raw, list):
        raise ValueError(f"Pivot file {path.name} must contain a JSON list")

    codes: List[str] = []
    for item in raw:
        code = item.get("iata") if isinstance(item, dict) else item
        if not isinstance(code, str):
            continue
        code = code.strip().upper()
        if code and code != destination.upper() and code not in codes:
            codes.append(code)

    logger.info(f"[pivots] destination={destination.upper()} count={len(codes)}")
    return codes


def available_destinations() -> List[str]:
    d = Path(config.PIVOTS_DIR)
    if not d.exists():
        return []
    return sorted(
        p.stem[len("pivots-"):].upper()
        for p in d.glob("pivots-*.json")
        if p.is_file()
    )
