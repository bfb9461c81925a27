"""
providers/factory.py

Routes flight fetches to the correct provider based on the API_MODE env var.

Currently supported values:
  amadeus  - Amadeus Self-Service flight offers (default)

Any other value fails loudly so a typo in the environment never turns into
an empty result set.
"""

from typing import Any, Dict, Optional

import config


def fetch_flight(
    origin: str,
    destination: str,
    date: str,
    adults: int = 1,
    max_results: int = 5,
    use_cache: bool = True,
    api_mode: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Canonical entry point for every provider call.

    Returns the provider's raw body: {"data": [...offers], "dictionaries": {...}}.
    All callers (pivot fan-out, batch runner, refresh) should call this.
    """
    mode = (api_mode or config.API_MODE or "").lower().strip()

    if mode == "amadeus":
        from providers.amadeus import search_flight_offers
        return search_flight_offers(
            origin,
            destination,
            date,
            adults=adults,
            max_results=max_results,
            use_cache=use_cache,
        )

    raise ValueError(f"Unsupported API_MODE: {mode}")
