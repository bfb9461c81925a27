"""
airports.py

IATA airport code -> city / country lookup.

Used to label flights for display and in the batch runner's console lines.
Unknown codes fall back to the code itself so a missing entry never breaks
a response.
"""

from typing import Dict, Optional

AIRPORTS: Dict[str, Dict[str, str]] = {
    # Destinations
    "DPS": {"name": "Ngurah Rai International", "city": "Bali", "country": "Indonesia"},
    "BKK": {"name": "Suvarnabhumi", "city": "Bangkok", "country": "Thailand"},
    "DMK": {"name": "Don Mueang International", "city": "Bangkok", "country": "Thailand"},
    # Regional pivots
    "SIN": {"name": "Changi", "city": "Singapore", "country": "Singapore"},
    "KUL": {"name": "Kuala Lumpur International", "city": "Kuala Lumpur", "country": "Malaysia"},
    "CGK": {"name": "Soekarno-Hatta International", "city": "Jakarta", "country": "Indonesia"},
    "SUB": {"name": "Juanda International", "city": "Surabaya", "country": "Indonesia"},
    "HKG": {"name": "Hong Kong International", "city": "Hong Kong", "country": "Hong Kong"},
    "MNL": {"name": "Ninoy Aquino International", "city": "Manila", "country": "Philippines"},
    "SGN": {"name": "Tan Son Nhat International", "city": "Ho Chi Minh City", "country": "Vietnam"},
    "HAN": {"name": "Noi Bai International", "city": "Hanoi", "country": "Vietnam"},
    "HKT": {"name": "Phuket International", "city": "Phuket", "country": "Thailand"},
    "CNX": {"name": "Chiang Mai International", "city": "Chiang Mai", "country": "Thailand"},
    "TPE": {"name": "Taoyuan International", "city": "Taipei", "country": "Taiwan"},
    "ICN": {"name": "Incheon International", "city": "Seoul", "country": "South Korea"},
    "NRT": {"name": "Narita International", "city": "Tokyo", "country": "Japan"},
    "HND": {"name": "Haneda", "city": "Tokyo", "country": "Japan"},
    "PVG": {"name": "Pudong International", "city": "Shanghai", "country": "China"},
    "PEK": {"name": "Capital International", "city": "Beijing", "country": "China"},
    "DEL": {"name": "Indira Gandhi International", "city": "Delhi", "country": "India"},
    "BOM": {"name": "Chhatrapati Shivaji Maharaj International", "city": "Mumbai", "country": "India"},
    "SYD": {"name": "Kingsford Smith", "city": "Sydney", "country": "Australia"},
    "MEL": {"name": "Tullamarine", "city": "Melbourne", "country": "Australia"},
    "PER": {"name": "Perth", "city": "Perth", "country": "Australia"},
    # Long-haul hubs
    "IST": {"name": "Istanbul", "city": "Istanbul", "country": "Turkey"},
    "SAW": {"name": "Sabiha Gokcen International", "city": "Istanbul", "country": "Turkey"},
    "DXB": {"name": "Dubai International", "city": "Dubai", "country": "UAE"},
    "AUH": {"name": "Zayed International", "city": "Abu Dhabi", "country": "UAE"},
    "DOH": {"name": "Hamad International", "city": "Doha", "country": "Qatar"},
    "LHR": {"name": "Heathrow", "city": "London", "country": "UK"},
    "CDG": {"name": "Charles de Gaulle", "city": "Paris", "country": "France"},
    "FRA": {"name": "Frankfurt", "city": "Frankfurt", "country": "Germany"},
    "AMS": {"name": "Schiphol", "city": "Amsterdam", "country": "Netherlands"},
    "HEL": {"name": "Helsinki-Vantaa", "city": "Helsinki", "country": "Finland"},
    "LAX": {"name": "Los Angeles International", "city": "Los Angeles", "country": "USA"},
    "JFK": {"name": "John F. Kennedy International", "city": "New York", "country": "USA"},
}


def resolve_location(code: Optional[str]) -> Dict[str, str]:
    """Return {"city", "country"} for an airport code, falling back to the code."""
    if not code:
        return {"city": "Unknown", "country": ""}
    code = code.upper().strip()
    entry = AIRPORTS.get(code)
    if not entry:
        return {"city": code, "country": ""}
    return {"city": entry.get("city") or code, "country": entry.get("country") or ""}


def get_airport_name(code: Optional[str]) -> str:
    """
    Human readable label for an airport code.
    "City, Country" when both are known, just the city when only that is,
    otherwise the code unchanged.
    """
    if not code:
        return ""
    if code.upper().strip() not in AIRPORTS:
        return code
    loc = resolve_location(code)
    if loc["country"]:
        return f"{loc['city']}, {loc['country']}"
    return loc["city"]
