"""schemas/flights.py - Pydantic models for flights, cache envelopes and API responses."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Flight(BaseModel):
    """Standardized flight shape shared by the cache, the API and the batch runner."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    airline: str
    airlineCode: str
    flightNumber: str

    # "from" is a keyword, serialized under its JSON name
    from_: str = Field(alias="from")
    to: str

    departure: str = ""
    arrival: str = ""
    duration: Optional[str] = None
    stops: int = 0

    price: float = 0.0
    currency: str = "EUR"

    aircraft: Optional[str] = None
    availableSeats: Optional[int] = None
    segments: List[Dict[str, Any]] = Field(default_factory=list)

    # Display enrichment, filled by services.flight_service.enrich_flight
    airlineName: Optional[str] = None
    originName: Optional[str] = None
    destinationName: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class SelectionStats(BaseModel):
    total_found: int = 0
    direct_found: int = 0
    connecting_found: int = 0
    direct_returned: int = 0
    connecting_returned: int = 0
    returned: int = 0


class RouteCacheEntry(BaseModel):
    """flight-{FROM}-{TO}-{DATE}.json"""

    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from")
    to: str
    date: str
    data: List[Dict[str, Any]] = Field(default_factory=list)
    dictionaries: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int = 0
    cached_at: Optional[str] = None
    expires_at: Optional[str] = None
    source: str = "amadeus-api"


class AggregateCacheEntry(SelectionStats):
    """flight-cache-{TO}-{DATE}.json"""

    destination: str
    date: str
    flights: List[Dict[str, Any]] = Field(default_factory=list)
    timestamp: int = 0
    cached_at: Optional[str] = None
    expires_at: Optional[str] = None
    source: str = "cache"
    format_version: str = "1.0"


class FlightsResponse(BaseModel):
    success: bool
    flights: List[Dict[str, Any]] = Field(default_factory=list)
    source: str
    count: int = 0
    message: Optional[str] = None
    error: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)


class RefreshResponse(BaseModel):
    success: bool
    message: str
    count: int = 0
    destination: Optional[str] = None
    date: Optional[str] = None
    error: Optional[str] = None


class CacheFileStatus(BaseModel):
    file: str
    age_hours: float
    valid: bool
    expires_in_hours: float
    flight_count: Optional[int] = None


class CacheStatusResponse(BaseModel):
    success: bool
    cache_files: List[CacheFileStatus] = Field(default_factory=list)
    total_files: int = 0
    cache_settings: Dict[str, Any] = Field(default_factory=dict)


class FlightMemoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    origin: str
    destination: str
    travel_date: Optional[str] = None
    price: float
    currency: str
    airline: Optional[str] = None
    departure: Optional[str] = None
    arrival: Optional[str] = None
    stops: int = 0
    source: Optional[str] = None
    saved_at: Any = None
