# =======================================
# SECTION: IMPORTS AND BASE
# =======================================

from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Numeric,
)

from db import Base


# =======================================
# SECTION: ADMIN CONFIG MODEL
# Runtime overrides for search caps (MAX_PIVOTS, PIVOT_CONCURRENCY, ...)
# =======================================

class AdminConfig(Base):
    __tablename__ = "admin_config"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(String(255), nullable=True)
    description = Column(String(255), nullable=True)


# =======================================
# SECTION: FLIGHT MEMORY
# Rolling log of every flight the backend fetched, newest last.
# Trimmed to FLIGHT_MEMORY_LIMIT rows by services/memory_service.py
# =======================================

class FlightMemory(Base):
    __tablename__ = "flight_memory"

    id = Column(Integer, primary_key=True, index=True)

    origin = Column(String(3), index=True, nullable=False)
    destination = Column(String(3), index=True, nullable=False)
    travel_date = Column(String(10), nullable=True)

    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="EUR")
    airline = Column(String(3), nullable=True)
    departure = Column(String(32), nullable=True)
    arrival = Column(String(32), nullable=True)
    stops = Column(Integer, nullable=False, default=0)

    source = Column(String(50), nullable=True)  # amadeus-api | route-cache | ...

    saved_at = Column(DateTime, default=datetime.utcnow, index=True)
