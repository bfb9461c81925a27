"""
services/memory_service.py

Flight memory: a rolling log of every flight the backend fetched.
Kept to the most recent FLIGHT_MEMORY_LIMIT rows.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

import config
from db import SessionLocal
from models import FlightMemory

logger = logging.getLogger(__name__)


def _trim(db, limit: int) -> int:
    total = db.query(FlightMemory).count()
    excess = total - limit
    if excess <= 0:
        return 0
    oldest_ids = [
        row.id
        for row in db.query(FlightMemory.id).order_by(FlightMemory.id.asc()).limit(excess).all()
    ]
    db.query(FlightMemory).filter(FlightMemory.id.in_(oldest_ids)).delete(synchronize_session=False)
    return len(oldest_ids)


def append_to_flight_memory(
    flights: List[Dict[str, Any]],
    source: Optional[str] = None,
    travel_date: Optional[str] = None,
    limit: Optional[int] = None,
) -> int:
    """
    Store flights (standardized dicts, "from"/"to" keys) and trim old rows.
    Returns the number of rows written. A database failure is logged and
    reported as 0 so a search never fails because of the memory log.
    """
    if not flights:
        return 0
    limit = config.FLIGHT_MEMORY_LIMIT if limit is None else limit

    db = SessionLocal()
    try:
        for f in flights:
            db.add(FlightMemory(
                origin=str(f.get("from") or "")[:3].upper(),
                destination=str(f.get("to") or "")[:3].upper(),
                travel_date=travel_date or (str(f.get("departure") or "")[:10] or None),
                price=float(f.get("price") or 0),
                currency=f.get("currency") or "EUR",
                airline=f.get("airlineCode") or f.get("airline"),
                departure=f.get("departure"),
                arrival=f.get("arrival"),
                stops=int(f.get("stops") or 0),
                source=source or f.get("__source"),
            ))
        db.flush()
        trimmed = _trim(db, limit)
        db.commit()
        if trimmed:
            logger.info(f"[memory] trimmed {trimmed} old rows limit={limit}")
        return len(flights)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[memory] failed to append {len(flights)} flights: {e}")
        return 0
    finally:
        db.close()


def recent_flights(limit: int = 50) -> List[FlightMemory]:
    limit = max(1, min(int(limit), config.FLIGHT_MEMORY_LIMIT))
    db = SessionLocal()
    try:
        return (
            db.query(FlightMemory)
            .order_by(FlightMemory.id.desc())
            .limit(limit)
            .all()
        )
    finally:
        db.close()
