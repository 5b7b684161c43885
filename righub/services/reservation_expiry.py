"""
Reservation expiry sweep.

Finds RESERVED listings whose reserved_until has passed and puts them back
on the market. Each row is released with a conditional update, so running
the sweep from several workers at once releases every listing exactly once.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from righub.core.clock import utcnow
from righub.services.lifecycle import ListingLifecycle

logger = logging.getLogger("righub.reservations")


def expire_reservations(db: Session, now: Optional[datetime] = None) -> Dict:
    now = now or utcnow()
    lifecycle = ListingLifecycle(db, clock=lambda: now)
    expired_listing_ids: List[int] = []
    errors: List[str] = []

    try:
        candidates = lifecycle.listings.expired_reservation_ids(now)
    except SQLAlchemyError as e:
        db.rollback()
        message = f"Error checking expired reservations: {e}"
        logger.exception(message)
        return {"expired_count": 0, "expired_listing_ids": [], "errors": [message]}

    for listing_id in candidates:
        try:
            claimed = lifecycle.release_expired_reservation(listing_id, now)
        except SQLAlchemyError as e:
            db.rollback()
            message = f"Failed to expire reservation for listing {listing_id}: {e}"
            errors.append(message)
            logger.error(message)
            continue

        if claimed:
            expired_listing_ids.append(listing_id)
            logger.info("reservations: listing %s released at %s", listing_id, now.isoformat())
        else:
            logger.debug("reservations: listing %s already handled elsewhere", listing_id)

    return {
        "expired_count": len(expired_listing_ids),
        "expired_listing_ids": expired_listing_ids,
        "errors": errors,
    }


def _sweep_once(session_factory: Callable[[], Session]) -> Dict:
    db = session_factory()
    try:
        return expire_reservations(db)
    finally:
        db.close()


async def run_periodic_sweep(session_factory: Callable[[], Session], interval_seconds: int) -> None:
    """Background loop started from main.py when an interval is configured."""
    logger.info("reservations: sweeping every %ss", interval_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            result = await asyncio.to_thread(_sweep_once, session_factory)
        except Exception:
            logger.exception("reservations: sweep failed; retrying in %ss", interval_seconds)
            continue
        if result["expired_count"] or result["errors"]:
            logger.info(
                "reservations: released %s, errors %s",
                result["expired_count"], len(result["errors"]),
            )
