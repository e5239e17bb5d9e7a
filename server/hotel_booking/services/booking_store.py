"""Booking lookups and audit entries shared by the composer and the cancellation engine."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NotFoundError
from ..core.observability import get_logger
from ..models.booking import Booking, BookingAuditLog

logger = get_logger(__name__)


class BookingNotFoundError(NotFoundError):
    """Exception when a booking does not exist."""

    def __init__(self, booking_id: str):
        super().__init__(resource_type="booking", resource_id=booking_id)
        self.problem_details.update({
            "code": "BOOKING_NOT_FOUND",
            "retryable": False
        })


def parse_booking_id(booking_id: UUID | str) -> UUID:
    if isinstance(booking_id, UUID):
        return booking_id
    try:
        return UUID(str(booking_id))
    except ValueError:
        raise BookingNotFoundError(str(booking_id)) from None


async def load_booking(db: AsyncSession, booking_id: UUID, for_update: bool = False) -> Booking | None:
    stmt = select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_booking(db: AsyncSession, booking_id: UUID | str) -> Booking:
    """
    Get a booking with its lines loaded.

    Raises:
        BookingNotFoundError: If booking not found
    """
    booking = await load_booking(db, parse_booking_id(booking_id))
    if booking is None:
        logger.warning("Booking not found", booking_id=str(booking_id))
        raise BookingNotFoundError(str(booking_id))
    return booking


def record_audit(
    db: AsyncSession,
    booking_id: UUID,
    action: str,
    now: datetime,
    actor: str | None = None,
    details: dict[str, Any] | None = None,
) -> BookingAuditLog:
    entry = BookingAuditLog(
        booking_id=booking_id,
        action=action,
        actor=actor or "system",
        details=details or {},
        created_at=now,
    )
    db.add(entry)
    return entry


async def list_audit_entries(db: AsyncSession, booking_id: UUID) -> list[BookingAuditLog]:
    result = await db.execute(
        select(BookingAuditLog)
        .where(BookingAuditLog.booking_id == booking_id)
        .order_by(BookingAuditLog.id)
    )
    return list(result.scalars())


def booking_event_payload(booking: Booking) -> dict[str, Any]:
    return {
        "booking_id": str(booking.id),
        "booking_code": booking.code,
        "status": str(getattr(booking.status, "value", booking.status)),
        "check_in": booking.check_in.isoformat(),
        "check_out": booking.check_out.isoformat(),
        "total_amount": str(booking.total_amount),
        "currency": booking.currency,
        "guest_email": booking.guest_email,
    }
