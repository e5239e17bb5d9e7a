"""Cancellation and refund engine."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..core.clock import Clock
from ..core.config import Settings
from ..core.exceptions import InvalidStatusTransitionError
from ..core.locking import LockKey, LockSetChangedError
from ..core.observability import get_logger, metrics_collector
from ..core.transactions import UnitOfWork
from ..models.booking import Booking, BookingAuditLog, BookingStatus, RefundStatus
from ..models.cancellation import CancellationPolicy
from ..models.room_type import RoomType
from ..schemas.booking import RefundQuote
from .booking_store import BookingNotFoundError, get_booking, load_booking, record_audit
from .inventory_ledger import InventoryLedger, keys_for
from .notifications import BOOKING_CANCELLED, NotificationDispatcher
from .pricing import to_money

logger = get_logger(__name__)

FALLBACK_POLICY_NAME = "Standard"


@dataclass(frozen=True)
class PolicyTier:
    days_before_check_in: int
    refund_percentage: int


@dataclass(frozen=True)
class RefundPolicy:
    """Cancellation policy detached from the session."""

    name: str
    is_refundable: bool = True
    tiers: tuple[PolicyTier, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, policy: CancellationPolicy) -> "RefundPolicy":
        return cls(
            name=policy.name,
            is_refundable=policy.is_refundable,
            tiers=tuple(
                PolicyTier(tier.days_before_check_in, tier.refund_percentage)
                for tier in policy.tiers
            ),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RefundPolicy":
        return cls(
            name=FALLBACK_POLICY_NAME,
            tiers=(PolicyTier(settings.default_refund_days_before_check_in, settings.default_refund_percentage),),
        )


@dataclass
class CancellationResult:
    booking: Booking
    refund: RefundQuote
    already_cancelled: bool = False


def select_tier(tiers: Iterable[PolicyTier], lead_days: int) -> PolicyTier | None:
    """
    Pick the tier a cancellation ``lead_days`` before check-in falls into.

    The tier with the largest threshold not exceeding the lead time wins.
    Returns None when the cancellation is later than every threshold.
    """
    eligible = [tier for tier in tiers if tier.days_before_check_in <= lead_days]
    if not eligible:
        return None
    return max(eligible, key=lambda tier: tier.days_before_check_in)


def compute_refund(base: Decimal, percentage: int) -> Decimal:
    return to_money(base * percentage / Decimal(100))


async def resolve_policy_id(db: AsyncSession, room_type_ids: Sequence[int]) -> int | None:
    """
    Policy a new booking is bound to: the first room type's own policy,
    else the hotel-wide default, else None for the configured fallback.
    """
    if room_type_ids:
        result = await db.execute(
            select(RoomType.id, RoomType.cancellation_policy_id).where(RoomType.id.in_(set(room_type_ids)))
        )
        policy_by_room_type = dict(result.all())
        for room_type_id in room_type_ids:
            if policy_by_room_type.get(room_type_id) is not None:
                return policy_by_room_type[room_type_id]

    result = await db.execute(
        select(CancellationPolicy.id)
        .where(CancellationPolicy.is_default.is_(True))
        .order_by(CancellationPolicy.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


class CancellationEngine:
    """Cancels bookings, releasing their inventory and deciding the refund."""

    def __init__(
        self,
        db: AsyncSession,
        ledger: InventoryLedger,
        clock: Clock,
        notifier: NotificationDispatcher,
        settings: Settings,
    ):
        self.db = db
        self.ledger = ledger
        self.clock = clock
        self.notifier = notifier
        self.settings = settings

    async def _load_policy(self, policy_id: int | None) -> RefundPolicy:
        if policy_id is not None:
            policy = await self.db.get(CancellationPolicy, policy_id)
            if policy is not None:
                return RefundPolicy.from_model(policy)
        return RefundPolicy.from_settings(self.settings)

    def _quote(self, booking: Booking, policy: RefundPolicy) -> RefundQuote:
        lead_days = (booking.check_in - self.clock.today()).days
        tier = select_tier(policy.tiers, lead_days) if policy.is_refundable else None
        percentage = tier.refund_percentage if tier else 0
        base = booking.paid_amount if booking.paid_amount is not None else booking.total_amount

        return RefundQuote(
            booking_id=str(booking.id),
            lead_days=lead_days,
            policy_name=policy.name,
            tier_days_before_check_in=tier.days_before_check_in if tier else None,
            refund_percentage=percentage,
            refund_base=base,
            refund_amount=compute_refund(base, percentage),
        )

    async def _stored_refund(self, booking: Booking) -> RefundQuote:
        result = await self.db.execute(
            select(BookingAuditLog.details)
            .where(BookingAuditLog.booking_id == booking.id, BookingAuditLog.action == "cancelled")
            .order_by(BookingAuditLog.id.desc())
            .limit(1)
        )
        details = result.scalar_one_or_none()
        if details and "refund" in details:
            return RefundQuote.model_validate(details["refund"])

        policy = await self._load_policy(booking.cancellation_policy_id)
        return RefundQuote(
            booking_id=str(booking.id),
            lead_days=(booking.check_in - booking.cancelled_at.date()).days if booking.cancelled_at else 0,
            policy_name=policy.name,
            refund_percentage=booking.refund_percentage or 0,
            refund_base=booking.paid_amount if booking.paid_amount is not None else booking.total_amount,
            refund_amount=booking.refund_amount or Decimal("0.00"),
        )

    async def preview_refund(self, booking_id: UUID | str) -> RefundQuote:
        """
        Refund a cancellation would produce right now. Nothing is changed.

        Raises:
            BookingNotFoundError: If booking not found
            InvalidStatusTransitionError: If the booking is complete
        """
        booking = await get_booking(self.db, booking_id)
        if booking.status == BookingStatus.CANCELLED:
            return await self._stored_refund(booking)
        if booking.status == BookingStatus.COMPLETE:
            raise InvalidStatusTransitionError(str(booking.id), booking.status, BookingStatus.CANCELLED.value)
        return self._quote(booking, await self._load_policy(booking.cancellation_policy_id))

    async def cancel(
        self,
        booking_id: UUID | str,
        reason: str | None = None,
        actor: str | None = None,
    ) -> CancellationResult:
        """
        Cancel a pending or confirmed booking.

        Every booked night goes back to the ledger and the booking is marked
        cancelled in one transaction. A late cancellation still goes through
        with a zero refund.

        Returns:
            The cancelled booking and its refund decision

        Raises:
            BookingNotFoundError: If booking not found
            InvalidStatusTransitionError: If the booking is complete
        """
        booking = await get_booking(self.db, booking_id)
        booking_uuid = booking.id

        if booking.status == BookingStatus.CANCELLED:
            logger.info("Booking already cancelled - returning stored refund", booking_id=str(booking_uuid))
            return CancellationResult(booking=booking, refund=await self._stored_refund(booking), already_cancelled=True)
        if booking.status == BookingStatus.COMPLETE:
            raise InvalidStatusTransitionError(str(booking_uuid), booking.status, BookingStatus.CANCELLED.value)

        # Nights to lock; replaced when the booking moves before the locks are granted
        lock_keys = _booking_keys(booking)

        async def work(uow: UnitOfWork) -> RefundQuote | None:
            nonlocal lock_keys
            locked = await self.ledger.lock(uow, lock_keys)
            now = self.clock.now()

            current = await load_booking(self.db, booking_uuid, for_update=True)
            if current is None:
                raise BookingNotFoundError(str(booking_uuid))
            if current.status == BookingStatus.CANCELLED:
                return None
            if current.status == BookingStatus.COMPLETE:
                raise InvalidStatusTransitionError(str(booking_uuid), current.status, BookingStatus.CANCELLED.value)

            needed = _booking_keys(current)
            if not uow.locks.covers(needed):
                lock_keys = needed
                raise LockSetChangedError(needed - uow.locks.held)

            refund = self._quote(current, await self._load_policy(current.cancellation_policy_id))
            lines = [(line.room_type_id, line.quantity) for line in current.lines]
            nights = current.nights()

            result = await self.db.execute(
                update(Booking)
                .where(
                    Booking.id == booking_uuid,
                    Booking.status.in_([BookingStatus.PENDING, BookingStatus.CONFIRMED]),
                    Booking.check_in == current.check_in,
                    Booking.check_out == current.check_out,
                )
                .values(
                    status=BookingStatus.CANCELLED,
                    cancelled_at=now,
                    cancellation_reason=reason,
                    refund_amount=refund.refund_amount,
                    refund_percentage=refund.refund_percentage,
                    refund_status=RefundStatus.PENDING if refund.refund_amount > 0 else RefundStatus.NOT_APPLICABLE,
                )
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount != 1:
                raise StaleDataError(f"booking {booking_uuid} changed while cancelling")

            for room_type_id, quantity in lines:
                for night in nights:
                    locked.release_booked(room_type_id, night, quantity)

            record_audit(
                self.db,
                booking_uuid,
                "cancelled",
                now,
                actor=actor,
                details={"reason": reason, "refund": refund.model_dump(mode="json")},
            )
            return refund

        refund = await self.ledger.transaction("booking.cancel", work)

        booking = await get_booking(self.db, booking_uuid)
        if refund is None:
            logger.info("Booking cancelled concurrently - returning stored refund", booking_id=str(booking_uuid))
            return CancellationResult(booking=booking, refund=await self._stored_refund(booking), already_cancelled=True)

        metrics_collector.record_booking_cancelled(refunded=refund.refund_amount > 0)
        logger.info(
            "Booking cancelled successfully",
            booking_id=str(booking_uuid),
            booking_code=booking.code,
            policy=refund.policy_name,
            lead_days=refund.lead_days,
            refund_percentage=refund.refund_percentage,
            refund_amount=str(refund.refund_amount),
        )
        self.notifier.dispatch(BOOKING_CANCELLED, {
            "booking_id": str(booking_uuid),
            "booking_code": booking.code,
            "guest_email": booking.guest_email,
            "refund_amount": str(refund.refund_amount),
            "currency": booking.currency,
        })
        return CancellationResult(booking=booking, refund=refund)


def _booking_keys(booking: Booking) -> set[LockKey]:
    keys = set()
    for line in booking.lines:
        keys |= keys_for(line.room_type_id, booking.nights())
    return keys
