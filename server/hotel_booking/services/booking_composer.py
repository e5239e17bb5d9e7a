"""Booking composer: turns holds into durable bookings and manages their lifecycle."""

import secrets
import string
from collections.abc import Mapping, Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..core.clock import Clock
from ..core.config import Settings
from ..core.exceptions import (
    CapacityExceededError,
    CouponInvalidError,
    HoldExpiredError,
    HoldNotFoundError,
    InvalidDateRangeError,
    InvalidStatusTransitionError,
    SlotUnavailableError,
    ValidationError,
)
from ..core.observability import get_logger, metrics_collector
from ..core.transactions import UnitOfWork
from ..models.booking import Booking, BookingRoomType, BookingStatus
from ..models.hold import HoldStatus, RoomHold
from ..schemas.booking import GuestDetails
from ..schemas.pricing import BookingQuote, RoomSelection
from .booking_store import booking_event_payload, get_booking, load_booking, record_audit
from .cancellation import resolve_policy_id
from .hold_manager import validate_stay_dates
from .inventory_ledger import InventoryLedger, keys_for
from .notifications import (
    BOOKING_CONFIRMED,
    BOOKING_CREATED,
    BOOKING_RESCHEDULED,
    NotificationDispatcher,
)
from .pricing import PricingEngine, to_money

logger = get_logger(__name__)

MUTABLE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


def _line_amounts(quote: BookingQuote) -> list[tuple[int, int, Decimal, Decimal]]:
    """(room_type_id, quantity, average nightly unit price, line subtotal) per quoted room."""
    lines = []
    for room in quote.rooms:
        unrounded = sum((night.amount for night in room.nights), Decimal("0"))
        unit_price = to_money(unrounded / (room.quantity * room.night_count))
        lines.append((room.room_type_id, room.quantity, unit_price, room.subtotal))
    return lines


class BookingComposer:
    """Builds bookings from holds and moves them through their statuses."""

    def __init__(
        self,
        db: AsyncSession,
        ledger: InventoryLedger,
        pricing: PricingEngine,
        clock: Clock,
        notifier: NotificationDispatcher,
        settings: Settings,
    ):
        self.db = db
        self.ledger = ledger
        self.pricing = pricing
        self.clock = clock
        self.notifier = notifier
        self.settings = settings

    def _generate_booking_code(self, length: int = 8) -> str:
        """Generate a random booking confirmation code."""
        alphabet = string.ascii_uppercase + string.digits
        return self.settings.booking_code_prefix + ''.join(secrets.choice(alphabet) for _ in range(length))

    async def _unique_booking_code(self) -> str:
        booking_code = self._generate_booking_code()
        while await self.get_booking_by_code(booking_code):
            booking_code = self._generate_booking_code()
        return booking_code

    async def _load_hold(self, token: str, for_update: bool = False) -> RoomHold | None:
        stmt = select(RoomHold).where(RoomHold.token == token).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking(self, booking_id: UUID | str) -> Booking:
        """
        Get a booking with its lines loaded.

        Raises:
            BookingNotFoundError: If booking not found
        """
        return await get_booking(self.db, booking_id)

    async def get_booking_by_code(self, code: str) -> Booking | None:
        """Get booking by confirmation code."""
        result = await self.db.execute(select(Booking).where(Booking.code == code))
        return result.scalar_one_or_none()

    async def create_booking(
        self,
        hold_tokens: Sequence[str],
        guest: GuestDetails,
        coupon_code: str | None = None,
        principal_id: str | None = None,
        occupancy: Mapping[int, int] | None = None,
    ) -> Booking:
        """
        Convert active holds into one pending booking.

        Holds are validated first, then the stay is re-priced at current
        rates, and only then does the write transaction open. Inside it the
        held units become booked units, the holds are marked consumed, and
        the booking, its lines and an audit entry are written together.

        Raises:
            HoldNotFoundError: If a token was never issued
            HoldExpiredError: If a hold is expired, consumed or released
            InvalidDateRangeError: If the holds cover different stays or the stay has started
            CouponInvalidError: If the coupon cannot be applied
            TransactionAbortedError: If lock contention outlasted the retries
        """
        tokens = list(dict.fromkeys(hold_tokens))
        if not tokens:
            raise ValidationError(detail="at least one hold token is required")

        # 1. Holds must still be active
        now = self.clock.now()
        selections: list[tuple[str, int, int]] = []
        stays = set()
        for token in tokens:
            hold = await self._load_hold(token)
            if hold is None:
                raise HoldNotFoundError(token)
            if not hold.is_active(now):
                status = hold.effective_status(now)
                logger.warning(
                    "Booking creation failed - hold not active",
                    hold_token=token,
                    hold_status=status.value,
                )
                raise HoldExpiredError(
                    token,
                    expired_at=hold.expires_at if status == HoldStatus.EXPIRED else None,
                    status=status.value,
                )
            selections.append((token, hold.room_type_id, hold.quantity))
            stays.add((hold.check_in, hold.check_out))

        if len(stays) != 1:
            raise InvalidDateRangeError("all holds in one booking must cover the same stay")
        check_in, check_out = stays.pop()
        nights = validate_stay_dates(check_in, check_out, self.clock.today(), self.settings)

        # 2. Authoritative price
        quote = await self.pricing.quote_booking(
            [RoomSelection(room_type_id=room_type_id, quantity=quantity) for _, room_type_id, quantity in selections],
            check_in,
            check_out,
            coupon_code=coupon_code,
        )
        policy_id = await resolve_policy_id(self.db, [room_type_id for _, room_type_id, _ in selections])
        lines = _line_amounts(quote)

        keys = set()
        for _, room_type_id, _ in selections:
            keys |= keys_for(room_type_id, nights)

        # 3. One transaction for ledger, holds and booking
        async def work(uow: UnitOfWork) -> UUID:
            locked = await self.ledger.lock(uow, keys)
            now = self.clock.now()

            booking = Booking(
                code=await self._unique_booking_code(),
                check_in=check_in,
                check_out=check_out,
                status=BookingStatus.PENDING,
                principal_id=principal_id,
                guest_name=guest.name,
                guest_email=guest.email,
                guest_phone=guest.phone,
                adults=guest.adults,
                children=guest.children,
                special_requests=guest.special_requests,
                currency=quote.currency,
                coupon_code=quote.coupon_code,
                subtotal=quote.subtotal,
                discount_amount=quote.discount,
                tax_amount=quote.tax,
                total_amount=quote.total,
                tax_rate=quote.tax_rate,
                tax_inclusive=quote.tax_inclusive,
                cancellation_policy_id=policy_id,
                created_at=now,
                lines=[
                    BookingRoomType(
                        room_type_id=room_type_id,
                        quantity=quantity,
                        unit_price=unit_price,
                        subtotal=subtotal,
                        occupancy=(occupancy or {}).get(room_type_id),
                    )
                    for room_type_id, quantity, unit_price, subtotal in lines
                ],
            )
            self.db.add(booking)
            await self.db.flush()

            for token, room_type_id, quantity in selections:
                hold = await self._load_hold(token, for_update=True)
                if hold is None or not hold.is_active(now):
                    status = hold.effective_status(now) if hold else HoldStatus.EXPIRED
                    raise HoldExpiredError(token, status=status.value)

                for night in nights:
                    locked.convert_held_to_booked(room_type_id, night, quantity)

                result = await self.db.execute(
                    update(RoomHold)
                    .where(
                        RoomHold.id == hold.id,
                        RoomHold.status == HoldStatus.ACTIVE,
                        RoomHold.expires_at > now,
                    )
                    .values(status=HoldStatus.CONSUMED, booking_id=booking.id, closed_at=now)
                    .execution_options(synchronize_session="fetch")
                )
                if result.rowcount != 1:
                    raise StaleDataError(f"hold {token} changed while booking")

            record_audit(
                self.db,
                booking.id,
                "created",
                now,
                actor=principal_id,
                details={
                    "hold_tokens": [token for token, _, _ in selections],
                    "total_amount": str(quote.total),
                    "coupon_code": quote.coupon_code,
                },
            )
            return booking.id

        booking_id = await self.ledger.transaction("booking.create", work)
        booking = await self.get_booking(booking_id)

        metrics_collector.record_booking_created()
        logger.info(
            "Booking created successfully",
            booking_id=str(booking.id),
            booking_code=booking.code,
            hold_tokens=tokens,
            total_amount=str(booking.total_amount),
            principal_id=principal_id,
        )
        self.notifier.dispatch(BOOKING_CREATED, booking_event_payload(booking))
        return booking

    async def reschedule_booking(
        self,
        booking_id: UUID | str,
        check_in,
        check_out,
        actor: str | None = None,
    ) -> Booking:
        """
        Move a booking to new dates.

        Old and new nights are locked together. The booking's own units are
        released first, so only other guests' occupancy limits the move. Lines
        are re-priced at current rates and the stored coupon is re-applied if
        it is still valid.

        Raises:
            BookingNotFoundError: If booking not found
            InvalidStatusTransitionError: If the booking is cancelled or complete
            InvalidDateRangeError: If the new stay is empty, in the past or too far ahead
            SlotUnavailableError: If any new night lacks capacity
        """
        booking = await self.get_booking(booking_id)
        booking_uuid = booking.id
        if booking.status not in MUTABLE_STATUSES:
            raise InvalidStatusTransitionError(str(booking_uuid), booking.status, "rescheduled")

        new_nights = validate_stay_dates(check_in, check_out, self.clock.today(), self.settings)
        if (booking.check_in, booking.check_out) == (check_in, check_out):
            return booking

        old_check_in, old_check_out = booking.check_in, booking.check_out
        old_nights = booking.nights()
        line_ids = [(line.id, line.room_type_id, line.quantity) for line in booking.lines]
        coupon_code = booking.coupon_code

        coupon = None
        coupon_dropped = None
        if coupon_code:
            try:
                coupon = await self.pricing.resolve_coupon(coupon_code)
            except CouponInvalidError as e:
                coupon_dropped = e.reason
                logger.warning(
                    "Coupon no longer valid - rescheduled booking re-priced without it",
                    booking_id=str(booking_uuid),
                    coupon_code=coupon_code,
                    reason=e.reason,
                )

        quote = await self.pricing.quote_booking(
            [RoomSelection(room_type_id=room_type_id, quantity=quantity) for _, room_type_id, quantity in line_ids],
            check_in,
            check_out,
            coupon=coupon,
        )
        priced_lines = _line_amounts(quote)

        keys = set()
        for _, room_type_id, _ in line_ids:
            keys |= keys_for(room_type_id, old_nights) | keys_for(room_type_id, new_nights)

        async def work(uow: UnitOfWork) -> None:
            locked = await self.ledger.lock(uow, keys)
            now = self.clock.now()

            booking = await load_booking(self.db, booking_uuid, for_update=True)
            if booking.status not in MUTABLE_STATUSES:
                raise InvalidStatusTransitionError(str(booking_uuid), booking.status, "rescheduled")
            if (booking.check_in, booking.check_out) != (old_check_in, old_check_out):
                raise StaleDataError(f"booking {booking_uuid} was rescheduled concurrently")

            for _, room_type_id, quantity in line_ids:
                for night in old_nights:
                    locked.release_booked(room_type_id, night, quantity)

            for _, room_type_id, quantity in line_ids:
                for night in new_nights:
                    try:
                        locked.reserve_booked(room_type_id, night, quantity)
                    except CapacityExceededError as e:
                        raise SlotUnavailableError(
                            room_type_id,
                            check_in,
                            check_out,
                            quantity,
                            unavailable_date=night,
                            available=e.available,
                        ) from e

            lines_by_id = {line.id: line for line in booking.lines}
            for (line_id, _, _), (_, _, unit_price, subtotal) in zip(line_ids, priced_lines):
                lines_by_id[line_id].unit_price = unit_price
                lines_by_id[line_id].subtotal = subtotal

            booking.check_in = check_in
            booking.check_out = check_out
            booking.coupon_code = quote.coupon_code
            booking.subtotal = quote.subtotal
            booking.discount_amount = quote.discount
            booking.tax_amount = quote.tax
            booking.total_amount = quote.total
            booking.tax_rate = quote.tax_rate
            booking.tax_inclusive = quote.tax_inclusive

            details = {
                "from": [old_check_in.isoformat(), old_check_out.isoformat()],
                "to": [check_in.isoformat(), check_out.isoformat()],
                "total_amount": str(quote.total),
            }
            if coupon_dropped:
                details["coupon_dropped"] = {"code": coupon_code, "reason": coupon_dropped}
            record_audit(self.db, booking_uuid, "rescheduled", now, actor=actor, details=details)

        await self.ledger.transaction("booking.reschedule", work)
        booking = await self.get_booking(booking_uuid)

        metrics_collector.record_booking_rescheduled()
        logger.info(
            "Booking rescheduled",
            booking_id=str(booking_uuid),
            booking_code=booking.code,
            old_check_in=old_check_in.isoformat(),
            new_check_in=check_in.isoformat(),
            new_check_out=check_out.isoformat(),
        )
        self.notifier.dispatch(BOOKING_RESCHEDULED, booking_event_payload(booking))
        return booking

    async def confirm_booking(
        self,
        booking_id: UUID | str,
        payment_reference: str | None = None,
        paid_amount: Decimal | None = None,
        actor: str | None = None,
    ) -> Booking:
        """
        Record payment and move a pending booking to confirmed.

        Confirming an already confirmed booking returns it unchanged.

        Raises:
            BookingNotFoundError: If booking not found
            InvalidStatusTransitionError: If the booking is cancelled or complete
        """
        booking = await self.get_booking(booking_id)
        booking_uuid = booking.id
        if booking.status == BookingStatus.CONFIRMED:
            logger.info("Booking already confirmed - returning existing booking", booking_id=str(booking_uuid))
            return booking
        if booking.status != BookingStatus.PENDING:
            raise InvalidStatusTransitionError(str(booking_uuid), booking.status, BookingStatus.CONFIRMED.value)

        amount = to_money(paid_amount) if paid_amount is not None else booking.total_amount

        async def work(uow: UnitOfWork) -> None:
            now = self.clock.now()
            result = await self.db.execute(
                update(Booking)
                .where(Booking.id == booking_uuid, Booking.status == BookingStatus.PENDING)
                .values(
                    status=BookingStatus.CONFIRMED,
                    payment_reference=payment_reference,
                    paid_amount=amount,
                    confirmed_at=now,
                )
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount != 1:
                raise StaleDataError(f"booking {booking_uuid} changed while confirming")
            record_audit(
                self.db,
                booking_uuid,
                "confirmed",
                now,
                actor=actor,
                details={"payment_reference": payment_reference, "paid_amount": str(amount)},
            )

        await self.ledger.transaction("booking.confirm", work)
        booking = await self.get_booking(booking_uuid)

        metrics_collector.record_booking_confirmed()
        logger.info(
            "Booking confirmed successfully",
            booking_id=str(booking_uuid),
            booking_code=booking.code,
            payment_reference=payment_reference,
        )
        self.notifier.dispatch(BOOKING_CONFIRMED, booking_event_payload(booking))
        return booking

    async def complete_booking(self, booking_id: UUID | str, actor: str | None = None) -> Booking:
        """
        Close out a confirmed booking once the guest has checked out.

        Raises:
            BookingNotFoundError: If booking not found
            InvalidStatusTransitionError: If the booking is not confirmed or check-out has not arrived
        """
        booking = await self.get_booking(booking_id)
        booking_uuid = booking.id
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidStatusTransitionError(str(booking_uuid), booking.status, BookingStatus.COMPLETE.value)

        today = self.clock.today()
        if today < booking.check_out:
            raise InvalidStatusTransitionError(
                str(booking_uuid),
                booking.status,
                BookingStatus.COMPLETE.value,
                detail=f"Booking {booking_uuid} cannot be completed before check-out on {booking.check_out.isoformat()}",
            )

        async def work(uow: UnitOfWork) -> None:
            now = self.clock.now()
            result = await self.db.execute(
                update(Booking)
                .where(Booking.id == booking_uuid, Booking.status == BookingStatus.CONFIRMED)
                .values(status=BookingStatus.COMPLETE, completed_at=now)
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount != 1:
                raise StaleDataError(f"booking {booking_uuid} changed while completing")
            record_audit(self.db, booking_uuid, "completed", now, actor=actor)

        await self.ledger.transaction("booking.complete", work)
        booking = await self.get_booking(booking_uuid)
        logger.info("Booking completed", booking_id=str(booking_uuid), booking_code=booking.code)
        return booking
