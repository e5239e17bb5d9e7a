"""Hold manager: short-lived soft reservations against the inventory ledger.

There is no sweeper. A hold past ``expires_at`` is treated as released by
every reader, and its units are reclaimed by whichever ledger lock next
covers one of its nights.
"""

import secrets
from collections.abc import Sequence
from datetime import date, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..core.clock import Clock
from ..core.config import Settings
from ..core.dates import stay_nights
from ..core.exceptions import (
    CapacityExceededError,
    HoldExtensionLimitError,
    HoldNotFoundError,
    InvalidDateRangeError,
    SlotUnavailableError,
    ValidationError,
)
from ..core.observability import get_logger, metrics_collector
from ..core.transactions import UnitOfWork
from ..models.hold import HoldStatus, RoomHold
from ..schemas.pricing import RoomSelection
from .inventory_ledger import InventoryLedger, keys_for

logger = get_logger(__name__)


def validate_stay_dates(check_in: date, check_out: date, today: date, settings: Settings) -> list[date]:
    """
    Check a requested stay against the tenant-local calendar and return its nights.

    Raises:
        InvalidDateRangeError: If check_out is not after check_in, check_in is
            before today, or check_in is beyond the advance booking window
    """
    if check_out <= check_in:
        raise InvalidDateRangeError("check_out must be after check_in", check_in, check_out)
    if check_in < today:
        raise InvalidDateRangeError(
            f"check_in {check_in.isoformat()} is before today ({today.isoformat()})",
            check_in,
            check_out,
        )
    if (check_in - today).days > settings.max_advance_booking_days:
        raise InvalidDateRangeError(
            f"check_in may be at most {settings.max_advance_booking_days} days ahead",
            check_in,
            check_out,
        )
    return stay_nights(check_in, check_out)


def validate_room_count(rooms: Sequence[RoomSelection], settings: Settings) -> None:
    if not rooms:
        raise ValidationError(detail="at least one room must be selected")
    total = sum(selection.quantity for selection in rooms)
    if any(selection.quantity < 1 for selection in rooms):
        raise ValidationError(detail="room quantity must be at least 1")
    if total > settings.max_rooms_per_booking:
        raise ValidationError(
            detail=f"at most {settings.max_rooms_per_booking} rooms can be held for one stay",
            errors={"requested_rooms": total},
        )


def generate_hold_token() -> str:
    return secrets.token_urlsafe(24)


class HoldManager:
    """Creates, extends and releases room holds."""

    def __init__(self, db: AsyncSession, ledger: InventoryLedger, clock: Clock, settings: Settings):
        self.db = db
        self.ledger = ledger
        self.clock = clock
        self.settings = settings

    def _resolve_ttl(self, ttl_seconds: int | None) -> timedelta:
        if ttl_seconds is None:
            return timedelta(seconds=self.settings.hold_ttl_seconds)
        if ttl_seconds < 1 or ttl_seconds > self.settings.hold_max_ttl_seconds:
            raise ValidationError(
                detail=f"ttl_seconds must be between 1 and {self.settings.hold_max_ttl_seconds}",
                errors={"ttl_seconds": ttl_seconds},
            )
        return timedelta(seconds=ttl_seconds)

    async def _load_hold(self, token: str, for_update: bool = False) -> RoomHold | None:
        stmt = (
            select(RoomHold)
            .where(RoomHold.token == token)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_hold(
        self,
        room_type_id: int,
        check_in: date,
        check_out: date,
        quantity: int = 1,
        ttl_seconds: int | None = None,
        principal_id: str | None = None,
    ) -> RoomHold:
        """Hold ``quantity`` units of one room type for every night of the stay."""
        holds = await self.create_holds(
            [RoomSelection(room_type_id=room_type_id, quantity=quantity)],
            check_in,
            check_out,
            ttl_seconds=ttl_seconds,
            principal_id=principal_id,
        )
        return holds[0]

    async def create_holds(
        self,
        rooms: Sequence[RoomSelection],
        check_in: date,
        check_out: date,
        ttl_seconds: int | None = None,
        principal_id: str | None = None,
    ) -> list[RoomHold]:
        """
        Hold several room types for one stay, all or nothing.

        Every night of every selection is reserved inside a single
        transaction. If any night lacks capacity nothing is kept.

        Returns:
            One hold per selection, in request order

        Raises:
            InvalidDateRangeError: If the stay is empty, in the past or too far ahead
            ValidationError: If the room count or ttl is out of bounds
            RoomTypeNotFoundError: If a room type is unknown
            SlotUnavailableError: If any night cannot supply the quantity
            TransactionAbortedError: If lock contention outlasted the retries
        """
        nights = validate_stay_dates(check_in, check_out, self.clock.today(), self.settings)
        validate_room_count(rooms, self.settings)
        ttl = self._resolve_ttl(ttl_seconds)
        await self.ledger.get_room_types(selection.room_type_id for selection in rooms)

        selections = [(selection.room_type_id, selection.quantity) for selection in rooms]
        keys = set()
        for room_type_id, _ in selections:
            keys |= keys_for(room_type_id, nights)

        async def work(uow: UnitOfWork) -> list[RoomHold]:
            locked = await self.ledger.lock(uow, keys)
            now = self.clock.now()

            holds = []
            for room_type_id, quantity in selections:
                for night in nights:
                    try:
                        locked.reserve(room_type_id, night, quantity)
                    except CapacityExceededError as e:
                        raise SlotUnavailableError(
                            room_type_id,
                            check_in,
                            check_out,
                            quantity,
                            unavailable_date=night,
                            available=e.available,
                        ) from e

                holds.append(RoomHold(
                    token=generate_hold_token(),
                    room_type_id=room_type_id,
                    check_in=check_in,
                    check_out=check_out,
                    quantity=quantity,
                    principal_id=principal_id,
                    status=HoldStatus.ACTIVE,
                    extension_count=0,
                    created_at=now,
                    expires_at=now + ttl,
                ))

            self.db.add_all(holds)
            await self.db.flush()
            return holds

        try:
            holds = await self.ledger.transaction("hold.create", work)
        except SlotUnavailableError as e:
            logger.warning(
                "Hold creation failed - insufficient capacity",
                room_type_id=e.room_type_id,
                check_in=check_in.isoformat(),
                check_out=check_out.isoformat(),
                unavailable_date=e.unavailable_date.isoformat() if e.unavailable_date else None,
                principal_id=principal_id,
            )
            raise

        for hold in holds:
            metrics_collector.record_hold_created(hold.room_type_id)
            logger.info(
                "Hold created successfully",
                hold_token=hold.token,
                room_type_id=hold.room_type_id,
                check_in=check_in.isoformat(),
                check_out=check_out.isoformat(),
                quantity=hold.quantity,
                expires_at=hold.expires_at.isoformat(),
                principal_id=principal_id,
            )

        return holds

    async def get_hold(self, token: str) -> RoomHold:
        """
        Look up a hold in any status. Callers read ``effective_status(now)``.

        Raises:
            HoldNotFoundError: If no hold has this token
        """
        hold = await self._load_hold(token)
        if hold is None:
            raise HoldNotFoundError(token)
        return hold

    async def extend_hold(self, token: str, ttl_seconds: int | None = None) -> RoomHold:
        """
        Push an active hold's expiry to ``now + ttl``.

        Raises:
            HoldNotFoundError: If the hold is unknown, expired, consumed or released
            HoldExtensionLimitError: If the hold was already extended the maximum number of times
        """
        ttl = self._resolve_ttl(ttl_seconds)

        async def work(uow: UnitOfWork) -> RoomHold:
            now = self.clock.now()
            hold = await self._load_hold(token, for_update=True)
            if hold is None:
                raise HoldNotFoundError(token)
            if not hold.is_active(now):
                raise HoldNotFoundError(
                    token,
                    detail=f"Hold {token} is no longer active (status: {hold.effective_status(now).value})",
                )
            if hold.extension_count >= self.settings.hold_max_extensions:
                raise HoldExtensionLimitError(token, self.settings.hold_max_extensions)

            result = await self.db.execute(
                update(RoomHold)
                .where(
                    RoomHold.id == hold.id,
                    RoomHold.status == HoldStatus.ACTIVE,
                    RoomHold.expires_at > now,
                    RoomHold.extension_count == hold.extension_count,
                )
                .values(expires_at=now + ttl, extension_count=hold.extension_count + 1)
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount != 1:
                raise StaleDataError(f"hold {token} changed while extending")
            return hold

        hold = await self.ledger.transaction("hold.extend", work)

        metrics_collector.record_hold_extended()
        logger.info(
            "Hold extended",
            hold_token=token,
            expires_at=hold.expires_at.isoformat(),
            extension_count=hold.extension_count,
        )
        return hold

    async def release_hold(self, token: str) -> bool:
        """
        Release a hold and give its units back.

        Idempotent: a hold that is already expired, consumed or released is
        left as is and the call succeeds.

        Returns:
            True if this call released the units, False if the hold was already inactive

        Raises:
            HoldNotFoundError: If no hold was ever issued with this token
        """
        async def work(uow: UnitOfWork) -> bool:
            hold = await self._load_hold(token)
            if hold is None:
                raise HoldNotFoundError(token)
            if hold.status != HoldStatus.ACTIVE:
                return False

            room_type_id, quantity, nights = hold.room_type_id, hold.quantity, hold.nights()
            # Locking reclaims the hold itself if it has expired in the meantime
            locked = await self.ledger.lock(uow, keys_for(room_type_id, nights))

            now = self.clock.now()
            result = await self.db.execute(
                update(RoomHold)
                .where(
                    RoomHold.token == token,
                    RoomHold.status == HoldStatus.ACTIVE,
                    RoomHold.expires_at > now,
                )
                .values(status=HoldStatus.RELEASED, closed_at=now)
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount != 1:
                return False

            for night in nights:
                locked.release(room_type_id, night, quantity)
            return True

        released = await self.ledger.transaction("hold.release", work)

        if released:
            metrics_collector.record_hold_released()
            logger.info("Hold released", hold_token=token)
        else:
            logger.info("Hold release was a no-op - hold already inactive", hold_token=token)
        return released

    async def list_active_holds(self, room_type_id: int | None = None) -> list[RoomHold]:
        """Holds that currently count against capacity, soonest expiry first."""
        now = self.clock.now()
        stmt = (
            select(RoomHold)
            .where(RoomHold.status == HoldStatus.ACTIVE, RoomHold.expires_at > now)
            .order_by(RoomHold.expires_at)
        )
        if room_type_id is not None:
            stmt = stmt.where(RoomHold.room_type_id == room_type_id)

        result = await self.db.execute(stmt)
        holds = list(result.scalars())
        if room_type_id is None:
            metrics_collector.set_active_holds(len(holds))
        return holds
