"""Inventory ledger: per room type, per night unit counters.

Every write goes through ``InventoryLedger.lock`` inside a unit of work. Locking
a set of nights also materialises missing rows and reclaims any expired holds
that cover those nights, so capacity is always evaluated with abandoned holds
already released.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock
from ..core.config import Settings
from ..core.dates import date_span, stay_nights
from ..core.exceptions import CapacityExceededError, InvalidDateRangeError, NotFoundError
from ..core.locking import InventoryLockManager, LockKey, LockSetChangedError
from ..core.observability import get_logger, metrics_collector
from ..core.transactions import UnitOfWork, run_in_transaction
from ..models.hold import HoldStatus, RoomHold
from ..models.inventory import InventoryAdjustment, InventoryDay
from ..models.room_type import RoomType
from ..schemas.inventory import DayAvailability

logger = get_logger(__name__)


class RoomTypeNotFoundError(NotFoundError):
    """Exception when a room type does not exist or is inactive."""

    def __init__(self, room_type_id: int):
        super().__init__(resource_type="room_type", resource_id=str(room_type_id))
        self.problem_details.update({
            "code": "ROOM_TYPE_NOT_FOUND",
            "retryable": False
        })


def keys_for(room_type_id: int, nights: Iterable[date]) -> set[LockKey]:
    return {(room_type_id, night) for night in nights}


class LockedInventory:
    """InventoryDay rows locked by the current unit of work.

    ``reserve`` and ``release`` move held units; the remaining mutators move
    booked units. Each one validates against the invariant
    ``held_units + booked_units <= total_units`` before touching the row.
    """

    def __init__(self, rows: dict[LockKey, InventoryDay]):
        self._rows = rows

    def row(self, room_type_id: int, day: date) -> InventoryDay:
        try:
            return self._rows[(room_type_id, day)]
        except KeyError:
            raise RuntimeError(f"inventory day {room_type_id}@{day.isoformat()} is not locked") from None

    def rows(self) -> list[InventoryDay]:
        return [self._rows[key] for key in sorted(self._rows)]

    def available(self, room_type_id: int, day: date) -> int:
        return self.row(room_type_id, day).available_units

    def _require_available(self, row: InventoryDay, quantity: int) -> None:
        if row.available_units < quantity:
            metrics_collector.record_capacity_conflict(row.room_type_id)
            raise CapacityExceededError(row.room_type_id, row.day, quantity, row.available_units)

    def reserve(self, room_type_id: int, day: date, quantity: int) -> None:
        """Hold ``quantity`` units for the night."""
        row = self.row(room_type_id, day)
        self._require_available(row, quantity)
        row.held_units += quantity

    def release(self, room_type_id: int, day: date, quantity: int) -> None:
        """Give back ``quantity`` held units for the night."""
        row = self.row(room_type_id, day)
        if row.held_units < quantity:
            raise ValueError(
                f"cannot release {quantity} held unit(s) on {day.isoformat()}; only {row.held_units} held"
            )
        row.held_units -= quantity

    def convert_held_to_booked(self, room_type_id: int, day: date, quantity: int) -> None:
        """Turn held units into booked units. Net availability does not change."""
        row = self.row(room_type_id, day)
        if row.held_units < quantity:
            raise ValueError(
                f"cannot convert {quantity} held unit(s) on {day.isoformat()}; only {row.held_units} held"
            )
        row.held_units -= quantity
        row.booked_units += quantity

    def reserve_booked(self, room_type_id: int, day: date, quantity: int) -> None:
        row = self.row(room_type_id, day)
        self._require_available(row, quantity)
        row.booked_units += quantity

    def release_booked(self, room_type_id: int, day: date, quantity: int) -> None:
        row = self.row(room_type_id, day)
        if row.booked_units < quantity:
            raise ValueError(
                f"cannot release {quantity} booked unit(s) on {day.isoformat()}; only {row.booked_units} booked"
            )
        row.booked_units -= quantity


class InventoryLedger:
    """Source of truth for room capacity."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        lock_manager: InventoryLockManager,
        settings: Settings,
    ):
        self.db = db
        self.clock = clock
        self.lock_manager = lock_manager
        self.settings = settings

    async def transaction(self, operation: str, work):
        """Run ``work`` atomically with the configured retry policy."""
        return await run_in_transaction(
            self.db,
            self.lock_manager,
            operation,
            work,
            attempts=self.settings.lock_retry_attempts,
            backoff_seconds=self.settings.lock_retry_backoff_seconds,
        )

    # Room types

    async def get_room_type(self, room_type_id: int) -> RoomType:
        room_type = await self.db.get(RoomType, room_type_id)
        if room_type is None or not room_type.is_active:
            raise RoomTypeNotFoundError(room_type_id)
        return room_type

    async def get_room_types(self, room_type_ids: Iterable[int]) -> dict[int, RoomType]:
        return {room_type_id: await self.get_room_type(room_type_id) for room_type_id in sorted(set(room_type_ids))}

    # Reads

    async def get_availability(self, room_type_id: int, check_in: date, check_out: date) -> list[DayAvailability]:
        """
        Per-night availability for ``[check_in, check_out)``.

        Expired holds are never counted. When the plain read finds missing rows
        or expired holds still parked on these nights, a locked unit of work
        materialises the rows and reclaims the holds before answering.

        Raises:
            InvalidDateRangeError: If check_out is not after check_in
            RoomTypeNotFoundError: If the room type is unknown
        """
        nights = stay_nights(check_in, check_out)
        if not nights:
            raise InvalidDateRangeError("check_out must be after check_in", check_in, check_out)

        room_type = await self.get_room_type(room_type_id)
        keys = keys_for(room_type_id, nights)

        rows = await self._load_rows(keys)
        expired = await self._find_expired_holds(keys, self.clock.now())
        if expired or len(rows) < len(keys):
            async def work(uow: UnitOfWork) -> dict[LockKey, InventoryDay]:
                locked = await self.lock(uow, keys)
                return {(row.room_type_id, row.day): row for row in locked.rows()}

            rows = await self.transaction("inventory.refresh", work)
            # A retried attempt expires instances loaded before the transaction
            room_type = await self.get_room_type(room_type_id)

        return [self._to_view(room_type, rows[(room_type_id, night)]) for night in nights]

    async def min_available(self, room_type_id: int, check_in: date, check_out: date) -> int:
        """Units bookable on every night of the stay."""
        days = await self.get_availability(room_type_id, check_in, check_out)
        return min(day.available_units for day in days)

    def effective_rate(self, room_type: RoomType, row: InventoryDay | None) -> Decimal:
        if row is not None and row.rate is not None:
            return Decimal(row.rate)
        return Decimal(room_type.base_rate)

    def _to_view(self, room_type: RoomType, row: InventoryDay) -> DayAvailability:
        return DayAvailability(
            room_type_id=row.room_type_id,
            day=row.day,
            total_units=row.total_units,
            held_units=row.held_units,
            booked_units=row.booked_units,
            available_units=row.available_units,
            rate=self.effective_rate(room_type, row),
            rate_overridden=row.rate is not None,
            stop_sell=row.stop_sell,
        )

    # Locking

    async def lock(self, uow: UnitOfWork, keys: Iterable[LockKey]) -> LockedInventory:
        """
        Lock every key in ascending order and prepare the rows for writing.

        The lock set is widened up front to cover every night of any expired
        hold touching the requested keys, so that hold can be reclaimed in
        the same transaction.

        Raises:
            LockSetChangedError: If a hold expired between discovery and locking
                and covers nights outside the lock set (the unit of work retries)
        """
        now = self.clock.now()
        wanted = set(keys)

        for hold in await self._find_expired_holds(wanted, now):
            wanted |= keys_for(hold.room_type_id, hold.nights())

        await uow.locks.acquire(wanted)

        rows = await self._load_rows(wanted, for_update=True)
        missing = sorted(wanted - rows.keys())
        if missing:
            rows.update(await self._materialize(missing))

        reclaimed = await self._reclaim_expired(uow, rows, now)
        if reclaimed:
            logger.info(
                "Expired holds reclaimed",
                reclaimed_count=len(reclaimed),
                hold_tokens=reclaimed,
            )

        return LockedInventory(rows)

    async def _load_rows(self, keys: Iterable[LockKey], for_update: bool = False) -> dict[LockKey, InventoryDay]:
        by_room_type: dict[int, set[date]] = defaultdict(set)
        for room_type_id, day in keys:
            by_room_type[room_type_id].add(day)

        rows: dict[LockKey, InventoryDay] = {}
        for room_type_id in sorted(by_room_type):
            stmt = (
                select(InventoryDay)
                .where(
                    InventoryDay.room_type_id == room_type_id,
                    InventoryDay.day.in_(sorted(by_room_type[room_type_id])),
                )
                .order_by(InventoryDay.day)
                .execution_options(populate_existing=True)
            )
            if for_update:
                stmt = stmt.with_for_update()

            result = await self.db.execute(stmt)
            for row in result.scalars():
                rows[(row.room_type_id, row.day)] = row

        return rows

    async def _materialize(self, keys: list[LockKey]) -> dict[LockKey, InventoryDay]:
        room_types = {
            room_type_id: await self.db.get(RoomType, room_type_id)
            for room_type_id in sorted({room_type_id for room_type_id, _ in keys})
        }

        rows = {}
        for room_type_id, day in keys:
            room_type = room_types[room_type_id]
            if room_type is None:
                raise RoomTypeNotFoundError(room_type_id)
            row = InventoryDay(
                room_type_id=room_type_id,
                day=day,
                total_units=room_type.total_units,
                held_units=0,
                booked_units=0,
                stop_sell=False,
            )
            self.db.add(row)
            rows[(room_type_id, day)] = row

        # A concurrent insert of the same night surfaces here as IntegrityError
        await self.db.flush()
        return rows

    async def _find_expired_holds(self, keys: set[LockKey], now: datetime) -> list[RoomHold]:
        by_room_type: dict[int, set[date]] = defaultdict(set)
        for room_type_id, day in keys:
            by_room_type[room_type_id].add(day)

        holds = []
        for room_type_id in sorted(by_room_type):
            days = by_room_type[room_type_id]
            stmt = (
                select(RoomHold)
                .where(
                    RoomHold.room_type_id == room_type_id,
                    RoomHold.status == HoldStatus.ACTIVE,
                    RoomHold.expires_at <= now,
                    RoomHold.check_in <= max(days),
                    RoomHold.check_out > min(days),
                )
                .execution_options(populate_existing=True)
            )
            result = await self.db.execute(stmt)
            holds.extend(
                hold for hold in result.scalars()
                if any(night in days for night in hold.nights())
            )

        return holds

    async def _reclaim_expired(
        self,
        uow: UnitOfWork,
        rows: dict[LockKey, InventoryDay],
        now: datetime,
    ) -> list[str]:
        reclaimed = []
        for hold in await self._find_expired_holds(set(rows), now):
            hold_keys = keys_for(hold.room_type_id, hold.nights())
            if not hold_keys <= rows.keys():
                raise LockSetChangedError(hold_keys - rows.keys())

            # Only the transaction that flips the status gives the units back
            result = await self.db.execute(
                update(RoomHold)
                .where(
                    RoomHold.id == hold.id,
                    RoomHold.status == HoldStatus.ACTIVE,
                    RoomHold.expires_at <= now,
                )
                .values(status=HoldStatus.EXPIRED, closed_at=now)
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount != 1:
                continue

            for night in hold.nights():
                row = rows[(hold.room_type_id, night)]
                row.held_units -= hold.quantity
            reclaimed.append(hold.token)

        if reclaimed:
            metrics_collector.record_holds_expired(len(reclaimed))
        return reclaimed

    # Administrative changes

    async def set_stop_sell(self, room_type_id: int, start: date, end: date, blocked: bool) -> int:
        """Stop or resume selling every date in ``[start, end]``. Existing holds and bookings stay."""
        await self.get_room_type(room_type_id)
        days = date_span(start, end)

        async def work(uow: UnitOfWork) -> int:
            locked = await self.lock(uow, keys_for(room_type_id, days))
            for day in days:
                locked.row(room_type_id, day).stop_sell = blocked
            return len(days)

        changed = await self.transaction("inventory.stop_sell", work)
        logger.info(
            "Stop-sell updated",
            room_type_id=room_type_id,
            start=start.isoformat(),
            end=end.isoformat(),
            blocked=blocked,
            days_changed=changed,
        )
        return changed

    async def set_rate(
        self,
        room_type_id: int,
        start: date,
        end: date,
        rate: Decimal | None,
        days_of_week: Iterable[int] | None = None,
    ) -> int:
        """Set or clear (``rate=None``) the nightly rate override for dates in ``[start, end]``."""
        await self.get_room_type(room_type_id)
        days = date_span(start, end, days_of_week)
        if not days:
            return 0

        async def work(uow: UnitOfWork) -> int:
            locked = await self.lock(uow, keys_for(room_type_id, days))
            for day in days:
                locked.row(room_type_id, day).rate = rate
            return len(days)

        changed = await self.transaction("inventory.set_rate", work)
        logger.info(
            "Rate override updated",
            room_type_id=room_type_id,
            start=start.isoformat(),
            end=end.isoformat(),
            rate=str(rate) if rate is not None else None,
            days_changed=changed,
        )
        return changed

    async def adjust_total_units(
        self,
        room_type_id: int,
        start: date,
        end: date,
        total_units: int,
        actor: str,
        reason: str,
    ) -> list[InventoryAdjustment]:
        """
        Change total units for every date in ``[start, end]`` with an audit record per changed date.

        Raises:
            CapacityExceededError: If a date already has more units held or booked than the new total
        """
        await self.get_room_type(room_type_id)
        days = date_span(start, end)

        async def work(uow: UnitOfWork) -> list[InventoryAdjustment]:
            locked = await self.lock(uow, keys_for(room_type_id, days))
            now = self.clock.now()
            adjustments = []
            for day in days:
                row = locked.row(room_type_id, day)
                committed = row.held_units + row.booked_units
                if total_units < committed:
                    raise CapacityExceededError(room_type_id, day, committed, total_units)
                if total_units == row.total_units:
                    continue

                adjustment = InventoryAdjustment(
                    room_type_id=room_type_id,
                    day=day,
                    delta=total_units - row.total_units,
                    reason=reason,
                    actor=actor,
                    total_units_before=row.total_units,
                    total_units_after=total_units,
                    committed_units=committed,
                    created_at=now,
                )
                row.total_units = total_units
                self.db.add(adjustment)
                adjustments.append(adjustment)
            return adjustments

        adjustments = await self.transaction("inventory.adjust", work)
        logger.info(
            "Inventory adjusted",
            room_type_id=room_type_id,
            start=start.isoformat(),
            end=end.isoformat(),
            total_units=total_units,
            actor=actor,
            reason=reason,
            days_changed=len(adjustments),
        )
        return adjustments
