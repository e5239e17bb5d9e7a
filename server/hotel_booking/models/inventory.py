"""Inventory ledger model definitions."""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, UTCDateTime


class InventoryDay(Base):
    """Unit counters for one room type on one calendar night.

    Rows are materialised on first touch with every unit available and are
    never deleted. ``version`` is bumped on every UPDATE so a write based on a
    stale read fails instead of silently overwriting.
    """

    __tablename__ = "inventory_days"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    room_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("room_types.id", ondelete="CASCADE"),
        nullable=False
    )
    day: Mapped[date] = mapped_column("date", Date, nullable=False)

    total_units: Mapped[int] = mapped_column(Integer, nullable=False)
    held_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    booked_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Overrides the room type's base rate for this night when set
    rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    stop_sell: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("room_type_id", "date", name="uq_inventory_day_room_type_date"),
        CheckConstraint("total_units >= 0", name="ck_inventory_day_total_non_negative"),
        CheckConstraint("held_units >= 0", name="ck_inventory_day_held_non_negative"),
        CheckConstraint("booked_units >= 0", name="ck_inventory_day_booked_non_negative"),
        CheckConstraint(
            "held_units + booked_units <= total_units",
            name="ck_inventory_day_within_capacity"
        ),
        CheckConstraint("rate IS NULL OR rate >= 0", name="ck_inventory_day_rate_non_negative"),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def available_units(self) -> int:
        if self.stop_sell:
            return 0
        return max(self.total_units - self.held_units - self.booked_units, 0)

    def __repr__(self) -> str:
        return (
            f"<InventoryDay(room_type_id={self.room_type_id}, date={self.day}, "
            f"total={self.total_units}, held={self.held_units}, booked={self.booked_units})>"
        )


class InventoryAdjustment(Base):
    """Inventory adjustment record for audit trail of capacity changes."""

    __tablename__ = "inventory_adjustments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    room_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("room_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    day: Mapped[date] = mapped_column("date", Date, nullable=False)

    # Adjustment details
    delta: Mapped[int] = mapped_column(Integer, nullable=False)  # Can be positive or negative
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)

    # Previous and new values for audit trail
    total_units_before: Mapped[int] = mapped_column(Integer, nullable=False)
    total_units_after: Mapped[int] = mapped_column(Integer, nullable=False)
    committed_units: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        index=True
    )

    __table_args__ = (
        CheckConstraint("delta != 0", name="ck_inventory_adjustment_delta_nonzero"),
        CheckConstraint("length(reason) > 0", name="ck_inventory_adjustment_reason_not_empty"),
        CheckConstraint("length(actor) > 0", name="ck_inventory_adjustment_actor_not_empty"),
        CheckConstraint("total_units_after >= 0", name="ck_inventory_adjustment_total_after_non_negative"),
        CheckConstraint(
            "total_units_after = total_units_before + delta",
            name="ck_inventory_adjustment_total_delta_consistency"
        ),
        CheckConstraint(
            "committed_units <= total_units_after",
            name="ck_inventory_adjustment_committed_within_total"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryAdjustment(room_type_id={self.room_type_id}, date={self.day}, "
            f"delta={self.delta}, actor='{self.actor}')>"
        )
