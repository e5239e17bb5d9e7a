"""Room hold model definition."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, UTCDateTime
from ..core.dates import stay_nights


class HoldStatus(str, Enum):
    """Hold status enumeration."""
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CONSUMED = "CONSUMED"
    RELEASED = "RELEASED"


class RoomHold(Base):
    """A time-boxed soft reservation of room units for a stay.

    Only ACTIVE holds whose ``expires_at`` is still in the future count
    against the ledger. A row left ACTIVE past its expiry is reclaimed by the
    next ledger operation that touches one of its nights.
    """

    __tablename__ = "room_holds"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    room_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("room_types.id", ondelete="CASCADE"),
        nullable=False
    )

    # Stay covers [check_in, check_out)
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    principal_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)

    status: Mapped[HoldStatus] = mapped_column(
        String(20),
        nullable=False,
        default=HoldStatus.ACTIVE
    )
    extension_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    booking_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("booking_informations.id", ondelete="SET NULL"),
        nullable=True
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_room_hold_quantity_positive"),
        CheckConstraint("check_out > check_in", name="ck_room_hold_dates_ordered"),
        CheckConstraint("extension_count >= 0", name="ck_room_hold_extensions_non_negative"),
        Index("ix_room_holds_room_type_status_expiry", "room_type_id", "status", "expires_at"),
    )

    def nights(self) -> list[date]:
        return stay_nights(self.check_in, self.check_out)

    def is_active(self, now: datetime) -> bool:
        return self.status == HoldStatus.ACTIVE and self.expires_at > now

    def effective_status(self, now: datetime) -> HoldStatus:
        """Status as every reader must see it: ACTIVE past expiry reads as EXPIRED."""
        if self.status == HoldStatus.ACTIVE and self.expires_at <= now:
            return HoldStatus.EXPIRED
        return HoldStatus(self.status)

    def remaining_seconds(self, now: datetime) -> int:
        if not self.is_active(now):
            return 0
        return max(int((self.expires_at - now).total_seconds()), 0)

    def __repr__(self) -> str:
        return (
            f"<RoomHold(token={self.token}, room_type_id={self.room_type_id}, "
            f"check_in={self.check_in}, check_out={self.check_out}, quantity={self.quantity}, "
            f"status={self.status}, expires_at={self.expires_at})>"
        )
