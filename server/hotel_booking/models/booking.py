"""Booking, booking line and booking audit model definitions."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, UTCDateTime
from ..core.dates import stay_nights


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class RefundStatus(str, Enum):
    """Refund status enumeration."""
    NOT_APPLICABLE = "not_applicable"
    PENDING = "pending"


class Booking(Base):
    """Durable reservation covering one stay and one or more room types."""

    __tablename__ = "booking_informations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    check_in: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )

    # Guest details
    principal_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    guest_name: Mapped[str] = mapped_column(String(255), nullable=False)
    guest_email: Mapped[str] = mapped_column(String(255), nullable=False)
    guest_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    adults: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    children: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Pricing snapshot
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    coupon_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    tax_inclusive: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Payment
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    paid_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # Cancellation
    cancellation_policy_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("cancellation_policies.id", ondelete="SET NULL"),
        nullable=True
    )
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    refund_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refund_status: Mapped[RefundStatus | None] = mapped_column(String(20), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("check_out > check_in", name="ck_booking_dates_ordered"),
        CheckConstraint("subtotal >= 0", name="ck_booking_subtotal_non_negative"),
        CheckConstraint("discount_amount >= 0", name="ck_booking_discount_non_negative"),
        CheckConstraint("tax_amount >= 0", name="ck_booking_tax_non_negative"),
        CheckConstraint("total_amount >= 0", name="ck_booking_total_non_negative"),
        CheckConstraint("adults >= 1", name="ck_booking_adults_positive"),
        CheckConstraint("children >= 0", name="ck_booking_children_non_negative"),
        CheckConstraint(
            "refund_percentage IS NULL OR (refund_percentage >= 0 AND refund_percentage <= 100)",
            name="ck_booking_refund_percentage_range"
        ),
    )

    lines: Mapped[list["BookingRoomType"]] = relationship(
        "BookingRoomType",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BookingRoomType.id"
    )

    def nights(self) -> list[date]:
        return stay_nights(self.check_in, self.check_out)

    @property
    def night_count(self) -> int:
        return (self.check_out - self.check_in).days

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, code={self.code}, check_in={self.check_in}, "
            f"check_out={self.check_out}, status={self.status}, total={self.total_amount})>"
        )


class BookingRoomType(Base):
    """One room type line of a booking with its price snapshot."""

    __tablename__ = "booking_room_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("booking_informations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    room_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("room_types.id", ondelete="RESTRICT"),
        nullable=False
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # Average nightly rate across the stay at booking time
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    occupancy: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_booking_room_type_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_booking_room_type_unit_price_non_negative"),
        CheckConstraint("subtotal >= 0", name="ck_booking_room_type_subtotal_non_negative"),
    )

    booking: Mapped[Booking] = relationship("Booking", back_populates="lines")

    def __repr__(self) -> str:
        return (
            f"<BookingRoomType(booking_id={self.booking_id}, room_type_id={self.room_type_id}, "
            f"quantity={self.quantity}, subtotal={self.subtotal})>"
        )


class BookingAuditLog(Base):
    """Append-only trail of booking lifecycle events."""

    __tablename__ = "booking_audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("booking_informations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    actor: Mapped[str] = mapped_column(String(128), nullable=False, default="system")
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<BookingAuditLog(booking_id={self.booking_id}, action='{self.action}', actor='{self.actor}')>"
