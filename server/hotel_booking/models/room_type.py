"""Room type model definition."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, UTCDateTime

if TYPE_CHECKING:
    from .cancellation import CancellationPolicy


class RoomType(Base):
    """A class of sellable room inventory, e.g. "Deluxe King"."""

    __tablename__ = "room_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Hotels are managed elsewhere; only the reference is kept
    hotel_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    total_units: Mapped[int] = mapped_column(Integer, nullable=False)
    base_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    cancellation_policy_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("cancellation_policies.id", ondelete="SET NULL"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("total_units >= 0", name="ck_room_type_total_units_non_negative"),
        CheckConstraint("base_rate >= 0", name="ck_room_type_base_rate_non_negative"),
        CheckConstraint("length(name) > 0", name="ck_room_type_name_not_empty"),
    )

    cancellation_policy: Mapped["CancellationPolicy | None"] = relationship("CancellationPolicy", lazy="raise")

    def __repr__(self) -> str:
        return (
            f"<RoomType(id={self.id}, name='{self.name}', "
            f"total_units={self.total_units}, base_rate={self.base_rate})>"
        )
