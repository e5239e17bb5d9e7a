"""Cancellation policy model definitions."""

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base


class CancellationPolicy(Base):
    """Named set of refund tiers, attached to a room type or flagged as default."""

    __tablename__ = "cancellation_policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hotel_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_refundable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    tiers: Mapped[list["CancellationPolicyTier"]] = relationship(
        "CancellationPolicyTier",
        back_populates="policy",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<CancellationPolicy(id={self.id}, name='{self.name}', is_default={self.is_default})>"


class CancellationPolicyTier(Base):
    """Refund percentage granted when cancelling at least N days before check-in."""

    __tablename__ = "cancellation_policy_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("cancellation_policies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    days_before_check_in: Mapped[int] = mapped_column(Integer, nullable=False)
    refund_percentage: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("days_before_check_in >= 0", name="ck_policy_tier_days_non_negative"),
        CheckConstraint(
            "refund_percentage >= 0 AND refund_percentage <= 100",
            name="ck_policy_tier_refund_percentage_range"
        ),
    )

    policy: Mapped[CancellationPolicy] = relationship("CancellationPolicy", back_populates="tiers")

    def __repr__(self) -> str:
        return (
            f"<CancellationPolicyTier(policy_id={self.policy_id}, "
            f"days_before_check_in={self.days_before_check_in}, refund_percentage={self.refund_percentage})>"
        )
