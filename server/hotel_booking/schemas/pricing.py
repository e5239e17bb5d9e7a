"""Pricing value objects and quote request/response schemas."""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DiscountType(str, Enum):
    """How a coupon's amount is interpreted."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class DiscountScope(str, Enum):
    """What part of the order a coupon discounts."""
    ORDER = "order"
    ROOM_TYPE = "room_type"


class Coupon(BaseModel):
    """Coupon as returned by the coupon lookup collaborator."""

    model_config = ConfigDict(frozen=True)

    code: str
    discount_type: DiscountType
    amount: Decimal = Field(..., ge=0, description="Percentage (0-100) or fixed amount")
    discount_on: DiscountScope = DiscountScope.ORDER
    room_type_ids: frozenset[int] = frozenset()
    active: bool = True
    expires_on: Optional[date] = None

    @model_validator(mode="after")
    def check_amount(self) -> "Coupon":
        if self.discount_type == DiscountType.PERCENTAGE and self.amount > 100:
            raise ValueError("percentage coupons cannot exceed 100")
        return self


class TaxConfig(BaseModel):
    """Tax rate and whether amounts already include it."""

    model_config = ConfigDict(frozen=True)

    rate: Decimal = Field(..., ge=0, description="Tax rate as a fraction, e.g. 0.15")
    inclusive: bool = Field(..., description="True when amounts already contain the tax")


class TaxBreakdown(BaseModel):
    """Result of applying tax to an amount."""

    net: Decimal
    tax: Decimal
    total: Decimal


class DiscountResult(BaseModel):
    """Result of applying a coupon to a subtotal."""

    eligible_amount: Decimal
    discount: Decimal
    discounted_subtotal: Decimal


class NightlyRate(BaseModel):
    """Price of one night for one room type."""

    night: date
    unit_price: Decimal
    quantity: int
    amount: Decimal = Field(..., description="unit_price x quantity, unrounded")
    rate_overridden: bool
    available_units: int
    sellable: bool


class RoomQuote(BaseModel):
    """Nightly breakdown for one room type over a stay."""

    room_type_id: int
    quantity: int
    nights: List[NightlyRate]
    subtotal: Decimal
    sellable: bool

    @property
    def night_count(self) -> int:
        return len(self.nights)


class RoomSelection(BaseModel):
    """A room type and how many units of it."""

    room_type_id: int = Field(..., ge=1)
    quantity: int = Field(1, ge=1, le=50)


class BookingQuote(BaseModel):
    """Authoritative price for a multi-room stay."""

    check_in: date
    check_out: date
    currency: str
    rooms: List[RoomQuote]
    subtotal: Decimal
    coupon_code: Optional[str] = None
    discount: Decimal
    discounted_subtotal: Decimal
    tax_rate: Decimal
    tax_inclusive: bool
    tax: Decimal
    total: Decimal
    sellable: bool


class QuoteRequest(BaseModel):
    """Request schema for pricing a stay."""

    check_in: date = Field(..., description="First night of the stay")
    check_out: date = Field(..., description="Departure day; not a night of the stay")
    rooms: List[RoomSelection] = Field(..., min_length=1)
    coupon_code: Optional[str] = Field(None, max_length=64)
