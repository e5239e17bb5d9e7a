"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus, RefundStatus


class GuestDetails(BaseModel):
    """Lead guest information captured with a booking."""

    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: Optional[str] = Field(None, max_length=64)
    adults: int = Field(1, ge=1, le=50)
    children: int = Field(0, ge=0, le=50)
    special_requests: Optional[str] = Field(None, max_length=2000)


class CreateBookingRequest(BaseModel):
    """Request schema for turning holds into a booking."""

    hold_tokens: List[str] = Field(..., min_length=1)
    guest: GuestDetails
    coupon_code: Optional[str] = Field(None, max_length=64)
    occupancy: Optional[Dict[int, int]] = Field(
        None,
        description="Guests per room type, keyed by room type ID"
    )


class BookingIdRequest(BaseModel):
    """Request schema for operations addressed by booking ID."""

    booking_id: str = Field(..., description="Booking ID")


class RescheduleBookingRequest(BookingIdRequest):
    """Request schema for moving a booking to new dates."""

    check_in: date
    check_out: date


class ConfirmBookingRequest(BookingIdRequest):
    """Request schema for recording payment and confirming a booking."""

    payment_reference: Optional[str] = Field(None, max_length=255)
    paid_amount: Optional[Decimal] = Field(None, ge=0)


class CancelBookingRequest(BookingIdRequest):
    """Request schema for cancelling a booking."""

    reason: Optional[str] = Field(None, max_length=1000)


class BookingLine(BaseModel):
    """Booking line response schema."""

    room_type_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    occupancy: Optional[int] = None


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    code: str = Field(..., description="Booking confirmation code")
    status: BookingStatus
    check_in: date
    check_out: date
    guest_name: str
    guest_email: str
    lines: List[BookingLine]
    currency: str
    coupon_code: Optional[str] = None
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    tax_inclusive: bool
    payment_reference: Optional[str] = None
    paid_amount: Optional[Decimal] = None
    refund_amount: Optional[Decimal] = None
    refund_percentage: Optional[int] = None
    refund_status: Optional[RefundStatus] = None
    created_at: datetime
    cancelled_at: Optional[datetime] = None


class RefundQuote(BaseModel):
    """Refund a cancellation would produce at a given moment."""

    booking_id: str
    lead_days: int = Field(..., description="Whole tenant-local days between today and check-in")
    policy_name: str
    tier_days_before_check_in: Optional[int] = Field(None, description="Threshold of the tier applied, if any")
    refund_percentage: int
    refund_base: Decimal
    refund_amount: Decimal


class CancellationResponse(BaseModel):
    """Cancelled booking with the refund decision."""

    booking: Booking
    refund: RefundQuote
