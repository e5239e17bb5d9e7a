"""Inventory-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DayAvailability(BaseModel):
    """Ledger view of one room type on one night, expired holds already excluded."""

    model_config = ConfigDict(from_attributes=True)

    room_type_id: int
    day: date
    total_units: int
    held_units: int
    booked_units: int
    available_units: int
    rate: Decimal = Field(..., description="Effective nightly rate")
    rate_overridden: bool
    stop_sell: bool


class AvailabilityRequest(BaseModel):
    """Request schema for an availability calendar."""

    room_type_id: int = Field(..., ge=1)
    start: date = Field(..., description="First night to report")
    end: date = Field(..., description="Day after the last night to report")

    @model_validator(mode="after")
    def check_range(self) -> "AvailabilityRequest":
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class AvailabilityResponse(BaseModel):
    """Availability calendar response schema."""

    room_type_id: int
    days: List[DayAvailability]
    min_available: int


class _DateSpanRequest(BaseModel):
    room_type_id: int = Field(..., ge=1)
    start: date = Field(..., description="First date to change (inclusive)")
    end: date = Field(..., description="Last date to change (inclusive)")

    @model_validator(mode="after")
    def check_span(self) -> "_DateSpanRequest":
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self


class AdjustInventoryRequest(_DateSpanRequest):
    """Request schema for changing total units over a span of dates."""

    total_units: int = Field(..., ge=0, description="New total units for every date in the span")
    reason: str = Field(..., min_length=1, max_length=500, description="Reason for adjustment")


class SetRateRequest(_DateSpanRequest):
    """Request schema for day-rate overrides; a null rate clears the override."""

    rate: Optional[Decimal] = Field(None, ge=0)
    days_of_week: Optional[List[int]] = Field(
        None,
        description="ISO weekdays (1 = Monday) to limit the change to"
    )

    @model_validator(mode="after")
    def check_days_of_week(self) -> "SetRateRequest":
        if self.days_of_week and any(day < 1 or day > 7 for day in self.days_of_week):
            raise ValueError("days_of_week entries must be between 1 and 7")
        return self


class StopSellRequest(_DateSpanRequest):
    """Request schema for blocking or unblocking dates."""

    blocked: bool = Field(True, description="True to stop selling, false to reopen")


class InventoryAdjustment(BaseModel):
    """Inventory adjustment response schema."""

    model_config = ConfigDict(from_attributes=True)

    room_type_id: int = Field(..., description="Adjusted room type")
    day: date = Field(..., description="Adjusted date")
    delta: int = Field(..., description="Capacity change (positive or negative)")
    total_units_before: int
    total_units_after: int
    reason: str = Field(..., description="Reason for adjustment")
    actor: str = Field(..., description="User who made the adjustment")
    created_at: datetime = Field(..., description="Adjustment time (ISO 8601)")


class InventoryChangeResponse(BaseModel):
    """Result of a bulk inventory change."""

    room_type_id: int
    days_changed: int
    adjustments: List[InventoryAdjustment] = Field(default_factory=list)
