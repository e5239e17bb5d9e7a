"""Hold-related Pydantic schemas."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.hold import HoldStatus
from .pricing import RoomSelection


class CreateHoldRequest(BaseModel):
    """Request schema for holding one or more room types for a stay."""

    check_in: date = Field(..., description="First night of the stay")
    check_out: date = Field(..., description="Departure day; not a night of the stay")
    rooms: List[RoomSelection] = Field(..., min_length=1)
    ttl_seconds: Optional[int] = Field(None, ge=1, description="Hold lifetime; server default when omitted")


class HoldTokenRequest(BaseModel):
    """Request schema for operations addressed by hold token."""

    token: str = Field(..., min_length=1, max_length=64)


class ExtendHoldRequest(HoldTokenRequest):
    """Request schema for extending a hold."""

    ttl_seconds: Optional[int] = Field(None, ge=1, description="New lifetime counted from now")


class Hold(BaseModel):
    """Hold response schema."""

    token: str = Field(..., description="Opaque hold token")
    room_type_id: int
    check_in: date
    check_out: date
    quantity: int = Field(..., ge=1)
    status: HoldStatus = Field(..., description="Effective hold status")
    expires_at: datetime = Field(..., description="Hold expiration time (ISO 8601)")
    remaining_seconds: int = Field(..., ge=0)
    extension_count: int = Field(..., ge=0)


class HoldsResponse(BaseModel):
    """Holds created together for one stay."""

    holds: List[Hold]


class ReleaseHoldResponse(BaseModel):
    """Outcome of a release; false means the hold was already inactive."""

    token: str
    released: bool
