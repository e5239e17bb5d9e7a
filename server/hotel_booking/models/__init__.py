"""Models module exporting all database models."""

from .booking import Booking, BookingAuditLog, BookingRoomType, BookingStatus, RefundStatus
from .cancellation import CancellationPolicy, CancellationPolicyTier
from .hold import HoldStatus, RoomHold
from .inventory import InventoryAdjustment, InventoryDay
from .room_type import RoomType

__all__ = [
    # Catalogue
    "RoomType",

    # Ledger
    "InventoryDay",
    "InventoryAdjustment",

    # Holds
    "RoomHold",
    "HoldStatus",

    # Bookings
    "Booking",
    "BookingRoomType",
    "BookingAuditLog",
    "BookingStatus",
    "RefundStatus",

    # Cancellation policies
    "CancellationPolicy",
    "CancellationPolicyTier",
]
