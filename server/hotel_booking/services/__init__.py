"""Service layer package."""

from .booking_composer import BookingComposer
from .booking_store import BookingNotFoundError
from .cancellation import CancellationEngine, CancellationResult, select_tier
from .hold_manager import HoldManager
from .inventory_ledger import InventoryLedger, RoomTypeNotFoundError
from .lookups import StaticCouponLookup, StaticTaxConfigLookup
from .notifications import BackgroundNotificationDispatcher
from .pricing import PricingEngine, apply_discount, apply_tax

__all__ = [
    "BackgroundNotificationDispatcher",
    "BookingComposer",
    "BookingNotFoundError",
    "CancellationEngine",
    "CancellationResult",
    "HoldManager",
    "InventoryLedger",
    "PricingEngine",
    "RoomTypeNotFoundError",
    "StaticCouponLookup",
    "StaticTaxConfigLookup",
    "apply_discount",
    "apply_tax",
    "select_tier",
]
