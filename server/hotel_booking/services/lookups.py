"""Coupon and tax configuration lookups.

Both are owned by other parts of the platform; the engine only depends on
these protocols. The static implementations back local runs and tests.
"""

from collections.abc import Iterable
from typing import Protocol

from ..core.config import Settings
from ..schemas.pricing import Coupon, TaxConfig


class CouponLookup(Protocol):
    async def get_coupon(self, code: str) -> Coupon | None:
        """Return the coupon for ``code`` or None when it does not exist."""
        ...


class TaxConfigLookup(Protocol):
    async def get_tax_config(self, room_type_ids: Iterable[int]) -> TaxConfig:
        """Return the tax rate and mode that applies to a stay in these room types."""
        ...


class StaticCouponLookup:
    """In-memory coupon catalogue keyed by case-insensitive code."""

    def __init__(self, coupons: Iterable[Coupon] = ()):
        self._coupons = {coupon.code.upper(): coupon for coupon in coupons}

    def add(self, coupon: Coupon) -> None:
        self._coupons[coupon.code.upper()] = coupon

    async def get_coupon(self, code: str) -> Coupon | None:
        return self._coupons.get(code.strip().upper())


class StaticTaxConfigLookup:
    """One tax configuration for every room type."""

    def __init__(self, config: TaxConfig):
        self.config = config

    @classmethod
    def from_settings(cls, settings: Settings) -> "StaticTaxConfigLookup":
        return cls(TaxConfig(rate=settings.tax_rate, inclusive=settings.tax_inclusive))

    async def get_tax_config(self, room_type_ids: Iterable[int]) -> TaxConfig:
        return self.config
