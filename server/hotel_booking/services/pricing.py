"""Pricing engine: nightly rates, discounts and tax.

Amounts are Decimal throughout. Nightly amounts (rate x quantity) are kept
unrounded; only the subtotal, discount and tax outputs are rounded to cents.
"""

from collections.abc import Mapping, Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from ..core.clock import Clock
from ..core.config import Settings
from ..core.exceptions import CouponInvalidError, InvalidDateRangeError, ValidationError
from ..core.observability import get_logger
from ..schemas.pricing import (
    BookingQuote,
    Coupon,
    DiscountResult,
    DiscountScope,
    DiscountType,
    NightlyRate,
    RoomQuote,
    RoomSelection,
    TaxBreakdown,
    TaxConfig,
)
from .inventory_ledger import InventoryLedger
from .lookups import CouponLookup, TaxConfigLookup

logger = get_logger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_money(value: Decimal) -> Decimal:
    """Round to cents, half away from zero."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def apply_discount(
    subtotal: Decimal,
    coupon: Coupon | None,
    room_subtotals: Mapping[int, Decimal] | None = None,
) -> DiscountResult:
    """
    Discount a subtotal with a coupon.

    Order-scoped coupons discount the whole subtotal; room-type-scoped coupons
    only the subtotals of the room types they name. Fixed discounts never
    exceed the amount they apply to.
    """
    subtotal = to_money(subtotal)
    if coupon is None:
        return DiscountResult(eligible_amount=Decimal("0.00"), discount=Decimal("0.00"), discounted_subtotal=subtotal)

    if coupon.discount_on == DiscountScope.ORDER:
        eligible = subtotal
    else:
        eligible = sum(
            (amount for room_type_id, amount in (room_subtotals or {}).items()
             if room_type_id in coupon.room_type_ids),
            Decimal("0"),
        )

    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = to_money(eligible * coupon.amount / HUNDRED)
    else:
        discount = to_money(min(coupon.amount, eligible))

    discount = min(discount, subtotal)
    return DiscountResult(
        eligible_amount=to_money(eligible),
        discount=discount,
        discounted_subtotal=subtotal - discount,
    )


def apply_tax(amount: Decimal, tax_config: TaxConfig) -> TaxBreakdown:
    """
    Apply tax in the mode the configuration states.

    Exclusive: tax is added on top of ``amount``.
    Inclusive: ``amount`` already contains the tax, which is backed out of it.
    """
    if tax_config.inclusive:
        total = to_money(amount)
        net = to_money(amount / (1 + tax_config.rate))
        return TaxBreakdown(net=net, tax=total - net, total=total)

    net = to_money(amount)
    tax = to_money(amount * tax_config.rate)
    return TaxBreakdown(net=net, tax=tax, total=net + tax)


class PricingEngine:
    """Prices stays from the ledger's effective nightly rates."""

    def __init__(
        self,
        ledger: InventoryLedger,
        coupons: CouponLookup,
        taxes: TaxConfigLookup,
        clock: Clock,
        settings: Settings,
    ):
        self.ledger = ledger
        self.coupons = coupons
        self.taxes = taxes
        self.clock = clock
        self.settings = settings

    # Exposed as methods too so callers only need the engine
    apply_discount = staticmethod(apply_discount)
    apply_tax = staticmethod(apply_tax)

    async def quote(self, room_type_id: int, check_in: date, check_out: date, quantity: int = 1) -> RoomQuote:
        """
        Nightly breakdown and subtotal for ``quantity`` units of one room type.

        Each night uses its day-specific rate when one is set, else the room
        type's base rate. Quoting never reserves anything.

        Raises:
            InvalidDateRangeError: If check_out is not after check_in
            ValidationError: If quantity is below one
        """
        if quantity < 1:
            raise ValidationError(detail="quantity must be at least 1", errors={"quantity": quantity})

        days = await self.ledger.get_availability(room_type_id, check_in, check_out)

        nights = []
        for day in days:
            nights.append(NightlyRate(
                night=day.day,
                unit_price=day.rate,
                quantity=quantity,
                amount=day.rate * quantity,
                rate_overridden=day.rate_overridden,
                available_units=day.available_units,
                sellable=not day.stop_sell and day.available_units >= quantity,
            ))

        return RoomQuote(
            room_type_id=room_type_id,
            quantity=quantity,
            nights=nights,
            subtotal=to_money(sum((night.amount for night in nights), Decimal("0"))),
            sellable=all(night.sellable for night in nights),
        )

    async def resolve_coupon(self, code: str) -> Coupon:
        """
        Fetch a coupon and check it can be used today.

        Raises:
            CouponInvalidError: If the code is unknown, inactive or expired
        """
        coupon = await self.coupons.get_coupon(code)
        if coupon is None:
            raise CouponInvalidError(code, "unknown coupon code")
        if not coupon.active:
            raise CouponInvalidError(code, "coupon is not active")
        if coupon.expires_on is not None and coupon.expires_on < self.clock.today():
            raise CouponInvalidError(code, f"coupon expired on {coupon.expires_on.isoformat()}")
        return coupon

    async def quote_booking(
        self,
        rooms: Sequence[RoomSelection],
        check_in: date,
        check_out: date,
        coupon_code: str | None = None,
        coupon: Coupon | None = None,
    ) -> BookingQuote:
        """
        Authoritative price for a stay across one or more room types.

        Pass ``coupon`` to skip the lookup when the caller already resolved it.

        Raises:
            InvalidDateRangeError: If check_out is not after check_in
            CouponInvalidError: If ``coupon_code`` cannot be applied
        """
        if check_out <= check_in:
            raise InvalidDateRangeError("check_out must be after check_in", check_in, check_out)
        if not rooms:
            raise ValidationError(detail="at least one room must be selected")

        if coupon is None and coupon_code:
            coupon = await self.resolve_coupon(coupon_code)

        room_quotes = [
            await self.quote(selection.room_type_id, check_in, check_out, selection.quantity)
            for selection in rooms
        ]

        room_subtotals: dict[int, Decimal] = {}
        for room_quote in room_quotes:
            amount = sum((night.amount for night in room_quote.nights), Decimal("0"))
            room_subtotals[room_quote.room_type_id] = room_subtotals.get(room_quote.room_type_id, Decimal("0")) + amount

        subtotal = to_money(sum(room_subtotals.values(), Decimal("0")))
        discount = apply_discount(subtotal, coupon, room_subtotals)

        tax_config = await self.taxes.get_tax_config(room_subtotals.keys())
        taxed = apply_tax(discount.discounted_subtotal, tax_config)

        quote = BookingQuote(
            check_in=check_in,
            check_out=check_out,
            currency=self.settings.currency,
            rooms=room_quotes,
            subtotal=subtotal,
            coupon_code=coupon.code if coupon else None,
            discount=discount.discount,
            discounted_subtotal=discount.discounted_subtotal,
            tax_rate=tax_config.rate,
            tax_inclusive=tax_config.inclusive,
            tax=taxed.tax,
            total=taxed.total,
            sellable=all(room_quote.sellable for room_quote in room_quotes),
        )

        logger.debug(
            "Stay priced",
            check_in=check_in.isoformat(),
            check_out=check_out.isoformat(),
            rooms=len(room_quotes),
            subtotal=str(quote.subtotal),
            discount=str(quote.discount),
            tax=str(quote.tax),
            total=str(quote.total),
        )
        return quote
