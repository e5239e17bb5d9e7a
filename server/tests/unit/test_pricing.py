"""Unit tests for the pricing engine."""

from datetime import date
from decimal import Decimal

import pytest

from hotel_booking.core.exceptions import CouponInvalidError, InvalidDateRangeError
from hotel_booking.schemas.pricing import Coupon, DiscountScope, DiscountType, RoomSelection, TaxConfig
from hotel_booking.services.pricing import apply_discount, apply_tax, to_money

CHECK_IN = date(2026, 3, 1)
CHECK_OUT = date(2026, 3, 3)


def test_to_money_rounds_half_up():
    assert to_money(Decimal("1.005")) == Decimal("1.01")
    assert to_money(Decimal("1.004")) == Decimal("1.00")
    assert to_money(Decimal("-1.005")) == Decimal("-1.01")


def test_apply_tax_exclusive_adds_tax():
    result = apply_tax(Decimal("100.00"), TaxConfig(rate=Decimal("0.15"), inclusive=False))

    assert result.net == Decimal("100.00")
    assert result.tax == Decimal("15.00")
    assert result.total == Decimal("115.00")


def test_apply_tax_inclusive_backs_tax_out():
    result = apply_tax(Decimal("115.00"), TaxConfig(rate=Decimal("0.15"), inclusive=True))

    assert result.net == Decimal("100.00")
    assert result.tax == Decimal("15.00")
    assert result.total == Decimal("115.00")


def test_apply_tax_exclusive_rounds_tax_half_up():
    result = apply_tax(Decimal("10.05"), TaxConfig(rate=Decimal("0.10"), inclusive=False))

    assert result.tax == Decimal("1.01")
    assert result.total == Decimal("11.06")


def test_apply_discount_without_coupon():
    result = apply_discount(Decimal("200"), None)

    assert result.discount == Decimal("0.00")
    assert result.discounted_subtotal == Decimal("200.00")


def test_apply_discount_percentage_on_order():
    coupon = Coupon(code="P10", discount_type=DiscountType.PERCENTAGE, amount=Decimal("10"))

    result = apply_discount(Decimal("200.00"), coupon)

    assert result.discount == Decimal("20.00")
    assert result.discounted_subtotal == Decimal("180.00")


def test_apply_discount_fixed_never_exceeds_subtotal():
    coupon = Coupon(code="F50", discount_type=DiscountType.FIXED, amount=Decimal("50"))

    result = apply_discount(Decimal("30.00"), coupon)

    assert result.discount == Decimal("30.00")
    assert result.discounted_subtotal == Decimal("0.00")


def test_apply_discount_room_type_scope_only_discounts_named_room_types():
    coupon = Coupon(
        code="SUITE20",
        discount_type=DiscountType.PERCENTAGE,
        amount=Decimal("20"),
        discount_on=DiscountScope.ROOM_TYPE,
        room_type_ids=frozenset({2}),
    )

    result = apply_discount(
        Decimal("500.00"),
        coupon,
        {1: Decimal("200.00"), 2: Decimal("300.00")},
    )

    assert result.eligible_amount == Decimal("300.00")
    assert result.discount == Decimal("60.00")
    assert result.discounted_subtotal == Decimal("440.00")


def test_percentage_coupon_over_100_is_rejected():
    with pytest.raises(ValueError):
        Coupon(code="BAD", discount_type=DiscountType.PERCENTAGE, amount=Decimal("150"))


@pytest.mark.asyncio
async def test_quote_uses_base_rate_per_night(services, room_type_id):
    quote = await services.pricing.quote(room_type_id, CHECK_IN, CHECK_OUT, quantity=2)

    assert [night.night for night in quote.nights] == [date(2026, 3, 1), date(2026, 3, 2)]
    assert all(night.unit_price == Decimal("100.00") for night in quote.nights)
    assert quote.subtotal == Decimal("400.00")
    assert quote.sellable is True


@pytest.mark.asyncio
async def test_quote_uses_day_specific_rate(services, room_type_id):
    await services.ledger.set_rate(room_type_id, date(2026, 3, 2), date(2026, 3, 2), Decimal("150.00"))

    quote = await services.pricing.quote(room_type_id, CHECK_IN, CHECK_OUT)

    assert [night.unit_price for night in quote.nights] == [Decimal("100.00"), Decimal("150.00")]
    assert [night.rate_overridden for night in quote.nights] == [False, True]
    assert quote.subtotal == Decimal("250.00")


@pytest.mark.asyncio
async def test_quote_reports_stop_sell_night_as_unsellable(services, room_type_id):
    await services.ledger.set_stop_sell(room_type_id, date(2026, 3, 2), date(2026, 3, 2), blocked=True)

    quote = await services.pricing.quote(room_type_id, CHECK_IN, CHECK_OUT)

    assert quote.nights[0].sellable is True
    assert quote.nights[1].sellable is False
    assert quote.nights[1].available_units == 0
    assert quote.sellable is False


@pytest.mark.asyncio
async def test_quote_rejects_empty_stay(services, room_type_id):
    with pytest.raises(InvalidDateRangeError):
        await services.pricing.quote(room_type_id, CHECK_IN, CHECK_IN)


@pytest.mark.asyncio
async def test_quote_booking_applies_coupon_then_exclusive_tax(services, room_type_id):
    quote = await services.pricing.quote_booking(
        [RoomSelection(room_type_id=room_type_id, quantity=1)],
        CHECK_IN,
        CHECK_OUT,
        coupon_code="spring10",
    )

    assert quote.subtotal == Decimal("200.00")
    assert quote.coupon_code == "SPRING10"
    assert quote.discount == Decimal("20.00")
    assert quote.discounted_subtotal == Decimal("180.00")
    assert quote.tax == Decimal("18.00")
    assert quote.total == Decimal("198.00")
    assert quote.currency == "USD"


@pytest.mark.asyncio
async def test_quote_booking_across_room_types(services, create_room_type, room_type_coupon, coupons):
    standard = await create_room_type(name="Standard Queen", total_units=5, base_rate="80.00")
    suite = await create_room_type(name="Suite", total_units=1, base_rate="250.00")
    coupons.add(room_type_coupon(suite, "20"))

    quote = await services.pricing.quote_booking(
        [RoomSelection(room_type_id=standard, quantity=2), RoomSelection(room_type_id=suite, quantity=1)],
        CHECK_IN,
        CHECK_OUT,
        coupon_code=f"ROOM{suite}",
    )

    # 2 x 80 x 2 nights + 250 x 2 nights
    assert quote.subtotal == Decimal("820.00")
    assert quote.discount == Decimal("100.00")
    assert quote.tax == Decimal("72.00")
    assert quote.total == Decimal("792.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["UNKNOWN", "RETIRED", "WINTER"])
async def test_quote_booking_rejects_unusable_coupons(services, room_type_id, code):
    with pytest.raises(CouponInvalidError):
        await services.pricing.quote_booking(
            [RoomSelection(room_type_id=room_type_id)],
            CHECK_IN,
            CHECK_OUT,
            coupon_code=code,
        )
