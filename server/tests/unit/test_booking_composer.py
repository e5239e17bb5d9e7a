"""Unit tests for turning holds into bookings and the booking lifecycle."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from hotel_booking.core.exceptions import (
    CouponInvalidError,
    HoldExpiredError,
    HoldNotFoundError,
    InvalidDateRangeError,
    InvalidStatusTransitionError,
    SlotUnavailableError,
    ValidationError,
)
from hotel_booking.models.booking import BookingStatus
from hotel_booking.models.hold import HoldStatus
from hotel_booking.schemas.pricing import Coupon, DiscountType
from hotel_booking.services.booking_store import BookingNotFoundError, list_audit_entries

CHECK_IN = date(2026, 3, 1)
CHECK_OUT = date(2026, 3, 3)


async def availability(services, room_type_id, start=CHECK_IN, end=CHECK_OUT):
    days = await services.ledger.get_availability(room_type_id, start, end)
    return [(day.held_units, day.booked_units, day.available_units) for day in days]


@pytest.mark.asyncio
async def test_create_booking_consumes_hold(services, room_type_id, guest, notifier):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT, quantity=1)
    token = hold.token

    booking = await services.bookings.create_booking([token], guest)

    assert booking.status == BookingStatus.PENDING
    assert booking.code.startswith("HB") and len(booking.code) == 10
    assert (booking.check_in, booking.check_out) == (CHECK_IN, CHECK_OUT)
    assert booking.subtotal == Decimal("200.00")
    assert booking.tax_amount == Decimal("20.00")
    assert booking.total_amount == Decimal("220.00")
    assert [(line.room_type_id, line.quantity, line.unit_price) for line in booking.lines] == [
        (room_type_id, 1, Decimal("100.00")),
    ]

    consumed = await services.holds.get_hold(token)
    assert consumed.status == HoldStatus.CONSUMED
    assert consumed.booking_id == booking.id

    # Held units became booked units, net availability unchanged
    assert await availability(services, room_type_id) == [(0, 1, 1), (0, 1, 1)]
    assert notifier.names() == ["booking.created"]


@pytest.mark.asyncio
async def test_create_booking_prices_at_current_rates(services, room_type_id, guest):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    await services.ledger.set_rate(room_type_id, CHECK_IN, CHECK_IN, Decimal("120.00"))

    booking = await services.bookings.create_booking([hold.token], guest)

    assert booking.subtotal == Decimal("220.00")
    assert booking.lines[0].unit_price == Decimal("110.00")


@pytest.mark.asyncio
async def test_create_booking_from_several_holds(services, create_room_type, room_type_id, guest):
    suite = await create_room_type(name="Suite", total_units=1, base_rate="250.00")
    first = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT, quantity=2)
    second = await services.holds.create_hold(suite, CHECK_IN, CHECK_OUT)

    booking = await services.bookings.create_booking(
        [first.token, second.token, first.token],
        guest,
        coupon_code="FLAT50",
        occupancy={suite: 2},
    )

    assert sorted((line.room_type_id, line.quantity) for line in booking.lines) == [(room_type_id, 2), (suite, 1)]
    assert {line.room_type_id: line.occupancy for line in booking.lines} == {room_type_id: None, suite: 2}
    assert booking.subtotal == Decimal("900.00")
    assert booking.discount_amount == Decimal("50.00")
    assert booking.tax_amount == Decimal("85.00")
    assert booking.total_amount == Decimal("935.00")
    assert booking.coupon_code == "FLAT50"


@pytest.mark.asyncio
async def test_create_booking_with_expired_hold(services, room_type_id, guest, clock):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    token = hold.token
    clock.advance(seconds=901)

    with pytest.raises(HoldExpiredError) as exc_info:
        await services.bookings.create_booking([token], guest)

    assert exc_info.value.problem_details["code"] == "HOLD_EXPIRED"
    assert exc_info.value.status_code == 410


@pytest.mark.asyncio
async def test_create_booking_twice_from_same_hold(services, room_type_id, guest):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    token = hold.token
    await services.bookings.create_booking([token], guest)

    with pytest.raises(HoldExpiredError):
        await services.bookings.create_booking([token], guest)

    assert await availability(services, room_type_id) == [(0, 1, 1), (0, 1, 1)]


@pytest.mark.asyncio
async def test_create_booking_with_unknown_hold(services, guest):
    with pytest.raises(HoldNotFoundError):
        await services.bookings.create_booking(["missing"], guest)


@pytest.mark.asyncio
async def test_create_booking_without_holds(services, guest):
    with pytest.raises(ValidationError):
        await services.bookings.create_booking([], guest)


@pytest.mark.asyncio
async def test_create_booking_rejects_holds_for_different_stays(services, room_type_id, guest):
    first = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    second = await services.holds.create_hold(room_type_id, CHECK_IN, date(2026, 3, 2))

    with pytest.raises(InvalidDateRangeError):
        await services.bookings.create_booking([first.token, second.token], guest)


@pytest.mark.asyncio
async def test_invalid_coupon_leaves_hold_active(services, room_type_id, guest, clock):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    token = hold.token

    with pytest.raises(CouponInvalidError):
        await services.bookings.create_booking([token], guest, coupon_code="RETIRED")

    assert (await services.holds.get_hold(token)).is_active(clock.now())


@pytest.mark.asyncio
async def test_get_booking_by_id_and_code(services, room_type_id, guest):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    booking = await services.bookings.create_booking([hold.token], guest)

    assert (await services.bookings.get_booking(str(booking.id))).code == booking.code
    assert (await services.bookings.get_booking_by_code(booking.code)).id == booking.id
    assert await services.bookings.get_booking_by_code("HBNOPE0000") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("booking_id", ["not-a-uuid", "0b7c1c8e-5a0e-4c7e-9d87-1f0f2f0c9a11"])
async def test_get_booking_not_found(services, booking_id):
    with pytest.raises(BookingNotFoundError):
        await services.bookings.get_booking(booking_id)


@pytest.mark.asyncio
async def test_confirm_booking_records_payment(services, test_session, room_type_id, guest, notifier, clock):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    booking = await services.bookings.create_booking([hold.token], guest)

    confirmed = await services.bookings.confirm_booking(booking.id, payment_reference="pay_123")

    assert confirmed.status == BookingStatus.CONFIRMED
    assert confirmed.payment_reference == "pay_123"
    assert confirmed.paid_amount == Decimal("220.00")
    assert confirmed.confirmed_at == clock.now()
    assert notifier.names() == ["booking.created", "booking.confirmed"]

    again = await services.bookings.confirm_booking(booking.id, payment_reference="pay_456")
    assert again.payment_reference == "pay_123"

    entries = await list_audit_entries(test_session, booking.id)
    assert [entry.action for entry in entries] == ["created", "confirmed"]


@pytest.mark.asyncio
async def test_complete_booking_only_after_check_out(services, room_type_id, guest, clock):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    booking = await services.bookings.create_booking([hold.token], guest)

    with pytest.raises(InvalidStatusTransitionError):
        await services.bookings.complete_booking(booking.id)

    await services.bookings.confirm_booking(booking.id)
    with pytest.raises(InvalidStatusTransitionError):
        await services.bookings.complete_booking(booking.id)

    clock.set(datetime(2026, 3, 3, 11, 0, tzinfo=timezone.utc))
    completed = await services.bookings.complete_booking(booking.id)

    assert completed.status == BookingStatus.COMPLETE
    with pytest.raises(InvalidStatusTransitionError):
        await services.bookings.confirm_booking(booking.id)


@pytest.mark.asyncio
async def test_reschedule_moves_units_and_reprices(services, test_session, room_type_id, guest, notifier):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    booking = await services.bookings.create_booking([hold.token], guest)

    moved = await services.bookings.reschedule_booking(booking.id, date(2026, 3, 2), date(2026, 3, 5))

    assert (moved.check_in, moved.check_out) == (date(2026, 3, 2), date(2026, 3, 5))
    assert moved.subtotal == Decimal("300.00")
    assert moved.total_amount == Decimal("330.00")
    assert moved.lines[0].subtotal == Decimal("300.00")
    assert await availability(services, room_type_id, CHECK_IN, date(2026, 3, 5)) == [
        (0, 0, 2),
        (0, 1, 1),
        (0, 1, 1),
        (0, 1, 1),
    ]
    assert notifier.names()[-1] == "booking.rescheduled"

    entries = await list_audit_entries(test_session, booking.id)
    assert entries[-1].action == "rescheduled"
    assert entries[-1].details["from"] == ["2026-03-01", "2026-03-03"]


@pytest.mark.asyncio
async def test_reschedule_can_overlap_its_own_nights(services, room_type_id, guest):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT, quantity=2)
    booking = await services.bookings.create_booking([hold.token], guest)

    # Both units of 2026-03-02 belong to this booking already
    moved = await services.bookings.reschedule_booking(booking.id, date(2026, 3, 2), date(2026, 3, 4))

    assert moved.check_in == date(2026, 3, 2)
    assert await availability(services, room_type_id, CHECK_IN, date(2026, 3, 4)) == [
        (0, 0, 2),
        (0, 2, 0),
        (0, 2, 0),
    ]


@pytest.mark.asyncio
async def test_reschedule_without_capacity_changes_nothing(services, room_type_id, guest):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    booking = await services.bookings.create_booking([hold.token], guest)
    booking_id = booking.id
    await services.holds.create_hold(room_type_id, date(2026, 3, 10), date(2026, 3, 11), quantity=2)

    with pytest.raises(SlotUnavailableError):
        await services.bookings.reschedule_booking(booking_id, date(2026, 3, 9), date(2026, 3, 11))

    unchanged = await services.bookings.get_booking(booking_id)
    assert (unchanged.check_in, unchanged.check_out) == (CHECK_IN, CHECK_OUT)
    assert await availability(services, room_type_id) == [(0, 1, 1), (0, 1, 1)]


@pytest.mark.asyncio
async def test_reschedule_drops_coupon_that_is_no_longer_valid(services, test_session, room_type_id, guest, coupons, clock):
    coupons.add(Coupon(
        code="FEBONLY",
        discount_type=DiscountType.PERCENTAGE,
        amount=Decimal("10"),
        expires_on=date(2026, 2, 10),
    ))
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    booking = await services.bookings.create_booking([hold.token], guest, coupon_code="FEBONLY")
    assert booking.discount_amount == Decimal("20.00")

    clock.set(datetime(2026, 2, 15, 9, 0, tzinfo=timezone.utc))
    moved = await services.bookings.reschedule_booking(booking.id, date(2026, 3, 2), date(2026, 3, 4))

    assert moved.coupon_code is None
    assert moved.discount_amount == Decimal("0.00")
    assert moved.total_amount == Decimal("220.00")

    entries = await list_audit_entries(test_session, booking.id)
    assert entries[-1].details["coupon_dropped"]["code"] == "FEBONLY"


@pytest.mark.asyncio
async def test_reschedule_to_same_dates_is_a_noop(services, test_session, room_type_id, guest):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    booking = await services.bookings.create_booking([hold.token], guest)

    same = await services.bookings.reschedule_booking(booking.id, CHECK_IN, CHECK_OUT)

    assert same.total_amount == booking.total_amount
    entries = await list_audit_entries(test_session, booking.id)
    assert [entry.action for entry in entries] == ["created"]


@pytest.mark.asyncio
async def test_reschedule_cancelled_booking_fails(services, room_type_id, guest):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT)
    booking = await services.bookings.create_booking([hold.token], guest)
    await services.cancellations.cancel(booking.id)

    with pytest.raises(InvalidStatusTransitionError):
        await services.bookings.reschedule_booking(booking.id, date(2026, 3, 5), date(2026, 3, 6))
