"""Unit tests for cancellation policies and refunds."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from hotel_booking.core.exceptions import InvalidStatusTransitionError
from hotel_booking.models.booking import BookingStatus, RefundStatus
from hotel_booking.services.booking_store import list_audit_entries
from hotel_booking.services.cancellation import PolicyTier, compute_refund, select_tier

CHECK_IN = date(2026, 3, 1)
CHECK_OUT = date(2026, 3, 3)

TIERS = [PolicyTier(7, 100), PolicyTier(3, 50), PolicyTier(0, 0)]


@pytest.mark.parametrize(
    "lead_days,expected",
    [
        (10, 100),
        (7, 100),
        (6, 50),
        (3, 50),
        (2, 0),
        (0, 0),
    ],
)
def test_select_tier_uses_largest_threshold_within_lead_time(lead_days, expected):
    assert select_tier(TIERS, lead_days).refund_percentage == expected


def test_select_tier_ignores_tier_order():
    assert select_tier(list(reversed(TIERS)), 5).days_before_check_in == 3


def test_select_tier_after_check_in_has_no_tier():
    assert select_tier(TIERS, -1) is None
    assert select_tier([PolicyTier(1, 100)], 0) is None


def test_compute_refund_rounds_half_up():
    assert compute_refund(Decimal("220.00"), 50) == Decimal("110.00")
    assert compute_refund(Decimal("0.05"), 50) == Decimal("0.03")
    assert compute_refund(Decimal("99.99"), 0) == Decimal("0.00")


@pytest_asyncio.fixture
async def tiered_room_type(create_policy, create_room_type):
    policy_id = await create_policy([(7, 100), (3, 50), (0, 0)])
    return await create_room_type(name="Garden View", cancellation_policy_id=policy_id)


async def book(services, room_type_id, guest, quantity=1):
    hold = await services.holds.create_hold(room_type_id, CHECK_IN, CHECK_OUT, quantity=quantity)
    return await services.bookings.create_booking([hold.token], guest)


@pytest.mark.asyncio
async def test_cancel_early_gets_full_refund_and_releases_units(services, tiered_room_type, guest, notifier):
    booking = await book(services, tiered_room_type, guest, quantity=2)

    result = await services.cancellations.cancel(booking.id, reason="Plans changed")

    assert result.already_cancelled is False
    assert result.booking.status == BookingStatus.CANCELLED
    assert result.booking.cancellation_reason == "Plans changed"
    assert result.booking.refund_status == RefundStatus.PENDING
    assert result.refund.lead_days == 28
    assert result.refund.policy_name == "Flexible"
    assert result.refund.refund_percentage == 100
    assert result.refund.refund_amount == Decimal("440.00")

    days = await services.ledger.get_availability(tiered_room_type, CHECK_IN, CHECK_OUT)
    assert all(day.booked_units == 0 and day.available_units == 2 for day in days)
    assert notifier.names()[-1] == "booking.cancelled"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "today,percentage,amount",
    [
        (datetime(2026, 2, 22, 12, 0, tzinfo=timezone.utc), 100, Decimal("220.00")),
        (datetime(2026, 2, 25, 12, 0, tzinfo=timezone.utc), 50, Decimal("110.00")),
        (datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc), 0, Decimal("0.00")),
    ],
    ids=["seven-days", "four-days", "same-day"],
)
async def test_refund_tier_follows_lead_time(services, tiered_room_type, guest, clock, today, percentage, amount):
    booking = await book(services, tiered_room_type, guest)
    clock.set(today)

    result = await services.cancellations.cancel(booking.id)

    assert result.refund.refund_percentage == percentage
    assert result.refund.refund_amount == amount


@pytest.mark.asyncio
async def test_late_cancellation_still_releases_units(services, tiered_room_type, guest, clock):
    booking = await book(services, tiered_room_type, guest)
    clock.set(datetime(2026, 3, 1, 15, 0, tzinfo=timezone.utc))

    result = await services.cancellations.cancel(booking.id)

    assert result.booking.refund_status == RefundStatus.NOT_APPLICABLE
    assert await services.ledger.min_available(tiered_room_type, CHECK_IN, CHECK_OUT) == 2


@pytest.mark.asyncio
async def test_refund_is_based_on_amount_paid(services, tiered_room_type, guest, clock):
    booking = await book(services, tiered_room_type, guest)
    await services.bookings.confirm_booking(booking.id, payment_reference="dep_1", paid_amount=Decimal("100.00"))
    clock.set(datetime(2026, 2, 25, 12, 0, tzinfo=timezone.utc))

    result = await services.cancellations.cancel(booking.id)

    assert result.refund.refund_base == Decimal("100.00")
    assert result.refund.refund_amount == Decimal("50.00")


@pytest.mark.asyncio
async def test_cancel_twice_returns_stored_refund(services, test_session, tiered_room_type, guest, clock):
    booking = await book(services, tiered_room_type, guest)
    first = await services.cancellations.cancel(booking.id)

    # A later retry must not re-evaluate the refund against the new date
    clock.set(datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc))
    second = await services.cancellations.cancel(booking.id)

    assert second.already_cancelled is True
    assert second.refund.refund_amount == first.refund.refund_amount == Decimal("220.00")
    assert second.refund.refund_percentage == 100

    entries = await list_audit_entries(test_session, booking.id)
    assert [entry.action for entry in entries] == ["created", "cancelled"]


@pytest.mark.asyncio
async def test_non_refundable_policy(services, create_policy, create_room_type, guest):
    policy_id = await create_policy([(30, 100)], name="Advance Purchase", is_refundable=False)
    room_type_id = await create_room_type(name="Saver", cancellation_policy_id=policy_id)
    booking = await book(services, room_type_id, guest)

    result = await services.cancellations.cancel(booking.id)

    assert result.refund.policy_name == "Advance Purchase"
    assert result.refund.refund_percentage == 0
    assert result.refund.refund_amount == Decimal("0.00")


@pytest.mark.asyncio
async def test_default_policy_applies_when_room_type_has_none(services, create_policy, room_type_id, guest):
    await create_policy([(14, 80)], name="House Default", is_default=True)
    booking = await book(services, room_type_id, guest)

    refund = await services.cancellations.preview_refund(booking.id)

    assert refund.policy_name == "House Default"
    assert refund.refund_percentage == 80
    assert refund.refund_amount == Decimal("176.00")


@pytest.mark.asyncio
async def test_configured_fallback_without_any_policy(services, room_type_id, guest, clock):
    booking = await book(services, room_type_id, guest)

    assert (await services.cancellations.preview_refund(booking.id)).refund_percentage == 100

    clock.set(datetime(2026, 3, 1, 7, 0, tzinfo=timezone.utc))
    refund = await services.cancellations.preview_refund(booking.id)
    assert refund.policy_name == "Standard"
    assert refund.refund_percentage == 0


@pytest.mark.asyncio
async def test_preview_refund_changes_nothing(services, tiered_room_type, guest):
    booking = await book(services, tiered_room_type, guest)

    refund = await services.cancellations.preview_refund(booking.id)

    assert refund.refund_amount == Decimal("220.00")
    assert (await services.bookings.get_booking(booking.id)).status == BookingStatus.PENDING


@pytest.mark.asyncio
async def test_cancel_complete_booking_fails(services, tiered_room_type, guest, clock):
    booking = await book(services, tiered_room_type, guest)
    await services.bookings.confirm_booking(booking.id)
    clock.set(datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc))
    await services.bookings.complete_booking(booking.id)

    with pytest.raises(InvalidStatusTransitionError):
        await services.cancellations.cancel(booking.id)
    with pytest.raises(InvalidStatusTransitionError):
        await services.cancellations.preview_refund(booking.id)
