"""Booking router for booking lifecycle operations."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from ..core.dependencies import BookingServices, OptionalPrincipal, ServicesDependency, principal_id_of
from ..core.exceptions import ProblemDetailsException
from ..schemas.booking import (
    Booking,
    BookingIdRequest,
    BookingLine,
    CancelBookingRequest,
    CancellationResponse,
    ConfirmBookingRequest,
    CreateBookingRequest,
    RefundQuote,
    RescheduleBookingRequest,
)
from ..schemas.common import problem_responses

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/booking",
    tags=["booking"],
    responses=problem_responses(404, 409, 410, 422, 503),
)


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=str(booking_model.id),
        code=booking_model.code,
        status=booking_model.status,
        check_in=booking_model.check_in,
        check_out=booking_model.check_out,
        guest_name=booking_model.guest_name,
        guest_email=booking_model.guest_email,
        lines=[
            BookingLine(
                room_type_id=line.room_type_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=line.subtotal,
                occupancy=line.occupancy,
            )
            for line in booking_model.lines
        ],
        currency=booking_model.currency,
        coupon_code=booking_model.coupon_code,
        subtotal=booking_model.subtotal,
        discount_amount=booking_model.discount_amount,
        tax_amount=booking_model.tax_amount,
        total_amount=booking_model.total_amount,
        tax_inclusive=booking_model.tax_inclusive,
        payment_reference=booking_model.payment_reference,
        paid_amount=booking_model.paid_amount,
        refund_amount=booking_model.refund_amount,
        refund_percentage=booking_model.refund_percentage,
        refund_status=booking_model.refund_status,
        created_at=booking_model.created_at,
        cancelled_at=booking_model.cancelled_at,
    )


def _booking_response(booking_model, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=_convert_booking_to_schema(booking_model).model_dump(mode="json")
    )


@router.post("/create", response_model=Booking, status_code=201)
async def create_booking(
    request: CreateBookingRequest,
    services: BookingServices = ServicesDependency,
    principal: Optional[dict] = OptionalPrincipal,
) -> JSONResponse:
    """
    Create a pending booking from active holds.

    The stay is re-priced at current rates; any price the client saw
    earlier is only indicative.
    """
    try:
        booking = await services.bookings.create_booking(
            request.hold_tokens,
            request.guest,
            coupon_code=request.coupon_code,
            principal_id=principal_id_of(principal),
            occupancy=request.occupancy,
        )
        return _booking_response(booking, status_code=201)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking creation",
            extra={"hold_tokens": request.hold_tokens, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Booking)
async def get_booking(
    request: BookingIdRequest,
    services: BookingServices = ServicesDependency,
) -> JSONResponse:
    """
    Get booking details.

    This is a read operation and does not change the booking.
    """
    try:
        booking = await services.bookings.get_booking(request.booking_id)

        logger.info(
            "Booking retrieved successfully",
            extra={
                "booking_id": request.booking_id,
                "booking_code": booking.code
            }
        )

        return _booking_response(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking retrieval",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/reschedule", response_model=Booking)
async def reschedule_booking(
    request: RescheduleBookingRequest,
    services: BookingServices = ServicesDependency,
    principal: Optional[dict] = OptionalPrincipal,
) -> JSONResponse:
    """Move a booking to new dates, re-priced at current rates."""
    try:
        booking = await services.bookings.reschedule_booking(
            request.booking_id,
            request.check_in,
            request.check_out,
            actor=principal_id_of(principal),
        )
        return _booking_response(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking reschedule",
            extra={
                "booking_id": request.booking_id,
                "check_in": request.check_in.isoformat(),
                "check_out": request.check_out.isoformat(),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/confirm", response_model=Booking)
async def confirm_booking(
    request: ConfirmBookingRequest,
    services: BookingServices = ServicesDependency,
    principal: Optional[dict] = OptionalPrincipal,
) -> JSONResponse:
    """
    Confirm a pending booking after payment capture or manual approval.

    Confirming an already confirmed booking returns it unchanged.
    """
    try:
        booking = await services.bookings.confirm_booking(
            request.booking_id,
            payment_reference=request.payment_reference,
            paid_amount=request.paid_amount,
            actor=principal_id_of(principal),
        )
        return _booking_response(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking confirmation",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/complete", response_model=Booking)
async def complete_booking(
    request: BookingIdRequest,
    services: BookingServices = ServicesDependency,
    principal: Optional[dict] = OptionalPrincipal,
) -> JSONResponse:
    """Mark a confirmed booking complete once the guest has checked out."""
    try:
        booking = await services.bookings.complete_booking(
            request.booking_id,
            actor=principal_id_of(principal),
        )
        return _booking_response(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking completion",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/cancel", response_model=CancellationResponse)
async def cancel_booking(
    request: CancelBookingRequest,
    services: BookingServices = ServicesDependency,
    principal: Optional[dict] = OptionalPrincipal,
) -> JSONResponse:
    """
    Cancel a booking and release its rooms.

    Cancelling is never blocked by refund eligibility. Repeating the call
    returns the original refund decision.
    """
    try:
        result = await services.cancellations.cancel(
            request.booking_id,
            reason=request.reason,
            actor=principal_id_of(principal),
        )
        response_data = CancellationResponse(
            booking=_convert_booking_to_schema(result.booking),
            refund=result.refund,
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking cancellation",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/refund-preview", response_model=RefundQuote)
async def preview_refund(
    request: BookingIdRequest,
    services: BookingServices = ServicesDependency,
) -> JSONResponse:
    """Show the refund a cancellation would produce right now."""
    try:
        refund = await services.cancellations.preview_refund(request.booking_id)

        return JSONResponse(
            status_code=200,
            content=refund.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in refund preview",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
