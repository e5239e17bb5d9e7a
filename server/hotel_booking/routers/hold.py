"""Hold router for quoting and room hold operations."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from ..core.dependencies import BookingServices, OptionalPrincipal, ServicesDependency, principal_id_of
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import problem_responses
from ..schemas.hold import (
    CreateHoldRequest,
    ExtendHoldRequest,
    Hold,
    HoldsResponse,
    HoldTokenRequest,
    ReleaseHoldResponse,
)
from ..schemas.pricing import BookingQuote, QuoteRequest

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/booking",
    tags=["holds"],
    responses=problem_responses(404, 409, 410, 422, 503),
)


def _convert_hold_to_schema(hold_model, now: datetime) -> Hold:
    """Convert hold model to schema, reporting the status as of ``now``."""
    return Hold(
        token=hold_model.token,
        room_type_id=hold_model.room_type_id,
        check_in=hold_model.check_in,
        check_out=hold_model.check_out,
        quantity=hold_model.quantity,
        status=hold_model.effective_status(now),
        expires_at=hold_model.expires_at,
        remaining_seconds=hold_model.remaining_seconds(now),
        extension_count=hold_model.extension_count,
    )


@router.post("/quote", response_model=BookingQuote)
async def quote_stay(
    request: QuoteRequest,
    services: BookingServices = ServicesDependency,
) -> JSONResponse:
    """
    Price a stay without reserving anything.

    The quote reports per-night availability so clients can tell whether
    a hold would currently succeed.
    """
    try:
        quote = await services.pricing.quote_booking(
            request.rooms,
            request.check_in,
            request.check_out,
            coupon_code=request.coupon_code,
        )

        return JSONResponse(
            status_code=200,
            content=quote.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in quote",
            extra={
                "check_in": request.check_in.isoformat(),
                "check_out": request.check_out.isoformat(),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/hold", response_model=HoldsResponse, status_code=201)
async def create_hold(
    request: CreateHoldRequest,
    services: BookingServices = ServicesDependency,
    principal: Optional[dict] = OptionalPrincipal,
) -> JSONResponse:
    """
    Hold rooms for a stay.

    Every requested room type is held for every night, or nothing is held.
    One hold token is returned per room type line.
    """
    try:
        holds = await services.holds.create_holds(
            request.rooms,
            request.check_in,
            request.check_out,
            ttl_seconds=request.ttl_seconds,
            principal_id=principal_id_of(principal),
        )
        now = services.holds.clock.now()
        response_data = HoldsResponse(holds=[_convert_hold_to_schema(hold, now) for hold in holds])

        return JSONResponse(
            status_code=201,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hold creation",
            extra={
                "rooms": [room.model_dump() for room in request.rooms],
                "check_in": request.check_in.isoformat(),
                "check_out": request.check_out.isoformat(),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/hold/get", response_model=Hold)
async def get_hold(
    request: HoldTokenRequest,
    services: BookingServices = ServicesDependency,
) -> JSONResponse:
    """
    Get a hold by token.

    Expired holds are reported as expired even before their units are reclaimed.
    """
    try:
        hold = await services.holds.get_hold(request.token)
        response_data = _convert_hold_to_schema(hold, services.holds.clock.now())

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hold retrieval",
            extra={"hold_token": request.token, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/hold/extend", response_model=Hold)
async def extend_hold(
    request: ExtendHoldRequest,
    services: BookingServices = ServicesDependency,
) -> JSONResponse:
    """Extend an active hold's expiry."""
    try:
        hold = await services.holds.extend_hold(request.token, request.ttl_seconds)
        response_data = _convert_hold_to_schema(hold, services.holds.clock.now())

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hold extension",
            extra={"hold_token": request.token, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/hold/release", response_model=ReleaseHoldResponse)
async def release_hold(
    request: HoldTokenRequest,
    services: BookingServices = ServicesDependency,
) -> JSONResponse:
    """
    Release a hold.

    Releasing a hold that already expired, was consumed, or was released
    succeeds with ``released: false``.
    """
    try:
        released = await services.holds.release_hold(request.token)
        response_data = ReleaseHoldResponse(token=request.token, released=released)

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hold release",
            extra={"hold_token": request.token, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
