"""Inventory router for availability and capacity operations."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from ..core.dependencies import BookingServices, OptionalPrincipal, ServicesDependency, principal_id_of
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import problem_responses
from ..schemas.inventory import (
    AdjustInventoryRequest,
    AvailabilityRequest,
    AvailabilityResponse,
    InventoryAdjustment,
    InventoryChangeResponse,
    SetRateRequest,
    StopSellRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/inventory",
    tags=["inventory"],
    responses=problem_responses(401, 404, 409, 422),
)


def _convert_adjustment_to_schema(adjustment_model) -> InventoryAdjustment:
    """Convert inventory adjustment model to schema."""
    return InventoryAdjustment(
        room_type_id=adjustment_model.room_type_id,
        day=adjustment_model.day,
        delta=adjustment_model.delta,
        total_units_before=adjustment_model.total_units_before,
        total_units_after=adjustment_model.total_units_after,
        reason=adjustment_model.reason,
        actor=adjustment_model.actor,
        created_at=adjustment_model.created_at,
    )


@router.post("/availability", response_model=AvailabilityResponse)
async def get_availability(
    request: AvailabilityRequest,
    services: BookingServices = ServicesDependency,
) -> JSONResponse:
    """
    Per-night availability calendar for a room type.

    Expired holds never count against the reported availability.
    """
    try:
        days = await services.ledger.get_availability(request.room_type_id, request.start, request.end)
        response_data = AvailabilityResponse(
            room_type_id=request.room_type_id,
            days=days,
            min_available=min(day.available_units for day in days),
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in availability lookup",
            extra={"room_type_id": request.room_type_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/adjust", response_model=InventoryChangeResponse)
async def adjust_inventory(
    request: AdjustInventoryRequest,
    services: BookingServices = ServicesDependency,
    principal: Optional[dict] = OptionalPrincipal,
) -> JSONResponse:
    """
    Set total units for a date span.

    Fails without changing anything if a date already has more units held
    or booked than the new total.
    """
    actor = principal_id_of(principal) or "system"
    try:
        adjustments = await services.ledger.adjust_total_units(
            request.room_type_id,
            request.start,
            request.end,
            request.total_units,
            actor=actor,
            reason=request.reason,
        )
        response_data = InventoryChangeResponse(
            room_type_id=request.room_type_id,
            days_changed=len(adjustments),
            adjustments=[_convert_adjustment_to_schema(adjustment) for adjustment in adjustments],
        )

        logger.info(
            "Inventory adjustment completed",
            extra={
                "room_type_id": request.room_type_id,
                "total_units": request.total_units,
                "actor": actor,
                "days_changed": len(adjustments)
            }
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in inventory adjustment",
            extra={
                "room_type_id": request.room_type_id,
                "total_units": request.total_units,
                "reason": request.reason,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/rates", response_model=InventoryChangeResponse)
async def set_rates(
    request: SetRateRequest,
    services: BookingServices = ServicesDependency,
) -> JSONResponse:
    """Set or clear (``rate: null``) nightly rate overrides for a date span."""
    try:
        changed = await services.ledger.set_rate(
            request.room_type_id,
            request.start,
            request.end,
            request.rate,
            days_of_week=request.days_of_week,
        )
        response_data = InventoryChangeResponse(room_type_id=request.room_type_id, days_changed=changed)

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in rate update",
            extra={"room_type_id": request.room_type_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/stop-sell", response_model=InventoryChangeResponse)
async def set_stop_sell(
    request: StopSellRequest,
    services: BookingServices = ServicesDependency,
) -> JSONResponse:
    """Stop or resume selling a room type for a date span."""
    try:
        changed = await services.ledger.set_stop_sell(
            request.room_type_id,
            request.start,
            request.end,
            request.blocked,
        )
        response_data = InventoryChangeResponse(room_type_id=request.room_type_id, days_changed=changed)

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in stop-sell update",
            extra={"room_type_id": request.room_type_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
