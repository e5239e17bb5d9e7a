"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

PROBLEM_JSON = "application/problem+json"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        # Create the problem details object
        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if detail:
            self.problem_details["detail"] = detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        # Add extensions
        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        return self.problem_details.get("code")

    def __str__(self) -> str:
        return self.problem_details.get("detail") or self.title


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri="https://example.com/problems/validation-error",
            instance=instance,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri="https://example.com/problems/authentication-required",
            instance=instance,
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri="https://example.com/problems/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


# Booking engine exceptions

class CapacityExceededError(ConflictError):
    """A ledger write would push held + booked units past the day's total."""

    def __init__(self, room_type_id: int, day: date, requested: int, available: int):
        super().__init__(
            detail=(
                f"Room type {room_type_id} on {day.isoformat()} has insufficient capacity. "
                f"Requested: {requested}, Available: {available}"
            ),
            conflicting_resource={
                "room_type_id": room_type_id,
                "date": day.isoformat(),
                "requested_units": requested,
                "available_units": available,
            }
        )
        self.room_type_id = room_type_id
        self.day = day
        self.requested = requested
        self.available = available
        self.problem_details.update({
            "code": "CAPACITY_EXCEEDED",
            "retryable": False
        })


class SlotUnavailableError(ConflictError):
    """At least one night of the requested stay cannot supply the quantity."""

    def __init__(
        self,
        room_type_id: int,
        check_in: date,
        check_out: date,
        requested: int,
        unavailable_date: Optional[date] = None,
        available: Optional[int] = None,
    ):
        detail = (
            f"Room type {room_type_id} is not available for {requested} unit(s) "
            f"between {check_in.isoformat()} and {check_out.isoformat()}"
        )
        if unavailable_date:
            detail += f" (first unavailable night: {unavailable_date.isoformat()})"

        super().__init__(detail=detail)
        self.room_type_id = room_type_id
        self.unavailable_date = unavailable_date
        self.problem_details.update({
            "code": "SLOT_UNAVAILABLE",
            "retryable": False,
            "room_type_id": room_type_id,
            "check_in": check_in.isoformat(),
            "check_out": check_out.isoformat(),
            "requested_units": requested,
        })
        if unavailable_date:
            self.problem_details["unavailable_date"] = unavailable_date.isoformat()
        if available is not None:
            self.problem_details["available_units"] = available


class HoldNotFoundError(NotFoundError):
    """The hold token is unknown or the hold is no longer active."""

    def __init__(self, token: str, detail: Optional[str] = None):
        super().__init__(resource_type="hold", resource_id=token, detail=detail)
        self.token = token
        self.problem_details.update({
            "code": "HOLD_NOT_FOUND",
            "retryable": False
        })


class HoldExpiredError(ProblemDetailsException):
    """A hold referenced by a booking is past its expiry or otherwise inactive."""

    def __init__(self, token: str, expired_at: Optional[datetime] = None, status: Optional[str] = None):
        if expired_at is not None:
            detail = f"Hold {token} expired at {expired_at.isoformat()}"
        else:
            detail = f"Hold {token} is no longer active (status: {status})"

        extensions = {"code": "HOLD_EXPIRED", "retryable": False, "hold_token": token}
        if expired_at is not None:
            extensions["expired_at"] = expired_at.isoformat()
        if status is not None:
            extensions["hold_status"] = status

        super().__init__(
            status_code=410,
            title="Hold Expired",
            detail=detail,
            type_uri="https://example.com/problems/hold-expired",
            extensions=extensions,
        )
        self.token = token


class HoldExtensionLimitError(ConflictError):
    """The hold has already been extended the maximum number of times."""

    def __init__(self, token: str, max_extensions: int):
        super().__init__(
            detail=f"Hold {token} has reached the maximum of {max_extensions} extension(s)"
        )
        self.problem_details.update({
            "code": "HOLD_EXTENSION_LIMIT",
            "retryable": False,
            "hold_token": token,
            "max_extensions": max_extensions,
        })


class InvalidDateRangeError(ProblemDetailsException):
    """Check-in in the past, check-out not after check-in, or too far ahead."""

    def __init__(self, detail: str, check_in: Optional[date] = None, check_out: Optional[date] = None):
        extensions: Dict[str, Any] = {"code": "INVALID_DATE_RANGE", "retryable": False}
        if check_in:
            extensions["check_in"] = check_in.isoformat()
        if check_out:
            extensions["check_out"] = check_out.isoformat()

        super().__init__(
            status_code=422,
            title="Invalid Date Range",
            detail=detail,
            type_uri="https://example.com/problems/invalid-date-range",
            extensions=extensions,
        )


class CouponInvalidError(ProblemDetailsException):
    """Coupon code is unknown, inactive or expired."""

    def __init__(self, code: str, reason: str):
        super().__init__(
            status_code=422,
            title="Coupon Invalid",
            detail=f"Coupon '{code}' cannot be applied: {reason}",
            type_uri="https://example.com/problems/coupon-invalid",
            extensions={"code": "COUPON_INVALID", "retryable": False, "coupon_code": code, "reason": reason},
        )
        self.coupon_code = code
        self.reason = reason


class InvalidStatusTransitionError(ConflictError):
    """Booking status change not allowed from the current status."""

    def __init__(self, booking_id: str, current_status: str, target_status: str, detail: Optional[str] = None):
        super().__init__(
            detail=detail or f"Booking {booking_id} cannot move from {current_status} to {target_status}"
        )
        self.problem_details.update({
            "code": "INVALID_STATUS_TRANSITION",
            "retryable": False,
            "booking_id": booking_id,
            "current_status": current_status,
            "target_status": target_status,
        })


class TransactionAbortedError(ProblemDetailsException):
    """The atomic unit of work could not commit after bounded retries."""

    def __init__(self, operation: str, attempts: int, cause: Optional[str] = None):
        detail = f"Operation '{operation}' was aborted after {attempts} attempt(s)"
        if cause:
            detail += f": {cause}"

        super().__init__(
            status_code=503,
            title="Transaction Aborted",
            detail=detail,
            type_uri="https://example.com/problems/transaction-aborted",
            extensions={
                "code": "TRANSACTION_ABORTED",
                "retryable": True,
                "operation": operation,
                "attempts": attempts,
            },
            headers={"Retry-After": "1"},
        )
        self.operation = operation
        self.attempts = attempts


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    content = dict(exc.problem_details)
    content.setdefault("instance", request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=exc.headers,
        media_type=PROBLEM_JSON,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request body validation failures as Problem Details with violations."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "type": "https://example.com/problems/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "The request data failed validation",
            "instance": request.url.path,
            "violations": violations,
        },
        media_type=PROBLEM_JSON,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    problem_details = {
        "type": "https://example.com/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type=PROBLEM_JSON,
    )
