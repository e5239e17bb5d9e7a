"""FastAPI dependencies for services and authentication."""

from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, Request
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from ..services.booking_composer import BookingComposer
from ..services.cancellation import CancellationEngine
from ..services.hold_manager import HoldManager
from ..services.inventory_ledger import InventoryLedger
from ..services.lookups import CouponLookup, StaticCouponLookup, StaticTaxConfigLookup, TaxConfigLookup
from ..services.notifications import BackgroundNotificationDispatcher, NotificationDispatcher
from ..services.pricing import PricingEngine
from .clock import Clock, SystemClock
from .config import Settings, settings
from .database import get_db
from .exceptions import AuthenticationError
from .locking import InventoryLockManager


@dataclass
class BookingServices:
    """Every booking component bound to one database session."""

    ledger: InventoryLedger
    pricing: PricingEngine
    holds: HoldManager
    bookings: BookingComposer
    cancellations: CancellationEngine


def build_services(
    session: AsyncSession,
    clock: Clock,
    lock_manager: InventoryLockManager,
    app_settings: Settings = settings,
    coupons: Optional[CouponLookup] = None,
    taxes: Optional[TaxConfigLookup] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> BookingServices:
    """Wire the components together around ``session``."""
    coupons = coupons if coupons is not None else StaticCouponLookup()
    taxes = taxes if taxes is not None else StaticTaxConfigLookup.from_settings(app_settings)
    notifier = notifier if notifier is not None else BackgroundNotificationDispatcher()

    ledger = InventoryLedger(session, clock, lock_manager, app_settings)
    pricing = PricingEngine(ledger, coupons, taxes, clock, app_settings)
    return BookingServices(
        ledger=ledger,
        pricing=pricing,
        holds=HoldManager(session, ledger, clock, app_settings),
        bookings=BookingComposer(session, ledger, pricing, clock, notifier, app_settings),
        cancellations=CancellationEngine(session, ledger, clock, notifier, app_settings),
    )


def configure_app_state(
    app,
    app_settings: Settings = settings,
    clock: Optional[Clock] = None,
    lock_manager: Optional[InventoryLockManager] = None,
    coupons: Optional[CouponLookup] = None,
    taxes: Optional[TaxConfigLookup] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> None:
    """
    Attach the process-wide collaborators the request dependencies read.

    The lock manager must be shared by every request in the process so that
    concurrent operations on the same room type and night serialize.
    """
    app.state.settings = app_settings
    app.state.clock = clock or SystemClock(app_settings.tzinfo)
    app.state.lock_manager = lock_manager or InventoryLockManager(app_settings.lock_timeout_seconds)
    app.state.coupons = coupons if coupons is not None else StaticCouponLookup()
    app.state.taxes = taxes if taxes is not None else StaticTaxConfigLookup.from_settings(app_settings)
    app.state.notifier = notifier if notifier is not None else BackgroundNotificationDispatcher()


# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


async def get_services(request: Request, db: AsyncSession = DB_DEPENDENCY) -> BookingServices:
    """
    Services dependency built per request from the application state.

    Returns:
        BookingServices: Components bound to the request's session
    """
    state = request.app.state
    return build_services(
        db,
        state.clock,
        state.lock_manager,
        state.settings,
        coupons=state.coupons,
        taxes=state.taxes,
        notifier=state.notifier,
    )


async def get_optional_principal(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> Optional[dict]:
    """
    Authentication dependency that accepts anonymous callers.

    Args:
        authorization: Optional Authorization header with Bearer token

    Returns:
        dict: Principal from the validated token, or None when no token was sent

    Raises:
        AuthenticationError: If a token was sent but is malformed, expired or badly signed
    """
    if not authorization:
        return None

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format") from None
    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    secret = request.app.state.settings.bearer_token_secret
    try:
        # PyJWT rejects expired tokens itself when an exp claim is present
        payload = jwt.decode(token, secret, algorithms=["HS256"])
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {e}") from e

    principal_id = payload.get("sub")
    if principal_id is None:
        raise AuthenticationError(detail="Invalid token payload")

    return {
        "principal_id": str(principal_id),
        "username": payload.get("username"),
        "roles": payload.get("roles", []),
    }


def principal_id_of(principal: Optional[dict]) -> Optional[str]:
    return principal["principal_id"] if principal else None


ServicesDependency = Depends(get_services)
OptionalPrincipal = Depends(get_optional_principal)
