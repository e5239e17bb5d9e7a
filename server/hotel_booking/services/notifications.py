"""Fire-and-forget booking event notifications."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from ..core.observability import get_logger

logger = get_logger(__name__)

BOOKING_CREATED = "booking.created"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_RESCHEDULED = "booking.rescheduled"
BOOKING_CANCELLED = "booking.cancelled"

NotificationSink = Callable[[str, dict[str, Any]], Awaitable[None]]


class NotificationDispatcher(Protocol):
    def dispatch(self, event: str, payload: dict[str, Any]) -> None:
        """Hand an event off for delivery. Must not block the caller."""
        ...


async def log_sink(event: str, payload: dict[str, Any]) -> None:
    logger.info("Notification delivered", notification_event=event, **payload)


class BackgroundNotificationDispatcher:
    """Delivers each event on its own task so callers never wait on delivery."""

    def __init__(self, sink: NotificationSink = log_sink):
        self.sink = sink
        self._pending: set[asyncio.Task] = set()

    def dispatch(self, event: str, payload: dict[str, Any]) -> None:
        task = asyncio.get_running_loop().create_task(self.sink(event, payload))
        # The loop only keeps weak references to tasks
        self._pending.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Notification delivery failed",
                error_type=type(error).__name__,
                error=str(error),
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries, used on shutdown."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
