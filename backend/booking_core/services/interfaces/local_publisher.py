"""
In-process publisher - calls registered subscribers directly.
"""

from typing import Awaitable, Callable

from booking_core.core.logging import get_logger
from booking_core.services.interfaces.publisher import ReservationEvent, ReservationEventPublisher

logger = get_logger(__name__)

Subscriber = Callable[[ReservationEvent], Awaitable[None]]


class LocalPublisher(ReservationEventPublisher):
    """
    Fan out to async callables registered in this process.

    Use when:
    - Single API process
    - Tests that need to observe emitted events
    """

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    async def publish(self, event: ReservationEvent) -> None:
        logger.info(
            "reservation_event",
            event_name=event.event,
            reservation_id=event.reservation_id,
            subscribers=len(self._subscribers),
        )
        for subscriber in list(self._subscribers):
            try:
                await subscriber(event)
            except Exception as e:
                # One broken consumer must not block the others
                logger.error(
                    "reservation_event_subscriber_failed",
                    event_name=event.event,
                    reservation_id=event.reservation_id,
                    error=str(e),
                )

    async def close(self) -> None:
        self._subscribers.clear()
