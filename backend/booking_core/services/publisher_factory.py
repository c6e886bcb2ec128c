"""
Event publisher factory.
Configures how reservation events leave the process.
"""

from typing import Optional

from booking_core.core.config import get_settings
from booking_core.services.event_publisher import RedisPublisher
from booking_core.services.interfaces.local_publisher import LocalPublisher
from booking_core.services.interfaces.publisher import ReservationEventPublisher


def create_publisher() -> ReservationEventPublisher:
    """
    Build the configured publisher.

    - local: in-process subscribers (default)
    - redis: Redis pub/sub on RESERVATION_EVENTS_CHANNEL

    Selected via the EVENT_PUBLISHER env var.
    """
    strategy = get_settings().EVENT_PUBLISHER

    if strategy == 'redis':
        return RedisPublisher()
    else:
        return LocalPublisher()


# Singleton instance
_publisher: Optional[ReservationEventPublisher] = None


def get_publisher() -> ReservationEventPublisher:
    """Get event publisher singleton."""
    global _publisher
    if _publisher is None:
        _publisher = create_publisher()
    return _publisher


def set_publisher(publisher: Optional[ReservationEventPublisher]) -> None:
    """Replace the singleton (tests, custom wiring). None resets to the configured default."""
    global _publisher
    _publisher = publisher
