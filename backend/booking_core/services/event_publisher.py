"""
Redis pub/sub publisher for reservation events.
Implements ReservationEventPublisher using the shared async Redis client.

Fail-open:
  When Redis is down the event is logged and dropped. The ledger transition
  has already committed and is authoritative; downstream consumers (QR
  generation, receipts) can reconcile from the reservations table.
"""

import json

from booking_core.core.config import get_settings
from booking_core.core.logging import get_logger
from booking_core.core.metrics import redis_connection_errors
from booking_core.services.cache_service import get_redis
from booking_core.services.interfaces.publisher import ReservationEvent, ReservationEventPublisher

logger = get_logger(__name__)


class RedisPublisher(ReservationEventPublisher):
    """
    Publish each event as JSON on a Redis channel.

    Use when:
    - Several API workers run behind a load balancer
    - Consumers live in separate processes
    """

    def __init__(self, channel: str = None):
        self.channel = channel or get_settings().RESERVATION_EVENTS_CHANNEL

    async def publish(self, event: ReservationEvent) -> None:
        client = await get_redis()
        if client is None:
            logger.warning("reservation_event_dropped", event_name=event.event, reason="redis_unavailable")
            return

        try:
            receivers = await client.publish(self.channel, json.dumps(event.to_dict()))
            logger.info(
                "reservation_event_published",
                event_name=event.event,
                reservation_id=event.reservation_id,
                receivers=receivers,
            )
        except Exception as e:
            redis_connection_errors.inc()
            logger.error(
                "reservation_event_publish_failed",
                event_name=event.event,
                reservation_id=event.reservation_id,
                error=str(e),
            )

    async def close(self) -> None:
        """The Redis client is shared and closed at shutdown by cache_service."""
        pass
