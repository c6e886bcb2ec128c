"""
Reservation event publisher interface.
Allows swapping how terminal transitions are announced without touching the
release manager.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

RESERVATION_CONFIRMED = "ReservationConfirmed"
RESERVATION_EXPIRED = "ReservationExpired"
RESERVATION_CANCELLED = "ReservationCancelled"


@dataclass(frozen=True)
class ReservationEvent:
    event: str
    reservation_id: str
    container_id: str
    requester_id: str
    unit_ids: tuple[str, ...]
    occurred_at: datetime

    def to_dict(self) -> dict:
        return {
            "event": self.event,
            "reservation_id": self.reservation_id,
            "container_id": self.container_id,
            "requester_id": self.requester_id,
            "unit_ids": list(self.unit_ids),
            "occurred_at": self.occurred_at.isoformat(),
        }


class ReservationEventPublisher(ABC):
    """
    Interface for reservation event delivery.

    Implementations:
    - LocalPublisher: in-process subscribers (QR generation, receipts, tests)
    - RedisPublisher: Redis pub/sub for consumers in other processes

    Events are published after the transition is committed. A failed publish
    never rolls the transition back.
    """

    @abstractmethod
    async def publish(self, event: ReservationEvent) -> None:
        """
        Deliver an event.

        Args:
            event: The committed terminal transition
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release any resources held by the publisher."""
        pass
