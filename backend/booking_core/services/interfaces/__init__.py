"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .publisher import ReservationEvent, ReservationEventPublisher
from .local_publisher import LocalPublisher

__all__ = ['ReservationEvent', 'ReservationEventPublisher', 'LocalPublisher']
