from booking_core.models.container import Container, Unit
from booking_core.models.ledger import LedgerEntry
from booking_core.models.reservation import Reservation

__all__ = ["Container", "Unit", "LedgerEntry", "Reservation"]
