"""Single source of "now" so expiry behaviour can be driven from tests."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
