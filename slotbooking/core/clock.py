from datetime import datetime, timezone


def utc_now() -> datetime:
    """Naive UTC timestamp, the form slot expiry values are stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)
