from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def round_price(value: float) -> float:
    return round(float(value) + 1e-9, 2)


def floor_price(value: float) -> float:
    """Round down to the cent so a clamped price never exceeds its ceiling."""
    cents = int(float(value) * 100 + 1e-6)
    return cents / 100.0
