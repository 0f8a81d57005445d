from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def isoformat_z(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds") + "Z"
