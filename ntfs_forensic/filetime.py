"""Windows FILETIME (100ns ticks since 1601-01-01 UTC) conversions."""

from datetime import datetime, timezone, timedelta

EPOCH_1601 = datetime(1601, 1, 1, tzinfo=timezone.utc)


def filetime_to_datetime(ticks: int) -> datetime:
    """
    Convert a signed FILETIME to an aware UTC datetime.
    Raises OverflowError when the value falls outside what datetime can hold.
    """
    # integer arithmetic keeps the microsecond exact; the 100ns remainder is dropped
    return EPOCH_1601 + timedelta(microseconds=ticks // 10)


def filetime_to_iso(ticks: int | None) -> str:
    """ISO string for a FILETIME, or empty when unset / out of range."""
    if ticks is None or ticks == 0 or ticks == 0x7FFFFFFFFFFFFFFF:
        return ""
    try:
        return filetime_to_datetime(ticks).isoformat()
    except OverflowError:
        return f"(invalid: {ticks})"


def datetime_to_filetime(dt: datetime) -> int:
    """Inverse of filetime_to_datetime; naive datetimes are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - EPOCH_1601
    return (delta.days * 86_400 + delta.seconds) * 10_000_000 + delta.microseconds * 10
