# src/utils/store_hours.py

"""Open/closed evaluation against a weekly business-hours map."""

from datetime import datetime

_DAY_NAMES: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def _to_minutes(value: str) -> int:
    """Convert ``"HH:MM"`` to minutes since midnight."""
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def is_store_open(
    business_hours: object,
    now: datetime | None = None,
) -> bool:
    """Return whether a store is open at *now* (local wall-clock time).

    Fails open: missing, malformed or unparsable hours report the store
    as open.  The window
    is inclusive on both ends.  Ranges that cross midnight (close before
    open) are not handled and evaluate as closed outside ``[open, close]``.
    """
    if not isinstance(business_hours, dict):
        return True

    current = now or datetime.now()
    today = business_hours.get(_DAY_NAMES[current.weekday()])
    if not isinstance(today, dict):
        return True

    open_raw = today.get("open")
    close_raw = today.get("close")
    if not open_raw or not close_raw:
        return True

    try:
        open_minutes = _to_minutes(str(open_raw))
        close_minutes = _to_minutes(str(close_raw))
    except ValueError:
        return True

    current_minutes = current.hour * 60 + current.minute
    return open_minutes <= current_minutes <= close_minutes
