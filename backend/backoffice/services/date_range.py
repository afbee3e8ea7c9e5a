# Overview: Turns CLI/API date options into an inclusive (from, to) window.

from __future__ import annotations

from datetime import date, timedelta

from ..time_utils import parse_date


DEFAULT_LAST_DAYS = 7


class DateRangeError(ValueError):
    """Raised when date options are missing, unparseable or inverted."""


def _require_date(value, label: str) -> date:
    parsed = parse_date(value)
    if parsed is None:
        raise DateRangeError(f"Invalid {label} date: {value!r}")
    return parsed


def resolve_date_range(
    *,
    single_date=None,
    from_date=None,
    to_date=None,
    last_days: int | None = None,
    today: date | None = None,
) -> tuple[date, date]:
    """
    Precedence: a single date, then from/to, then "last N days".

    "Last N days" spans today minus N through today; with nothing given N
    is 7. A lone from runs through today; a lone to starts on the same day.
    """
    today = today or date.today()

    if single_date:
        day = _require_date(single_date, "single")
        return day, day

    if from_date or to_date:
        start = _require_date(from_date, "from") if from_date else None
        end = _require_date(to_date, "to") if to_date else today
        if start is None:
            start = end
        if start > end:
            raise DateRangeError(f"from date {start} is after to date {end}")
        return start, end

    days = DEFAULT_LAST_DAYS if last_days is None else int(last_days)
    if days < 1:
        raise DateRangeError("last_days must be at least 1")
    return today - timedelta(days=days), today


def format_range(from_date: date, to_date: date) -> str:
    if from_date == to_date:
        return from_date.isoformat()
    return f"{from_date.isoformat()} to {to_date.isoformat()}"
