"""Calendar-month billing periods (UTC)."""

import calendar
from dataclasses import dataclass
from datetime import UTC, date, datetime

from meterline.models.billing import UsageRecord


@dataclass(frozen=True)
class BillingPeriod:
    """First and last day of a billing period as ISO dates (inclusive)."""

    start: str
    end: str


def as_utc(now: datetime | None = None) -> datetime:
    """Normalize ``now`` to an aware UTC datetime, defaulting to the clock.

    Naive datetimes are taken to be UTC.
    """
    if now is None:
        return datetime.now(UTC)
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now.astimezone(UTC)


def current_period(now: datetime | None = None) -> BillingPeriod:
    """Return the calendar month containing ``now``.

    Aware datetimes are converted to UTC first, so 23:30 on Jan 31 in UTC-5
    belongs to February.
    """
    now = as_utc(now)
    last_day = calendar.monthrange(now.year, now.month)[1]
    return BillingPeriod(
        start=date(now.year, now.month, 1).isoformat(),
        end=date(now.year, now.month, last_day).isoformat(),
    )


def needs_reset(record: UsageRecord, now: datetime | None = None) -> bool:
    """Whether a stored record belongs to a different period than ``now``.

    Compares period starts as strings; the current boundary is recomputed on
    every call, never derived from the stored one.
    """
    if not record.period_start or not record.period_end:
        return True
    return current_period(now).start != record.period_start
