"""Tenant business-hours calculations."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from email_triage.models.tenant import WEEKDAYS, BusinessHours, DaySchedule

logger = structlog.get_logger()


def _parse_hhmm(value: str) -> time:
    hours, _, minutes = value.strip().partition(":")
    return time(int(hours), int(minutes or 0))


def _zone(hours: BusinessHours):
    try:
        return ZoneInfo(hours.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("business_hours_unknown_timezone", timezone=hours.timezone)
        return timezone.utc


def _schedule_for(hours: BusinessHours, local: datetime) -> DaySchedule | None:
    return hours.schedule.get(WEEKDAYS[local.weekday()])


def is_open(hours: BusinessHours | None, at: datetime) -> bool:
    """Whether the business is open at `at`. No configured hours means always open."""

    if hours is None:
        return True

    local = at.astimezone(_zone(hours))
    day = _schedule_for(hours, local)
    if day is None or not day.open:
        return False

    now = local.time().replace(tzinfo=None)
    return _parse_hhmm(day.start) <= now < _parse_hhmm(day.end)


def next_open(hours: BusinessHours | None, at: datetime) -> datetime | None:
    """The next opening time strictly after `at` (or `at` itself when open).

    Returns None when no day of the week is open.
    """
    if hours is None or is_open(hours, at):
        return at

    zone = _zone(hours)
    local = at.astimezone(zone)
    for offset in range(0, 8):
        day_local = local + timedelta(days=offset)
        day = _schedule_for(hours, day_local)
        if day is None or not day.open:
            continue
        opening = datetime.combine(day_local.date(), _parse_hhmm(day.start), tzinfo=zone)
        if opening > local:
            return opening.astimezone(timezone.utc)
    return None
