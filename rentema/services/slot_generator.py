"""Availability slot generation.

Turns a recurring weekly schedule plus existing appointments into the
bookable start times for one date. Pure and deterministic: the same call
runs when slots are offered and again when a booking token is confirmed.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Mapping, NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rentema.db.enums import AppointmentStatus, WEEKDAYS


HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
DEFAULT_TIMEZONE = "America/Los_Angeles"


class TimeSlot(NamedTuple):
    """A bookable slot; both ends are timezone-aware UTC."""

    start: datetime
    end: datetime


class SlotResult(NamedTuple):
    slots: list[TimeSlot]
    diagnostics: list[str]


class ScheduleSpec(NamedTuple):
    """Plain snapshot of an AvailabilitySchedule row plus the manager's timezone."""

    schedule_type: str
    recurring_weekly: Mapping[str, Any]
    blocked_dates: list[Mapping[str, Any]]
    timezone: str = DEFAULT_TIMEZONE

    @classmethod
    def from_model(cls, schedule: Any, timezone_name: str | None) -> "ScheduleSpec":
        return cls(
            schedule_type=schedule.schedule_type,
            recurring_weekly=dict(schedule.recurring_weekly or {}),
            blocked_dates=list(schedule.blocked_dates or []),
            timezone=timezone_name or DEFAULT_TIMEZONE,
        )


def parse_hhmm(value: Any) -> time | None:
    """Parse a zero-padded 24h ``HH:MM`` string, or return None."""
    if not isinstance(value, str):
        return None
    match = HHMM_PATTERN.match(value)
    if not match:
        return None
    return time(int(match.group(1)), int(match.group(2)))


def get_timezone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def _parse_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def blocked_ranges(
    blocked_dates: Iterable[Mapping[str, Any]], diagnostics: list[str]
) -> list[tuple[date, date]]:
    """Well-formed inclusive (start, end) ranges; malformed entries are reported."""
    ranges = []
    for index, blocked in enumerate(blocked_dates):
        if not isinstance(blocked, Mapping):
            diagnostics.append(f"blockedDates[{index}]: malformed range skipped")
            continue
        start = _parse_date(blocked.get("startDate"))
        end = _parse_date(blocked.get("endDate"))
        if start is None or end is None or end < start:
            diagnostics.append(f"blockedDates[{index}]: malformed range skipped")
            continue
        ranges.append((start, end))
    return ranges


def is_blocked(blocked_dates: Iterable[Mapping[str, Any]], on_date: date, diagnostics: list[str]) -> bool:
    """True when ``on_date`` falls inside any inclusive blocked range."""
    return any(start <= on_date <= end for start, end in blocked_ranges(blocked_dates, diagnostics))


def day_blocks(
    recurring_weekly: Mapping[str, Any],
    weekday: str,
    diagnostics: list[str],
) -> list[tuple[time, time]]:
    """
    Valid (start, end) blocks for one weekday, in stored order.

    Blocks with bad times, start >= end, or overlapping an earlier valid
    block are skipped with a diagnostic.
    """
    raw_blocks = recurring_weekly.get(weekday) or []
    if not isinstance(raw_blocks, list):
        diagnostics.append(f"{weekday}: blocks must be a list")
        return []

    blocks: list[tuple[time, time]] = []
    for index, raw in enumerate(raw_blocks):
        label = f"{weekday}[{index}]"
        if not isinstance(raw, Mapping):
            diagnostics.append(f"{label}: malformed block skipped")
            continue
        start = parse_hhmm(raw.get("startTime"))
        end = parse_hhmm(raw.get("endTime"))
        if start is None or end is None:
            diagnostics.append(f"{label}: invalid HH:MM time skipped")
            continue
        if start >= end:
            diagnostics.append(f"{label}: start must be before end")
            continue
        if any(start < other_end and other_start < end for other_start, other_end in blocks):
            diagnostics.append(f"{label}: overlaps another block")
            continue
        blocks.append((start, end))
    return blocks


def _occupied_intervals(
    existing_appointments: Iterable[Any],
    appointment_type: str,
) -> list[tuple[datetime, datetime]]:
    intervals = []
    for appt in existing_appointments:
        if appt.status == AppointmentStatus.CANCELLED.value:
            continue
        if appt.appointment_type != appointment_type:
            continue
        start = appt.scheduled_time.astimezone(timezone.utc)
        intervals.append((start, start + timedelta(minutes=appt.duration_minutes)))
    return intervals


def generate_slots(
    schedule: ScheduleSpec,
    existing_appointments: Iterable[Any],
    on_date: date,
    appointment_type: str,
    duration_minutes: int,
    now: datetime,
) -> SlotResult:
    """
    Compute open slots for a single date.

    Steps: blocked date → nothing; weekday blocks stepped by duration;
    drop candidates overlapping a non-cancelled appointment of the same
    type (half-open); drop candidates starting before ``now``.
    """
    diagnostics: list[str] = []

    if duration_minutes <= 0:
        diagnostics.append("duration must be positive")
        return SlotResult([], diagnostics)

    if schedule.schedule_type != appointment_type:
        return SlotResult([], diagnostics)

    if is_blocked(schedule.blocked_dates, on_date, diagnostics):
        return SlotResult([], diagnostics)

    weekday = WEEKDAYS[on_date.weekday()]
    blocks = day_blocks(schedule.recurring_weekly, weekday, diagnostics)
    if not blocks:
        return SlotResult([], diagnostics)

    tz = get_timezone(schedule.timezone)
    step = timedelta(minutes=duration_minutes)

    candidates: list[TimeSlot] = []
    for block_start, block_end in blocks:
        # Create datetime objects in manager's timezone, then normalize to UTC
        current = datetime.combine(on_date, block_start, tzinfo=tz).astimezone(timezone.utc)
        end = datetime.combine(on_date, block_end, tzinfo=tz).astimezone(timezone.utc)
        while current + step <= end:
            candidates.append(TimeSlot(current, current + step))
            current += step
    candidates.sort(key=lambda slot: slot.start)

    occupied = _occupied_intervals(existing_appointments, appointment_type)
    now_utc = now.astimezone(timezone.utc)

    slots = [
        slot
        for slot in candidates
        if slot.start >= now_utc
        and not any(
            existing_start < slot.end and slot.start < existing_end
            for existing_start, existing_end in occupied
        )
    ]
    return SlotResult(slots, diagnostics)


def local_start_time(slot: TimeSlot, timezone_name: str | None) -> str:
    """Slot start as HH:MM on the manager's wall clock."""
    return slot.start.astimezone(get_timezone(timezone_name)).strftime("%H:%M")


def validate_weekly_blocks(recurring_weekly: Mapping[str, Any]) -> list[str]:
    """Return every problem in a weekly schedule; empty when it is valid."""
    problems: list[str] = []
    for key in recurring_weekly:
        if key not in WEEKDAYS:
            problems.append(f"unknown weekday {key!r}")
    for weekday in WEEKDAYS:
        day_blocks(recurring_weekly, weekday, problems)
    return problems


def validate_blocked_dates(blocked_dates: Iterable[Mapping[str, Any]]) -> list[str]:
    problems: list[str] = []
    blocked_ranges(blocked_dates, problems)
    return problems
