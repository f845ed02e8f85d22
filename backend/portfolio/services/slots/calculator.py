# backend/portfolio/services/slots/calculator.py
"""
Service availability calculation.

Produces per-slot data:
  {"time": "HH:MM", "datetime": aware UTC datetime}

Contains:
✓ weekday availability of the service
✓ first configured daily window (wall clock, business timezone)
✓ pending / confirmed bookings of the service
✓ "strictly in the future" cut-off

Does NOT contain:
✗ Additional windows beyond the first one
✗ Per-day booking caps
"""

import json
import math
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ...errors import InvalidInput, NotFound
from ...models import ACTIVE_BOOKING_STATUSES, Bookings, Services
from ...utils.timeutils import from_db_time, to_db_time
from .config import (
    DEFAULT_SLOT_CONFIG,
    WEEKDAY_NAMES,
    SlotConfig,
    minutes_to_time_str,
    time_str_to_minutes,
)


def parse_date(value: str | None) -> date:
    if not value:
        raise InvalidInput("date is required (YYYY-MM-DD)")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidInput(f"Invalid date: {value!r}, expected YYYY-MM-DD") from None


def calculate_service_slots(
    db: Session,
    service_id: int,
    date_str: str | None,
    now: datetime,
    tz: ZoneInfo,
    config: SlotConfig | None = None,
) -> list[dict]:
    """
    Calculate bookable slots for a service on a date.

    Returns:
        Slots ascending by time. Empty list = nothing bookable.
    """
    config = config or DEFAULT_SLOT_CONFIG
    target_date = parse_date(date_str)

    # Step 1: Get service
    service = db.get(Services, service_id)
    if not service or not service.is_active:
        raise NotFound("Service not found")

    # Steps 2-4: Weekday, window, hourly grid
    candidates = _candidate_slots(service, target_date, tz, config)
    if not candidates:
        return []

    # Step 5: Subtract booked spans and the past
    step = config.slot_minutes
    busy = _get_busy_spans(db, service_id, candidates[0][1], candidates[-1][1] + timedelta(minutes=step))
    slot_len = timedelta(minutes=step)

    slots = []
    for time_str, slot_dt in candidates:
        if slot_dt <= now:
            continue
        slot_end = slot_dt + slot_len
        if any(b_start < slot_end and slot_dt < b_end for b_start, b_end in busy):
            continue
        slots.append({"time": time_str, "datetime": slot_dt})

    return slots


def is_service_slot(
    service: Services,
    instant: datetime,
    tz: ZoneInfo,
    config: SlotConfig | None = None,
) -> bool:
    """
    True when instant starts one of the service's grid slots.

    Bookings and the clock are ignored: a taken slot is still on the grid.
    """
    config = config or DEFAULT_SLOT_CONFIG
    local_date = instant.astimezone(tz).date()
    return any(slot_dt == instant for _, slot_dt in _candidate_slots(service, local_date, tz, config))


# ── Helpers ──────────────────────────────────────────────────────────────


def _candidate_slots(
    service: Services,
    target_date: date,
    tz: ZoneInfo,
    config: SlotConfig,
) -> list[tuple[str, datetime]]:
    """Grid slots of the day before bookings are subtracted."""
    # Weekday check
    available_days = _load_json_list(service.available_days)
    if WEEKDAY_NAMES[target_date.weekday()] not in available_days:
        return []

    # First daily window
    window = _first_window(service.time_slots)
    if window is None:
        return []
    start_min, end_min = window

    # Candidate hours fully inside the window
    step = config.slot_minutes
    first = math.ceil(start_min / step) * step
    candidates = []
    t = first
    while t + step <= end_min:
        local_dt = datetime.combine(target_date, time()) + timedelta(minutes=t)
        slot_dt = local_dt.replace(tzinfo=tz).astimezone(timezone.utc)
        candidates.append((minutes_to_time_str(t), slot_dt))
        t += step
    return candidates


def _load_json_list(raw: str | None) -> list:
    try:
        value = json.loads(raw) if raw else []
    except json.JSONDecodeError:
        return []
    return value if isinstance(value, list) else []


def _first_window(raw: str | None) -> tuple[int, int] | None:
    """
    Extract the first {"start": "HH:MM", "end": "HH:MM"} window.

    Returns (start_min, end_min) or None when missing or malformed.
    """
    windows = _load_json_list(raw)
    if not windows or not isinstance(windows[0], dict):
        return None

    start = windows[0].get("start")
    end = windows[0].get("end")
    if not start or not end:
        return None

    try:
        start_min = time_str_to_minutes(start)
        end_min = time_str_to_minutes(end)
    except ValueError:
        return None

    if end_min <= start_min:
        return None
    return start_min, end_min


def _get_busy_spans(
    db: Session,
    service_id: int,
    range_start: datetime,
    range_end: datetime,
) -> list[tuple[datetime, datetime]]:
    """Active booking spans of the service that may overlap [range_start, range_end)."""
    # a booking starting up to a day earlier can still reach into the range
    lookback = to_db_time(range_start - timedelta(days=1))

    rows = (
        db.query(Bookings.scheduled_at, Bookings.duration_minutes)
        .filter(
            Bookings.service_id == service_id,
            Bookings.status.in_(ACTIVE_BOOKING_STATUSES),
            Bookings.scheduled_at >= lookback,
            Bookings.scheduled_at < to_db_time(range_end),
        )
        .all()
    )

    spans = []
    for scheduled_at, duration in rows:
        start = from_db_time(scheduled_at)
        spans.append((start, start + timedelta(minutes=duration or 0)))
    return spans
