# backend/portfolio/services/slots/config.py
"""
Slot grid configuration and wall-clock helpers.
"""

from dataclasses import dataclass

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass(frozen=True)
class SlotConfig:
    """
    Configuration for the availability grid.

    Attributes:
        slot_minutes: Length of one bookable slot (one hour)
    """
    slot_minutes: int = 60

    def __post_init__(self):
        if self.slot_minutes <= 0 or 1440 % self.slot_minutes:
            raise ValueError(f"slot_minutes must divide a day, got {self.slot_minutes}")


DEFAULT_SLOT_CONFIG = SlotConfig()


def time_str_to_minutes(value: str) -> int:
    """"HH:MM" -> minutes since midnight."""
    hour_str, minute_str = value.strip().split(":")
    hour, minute = int(hour_str), int(minute_str)
    if not (0 <= hour <= 24 and 0 <= minute < 60) or hour * 60 + minute > 1440:
        raise ValueError(f"Invalid wall-clock time: {value!r}")
    return hour * 60 + minute


def minutes_to_time_str(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
