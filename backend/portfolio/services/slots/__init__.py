# backend/portfolio/services/slots/__init__.py
"""
Slots calculation module.

Hour-long slots derived from the service's weekly availability,
minus active bookings and the past. Calculated on the fly, read-only.
"""

from .config import SlotConfig, WEEKDAY_NAMES
from .calculator import calculate_service_slots, is_service_slot, parse_date

__all__ = [
    "SlotConfig",
    "WEEKDAY_NAMES",
    "calculate_service_slots",
    "is_service_slot",
    "parse_date",
]
