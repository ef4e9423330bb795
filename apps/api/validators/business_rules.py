"""Business rule configuration and validation"""
from typing import Dict, List
from pydantic import BaseModel, Field


def _every_half_hour(start: str, end: str) -> List[str]:
    """Slots from start (inclusive) to end (exclusive) in 30 minute steps"""
    start_h, start_m = (int(p) for p in start.split(":"))
    end_h, end_m = (int(p) for p in end.split(":"))
    minutes = start_h * 60 + start_m
    stop = end_h * 60 + end_m
    slots = []
    while minutes < stop:
        slots.append(f"{minutes // 60:02d}:{minutes % 60:02d}")
        minutes += 30
    return slots


OFFLINE_WORKDAY_SLOTS = _every_half_hour("10:00", "13:00") + _every_half_hour("18:00", "21:00")
ONLINE_DAILY_SLOTS = ["09:00", "09:30"] + _every_half_hour("14:00", "16:00") + ["21:00", "21:30"]


class BusinessRules(BaseModel):
    """Business rules configuration"""
    # Booking rules
    BOOKING_HORIZON_DAYS: int = 3  # today, today+1, today+2
    OFFLINE_CLOSED_WEEKDAYS: List[int] = [6, 0]  # Sunday, Monday (0=Monday)
    APPLY_ALWAYS_CONSULT_TYPES: List[str] = ["offline"]

    # Slot display buckets
    AFTERNOON_STARTS_AT: str = "12:00"
    EVENING_STARTS_AT: str = "18:00"

    # Reviews
    REVIEW_MIN_RATING_TO_SAVE: float = 3.5
    REVIEW_MAX_RATING: float = 5.0

    # Video consultation join window
    VIDEO_JOIN_OPENS_MINUTES_BEFORE: int = 5
    VIDEO_JOIN_CLOSES_MINUTES_AFTER: int = 30

    # Default weekly schedule, keyed by consult type then weekday (0=Monday)
    DEFAULT_SCHEDULE: Dict[str, Dict[int, List[str]]] = Field(default_factory=lambda: {
        "offline": {
            day: ([] if day in (6, 0) else list(OFFLINE_WORKDAY_SLOTS))
            for day in range(7)
        },
        "online": {day: list(ONLINE_DAILY_SLOTS) for day in range(7)},
    })


# Global instance - can be loaded from database
business_rules = BusinessRules()


def get_business_rules() -> BusinessRules:
    """Get current business rules"""
    return business_rules
