"""Clinic wall clock"""
from datetime import date, datetime
from zoneinfo import ZoneInfo


class ClinicClock:
    """Current date and time in the clinic's timezone, as naive local values"""

    def __init__(self, timezone: str = "Asia/Kolkata"):
        self.tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()


class FixedClock(ClinicClock):
    """Clock pinned to one instant (tests, replays)"""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant
