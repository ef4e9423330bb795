"""Patient appointment lookup by phone number"""
from datetime import datetime
from typing import List, Optional

from portal.api import ClinicApi, require_phone
from portal.config import PortalConfig
from portal.errors import InvalidTransition
from portal.models import Appointment
from portal.video import VideoSession, can_join_call, video_session
from utils.clock import ClinicClock


class AppointmentLookup:
    def __init__(self, api: ClinicApi, config: PortalConfig, clock: Optional[ClinicClock] = None):
        self.api = api
        self.config = config
        self.clock = clock or ClinicClock(config.timezone)
        self.appointments: List[Appointment] = []

    async def find(self, phone: str) -> List[Appointment]:
        """No appointments is an empty list, not an error"""
        self.appointments = await self.api.check_appointments(require_phone(phone.strip()))
        return self.appointments

    def can_join(self, appointment: Appointment, now: Optional[datetime] = None) -> bool:
        return can_join_call(appointment, now or self.clock.now())

    def join(self, appointment: Appointment, now: Optional[datetime] = None) -> VideoSession:
        if not self.can_join(appointment, now):
            raise InvalidTransition("The video call opens 5 minutes before your appointment")
        return video_session(self.config, appointment)
