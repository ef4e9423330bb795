"""Doctor dashboard: filtered appointment list, confirm/complete/cancel, video join"""
import asyncio
import json
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Union

from portal.api import ClinicApi
from portal.config import PortalConfig
from portal.errors import ApiError, InvalidTransition, NetworkError
from portal.models import Appointment, BookingStatus, PaymentStatus
from portal.video import VideoSession, can_join_call, video_session
from utils.clock import ClinicClock

logger = logging.getLogger(__name__)

STATUS_FILTERS = ("all", "booked", "confirmed", "completed", "cancelled")
NOTIFICATION_CHANNELS = ("whatsapp", "sms")


@dataclass(frozen=True)
class SavedView:
    """Dashboard filters that survive a reload"""
    status: str = "all"
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @classmethod
    def for_day(cls, day: date) -> "SavedView":
        return cls(status="all", start_date=day, end_date=day)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SavedView":
        status = data.get("status") or "all"
        if status not in STATUS_FILTERS:
            raise ValueError(f"Unknown status filter: {status}")
        return cls(
            status=status,
            start_date=date.fromisoformat(data["startDate"]) if data.get("startDate") else None,
            end_date=date.fromisoformat(data["endDate"]) if data.get("endDate") else None,
        )


class ViewStore:
    """Where the saved view lives between sessions"""

    def load(self) -> Optional[SavedView]:
        raise NotImplementedError

    def save(self, view: SavedView) -> None:
        raise NotImplementedError


class InMemoryViewStore(ViewStore):
    def __init__(self, view: Optional[SavedView] = None):
        self.view = view

    def load(self) -> Optional[SavedView]:
        return self.view

    def save(self, view: SavedView) -> None:
        self.view = view


class JsonFileViewStore(ViewStore):
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[SavedView]:
        if not self.path.exists():
            return None
        try:
            return SavedView.from_dict(json.loads(self.path.read_text(encoding="utf-8")))
        except (ValueError, KeyError, TypeError) as e:
            # Unreadable view falls back to the default filters
            logger.warning("Ignoring saved view in %s: %s", self.path, e)
            return None

    def save(self, view: SavedView) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(view.to_dict()), encoding="utf-8")


def can_confirm(appointment: Appointment) -> bool:
    """Only online bookings waiting on payment verification"""
    return (
        appointment.is_online
        and appointment.status == BookingStatus.BOOKED
        and appointment.payment_status == PaymentStatus.PENDING_VERIFICATION
    )


class DoctorDashboard:
    def __init__(
        self,
        api: ClinicApi,
        config: PortalConfig,
        store: Optional[ViewStore] = None,
        clock: Optional[ClinicClock] = None,
    ):
        self.api = api
        self.config = config
        self.store = store or InMemoryViewStore()
        self.clock = clock or ClinicClock(config.timezone)
        self.view = SavedView.for_day(self.clock.now().date())
        self.appointments: List[Appointment] = []
        self.error: Optional[str] = None
        self.in_flight = False
        self._generation = 0

    async def load(self):
        """Restore the saved view (default: today only) and fetch the list"""
        self.view = self.store.load() or SavedView.for_day(self.clock.now().date())
        await self.refresh()

    async def set_filters(
        self,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ):
        """Any filter change is saved and re-issues the list query"""
        if status is not None and status not in STATUS_FILTERS:
            raise ValueError(f"Unknown status filter: {status}")
        self.view = replace(
            self.view,
            status=status if status is not None else self.view.status,
            start_date=start_date if start_date is not None else self.view.start_date,
            end_date=end_date if end_date is not None else self.view.end_date,
        )
        self.store.save(self.view)
        await self.refresh()

    async def refresh(self):
        self._generation += 1
        generation = self._generation
        view = self.view
        try:
            appointments = await self.api.doctor_appointments(view.status, view.start_date, view.end_date)
        except (ApiError, NetworkError) as e:
            if generation == self._generation:
                self.error = str(e)
            return

        if generation != self._generation:
            logger.debug("Dropping stale appointment list for %s", view)
            return
        self.appointments = appointments
        self.error = None

    def find(self, booking_id: str) -> Appointment:
        for appointment in self.appointments:
            if appointment.booking_id == booking_id:
                return appointment
        raise KeyError(booking_id)

    def _replace(self, updated: Appointment):
        self.appointments = [
            updated if a.booking_id == updated.booking_id else a for a in self.appointments
        ]

    async def confirm(self, booking_id: str) -> Appointment:
        """Confirm a pending online booking, then notify the patient on both channels"""
        appointment = self.find(booking_id)
        if not can_confirm(appointment):
            raise InvalidTransition(f"Appointment {booking_id} cannot be confirmed")
        if self.in_flight:
            return appointment

        self.in_flight = True
        try:
            await self.api.confirm_appointment(booking_id)
        finally:
            self.in_flight = False

        confirmed = appointment.model_copy(update={
            "status": BookingStatus.CONFIRMED,
            "payment_status": PaymentStatus.VERIFIED,
        })
        self._replace(confirmed)
        await self._notify(confirmed)
        return confirmed

    async def _notify(self, appointment: Appointment):
        """Best effort; a failed notification never undoes the confirm"""
        results = await asyncio.gather(
            *(
                self.api.send_notification(channel, appointment.patient_phone, booking_id=appointment.booking_id)
                for channel in NOTIFICATION_CHANNELS
            ),
            return_exceptions=True,
        )
        for channel, result in zip(NOTIFICATION_CHANNELS, results):
            if isinstance(result, Exception):
                logger.warning("%s notification for %s failed: %s", channel, appointment.booking_id, result)
            elif not result.success:
                logger.warning("%s notification for %s not delivered", channel, appointment.booking_id)

    async def complete(self, booking_id: str) -> Appointment:
        updated = await self.api.complete_appointment(booking_id)
        self._replace(updated)
        return updated

    async def cancel(self, booking_id: str) -> Appointment:
        updated = await self.api.cancel_appointment(booking_id)
        self._replace(updated)
        return updated

    def can_join(self, booking_id: str, now: Optional[datetime] = None) -> bool:
        return can_join_call(self.find(booking_id), now or self.clock.now())

    def join_call(self, booking_id: str, now: Optional[datetime] = None) -> VideoSession:
        appointment = self.find(booking_id)
        if not can_join_call(appointment, now or self.clock.now()):
            raise InvalidTransition(f"The video call for {booking_id} is not open")
        return video_session(self.config, appointment)
