"""Video consultation rooms and the join window"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Tuple

from portal.config import PortalConfig
from portal.models import Appointment, BookingStatus
from validators.business_rules import get_business_rules


@dataclass(frozen=True)
class VideoSession:
    room_name: str
    url: str


def slot_start(appointment: Appointment) -> datetime:
    hours, minutes = (int(part) for part in appointment.time.split(":"))
    return datetime.combine(appointment.date, datetime.min.time()).replace(hour=hours, minute=minutes)


def join_window(appointment: Appointment) -> Tuple[datetime, datetime]:
    """Opens shortly before the slot and closes a while after it"""
    rules = get_business_rules()
    start = slot_start(appointment)
    return (
        start - timedelta(minutes=rules.VIDEO_JOIN_OPENS_MINUTES_BEFORE),
        start + timedelta(minutes=rules.VIDEO_JOIN_CLOSES_MINUTES_AFTER),
    )


def can_join_call(appointment: Appointment, now: datetime) -> bool:
    if not appointment.is_online or appointment.status == BookingStatus.CANCELLED:
        return False
    opens, closes = join_window(appointment)
    return opens <= now <= closes


def video_session(config: PortalConfig, appointment: Appointment) -> VideoSession:
    room_name = f"{config.video_room_prefix}-{appointment.booking_id}"
    return VideoSession(
        room_name=room_name,
        url=appointment.video_url or f"https://{config.video_domain}/{room_name}",
    )
