"""Patient notifications over WhatsApp and SMS"""
import logging
from typing import Literal

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from config import Settings, get_settings
from database import get_session
from dependencies import get_notification_service, require_admin_key
from models import Booking
from schemas import NotificationRequest, NotificationResult
from utils.notification_service import NotificationService, render_appointment_confirmed
from validators.booking_validator import validate_phone

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/notifications",
    tags=["Notifications"],
    dependencies=[Depends(require_admin_key)]
)


@router.post("/{channel}", response_model=NotificationResult)
def send_notification(
    channel: Literal["whatsapp", "sms"],
    notification: NotificationRequest,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    notifier: NotificationService = Depends(get_notification_service)
):
    """Send a message; without an explicit text, the booking confirmation is rendered"""
    validate_phone(notification.phone)

    message = notification.message
    if not message and notification.booking_id:
        booking = session.exec(
            select(Booking).where(Booking.booking_id == notification.booking_id)
        ).first()
        if booking:
            message = render_appointment_confirmed(
                booking.patient_name,
                settings.doctor_name,
                booking.slot_date.strftime("%d/%m/%Y"),
                booking.slot_time,
            )
    if not message:
        message = f"Your appointment with {settings.doctor_name} has been confirmed."

    success, reference = notifier.send_notification(notification.phone, message, channel)
    if not success:
        logger.warning("%s notification to %s failed: %s", channel, notification.phone, reference)
    return NotificationResult(success=success, channel=channel, reference=reference)
