"""Booking creation and serialization shared by the bookings and payments routers"""
import logging
import uuid
from datetime import date, datetime
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from config import Settings
from models import Booking, BookingStatus, ConsultType, PaymentStatus
from schemas import AppointmentResponse, BookingIntent, WhatsappLinks
from utils.notification_service import (
    render_appointment_booked,
    render_new_booking_for_doctor,
    whatsapp_link,
)
from validators.booking_validator import (
    validate_booking_date,
    validate_phone,
    validate_slot_available,
)
from validators.time_validator import validate_time_format

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = "This time slot has just been booked. Please choose another slot."


def generate_booking_id(slot_date: date) -> str:
    return f"BK-{slot_date:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


def video_room_name(settings: Settings, booking_id: str) -> str:
    return f"{settings.video_room_prefix}-{booking_id}"


def video_url(settings: Settings, booking: Booking) -> Optional[str]:
    if booking.consult_type != ConsultType.ONLINE.value:
        return None
    return f"https://{settings.video_domain}/{video_room_name(settings, booking.booking_id)}"


def to_appointment(booking: Booking, settings: Settings) -> AppointmentResponse:
    return AppointmentResponse(
        booking_id=booking.booking_id,
        date=booking.slot_date,
        time=booking.slot_time,
        patient_name=booking.patient_name,
        patient_phone=booking.patient_phone,
        age=booking.age,
        gender=booking.gender,
        consult_type=booking.consult_type,
        status=booking.status,
        payment_status=booking.payment_status,
        payment_reference=booking.payment_reference,
        video_url=video_url(settings, booking),
        created_at=booking.created_at,
    )


def whatsapp_links(booking: Booking, settings: Settings) -> WhatsappLinks:
    """Click-to-chat links for the patient's and the doctor's copy of the booking"""
    date_str = booking.slot_date.strftime("%d/%m/%Y")
    patient_text = render_appointment_booked(
        booking.patient_name,
        settings.doctor_name,
        date_str,
        booking.slot_time,
        booking.booking_id,
        booking.consult_type,
        settings.clinic_address,
        video_url(settings, booking),
    )
    doctor_link = None
    if settings.doctor_phone:
        doctor_text = render_new_booking_for_doctor(
            booking.patient_name,
            booking.patient_phone,
            date_str,
            booking.slot_time,
            booking.consult_type,
            booking.booking_id,
        )
        doctor_link = whatsapp_link(settings.doctor_phone, doctor_text)

    return WhatsappLinks(
        patient=whatsapp_link(booking.patient_phone, patient_text),
        doctor=doctor_link,
    )


def validate_intent(session: Session, intent: BookingIntent, now: datetime) -> str:
    """Run every booking check; returns the normalized slot time"""
    validate_phone(intent.patient_phone)
    slot_time = validate_time_format(intent.time)
    validate_booking_date(intent.date, intent.consult_type, now.date())
    validate_slot_available(session, intent.date, slot_time, intent.consult_type, now)
    return slot_time


def create_booking(
    session: Session,
    intent: BookingIntent,
    now: datetime,
    status_value: BookingStatus = BookingStatus.BOOKED,
    payment_status: PaymentStatus = PaymentStatus.NOT_PROVIDED,
    payment_reference: Optional[str] = None,
    payment_order_id: Optional[str] = None,
) -> Booking:
    """
    Validate and insert a booking.

    The availability check gives a friendly error in the common case; the
    partial unique index on active (date, time, consult type) settles races.
    """
    slot_time = validate_intent(session, intent, now)

    booking = Booking(
        booking_id=generate_booking_id(intent.date),
        slot_date=intent.date,
        slot_time=slot_time,
        patient_name=intent.patient_name.strip(),
        patient_phone=intent.patient_phone,
        age=intent.age,
        gender=intent.gender.value,
        consult_type=intent.consult_type.value,
        status=status_value.value,
        payment_status=payment_status.value,
        payment_reference=payment_reference,
        payment_order_id=payment_order_id,
    )

    session.add(booking)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.warning(
            "Slot collision on %s %s (%s)", intent.date, slot_time, intent.consult_type.value
        )
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SLOT_TAKEN_MESSAGE)

    session.refresh(booking)
    logger.info("Booking %s created for %s %s", booking.booking_id, booking.slot_date, booking.slot_time)
    return booking
