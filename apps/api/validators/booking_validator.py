"""Booking validation logic"""
import re
from datetime import date, datetime
from typing import Optional
from fastapi import HTTPException, status
from sqlmodel import Session

from models import Booking, BookingStatus, ConsultType
from validators.business_rules import get_business_rules
from services.slot_resolver import get_actual_available_slots

PHONE_PATTERN = re.compile(r'^\d{10}$')

ALLOWED_TRANSITIONS = {
    BookingStatus.BOOKED.value: {BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value},
    BookingStatus.CONFIRMED.value: {BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value},
    BookingStatus.COMPLETED.value: set(),
    BookingStatus.CANCELLED.value: set(),
}


def is_valid_phone(phone: Optional[str]) -> bool:
    return bool(phone) and PHONE_PATTERN.match(phone) is not None


def validate_phone(phone: Optional[str]) -> str:
    """Phone numbers are the lookup key for bookings and prescriptions"""
    if not is_valid_phone(phone):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please enter a valid 10-digit phone number"
        )
    return phone


def validate_booking_date(slot_date: date, consult_type: ConsultType, today: date) -> None:
    """Validate the date is inside the booking horizon and the clinic is open"""
    rules = get_business_rules()

    if slot_date < today:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot book appointments in the past"
        )

    if (slot_date - today).days >= rules.BOOKING_HORIZON_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Appointments can only be booked up to {rules.BOOKING_HORIZON_DAYS - 1} days in advance"
        )

    if consult_type == ConsultType.OFFLINE and slot_date.weekday() in rules.OFFLINE_CLOSED_WEEKDAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The clinic is closed for in-person visits on Sundays and Mondays"
        )


def validate_slot_available(
    session: Session,
    slot_date: date,
    slot_time: str,
    consult_type: ConsultType,
    now: datetime
) -> None:
    """Validate the slot is offered and not already taken"""
    available = get_actual_available_slots(session, slot_date, consult_type, now=now)
    if slot_time not in available:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This time slot is no longer available. Please choose another slot."
        )


def validate_online_payment(consult_type: ConsultType, payment_reference: Optional[str]) -> None:
    """Online consultations are prepaid; a direct booking must carry the payment reference"""
    if consult_type == ConsultType.ONLINE and not (payment_reference or "").strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Online consultations require payment. Please complete the payment first."
        )


def validate_status_transition(booking: Booking, new_status: BookingStatus) -> None:
    """Validate the booking lifecycle: booked -> confirmed -> completed, or cancelled"""
    if new_status.value not in ALLOWED_TRANSITIONS.get(booking.status, set()):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot change a {booking.status} appointment to {new_status.value}"
        )
