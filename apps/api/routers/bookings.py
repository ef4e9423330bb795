"""Patient booking and doctor appointment management endpoints"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlmodel import Session, select

from config import Settings, get_settings
from database import get_session
from dependencies import get_clock, require_admin_key
from models import Booking, BookingStatus, ConsultType, PaymentStatus, utcnow
from schemas import (
    AppointmentUpdateResult,
    AppointmentsResponse,
    BookingCreate,
    BookingResult,
    DoctorAppointmentsResponse,
    DoctorProfile,
    SlotsResponse,
)
from services.booking_service import create_booking, to_appointment, whatsapp_links
from services.slot_resolver import get_actual_available_slots
from utils.clock import ClinicClock
from utils.rate_limit import BOOKING_LIMIT, limiter
from validators.booking_validator import (
    validate_online_payment,
    validate_phone,
    validate_status_transition,
)
from validators.time_validator import parse_date_string

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])


@router.get("/doctor", response_model=DoctorProfile)
def get_doctor_details(settings: Settings = Depends(get_settings)):
    """Public profile of the practice shown on the landing page"""
    return DoctorProfile(
        name=settings.doctor_name,
        specialization=settings.doctor_qualification,
        experience=settings.doctor_experience_years,
        clinic_name=settings.clinic_name,
        address=settings.clinic_address,
        photo_url=settings.doctor_photo_url,
        consultation_fee=settings.consultation_fee_paise,
        currency=settings.payment_currency,
    )


@router.get("/slots", response_model=SlotsResponse)
def get_available_slots(
    date_str: str = Query(..., alias="date"),
    consult_type: ConsultType = Query(..., alias="consultType"),
    session: Session = Depends(get_session),
    clock: ClinicClock = Depends(get_clock)
):
    """Patient-facing slots for a date (default or override, minus booked times)"""
    slot_date = parse_date_string(date_str)
    slots = get_actual_available_slots(session, slot_date, consult_type, now=clock.now())
    return SlotsResponse(available_slots=slots)


@router.post("", response_model=BookingResult, status_code=status.HTTP_201_CREATED)
@limiter.limit(BOOKING_LIMIT)
def book_appointment(
    request: Request,
    booking_data: BookingCreate,
    session: Session = Depends(get_session),
    clock: ClinicClock = Depends(get_clock),
    settings: Settings = Depends(get_settings)
):
    """Book a slot. Online consultations carry a UPI reference that the doctor verifies."""
    if booking_data.consult_type == ConsultType.ONLINE:
        validate_online_payment(booking_data.consult_type, booking_data.payment_reference)
        booking = create_booking(
            session,
            booking_data,
            now=clock.now(),
            payment_status=PaymentStatus.PENDING_VERIFICATION,
            payment_reference=booking_data.payment_reference.strip(),
        )
        message = "Appointment booked. Your payment will be verified by the clinic shortly."
    else:
        booking = create_booking(session, booking_data, now=clock.now())
        message = "Appointment booked successfully"

    return BookingResult(
        message=message,
        appointment=to_appointment(booking, settings),
        whatsapp_notifications=whatsapp_links(booking, settings),
    )


@router.get("/check-appointments", response_model=AppointmentsResponse)
def check_appointments(
    phone: str = Query(...),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings)
):
    """A patient's bookings, looked up by phone number"""
    validate_phone(phone)
    bookings = session.exec(
        select(Booking)
        .where(Booking.patient_phone == phone)
        .order_by(Booking.slot_date.desc(), Booking.slot_time.desc())
    ).all()
    return AppointmentsResponse(appointments=[to_appointment(b, settings) for b in bookings])


@router.get(
    "/doctor/appointments",
    response_model=DoctorAppointmentsResponse,
    dependencies=[Depends(require_admin_key)]
)
def get_doctor_appointments(
    status_filter: Optional[str] = Query(None, alias="status"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings)
):
    """Doctor's appointment list filtered by status and an inclusive date range"""
    query = select(Booking)

    if status_filter and status_filter != "all":
        try:
            query = query.where(Booking.status == BookingStatus(status_filter).value)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown status: {status_filter}"
            )
    if start_date:
        query = query.where(Booking.slot_date >= parse_date_string(start_date))
    if end_date:
        query = query.where(Booking.slot_date <= parse_date_string(end_date))

    bookings = session.exec(query.order_by(Booking.slot_date, Booking.slot_time)).all()
    return DoctorAppointmentsResponse(
        success=True,
        appointments=[to_appointment(b, settings) for b in bookings]
    )


def _get_booking_or_404(session: Session, booking_id: str) -> Booking:
    booking = session.exec(select(Booking).where(Booking.booking_id == booking_id)).first()
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Appointment not found"
        )
    return booking


def _change_status(session: Session, booking: Booking, new_status: BookingStatus) -> Booking:
    validate_status_transition(booking, new_status)
    booking.status = new_status.value
    booking.updated_at = utcnow()
    session.add(booking)
    session.commit()
    session.refresh(booking)
    logger.info("Booking %s is now %s", booking.booking_id, booking.status)
    return booking


@router.patch(
    "/{booking_id}/confirm",
    response_model=AppointmentUpdateResult,
    dependencies=[Depends(require_admin_key)]
)
def confirm_appointment(
    booking_id: str,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings)
):
    """Confirm a booking; for online consultations this marks the payment verified"""
    booking = _get_booking_or_404(session, booking_id)
    if booking.consult_type == ConsultType.ONLINE.value:
        booking.payment_status = PaymentStatus.VERIFIED.value
    booking = _change_status(session, booking, BookingStatus.CONFIRMED)
    return AppointmentUpdateResult(
        message="Appointment confirmed",
        appointment=to_appointment(booking, settings)
    )


@router.patch(
    "/{booking_id}/complete",
    response_model=AppointmentUpdateResult,
    dependencies=[Depends(require_admin_key)]
)
def complete_appointment(
    booking_id: str,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings)
):
    """Mark a confirmed appointment as completed"""
    booking = _change_status(session, _get_booking_or_404(session, booking_id), BookingStatus.COMPLETED)
    return AppointmentUpdateResult(
        message="Appointment marked as completed",
        appointment=to_appointment(booking, settings)
    )


@router.patch(
    "/{booking_id}/cancel",
    response_model=AppointmentUpdateResult,
    dependencies=[Depends(require_admin_key)]
)
def cancel_appointment(
    booking_id: str,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings)
):
    """Cancel an appointment; the slot becomes bookable again"""
    booking = _change_status(session, _get_booking_or_404(session, booking_id), BookingStatus.CANCELLED)
    return AppointmentUpdateResult(
        message="Appointment cancelled successfully",
        appointment=to_appointment(booking, settings)
    )
