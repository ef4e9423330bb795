import datetime as dt
from typing import Optional, List, Dict
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from models import ConsultType, Gender, BookingStatus, PaymentStatus, ApplyMode


class CamelModel(BaseModel):
    """Wire models use camelCase keys; Python code uses snake_case names"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class MessageResponse(CamelModel):
    message: str


# Booking schemas
class BookingIntent(CamelModel):
    date: dt.date
    time: str  # Format: "HH:MM"
    patient_name: str = Field(min_length=1)
    patient_phone: str
    age: int = Field(ge=1, le=120)
    gender: Gender
    consult_type: ConsultType


class BookingCreate(BookingIntent):
    payment_reference: Optional[str] = None  # UPI transaction ID for online consultations


class AppointmentResponse(CamelModel):
    booking_id: str
    date: dt.date
    time: str
    patient_name: str
    patient_phone: str
    age: int
    gender: Gender
    consult_type: ConsultType
    status: BookingStatus
    payment_status: PaymentStatus
    payment_reference: Optional[str] = None
    video_url: Optional[str] = None
    created_at: dt.datetime


class WhatsappLinks(CamelModel):
    patient: Optional[str] = None
    doctor: Optional[str] = None


class BookingResult(CamelModel):
    message: str
    appointment: AppointmentResponse
    whatsapp_notifications: Optional[WhatsappLinks] = None


class AppointmentUpdateResult(CamelModel):
    message: str
    appointment: AppointmentResponse


class AppointmentsResponse(CamelModel):
    appointments: List[AppointmentResponse]


class DoctorAppointmentsResponse(CamelModel):
    success: bool = True
    appointments: List[AppointmentResponse]


class DoctorProfile(CamelModel):
    name: str
    specialization: str
    experience: int
    clinic_name: str
    address: str
    photo_url: Optional[str] = None
    consultation_fee: int  # paise
    currency: str


class SlotsResponse(CamelModel):
    available_slots: List[str]


class DefaultSlotsResponse(CamelModel):
    slots: List[str]


# Availability override schemas
class OverrideUpsert(CamelModel):
    date: dt.date
    consult_type: ConsultType
    closed: bool = False
    slots: Optional[List[str]] = None
    apply_mode: ApplyMode = ApplyMode.ONCE


class OverrideResponse(CamelModel):
    date: dt.date
    consult_type: ConsultType
    closed: bool
    slots: Optional[List[str]] = None
    apply_mode: ApplyMode
    updated_at: dt.datetime


class OverrideEnvelope(CamelModel):
    override: Optional[OverrideResponse] = None


class OverrideAck(CamelModel):
    message: str
    override: Optional[OverrideResponse] = None


# Payment schemas
class PaymentOrderResponse(CamelModel):
    id: str
    amount: int  # in paise
    currency: str
    key_id: str


class PaymentVerify(BaseModel):
    # Field names are the gateway's own
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


# Review schemas
class ReviewCreate(CamelModel):
    name: str
    review: str
    rating: float


class ReviewResponse(CamelModel):
    id: int
    name: str
    review: str
    rating: float
    created_at: dt.datetime


class ReviewSubmitResponse(CamelModel):
    saved: bool
    message: str
    review: Optional[ReviewResponse] = None


class ReviewsResponse(CamelModel):
    reviews: List[ReviewResponse]


class ReviewStats(CamelModel):
    total: int
    average: float
    distribution: Dict[str, int]  # {"5": 10, "4": 3, ...}


# Prescription schemas
class PrescriptionItem(CamelModel):
    medicine: str
    days: int
    pattern: str  # "101", "1-0-1" accepted on input
    notes: Optional[str] = ""


class PrescriptionCreate(CamelModel):
    clinic_name: Optional[str] = None
    clinic_address: Optional[str] = None
    doctor_name: Optional[str] = None
    doctor_qualification: Optional[str] = None
    patient_name: Optional[str] = None
    patient_age: Optional[int] = Field(None, ge=0, le=120)
    patient_gender: Optional[str] = None
    patient_phone: str
    items: List[PrescriptionItem]
    sent: bool = False


class PrescriptionResponse(PrescriptionCreate):
    id: int
    created_at: dt.datetime


class PrescriptionSaved(CamelModel):
    message: str
    prescription: PrescriptionResponse


class PrescriptionsResponse(CamelModel):
    prescriptions: List[PrescriptionResponse]


# Notification schemas
class NotificationRequest(CamelModel):
    phone: str
    message: Optional[str] = None
    booking_id: Optional[str] = None


class NotificationResult(CamelModel):
    success: bool
    channel: str
    reference: Optional[str] = None
