"""
Canonical client-side types

Server payloads are normalized into these models once, at the ClinicApi
boundary. Internal code never checks which key a response happened to use.
"""
import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field
from pydantic.alias_generators import to_camel


class ConsultType(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class BookingStatus(str, Enum):
    BOOKED = "booked"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    NOT_PROVIDED = "not_provided"
    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"


class ApplyMode(str, Enum):
    ONCE = "once"
    ALWAYS = "always"


class PortalModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Appointment(PortalModel):
    # Older responses carried the identifier as _id
    booking_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("bookingId", "booking_id", "_id"),
    )
    date: dt.date
    time: str
    patient_name: str
    patient_phone: str
    age: int
    gender: Gender
    consult_type: ConsultType
    status: BookingStatus
    payment_status: PaymentStatus = PaymentStatus.NOT_PROVIDED
    payment_reference: Optional[str] = None
    video_url: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    @property
    def is_online(self) -> bool:
        return self.consult_type == ConsultType.ONLINE


class WhatsappLinks(PortalModel):
    patient: Optional[str] = None
    doctor: Optional[str] = None


class BookingConfirmation(PortalModel):
    message: str
    appointment: Appointment
    whatsapp_notifications: WhatsappLinks = Field(default_factory=WhatsappLinks)


class BookingIntent(PortalModel):
    """Booking fields sent before any booking row exists"""
    date: dt.date
    time: str
    patient_name: str
    patient_phone: str
    age: int
    gender: Gender
    consult_type: ConsultType


class DoctorProfile(PortalModel):
    name: str
    specialization: str
    experience: int
    clinic_name: str
    address: str
    photo_url: Optional[str] = None
    consultation_fee: int  # paise
    currency: str = "INR"


class PaymentOrder(PortalModel):
    id: str
    amount: int  # in paise
    currency: str
    key_id: Optional[str] = None


class AvailabilityOverride(PortalModel):
    date: dt.date
    consult_type: ConsultType
    closed: bool = False
    slots: Optional[List[str]] = None
    apply_mode: ApplyMode = ApplyMode.ONCE
    updated_at: Optional[dt.datetime] = None


class OverrideAck(PortalModel):
    message: str
    override: Optional[AvailabilityOverride] = None


class Review(PortalModel):
    id: int
    name: str
    review: str
    rating: float
    created_at: dt.datetime


class ReviewStats(PortalModel):
    total: int = 0
    average: float = 0.0
    distribution: dict = Field(default_factory=dict)


class PrescriptionItem(PortalModel):
    medicine: str
    days: int
    pattern: str  # "101"
    notes: str = ""


class Prescription(PortalModel):
    id: Optional[int] = None
    clinic_name: Optional[str] = None
    clinic_address: Optional[str] = None
    doctor_name: Optional[str] = None
    doctor_qualification: Optional[str] = None
    patient_name: Optional[str] = None
    patient_age: Optional[int] = None
    patient_gender: Optional[str] = None
    patient_phone: str
    items: List[PrescriptionItem]
    sent: bool = False
    created_at: Optional[dt.datetime] = None


class NotificationResult(PortalModel):
    success: bool
    channel: str
    reference: Optional[str] = None
