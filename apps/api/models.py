from typing import Optional
from datetime import date, datetime, timezone
from sqlmodel import Field, SQLModel
from sqlalchemy import Index, UniqueConstraint, text
from enum import Enum


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp for created_at/updated_at columns"""
    return datetime.now(timezone.utc)


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


class PaymentOrderStatus(str, Enum):
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"
    PAID_UNBOOKED = "paid_unbooked"  # signature valid but the slot was taken meanwhile; needs a refund


class Booking(SQLModel, table=True):
    # One active booking per (date, time, consult type); cancelled rows free the slot
    __table_args__ = (
        Index(
            "ux_booking_active_slot",
            "slot_date",
            "slot_time",
            "consult_type",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    booking_id: str = Field(unique=True, index=True)
    slot_date: date = Field(index=True)
    slot_time: str  # Format: "HH:MM"
    patient_name: str
    patient_phone: str = Field(index=True)
    age: int = Field(ge=1, le=120)
    gender: str
    consult_type: str
    status: str = Field(default=BookingStatus.BOOKED.value, max_length=20)
    payment_status: str = Field(default=PaymentStatus.NOT_PROVIDED.value, max_length=30)
    payment_reference: Optional[str] = None  # UPI transaction ID or gateway payment ID
    payment_order_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class DefaultSchedule(SQLModel, table=True):
    """Recurring weekly slots per consult type"""
    __table_args__ = (UniqueConstraint("day_of_week", "consult_type"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    day_of_week: int = Field(ge=0, le=6)  # 0=Monday, 6=Sunday
    consult_type: str
    slots: str = "[]"  # JSON list of "HH:MM"
    updated_at: datetime = Field(default_factory=utcnow)


class AvailabilityOverride(SQLModel, table=True):
    """Admin exception to the default schedule for one date"""
    __table_args__ = (UniqueConstraint("override_date", "consult_type"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    override_date: date = Field(index=True)
    consult_type: str
    closed: bool = Field(default=False)
    slots: Optional[str] = None  # JSON list of "HH:MM", None when closed or not customized
    apply_mode: str = Field(default=ApplyMode.ONCE.value)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PaymentOrder(SQLModel, table=True):
    """Gateway order holding the booking intent until the payment is verified"""
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: str = Field(unique=True, index=True)
    intent: str  # JSON booking intent
    amount: int  # in paise
    currency: str = Field(default="INR")
    status: str = Field(default=PaymentOrderStatus.CREATED.value)
    payment_id: Optional[str] = None
    booking_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Review(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    review: str
    rating: float = Field(gt=0, le=5)
    created_at: datetime = Field(default_factory=utcnow)


class Prescription(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    clinic_name: Optional[str] = None
    clinic_address: Optional[str] = None
    doctor_name: Optional[str] = None
    doctor_qualification: Optional[str] = None
    patient_name: Optional[str] = None
    patient_age: Optional[int] = None
    patient_gender: Optional[str] = None
    patient_phone: str = Field(index=True)
    items: str  # JSON list of {medicine, days, pattern, notes}
    sent: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utcnow)
