"""Environment-driven settings for the clinic API"""
import os
import logging
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings(BaseModel):
    """Deployment configuration. Business rules live in validators.business_rules."""
    environment: str = "development"

    # Database
    use_sqlite: bool = True
    database_url: Optional[str] = None
    db_echo: bool = False

    # Admin endpoints compare the x-admin-key header against this value
    admin_key: Optional[str] = None

    # Razorpay
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    consultation_fee_paise: int = 100
    payment_currency: str = "INR"

    # Twilio
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_whatsapp_from: Optional[str] = None  # e.g., whatsapp:+14155238886
    twilio_sms_from: Optional[str] = None  # e.g., +1234567890

    # Clinic identity
    clinic_name: str = "Balakrishna Clinic"
    clinic_address: str = "4th Cross Road, New Bank Colony, Konankunte, Bangalore - 560078"
    doctor_name: str = "Dr. K. Madhusudana"
    doctor_qualification: str = "M.B.B.S | F.A.G.E"
    doctor_experience_years: int = 25
    doctor_photo_url: Optional[str] = "/doctor-photo.jpg"
    doctor_phone: Optional[str] = None
    clinic_timezone: str = "Asia/Kolkata"

    # Video consultations (Jitsi rooms keyed by booking ID)
    video_domain: str = "meet.jit.si"
    video_room_prefix: str = "DrMadhusudhan"

    frontend_url: str = "http://localhost:3000"
    rate_limit_enabled: bool = True

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def payments_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            use_sqlite=_env_bool("USE_SQLITE", "true"),
            database_url=os.getenv("DATABASE_URL"),
            db_echo=_env_bool("DB_ECHO", "false"),
            admin_key=os.getenv("ADMIN_KEY") or None,
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID", ""),
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET", ""),
            consultation_fee_paise=int(os.getenv("CONSULTATION_FEE_PAISE", "100")),
            payment_currency=os.getenv("PAYMENT_CURRENCY", "INR"),
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN"),
            twilio_whatsapp_from=os.getenv("TWILIO_WHATSAPP_FROM"),
            twilio_sms_from=os.getenv("TWILIO_SMS_FROM"),
            clinic_name=os.getenv("CLINIC_NAME", cls.model_fields["clinic_name"].default),
            clinic_address=os.getenv("CLINIC_ADDRESS", cls.model_fields["clinic_address"].default),
            doctor_name=os.getenv("DOCTOR_NAME", cls.model_fields["doctor_name"].default),
            doctor_qualification=os.getenv(
                "DOCTOR_QUALIFICATION", cls.model_fields["doctor_qualification"].default
            ),
            doctor_experience_years=int(os.getenv("DOCTOR_EXPERIENCE_YEARS", "25")),
            doctor_photo_url=os.getenv("DOCTOR_PHOTO_URL", cls.model_fields["doctor_photo_url"].default),
            doctor_phone=os.getenv("DOCTOR_PHONE"),
            clinic_timezone=os.getenv("CLINIC_TIMEZONE", "Asia/Kolkata"),
            video_domain=os.getenv("VIDEO_DOMAIN", "meet.jit.si"),
            video_room_prefix=os.getenv("VIDEO_ROOM_PREFIX", "DrMadhusudhan"),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000"),
            rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", "true"),
        )


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process"""
    settings = Settings.from_env()

    # SECURITY: Validate payment credentials in production
    if settings.is_production and not settings.payments_configured:
        logger.warning("RAZORPAY credentials not configured in production!")
    if not settings.admin_key:
        logger.warning("ADMIN_KEY is not set. Doctor and admin endpoints are disabled.")

    return settings
