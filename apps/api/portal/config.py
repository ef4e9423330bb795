"""Portal configuration"""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PortalConfig:
    """Injected at start; nothing in the portal reads the environment on its own"""
    base_url: str = "http://localhost:8000"
    environment: str = "development"
    razorpay_key_id: Optional[str] = None
    admin_key: Optional[str] = None
    clinic_name: str = "Balakrishna Clinic"
    clinic_address: str = "4th Cross Road, New Bank Colony, Konankunte, Bangalore - 560078"
    doctor_name: str = "Dr. K. Madhusudana"
    doctor_qualification: str = "MBBS"
    timezone: str = "Asia/Kolkata"
    video_domain: str = "meet.jit.si"
    video_room_prefix: str = "DrMadhusudhan"
    timeout: float = 10.0

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @classmethod
    def from_env(cls) -> "PortalConfig":
        """Load configuration from environment variables"""
        return cls(
            base_url=os.getenv("PORTAL_API_URL", "http://localhost:8000"),
            environment=os.getenv("ENVIRONMENT", "development"),
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID") or None,
            admin_key=os.getenv("ADMIN_KEY") or None,
            clinic_name=os.getenv("CLINIC_NAME", cls.clinic_name),
            clinic_address=os.getenv("CLINIC_ADDRESS", cls.clinic_address),
            doctor_name=os.getenv("DOCTOR_NAME", cls.doctor_name),
            doctor_qualification=os.getenv("DOCTOR_QUALIFICATION", cls.doctor_qualification),
            timezone=os.getenv("CLINIC_TIMEZONE", cls.timezone),
            video_domain=os.getenv("VIDEO_DOMAIN", cls.video_domain),
            video_room_prefix=os.getenv("VIDEO_ROOM_PREFIX", cls.video_room_prefix),
            timeout=float(os.getenv("PORTAL_TIMEOUT", "10")),
        )
