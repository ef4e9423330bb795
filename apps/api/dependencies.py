import hmac
from typing import Optional
from fastapi import Depends, Header, HTTPException, status

from config import Settings, get_settings
from utils.clock import ClinicClock
from services.payment_gateway import PaymentGateway, RazorpayGateway
from utils.notification_service import NotificationService


def get_clock(settings: Settings = Depends(get_settings)) -> ClinicClock:
    """Wall clock in the clinic's timezone"""
    return ClinicClock(settings.clinic_timezone)


def require_admin_key(
    x_admin_key: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings)
) -> None:
    """Admin endpoints take the key at request time via the x-admin-key header"""
    if not settings.admin_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin access is not configured. Set ADMIN_KEY"
        )

    if not x_admin_key or not hmac.compare_digest(x_admin_key, settings.admin_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key"
        )


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway(settings: Settings = Depends(get_settings)) -> PaymentGateway:
    """Razorpay client, created on first use"""
    global _gateway
    if not settings.payments_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment service not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET"
        )
    if _gateway is None:
        _gateway = RazorpayGateway(settings.razorpay_key_id, settings.razorpay_key_secret)
    return _gateway


_notifier: Optional[NotificationService] = None


def get_notification_service(settings: Settings = Depends(get_settings)) -> NotificationService:
    global _notifier
    if _notifier is None:
        _notifier = NotificationService(settings)
    return _notifier
