"""
Clinic API client
Thin async wrapper over the REST endpoints. Every response is parsed into
the canonical portal models here; transport problems become NetworkError and
error statuses become ApiError carrying the server's message.
"""
import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from portal.config import PortalConfig
from portal.errors import ApiError, ConfigurationError, FieldValidationError, NetworkError
from portal.models import (
    Appointment,
    ApplyMode,
    AvailabilityOverride,
    BookingConfirmation,
    BookingIntent,
    ConsultType,
    DoctorProfile,
    NotificationResult,
    OverrideAck,
    PaymentOrder,
    Prescription,
    Review,
    ReviewStats,
)

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r'^\d{10}$')


def is_valid_phone(phone: Optional[str]) -> bool:
    return bool(phone) and PHONE_PATTERN.match(phone) is not None


def require_phone(phone: Optional[str]) -> str:
    """Phone numbers are lookup keys; never send an invalid one"""
    if not is_valid_phone(phone):
        raise FieldValidationError({"phone": "Please enter a valid 10-digit phone number"})
    return phone


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    detail = payload.get("detail") if isinstance(payload, dict) else None
    if isinstance(detail, str):
        return detail
    if isinstance(detail, list):
        # FastAPI request validation errors
        return "; ".join(str(item.get("msg", item)) for item in detail if isinstance(item, dict)) or str(detail)
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return response.reason_phrase or f"HTTP {response.status_code}"


class ClinicApi:
    """Async client for the clinic API; pass `client` to share or fake the transport"""

    def __init__(self, config: PortalConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=config.base_url, timeout=config.timeout)

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ClinicApi":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    def _admin_headers(self, admin_key: Optional[str] = None) -> Dict[str, str]:
        key = admin_key or self.config.admin_key
        if not key:
            raise ConfigurationError("An admin key is required for this action")
        return {"x-admin-key": key}

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            response = await self._client.request(method, f"/api{path}", params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise NetworkError(f"Could not reach the clinic server: {e}") from e

        if response.status_code >= 400:
            raise ApiError(response.status_code, _error_message(response))

        try:
            return response.json()
        except ValueError as e:
            raise NetworkError("The clinic server sent an unreadable response") from e

    @staticmethod
    def _parse(model, payload: Any):
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise NetworkError(f"Unexpected response from the clinic server: {e.error_count()} invalid field(s)") from e

    def _parse_list(self, model, payload: Any) -> List:
        return [self._parse(model, item) for item in payload or []]

    # Slots and availability
    async def get_booking_slots(self, slot_date: date, consult_type: ConsultType) -> List[str]:
        data = await self._request(
            "GET", "/bookings/slots",
            params={"date": slot_date.isoformat(), "consultType": consult_type.value}
        )
        return sorted(data.get("availableSlots", []))

    async def get_actual_slots(self, slot_date: date, consult_type: ConsultType) -> List[str]:
        data = await self._request(
            "GET", "/slots",
            params={"date": slot_date.isoformat(), "consultType": consult_type.value}
        )
        return sorted(data.get("availableSlots", []))

    async def get_default_slots(self, slot_date: date, consult_type: ConsultType) -> List[str]:
        data = await self._request(
            "GET", "/availability/default-slots",
            params={"date": slot_date.isoformat(), "consultType": consult_type.value}
        )
        return sorted(data.get("slots", []))

    async def get_override(self, slot_date: date, consult_type: ConsultType) -> Optional[AvailabilityOverride]:
        data = await self._request(
            "GET", "/availability/override",
            params={"date": slot_date.isoformat(), "consultType": consult_type.value}
        )
        override = data.get("override")
        return self._parse(AvailabilityOverride, override) if override else None

    async def put_override(
        self,
        slot_date: date,
        consult_type: ConsultType,
        closed: bool,
        slots: Optional[List[str]],
        apply_mode: ApplyMode = ApplyMode.ONCE,
    ) -> OverrideAck:
        data = await self._request(
            "PUT", "/availability/override",
            json={
                "date": slot_date.isoformat(),
                "consultType": consult_type.value,
                "closed": closed,
                "slots": slots,
                "applyMode": apply_mode.value,
            },
            headers=self._admin_headers(),
        )
        return self._parse(OverrideAck, data)

    async def delete_override(self, slot_date: date, consult_type: ConsultType) -> OverrideAck:
        data = await self._request(
            "DELETE", "/availability/override",
            params={"date": slot_date.isoformat(), "consultType": consult_type.value},
            headers=self._admin_headers(),
        )
        return self._parse(OverrideAck, data)

    # Bookings
    async def doctor_profile(self) -> DoctorProfile:
        return self._parse(DoctorProfile, await self._request("GET", "/bookings/doctor"))

    async def create_booking(self, intent: BookingIntent, payment_reference: Optional[str] = None) -> BookingConfirmation:
        body = intent.model_dump(mode="json", by_alias=True)
        if payment_reference:
            body["paymentReference"] = payment_reference
        data = await self._request("POST", "/bookings", json=body)
        return self._parse(BookingConfirmation, data)

    async def check_appointments(self, phone: str) -> List[Appointment]:
        data = await self._request("GET", "/bookings/check-appointments", params={"phone": require_phone(phone)})
        return self._parse_list(Appointment, data.get("appointments"))

    async def doctor_appointments(
        self,
        status: str = "all",
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[Appointment]:
        params = {"status": status}
        if start_date:
            params["startDate"] = start_date.isoformat()
        if end_date:
            params["endDate"] = end_date.isoformat()
        data = await self._request(
            "GET", "/bookings/doctor/appointments", params=params, headers=self._admin_headers()
        )
        return self._parse_list(Appointment, data.get("appointments"))

    async def _update_appointment(self, booking_id: str, action: str) -> Appointment:
        data = await self._request("PATCH", f"/bookings/{booking_id}/{action}", headers=self._admin_headers())
        return self._parse(Appointment, data.get("appointment"))

    async def confirm_appointment(self, booking_id: str) -> Appointment:
        return await self._update_appointment(booking_id, "confirm")

    async def complete_appointment(self, booking_id: str) -> Appointment:
        return await self._update_appointment(booking_id, "complete")

    async def cancel_appointment(self, booking_id: str) -> Appointment:
        return await self._update_appointment(booking_id, "cancel")

    # Payments
    async def create_payment_order(self, intent: BookingIntent) -> PaymentOrder:
        data = await self._request("POST", "/bookings/payment/order", json=intent.model_dump(mode="json", by_alias=True))
        return self._parse(PaymentOrder, data)

    async def verify_payment(self, order_id: str, payment_id: str, signature: str) -> BookingConfirmation:
        data = await self._request(
            "POST", "/bookings/payment/verify",
            json={
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            }
        )
        return self._parse(BookingConfirmation, data)

    # Notifications
    async def send_notification(
        self,
        channel: str,
        phone: str,
        message: Optional[str] = None,
        booking_id: Optional[str] = None,
    ) -> NotificationResult:
        data = await self._request(
            "POST", f"/notifications/{channel}",
            json={"phone": require_phone(phone), "message": message, "bookingId": booking_id},
            headers=self._admin_headers(),
        )
        return self._parse(NotificationResult, data)

    # Reviews
    async def list_reviews(self) -> List[Review]:
        data = await self._request("GET", "/reviews")
        return self._parse_list(Review, data.get("reviews"))

    async def review_stats(self) -> ReviewStats:
        return self._parse(ReviewStats, await self._request("GET", "/reviews/stats"))

    async def submit_review(self, name: str, review: str, rating: float) -> Dict[str, Any]:
        """Raw submission result: {saved, message, review?}"""
        return await self._request("POST", "/reviews", json={"name": name, "review": review, "rating": rating})

    async def delete_review(self, review_id: int, admin_key: str) -> str:
        data = await self._request("DELETE", f"/reviews/{review_id}", headers=self._admin_headers(admin_key))
        return data.get("message", "")

    # Prescriptions
    async def save_prescription(self, prescription: Prescription) -> Prescription:
        require_phone(prescription.patient_phone)
        body = prescription.model_dump(mode="json", by_alias=True, exclude={"id", "created_at"})
        data = await self._request("POST", "/prescriptions", json=body)
        return self._parse(Prescription, data.get("prescription"))

    async def sent_prescriptions(self, phone: str) -> List[Prescription]:
        data = await self._request("GET", "/prescriptions", params={"phone": require_phone(phone), "sent": "true"})
        return self._parse_list(Prescription, data.get("prescriptions"))

    async def all_prescriptions(self, phone: str) -> List[Prescription]:
        """Drafts included; needs the admin key"""
        data = await self._request(
            "GET", "/prescriptions", params={"phone": require_phone(phone)}, headers=self._admin_headers()
        )
        return self._parse_list(Prescription, data.get("prescriptions"))
