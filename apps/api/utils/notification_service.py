"""WhatsApp/SMS notification service using Twilio"""
import logging
from typing import Optional, Tuple
from urllib.parse import quote

from twilio.rest import Client
from twilio.base.exceptions import TwilioRestException

from config import Settings

logger = logging.getLogger(__name__)

COUNTRY_CODE = "91"


def to_e164(phone: str) -> str:
    """10-digit Indian mobile number to E.164"""
    digits = "".join(ch for ch in phone if ch.isdigit())
    if len(digits) == 10:
        return f"+{COUNTRY_CODE}{digits}"
    return f"+{digits}"


def whatsapp_link(phone: str, message: str) -> str:
    """Click-to-chat link that opens WhatsApp with the message prefilled"""
    return f"https://wa.me/{to_e164(phone).lstrip('+')}?text={quote(message)}"


class NotificationService:
    def __init__(self, settings: Settings):
        self.whatsapp_from = settings.twilio_whatsapp_from
        self.sms_from = settings.twilio_sms_from

        if settings.twilio_account_sid and settings.twilio_auth_token:
            self.client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
        else:
            self.client = None
            logger.warning("Twilio credentials not configured. Notifications will be simulated.")

    def _is_configured(self) -> bool:
        """Check if Twilio is properly configured"""
        return self.client is not None and bool(self.whatsapp_from) and bool(self.sms_from)

    def send_whatsapp(self, to_phone: str, message: str) -> Tuple[bool, Optional[str]]:
        """
        Send WhatsApp message via Twilio

        Args:
            to_phone: 10-digit number or E.164 (e.g., +919876543210)
            message: Message content

        Returns:
            (success: bool, message_sid or error: str)
        """
        to_phone = to_e164(to_phone)
        if not self._is_configured():
            logger.info(f"[SIMULATED WhatsApp] To: {to_phone}, Message: {message}")
            return True, "simulated_message_sid"

        try:
            message_obj = self.client.messages.create(
                from_=self.whatsapp_from,
                body=message,
                to=f"whatsapp:{to_phone}"
            )
            return True, message_obj.sid
        except TwilioRestException as e:
            error_msg = f"Twilio error: {str(e)}"
            logger.warning(error_msg)
            return False, error_msg

    def send_sms(self, to_phone: str, message: str) -> Tuple[bool, Optional[str]]:
        """Send SMS via Twilio; same contract as send_whatsapp"""
        to_phone = to_e164(to_phone)
        if not self._is_configured():
            logger.info(f"[SIMULATED SMS] To: {to_phone}, Message: {message}")
            return True, "simulated_message_sid"

        try:
            message_obj = self.client.messages.create(
                from_=self.sms_from,
                body=message,
                to=to_phone
            )
            return True, message_obj.sid
        except TwilioRestException as e:
            error_msg = f"Twilio error: {str(e)}"
            logger.warning(error_msg)
            return False, error_msg

    def send_notification(
        self,
        to_phone: str,
        message: str,
        notification_type: str = "whatsapp"
    ) -> Tuple[bool, Optional[str]]:
        """Send notification via "whatsapp" or "sms" """
        if notification_type == "whatsapp":
            return self.send_whatsapp(to_phone, message)
        elif notification_type == "sms":
            return self.send_sms(to_phone, message)
        else:
            return False, f"Invalid notification type: {notification_type}"


# Template rendering functions
def render_appointment_booked(
    patient_name: str,
    doctor_name: str,
    date: str,
    time: str,
    booking_id: str,
    consult_type: str,
    clinic_address: str,
    video_url: Optional[str] = None
) -> str:
    """Render appointment booked notification template"""
    if consult_type == "online":
        where = f"Join the video consultation at: {video_url}"
    else:
        where = f"Clinic: {clinic_address}\nPlease arrive 10 minutes before your scheduled time."

    return f"""Hello {patient_name},

Your appointment has been booked successfully!

Doctor: {doctor_name}
Date: {date}
Time: {time}
Booking ID: {booking_id}

{where}"""


def render_new_booking_for_doctor(patient_name: str, patient_phone: str, date: str, time: str, consult_type: str, booking_id: str) -> str:
    """Render the doctor's copy of a new booking"""
    return f"""New {consult_type} appointment

Patient: {patient_name} ({patient_phone})
Date: {date}
Time: {time}
Booking ID: {booking_id}"""


def render_appointment_confirmed(patient_name: str, doctor_name: str, date: str, time: str) -> str:
    """Render appointment confirmed notification template"""
    return f"""Hello {patient_name},

Your payment has been verified and your appointment with {doctor_name} is confirmed!

Date: {date}
Time: {time}

See you soon!"""
