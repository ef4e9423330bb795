"""Prescription writer (doctor) and viewer (patient)"""
import logging
import re
from typing import Dict, List, Optional, Union

from portal.api import ClinicApi, is_valid_phone, require_phone
from portal.config import PortalConfig
from portal.errors import FieldValidationError
from portal.models import Appointment, Prescription, PrescriptionItem

logger = logging.getLogger(__name__)

PATTERN_INPUT = re.compile(r'^[01]-?[01]-?[01]$')


def parse_pattern(value: str) -> str:
    """"1-0-1" (or "101") -> "101"; morning, afternoon, night"""
    raw = (value or "").strip()
    if not PATTERN_INPUT.match(raw):
        raise ValueError(f"Dosage pattern must look like 1-0-1, got {value!r}")
    return raw.replace("-", "")


def format_pattern(pattern: str) -> str:
    """"101" -> "1-0-1" """
    return "-".join(pattern)


def validate_item(medicine: str, days: Union[int, str, None], pattern: str) -> Dict[str, str]:
    errors = {}
    if not (medicine or "").strip():
        errors["medicine"] = "Medicine name is required"
    try:
        valid_days = days is not None and int(days) > 0 and str(days).strip().isdigit()
    except ValueError:
        valid_days = False
    if not valid_days:
        errors["days"] = "Days must be a positive whole number"
    try:
        parse_pattern(pattern)
    except ValueError:
        errors["pattern"] = "Dosage must be three 0/1 values, e.g. 1-0-1"
    return errors


class PrescriptionWriter:
    def __init__(self, api: ClinicApi, config: PortalConfig):
        self.api = api
        self.config = config
        self.patient_name: Optional[str] = None
        self.patient_age: Optional[int] = None
        self.patient_gender: Optional[str] = None
        self.patient_phone: str = ""
        self.items: List[PrescriptionItem] = []

    def prefill_from(self, appointment: Appointment):
        self.patient_name = appointment.patient_name
        self.patient_age = appointment.age
        self.patient_gender = appointment.gender.value
        self.patient_phone = appointment.patient_phone

    def add_item(self, medicine: str, days: Union[int, str], pattern: str, notes: str = "") -> PrescriptionItem:
        errors = validate_item(medicine, days, pattern)
        if errors:
            raise FieldValidationError(errors)
        item = PrescriptionItem(
            medicine=medicine.strip(),
            days=int(days),
            pattern=parse_pattern(pattern),
            notes=(notes or "").strip(),
        )
        self.items.append(item)
        return item

    def remove_item(self, index: int):
        del self.items[index]

    def build(self, sent: bool) -> Prescription:
        errors = {}
        if not is_valid_phone(self.patient_phone):
            errors["phone"] = "A valid 10-digit phone number is required"
        if not self.items:
            errors["items"] = "Please add at least one medication"
        if errors:
            raise FieldValidationError(errors)
        return Prescription(
            clinic_name=self.config.clinic_name,
            clinic_address=self.config.clinic_address,
            doctor_name=self.config.doctor_name,
            doctor_qualification=self.config.doctor_qualification,
            patient_name=self.patient_name,
            patient_age=self.patient_age,
            patient_gender=self.patient_gender,
            patient_phone=self.patient_phone,
            items=list(self.items),
            sent=sent,
        )

    async def save(self) -> Prescription:
        """Draft; not visible to the patient"""
        return await self.api.save_prescription(self.build(sent=False))

    async def send(self) -> Prescription:
        saved = await self.api.save_prescription(self.build(sent=True))
        logger.info("Prescription %s sent to %s", saved.id, saved.patient_phone)
        return saved


class PrescriptionViewer:
    """Patient side: sent prescriptions only, looked up by phone"""

    def __init__(self, api: ClinicApi):
        self.api = api
        self.prescriptions: List[Prescription] = []

    async def lookup(self, phone: str) -> List[Prescription]:
        self.prescriptions = await self.api.sent_prescriptions(require_phone(phone.strip()))
        return self.prescriptions
