"""Prescription management endpoints"""
import json
import logging
import re
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlmodel import Session, select

from config import Settings, get_settings
from database import get_session
from dependencies import require_admin_key
from models import Prescription
from schemas import (
    PrescriptionCreate,
    PrescriptionItem,
    PrescriptionResponse,
    PrescriptionSaved,
    PrescriptionsResponse,
)
from validators.booking_validator import validate_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/prescriptions", tags=["Prescriptions"])

DOSAGE_PATTERN = re.compile(r'^[01]{3}$')


def normalize_items(items: List[PrescriptionItem]) -> List[PrescriptionItem]:
    """Validate items; dosage "1-0-1" is stored as "101" """
    if not items:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please add at least one medication"
        )

    normalized = []
    for index, item in enumerate(items, start=1):
        medicine = item.medicine.strip()
        pattern = item.pattern.replace("-", "").strip()
        if not medicine:
            raise HTTPException(status_code=400, detail=f"Item {index}: medicine name is required")
        if item.days <= 0:
            raise HTTPException(status_code=400, detail=f"Item {index}: days must be a positive number")
        if not DOSAGE_PATTERN.match(pattern):
            raise HTTPException(
                status_code=400,
                detail=f"Item {index}: dosage pattern must look like 1-0-1 (morning-afternoon-night)"
            )
        normalized.append(PrescriptionItem(
            medicine=medicine,
            days=item.days,
            pattern=pattern,
            notes=(item.notes or "").strip(),
        ))
    return normalized


def to_response(prescription: Prescription) -> PrescriptionResponse:
    return PrescriptionResponse(
        id=prescription.id,
        clinic_name=prescription.clinic_name,
        clinic_address=prescription.clinic_address,
        doctor_name=prescription.doctor_name,
        doctor_qualification=prescription.doctor_qualification,
        patient_name=prescription.patient_name,
        patient_age=prescription.patient_age,
        patient_gender=prescription.patient_gender,
        patient_phone=prescription.patient_phone,
        items=[PrescriptionItem.model_validate(item) for item in json.loads(prescription.items)],
        sent=prescription.sent,
        created_at=prescription.created_at,
    )


@router.post("", response_model=PrescriptionSaved, status_code=status.HTTP_201_CREATED)
def create_prescription(
    prescription_data: PrescriptionCreate,
    session: Session = Depends(get_session)
):
    """Save a draft (sent=false) or send it to the patient (sent=true)"""
    validate_phone(prescription_data.patient_phone)
    items = normalize_items(prescription_data.items)

    prescription = Prescription(
        **prescription_data.model_dump(exclude={"items"}),
        items=json.dumps([item.model_dump() for item in items]),
    )
    session.add(prescription)
    session.commit()
    session.refresh(prescription)
    logger.info("Prescription %s stored (sent=%s)", prescription.id, prescription.sent)

    message = "Prescription sent to patient" if prescription.sent else "Prescription saved"
    return PrescriptionSaved(message=message, prescription=to_response(prescription))


@router.get("", response_model=PrescriptionsResponse)
def get_prescriptions(
    phone: str = Query(...),
    sent: Optional[bool] = Query(None),
    x_admin_key: Optional[str] = Header(None),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings)
):
    """Prescriptions for a phone number. Patients see sent ones; drafts need the admin key."""
    validate_phone(phone)
    query = select(Prescription).where(Prescription.patient_phone == phone)

    if sent is True:
        query = query.where(Prescription.sent == True)  # noqa: E712
    else:
        require_admin_key(x_admin_key, settings)
        if sent is False:
            query = query.where(Prescription.sent == False)  # noqa: E712

    prescriptions = session.exec(query.order_by(Prescription.created_at.desc(), Prescription.id.desc())).all()
    return PrescriptionsResponse(prescriptions=[to_response(p) for p in prescriptions])
