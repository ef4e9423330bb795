"""Availability override management and slot queries"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from database import get_session
from dependencies import get_clock, require_admin_key
from models import ApplyMode, AvailabilityOverride, ConsultType
from schemas import (
    DefaultSlotsResponse,
    OverrideAck,
    OverrideEnvelope,
    OverrideResponse,
    OverrideUpsert,
    SlotsResponse,
)
from services.slot_resolver import (
    delete_availability_override,
    get_actual_available_slots,
    get_availability_override,
    get_default_slots,
    load_slots,
    upsert_availability_override,
)
from utils.clock import ClinicClock
from validators.business_rules import get_business_rules
from validators.time_validator import normalize_slot_list, parse_date_string

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Availability"])


def _override_response(override: Optional[AvailabilityOverride]) -> Optional[OverrideResponse]:
    if override is None:
        return None
    return OverrideResponse(
        date=override.override_date,
        consult_type=override.consult_type,
        closed=override.closed,
        slots=load_slots(override.slots) if override.slots is not None else None,
        apply_mode=override.apply_mode,
        updated_at=override.updated_at,
    )


@router.get("/availability/override", response_model=OverrideEnvelope)
def get_override(
    date_str: str = Query(..., alias="date"),
    consult_type: ConsultType = Query(..., alias="consultType"),
    session: Session = Depends(get_session)
):
    """Override for a date, or null when the default schedule applies"""
    override = get_availability_override(session, parse_date_string(date_str), consult_type)
    return OverrideEnvelope(override=_override_response(override))


@router.put(
    "/availability/override",
    response_model=OverrideAck,
    dependencies=[Depends(require_admin_key)]
)
def put_override(
    override_data: OverrideUpsert,
    session: Session = Depends(get_session)
):
    """Create or update an override; closed wins over slots, no slots reverts to default"""
    rules = get_business_rules()
    if (
        override_data.apply_mode == ApplyMode.ALWAYS
        and override_data.consult_type.value not in rules.APPLY_ALWAYS_CONSULT_TYPES
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Apply mode 'always' is only supported for offline consultations"
        )

    slots = None
    if not override_data.closed and override_data.slots:
        slots = normalize_slot_list(override_data.slots)

    override = upsert_availability_override(
        session,
        override_data.date,
        override_data.consult_type,
        closed=override_data.closed,
        slots=slots,
        apply_mode=override_data.apply_mode,
    )

    if override_data.apply_mode == ApplyMode.ALWAYS and (override_data.closed or slots):
        message = "Default schedule updated"
    elif override is None:
        message = "Override removed. Using default schedule."
    elif override.closed:
        message = "Marked as closed for this date"
    else:
        message = "Custom slots saved for this date"
    return OverrideAck(message=message, override=_override_response(override))


@router.delete(
    "/availability/override",
    response_model=OverrideAck,
    dependencies=[Depends(require_admin_key)]
)
def delete_override(
    date_str: str = Query(..., alias="date"),
    consult_type: ConsultType = Query(..., alias="consultType"),
    session: Session = Depends(get_session)
):
    """Revert a date to the default schedule. Deleting twice is not an error."""
    delete_availability_override(session, parse_date_string(date_str), consult_type)
    return OverrideAck(message="Override removed. Using default schedule.")


@router.get("/availability/default-slots", response_model=DefaultSlotsResponse)
def default_slots(
    date_str: str = Query(..., alias="date"),
    consult_type: ConsultType = Query(..., alias="consultType"),
    session: Session = Depends(get_session)
):
    """Baseline weekly slots for the date, ignoring overrides and bookings"""
    return DefaultSlotsResponse(slots=get_default_slots(session, parse_date_string(date_str), consult_type))


@router.get("/slots", response_model=SlotsResponse)
def actual_slots(
    date_str: str = Query(..., alias="date"),
    consult_type: ConsultType = Query(..., alias="consultType"),
    session: Session = Depends(get_session),
    clock: ClinicClock = Depends(get_clock)
):
    """Patient-facing slots with overrides and bookings applied"""
    slots = get_actual_available_slots(session, parse_date_string(date_str), consult_type, now=clock.now())
    return SlotsResponse(available_slots=slots)
