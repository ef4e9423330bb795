"""
Slot availability resolution

Three layers decide what a patient can book on a date:
the recurring weekly default, an optional per-date override, and the
bookings already holding a time. Actual slots are (override or default)
minus booked times, minus times that have already passed today.
"""
import json
import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Set

from sqlmodel import Session, select

from models import (
    ApplyMode,
    AvailabilityOverride,
    Booking,
    BookingStatus,
    ConsultType,
    DefaultSchedule,
    utcnow,
)
from validators.business_rules import get_business_rules

logger = logging.getLogger(__name__)


def resolve_available_slots(
    default_slots: Iterable[str],
    booked_times: Iterable[str] = (),
    closed: bool = False,
    override_slots: Optional[Iterable[str]] = None,
    not_before: Optional[str] = None,
) -> List[str]:
    """Pure slot computation; every input is a zero-padded "HH:MM" string"""
    if closed:
        return []
    base = set(override_slots) if override_slots else set(default_slots)
    available = base - set(booked_times)
    if not_before is not None:
        available = {slot for slot in available if slot > not_before}
    return sorted(available)


def load_slots(raw: Optional[str]) -> List[str]:
    return json.loads(raw) if raw else []


def dump_slots(slots: Iterable[str]) -> str:
    return json.dumps(sorted(set(slots)))


def _schedule_row(session: Session, day_of_week: int, consult_type: ConsultType) -> Optional[DefaultSchedule]:
    return session.exec(
        select(DefaultSchedule).where(
            DefaultSchedule.day_of_week == day_of_week,
            DefaultSchedule.consult_type == consult_type.value
        )
    ).first()


def get_default_slots(session: Session, slot_date: date, consult_type: ConsultType) -> List[str]:
    """Baseline schedule for the weekday, ignoring overrides and bookings"""
    row = _schedule_row(session, slot_date.weekday(), consult_type)
    if row is not None:
        return sorted(load_slots(row.slots))
    rules = get_business_rules()
    return sorted(rules.DEFAULT_SCHEDULE[consult_type.value].get(slot_date.weekday(), []))


def get_availability_override(
    session: Session,
    slot_date: date,
    consult_type: ConsultType
) -> Optional[AvailabilityOverride]:
    return session.exec(
        select(AvailabilityOverride).where(
            AvailabilityOverride.override_date == slot_date,
            AvailabilityOverride.consult_type == consult_type.value
        )
    ).first()


def get_booked_times(session: Session, slot_date: date, consult_type: ConsultType) -> Set[str]:
    """Times held by active (not cancelled) bookings"""
    times = session.exec(
        select(Booking.slot_time).where(
            Booking.slot_date == slot_date,
            Booking.consult_type == consult_type.value,
            Booking.status != BookingStatus.CANCELLED.value
        )
    ).all()
    return set(times)


def get_actual_available_slots(
    session: Session,
    slot_date: date,
    consult_type: ConsultType,
    now: Optional[datetime] = None
) -> List[str]:
    """What patients see: default or override, minus booked and already-passed times"""
    override = get_availability_override(session, slot_date, consult_type)
    not_before = None
    if now is not None:
        if slot_date < now.date():
            return []
        if slot_date == now.date():
            not_before = now.strftime("%H:%M")

    return resolve_available_slots(
        default_slots=get_default_slots(session, slot_date, consult_type),
        booked_times=get_booked_times(session, slot_date, consult_type),
        closed=bool(override and override.closed),
        override_slots=load_slots(override.slots) if override else None,
        not_before=not_before,
    )


def set_default_slots(session: Session, day_of_week: int, consult_type: ConsultType, slots: Iterable[str]) -> DefaultSchedule:
    row = _schedule_row(session, day_of_week, consult_type)
    if row is None:
        row = DefaultSchedule(day_of_week=day_of_week, consult_type=consult_type.value)
    row.slots = dump_slots(slots)
    row.updated_at = utcnow()
    session.add(row)
    return row


def delete_availability_override(session: Session, slot_date: date, consult_type: ConsultType) -> bool:
    """Remove the override for a date; returns whether one existed"""
    override = get_availability_override(session, slot_date, consult_type)
    if override is None:
        return False
    session.delete(override)
    session.commit()
    logger.info("Override removed for %s (%s)", slot_date, consult_type.value)
    return True


def upsert_availability_override(
    session: Session,
    slot_date: date,
    consult_type: ConsultType,
    closed: bool,
    slots: Optional[List[str]],
    apply_mode: ApplyMode
) -> Optional[AvailabilityOverride]:
    """
    Apply an admin edit for one date.

    Returns the stored override, or None when the edit leaves no per-date
    override behind (reverted to default, or merged into the weekly default).
    Slots must already be normalized.
    """
    if apply_mode == ApplyMode.ALWAYS and (closed or slots):
        # Becomes the weekday's permanent default; no per-date row remains
        set_default_slots(session, slot_date.weekday(), consult_type, [] if closed else slots)
        existing = get_availability_override(session, slot_date, consult_type)
        if existing is not None:
            session.delete(existing)
        session.commit()
        logger.info(
            "Default %s schedule for weekday %s replaced (closed=%s)",
            consult_type.value, slot_date.weekday(), closed
        )
        return None

    if not closed and not slots:
        delete_availability_override(session, slot_date, consult_type)
        return None

    override = get_availability_override(session, slot_date, consult_type)
    if override is None:
        override = AvailabilityOverride(override_date=slot_date, consult_type=consult_type.value)
    override.closed = closed
    override.slots = None if closed else dump_slots(slots)
    override.apply_mode = apply_mode.value
    override.updated_at = utcnow()

    session.add(override)
    session.commit()
    session.refresh(override)
    logger.info("Override saved for %s (%s): closed=%s", slot_date, consult_type.value, closed)
    return override


def seed_default_schedule(session: Session) -> int:
    """Create the weekly default rows from business rules when the table is empty"""
    if session.exec(select(DefaultSchedule)).first() is not None:
        return 0

    rules = get_business_rules()
    created = 0
    for consult_type, days in rules.DEFAULT_SCHEDULE.items():
        for day_of_week, slots in days.items():
            session.add(DefaultSchedule(
                day_of_week=day_of_week,
                consult_type=consult_type,
                slots=dump_slots(slots)
            ))
            created += 1
    session.commit()
    logger.info("Seeded %d default schedule rows", created)
    return created
