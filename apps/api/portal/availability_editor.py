"""
Availability editor

Shows three layers for one (date, consult type): what patients can book,
the recurring weekly default, and the edit in progress.
"""
import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import List, Optional, Tuple

from portal.api import ClinicApi
from portal.errors import ApiError, FieldValidationError, InvalidTransition, NetworkError
from portal.models import ApplyMode, AvailabilityOverride, ConsultType
from validators.business_rules import get_business_rules
from validators.time_validator import normalize_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverrideDraft:
    closed: bool = False
    slots: Tuple[str, ...] = ()
    apply_mode: ApplyMode = ApplyMode.ONCE


def apply_mode_options(consult_type: ConsultType) -> List[ApplyMode]:
    rules = get_business_rules()
    if consult_type.value in rules.APPLY_ALWAYS_CONSULT_TYPES:
        return [ApplyMode.ONCE, ApplyMode.ALWAYS]
    return [ApplyMode.ONCE]


class AvailabilityEditor:
    def __init__(self, api: ClinicApi):
        self.api = api
        self.date: Optional[date] = None
        self.consult_type: Optional[ConsultType] = None
        self.actual_slots: List[str] = []
        self.default_slots: List[str] = []
        self.override: Optional[AvailabilityOverride] = None
        self.draft = OverrideDraft()
        self.message: Optional[str] = None
        self.error: Optional[str] = None
        self.in_flight = False
        self._generation = 0

    async def open(self, slot_date: date, consult_type: ConsultType):
        self.date = slot_date
        self.consult_type = ConsultType(consult_type)
        self.message = None
        await self.reload()

    async def reload(self):
        """Fetch all three layers; a newer open() wins over a slower older one"""
        if self.date is None:
            raise InvalidTransition("Pick a date first")
        self._generation += 1
        generation = self._generation
        slot_date, consult_type = self.date, self.consult_type
        try:
            actual, default, override = await asyncio.gather(
                self.api.get_actual_slots(slot_date, consult_type),
                self.api.get_default_slots(slot_date, consult_type),
                self.api.get_override(slot_date, consult_type),
            )
        except (ApiError, NetworkError) as e:
            if generation == self._generation:
                self.error = str(e)
            return

        if generation != self._generation:
            return
        self.actual_slots, self.default_slots, self.override = actual, default, override
        self.error = None
        if override is not None:
            self.draft = OverrideDraft(
                closed=override.closed,
                slots=tuple(override.slots or ()),
                apply_mode=override.apply_mode,
            )
        else:
            self.draft = OverrideDraft(slots=tuple(default))

    @property
    def added_slots(self) -> List[str]:
        return sorted(set(self.draft.slots) - set(self.default_slots))

    @property
    def removed_slots(self) -> List[str]:
        if self.draft.closed:
            return list(self.default_slots)
        return sorted(set(self.default_slots) - set(self.draft.slots))

    def add_slot(self, time: str):
        normalized = normalize_time(time)
        if normalized is None:
            raise FieldValidationError({"slot": f"Invalid time: {time}. Use HH:MM"})
        self.draft = replace(self.draft, slots=tuple(sorted(set(self.draft.slots) | {normalized})))

    def remove_slot(self, time: str):
        normalized = normalize_time(time)
        self.draft = replace(self.draft, slots=tuple(s for s in self.draft.slots if s != normalized))

    def set_closed(self, closed: bool):
        self.draft = replace(self.draft, closed=closed)

    def set_apply_mode(self, apply_mode: ApplyMode):
        apply_mode = ApplyMode(apply_mode)
        if apply_mode not in apply_mode_options(self.consult_type):
            raise FieldValidationError({"applyMode": "Apply always is only available for offline consultations"})
        self.draft = replace(self.draft, apply_mode=apply_mode)

    async def save(self) -> str:
        if self.date is None:
            raise InvalidTransition("Pick a date first")
        if self.in_flight:
            return ""
        self.in_flight = True
        try:
            ack = await self.api.put_override(
                self.date,
                self.consult_type,
                closed=self.draft.closed,
                slots=None if self.draft.closed else list(self.draft.slots),
                apply_mode=self.draft.apply_mode,
            )
        finally:
            self.in_flight = False
        self.message = ack.message
        logger.info("Availability saved for %s (%s)", self.date, self.consult_type.value)
        await self.reload()
        return ack.message

    async def delete(self) -> str:
        """Revert the date to the default schedule"""
        if self.date is None:
            raise InvalidTransition("Pick a date first")
        ack = await self.api.delete_override(self.date, self.consult_type)
        self.message = ack.message
        await self.reload()
        return ack.message
