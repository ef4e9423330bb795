"""
Booking flow

The wizard is one value out of ConsultTypeStep, DatePickStep, SlotPickStep,
DetailsStep, PaymentStep (online only), ConfirmStep and ConfirmedStep. Each
step carries only what is known at that point. Transition functions are pure
and raise InvalidTransition when called from the wrong step; BookingFlow
drives them against the API.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from portal.api import ClinicApi, is_valid_phone
from portal.config import PortalConfig
from portal.errors import ApiError, ConfigurationError, InvalidTransition, NetworkError
from portal.models import (
    Appointment,
    BookingConfirmation,
    BookingIntent,
    ConsultType,
    Gender,
    WhatsappLinks,
)
from portal.payment_bridge import (
    Checkout,
    CheckoutRequest,
    PaymentCancelled,
    PaymentFailed,
    PaymentOutcome,
    PaymentProof,
    PaymentSucceeded,
)
from utils.clock import ClinicClock
from validators.business_rules import get_business_rules

logger = logging.getLogger(__name__)

ARRIVAL_INSTRUCTIONS = "Please arrive 10 minutes before your scheduled time."
NO_SLOTS_MESSAGE = "No slots available on this date. Please pick another date."
PAYMENT_NOT_CONFIGURED = "Online payment is not configured. Please contact the clinic."


# Steps
@dataclass(frozen=True)
class PatientDetails:
    name: str = ""
    phone: str = ""
    age: Optional[Union[int, str]] = None
    gender: Optional[str] = None


@dataclass(frozen=True)
class ConsultTypeStep:
    pass


@dataclass(frozen=True)
class DatePickStep:
    consult_type: ConsultType


@dataclass(frozen=True)
class SlotPickStep:
    consult_type: ConsultType
    date: date
    slots: Tuple[str, ...] = ()
    loading: bool = True
    error: Optional[str] = None  # retryable fetch failure

    @property
    def buckets(self) -> Dict[str, List[str]]:
        return partition_slots(self.slots)

    @property
    def empty_message(self) -> Optional[str]:
        if self.loading or self.error or self.slots:
            return None
        return NO_SLOTS_MESSAGE


@dataclass(frozen=True)
class DetailsStep:
    consult_type: ConsultType
    date: date
    time: str
    details: PatientDetails = PatientDetails()
    errors: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentStep:
    consult_type: ConsultType
    date: date
    time: str
    details: PatientDetails
    configuration_error: Optional[str] = None
    status_message: Optional[str] = None
    proof: Optional[PaymentProof] = None
    slots: Tuple[str, ...] = ()  # refreshed after the slot was lost

    @property
    def can_pay(self) -> bool:
        return self.configuration_error is None


@dataclass(frozen=True)
class ConfirmStep:
    consult_type: ConsultType
    date: date
    time: str
    details: PatientDetails
    error: Optional[str] = None  # server message, verbatim
    slots: Tuple[str, ...] = ()  # refreshed after a failed submit


@dataclass(frozen=True)
class ConfirmedStep:
    appointment: Appointment
    message: str
    whatsapp: WhatsappLinks
    clinic_address: Optional[str] = None

    @property
    def booking_id(self) -> str:
        return self.appointment.booking_id

    @property
    def video_url(self) -> Optional[str]:
        return self.appointment.video_url if self.appointment.is_online else None

    @property
    def arrival_instructions(self) -> Optional[str]:
        return None if self.appointment.is_online else ARRIVAL_INSTRUCTIONS


BookingState = Union[
    ConsultTypeStep, DatePickStep, SlotPickStep, DetailsStep, PaymentStep, ConfirmStep, ConfirmedStep
]

_IN_PROGRESS = (DatePickStep, SlotPickStep, DetailsStep, PaymentStep, ConfirmStep)


# Rules
def selectable_dates(consult_type: ConsultType, today: date) -> List[date]:
    """today .. today+2; in-person visits skip the clinic's closed weekdays"""
    rules = get_business_rules()
    dates = [today + timedelta(days=offset) for offset in range(rules.BOOKING_HORIZON_DAYS)]
    if consult_type == ConsultType.OFFLINE:
        dates = [d for d in dates if d.weekday() not in rules.OFFLINE_CLOSED_WEEKDAYS]
    return dates


def partition_slots(slots: Sequence[str]) -> Dict[str, List[str]]:
    """Display buckets; "HH:MM" strings sort chronologically"""
    rules = get_business_rules()
    buckets = {"Morning": [], "Afternoon": [], "Evening": []}
    for slot in sorted(slots):
        if slot < rules.AFTERNOON_STARTS_AT:
            buckets["Morning"].append(slot)
        elif slot < rules.EVENING_STARTS_AT:
            buckets["Afternoon"].append(slot)
        else:
            buckets["Evening"].append(slot)
    return buckets


def validate_details(details: PatientDetails) -> Dict[str, str]:
    """Field name -> message for every missing or invalid field"""
    errors = {}
    if not (details.name or "").strip():
        errors["name"] = "Name is required"
    if not is_valid_phone((details.phone or "").strip()):
        errors["phone"] = "Enter a 10-digit phone number"
    try:
        age = int(details.age) if details.age is not None and str(details.age).strip() else None
    except ValueError:
        age = None
    if age is None or not 1 <= age <= 120:
        errors["age"] = "Age must be between 1 and 120"
    if details.gender not in {g.value for g in Gender}:
        errors["gender"] = "Please select a gender"
    return errors


def booking_intent(state: Union[PaymentStep, ConfirmStep]) -> BookingIntent:
    details = state.details
    return BookingIntent(
        date=state.date,
        time=state.time,
        patient_name=details.name.strip(),
        patient_phone=details.phone.strip(),
        age=int(details.age),
        gender=Gender(details.gender),
        consult_type=state.consult_type,
    )


# Transitions
def _expect(state: BookingState, *allowed) -> None:
    if not isinstance(state, allowed):
        names = ", ".join(step.__name__ for step in allowed)
        raise InvalidTransition(f"Expected {names}, got {type(state).__name__}")


def choose_consult_type(state: BookingState, consult_type: ConsultType) -> DatePickStep:
    """Picking (or re-picking) the consult type drops every later choice"""
    _expect(state, ConsultTypeStep, *_IN_PROGRESS)
    return DatePickStep(consult_type=ConsultType(consult_type))


def choose_date(state: BookingState, slot_date: date, today: date) -> SlotPickStep:
    _expect(state, *_IN_PROGRESS)
    if slot_date not in selectable_dates(state.consult_type, today):
        raise InvalidTransition(f"{slot_date.isoformat()} is not selectable for {state.consult_type.value} visits")
    return SlotPickStep(consult_type=state.consult_type, date=slot_date)


def slots_loaded(state: BookingState, slot_date: date, slots: Sequence[str]) -> BookingState:
    """Apply a slot fetch; results for any other date are ignored"""
    if isinstance(state, SlotPickStep) and state.date == slot_date:
        return replace(state, slots=tuple(sorted(slots)), loading=False, error=None)
    if isinstance(state, (ConfirmStep, PaymentStep)) and state.date == slot_date:
        return replace(state, slots=tuple(sorted(slots)))
    return state


def slots_failed(state: BookingState, slot_date: date, message: str) -> BookingState:
    if isinstance(state, SlotPickStep) and state.date == slot_date:
        return replace(state, loading=False, error=message)
    return state


def choose_slot(state: BookingState, time: str) -> Union[DetailsStep, PaymentStep, ConfirmStep]:
    """From the slot list, or a replacement slot after a failed submit or payment"""
    _expect(state, SlotPickStep, PaymentStep, ConfirmStep)
    if time not in state.slots:
        raise InvalidTransition(f"{time} is not an available slot")
    if isinstance(state, ConfirmStep):
        return replace(state, time=time, error=None)
    if isinstance(state, PaymentStep):
        return replace(state, time=time, status_message=None, proof=None)
    return DetailsStep(consult_type=state.consult_type, date=state.date, time=time)


def submit_details(
    state: BookingState,
    details: PatientDetails,
    payment_key: Optional[str] = None,
) -> Union[DetailsStep, PaymentStep, ConfirmStep]:
    """Stay with field errors, or go on to Payment (online) or Confirm (offline)"""
    _expect(state, DetailsStep)
    errors = validate_details(details)
    if errors:
        return replace(state, details=details, errors=errors)

    cleaned = replace(
        details,
        name=details.name.strip(),
        phone=details.phone.strip(),
        age=int(details.age),
    )
    if state.consult_type == ConsultType.ONLINE:
        return PaymentStep(
            consult_type=state.consult_type,
            date=state.date,
            time=state.time,
            details=cleaned,
            configuration_error=None if payment_key else PAYMENT_NOT_CONFIGURED,
        )
    return ConfirmStep(consult_type=state.consult_type, date=state.date, time=state.time, details=cleaned)


def payment_finished(state: BookingState, outcome: PaymentOutcome) -> PaymentStep:
    """Checkout outcome; cancellation and failure keep the patient on Payment"""
    _expect(state, PaymentStep)
    if isinstance(outcome, PaymentSucceeded):
        return replace(state, proof=outcome.proof, status_message="Verifying payment...")
    if isinstance(outcome, PaymentCancelled):
        return replace(state, proof=None, status_message="Payment was cancelled. You can try again.")
    if isinstance(outcome, PaymentFailed):
        return replace(state, proof=None, status_message=f"Payment failed: {outcome.reason}")
    raise InvalidTransition(f"Unknown payment outcome {outcome!r}")


def booking_succeeded(
    state: BookingState,
    confirmation: BookingConfirmation,
    clinic_address: Optional[str] = None,
) -> ConfirmedStep:
    _expect(state, ConfirmStep, PaymentStep)
    if not confirmation.appointment.booking_id:
        raise InvalidTransition("A confirmation needs a server-assigned booking ID")
    appointment = confirmation.appointment
    return ConfirmedStep(
        appointment=appointment,
        message=confirmation.message,
        whatsapp=confirmation.whatsapp_notifications,
        clinic_address=None if appointment.is_online else clinic_address,
    )


def booking_failed(state: BookingState, message: str) -> Union[ConfirmStep, PaymentStep]:
    _expect(state, ConfirmStep, PaymentStep)
    if isinstance(state, PaymentStep):
        return replace(state, status_message=message)
    return replace(state, error=message)


def reset() -> ConsultTypeStep:
    return ConsultTypeStep()


# Controller
class BookingFlow:
    """
    Drives the wizard against the API.

    `in_flight` rejects a second submit while one is running. Every slot
    fetch takes a generation number and only the latest one may update the
    state, so a slow response for an old date never replaces a newer list.
    Booking and payment responses are dropped the same way when the wizard
    was closed or rewound while they were out.
    """

    def __init__(
        self,
        api: ClinicApi,
        config: PortalConfig,
        checkout: Optional[Checkout] = None,
        clock: Optional[ClinicClock] = None,
    ):
        self.api = api
        self.config = config
        self.checkout = checkout
        self.clock = clock or ClinicClock(config.timezone)
        self.state: BookingState = ConsultTypeStep()
        self.slots: Tuple[str, ...] = ()  # last successful fetch
        self.in_flight = False
        self._generation = 0  # slot fetches
        self._epoch = 0  # bumped whenever the wizard is restarted or rewound

    @property
    def today(self) -> date:
        return self.clock.now().date()

    def selectable_dates(self) -> List[date]:
        if isinstance(self.state, ConsultTypeStep) or isinstance(self.state, ConfirmedStep):
            return []
        return selectable_dates(self.state.consult_type, self.today)

    def select_consult_type(self, consult_type: ConsultType):
        self._generation += 1
        self._epoch += 1
        self.slots = ()
        self.state = choose_consult_type(self.state, consult_type)

    async def select_date(self, slot_date: date):
        self.state = choose_date(self.state, slot_date, self.today)
        self._epoch += 1
        self.slots = ()
        await self.refresh_slots()

    async def refresh_slots(self):
        """Fetch slots for the chosen date; retry by calling this again"""
        state = self.state
        if not hasattr(state, "date") or isinstance(state, ConfirmedStep):
            raise InvalidTransition("No date has been chosen")
        slot_date, consult_type = state.date, state.consult_type

        self._generation += 1
        generation = self._generation
        try:
            slots = await self.api.get_booking_slots(slot_date, consult_type)
        except (NetworkError, ApiError) as e:
            if generation == self._generation:
                self.state = slots_failed(self.state, slot_date, str(e))
            return

        if generation != self._generation:
            logger.debug("Dropping stale slot response for %s", slot_date)
            return
        self.slots = tuple(sorted(slots))
        self.state = slots_loaded(self.state, slot_date, slots)

    def select_slot(self, time: str):
        self.state = choose_slot(self.state, time)

    def submit_details(self, details: PatientDetails) -> Mapping[str, str]:
        """Returns the field errors (empty when the flow moved on)"""
        self.state = submit_details(self.state, details, payment_key=self.config.razorpay_key_id)
        return self.state.errors if isinstance(self.state, DetailsStep) else {}

    def _is_stale(self, epoch: int) -> bool:
        """True when close() or a new choice happened while a call was out"""
        if epoch != self._epoch:
            logger.debug("Dropping a booking response that arrived after the wizard moved on")
            return True
        return False

    async def submit_booking(self):
        """Offline path: create the booking from the Confirm step"""
        _expect(self.state, ConfirmStep)
        if self.in_flight:
            return
        self.in_flight = True
        state = self.state
        epoch = self._epoch
        try:
            confirmation = await self.api.create_booking(booking_intent(state))
        except (ApiError, NetworkError) as e:
            if self._is_stale(epoch):
                return
            logger.info("Booking for %s %s failed: %s", state.date, state.time, e)
            self.state = booking_failed(state, str(e))
            await self.refresh_slots()
            return
        finally:
            self.in_flight = False

        if self._is_stale(epoch):
            return
        self.state = booking_succeeded(state, confirmation, self.config.clinic_address)
        await self._refresh_after_booking(state.date, state.consult_type)

    async def _payment_failed(self, state: PaymentStep, error: Exception):
        self.state = booking_failed(state, str(error))
        if isinstance(error, ApiError) and error.status_code == 409:
            # The slot went to someone else; offer what is left
            await self.refresh_slots()

    async def pay(self):
        """Online path: order, hosted checkout, then server-side verification"""
        _expect(self.state, PaymentStep)
        state = self.state
        if not state.can_pay:
            raise ConfigurationError(state.configuration_error)
        if self.checkout is None:
            raise ConfigurationError("No checkout is available")
        if self.in_flight:
            return

        self.in_flight = True
        epoch = self._epoch
        try:
            intent = booking_intent(state)
            try:
                order = await self.api.create_payment_order(intent)
            except (ApiError, NetworkError) as e:
                if not self._is_stale(epoch):
                    await self._payment_failed(state, e)
                return
            if self._is_stale(epoch):
                return

            outcome = await self.checkout.open(CheckoutRequest(
                key_id=order.key_id or self.config.razorpay_key_id,
                order=order,
                clinic_name=self.config.clinic_name,
                description=f"Online consultation on {state.date:%d/%m/%Y} at {state.time}",
                patient_name=intent.patient_name,
                patient_phone=intent.patient_phone,
            ))
            if self._is_stale(epoch):
                return
            self.state = payment_finished(state, outcome)
            if not isinstance(outcome, PaymentSucceeded):
                return

            proof = outcome.proof
            try:
                confirmation = await self.api.verify_payment(proof.order_id, proof.payment_id, proof.signature)
            except (ApiError, NetworkError) as e:
                if self._is_stale(epoch):
                    return
                logger.warning("Payment verification failed for order %s: %s", proof.order_id, e)
                await self._payment_failed(self.state, e)
                return
        finally:
            self.in_flight = False

        if self._is_stale(epoch):
            return
        self.state = booking_succeeded(self.state, confirmation, self.config.clinic_address)
        await self._refresh_after_booking(state.date, state.consult_type)

    async def _refresh_after_booking(self, slot_date: date, consult_type: ConsultType):
        """The just-taken slot must not stay on offer"""
        self._generation += 1
        generation = self._generation
        try:
            slots = await self.api.get_booking_slots(slot_date, consult_type)
        except (ApiError, NetworkError) as e:
            logger.info("Slot refresh after booking failed: %s", e)
            self.slots = ()
            return
        if generation == self._generation:
            self.slots = tuple(sorted(slots))

    def close(self):
        """Closing the wizard forgets everything"""
        self._generation += 1
        self._epoch += 1
        self.in_flight = False
        self.slots = ()
        self.state = reset()
