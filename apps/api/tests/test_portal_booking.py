import asyncio

import pytest

from conftest import ADMIN_KEY, NOW, RAZORPAY_KEY_ID, booking_payload, day
from portal.api import ClinicApi
from portal.booking_flow import (
    BookingFlow,
    ConfirmStep,
    ConfirmedStep,
    ConsultTypeStep,
    DatePickStep,
    DetailsStep,
    PatientDetails,
    PaymentStep,
    SlotPickStep,
)
from portal.config import PortalConfig
from portal.errors import ConfigurationError, InvalidTransition, NetworkError
from portal.models import ConsultType
from portal.payment_bridge import CallbackCheckout, Checkout, PaymentCancelled, PaymentProof, PaymentSucceeded
from utils.clock import FixedClock

pytestmark = pytest.mark.anyio

ASHA = PatientDetails(name="Asha", phone="9876543210", age=30, gender="female")


@pytest.fixture
def config():
    return PortalConfig(base_url="http://test", razorpay_key_id=RAZORPAY_KEY_ID, admin_key=ADMIN_KEY)


@pytest.fixture
def api(http_client, config):
    return ClinicApi(config, client=http_client)


def make_flow(api, config, checkout=None):
    return BookingFlow(api, config, checkout=checkout, clock=FixedClock(NOW))


async def walk_to_details(flow, consult_type, slot="10:00"):
    flow.select_consult_type(consult_type)
    await flow.select_date(day(1))
    flow.select_slot(slot)
    return flow.submit_details(ASHA)


async def test_offline_booking_reaches_confirmed(api, config):
    flow = make_flow(api, config)
    flow.select_consult_type(ConsultType.OFFLINE)
    await flow.select_date(day(1))

    assert isinstance(flow.state, SlotPickStep)
    assert flow.state.buckets["Morning"][0] == "10:00"
    flow.select_slot("10:00")
    assert flow.submit_details(ASHA) == {}
    assert isinstance(flow.state, ConfirmStep)

    await flow.submit_booking()

    state = flow.state
    assert isinstance(state, ConfirmedStep)
    assert state.booking_id.startswith("BK-")
    assert state.appointment.status.value == "booked"
    assert state.clinic_address == config.clinic_address
    assert state.arrival_instructions
    assert state.video_url is None
    assert state.whatsapp.patient.startswith("https://wa.me/")
    # The taken slot is gone from the refreshed list
    assert "10:00" not in flow.slots
    assert "10:30" in flow.slots


async def test_booking_failure_stays_on_confirm(api, config, http_client):
    flow = make_flow(api, config)
    await walk_to_details(flow, ConsultType.OFFLINE)
    taken = await http_client.post("/api/bookings", json=booking_payload(patientPhone="9123456789"))
    assert taken.status_code == 201

    await flow.submit_booking()

    state = flow.state
    assert isinstance(state, ConfirmStep)
    assert state.error == "This time slot is no longer available. Please choose another slot."
    assert "10:00" not in state.slots

    flow.select_slot("10:30")
    await flow.submit_booking()
    assert isinstance(flow.state, ConfirmedStep)
    assert flow.state.appointment.time == "10:30"


async def test_online_booking_through_checkout(api, config, gateway):
    launched = []

    def launch(options):
        launched.append(options)
        order_id = options["order_id"]
        options["handler"]({
            "razorpay_order_id": order_id,
            "razorpay_payment_id": "pay_portal_1",
            "razorpay_signature": gateway.sign(order_id, "pay_portal_1"),
        })

    flow = make_flow(api, config, checkout=CallbackCheckout(launch))
    await walk_to_details(flow, ConsultType.ONLINE, slot="09:00")
    assert isinstance(flow.state, PaymentStep)

    await flow.pay()

    assert launched[0]["amount"] == 100
    assert launched[0]["currency"] == "INR"
    assert launched[0]["key"] == RAZORPAY_KEY_ID
    assert launched[0]["prefill"] == {"name": "Asha", "contact": "9876543210"}
    state = flow.state
    assert isinstance(state, ConfirmedStep)
    assert state.appointment.status.value == "confirmed"
    assert state.video_url.endswith(f"-{state.booking_id}")
    assert state.clinic_address is None
    assert "09:00" not in flow.slots


async def test_cancelled_checkout_creates_no_booking(api, config, http_client):
    class DismissedCheckout(Checkout):
        async def open(self, request):
            return PaymentCancelled()

    flow = make_flow(api, config, checkout=DismissedCheckout())
    await walk_to_details(flow, ConsultType.ONLINE, slot="09:00")

    await flow.pay()

    assert isinstance(flow.state, PaymentStep)
    assert "cancelled" in flow.state.status_message
    lookup = await http_client.get("/api/bookings/check-appointments", params={"phone": "9876543210"})
    assert lookup.json() == {"appointments": []}


async def test_missing_payment_key_is_a_configuration_error(api):
    config = PortalConfig(base_url="http://test", admin_key=ADMIN_KEY)
    flow = make_flow(api, config)
    await walk_to_details(flow, ConsultType.ONLINE, slot="09:00")

    assert flow.state.can_pay is False
    with pytest.raises(ConfigurationError):
        await flow.pay()


async def test_invalid_details_stay_on_details(api, config):
    flow = make_flow(api, config)
    flow.select_consult_type(ConsultType.OFFLINE)
    await flow.select_date(day(1))
    flow.select_slot("10:00")

    errors = flow.submit_details(PatientDetails(name="Asha"))

    assert set(errors) == {"phone", "age", "gender"}
    assert isinstance(flow.state, DetailsStep)


async def test_close_resets_everything(api, config):
    flow = make_flow(api, config)
    await walk_to_details(flow, ConsultType.OFFLINE)

    flow.close()

    assert flow.state == ConsultTypeStep()
    assert flow.slots == ()
    assert flow.selectable_dates() == []


async def test_confirmed_is_final_until_closed(api, config):
    flow = make_flow(api, config)
    await walk_to_details(flow, ConsultType.OFFLINE)
    await flow.submit_booking()

    with pytest.raises(InvalidTransition):
        flow.select_consult_type(ConsultType.ONLINE)


class GatedSlotsApi:
    """Slot fetches that finish only when the test releases them"""

    def __init__(self):
        self.gates = {}
        self.fail = False

    async def get_booking_slots(self, slot_date, consult_type):
        await self.gates[slot_date].wait()
        if self.fail:
            raise NetworkError("Could not reach the clinic server")
        return [f"{slot_date.day:02d}:00"]


async def test_slower_older_slot_fetch_is_dropped(config):
    api = GatedSlotsApi()
    api.gates = {day(1): asyncio.Event(), day(2): asyncio.Event()}
    flow = make_flow(api, config)
    flow.select_consult_type(ConsultType.ONLINE)

    first = asyncio.create_task(flow.select_date(day(1)))
    await asyncio.sleep(0)
    second = asyncio.create_task(flow.select_date(day(2)))
    await asyncio.sleep(0)

    api.gates[day(2)].set()
    await second
    api.gates[day(1)].set()
    await first

    assert flow.state.date == day(2)
    assert flow.state.slots == ("09:00",)
    assert flow.slots == ("09:00",)


async def test_slot_fetch_failure_is_retryable(config):
    api = GatedSlotsApi()
    api.gates = {day(1): asyncio.Event()}
    api.gates[day(1)].set()
    api.fail = True
    flow = make_flow(api, config)
    flow.select_consult_type(ConsultType.ONLINE)

    await flow.select_date(day(1))
    assert isinstance(flow.state, SlotPickStep)
    assert flow.state.error == "Could not reach the clinic server"

    api.fail = False
    await flow.refresh_slots()
    assert flow.state.error is None
    assert flow.state.slots == ("08:00",)


def signing_checkout(gateway, payment_id="pay_portal_2"):
    def launch(options):
        order_id = options["order_id"]
        options["handler"]({
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": gateway.sign(order_id, payment_id),
        })

    return CallbackCheckout(launch)


async def test_slot_taken_before_order_offers_remaining_slots(api, config, http_client, gateway):
    flow = make_flow(api, config, checkout=signing_checkout(gateway))
    await walk_to_details(flow, ConsultType.ONLINE, slot="09:00")
    taken = await http_client.post(
        "/api/bookings",
        json=booking_payload(time="09:00", consultType="online", patientPhone="9123456789", paymentReference="UPI7"),
    )
    assert taken.status_code == 201

    await flow.pay()

    state = flow.state
    assert isinstance(state, PaymentStep)
    assert state.status_message == "This time slot is no longer available. Please choose another slot."
    assert "09:00" not in state.slots
    assert "09:00" not in flow.slots
    assert gateway.orders == []

    flow.select_slot("09:30")
    assert flow.state.time == "09:30"
    assert flow.state.status_message is None

    await flow.pay()
    assert isinstance(flow.state, ConfirmedStep)
    assert flow.state.appointment.time == "09:30"


async def test_slot_lost_during_checkout_offers_remaining_slots(api, config, http_client, gateway):
    class RacedCheckout(Checkout):
        """Someone else books the slot while the patient is paying"""

        async def open(self, request):
            await http_client.post(
                "/api/bookings",
                json=booking_payload(
                    time="09:00", consultType="online", patientPhone="9123456789", paymentReference="UPI7"
                ),
            )
            order_id = request.order.id
            return PaymentSucceeded(PaymentProof(order_id, "pay_raced", gateway.sign(order_id, "pay_raced")))

    flow = make_flow(api, config, checkout=RacedCheckout())
    await walk_to_details(flow, ConsultType.ONLINE, slot="09:00")

    await flow.pay()

    state = flow.state
    assert isinstance(state, PaymentStep)
    assert state.status_message
    assert "09:00" not in state.slots
    assert "09:30" in state.slots


class HeldBookingApi(ClinicApi):
    """Booking creation finishes only when the test releases it"""

    def __init__(self, config, client):
        super().__init__(config, client=client)
        self.release = asyncio.Event()

    async def create_booking(self, intent, payment_reference=None):
        await self.release.wait()
        return await super().create_booking(intent, payment_reference)


async def test_booking_response_after_close_is_dropped(config, http_client):
    api = HeldBookingApi(config, http_client)
    flow = make_flow(api, config)
    await walk_to_details(flow, ConsultType.OFFLINE)

    pending = asyncio.create_task(flow.submit_booking())
    await asyncio.sleep(0)
    flow.close()
    api.release.set()
    await pending

    assert flow.state == ConsultTypeStep()
    assert flow.slots == ()
    assert flow.in_flight is False


async def test_booking_response_after_restart_is_dropped(config, http_client):
    api = HeldBookingApi(config, http_client)
    flow = make_flow(api, config)
    await walk_to_details(flow, ConsultType.OFFLINE)

    pending = asyncio.create_task(flow.submit_booking())
    await asyncio.sleep(0)
    flow.select_consult_type(ConsultType.ONLINE)
    api.release.set()
    await pending

    assert flow.state == DatePickStep(ConsultType.ONLINE)
