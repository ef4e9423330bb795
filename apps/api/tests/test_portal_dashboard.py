from datetime import datetime

import pytest

from conftest import ADMIN_KEY, NOW, booking_payload, day
from portal.api import ClinicApi
from portal.config import PortalConfig
from portal.dashboard import (
    DoctorDashboard,
    InMemoryViewStore,
    JsonFileViewStore,
    SavedView,
    can_confirm,
)
from portal.errors import InvalidTransition
from portal.models import BookingStatus, PaymentStatus
from utils.clock import FixedClock

pytestmark = pytest.mark.anyio


@pytest.fixture
def config():
    return PortalConfig(base_url="http://test", admin_key=ADMIN_KEY)


@pytest.fixture
def api(http_client, config):
    return ClinicApi(config, client=http_client)


async def book(http_client, **overrides):
    response = await http_client.post("/api/bookings", json=booking_payload(**overrides))
    assert response.status_code == 201, response.text
    return response.json()["appointment"]["bookingId"]


async def test_defaults_to_today(api, config, http_client):
    await book(http_client, date=day(0).isoformat(), time="10:00")
    await book(http_client, date=day(1).isoformat(), time="10:00")
    dashboard = DoctorDashboard(api, config, clock=FixedClock(NOW))

    await dashboard.load()

    assert dashboard.view == SavedView(status="all", start_date=day(0), end_date=day(0))
    assert [a.date for a in dashboard.appointments] == [day(0)]


async def test_filter_change_is_saved_and_requeried(api, config, http_client):
    await book(http_client, date=day(0).isoformat(), time="10:00")
    await book(http_client, date=day(1).isoformat(), time="11:00")
    store = InMemoryViewStore()
    dashboard = DoctorDashboard(api, config, store=store, clock=FixedClock(NOW))
    await dashboard.load()

    await dashboard.set_filters(end_date=day(2))

    assert len(dashboard.appointments) == 2
    assert store.load() == SavedView(status="all", start_date=day(0), end_date=day(2))

    await dashboard.set_filters(status="cancelled")
    assert dashboard.appointments == []

    with pytest.raises(ValueError):
        await dashboard.set_filters(status="archived")


async def test_confirm_pending_online_booking(api, config, http_client, notifier):
    booking_id = await book(
        http_client, date=day(0).isoformat(), time="14:00", consultType="online", paymentReference="UPI42"
    )
    dashboard = DoctorDashboard(api, config, clock=FixedClock(NOW))
    await dashboard.load()
    assert can_confirm(dashboard.find(booking_id))

    confirmed = await dashboard.confirm(booking_id)

    assert confirmed.status == BookingStatus.CONFIRMED
    assert confirmed.payment_status == PaymentStatus.VERIFIED
    assert dashboard.find(booking_id).status == BookingStatus.CONFIRMED
    assert sorted(channel for channel, _, _ in notifier.sent) == ["sms", "whatsapp"]
    assert all(phone == "9876543210" for _, phone, _ in notifier.sent)


async def test_notification_failure_does_not_fail_confirm(api, config, http_client, notifier):
    def broken(*args, **kwargs):
        raise RuntimeError("twilio down")

    notifier.send_notification = broken
    booking_id = await book(
        http_client, date=day(0).isoformat(), time="14:00", consultType="online", paymentReference="UPI42"
    )
    dashboard = DoctorDashboard(api, config, clock=FixedClock(NOW))
    await dashboard.load()

    confirmed = await dashboard.confirm(booking_id)

    assert confirmed.status == BookingStatus.CONFIRMED


async def test_offline_booking_cannot_be_confirmed_here(api, config, http_client):
    booking_id = await book(http_client, date=day(0).isoformat())
    dashboard = DoctorDashboard(api, config, clock=FixedClock(NOW))
    await dashboard.load()

    assert not can_confirm(dashboard.find(booking_id))
    with pytest.raises(InvalidTransition):
        await dashboard.confirm(booking_id)


async def test_complete_and_cancel(api, config, http_client):
    first = await book(http_client, date=day(0).isoformat(), time="10:00")
    second = await book(http_client, date=day(0).isoformat(), time="10:30")
    dashboard = DoctorDashboard(api, config, clock=FixedClock(NOW))
    await dashboard.load()

    await http_client.patch(f"/api/bookings/{first}/confirm", headers={"x-admin-key": ADMIN_KEY})
    completed = await dashboard.complete(first)
    cancelled = await dashboard.cancel(second)

    assert completed.status == BookingStatus.COMPLETED
    assert cancelled.status == BookingStatus.CANCELLED
    assert dashboard.find(second).status == BookingStatus.CANCELLED


async def test_video_join_window(api, config, http_client):
    booking_id = await book(
        http_client, date=day(0).isoformat(), time="14:00", consultType="online", paymentReference="UPI42"
    )
    offline_id = await book(http_client, date=day(0).isoformat(), time="10:00")
    dashboard = DoctorDashboard(api, config, clock=FixedClock(NOW))
    await dashboard.load()

    assert not dashboard.can_join(booking_id, datetime(2025, 1, 7, 13, 54))
    assert dashboard.can_join(booking_id, datetime(2025, 1, 7, 13, 55))
    assert dashboard.can_join(booking_id, datetime(2025, 1, 7, 14, 30))
    assert not dashboard.can_join(booking_id, datetime(2025, 1, 7, 14, 31))
    assert not dashboard.can_join(offline_id, datetime(2025, 1, 7, 10, 0))

    session = dashboard.join_call(booking_id, datetime(2025, 1, 7, 14, 0))
    assert session.room_name == f"DrMadhusudhan-{booking_id}"
    assert session.url == f"https://meet.jit.si/DrMadhusudhan-{booking_id}"
    with pytest.raises(InvalidTransition):
        dashboard.join_call(booking_id, datetime(2025, 1, 7, 9, 0))


async def test_json_view_store_round_trip(tmp_path):
    store = JsonFileViewStore(tmp_path / "views" / "dashboard.json")
    assert store.load() is None

    view = SavedView(status="booked", start_date=day(0), end_date=day(2))
    store.save(view)

    assert JsonFileViewStore(tmp_path / "views" / "dashboard.json").load() == view


async def test_json_view_store_ignores_garbage(tmp_path):
    path = tmp_path / "dashboard.json"
    path.write_text("{not json", encoding="utf-8")
    assert JsonFileViewStore(path).load() is None

    path.write_text('{"status": "archived"}', encoding="utf-8")
    assert JsonFileViewStore(path).load() is None
