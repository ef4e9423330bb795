from sqlmodel import select

from conftest import booking_payload
from dependencies import get_payment_gateway
from models import PaymentOrder, PaymentOrderStatus
from services.payment_gateway import PaymentGateway, compute_signature


def online_intent(**overrides):
    return booking_payload(consultType="online", time="09:00", **overrides)


def create_order(client, **overrides):
    response = client.post("/api/bookings/payment/order", json=online_intent(**overrides))
    assert response.status_code == 200, response.text
    return response.json()


def verify(client, gateway, order_id, payment_id="pay_test_1", signature=None):
    return client.post("/api/bookings/payment/verify", json={
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature or gateway.sign(order_id, payment_id),
    })


def test_signature_is_hmac_of_order_and_payment():
    gateway = PaymentGateway("key", "secret")
    signature = compute_signature("secret", "order_1", "pay_1")

    assert len(signature) == 64
    assert gateway.verify_signature("order_1", "pay_1", signature)
    assert not gateway.verify_signature("order_1", "pay_2", signature)
    assert not gateway.verify_signature("order_1", "pay_1", "")


def test_order_for_consultation_fee(client):
    order = create_order(client)

    assert order["amount"] == 100
    assert order["currency"] == "INR"
    assert order["keyId"] == "rzp_test_key"
    assert order["id"].startswith("order_test_")


def test_order_creates_no_booking(client):
    create_order(client)

    slots = client.get("/api/bookings/slots", params={"date": online_intent()["date"], "consultType": "online"})
    assert "09:00" in slots.json()["availableSlots"]


def test_order_only_for_online(client):
    response = client.post("/api/bookings/payment/order", json=booking_payload())
    assert response.status_code == 400


def test_order_validates_intent(client):
    response = client.post("/api/bookings/payment/order", json=online_intent(patientPhone="123"))
    assert response.status_code == 400


def test_verify_confirms_online_booking(client, gateway):
    order = create_order(client)

    response = verify(client, gateway, order["id"])

    assert response.status_code == 200
    data = response.json()
    appointment = data["appointment"]
    assert appointment["bookingId"].startswith("BK-")
    assert appointment["status"] == "confirmed"
    assert appointment["paymentStatus"] == "verified"
    assert appointment["paymentReference"] == "pay_test_1"
    assert appointment["videoUrl"].endswith(f"/DrMadhusudhan-{appointment['bookingId']}")
    assert data["whatsappNotifications"]["patient"].startswith("https://wa.me/")


def test_verify_rejects_bad_signature(client, gateway, session):
    order = create_order(client)

    response = verify(client, gateway, order["id"], signature="0" * 64)

    assert response.status_code == 400
    stored = session.exec(select(PaymentOrder).where(PaymentOrder.order_id == order["id"])).one()
    assert stored.status == PaymentOrderStatus.FAILED.value
    assert stored.booking_id is None


def test_verify_unknown_order(client, gateway):
    assert verify(client, gateway, "order_missing").status_code == 404


def test_verify_twice_returns_same_booking(client, gateway):
    order = create_order(client)

    first = verify(client, gateway, order["id"]).json()
    second = verify(client, gateway, order["id"])

    assert second.status_code == 200
    assert second.json()["appointment"]["bookingId"] == first["appointment"]["bookingId"]


def test_slot_taken_before_verify(client, gateway, session):
    order = create_order(client)
    taken = client.post("/api/bookings", json=online_intent(patientPhone="9123456789", paymentReference="UPI9"))
    assert taken.status_code == 201

    response = verify(client, gateway, order["id"])

    assert response.status_code == 409
    session.expire_all()
    stored = session.exec(select(PaymentOrder).where(PaymentOrder.order_id == order["id"])).one()
    assert stored.status == PaymentOrderStatus.PAID_UNBOOKED.value
    assert stored.payment_id == "pay_test_1"


def test_gateway_not_configured(client, app, settings):
    settings.razorpay_key_id = ""
    app.dependency_overrides.pop(get_payment_gateway)

    response = client.post("/api/bookings/payment/order", json=online_intent())

    assert response.status_code == 503
