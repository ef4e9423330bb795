from conftest import booking_payload
from utils.notification_service import NotificationService, to_e164, whatsapp_link


def test_phone_formatting():
    assert to_e164("9876543210") == "+919876543210"
    assert to_e164("+91 98765 43210") == "+919876543210"
    assert whatsapp_link("9876543210", "Hi there") == "https://wa.me/919876543210?text=Hi%20there"


def test_unconfigured_twilio_simulates(settings):
    service = NotificationService(settings)
    assert service.send_notification("9876543210", "Hello", "sms") == (True, "simulated_message_sid")
    assert service.send_notification("9876543210", "Hello", "pigeon")[0] is False


def test_send_with_explicit_message(client, notifier, admin_headers):
    response = client.post(
        "/api/notifications/sms",
        json={"phone": "9876543210", "message": "See you tomorrow"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "channel": "sms", "reference": "test_sid"}
    assert notifier.sent == [("sms", "9876543210", "See you tomorrow")]


def test_message_rendered_from_booking(client, notifier, admin_headers):
    booking_id = client.post("/api/bookings", json=booking_payload()).json()["appointment"]["bookingId"]

    response = client.post(
        "/api/notifications/whatsapp",
        json={"phone": "9876543210", "bookingId": booking_id},
        headers=admin_headers,
    )

    assert response.status_code == 200
    channel, phone, message = notifier.sent[0]
    assert channel == "whatsapp"
    assert "Asha" in message
    assert "10:00" in message


def test_unknown_channel_and_auth(client, admin_headers):
    body = {"phone": "9876543210", "message": "Hi"}
    assert client.post("/api/notifications/pigeon", json=body, headers=admin_headers).status_code == 422
    assert client.post("/api/notifications/sms", json=body).status_code == 401
    bad_phone = {"phone": "98", "message": "Hi"}
    assert client.post("/api/notifications/sms", json=bad_phone, headers=admin_headers).status_code == 400
