def prescription_payload(**overrides):
    payload = {
        "clinicName": "Balakrishna Clinic",
        "doctorName": "Dr. K. Madhusudana",
        "patientName": "Kiran",
        "patientAge": 42,
        "patientGender": "male",
        "patientPhone": "9123456789",
        "items": [{"medicine": "Paracetamol", "days": 5, "pattern": "101", "notes": "after food"}],
        "sent": True,
    }
    payload.update(overrides)
    return payload


def test_sent_prescription_round_trip(client):
    response = client.post("/api/prescriptions", json=prescription_payload())
    assert response.status_code == 201

    found = client.get("/api/prescriptions", params={"phone": "9123456789", "sent": "true"}).json()["prescriptions"]

    assert len(found) == 1
    assert found[0]["items"] == [{"medicine": "Paracetamol", "days": 5, "pattern": "101", "notes": "after food"}]
    assert found[0]["sent"] is True


def test_dashed_pattern_stored_as_digits(client):
    items = [{"medicine": "Cetirizine", "days": 3, "pattern": "0-0-1"}]
    saved = client.post("/api/prescriptions", json=prescription_payload(items=items)).json()
    assert saved["prescription"]["items"][0]["pattern"] == "001"


def test_drafts_hidden_from_patients(client, admin_headers):
    client.post("/api/prescriptions", json=prescription_payload(sent=False))

    patient_view = client.get("/api/prescriptions", params={"phone": "9123456789", "sent": "true"})
    assert patient_view.json() == {"prescriptions": []}

    assert client.get("/api/prescriptions", params={"phone": "9123456789"}).status_code == 401
    drafts = client.get(
        "/api/prescriptions", params={"phone": "9123456789", "sent": "false"}, headers=admin_headers
    ).json()["prescriptions"]
    assert [p["sent"] for p in drafts] == [False]


def test_no_prescriptions_is_empty_not_error(client):
    response = client.get("/api/prescriptions", params={"phone": "9000011111", "sent": "true"})
    assert response.status_code == 200
    assert response.json() == {"prescriptions": []}


def test_validation(client):
    assert client.post("/api/prescriptions", json=prescription_payload(items=[])).status_code == 400
    assert client.post("/api/prescriptions", json=prescription_payload(patientPhone="12345")).status_code == 400

    bad_items = [
        {"medicine": "", "days": 5, "pattern": "101"},
        {"medicine": "Paracetamol", "days": 0, "pattern": "101"},
        {"medicine": "Paracetamol", "days": 5, "pattern": "1-2-1"},
        {"medicine": "Paracetamol", "days": 5, "pattern": "11"},
    ]
    for item in bad_items:
        response = client.post("/api/prescriptions", json=prescription_payload(items=[item]))
        assert response.status_code == 400, item
