from fastapi.testclient import TestClient

from sarathi.main import create_app


def _client() -> TestClient:
    return TestClient(create_app())


def _delta(client, symptoms, name="Ravi", age=45, patient_id="PAT-RAVI_45_NALGONDA"):
    return client.post(
        "/api/delta-sync",
        json={
            "vault": {"patientId": patient_id, "name": name, "age": age, "location": "Nalgonda"},
            "newSymptoms": symptoms,
            "currentSymptoms": {"description": symptoms, "severity": "HIGH"},
        },
    )


def test_health():
    response = _client().get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "정상"


def test_delta_sync_routes_and_creates_packet():
    client = _client()
    response = _delta(client, "severe chest pain")
    assert response.status_code == 200
    body = response.json()
    assert body["suggestedSpecialty"] == "Cardiology"
    assert body["urgency"] == "HIGH"
    assert body["patientId"] == "PAT-RAVI_45_NALGONDA"
    assert "Ravi" in body["summary"]

    packets = client.get("/api/fetch-sync-packets").json()
    assert packets["totalCount"] == 1
    packet = packets["packets"][0]
    assert packet["suggestedSpecialty"] == "Cardiology"
    assert packet["currentSymptoms"]["description"] == "severe chest pain"


def test_delta_sync_default_routing():
    body = _delta(_client(), "fever and cough").json()
    assert body["suggestedSpecialty"] == "General Medicine"
    assert body["urgency"] == "MEDIUM"


def test_delta_sync_rejects_incomplete_profile():
    client = _client()
    response = _delta(client, "fever", age=0)
    assert response.status_code == 400
    assert "name and age" in response.json()["error"]
    assert _delta(client, "fever", name="").status_code == 400
    assert _delta(client, "   ").status_code == 400
    assert client.get("/api/fetch-sync-packets").json()["packets"] == []


def test_fetch_packets_newest_first_with_filters():
    client = _client()
    _delta(client, "chest pain", patient_id="PAT-1")
    _delta(client, "skin rash", patient_id="PAT-2")
    _delta(client, "heart racing", patient_id="PAT-3")

    packets = client.get("/api/fetch-sync-packets").json()["packets"]
    assert [p["patientId"] for p in packets] == ["PAT-3", "PAT-2", "PAT-1"]

    cardiology = client.get(
        "/api/fetch-sync-packets", params={"specialty": "Cardiology"}
    ).json()["packets"]
    assert [p["patientId"] for p in cardiology] == ["PAT-3", "PAT-1"]

    oldest = packets[-1]["packetId"]
    newer = client.get(
        "/api/fetch-sync-packets", params={"lastPacketId": oldest}
    ).json()["packets"]
    assert [p["patientId"] for p in newer] == ["PAT-3", "PAT-2"]


def test_mark_packet_processed_is_idempotent():
    client = _client()
    _delta(client, "chest pain")
    packet_id = client.get("/api/fetch-sync-packets").json()["packets"][0]["packetId"]

    for _ in range(2):
        response = client.post(
            "/api/mark-packet-processed", json={"packetId": packet_id, "doctorId": "DR-1"}
        )
        assert response.json() == {"success": True, "packetId": packet_id}
    assert client.get("/api/fetch-sync-packets").json()["packets"] == []
    assert len(client.app.state.packets) == 0

    removed = client.post("/api/mark-packet-processed", json={"packetId": "PKT-already-removed"})
    assert removed.status_code == 200
    assert removed.json() == {"success": True, "packetId": "PKT-already-removed"}
    assert client.post("/api/mark-packet-processed", json={}).status_code == 400


def test_fetch_after_removed_packet_returns_only_newer():
    client = _client()
    _delta(client, "chest pain", patient_id="PAT-1")
    first = client.get("/api/fetch-sync-packets").json()["packets"][0]["packetId"]
    client.post("/api/mark-packet-processed", json={"packetId": first})
    _delta(client, "skin rash", patient_id="PAT-2")

    newer = client.get(
        "/api/fetch-sync-packets", params={"lastPacketId": first}
    ).json()["packets"]
    assert [p["patientId"] for p in newer] == ["PAT-2"]


def test_visual_triage_requires_image():
    client = _client()
    assert client.post("/api/visual-triage", json={}).status_code == 400
    body = client.post("/api/visual-triage", json={"image": "data:image/jpeg;base64,AAAA"}).json()
    assert body["urgency"] == "MEDIUM"
    assert body["findings"]


def test_doctor_messages_round_trip_by_patient():
    client = _client()
    sent = client.post(
        "/api/send-doctor-message",
        json={"patientId": "PAT-1", "type": "PRESCRIPTION", "message": "RX: Paracetamol"},
    ).json()
    assert sent["success"] is True
    assert sent["message"]["messageId"].startswith("MSG-")

    messages = client.get("/api/get-patient-messages", params={"patientId": "PAT-1"}).json()
    assert [m["message"] for m in messages["messages"]] == ["RX: Paracetamol"]
    other = client.get("/api/get-patient-messages", params={"patientId": "PAT-2"}).json()
    assert other["messages"] == []
    assert client.get("/api/get-patient-messages").status_code == 400


def test_patient_response_and_speech_stand_ins():
    client = _client()
    rx = client.post(
        "/api/patient-response", json={"note": "After food.", "medication": "Paracetamol"}
    ).json()
    assert rx["text"].startswith("Please take Paracetamol")
    assert rx["icons"] == ["SUN", "MOON"]
    note = client.post("/api/patient-response", json={"note": "Rest well."}).json()
    assert note == {"text": "Rest well.", "icons": []}
    assert client.post("/api/text-to-speech", json={"text": "hi"}).json() == {"audio": None}
    assert client.post("/api/speech-to-text", json={}).status_code == 400
