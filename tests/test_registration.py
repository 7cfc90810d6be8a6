from conftest import bearer, create_sub_event, register_participant, registration_payload


def _enable_bulk_discount(client, headers):
    response = client.put("/api/admin/payment-settings", json={
        "bulk_discount": {"enabled": True, "min_events": 3, "discount_type": "percentage", "discount_value": 10},
    }, headers=headers)
    assert response.status_code == 200, response.text


def test_bulk_discount_quote(client, admin_headers, notifier):
    _enable_bulk_discount(client, admin_headers)
    assert "payment-settings:updated" in notifier.names(room="admin")

    quote = client.post("/api/payment-settings/calculate-discount", json={"subtotal": 150, "event_count": 3}).json()["data"]
    assert quote["discount"] == 15
    assert quote["final_amount"] == 135
    assert quote["discount_applied"] is True

    below = client.post("/api/payment-settings/calculate-discount", json={"subtotal": 100, "event_count": 2}).json()["data"]
    assert below["discount"] == 0
    assert below["final_amount"] == 100


def test_underpayment_is_rejected(client, admin_headers):
    _enable_bulk_discount(client, admin_headers)
    ids = [create_sub_event(client, admin_headers, name)["id"] for name in ("Debate", "Quiz", "Poetry")]

    response = client.post("/api/registration/submit", json=registration_payload(1, ids, 100))
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "135" in body["message"]


def test_registration_records_every_sub_event(client, admin_headers, notifier):
    _enable_bulk_discount(client, admin_headers)
    ids = [create_sub_event(client, admin_headers, name)["id"] for name in ("Debate", "Quiz", "Poetry")]

    participant = register_participant(client, 1, ids, 135)
    assert participant["registration_status"] == "pending"
    assert participant["password"]
    assert "participant:registered" in notifier.names(room="admin")

    detail = client.get(f"/api/admin/participants/{participant['id']}", headers=admin_headers).json()["data"]
    assert sorted(detail["registered_sub_event_ids"]) == sorted(ids)
    assert {entry["status"] for entry in detail["status_per_sub_event"].values()} == {"not_started"}

    sub_events = client.get("/api/admin/subevents", headers=admin_headers).json()["data"]
    assert all(sub_event["total_registrations"] == 1 for sub_event in sub_events)


def test_chest_numbers_increase(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    chest_numbers = [register_participant(client, index, [sub_event["id"]], 50)["chest_number"] for index in range(1, 4)]
    assert chest_numbers == sorted(chest_numbers)
    assert len(set(chest_numbers)) == 3


def test_duplicate_identity_conflicts(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    register_participant(client, 1, [sub_event["id"]], 50)

    payload = registration_payload(2, [sub_event["id"]], 50)
    payload["email"] = "student1@college.example.com"
    response = client.post("/api/registration/submit", json=payload)
    assert response.status_code == 409


def test_invalid_mobile_is_a_validation_error(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    payload = registration_payload(1, [sub_event["id"]], 50)
    payload["mobile"] = "12345"
    response = client.post("/api/registration/submit", json=payload)
    assert response.status_code == 400
    assert response.json()["message"] == "Please provide a valid 10-digit mobile number"


def test_approve_twice_is_rejected(client, admin_headers, notifier):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    participant = register_participant(client, 1, [sub_event["id"]], 50)

    first = client.put(f"/api/admin/participants/{participant['id']}/approve", headers=admin_headers)
    assert first.status_code == 200
    assert first.json()["data"]["current_status"] == "available"
    assert "participant:approved" in notifier.names(room="admin")
    assert "participant:notification" in notifier.names(room=f"participant:{participant['id']}")

    second = client.put(f"/api/admin/participants/{participant['id']}/approve", headers=admin_headers)
    assert second.status_code == 400

    refreshed = client.get(f"/api/admin/subevents/{sub_event['id']}", headers=admin_headers).json()["data"]
    assert refreshed["approved_participants"] == 1


def test_reject_stores_reason(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    participant = register_participant(client, 1, [sub_event["id"]], 50)

    response = client.put(
        f"/api/admin/participants/{participant['id']}/reject",
        json={"reason": "Blurry payment screenshot"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["registration_status"] == "rejected"
    assert data["admin_notes"] == "Blurry payment screenshot"


def test_rejected_participant_can_resubmit(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    participant = register_participant(client, 1, [sub_event["id"]], 50)
    client.put(f"/api/admin/participants/{participant['id']}/reject", headers=admin_headers)

    login = client.post("/api/auth/login", json={
        "email": "student1@college.example.com",
        "password": participant["password"],
        "role": "participant",
    })
    assert login.status_code == 200
    token = login.json()["data"]["token"]

    response = client.post("/api/participant/resubmit-payment", json={
        "sub_event_ids": [sub_event["id"]],
        "transaction_id": "TXN-RETRY",
        "payment_proof_url": "https://proofs.test/retry.png",
        "paid_amount": 50,
    }, headers=bearer(token))
    assert response.status_code == 200, response.text

    detail = client.get(f"/api/admin/participants/{participant['id']}", headers=admin_headers).json()["data"]
    assert detail["registration_status"] == "pending"
    assert detail["transaction_id"] == "TXN-RETRY"


def test_reject_twice_leaves_first_decision(client, admin_headers, notifier):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    participant = register_participant(client, 1, [sub_event["id"]], 50)
    url = f"/api/admin/participants/{participant['id']}/reject"

    assert client.put(url, json={"reason": "Amount missing"}, headers=admin_headers).status_code == 200
    second = client.put(url, json={"reason": "Changed my mind"}, headers=admin_headers)
    assert second.status_code == 400
    assert second.json()["message"] == "Participant is already rejected"

    detail = client.get(f"/api/admin/participants/{participant['id']}", headers=admin_headers).json()["data"]
    assert detail["admin_notes"] == "Amount missing"
    assert notifier.names(room="admin").count("participant:rejected") == 1


def test_fixed_bulk_discount_ignores_subtotal(client, admin_headers):
    response = client.put("/api/admin/payment-settings", json={
        "bulk_discount": {"enabled": True, "min_events": 2, "discount_type": "fixed", "discount_value": 40},
    }, headers=admin_headers)
    assert response.status_code == 200, response.text

    quote = client.post("/api/payment-settings/calculate-discount", json={"subtotal": 100, "event_count": 2}).json()["data"]
    assert quote["discount"] == 40
    assert quote["final_amount"] == 60

    small = client.post("/api/payment-settings/calculate-discount", json={"subtotal": 30, "event_count": 2}).json()["data"]
    assert small["discount"] == 40
    assert small["final_amount"] == 0


def test_closed_and_expired_sub_events_refuse_registration(client, admin_headers):
    closed = create_sub_event(client, admin_headers, "Debate", is_active_for_registration=False)
    expired = create_sub_event(client, admin_headers, "Quiz", registration_deadline="2020-01-01T00:00:00+00:00")

    for index, sub_event in enumerate((closed, expired), start=1):
        response = client.post("/api/registration/submit", json=registration_payload(index, [sub_event["id"]], 50))
        assert response.status_code == 400
        assert response.json()["message"] == "One or more selected sub-events are not available for registration"

    sub_events = client.get("/api/admin/subevents", headers=admin_headers).json()["data"]
    assert all(sub_event["total_registrations"] == 0 for sub_event in sub_events)


def test_approval_merges_requested_sub_events(client, admin_headers):
    debate = create_sub_event(client, admin_headers, "Debate")
    quiz = create_sub_event(client, admin_headers, "Quiz")
    participant = register_participant(client, 1, [debate["id"]], 50)
    client.put(f"/api/admin/participants/{participant['id']}/approve", headers=admin_headers)

    token = client.post("/api/auth/login", json={
        "email": "student1@college.example.com",
        "password": participant["password"],
        "role": "participant",
    }).json()["data"]["token"]
    requested = client.post("/api/participant/add-events", json={
        "sub_event_ids": [quiz["id"]],
        "transaction_id": "TXN-MORE",
        "payment_proof_url": "https://proofs.test/more.png",
        "paid_amount": 50,
    }, headers=bearer(token))
    assert requested.status_code == 200, requested.text
    data = requested.json()["data"]
    assert data["registration_status"] == "pending"
    assert data["is_re_registration"] is True
    assert data["pending_sub_event_ids"] == [quiz["id"]]
    assert data["registered_sub_event_ids"] == [debate["id"]]

    approved = client.put(f"/api/admin/participants/{participant['id']}/approve", headers=admin_headers)
    assert approved.status_code == 200, approved.text
    data = approved.json()["data"]
    assert sorted(data["registered_sub_event_ids"]) == sorted([debate["id"], quiz["id"]])
    assert data["is_re_registration"] is False
    assert data["pending_sub_event_ids"] == []

    refreshed = client.get(f"/api/admin/subevents/{quiz['id']}", headers=admin_headers).json()["data"]
    assert refreshed["approved_participants"] == 1
