from conftest import approved_participants, create_sub_event, register_participant


def test_duplicate_sub_event_name_conflicts(client, admin_headers):
    create_sub_event(client, admin_headers, "Debate")
    response = client.post("/api/admin/subevents", json={"name": "Debate"}, headers=admin_headers)
    assert response.status_code == 409


def test_sub_event_with_registrants_cannot_be_deleted(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    register_participant(client, 1, [sub_event["id"]], 50)
    assert client.delete(f"/api/admin/subevents/{sub_event['id']}", headers=admin_headers).status_code == 400

    empty = create_sub_event(client, admin_headers, "Quiz")
    assert client.delete(f"/api/admin/subevents/{empty['id']}", headers=admin_headers).status_code == 200


def test_sub_event_start_and_stop(client, admin_headers, notifier):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    url = f"/api/admin/subevents/{sub_event['id']}"

    assert client.post(f"{url}/stop", headers=admin_headers).status_code == 400
    started = client.post(f"{url}/start", headers=admin_headers)
    assert started.json()["data"]["status"] == "active"
    assert "subevent:started" in notifier.names()
    assert client.post(f"{url}/start", headers=admin_headers).status_code == 400

    stopped = client.post(f"{url}/stop", headers=admin_headers)
    assert stopped.json()["data"]["status"] == "completed"
    assert client.post(f"{url}/start", headers=admin_headers).json()["message"] == "Cannot start a completed event"


def test_full_sub_event_leaves_registration_form(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate", max_participants=1)
    approved_participants(client, admin_headers, sub_event["id"], 1)

    form = client.get("/api/registration/form").json()
    assert form["count"] == 0

    response = client.post("/api/registration/submit", json={
        "full_name": "Late Comer", "email": "late@college.example.com", "mobile": "9123456789", "prn": "LATE01",
        "branch": "Civil", "year": 1, "college": "City College", "sub_event_ids": [sub_event["id"]],
        "transaction_id": "TXN-LATE", "payment_proof_url": "https://proofs.test/late.png", "paid_amount": 50,
    })
    assert response.status_code == 400


def test_topic_draw_uses_each_topic_once(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Extempore")
    created = client.post("/api/admin/topics", json={
        "sub_event_id": sub_event["id"],
        "topics": ["Space travel", "  ", "Ocean plastics"],
    }, headers=admin_headers)
    assert created.status_code == 201
    assert created.json()["count"] == 2

    drawn = set()
    for _ in range(2):
        response = client.post("/api/admin/topics/draw", json={"sub_event_id": sub_event["id"]}, headers=admin_headers)
        assert response.status_code == 200
        topic = response.json()["data"]
        assert topic["is_used"] is True
        drawn.add(topic["content"])
    assert drawn == {"Space travel", "Ocean plastics"}

    exhausted = client.post("/api/admin/topics/draw", json={"sub_event_id": sub_event["id"]}, headers=admin_headers)
    assert exhausted.status_code == 404


def test_topic_bulk_delete(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Extempore")
    topics = client.post("/api/admin/topics", json={
        "sub_event_id": sub_event["id"], "topics": ["One", "Two", "Three"],
    }, headers=admin_headers).json()["data"]

    response = client.post("/api/admin/topics/bulk-delete", json={"ids": [topics[0]["id"], topics[1]["id"]]}, headers=admin_headers)
    assert response.json()["count"] == 2
    remaining = client.get(f"/api/admin/topics?sub_event_id={sub_event['id']}", headers=admin_headers).json()["data"]
    assert [topic["content"] for topic in remaining] == ["Three"]


def test_query_lifecycle(client, admin_headers, notifier):
    created = client.post("/api/queries", json={
        "full_name": "Curious Student",
        "email": "curious@college.example.com",
        "mobile": "9876543210",
        "subject": "Venue",
        "message": "Where is the debate hall?",
    })
    assert created.status_code == 201
    assert "query:new" in notifier.names(room="admin")
    query_id = created.json()["data"]["id"]

    summary = client.get("/api/admin/queries/stats/summary", headers=admin_headers).json()["data"]
    assert summary == {"pending": 1, "in_progress": 0, "resolved": 0, "total": 1}

    resolved = client.put(f"/api/admin/queries/{query_id}/status", json={"status": "resolved", "admin_notes": "Hall B"}, headers=admin_headers)
    data = resolved.json()["data"]
    assert data["status"] == "resolved"
    assert data["resolved_at"] is not None
    assert data["resolved_by_id"] is not None

    listed = client.get("/api/admin/queries?status=resolved", headers=admin_headers).json()
    assert listed["total"] == 1
    assert listed["current_page"] == 1


def test_query_rejects_invalid_mobile(client):
    response = client.post("/api/queries", json={
        "full_name": "Curious Student",
        "email": "curious@college.example.com",
        "mobile": "1234567890",
        "subject": "Venue",
        "message": "Where?",
    })
    assert response.status_code == 400


def test_settings_update_round_trip(client, admin_headers):
    response = client.put("/api/admin/settings", json={
        "is_registration_open": False,
        "available_colleges": ["City College", " ", "Hill College"],
    }, headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["is_registration_open"] is False
    assert data["available_colleges"] == ["City College", "Hill College"]

    public = client.get("/api/registration/settings").json()["data"]
    assert "maintenance_mode" not in public


def test_closed_registration_refuses_submissions(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    client.put("/api/admin/settings", json={"is_registration_open": False}, headers=admin_headers)
    response = client.post("/api/registration/submit", json={
        "full_name": "Late Comer", "email": "late@college.example.com", "mobile": "9123456789", "prn": "LATE01",
        "branch": "Civil", "year": 1, "college": "City College", "sub_event_ids": [sub_event["id"]],
        "transaction_id": "TXN-LATE", "payment_proof_url": "https://proofs.test/late.png", "paid_amount": 50,
    })
    assert response.status_code == 403


def test_analytics_summary(client, admin_headers):
    debate = create_sub_event(client, admin_headers, "Debate")
    create_sub_event(client, admin_headers, "Quiz")
    approved_participants(client, admin_headers, debate["id"], 2)
    register_participant(client, 5, [debate["id"]], 50)

    data = client.get("/api/admin/analytics", headers=admin_headers).json()["data"]
    assert data["total_participants"] == 3
    assert data["approved_participants"] == 2
    assert data["total_sub_events"] == 2
    assert sum(point["count"] for point in data["trend_data"]) == 3
    distribution = {entry["name"]: entry["value"] for entry in data["status_distribution"]}
    assert distribution["Available"] == 2
    assert distribution["Waiting"] == 1
    assert data["sub_event_popularity"][0] == {"name": "Debate", "registrations": 2, "capacity": 0}


def test_participant_csv_export_lists_everyone(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    approved_participants(client, admin_headers, sub_event["id"], 2)

    response = client.get("/api/admin/participants/export?format=csv", headers=admin_headers)
    assert response.status_code == 200
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("Chest No.,Full Name")
    assert len(lines) == 3
