from conftest import approved_participants, create_sub_event, register_participant


def _create_round(client, headers, sub_event_id, number, name=None):
    return client.post("/api/admin/rounds", json={
        "sub_event_id": sub_event_id,
        "round_number": number,
        "name": name or f"Round {number}",
    }, headers=headers)


def test_first_round_is_seeded_with_approved_registrants(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    approved = approved_participants(client, admin_headers, sub_event["id"], 3)
    register_participant(client, 9, [sub_event["id"]], 50)

    response = _create_round(client, admin_headers, sub_event["id"], 1)
    assert response.status_code == 201, response.text
    seeded = {participant["id"] for participant in response.json()["data"]["participants"]}
    assert seeded == {participant["id"] for participant in approved}

    later = _create_round(client, admin_headers, sub_event["id"], 2).json()["data"]
    assert later["participants"] == []


def test_duplicate_round_number_conflicts(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    assert _create_round(client, admin_headers, sub_event["id"], 1).status_code == 201

    duplicate = _create_round(client, admin_headers, sub_event["id"], 1, name="Again")
    assert duplicate.status_code == 409
    assert duplicate.json()["message"] == "Round number already exists for this event"


def test_round_start_and_end_transitions(client, admin_headers, notifier):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    participants = approved_participants(client, admin_headers, sub_event["id"], 2)
    round_row = _create_round(client, admin_headers, sub_event["id"], 1).json()["data"]

    assert client.post(f"/api/admin/rounds/{round_row['id']}/end", headers=admin_headers).status_code == 400

    started = client.post(f"/api/admin/rounds/{round_row['id']}/start", headers=admin_headers)
    assert started.status_code == 200
    assert started.json()["data"]["status"] == "active"
    assert "round:started" in notifier.names(room=f"subevent:{sub_event['id']}")

    detail = client.get(f"/api/admin/participants/{participants[0]['id']}", headers=admin_headers).json()["data"]
    assert detail["current_status"] == "busy"
    assert detail["status_per_sub_event"][str(sub_event["id"])]["status"] == "active"

    assert client.post(f"/api/admin/rounds/{round_row['id']}/start", headers=admin_headers).status_code == 400

    ended = client.post(f"/api/admin/rounds/{round_row['id']}/end", headers=admin_headers)
    assert ended.status_code == 200
    assert ended.json()["data"]["status"] == "completed"
    detail = client.get(f"/api/admin/participants/{participants[0]['id']}", headers=admin_headers).json()["data"]
    assert detail["current_status"] == "available"


def test_promote_without_next_round_fails(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    round_row = _create_round(client, admin_headers, sub_event["id"], 1).json()["data"]

    response = client.post(f"/api/admin/rounds/{round_row['id']}/promote-selected", headers=admin_headers)
    assert response.status_code == 400
    assert "Round 2" in response.json()["message"]


def test_delete_round_removes_it(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    round_row = _create_round(client, admin_headers, sub_event["id"], 1).json()["data"]

    assert client.delete(f"/api/admin/rounds/{round_row['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/admin/rounds/{round_row['id']}", headers=admin_headers).status_code == 404


def test_end_round_keeps_recorded_results(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    winner, dropped, other = approved_participants(client, admin_headers, sub_event["id"], 3)
    round_row = _create_round(client, admin_headers, sub_event["id"], 1).json()["data"]
    client.post(f"/api/admin/rounds/{round_row['id']}/start", headers=admin_headers)

    for participant, value in ((winner, "qualified"), (dropped, "rejected")):
        response = client.put(
            f"/api/admin/participants/{participant['id']}/current-status",
            json={"current_status": value},
            headers=admin_headers,
        )
        assert response.status_code == 200, response.text

    assert client.post(f"/api/admin/rounds/{round_row['id']}/end", headers=admin_headers).status_code == 200

    statuses = {
        participant["id"]: client.get(f"/api/admin/participants/{participant['id']}", headers=admin_headers).json()["data"]["current_status"]
        for participant in (winner, dropped, other)
    }
    assert statuses == {winner["id"]: "qualified", dropped["id"]: "rejected", other["id"]: "available"}
