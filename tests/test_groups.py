from group_service import default_group_size, partition_pool

from conftest import approved_participants, create_sub_event


def test_partition_even_pool():
    assert partition_pool(list(range(6)), 3, 2) == [[0, 1, 2], [3, 4, 5]]


def test_partition_spreads_small_remainder():
    groups = partition_pool(list(range(7)), 3, 2)
    assert [len(group) for group in groups] == [4, 3]
    assert sorted(member for group in groups for member in group) == list(range(7))


def test_partition_keeps_remainder_at_minimum():
    assert partition_pool(list(range(8)), 3, 2) == [[0, 1, 2], [3, 4, 5], [6, 7]]


def test_partition_small_pool_stands_alone():
    assert partition_pool([1], 4, 2) == [[1]]


def test_partition_target_below_minimum_is_raised():
    groups = partition_pool(list(range(6)), 1, 3)
    assert [len(group) for group in groups] == [3, 3]


def test_default_group_size_is_midpoint():
    assert default_group_size(2, 5) == 3


def test_auto_form_skips_already_grouped(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Group Discussion", type="group", group_size_min=2, group_size_max=4)
    participants = approved_participants(client, admin_headers, sub_event["id"], 5)
    round_row = client.post("/api/admin/rounds", json={
        "sub_event_id": sub_event["id"], "round_number": 1, "name": "Prelims",
    }, headers=admin_headers).json()["data"]

    manual = client.post("/api/admin/groups", json={
        "sub_event_id": sub_event["id"],
        "round_id": round_row["id"],
        "participant_ids": [participants[0]["id"], participants[1]["id"]],
    }, headers=admin_headers)
    assert manual.status_code == 201

    clash = client.post("/api/admin/groups", json={
        "sub_event_id": sub_event["id"],
        "round_id": round_row["id"],
        "participant_ids": [participants[1]["id"], participants[2]["id"]],
    }, headers=admin_headers)
    assert clash.status_code == 400

    formed = client.post("/api/admin/groups/auto-form", json={
        "sub_event_id": sub_event["id"], "round_id": round_row["id"],
    }, headers=admin_headers)
    assert formed.status_code == 201
    members = [participant["id"] for group in formed.json()["data"] for participant in group["participants"]]
    assert sorted(members) == sorted(participant["id"] for participant in participants[2:])
    assert [group["group_number"] for group in formed.json()["data"]] == [2]


def test_auto_form_rejects_individual_events(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    round_row = client.post("/api/admin/rounds", json={
        "sub_event_id": sub_event["id"], "round_number": 1, "name": "Prelims",
    }, headers=admin_headers).json()["data"]
    response = client.post("/api/admin/groups/auto-form", json={
        "sub_event_id": sub_event["id"], "round_id": round_row["id"],
    }, headers=admin_headers)
    assert response.status_code == 400


def test_update_group_sets_performance_slot(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Group Discussion", type="group", group_size_min=2, group_size_max=4)
    participants = approved_participants(client, admin_headers, sub_event["id"], 2)
    round_row = client.post("/api/admin/rounds", json={
        "sub_event_id": sub_event["id"], "round_number": 1, "name": "Prelims",
    }, headers=admin_headers).json()["data"]
    group = client.post("/api/admin/groups", json={
        "sub_event_id": sub_event["id"],
        "round_id": round_row["id"],
        "participant_ids": [participant["id"] for participant in participants],
    }, headers=admin_headers).json()["data"]

    response = client.put(f"/api/admin/groups/{group['id']}", json={
        "group_name": "Alpha",
        "slot_start_time": "2026-03-01T10:00:00",
        "slot_end_time": "2026-03-01T10:15:00",
    }, headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["group_name"] == "Alpha"
    assert data["slot_start_time"].startswith("2026-03-01T10:00")
    assert len(data["participants"]) == 2

    cleared = client.put(f"/api/admin/groups/{group['id']}", json={"slot_end_time": None}, headers=admin_headers)
    assert cleared.json()["data"]["slot_end_time"] is None
    assert cleared.json()["data"]["slot_start_time"] is not None


def test_notify_group_marks_members_busy_and_picks_venue(client, admin_headers, notifier):
    sub_event = create_sub_event(client, admin_headers, "Group Discussion", type="group", group_size_min=2, group_size_max=4)
    participants = approved_participants(client, admin_headers, sub_event["id"], 2)
    member_ids = [participant["id"] for participant in participants]
    round_row = client.post("/api/admin/rounds", json={
        "sub_event_id": sub_event["id"], "round_number": 1, "name": "Prelims", "venue": "Hall B",
    }, headers=admin_headers).json()["data"]
    group = client.post("/api/admin/groups", json={
        "sub_event_id": sub_event["id"], "round_id": round_row["id"], "participant_ids": member_ids,
    }, headers=admin_headers).json()["data"]

    response = client.post(f"/api/admin/groups/{group['id']}/notify", headers=admin_headers)
    assert response.status_code == 200, response.text
    assert response.json()["data"] == {"venue": "Hall B", "sub_event": "Group Discussion", "notified": 2}

    detail = client.get(f"/api/admin/participants/{member_ids[0]}", headers=admin_headers).json()["data"]
    assert detail["current_status"] == "busy"
    assert detail["status_per_sub_event"][str(sub_event["id"])]["status"] == "active"
    assert detail["status_per_sub_event"][str(sub_event["id"])]["round_number"] == 1
    assert "participant:notification" in notifier.names(room=f"participant:{member_ids[1]}")

    board = client.get("/api/admin/participants/availability", headers=admin_headers).json()["data"]
    assert {entry["id"]: entry["is_busy"] for entry in board} == {member_id: True for member_id in member_ids}

    panel = client.post("/api/admin/panels", json={
        "sub_event_id": sub_event["id"],
        "round_id": round_row["id"],
        "venue": "Room 4",
        "judges": [{"name": "Judge One", "email": "one@judges.example.com"}],
    }, headers=admin_headers).json()["data"]
    client.post(f"/api/admin/groups/{group['id']}/assign-panel", json={"panel_id": panel["id"]}, headers=admin_headers)
    assert client.post(f"/api/admin/groups/{group['id']}/notify", headers=admin_headers).json()["data"]["venue"] == "Room 4"

    bare_round = client.post("/api/admin/rounds", json={
        "sub_event_id": sub_event["id"], "round_number": 2, "name": "Finals",
    }, headers=admin_headers).json()["data"]
    bare_group = client.post("/api/admin/groups", json={
        "sub_event_id": sub_event["id"], "round_id": bare_round["id"], "participant_ids": member_ids,
    }, headers=admin_headers).json()["data"]
    venue = client.post(f"/api/admin/groups/{bare_group['id']}/notify", headers=admin_headers).json()["data"]["venue"]
    assert venue == "the designated venue"
