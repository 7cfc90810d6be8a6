from conftest import approved_participants, create_sub_event


def test_overall_marking_updates_stats(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    participants = approved_participants(client, admin_headers, sub_event["id"], 3)

    marked = client.post("/api/admin/attendance/overall/mark", json={
        "participant_ids": [participants[0]["id"], participants[1]["id"]],
        "is_present": True,
    }, headers=admin_headers)
    assert marked.json()["count"] == 2

    body = client.get("/api/admin/attendance/overall", headers=admin_headers).json()
    assert body["stats"] == {"total": 3, "present": 2, "absent": 1}
    present = [record for record in body["data"] if record["is_present"]]
    assert all(record["marked_by"] == "Head Admin" for record in present)

    absent_only = client.get("/api/admin/attendance/overall?present=false", headers=admin_headers).json()
    assert [record["id"] for record in absent_only["data"]] == [participants[2]["id"]]


def test_sub_event_marking_is_independent(client, admin_headers):
    debate = create_sub_event(client, admin_headers, "Debate")
    participants = approved_participants(client, admin_headers, debate["id"], 2)

    client.post(f"/api/admin/attendance/subevent/{debate['id']}/mark", json={
        "participant_ids": [participants[0]["id"]],
        "is_present": True,
    }, headers=admin_headers)

    body = client.get(f"/api/admin/attendance/subevent/{debate['id']}", headers=admin_headers).json()
    assert body["stats"] == {"total": 2, "present": 1, "absent": 1}
    assert body["sub_event"]["name"] == "Debate"

    overall = client.get("/api/admin/attendance/overall", headers=admin_headers).json()
    assert overall["stats"]["present"] == 0


def test_bulk_sub_event_requires_id(client, admin_headers):
    response = client.post("/api/admin/attendance/bulk", json={"type": "subevent", "is_present": True}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid bulk attendance request"


def test_bulk_overall_marks_everyone(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    approved_participants(client, admin_headers, sub_event["id"], 3)

    response = client.post("/api/admin/attendance/bulk", json={"type": "overall", "is_present": True}, headers=admin_headers)
    assert response.json()["count"] == 3


def test_attendance_csv_export(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    approved_participants(client, admin_headers, sub_event["id"], 2)

    response = client.get("/api/admin/attendance/export/csv?type=overall", headers=admin_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("Chest Number,Name,Email")
    assert len(lines) == 3
    assert all(line.split(",")[8] == "Absent" for line in lines[1:])


def test_attendance_html_export(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Debate")
    approved_participants(client, admin_headers, sub_event["id"], 1)

    response = client.get(f"/api/admin/attendance/export/html?type=subevent&sub_event_id={sub_event['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert "Attendance Report - Debate" in response.text
    assert "Student 1" in response.text


def test_unknown_export_format(client, admin_headers):
    assert client.get("/api/admin/attendance/export/docx", headers=admin_headers).status_code == 400
