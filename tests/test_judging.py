import pytest

from conftest import approved_participants, create_sub_event, register_participant


@pytest.fixture
def judged_round(client, admin_headers):
    sub_event = create_sub_event(client, admin_headers, "Group Discussion", type="group", group_size_min=2, group_size_max=3)
    participants = approved_participants(client, admin_headers, sub_event["id"], 4)
    round_row = client.post("/api/admin/rounds", json={
        "sub_event_id": sub_event["id"], "round_number": 1, "name": "Prelims",
    }, headers=admin_headers).json()["data"]

    formed = client.post("/api/admin/groups/auto-form", json={
        "sub_event_id": sub_event["id"], "round_id": round_row["id"], "group_size": 2,
    }, headers=admin_headers)
    assert formed.status_code == 201, formed.text
    groups = formed.json()["data"]

    panel = client.post("/api/admin/panels", json={
        "sub_event_id": sub_event["id"],
        "round_id": round_row["id"],
        "judges": [
            {"name": "Judge One", "email": "one@judges.example.com"},
            {"name": "Judge Two", "email": "two@judges.example.com"},
        ],
    }, headers=admin_headers)
    assert panel.status_code == 201, panel.text
    panel = panel.json()["data"]

    assigned = client.post(f"/api/admin/panels/{panel['id']}/assign-groups", json={
        "group_ids": [group["id"] for group in groups],
    }, headers=admin_headers)
    assert assigned.status_code == 200, assigned.text

    return {
        "sub_event": sub_event,
        "participants": participants,
        "round": round_row,
        "groups": groups,
        "panel": panel,
        "codes": [judge["access_code"] for judge in panel["judges"]],
    }


def _evaluate(client, code, group, score, selected=()):
    return client.post("/api/judge/evaluate", json={
        "access_code": code,
        "group_id": group["id"],
        "scores": [{"parameter": "Content", "score": score, "max_score": 10}],
        "participant_ratings": [
            {"participant_id": participant["id"], "selected_for_next_round": participant["id"] in selected}
            for participant in group["participants"]
        ],
    })


def test_access_codes_are_unique(judged_round):
    codes = judged_round["codes"]
    assert len(set(codes)) == 2
    assert all(len(code) == 8 and code.isalnum() and code == code.upper() for code in codes)


def test_judge_login_with_access_code(client, judged_round, notifier):
    code = judged_round["codes"][0]
    response = client.post("/api/judge/login", json={"access_code": f"  {code.lower()} "})
    assert response.status_code == 200
    assert response.json()["data"]["panel_id"] == judged_round["panel"]["id"]
    assert "judge:logged_in" in notifier.names(room="admin")

    assert client.post("/api/judge/login", json={"access_code": "NOPE1234"}).status_code == 401


def test_group_completes_after_every_judge(client, judged_round, notifier):
    group = judged_round["groups"][0]
    first_code, second_code = judged_round["codes"]

    first = _evaluate(client, first_code, group, 8)
    assert first.status_code == 200, first.text
    assert first.json()["data"]["group_evaluation_status"] == "in_progress"
    assert first.json()["data"]["evaluation"]["percentage"] == pytest.approx(80)

    resubmitted = _evaluate(client, first_code, group, 9)
    assert resubmitted.json()["data"]["group_evaluation_status"] == "in_progress"

    second = _evaluate(client, second_code, group, 6)
    data = second.json()["data"]
    assert data["group_evaluation_status"] == "completed"
    assert data["group_average_score"] == pytest.approx(75)
    assert "evaluation:updated" in notifier.names(room=f"panel:{judged_round['panel']['id']}")


def test_judge_cannot_score_unassigned_group(client, admin_headers, judged_round):
    group = judged_round["groups"][1]
    client.put(f"/api/admin/groups/{group['id']}", json={"panel_id": None}, headers=admin_headers)

    response = _evaluate(client, judged_round["codes"][0], group, 5)
    assert response.status_code == 403


def test_promote_takes_union_of_judge_selections(client, admin_headers, db, judged_round):
    from models import Participant

    group = judged_round["groups"][0]
    first_pick, second_pick = (participant["id"] for participant in group["participants"][:2])
    first_code, second_code = judged_round["codes"]
    _evaluate(client, first_code, group, 8, selected={first_pick})
    _evaluate(client, second_code, group, 7, selected={second_pick})

    next_round = client.post("/api/admin/rounds", json={
        "sub_event_id": judged_round["sub_event"]["id"], "round_number": 2, "name": "Finals",
    }, headers=admin_headers).json()["data"]

    response = client.post(f"/api/admin/rounds/{judged_round['round']['id']}/promote-selected", headers=admin_headers)
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["promoted_participant_ids"] == sorted([first_pick, second_pick])
    assert {participant["id"] for participant in data["next_round"]["participants"]} == {first_pick, second_pick}
    assert data["next_round"]["id"] == next_round["id"]

    sub_event_id = judged_round["sub_event"]["id"]
    for participant in judged_round["participants"]:
        row = db.query(Participant).filter(Participant.id == participant["id"]).first()
        expected = "qualified" if participant["id"] in (first_pick, second_pick) else "eliminated"
        assert row.get_sub_event_status(sub_event_id)["status"] == expected


def test_judge_panel_view_lists_assigned_groups(client, judged_round):
    code = judged_round["codes"][0]
    _evaluate(client, code, judged_round["groups"][0], 5)

    data = client.get(f"/api/judge/panel/{code}").json()["data"]
    assert {group["id"] for group in data["groups"]} == {group["id"] for group in judged_round["groups"]}
    assert data["evaluated_group_ids"] == [judged_round["groups"][0]["id"]]


def test_panel_rejects_repeated_judge_email(client, admin_headers, judged_round):
    judges = [
        {"name": "Judge One", "email": "one@judges.example.com"},
        {"name": "Judge Echo", "email": "ONE@judges.example.com"},
    ]
    created = client.post("/api/admin/panels", json={
        "sub_event_id": judged_round["sub_event"]["id"],
        "round_id": judged_round["round"]["id"],
        "judges": judges,
    }, headers=admin_headers)
    assert created.status_code == 400
    assert "distinct email" in created.json()["message"]

    updated = client.put(f"/api/admin/panels/{judged_round['panel']['id']}", json={"judges": judges}, headers=admin_headers)
    assert updated.status_code == 400


def test_panel_update_keeps_codes_of_retained_judges(client, admin_headers, judged_round):
    panel = judged_round["panel"]
    response = client.put(f"/api/admin/panels/{panel['id']}", json={"judges": [
        {"name": "Judge One", "email": "one@judges.example.com"},
        {"name": "Judge Three", "email": "three@judges.example.com"},
    ]}, headers=admin_headers)
    assert response.status_code == 200, response.text
    judges = response.json()["data"]["judges"]
    assert judges[0]["access_code"] == judged_round["codes"][0]
    assert judges[1]["access_code"] not in judged_round["codes"]


def test_ratings_limited_to_group_members(client, admin_headers, judged_round):
    quiz = create_sub_event(client, admin_headers, "Quiz")
    outsider = register_participant(client, 9, [quiz["id"]], 50)
    group = judged_round["groups"][0]

    response = client.post("/api/judge/evaluate", json={
        "access_code": judged_round["codes"][0],
        "group_id": group["id"],
        "scores": [{"parameter": "Content", "score": 8, "max_score": 10}],
        "participant_ratings": [{"participant_id": outsider["id"], "selected_for_next_round": True}],
    })
    assert response.status_code == 400
    assert "data" not in client.get(f"/api/judge/evaluations/{judged_round['codes'][0]}/{group['id']}").json()


def test_promote_ignores_participants_outside_the_round(client, admin_headers, db, judged_round):
    from models import Evaluation, Participant

    quiz = create_sub_event(client, admin_headers, "Quiz")
    outsider = register_participant(client, 9, [quiz["id"]], 50)
    group = judged_round["groups"][0]
    member = group["participants"][0]["id"]
    db.add(Evaluation(
        group_id=group["id"],
        panel_id=judged_round["panel"]["id"],
        round_id=judged_round["round"]["id"],
        judge_email="one@judges.example.com",
        judge_name="Judge One",
        scores=[],
        total_score=8,
        max_total_score=10,
        participant_ratings=[
            {"participant_id": member, "selected_for_next_round": True},
            {"participant_id": outsider["id"], "selected_for_next_round": True},
        ],
    ))
    db.commit()
    client.post("/api/admin/rounds", json={
        "sub_event_id": judged_round["sub_event"]["id"], "round_number": 2, "name": "Finals",
    }, headers=admin_headers)

    response = client.post(f"/api/admin/rounds/{judged_round['round']['id']}/promote-selected", headers=admin_headers)
    assert response.status_code == 200, response.text
    assert response.json()["data"]["promoted_participant_ids"] == [member]

    db.expire_all()
    row = db.query(Participant).filter(Participant.id == outsider["id"]).first()
    assert row.current_status.value == "registered"
    assert row.registered_sub_event_ids == [quiz["id"]]
