from conftest import bearer


def _register(client, email, role, password="secret-pass"):
    return client.post("/api/auth/register", json={
        "name": email.split("@")[0].title(),
        "email": email,
        "password": password,
        "role": role,
    })


def test_missing_token_is_unauthorized(client):
    response = client.get("/api/admin/subevents")
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Not authorized to access this route"}


def test_garbage_token_is_unauthorized(client):
    assert client.get("/api/admin/subevents", headers=bearer("not-a-jwt")).status_code == 401


def test_judge_cannot_reach_admin_routes(client, admin_headers):
    token = _register(client, "judge@fest.example.com", "judge").json()["data"]["token"]
    response = client.get("/api/admin/subevents", headers=bearer(token))
    assert response.status_code == 403


def test_second_admin_waits_for_approval(client, admin_headers, notifier):
    pending = _register(client, "second@fest.example.com", "admin")
    assert pending.status_code == 201
    assert "token" not in pending.json()["data"]
    assert "admin:request" in notifier.names(room="admin")

    login = client.post("/api/auth/login", json={"email": "second@fest.example.com", "password": "secret-pass"})
    assert login.status_code == 401
    assert "pending approval" in login.json()["message"]

    pending_list = client.get("/api/admin/users/pending", headers=admin_headers).json()["data"]
    assert [user["email"] for user in pending_list] == ["second@fest.example.com"]

    user_id = pending_list[0]["id"]
    assert client.put(f"/api/admin/users/{user_id}/approve", headers=admin_headers).status_code == 200
    login = client.post("/api/auth/login", json={"email": "second@fest.example.com", "password": "secret-pass"})
    assert login.status_code == 200
    assert login.json()["data"]["role"] == "admin"


def test_wrong_password_is_rejected(client, admin_headers):
    response = client.post("/api/auth/login", json={"email": "admin@fest.example.com", "password": "wrong"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


def test_duplicate_staff_email_conflicts(client, admin_headers):
    assert _register(client, "admin@fest.example.com", "judge").status_code == 409


def test_admin_cannot_delete_self(client, admin_headers):
    me = client.get("/api/auth/me", headers=admin_headers).json()["data"]
    response = client.delete(f"/api/admin/users/{me['id']}", headers=admin_headers)
    assert response.status_code == 400
