from pathlib import Path
import os
import sys
import tempfile

import pytest

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

_DB_DIR = tempfile.mkdtemp(prefix="verbafest-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ.setdefault("JWT_SECRET_KEY", "test-only-signing-key-3f9a1c77e2b84d0d9b6a5e41c2f08d7a")
os.environ.pop("DEFAULT_ADMIN_EMAIL", None)

from fastapi.testclient import TestClient

from database import Base, SessionLocal, engine
from realtime import get_notifier
from server import app


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def emit(self, event, data=None, room=None):
        self.events.append((event, data, room))

    def names(self, room=None):
        return [event for event, _, target in self.events if room is None or target == room]


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(notifier):
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(client):
    response = client.post("/api/auth/register", json={
        "name": "Head Admin",
        "email": "admin@fest.example.com",
        "password": "admin-pass",
        "role": "admin",
    })
    assert response.status_code == 201, response.text
    return bearer(response.json()["data"]["token"])


def create_sub_event(client, headers, name, price=50, **fields):
    response = client.post("/api/admin/subevents", json={"name": name, "registration_price": price, **fields}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def registration_payload(index, sub_event_ids, paid_amount):
    return {
        "full_name": f"Student {index}",
        "email": f"student{index}@college.example.com",
        "mobile": f"98765{index:05d}",
        "prn": f"prn{index:04d}",
        "branch": "Computer",
        "year": 2,
        "college": "City College",
        "sub_event_ids": sub_event_ids,
        "transaction_id": f"TXN{index:06d}",
        "payment_proof_url": f"https://proofs.test/{index}.png",
        "paid_amount": paid_amount,
    }


def register_participant(client, index, sub_event_ids, paid_amount):
    response = client.post("/api/registration/submit", json=registration_payload(index, sub_event_ids, paid_amount))
    assert response.status_code == 201, response.text
    return response.json()["data"]["participant"]


def approved_participants(client, headers, sub_event_id, count, price=50):
    participants = []
    for index in range(1, count + 1):
        participant = register_participant(client, index, [sub_event_id], price)
        response = client.put(f"/api/admin/participants/{participant['id']}/approve", headers=headers)
        assert response.status_code == 200, response.text
        participants.append(participant)
    return participants
