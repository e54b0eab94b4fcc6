from fastapi.testclient import TestClient

from studydata.main import create_app
from studydata.repositories import InMemoryLegacyRepository
from studydata.services import LegacyService


def test_flashcards_are_replaced_wholesale(client):
    assert client.get("/api/flashcards").json() == {"flashcards": []}
    cards = [{"front": "Port 22?", "back": "SSH"}, {"front": "Port 443?", "back": "HTTPS"}]
    assert client.post("/api/flashcards", json={"flashcards": cards}).json() == {"success": True}
    assert client.get("/api/flashcards").json()["flashcards"] == cards
    client.post("/api/flashcards", json={"flashcards": cards[:1]})
    assert client.get("/api/flashcards").json()["flashcards"] == cards[:1]


def test_flashcards_non_list_becomes_empty(client):
    client.post("/api/flashcards", json={"flashcards": [1]})
    client.post("/api/flashcards", json={"flashcards": "oops"})
    assert client.get("/api/flashcards").json()["flashcards"] == []
    client.post("/api/flashcards", json={})
    assert client.get("/api/flashcards").json()["flashcards"] == []


def test_sessions_are_appended(client):
    client.post("/api/sessions", json={"session": {"minutes": 25}})
    client.post("/api/sessions", json={"session": {"minutes": 50}})
    assert client.get("/api/sessions").json()["sessions"] == [{"minutes": 25}, {"minutes": 50}]
    assert client.get("/health").json()["sessions"] == 2


def test_session_without_payload_is_rejected(client):
    r = client.post("/api/sessions", json={})
    assert r.status_code == 400
    assert client.get("/api/sessions").json()["sessions"] == []


def test_first_password_becomes_password_of_record(client):
    first = client.post("/api/check-password", json={"password": "hunter2"})
    assert first.json() == {"valid": True, "firstTime": True}
    assert client.post("/api/check-password", json={"password": "hunter2"}).json() == {"valid": True}
    assert client.post("/api/check-password", json={"password": "wrong"}).json() == {"valid": False}


def test_empty_password_is_rejected(client):
    r = client.post("/api/check-password", json={"password": ""})
    assert r.status_code == 400
    r = client.post("/api/check-password", json={})
    assert r.status_code == 400


def test_password_is_not_stored_in_plaintext():
    repo = InMemoryLegacyRepository()
    LegacyService(repo).check_password("s3cret")
    assert repo.password_hash and "s3cret" not in repo.password_hash


def test_legacy_state_is_per_app(memory_repo):
    with TestClient(create_app(repository=memory_repo)) as a:
        a.post("/api/flashcards", json={"flashcards": [1, 2]})
    with TestClient(create_app(repository=memory_repo)) as b:
        assert b.get("/api/flashcards").json()["flashcards"] == []
