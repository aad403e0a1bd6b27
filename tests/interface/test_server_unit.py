import pytest
from fastapi.testclient import TestClient

from mnemo.consts import VERSION
from mnemo.server import create_app


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


def _add_card(client, title="Capital of France?", content="Paris"):
    response = client.post("/users/alice/cards", json={"title": title, "content": content})
    assert response.status_code == 200
    return response.json()["id"]


def _start(client, **body):
    response = client.post("/sessions", json={"user_id": "alice", **body})
    assert response.status_code == 200
    return response.json()


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION


def test_get_version(client):
    response = client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": VERSION}


def test_full_review_flow(client):
    card_id = _add_card(client)
    session = _start(client)
    sid = session["session_id"]

    assert session["status"] == "active"
    assert session["card_id"] == card_id
    assert session["state"] == "hidden"
    assert session["content"] is None

    revealed = client.post(f"/sessions/{sid}/reveal").json()
    assert revealed["content"] == "Paris"
    assert revealed["state"] == "revealed"

    rated = client.post(f"/sessions/{sid}/rate", json={"rating": 4})
    assert rated.status_code == 200
    data = rated.json()
    assert data["interval_days"] == 1
    assert data["repetition_count"] == 1
    assert data["current_streak"] == 1
    assert data["session"]["status"] == "completed"

    # Finished sessions are dropped from the host
    assert client.get(f"/sessions/{sid}").status_code == 404


def test_rate_before_reveal_conflicts(client):
    _add_card(client)
    sid = _start(client)["session_id"]

    response = client.post(f"/sessions/{sid}/rate", json={"rating": 4})

    assert response.status_code == 409
    assert client.get(f"/sessions/{sid}").json()["state"] == "hidden"


def test_out_of_range_rating(client):
    _add_card(client)
    sid = _start(client)["session_id"]
    client.post(f"/sessions/{sid}/reveal")

    response = client.post(f"/sessions/{sid}/rate", json={"rating": 9})

    assert response.status_code == 422
    assert client.get(f"/sessions/{sid}").json()["state"] == "revealed"


def test_hint_endpoint(client):
    _add_card(client, content="Photosynthesis converts light")
    sid = _start(client)["session_id"]

    first = client.post(f"/sessions/{sid}/hint").json()
    second = client.post(f"/sessions/{sid}/hint").json()

    assert first["state"] == "hinted"
    assert first["hint"] == second["hint"]
    assert first["content"] is None


def test_empty_session_is_not_kept(client):
    session = _start(client)

    assert session["status"] == "completed"
    assert session["total"] == 0
    assert client.get(f"/sessions/{session['session_id']}").status_code == 404


def test_unknown_session(client):
    assert client.post("/sessions/ses_missing/reveal").status_code == 404


def test_curated_without_ids(client):
    response = client.post("/sessions", json={"user_id": "alice", "mode": "curated"})
    assert response.status_code == 422


def test_curated_session(client):
    first = _add_card(client, "one", "1")
    second = _add_card(client, "two", "2")

    session = _start(client, mode="curated", card_ids=[second, first])

    assert session["total"] == 2
    assert session["card_id"] == second


def test_abort_session(client):
    _add_card(client)
    sid = _start(client)["session_id"]

    response = client.post(f"/sessions/{sid}/abort", json={"discard": False})

    assert response.status_code == 200
    assert response.json()["status"] == "aborted"
    assert client.get(f"/sessions/{sid}").status_code == 404


def test_streak_and_achievements(client):
    _add_card(client)
    sid = _start(client)["session_id"]
    client.post(f"/sessions/{sid}/reveal")
    client.post(f"/sessions/{sid}/rate", json={"rating": 5})

    streak = client.get("/users/alice/streak").json()
    assert streak["current_streak"] == 1
    assert streak["total_reviews"] == 1
    assert streak["reviewed_today"] == 1
    assert streak["completion_rate"] == 10

    achievements = client.get("/users/alice/achievements").json()
    unlocked = {a["id"] for a in achievements if a["unlocked"]}
    assert unlocked == {"first_card", "first_review"}


def test_failed_write_then_retry(memory_config, clock, rng, flaky_card_store):
    from mnemo.application.service import ReviewService
    from mnemo.infrastructure.adapters.memory import InMemoryReviewLog, InMemoryStreakStore

    store = flaky_card_store(failures=1)
    service = ReviewService(
        store, InMemoryStreakStore(), InMemoryReviewLog(), memory_config, clock=clock, rng=rng
    )
    client = TestClient(create_app(service))
    card_id = _add_card(client)
    sid = _start(client)["session_id"]
    client.post(f"/sessions/{sid}/reveal")

    failed = client.post(f"/sessions/{sid}/rate", json={"rating": 3})
    assert failed.status_code == 503
    assert failed.json()["stage"] == "schedule"
    assert failed.json()["card_id"] == card_id

    # Cannot rate again while the writes are pending
    assert client.post(f"/sessions/{sid}/rate", json={"rating": 3}).status_code == 409
    assert client.post(f"/sessions/{sid}/abort").status_code == 409

    retried = client.post(f"/sessions/{sid}/retry")
    assert retried.status_code == 200
    assert retried.json()["session"]["status"] == "completed"
    assert store.get(card_id).schedule.interval_days == 1


@pytest.mark.parametrize("body", [{"limit": 0}, {"limit": -1}, {"mode": "random", "limit": -1}])
def test_non_positive_limit_is_rejected(client, body):
    _add_card(client)

    response = client.post("/sessions", json={"user_id": "alice", **body})

    assert response.status_code == 422


def test_limit_caps_session(client):
    for i in range(3):
        _add_card(client, f"q{i}", f"a{i}")

    assert _start(client, limit=2)["total"] == 2


def test_idle_session_expires(client, clock):
    _add_card(client)
    sid = _start(client)["session_id"]

    clock.advance(minutes=61)

    assert client.get(f"/sessions/{sid}").status_code == 404
    assert client.post(f"/sessions/{sid}/reveal").status_code == 404


def test_active_session_is_kept_alive(client, clock):
    _add_card(client)
    sid = _start(client)["session_id"]

    clock.advance(minutes=50)
    assert client.get(f"/sessions/{sid}").status_code == 200
    clock.advance(minutes=50)
    assert client.get(f"/sessions/{sid}").status_code == 200


def test_abandoned_sessions_are_dropped_on_new_start(client, clock):
    _add_card(client)
    _start(client)
    clock.advance(hours=2)
    _start(client)

    assert len(client.app.state.sessions) == 1
    assert len(client.app.state.last_seen) == 1
