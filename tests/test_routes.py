import pytest

from franchise_games import auth_middleware

from app import create_app
from conftest import seed_session

TOKENS = {
    "player-1": {"uid": "p1", "email": "p1@example.com"},
    "player-2": {"uid": "p2"},
    "host": {"uid": "host-1", "role": "host"},
}


def fake_verify(token):
    if token not in TOKENS:
        raise ValueError("unknown token")
    return TOKENS[token]


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.setattr(auth_middleware.fb_auth, "verify_id_token", fake_verify)
    app = create_app(store)
    app.config["TESTING"] = True
    return app.test_client()


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["ok"] is True


def test_answer_requires_token(client, store):
    seed_session(store)
    resp = client.post("/api/quiz/sessions/s1/answers", json={"question_id": "q1"})
    assert resp.status_code == 401
    resp = client.post("/api/quiz/sessions/s1/answers", json={}, headers=auth("forged"))
    assert resp.status_code == 401


def test_submit_answer_and_duplicate(client, store):
    seed_session(store)
    body = {"question_id": "q1", "answer": "B", "time_taken": 2, "is_correct": True}

    resp = client.post("/api/quiz/sessions/s1/answers", json=body, headers=auth("player-1"))
    assert resp.status_code == 200
    assert resp.get_json()["answer"]["scoreAwarded"] == 10

    resp = client.post("/api/quiz/sessions/s1/answers", json=body, headers=auth("player-1"))
    assert resp.status_code == 409
    data = resp.get_json()
    assert data["ok"] is False
    assert data["type"] == "DuplicateSubmissionError"


def test_submit_answer_missing_fields(client, store):
    seed_session(store)
    resp = client.post("/api/quiz/sessions/s1/answers", json={"question_id": "q1"},
                       headers=auth("player-1"))
    assert resp.status_code == 400


def test_invalid_time_is_a_validation_error(client, store):
    seed_session(store)
    body = {"question_id": "q1", "time_taken": -3, "is_correct": True}
    resp = client.post("/api/quiz/sessions/s1/answers", json=body, headers=auth("player-1"))
    assert resp.status_code == 400
    assert resp.get_json()["type"] == "ValidationError"


def test_completion_needs_host_role(client, store):
    seed_session(store)
    client.post("/api/quiz/sessions/s1/answers", headers=auth("player-2"),
                json={"question_id": "q2", "time_taken": 0, "is_correct": True})

    assert client.post("/api/quiz/sessions/s1/complete", headers=auth("player-1")).status_code == 403

    resp = client.post("/api/quiz/sessions/s1/complete", headers=auth("host"))
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["podium"][0]["playerId"] == "p2"
    assert data["pending"] == []

    again = client.post("/api/quiz/sessions/s1/complete", headers=auth("host"))
    assert again.status_code == 409

    results = client.get("/api/quiz/sessions/s1/results", headers=auth("player-1")).get_json()
    assert results["status"] == "Completed"


def test_leaderboards_and_profile(client, store):
    seed_session(store)
    client.post("/api/quiz/sessions/s1/complete", headers=auth("host"))

    top = client.get("/api/quiz/leaderboards/local?limit=2").get_json()
    assert top["count"] == 2
    assert top["leaderboard"][0]["playerId"] == "p1"

    assert client.get("/api/quiz/leaderboards/local?limit=abc").status_code == 400
    assert client.get("/api/quiz/leaderboards/franchisee/f1").get_json()["count"] == 3

    mine = client.get("/api/quiz/leaderboards/me?franchise_id=f1", headers=auth("player-1")).get_json()
    assert mine["local"]["totalXp"] == 100
    assert mine["national"] is None
    assert mine["franchisee"]["franchiseId"] == "f1"

    profile = client.get("/api/quiz/profile", headers=auth("player-1")).get_json()["profile"]
    assert profile["totalXp"] == 100

    ledger_rows = client.get("/api/quiz/ledger/me", headers=auth("player-2")).get_json()
    assert ledger_rows["count"] == 1
    assert ledger_rows["entries"][0]["rankBonusXP"] == 60


def test_profile_without_games(client):
    assert client.get("/api/quiz/profile", headers=auth("player-1")).status_code == 404


def test_reconcile_endpoint(client, store):
    resp = client.post("/api/quiz/ledger/reconcile", headers=auth("host"))
    assert resp.get_json() == {"ok": True, "applied": 0, "pending": 0}


def test_xp_rule_listing_and_edit(client):
    rules = client.get("/api/quiz/xp-rules?locale=fr_fr").get_json()["rules"]
    labels = {(r["type"], r["name"]): r["label"] for r in rules}
    assert labels[("local", "first_place")] == "1re place"

    resp = client.put("/api/quiz/xp-rules/local/first_place", json={"xp_value": 120},
                      headers=auth("host"))
    assert resp.status_code == 200
    assert resp.get_json()["rule"]["xpValue"] == 120

    bad = client.put("/api/quiz/xp-rules/regional/first_place", json={"xp_value": 1},
                     headers=auth("host"))
    assert bad.status_code == 400

    assert client.put("/api/quiz/xp-rules/local/first_place", json={"xp_value": 1},
                      headers=auth("player-1")).status_code == 403


@pytest.mark.parametrize("literal", ["NaN", "Infinity"])
def test_non_finite_time_is_rejected(client, store, literal):
    seed_session(store)
    raw = '{"question_id": "q1", "time_taken": %s, "is_correct": true}' % literal
    resp = client.post("/api/quiz/sessions/s1/answers", data=raw,
                       content_type="application/json", headers=auth("player-1"))
    assert resp.status_code == 400
    assert resp.get_json()["type"] == "ValidationError"

    standings = client.get("/api/quiz/sessions/s1/players", headers=auth("player-1")).get_json()
    assert all(row["totalResponseTime"] == 0 for row in standings["standings"])


def test_live_standings_and_player_view(client, store):
    seed_session(store)
    client.post("/api/quiz/sessions/s1/answers", headers=auth("player-2"),
                json={"question_id": "q1", "time_taken": 3, "is_correct": True})

    assert client.get("/api/quiz/sessions/s1/players").status_code == 401
    live = client.get("/api/quiz/sessions/s1/players", headers=auth("player-1")).get_json()
    assert live["status"] == "InProgress"
    assert [r["playerId"] for r in live["standings"]] == ["p2", "p1", "p3"]

    mine = client.get("/api/quiz/sessions/s1/players/me", headers=auth("player-2")).get_json()
    assert mine["playerId"] == "p2"
    assert mine["stats"]["correctAnswers"] == 1
    assert mine["stats"]["accuracy"] == 100.0

    missing = client.get("/api/quiz/sessions/s1/players/ghost", headers=auth("player-1"))
    assert missing.status_code == 404
