from __future__ import annotations

import json
from datetime import timedelta

import pytest

from conftest import DAY, at
from daily_unlock import store
from daily_unlock.service import MAX_HISTORY_LIMIT


@pytest.fixture
def client(app):
    return app.test_client()


def _login(client, user_id):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id


def test_status_requires_login(client):
    response = client.get("/api/daily-unlock/status")
    assert response.status_code == 401
    assert response.get_json()["status"] == "error"


def test_status_reports_today(client, learner, clock):
    learner_id = learner.id
    _login(client, learner_id)
    clock.now = at(14, 30)

    response = client.get("/api/daily-unlock/status")

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["date"] == "2026-03-10"
    assert data["unlocked_count"] == 2
    assert data["total_tips"] == 3
    assert data["is_all_unlocked"] is False
    assert data["next_unlock"] == at(18, 45).isoformat()
    assert data["unlock_schedule"]["third_unlock"] == at(18, 45).isoformat()
    assert [slot["is_unlocked"] for slot in data["slots"]] == [True, True, False]
    assert data["slots"][0]["tip"]["category"] == "Grammar"
    assert data["slots"][2]["tip_id"] is None
    assert [item["unlock_order"] for item in data["newly_unlocked"]] == [1, 2]


def test_check_unlocks_due_tips_once(client, learner, clock, dispatcher):
    learner_id = learner.id
    _login(client, learner_id)
    clock.now = at(3)
    client.post("/api/daily-unlock/check")

    clock.now = at(9, 1)
    first = client.post("/api/daily-unlock/check").get_json()["data"]
    second = client.post("/api/daily-unlock/check").get_json()["data"]

    assert [item["unlock_order"] for item in first["newly_unlocked"]] == [1]
    assert first["newly_unlocked"][0]["unlocked_at"] == at(9, 1).isoformat()
    assert second["newly_unlocked"] == []
    assert second["total_unlocked"] == 1
    assert len(dispatcher.tip_unlocks) == 1


def test_quiz_not_completed_is_forbidden(client, make_user):
    user = make_user("newbie@example.com", quiz_completed=False)
    _login(client, user.id)

    response = client.get("/api/daily-unlock/status")

    assert response.status_code == 403
    assert response.get_json()["code"] == "quiz_not_completed"


def test_history_lists_recent_days(client, learner, clock):
    learner_id = learner.id
    _login(client, learner_id)
    clock.now = at(20)
    client.post("/api/daily-unlock/check")

    response = client.get("/api/daily-unlock/history?limit=abc")

    history = response.get_json()["data"]["history"]
    assert len(history) == 1
    assert history[0]["date"] == "2026-03-10"
    assert history[0]["unlocked_count"] == 3
    assert all("title" in slot["tip"] for slot in history[0]["slots"])


def test_admin_sweep_requires_admin(client):
    assert client.post("/admin/daily-unlock/sweep").status_code == 403


def test_admin_sweep_accepts_now_override(client, learner, dispatcher):
    with client.session_transaction() as sess:
        sess["admin"] = "ops"

    response = client.post(
        "/admin/daily-unlock/sweep",
        data=json.dumps({"now": "2026-03-10T19:00:00Z"}),
        content_type="application/json",
    )

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["processed"] == 1
    assert data["total_unlocks"] == 3
    assert len(dispatcher.completions) == 1


def test_admin_sweep_rejects_bad_now(client):
    with client.session_transaction() as sess:
        sess["admin"] = "ops"

    response = client.post("/admin/daily-unlock/sweep?now=yesterday-ish")

    assert response.status_code == 400


def test_cli_sweep_prints_report(app, learner):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["daily-unlock", "sweep", "--now", "2026-03-10T14:05:00+00:00"])

    assert result.exit_code == 0, result.output
    report = json.loads(result.stdout)
    assert report["total_unlocks"] == 2
    assert report["failed"] == 0


def test_cli_cleanup_notifications(app):
    result = app.test_cli_runner().invoke(args=["daily-unlock", "cleanup-notifications"])
    assert result.exit_code == 0
    assert "Deleted 0" in result.output


def test_history_limit_is_clamped(client, learner, service, monkeypatch):
    learner_id = learner.id
    for offset in range(3):
        service.reconcile(learner_id, at(20, day=DAY + timedelta(days=offset)))
    _login(client, learner_id)

    smallest = client.get("/api/daily-unlock/history?limit=0").get_json()["data"]["history"]
    assert [entry["date"] for entry in smallest] == ["2026-03-12"]

    everything = client.get("/api/daily-unlock/history?limit=2").get_json()["data"]["history"]
    assert [entry["date"] for entry in everything] == ["2026-03-12", "2026-03-11"]

    requested = []
    original = store.list_recent_schedules

    def recording(user_id, limit):
        requested.append(limit)
        return original(user_id, limit)

    monkeypatch.setattr(store, "list_recent_schedules", recording)
    response = client.get("/api/daily-unlock/history?limit=500")

    assert len(response.get_json()["data"]["history"]) == 3
    assert requested == [MAX_HISTORY_LIMIT]


def test_admin_sweep_ignores_non_object_json(client, learner, clock):
    clock.now = at(9, 5)
    with client.session_transaction() as sess:
        sess["admin"] = "ops"

    response = client.post(
        "/admin/daily-unlock/sweep",
        data=json.dumps(["2026-03-10T19:00:00Z"]),
        content_type="application/json",
    )

    assert response.status_code == 200
    assert response.get_json()["data"]["total_unlocks"] == 1
