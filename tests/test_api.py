from mind_reset.errors import StoreWriteError
from mind_reset.settings import settings


def _register(client, user_id="u1"):
    resp = client.post("/users", json={"user_id": user_id, "created_at": "2026-09-03T20:15:00"})
    assert resp.status_code == 201
    return {"X-User-Id": user_id}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_api_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "secret")
    assert client.get("/users/me", headers={"X-User-Id": "u1"}).status_code == 401


def test_unknown_user_rejected(client):
    assert client.get("/schedules/today", headers={"X-User-Id": "ghost"}).status_code == 401
    assert client.get("/schedules/today").status_code == 401


def test_register_twice_conflicts(client):
    _register(client)
    resp = client.post("/users", json={"user_id": "u1"})
    assert resp.status_code == 409


def test_today_schedule_created_on_first_open(client):
    headers = _register(client)

    resp = client.get("/schedules/today", headers=headers)

    assert resp.status_code == 200
    data = resp.json()
    assert data["id"] == "2026-10-21"
    assert len(data["timeBlocks"]) == 16
    assert data["timeBlocks"][0]["time"] == "7:00 AM"
    assert len(data["priorities"]) == 1


def test_change_times_via_api(client):
    headers = _register(client)

    resp = client.put("/schedules/2026-10-21/times", json={"wake": "09:00", "sleep": "11:00"}, headers=headers)

    assert resp.status_code == 200
    assert [b["time"] for b in resp.json()["timeBlocks"]] == ["9:00 AM", "10:00 AM", "11:00 AM"]
    me = client.get("/users/me", headers=headers).json()
    assert me["default_wake_up_time"] == "09:00"


def test_copy_previous_missing_day_is_404(client):
    headers = _register(client)
    resp = client.post("/schedules/2026-10-21/copy-previous", headers=headers)
    assert resp.status_code == 404


def test_remove_last_priority_is_rejected(client):
    headers = _register(client)
    schedule = client.get("/schedules/today", headers=headers).json()
    priority_id = schedule["priorities"][0]["id"]

    resp = client.delete(f"/schedules/2026-10-21/priorities/{priority_id}", headers=headers)

    assert resp.status_code == 422


def test_habit_flow(client):
    headers = _register(client)

    habits = client.get("/habits", headers=headers).json()
    assert len(habits) == 5

    created = client.post("/habits", json={"title": "Stretch"}, headers=headers)
    assert created.status_code == 201
    habit_id = created.json()["id"]

    toggled = client.post(f"/habits/{habit_id}/toggle", json={}, headers=headers)
    assert toggled.status_code == 200
    body = toggled.json()
    assert body["completed"] is True
    assert body["points_awarded"] == 2
    assert body["habit"]["currentStreak"] == 1

    assert client.get("/users/me", headers=headers).json()["total_points"] == 2
    assert client.get("/habits/completed-today", headers=headers).json() == {"count": 1, "total": 6}

    week = client.get(f"/habits/{habit_id}/reports/week", headers=headers).json()
    assert [p["value"] for p in week["points"]][:4] == [0.0, 0.0, 0.0, 1.0]

    assert client.delete(f"/habits/{habit_id}", headers=headers).status_code == 200
    assert len(client.get("/habits", headers=headers).json()) == 5


def test_other_users_habit_is_hidden(client):
    headers1 = _register(client, "u1")
    headers2 = _register(client, "u2")
    habit_id = client.post("/habits", json={"title": "Private"}, headers=headers1).json()["id"]

    assert client.post(f"/habits/{habit_id}/toggle", json={}, headers=headers2).status_code == 404
    assert client.delete(f"/habits/{habit_id}", headers=headers2).status_code == 404


def test_notes_via_api(client):
    headers = _register(client)
    habit_id = client.post("/habits", json={"title": "Journal"}, headers=headers).json()["id"]

    assert client.post(f"/habits/{habit_id}/notes", json={"text": ""}, headers=headers).status_code == 422
    note = client.post(f"/habits/{habit_id}/notes", json={"text": "day one"}, headers=headers)
    assert note.status_code == 201
    listed = client.get(f"/habits/{habit_id}/notes", headers=headers).json()
    assert [n["noteText"] for n in listed] == ["day one"]

    note_id = note.json()["id"]
    assert client.delete(f"/habits/{habit_id}/notes/{note_id}", headers=headers).status_code == 200
    assert client.get(f"/habits/{habit_id}/notes", headers=headers).json() == []


def test_custom_range_before_habit_start_is_rejected(client):
    headers = _register(client)
    habit_id = client.post("/habits", json={"title": "Walk"}, headers=headers).json()["id"]

    resp = client.get(
        f"/habits/{habit_id}/reports/range",
        params={"start": "2026-10-01", "end": "2026-10-21"},
        headers=headers,
    )

    assert resp.status_code == 422


def test_write_failure_maps_to_503(client, store):
    headers = _register(client)
    habit_id = client.post("/habits", json={"title": "Walk"}, headers=headers).json()["id"]
    store.fail_writes = True

    resp = client.post(f"/habits/{habit_id}/toggle", json={}, headers=headers)

    assert resp.status_code == 503
    assert resp.json()["detail"] == "Failed to update habit."


def test_failed_starter_habits_map_to_503(client, store, monkeypatch):
    headers = _register(client)
    original_add = store.add

    async def _failing_add(collection, data):
        raise StoreWriteError(f"add {collection}")

    monkeypatch.setattr(store, "add", _failing_add)
    resp = client.get("/habits", headers=headers)

    assert resp.status_code == 503
    assert resp.json()["detail"] == "Failed to create starter habits."

    monkeypatch.setattr(store, "add", original_add)
    assert len(client.get("/habits", headers=headers).json()) == 5
