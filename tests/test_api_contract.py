import pytest
from fastapi.testclient import TestClient

from music_collab.api.server import create_app
from music_collab.config import Settings
from music_collab.suggestions.llm import SuggestionLLMEngine


def _client() -> TestClient:
    return TestClient(create_app(Settings()))


def _headers(user: str = "alice") -> dict[str, str]:
    return {"X-User-Id": user}


def _create(client: TestClient, name: str = "Song") -> dict:
    response = client.post("/api/projects", json={"name": name}, headers=_headers())
    assert response.status_code == 201
    return response.json()


def test_root_health_and_favicon() -> None:
    client = _client()

    assert client.get("/").json()["status"] == "ok"
    assert client.get("/api/health").json() == {"status": "ok"}
    assert client.get("/favicon.ico").status_code == 204


def test_create_and_fetch_project_document() -> None:
    client = _client()
    created = _create(client)

    assert created["name"] == "Song"
    assert created["owner"] == "alice"
    assert created["bpm"] == 120
    assert created["timeSignature"] == {"numerator": 4, "denominator": 4}
    assert created["duration"] == 0.0
    assert len(created["tracks"]) == 1
    assert created["tracks"][0]["events"] == []

    fetched = client.get(f"/api/projects/{created['_id']}", headers=_headers())
    assert fetched.status_code == 200
    assert fetched.json()["_id"] == created["_id"]
    listed = client.get("/api/projects", headers=_headers())
    assert [item["_id"] for item in listed.json()] == [created["_id"]]


def test_missing_identity_header_is_rejected() -> None:
    client = _client()

    assert client.get("/api/projects").status_code == 422


def test_unknown_and_forbidden_projects() -> None:
    client = _client()
    created = _create(client)

    missing = client.get("/api/projects/nope", headers=_headers())
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Project 'nope' not found"}
    assert client.get(f"/api/projects/{created['_id']}", headers=_headers("mallory")).status_code == 403


def test_tracks_write_then_version_list_and_restore() -> None:
    client = _client()
    created = _create(client)
    project_id = created["_id"]
    track_id = created["tracks"][0]["_id"]

    update = client.put(
        f"/api/projects/{project_id}",
        json={
            "bpm": 5,
            "tracks": [
                {
                    "_id": track_id,
                    "name": "Piano",
                    "instrument": "piano",
                    "events": [{"type": "note", "note": 60, "time": 0.0, "duration": 0.5, "velocity": 100}],
                }
            ],
        },
        headers=_headers(),
    )
    assert update.status_code == 200
    assert update.json()["bpm"] == 40
    assert update.json()["duration"] == 0.5

    versions = client.get(f"/api/projects/{project_id}/versions", headers=_headers()).json()
    assert [item["version"] for item in versions] == [1]
    assert versions[0]["description"] == "Version 1"
    assert versions[0]["createdBy"] == "alice"

    restored = client.post(f"/api/projects/{project_id}/versions/{versions[0]['_id']}/restore", headers=_headers())
    assert restored.status_code == 200
    body = restored.json()
    assert body["version"] == 1
    assert body["checkpoint"] == 2
    assert body["tracks"][0]["events"] == []

    after = client.get(f"/api/projects/{project_id}/versions", headers=_headers()).json()
    assert [item["version"] for item in after] == [2, 1]


def test_restore_unknown_version_is_not_found() -> None:
    client = _client()
    project_id = _create(client)["_id"]

    response = client.post(f"/api/projects/{project_id}/versions/missing/restore", headers=_headers())

    assert response.status_code == 404


def test_track_management_guards_last_track() -> None:
    client = _client()
    created = _create(client)
    project_id = created["_id"]
    first = created["tracks"][0]["_id"]

    refused = client.delete(f"/api/projects/{project_id}/tracks/{first}", headers=_headers())
    assert refused.status_code == 400

    added = client.post(f"/api/projects/{project_id}/tracks", json={"name": "Bass", "instrument": "bass"}, headers=_headers())
    assert added.status_code == 201
    assert added.json()["instrument"] == "bass"
    assert client.delete(f"/api/projects/{project_id}/tracks/{first}", headers=_headers()).status_code == 200


def test_collaborators_endpoints() -> None:
    client = _client()
    project_id = _create(client)["_id"]

    added = client.post(
        f"/api/projects/{project_id}/collaborators",
        json={"userId": "bob", "role": "viewer"},
        headers=_headers(),
    )
    assert added.status_code == 200
    assert client.get(f"/api/projects/{project_id}", headers=_headers("bob")).status_code == 200
    assert client.put(f"/api/projects/{project_id}", json={"name": "x"}, headers=_headers("bob")).status_code == 403

    listed = client.get(f"/api/projects/{project_id}/collaborators", headers=_headers()).json()
    assert {"user": "bob", "role": "viewer"} in listed
    assert client.delete(f"/api/projects/{project_id}/collaborators/alice", headers=_headers()).status_code == 400


def test_export_returns_wav_attachment() -> None:
    client = _client()
    project_id = _create(client, name="My Song")["_id"]

    response = client.get(f"/api/projects/{project_id}/export", headers=_headers())

    assert response.status_code == 200
    assert response.headers["content-type"] == "audio/wav"
    assert response.headers["content-length"] == "44144"
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="My_Song-')
    assert disposition.endswith('.wav"')
    assert response.content[:4] == b"RIFF"


def test_export_past_render_limit_is_rejected() -> None:
    client = TestClient(create_app(Settings(max_render_sec=1.0)))
    created = _create(client)
    project_id = created["_id"]
    client.put(
        f"/api/projects/{project_id}",
        json={"tracks": [{"name": "Piano", "events": [{"note": 60, "time": 5.0, "duration": 1.0}]}]},
        headers=_headers(),
    )

    assert client.get(f"/api/projects/{project_id}/export", headers=_headers()).status_code == 400


def test_version_export_renders_snapshot() -> None:
    client = _client()
    created = _create(client)
    project_id = created["_id"]
    client.put(
        f"/api/projects/{project_id}",
        json={"tracks": [{"name": "Piano", "events": [{"note": 60, "time": 1.0, "duration": 0.5}]}]},
        headers=_headers(),
    )
    version_id = client.get(f"/api/projects/{project_id}/versions", headers=_headers()).json()[0]["_id"]

    response = client.get(f"/api/projects/{project_id}/versions/{version_id}/export", headers=_headers())

    assert response.status_code == 200
    assert response.headers["content-length"] == "44144"
    current = client.get(f"/api/projects/{project_id}/export", headers=_headers())
    assert current.headers["content-length"] == str(44 + 2 * 88200)


def test_suggest_and_apply_endpoints(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MUSIC_COLLAB_LLM_ENDPOINT", raising=False)
    client = _client()
    created = _create(client)
    project_id = created["_id"]
    track_id = created["tracks"][0]["_id"]

    suggested = client.post(f"/api/projects/{project_id}/suggestions", json={"prompt": "harmony"}, headers=_headers())
    assert suggested.status_code == 200
    body = suggested.json()
    assert body["source"] == "pattern"
    assert body["fallbackReason"] is None
    assert body["suggestion"]["notes"][0] == {"note": 60, "step": 0, "durationSteps": 2, "velocity": 100}

    applied = client.post(
        f"/api/projects/{project_id}/suggestions/apply",
        json={"trackId": track_id, "notes": body["suggestion"]["notes"]},
        headers=_headers(),
    )
    assert applied.status_code == 200
    assert len(applied.json()["events"]) == 4


def test_configured_grid_lines_up_suggestions_with_toggles(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MUSIC_COLLAB_LLM_ENDPOINT", raising=False)
    client = TestClient(create_app(Settings(step_seconds=0.5, grid_steps=8)))
    created = _create(client)
    project_id = created["_id"]
    track_id = created["tracks"][0]["_id"]

    applied = client.post(
        f"/api/projects/{project_id}/suggestions/apply",
        json={
            "trackId": track_id,
            "notes": [
                {"note": 60, "step": 2, "durationSteps": 1},
                {"note": 62, "step": 10, "durationSteps": 1},
            ],
        },
        headers=_headers(),
    )
    assert applied.status_code == 200
    assert [(item["note"], item["time"], item["duration"]) for item in applied.json()["events"]] == [(60, 1.0, 0.5)]

    result = client.app.state.engine.toggle(project_id, "s1", track_id, pitch=60, step=2)

    assert result is not None and result.active is False
    stored = client.get(f"/api/projects/{project_id}", headers=_headers()).json()
    assert stored["tracks"][0]["events"] == []


def test_suggest_reports_fallback_from_the_returned_suggestion() -> None:
    def _timeout(endpoint: str, payload: dict[str, object], headers: dict[str, str], timeout: float) -> dict[str, object]:
        raise TimeoutError("timed out")

    llm = SuggestionLLMEngine(endpoint="http://llm.local", transport=_timeout)
    client = TestClient(create_app(Settings(), llm_engine=llm))
    project_id = _create(client)["_id"]

    body = client.post(f"/api/projects/{project_id}/suggestions", json={"prompt": "bass"}, headers=_headers()).json()

    assert body["source"] == "pattern-fallback"
    assert body["fallbackReason"] == "LLM request failed: timed out"
    assert body["suggestion"]["title"] == "Bassline"


def test_realtime_toggle_reaches_peer_but_not_origin() -> None:
    client = _client()
    created = _create(client)
    project_id = created["_id"]
    track_id = created["tracks"][0]["_id"]
    toggle = {
        "type": "noteToggle",
        "projectId": project_id,
        "event": {
            "type": "noteToggle",
            "note": 60,
            "step": 0,
            "time": 0.0,
            "duration": 0.25,
            "trackId": track_id,
            "velocity": 100,
        },
    }

    with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
        alice.send_json({"type": "join", "projectId": project_id})
        assert alice.receive_json() == {"type": "joined", "projectId": project_id}
        bob.send_json({"type": "join", "projectId": project_id})
        assert bob.receive_json() == {"type": "joined", "projectId": project_id}

        alice.send_text("not json")
        alice.send_json(toggle)
        echoed = bob.receive_json()
        assert echoed == {
            "type": "noteToggle",
            "note": 60,
            "step": 0,
            "time": 0.0,
            "duration": 0.25,
            "trackId": track_id,
            "velocity": 100,
            "active": True,
        }

        stored = client.get(f"/api/projects/{project_id}", headers=_headers()).json()
        assert len(stored["tracks"][0]["events"]) == 1

        # Alice's first inbound message is Bob's toggle, never her own echo.
        bob.send_json(toggle)
        assert alice.receive_json()["active"] is False

    final = client.get(f"/api/projects/{project_id}", headers=_headers()).json()
    assert final["tracks"][0]["events"] == []
    assert client.get(f"/api/projects/{project_id}/versions", headers=_headers()).json() == []


def test_realtime_channel_drops_binary_frames() -> None:
    client = _client()
    created = _create(client)
    project_id = created["_id"]
    track_id = created["tracks"][0]["_id"]

    with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
        alice.send_json({"type": "join", "projectId": project_id})
        alice.receive_json()
        bob.send_json({"type": "join", "projectId": project_id})
        bob.receive_json()

        alice.send_bytes(b"\x00\x01")
        alice.send_json(
            {
                "type": "noteToggle",
                "projectId": project_id,
                "event": {"type": "noteToggle", "note": 64, "step": 1, "trackId": track_id},
            }
        )

        assert bob.receive_json()["note"] == 64
