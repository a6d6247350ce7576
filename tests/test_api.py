"""
Test suite for the HTTP API.
"""
import json

from errors import BAD_SIGNAL_MESSAGE
from fakes import CASE_ID

MISSING_SESSION = "00000000-0000-4000-8000-000000000000"


def start(client, **extra):
    res = client.post("/api/sessions", json={"caseId": CASE_ID, **extra})
    assert res.status_code == 200
    return res.get_json()


def chat(client, session_id, message):
    return client.post("/api/chat", json={"sessionId": session_id, "caseId": CASE_ID, "message": message})


def test_health(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    data = res.get_json()
    assert data["ok"] is True
    assert data["env"] == {"GROQ_API_KEY": False}


def test_list_cases(client):
    res = client.get("/api/cases")
    assert res.status_code == 200
    assert res.get_json() == [{
        "id": CASE_ID,
        "title": "Death at the Manor",
        "synopsis": "Lord Ashby was found dead in his study.",
        "caseNumber": "T-001",
    }]


def test_case_detail_is_public_only(client):
    res = client.get(f"/api/cases/{CASE_ID}")
    assert res.status_code == 200
    body = res.get_data(as_text=True)
    assert "Ann Ashby" in body
    assert "correctAccusation" not in body
    assert "stained dark red" not in body


def test_unknown_case(client):
    res = client.get("/api/cases/nope")
    assert res.status_code == 404
    assert res.get_json() == {"error": "Case not found"}


def test_create_then_resume_session(client):
    first = start(client)
    assert first["isNew"] is True
    assert first["progress"]["currentLocation"] == "study"
    assert first["progress"]["knownLocations"] == ["study"]
    assert "evidenceTruth" not in first["progress"]

    second = start(client)
    assert second["isNew"] is False
    assert second["sessionId"] == first["sessionId"]

    third = start(client, newGame=True)
    assert third["isNew"] is True
    assert third["sessionId"] != first["sessionId"]


def test_create_session_requires_case(client):
    res = client.post("/api/sessions", json={})
    assert res.status_code == 400
    assert "error" in res.get_json()


def test_latest_session(client):
    assert client.get(f"/api/sessions/latest?caseId={CASE_ID}").get_json() == {"latestSessionId": None}
    session_id = start(client)["sessionId"]
    res = client.get(f"/api/sessions/latest?caseId={CASE_ID}")
    assert res.get_json() == {"latestSessionId": session_id}


def test_get_session(client):
    session_id = start(client)["sessionId"]
    res = client.get(f"/api/sessions/{session_id}")
    assert res.status_code == 200
    data = res.get_json()
    assert data["caseId"] == CASE_ID
    assert data["isSolved"] is False

    assert client.get(f"/api/sessions/{MISSING_SESSION}").status_code == 404
    assert client.get("/api/sessions/not-a-uuid").status_code == 400


def test_chat_turn(client):
    session_id = start(client)["sessionId"]
    res = chat(client, session_id, "check the desk")
    assert res.status_code == 200
    assert res.get_json() == {
        "responseText": "On it, partner. Stand by.",
        "unlockedEvidenceIds": ["clue_letter"],
        "unlockedSuspectInfoIds": [],
        "currentLocation": "study",
    }

    progress = client.get(f"/api/sessions/{session_id}").get_json()["progress"]
    assert [e["id"] for e in progress["evidenceLog"]] == ["clue_letter"]
    assert progress["turnCount"] == 1


def test_chat_validation_errors(client):
    session_id = start(client)["sessionId"]

    res = client.post("/api/chat", json={"sessionId": session_id})
    assert res.status_code == 400

    res = client.post("/api/chat", data="not json", content_type="text/plain")
    assert res.status_code == 400

    res = chat(client, session_id, ".")
    assert res.status_code == 400
    assert res.get_json()["error"].startswith("Message is too short")


def test_chat_unknown_session(client):
    res = chat(client, MISSING_SESSION, "check the desk")
    assert res.status_code == 404
    assert res.get_json() == {"error": "Session not found"}


def test_chat_model_failure(client, fake_model):
    session_id = start(client)["sessionId"]
    fake_model.fail = True
    res = chat(client, session_id, "check the desk")
    assert res.status_code == 500
    assert res.get_json() == {"error": BAD_SIGNAL_MESSAGE}
    assert "Traceback" not in res.get_data(as_text=True)


def test_chat_rate_limit(throttled_client):
    session_id = start(throttled_client)["sessionId"]
    assert chat(throttled_client, session_id, "check the desk").status_code == 200

    res = chat(throttled_client, session_id, "check the rug")
    assert res.status_code == 429
    data = res.get_json()
    assert data["retryAfter"] >= 1
    assert res.headers["Retry-After"] == str(data["retryAfter"])


def test_delete_session(client):
    session_id = start(client)["sessionId"]

    res = client.delete(f"/api/sessions/{session_id}")
    assert res.status_code == 200
    data = res.get_json()
    assert data["deleted"] is True
    assert data["deletedAt"]

    assert client.delete(f"/api/sessions/{session_id}").status_code == 404
    assert client.delete("/api/sessions/abc").status_code == 400


def test_accuse(client):
    session_id = start(client)["sessionId"]
    chat(client, session_id, "check the desk")

    res = client.post(f"/api/sessions/{session_id}/accuse", json={"suspectId": "ann", "evidenceId": "clue_letter"})
    assert res.status_code == 200
    verdict = res.get_json()
    assert verdict["outcome"] == "wrong_evidence"
    assert verdict["title"] == "You Lost!"
    assert verdict["suspectCorrect"] is True
    assert "glove" not in json.dumps(verdict)

    session = client.get(f"/api/sessions/{session_id}").get_json()
    assert session["isSolved"] is True
    assert session["finalAccusation"]["outcome"] == "wrong_evidence"

    res = chat(client, session_id, "check the rug")
    assert res.status_code == 400


def test_accuse_requires_found_evidence(client):
    session_id = start(client)["sessionId"]
    res = client.post(f"/api/sessions/{session_id}/accuse", json={"suspectId": "ann", "evidenceId": "glove"})
    assert res.status_code == 400


def test_unknown_route(client):
    res = client.get("/api/nothing-here")
    assert res.status_code == 404
    assert "error" in res.get_json()
