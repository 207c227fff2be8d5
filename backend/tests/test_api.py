import uuid

import pytest
from fastapi.testclient import TestClient

from tender.db import schemas
from tender.main import app
from tender.utils.exceptions import AIServiceError

from conftest import analysis_json, register

MOTION = ("motion.txt", b"Deadline: March 15, 2024 - file motion to compel discovery from MegaCorp Inc.", "text/plain")
EXHIBIT = ("exhibit.txt", b"Exhibit A: payment ledger showing payments withheld since June 2023 by MegaCorp.", "text/plain")


def create_case(client, name="Johnson v. MegaCorp", case_number="CV-2024-001234"):
    response = client.post("/api/v1/cases", json={"name": name, "caseNumber": case_number})
    assert response.status_code == 201, response.text
    return response.json()


def upload(client, case_id, files, instructions=None):
    data = {"userInstructions": instructions} if instructions else None
    return client.post(
        f"/api/v1/cases/{case_id}/documents",
        files=[("files", f) for f in files],
        data=data,
    )


# ── Auth ──────────────────────────────────────────────────────────────────────

def test_register_sets_session_cookie(client):
    body = register(client)

    assert body["email"] == "counsel@example.com"
    assert body["fullName"] == "Test Counsel"
    assert "passwordHash" not in body
    assert client.cookies.get("tender_session")

    me = client.get("/api/v1/auth/user")
    assert me.status_code == 200
    assert me.json()["id"] == body["id"]


def test_duplicate_registration_rejected(auth_client):
    response = auth_client.post(
        "/api/v1/auth/register",
        json={"email": "Counsel@Example.com", "password": "password123"},
    )
    assert response.status_code == 400


def test_login_and_logout(client):
    register(client)
    client.post("/api/v1/auth/logout")
    assert client.get("/api/v1/auth/user").status_code == 401

    bad = client.post("/api/v1/auth/login", json={"email": "counsel@example.com", "password": "wrong-password"})
    assert bad.status_code == 401

    good = client.post("/api/v1/auth/login", json={"email": "counsel@example.com", "password": "password123"})
    assert good.status_code == 200
    assert good.json()["lastLoginAt"] is not None
    assert client.get("/api/v1/auth/user").status_code == 200


def test_requests_without_session_are_unauthorized(client):
    response = client.get("/api/v1/cases")

    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"


def test_garbage_token_is_unauthorized(client):
    client.cookies.set("tender_session", "not-a-jwt")
    assert client.get("/api/v1/cases").status_code == 401


# ── Cases ─────────────────────────────────────────────────────────────────────

def test_create_and_list_cases(auth_client):
    created = create_case(auth_client)

    assert created["status"] == "active"
    listed = auth_client.get("/api/v1/cases").json()
    assert listed == [
        {
            **created,
            "documentCount": 0,
            "pendingApprovals": 0,
        }
    ]


def test_create_case_validation_failure(auth_client):
    response = auth_client.post("/api/v1/cases", json={"name": "   ", "caseNumber": "CV-1"})

    assert response.status_code == 400
    assert response.json()["code"] == "validation_failure"


def test_delete_case_removes_rows_and_blobs(auth_client, fake_ai, storage):
    case = create_case(auth_client)
    fake_ai.script(analysis_json())
    stored = upload(auth_client, case["id"], [MOTION]).json()["documents"][0]["storageUrl"]

    response = auth_client.delete(f"/api/v1/cases/{case['id']}")

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert auth_client.get("/api/v1/cases").json() == []
    assert auth_client.get(f"/api/v1/cases/{case['id']}/messages").status_code == 404
    assert not (storage.base_dir / stored[len("local://"):]).exists()


# ── Document intake ───────────────────────────────────────────────────────────

def test_upload_single_document(auth_client, fake_ai):
    case = create_case(auth_client)
    fake_ai.script(analysis_json())

    response = upload(auth_client, case["id"], [MOTION])

    assert response.status_code == 200, response.text
    body = response.json()
    assert [d["fileName"] for d in body["documents"]] == ["motion.txt"]
    assert body["documents"][0]["fileType"] == "text/plain"
    assert body["extracted"]["caseNumber"] == "CV-2024-001234"
    assert body["extracted"]["confidence"] == pytest.approx(0.92)
    assert body["extracted"]["documentId"] == body["documents"][0]["id"]
    assert [a["status"] for a in body["actions"]] == ["pending", "pending"]
    assert body["message"]["role"] == "assistant"
    assert body["message"]["isAnalysis"] is True

    messages = auth_client.get(f"/api/v1/cases/{case['id']}/messages").json()
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[0]["content"] == "Uploaded 1 document: motion.txt"


def test_batch_upload_with_instructions(auth_client, fake_ai):
    case = create_case(auth_client)
    fake_ai.script(analysis_json(), "The only deadline is March 15, 2024: file the motion to compel.")

    response = upload(auth_client, case["id"], [MOTION, EXHIBIT], instructions="find deadlines")

    assert response.status_code == 200, response.text
    body = response.json()
    assert len(body["documents"]) == 2
    assert body["extracted"]["documentIds"] == [d["id"] for d in body["documents"]]
    assert body["message"]["content"] == "The only deadline is March 15, 2024: file the motion to compel."

    analysis_prompt = fake_ai.calls[0][0]
    assert "Document: motion.txt" in analysis_prompt
    assert "Document: exhibit.txt" in analysis_prompt
    assert "find deadlines" in analysis_prompt

    extracted = auth_client.get(f"/api/v1/cases/{case['id']}/extracted-data").json()
    assert len(extracted) == 1
    assert extracted[0]["document"]["fileName"] == "motion.txt"
    assert extracted[0]["extracted"]["deadlines"] == [
        {"date": "March 15, 2024", "description": "File motion to compel", "priority": "high"}
    ]

    messages = auth_client.get(f"/api/v1/cases/{case['id']}/messages").json()
    assert messages[0]["content"] == "Uploaded 2 documents: motion.txt, exhibit.txt\nInstructions: find deadlines"


def test_upload_without_files_is_empty_batch(auth_client, fake_ai):
    case = create_case(auth_client)

    response = auth_client.post(f"/api/v1/cases/{case['id']}/documents", data={"userInstructions": "anything"})

    assert response.status_code == 400
    assert response.json()["code"] == "empty_batch"
    assert fake_ai.calls == []


def test_malformed_spreadsheet_leaves_case_untouched(auth_client, fake_ai):
    case = create_case(auth_client)
    fake_ai.script(analysis_json())
    broken = ("ledger.xlsx", b"not really a workbook", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")

    response = upload(auth_client, case["id"], [MOTION, broken])

    assert response.status_code == 400
    assert response.json()["code"] == "extraction_failure"
    assert "ledger.xlsx" in response.json()["detail"]
    assert auth_client.get(f"/api/v1/cases/{case['id']}/extracted-data").json() == []
    assert auth_client.get(f"/api/v1/cases/{case['id']}/messages").json() == []
    assert auth_client.get("/api/v1/cases").json()[0]["documentCount"] == 0


def test_unparseable_analysis_is_server_error(auth_client, fake_ai):
    case = create_case(auth_client)
    fake_ai.script("I'm sorry, I can't analyze these documents.")

    response = upload(auth_client, case["id"], [MOTION])

    assert response.status_code == 500
    assert response.json()["code"] == "analysis_parse_failure"
    assert auth_client.get(f"/api/v1/cases/{case['id']}/actions").json() == []


# ── Actions & overview ────────────────────────────────────────────────────────

@pytest.fixture
def analyzed_case(auth_client, fake_ai):
    case = create_case(auth_client)
    fake_ai.script(analysis_json())
    body = upload(auth_client, case["id"], [MOTION]).json()
    return case, body["actions"]


def test_case_actions_listed(auth_client, analyzed_case):
    case, actions = analyzed_case

    listed = auth_client.get(f"/api/v1/cases/{case['id']}/actions").json()

    assert {a["id"] for a in listed} == {a["id"] for a in actions}
    assert {a["priority"] for a in listed} == {"high", "medium"}


def test_approve_is_idempotent_and_shows_in_approvals(auth_client, analyzed_case):
    case, actions = analyzed_case
    action_id = actions[0]["id"]

    first = auth_client.patch(f"/api/v1/actions/{action_id}", json={"status": "approved"})
    second = auth_client.patch(f"/api/v1/actions/{action_id}", json={"status": "approved"})

    assert first.status_code == second.status_code == 200
    assert second.json()["status"] == "approved"

    approvals = auth_client.get("/api/v1/approvals").json()
    assert len(approvals) == 1
    assert approvals[0]["action"]["id"] == action_id
    assert approvals[0]["case"]["name"] == "Johnson v. MegaCorp"
    assert approvals[0]["document"]["fileName"] == "motion.txt"
    assert approvals[0]["extracted"]["caseNumber"] == "CV-2024-001234"


def test_reject_decrements_pending_approvals(auth_client, analyzed_case):
    _, actions = analyzed_case
    assert auth_client.get("/api/v1/cases").json()[0]["pendingApprovals"] == 2

    auth_client.patch(f"/api/v1/actions/{actions[1]['id']}", json={"status": "rejected"})

    listed = auth_client.get("/api/v1/cases").json()[0]
    assert listed["pendingApprovals"] == 1
    assert listed["documentCount"] == 1
    assert auth_client.get("/api/v1/approvals").json() == []


def test_invalid_status_rejected(auth_client, analyzed_case):
    _, actions = analyzed_case

    response = auth_client.patch(f"/api/v1/actions/{actions[0]['id']}", json={"status": "pending"})

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_status"


def test_delete_action_returns_deleted_action(auth_client, analyzed_case):
    case, actions = analyzed_case

    response = auth_client.delete(f"/api/v1/actions/{actions[0]['id']}")

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["action"]["title"] == actions[0]["title"]
    assert len(auth_client.get(f"/api/v1/cases/{case['id']}/actions").json()) == 1
    assert auth_client.delete(f"/api/v1/actions/{actions[0]['id']}").status_code == 404


def test_deadlines_across_cases(auth_client, analyzed_case):
    case, _ = analyzed_case

    deadlines = auth_client.get("/api/v1/deadlines").json()

    assert deadlines == [
        {
            "date": "March 15, 2024",
            "description": "File motion to compel",
            "priority": "high",
            "caseId": case["id"],
            "caseName": "Johnson v. MegaCorp",
            "caseNumber": "CV-2024-001234",
            "documentName": "motion.txt",
        }
    ]


# ── Ownership ─────────────────────────────────────────────────────────────────

def test_other_account_cannot_touch_case(auth_client, analyzed_case):
    case, actions = analyzed_case
    intruder = TestClient(app)
    register(intruder, email="opposing@example.com")

    assert intruder.get(f"/api/v1/cases/{case['id']}/messages").status_code == 403
    assert intruder.get(f"/api/v1/cases/{case['id']}/extracted-data").status_code == 403
    assert intruder.delete(f"/api/v1/cases/{case['id']}").status_code == 403
    assert intruder.patch(f"/api/v1/actions/{actions[0]['id']}", json={"status": "approved"}).status_code == 403
    assert intruder.get("/api/v1/cases").json() == []
    assert intruder.get("/api/v1/approvals").json() == []


def test_unknown_case_is_not_found(auth_client):
    response = auth_client.get(f"/api/v1/cases/{uuid.uuid4()}/messages")

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


# ── Chat ──────────────────────────────────────────────────────────────────────

def test_user_message_gets_reply(auth_client, fake_ai):
    case = create_case(auth_client)

    response = auth_client.post(f"/api/v1/cases/{case['id']}/messages", json={"content": "What should I do first?"})

    assert response.status_code == 200
    body = response.json()
    assert body["userMessage"]["content"] == "What should I do first?"
    assert body["aiMessage"]["role"] == "assistant"
    assert body["aiMessage"]["content"] == "Happy to help."
    assert len(auth_client.get(f"/api/v1/cases/{case['id']}/messages").json()) == 2


def test_upload_notice_gets_no_reply(auth_client, fake_ai):
    case = create_case(auth_client)

    response = auth_client.post(
        f"/api/v1/cases/{case['id']}/messages", json={"content": "Uploaded: motion.pdf"}
    )

    assert response.status_code == 200
    assert response.json()["aiMessage"] is None
    assert fake_ai.calls == []


def test_chat_reply_is_grounded_on_latest_analysis(auth_client, fake_ai, analyzed_case):
    case, _ = analyzed_case

    auth_client.post(f"/api/v1/cases/{case['id']}/messages", json={"content": "Summarize the case"})

    prompt = fake_ai.calls[-1][0]
    assert "Context from recent analysis" in prompt
    assert "CV-2024-001234" in prompt
    assert "User message: Summarize the case" in prompt


def test_chat_ai_failure_keeps_user_message(auth_client, fake_ai):
    case = create_case(auth_client)
    fake_ai.script(AIServiceError("model unavailable"))

    response = auth_client.post(f"/api/v1/cases/{case['id']}/messages", json={"content": "Any news?"})

    assert response.status_code == 503
    assert response.json()["code"] == "ai_service_error"
    messages = auth_client.get(f"/api/v1/cases/{case['id']}/messages").json()
    assert [m["content"] for m in messages] == ["Any news?"]


def test_blank_message_is_validation_failure(auth_client):
    case = create_case(auth_client)

    response = auth_client.post(f"/api/v1/cases/{case['id']}/messages", json={"content": ""})

    assert response.status_code == 400
    assert response.json()["code"] == "validation_failure"


# ── Health ────────────────────────────────────────────────────────────────────

def test_health_checks_database(client):
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "database": "ok"}


def test_health_declares_response_model():
    route = next(r for r in app.routes if getattr(r, "path", None) == "/api/v1/health")

    assert route.response_model is schemas.HealthResponse


def test_correlation_id_echoed(client):
    response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})

    assert response.headers["X-Correlation-ID"] == "abc-123"
