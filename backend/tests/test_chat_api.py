from __future__ import annotations

import dataclasses
from pathlib import Path

from medassist_core import ProviderThrottled, medical_disclaimer
from medassist_core.fallback import DISCLAIMER_HEADING


def _start(client, headers) -> str:
    response = client.post("/chat/start", json={}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["session_id"]


def _upload(client, headers, session_id: str, name: str, content: bytes, mime: str):
    return client.post(
        "/chat/upload",
        files={"file": (name, content, mime)},
        data={"session_id": session_id},
        headers=headers,
    )


def _report_rows(backend_module) -> list[dict]:
    with backend_module.container.db.connection() as conn:
        rows = conn.execute("SELECT status, extracted_text, is_placeholder FROM uploaded_reports").fetchall()
    return [dict(row) for row in rows]


def _stored_files(backend_module) -> list[Path]:
    upload_dir = Path(backend_module.container.settings.upload_dir)
    return sorted(upload_dir.glob("*")) if upload_dir.exists() else []


def _fake_model(backend_module, monkeypatch, complete):
    responder = backend_module.container.responder
    monkeypatch.setattr(responder, "_providers", lambda: [{"provider": "fake", "model": "fake-model"}])
    monkeypatch.setattr(responder, "_complete", complete)


def test_start_session_returns_greeting(client, auth_headers):
    response = client.post("/chat/start", json={"title": "Blood test questions"}, headers=auth_headers("patient-a"))
    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "Blood test questions"
    assert body["is_active"] is True
    assert body["greeting_text"].startswith("Hello! I'm your medical AI assistant")


def test_requests_without_identity_are_rejected(client):
    assert client.post("/chat/start", json={}).status_code == 401


def test_trusted_user_header_is_validated(client):
    assert client.post("/chat/start", json={}, headers={"X-User-Id": "clinic-user-7"}).status_code == 200
    assert client.post("/chat/start", json={}, headers={"X-User-Id": "bad id!"}).status_code == 400


def test_uploaded_report_becomes_context_for_later_questions(client, auth_headers, backend_module):
    headers = auth_headers("patient-a")
    session_id = _start(client, headers)

    upload = _upload(client, headers, session_id, "cbc.txt", b"Hemoglobin 9.2 g/dL, low", "text/plain")
    assert upload.status_code == 200, upload.text
    body = upload.json()
    assert body["is_placeholder"] is False
    assert body["extraction_method"] == "plain_text"
    assert body["extracted_text_length"] == len("Hemoglobin 9.2 g/dL, low")
    assert body["analysis_text"].count(DISCLAIMER_HEADING) == 1

    rows = _report_rows(backend_module)
    assert rows == [{"status": "completed", "extracted_text": "Hemoglobin 9.2 g/dL, low", "is_placeholder": 0}]

    reply = client.post(
        "/chat/message",
        json={"session_id": session_id, "message": "what does my hemoglobin result mean?"},
        headers=headers,
    )
    assert reply.status_code == 200
    result = reply.json()
    assert result["is_emergency"] is False
    assert result["context_found"] is True
    assert result["message_kind"] == "text"
    assert result["response_text"].endswith(medical_disclaimer())
    assert result["timestamp"]

    history = client.get(f"/chat/history/{session_id}", headers=headers).json()
    kinds = [message["message_kind"] for message in history["messages"]]
    assert kinds == ["text", "file_analysis", "file_analysis", "text", "text"]
    assert history["messages"][1]["content"] == "📄 Medical report uploaded: cbc.txt (0KB)"
    assert history["reports"][0]["status"] == "completed"


def test_report_text_reaches_the_model_prompt(client, auth_headers, backend_module, monkeypatch):
    headers = auth_headers("patient-a")
    session_id = _start(client, headers)
    assert _upload(client, headers, session_id, "cbc.txt", b"Hemoglobin 9.2 g/dL, low", "text/plain").status_code == 200

    prompts: list[str] = []

    def complete(**kwargs):
        prompts.append(kwargs["system_prompt"])
        return "Your hemoglobin is a little low."

    _fake_model(backend_module, monkeypatch, complete)
    reply = client.post(
        "/chat/message",
        json={"session_id": session_id, "message": "what does my hemoglobin result mean?"},
        headers=headers,
    ).json()

    assert "Hemoglobin 9.2 g/dL, low" in prompts[-1]
    assert reply["response_text"].startswith("Your hemoglobin is a little low.")


def test_emergency_message_skips_the_model(client, auth_headers, backend_module, monkeypatch):
    headers = auth_headers("patient-a")
    session_id = _start(client, headers)

    def fail(**kwargs):
        raise AssertionError("model must not be called for emergencies")

    monkeypatch.setattr(backend_module.container.responder, "generate", fail)
    reply = client.post(
        "/chat/message",
        json={"session_id": session_id, "message": "I have crushing chest pain and can't breathe"},
        headers=headers,
    )
    assert reply.status_code == 200
    body = reply.json()
    assert body["is_emergency"] is True
    assert body["severity"] == "EMERGENCY"
    assert body["message_kind"] == "emergency_alert"
    assert "Call emergency services immediately (999)" in body["response_text"]
    assert body["response_text"].count(DISCLAIMER_HEADING) == 1


def test_model_disclaimer_is_not_duplicated(client, auth_headers, backend_module, monkeypatch):
    headers = auth_headers("patient-a")
    session_id = _start(client, headers)
    _fake_model(
        backend_module,
        monkeypatch,
        lambda **kwargs: "Rest and drink fluids.\n\n" + medical_disclaimer(),
    )
    body = client.post(
        "/chat/message",
        json={"session_id": session_id, "message": "I have a runny nose"},
        headers=headers,
    ).json()
    assert body["response_text"].count(DISCLAIMER_HEADING) == 1
    assert body["response_text"].startswith("Rest and drink fluids.")


def test_throttled_provider_falls_back_to_templates(client, auth_headers, backend_module, monkeypatch):
    headers = auth_headers("patient-a")
    session_id = _start(client, headers)
    calls: list[int] = []

    def throttled(**kwargs):
        calls.append(1)
        raise ProviderThrottled("429 quota exceeded")

    _fake_model(backend_module, monkeypatch, throttled)
    reply = client.post(
        "/chat/message",
        json={"session_id": session_id, "message": "I've had a fever since yesterday"},
        headers=headers,
    )
    assert reply.status_code == 200
    assert "Regarding fever" in reply.json()["response_text"]
    assert len(calls) == backend_module.container.settings.max_retries + 1


def test_sessions_are_private_to_their_owner(client, auth_headers):
    session_id = _start(client, auth_headers("patient-a"))
    other = auth_headers("patient-b")
    assert client.get(f"/chat/history/{session_id}", headers=other).status_code == 404
    assert (
        client.post("/chat/message", json={"session_id": session_id, "message": "hi"}, headers=other).status_code
        == 404
    )
    assert client.delete(f"/chat/session/{session_id}", headers=other).status_code == 404


def test_ended_session_is_read_only(client, auth_headers):
    headers = auth_headers("patient-a")
    session_id = _start(client, headers)
    ended = client.patch(f"/chat/end/{session_id}", headers=headers)
    assert ended.status_code == 200
    assert ended.json()["session"]["is_active"] is False

    assert (
        client.post("/chat/message", json={"session_id": session_id, "message": "hello"}, headers=headers).status_code
        == 409
    )
    assert _upload(client, headers, session_id, "cbc.txt", b"Glucose 5.1", "text/plain").status_code == 409
    assert client.patch(f"/chat/end/{session_id}", headers=headers).status_code == 409
    assert client.get(f"/chat/history/{session_id}", headers=headers).status_code == 200


def test_rejected_uploads_leave_nothing_behind(client, auth_headers, backend_module, monkeypatch):
    headers = auth_headers("patient-a")
    session_id = _start(client, headers)

    unsupported = _upload(client, headers, session_id, "setup.exe", b"MZ\x90\x00", "application/x-msdownload")
    assert unsupported.status_code == 415

    empty = _upload(client, headers, session_id, "empty.txt", b"", "text/plain")
    assert empty.status_code == 400

    small = dataclasses.replace(backend_module.container.settings, max_upload_bytes=16)
    monkeypatch.setattr(backend_module.container, "settings", small)
    monkeypatch.setattr(backend_module.container.consultation, "settings", small)
    too_large = _upload(client, headers, session_id, "big.txt", b"x" * 64, "text/plain")
    assert too_large.status_code == 413

    assert _report_rows(backend_module) == []
    assert _stored_files(backend_module) == []


def test_upload_requires_file_and_session(client, auth_headers):
    headers = auth_headers("patient-a")
    session_id = _start(client, headers)
    assert client.post("/chat/upload", data={"session_id": session_id}, headers=headers).status_code == 400
    assert (
        client.post("/chat/upload", files={"file": ("a.txt", b"text", "text/plain")}, headers=headers).status_code
        == 400
    )


def test_unreadable_pdf_is_stored_as_placeholder(client, auth_headers, backend_module):
    headers = auth_headers("patient-a")
    session_id = _start(client, headers)
    response = _upload(client, headers, session_id, "scan.pdf", b"%PDF-garbage" * 20, "application/pdf")
    assert response.status_code == 200
    body = response.json()
    assert body["is_placeholder"] is True
    assert body["extraction_method"] == "placeholder"
    assert body["extracted_text_length"] == 0
    assert "couldn't read the contents" in body["analysis_text"]

    rows = _report_rows(backend_module)
    assert rows[0]["status"] == "completed"
    assert rows[0]["is_placeholder"] == 1
    assert "scan.pdf" in rows[0]["extracted_text"]


def test_list_and_delete_sessions(client, auth_headers, backend_module):
    headers = auth_headers("patient-a")
    first = _start(client, headers)
    _start(client, headers)
    assert _upload(client, headers, first, "notes.txt", b"Blood pressure 150/95", "text/plain").status_code == 200

    listing = client.get("/chat/sessions", params={"limit": 1}, headers=headers).json()
    assert listing["pagination"]["total_sessions"] == 2
    assert listing["pagination"]["has_next"] is True
    assert len(listing["sessions"]) == 1

    deleted = client.delete(f"/chat/session/{first}", headers=headers)
    assert deleted.status_code == 200
    assert client.get(f"/chat/history/{first}", headers=headers).status_code == 404
    assert _stored_files(backend_module) == []


def test_symptom_check(client, auth_headers):
    headers = auth_headers("patient-a")
    routine = client.post("/chat/symptom-check", json={"symptoms": "mild headache after work"}, headers=headers)
    assert routine.status_code == 200
    body = routine.json()
    assert body["is_emergency"] is False
    assert "Consult with a healthcare provider" in body["recommendations"]
    assert body["assessment"].count(DISCLAIMER_HEADING) == 1

    emergency = client.post(
        "/chat/symptom-check",
        json={"symptoms": "sudden chest pain spreading to my arm"},
        headers=headers,
    ).json()
    assert emergency["is_emergency"] is True
    assert "Call 999" in emergency["recommendations"]

    assert client.post("/chat/symptom-check", json={"symptoms": "   "}, headers=headers).status_code == 400


def test_health_reports_capabilities_and_knowledge(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["knowledge"]["entries"] == 10
    assert body["knowledge"]["embedding_space"] == "local"
    assert set(body["capabilities"]) >= {"pdf_text", "docx", "pdf_raster", "imaging", "ocr"}
    assert body["extraction_chains"]["image"] == ["image_ocr"]
    assert body["chat_providers"] == []


def test_executable_declared_as_text_is_rejected(client, auth_headers, backend_module):
    headers = auth_headers("patient-a")
    session_id = _start(client, headers)
    response = _upload(client, headers, session_id, "payload.exe", b"MZ\x90\x00", "text/plain")
    assert response.status_code == 415
    assert _report_rows(backend_module) == []
    assert _stored_files(backend_module) == []
