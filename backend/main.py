from __future__ import annotations

import hashlib
import logging
import os
import re
from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, Form, Header, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from medassist_core import (
    MEDICAL_KNOWLEDGE,
    ConsultationService,
    EmbeddingProvider,
    GenerationGateway,
    HostedEmbedder,
    KnowledgeStore,
    ModelResponder,
    RateLimiter,
    Settings,
)
from medassist_core.providers import OPENAI_API_BASE, chat_provider_candidates
from medassist_tools import (
    ExtractionCascade,
    ImagePreprocessor,
    OcrEngine,
    UploadIOError,
    UploadRejected,
    normalize_upload_filename,
    probe_capabilities,
)
from memory import ChatSessionManager, MemoryPolicyError, SessionNotFound, SessionStateError, SQLiteSessionDB
from memory.time_utils import to_iso, utc_now

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _load_local_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.fullmatch(key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def _bootstrap_local_env() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    for candidate in (repo_root / ".env", repo_root / "backend/.env"):
        if candidate.exists():
            _load_local_env_file(candidate)


_bootstrap_local_env()

logging.basicConfig(
    level=(os.getenv("MEDASSIST_LOG_LEVEL") or "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("medassist")


class StartSessionRequest(BaseModel):
    title: str | None = None


class MessageRequest(BaseModel):
    session_id: str
    message: str


class SymptomCheckRequest(BaseModel):
    symptoms: str


def _hosted_embedder(settings: Settings) -> HostedEmbedder | None:
    if settings.embedding_mode != "hosted":
        return None
    api_key = (os.getenv("OPENAI_API_KEY") or "").strip()
    if not api_key:
        logger.warning("MEDASSIST_EMBEDDING_MODE=hosted but OPENAI_API_KEY is not set; using local embeddings")
        return None
    return HostedEmbedder(
        api_key=api_key,
        base_url=OPENAI_API_BASE,
        model=settings.embedding_model,
        dimension=settings.embedding_dimension,
    )


class MedAssistApp:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings.from_env()
        self.db = SQLiteSessionDB(self.settings.db_path)
        self.sessions = ChatSessionManager(self.db)
        self.capabilities = probe_capabilities()

        self.embedder = EmbeddingProvider(
            primary=_hosted_embedder(self.settings),
            dimension=self.settings.embedding_dimension,
        )
        self.knowledge = KnowledgeStore.build(
            MEDICAL_KNOWLEDGE,
            self.embedder,
            relevance_floor=self.settings.relevance_floor,
        )

        self.gateway = GenerationGateway(
            RateLimiter(self.settings.min_call_spacing_seconds),
            max_retries=self.settings.max_retries,
            backoff_base_seconds=self.settings.backoff_base_seconds,
            backoff_cap_seconds=self.settings.backoff_cap_seconds,
        )
        self.responder = ModelResponder(self.gateway, timeout_seconds=self.settings.chat_timeout_seconds)

        self.ocr = OcrEngine(
            available=self.capabilities.ocr,
            min_chars=self.settings.min_ocr_chars,
            timeout_seconds=self.settings.ocr_timeout_seconds,
        )
        self.cascade = ExtractionCascade(
            self.capabilities,
            ocr_engine=self.ocr,
            preprocessor=ImagePreprocessor(enabled=self.capabilities.imaging),
            min_pdf_chars=self.settings.min_pdf_chars,
            min_ocr_chars=self.settings.min_ocr_chars,
            ocr_corrections=self.settings.ocr_corrections,
        )

        self.consultation = ConsultationService(
            self.settings,
            sessions=self.sessions,
            knowledge=self.knowledge,
            cascade=self.cascade,
            responder=self.responder,
        )


container = MedAssistApp()
app = FastAPI(title="MedAssist Backend")

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in allowed_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_TRUSTED_USER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:@-]{1,63}$")


def _validated_trusted_user_id(x_user_id: str) -> str:
    candidate = x_user_id.strip()
    if not candidate or not _TRUSTED_USER_ID_RE.fullmatch(candidate):
        raise HTTPException(status_code=400, detail="Invalid X-User-Id")
    return candidate


def get_user_id(auth_header: str | None) -> str:
    raw = (auth_header or "").replace("Bearer", "", 1).strip()
    if not raw:
        if os.getenv("ALLOW_ANON", "false").lower() == "true":
            return "demo-user"
        raise HTTPException(status_code=401, detail="Missing Authorization")
    # The bearer token is an opaque identity issued and verified upstream.
    if len(raw) > 96:
        return f"token_{hashlib.sha256(raw.encode('utf-8')).hexdigest()[:24]}"
    return raw


def resolve_user_id(authorization: str | None, x_user_id: str | None) -> str:
    if x_user_id is not None:
        return _validated_trusted_user_id(x_user_id)
    return get_user_id(authorization)


_UPLOAD_STATUS = {"unsupported_type": 415, "too_large": 413, "empty": 400}


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, SessionNotFound):
        return HTTPException(status_code=404, detail="Chat session not found.")
    if isinstance(exc, SessionStateError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, UploadRejected):
        return HTTPException(status_code=_UPLOAD_STATUS.get(exc.code, 400), detail=exc.detail)
    if isinstance(exc, UploadIOError):
        logger.error("upload I/O failure: %s", exc)
        return HTTPException(
            status_code=500,
            detail="We could not read the uploaded file. Please try uploading it again.",
        )
    return HTTPException(status_code=400, detail=str(exc))


_DOMAIN_ERRORS = (SessionNotFound, SessionStateError, MemoryPolicyError, ValueError)


async def _read_upload_bytes(upload: UploadFile, *, max_bytes: int) -> bytes:
    # One byte past the ceiling is enough to tell an oversized upload apart.
    return await upload.read(max_bytes + 1)


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "time": to_iso(utc_now()),
        "capabilities": container.capabilities.as_dict(),
        "extraction_chains": container.cascade.registry.describe(),
        "knowledge": {"entries": len(container.knowledge), "embedding_space": container.knowledge.space},
        "chat_providers": [candidate["provider"] for candidate in chat_provider_candidates()],
    }


@app.post("/chat/start")
def chat_start(
    payload: StartSessionRequest | None = None,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    try:
        return container.consultation.start_session(user_id, payload.title if payload else None)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc


@app.get("/chat/sessions")
def chat_sessions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    active: bool | None = Query(default=None),
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    try:
        return container.consultation.list_sessions(user_id, page=page, limit=limit, active=active)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc


@app.get("/chat/history/{session_id}")
def chat_history(
    session_id: str,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    try:
        return container.consultation.get_history(session_id, user_id)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc


@app.patch("/chat/end/{session_id}")
def chat_end(
    session_id: str,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    try:
        session = container.consultation.end_session(session_id, user_id)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return {"message": "Chat session ended successfully.", "session": session}


@app.delete("/chat/session/{session_id}")
def chat_delete(
    session_id: str,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    try:
        container.consultation.delete_session(session_id, user_id)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return {"message": "Chat session deleted successfully.", "session_id": session_id}


@app.post("/chat/message")
def chat_message(
    payload: MessageRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    try:
        result = container.consultation.send_message(payload.session_id, user_id, payload.message)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    result["timestamp"] = to_iso(utc_now())
    return result


@app.post("/chat/upload")
async def chat_upload(
    file: UploadFile | None = File(default=None),
    session_id: str | None = Form(default=None),
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded.")
    if not (session_id or "").strip():
        raise HTTPException(status_code=400, detail="session_id is required.")

    file_name = normalize_upload_filename(file.filename, "medical-report")
    mime_type = (file.content_type or "").lower().strip()
    content = await _read_upload_bytes(file, max_bytes=container.settings.max_upload_bytes)
    try:
        return await run_in_threadpool(
            container.consultation.upload_report,
            session_id.strip(),
            user_id,
            file_name=file_name,
            mime_type=mime_type,
            content=content,
        )
    except (UploadRejected, UploadIOError, *_DOMAIN_ERRORS) as exc:
        raise _http_error(exc) from exc


@app.post("/chat/symptom-check")
def chat_symptom_check(
    payload: SymptomCheckRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    try:
        return container.consultation.quick_symptom_check(user_id, payload.symptoms)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
