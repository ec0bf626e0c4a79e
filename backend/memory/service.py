from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any

from .database import SQLiteSessionDB
from .session_policy_guard import SessionPolicyGuard
from .session_store import ChatSessionStore
from .time_utils import utc_now

logger = logging.getLogger(__name__)

GREETING_TEXT = (
    "Hello! I'm your medical AI assistant. I can help you understand symptoms, analyze medical reports, "
    "and provide health information. How can I assist you today?"
)


class SessionNotFound(Exception):
    pass


class SessionStateError(Exception):
    pass


class ChatSessionManager:
    """Lifecycle of consultation sessions: ``active`` until ended, then read-only."""

    _TRANSITIONS = {
        "active": {"ended"},
        "ended": set(),
    }
    _REPORT_TRANSITIONS = {
        "pending": {"processing", "failed"},
        "processing": {"completed", "failed"},
        "completed": set(),
        "failed": set(),
    }

    def __init__(self, db: SQLiteSessionDB) -> None:
        self.db = db
        self.guard = SessionPolicyGuard()
        self.store = ChatSessionStore(db)

    def _require(self, session_id: str, owner_id: str) -> dict[str, Any]:
        self.guard.ensure_owner(owner_id)
        self.guard.ensure_session_id(session_id)
        session = self.store.get_session(session_id=session_id, user_id=owner_id)
        if session is None:
            raise SessionNotFound("Chat session not found.")
        return session

    def require_active(self, session_id: str, owner_id: str) -> dict[str, Any]:
        session = self._require(session_id, owner_id)
        if session["status"] != "active":
            raise SessionStateError("Chat session has ended and no longer accepts changes.")
        return session

    def start(self, owner_id: str, title: str | None = None) -> dict[str, Any]:
        self.guard.ensure_owner(owner_id)
        session_title = (title or "").strip() or f"Medical Consultation - {utc_now().strftime('%Y-%m-%d')}"
        session = self.store.create_session(user_id=owner_id, title=session_title[:200])
        greeting = self.store.append_message(
            session_id=session["session_id"],
            role="assistant",
            content=GREETING_TEXT,
            message_kind="text",
        )
        session["messages"] = [greeting]
        return session

    def get(self, session_id: str, owner_id: str) -> dict[str, Any]:
        return self._require(session_id, owner_id)

    def append_message(
        self,
        session_id: str,
        owner_id: str,
        *,
        role: str,
        content: str,
        message_kind: str = "text",
    ) -> dict[str, Any]:
        self.require_active(session_id, owner_id)
        cleaned = self.guard.ensure_message(role, content, message_kind)
        return self.store.append_message(
            session_id=session_id,
            role=role,
            content=cleaned,
            message_kind=message_kind,
        )

    def attach_report(
        self,
        session_id: str,
        owner_id: str,
        *,
        original_name: str,
        stored_path: str,
        file_size: int,
        mime_type: str,
    ) -> dict[str, Any]:
        self.require_active(session_id, owner_id)
        return self.store.create_report(
            session_id=session_id,
            original_name=original_name,
            stored_path=stored_path,
            file_size=file_size,
            mime_type=mime_type,
        )

    def update_report_status(
        self,
        session_id: str,
        owner_id: str,
        report_id: str,
        status: str,
        *,
        extracted_text: str | None = None,
        extraction_method: str | None = None,
        is_placeholder: bool | None = None,
    ) -> dict[str, Any]:
        self._require(session_id, owner_id)
        report = self.store.get_report(session_id=session_id, report_id=report_id)
        if report is None:
            raise SessionNotFound("Report not found.")
        allowed = self._REPORT_TRANSITIONS.get(report["status"], set())
        if status not in allowed:
            raise SessionStateError(f"Invalid report transition: {report['status']} -> {status}")
        return self.store.update_report(
            session_id=session_id,
            report_id=report_id,
            status=status,
            extracted_text=extracted_text,
            extraction_method=extraction_method,
            is_placeholder=is_placeholder,
        )

    def end(self, session_id: str, owner_id: str) -> dict[str, Any]:
        session = self._require(session_id, owner_id)
        if "ended" not in self._TRANSITIONS[session["status"]]:
            raise SessionStateError("Chat session has already ended.")
        updated = self.store.set_status(session_id=session_id, user_id=owner_id, status="ended")
        if updated is None:
            raise SessionNotFound("Chat session not found.")
        return updated

    def delete(self, session_id: str, owner_id: str) -> dict[str, Any]:
        self.guard.ensure_owner(owner_id)
        self.guard.ensure_session_id(session_id)
        deleted = self.store.delete_session(session_id=session_id, user_id=owner_id)
        if deleted is None:
            raise SessionNotFound("Chat session not found.")
        for stored_path in deleted.pop("stored_paths", []):
            try:
                Path(stored_path).unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("could not remove stored report %s: %s", stored_path, exc)
        return deleted

    def history(self, session_id: str, owner_id: str) -> dict[str, Any]:
        session = self._require(session_id, owner_id)
        session["messages"] = self.store.get_messages(session_id=session_id)
        session["reports"] = [
            {
                "report_id": report["report_id"],
                "file_name": report["original_name"],
                "file_size": report["file_size"],
                "mime_type": report["mime_type"],
                "status": report["status"],
                "is_placeholder": report["is_placeholder"],
                "extracted_text_length": len(report["extracted_text"] or ""),
                "uploaded_at": report["uploaded_at"],
            }
            for report in self.store.get_reports(session_id=session_id)
        ]
        return session

    def recent_messages(self, session_id: str, owner_id: str, limit: int) -> list[dict[str, Any]]:
        self._require(session_id, owner_id)
        return self.store.get_messages(session_id=session_id, limit=limit)

    def latest_report_text(self, session_id: str, owner_id: str) -> str | None:
        self._require(session_id, owner_id)
        for report in reversed(self.store.get_reports(session_id=session_id)):
            if report["status"] == "completed" and not report["is_placeholder"] and report["extracted_text"]:
                return report["extracted_text"]
        return None

    def list_sessions(
        self,
        owner_id: str,
        *,
        page: int = 1,
        limit: int = 10,
        active: bool | None = None,
    ) -> dict[str, Any]:
        self.guard.ensure_owner(owner_id)
        page = max(1, int(page))
        limit = max(1, min(100, int(limit)))
        items, total = self.store.list_sessions(
            user_id=owner_id,
            active=active,
            limit=limit,
            offset=(page - 1) * limit,
        )
        for item in items:
            last = item.pop("last_message", None)
            if not last:
                item["last_message_preview"] = "No messages"
            elif len(last) > 100:
                item["last_message_preview"] = last[:100] + "..."
            else:
                item["last_message_preview"] = last
        total_pages = math.ceil(total / limit) if total else 0
        return {
            "sessions": items,
            "pagination": {
                "current_page": page,
                "total_pages": total_pages,
                "total_sessions": total,
                "has_next": page < total_pages,
                "has_prev": page > 1,
            },
        }
