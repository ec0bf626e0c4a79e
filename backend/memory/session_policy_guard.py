from __future__ import annotations

import re


class MemoryPolicyError(Exception):
    pass


class SessionPolicyGuard:
    _SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
    MAX_MESSAGE_CHARS = 8000

    _ALLOWED_ROLES = {"user", "assistant", "system"}
    _ALLOWED_KINDS = {"text", "file_analysis", "symptom_check", "emergency_alert"}

    def ensure_owner(self, owner_id: str) -> None:
        if not owner_id or len(owner_id) > 128:
            raise MemoryPolicyError("Invalid caller identity.")

    def ensure_session_id(self, session_id: str) -> None:
        if not session_id or not self._SESSION_ID_RE.fullmatch(session_id):
            raise MemoryPolicyError("Invalid session id.")

    def ensure_message(self, role: str, content: str, message_kind: str) -> str:
        if role not in self._ALLOWED_ROLES:
            raise MemoryPolicyError(f"Unsupported message role: {role}")
        if message_kind not in self._ALLOWED_KINDS:
            raise MemoryPolicyError(f"Unsupported message kind: {message_kind}")
        cleaned = (content or "").strip()
        if not cleaned:
            raise MemoryPolicyError("Message content is required.")
        if role == "user" and len(cleaned) > self.MAX_MESSAGE_CHARS:
            raise MemoryPolicyError(f"Message exceeds {self.MAX_MESSAGE_CHARS} characters.")
        return cleaned
