from __future__ import annotations

import sqlite3
import uuid
from typing import Any

from .database import SQLiteSessionDB
from .time_utils import to_iso, utc_now


def _session_row(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "session_id": row["id"],
        "owner_id": row["user_id"],
        "title": row["title"],
        "status": row["status"],
        "is_active": row["status"] == "active",
        "created_at": row["created_at"],
        "last_activity": row["last_activity"],
        "ended_at": row["ended_at"],
    }


def _message_row(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "message_id": row["id"],
        "role": row["role"],
        "content": row["content"],
        "message_kind": row["message_kind"],
        "created_at": row["created_at"],
    }


def _report_row(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "report_id": row["id"],
        "original_name": row["original_name"],
        "stored_path": row["stored_path"],
        "file_size": row["file_size"],
        "mime_type": row["mime_type"],
        "extracted_text": row["extracted_text"],
        "extraction_method": row["extraction_method"],
        "is_placeholder": bool(row["is_placeholder"]),
        "status": row["status"],
        "uploaded_at": row["uploaded_at"],
        "updated_at": row["updated_at"],
    }


class ChatSessionStore:
    """Row-level persistence for sessions, messages and reports.

    Every read and write is scoped by ``user_id`` so a foreign session id
    behaves exactly like a missing one.
    """

    def __init__(self, db: SQLiteSessionDB) -> None:
        self._db = db

    def create_session(self, *, user_id: str, title: str) -> dict[str, Any]:
        now = to_iso(utc_now())
        session_id = uuid.uuid4().hex
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO chat_sessions (id, user_id, title, status, created_at, last_activity, ended_at)
                VALUES (?, ?, ?, 'active', ?, ?, NULL)
                """,
                (session_id, user_id, title, now, now),
            )
            row = conn.execute("SELECT * FROM chat_sessions WHERE id = ?", (session_id,)).fetchone()
        return _session_row(row)

    def get_session(self, *, session_id: str, user_id: str) -> dict[str, Any] | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM chat_sessions WHERE id = ? AND user_id = ?",
                (session_id, user_id),
            ).fetchone()
        return _session_row(row) if row else None

    def set_status(self, *, session_id: str, user_id: str, status: str) -> dict[str, Any] | None:
        now = to_iso(utc_now())
        ended_at = now if status == "ended" else None
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE chat_sessions
                SET status = ?, ended_at = COALESCE(?, ended_at), last_activity = ?
                WHERE id = ? AND user_id = ?
                """,
                (status, ended_at, now, session_id, user_id),
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM chat_sessions WHERE id = ?", (session_id,)).fetchone()
        return _session_row(row)

    def delete_session(self, *, session_id: str, user_id: str) -> dict[str, Any] | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM chat_sessions WHERE id = ? AND user_id = ?",
                (session_id, user_id),
            ).fetchone()
            if not row:
                return None
            stored_paths = [
                report["stored_path"]
                for report in conn.execute(
                    "SELECT stored_path FROM uploaded_reports WHERE session_id = ?",
                    (session_id,),
                ).fetchall()
            ]
            conn.execute("DELETE FROM chat_sessions WHERE id = ? AND user_id = ?", (session_id, user_id))
        deleted = _session_row(row)
        deleted["stored_paths"] = stored_paths
        return deleted

    def list_sessions(
        self,
        *,
        user_id: str,
        active: bool | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        params: list[Any] = [user_id]
        where = "WHERE s.user_id = ?"
        if active is not None:
            where += " AND s.status = ?"
            params.append("active" if active else "ended")

        with self._db.connection() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) AS count FROM chat_sessions s {where}",
                tuple(params),
            ).fetchone()["count"]
            rows = conn.execute(
                f"""
                SELECT s.*,
                  (SELECT COUNT(*) FROM chat_messages m WHERE m.session_id = s.id) AS message_count,
                  (SELECT COUNT(*) FROM uploaded_reports r WHERE r.session_id = s.id) AS report_count,
                  (SELECT m.content FROM chat_messages m WHERE m.session_id = s.id
                   ORDER BY m.seq DESC LIMIT 1) AS last_message
                FROM chat_sessions s
                {where}
                ORDER BY s.last_activity DESC, s.created_at DESC
                LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            ).fetchall()

        items: list[dict[str, Any]] = []
        for row in rows:
            item = _session_row(row)
            item["message_count"] = row["message_count"]
            item["report_count"] = row["report_count"]
            item["last_message"] = row["last_message"]
            items.append(item)
        return items, int(total)

    def append_message(
        self,
        *,
        session_id: str,
        role: str,
        content: str,
        message_kind: str,
    ) -> dict[str, Any]:
        now = to_iso(utc_now())
        message_id = uuid.uuid4().hex
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO chat_messages (id, session_id, role, content, message_kind, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (message_id, session_id, role, content, message_kind, now),
            )
            conn.execute("UPDATE chat_sessions SET last_activity = ? WHERE id = ?", (now, session_id))
            row = conn.execute("SELECT * FROM chat_messages WHERE id = ?", (message_id,)).fetchone()
        return _message_row(row)

    def get_messages(self, *, session_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        with self._db.connection() as conn:
            if limit is None:
                rows = conn.execute(
                    "SELECT * FROM chat_messages WHERE session_id = ? ORDER BY seq ASC",
                    (session_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM (
                      SELECT * FROM chat_messages WHERE session_id = ? ORDER BY seq DESC LIMIT ?
                    ) ORDER BY seq ASC
                    """,
                    (session_id, max(1, limit)),
                ).fetchall()
        return [_message_row(row) for row in rows]

    def create_report(
        self,
        *,
        session_id: str,
        original_name: str,
        stored_path: str,
        file_size: int,
        mime_type: str,
    ) -> dict[str, Any]:
        now = to_iso(utc_now())
        report_id = f"rpt_{uuid.uuid4().hex}"
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO uploaded_reports (
                  id, session_id, original_name, stored_path, file_size, mime_type,
                  extracted_text, extraction_method, is_placeholder, status, uploaded_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, NULL, NULL, 0, 'pending', ?, ?)
                """,
                (report_id, session_id, original_name, stored_path, file_size, mime_type, now, now),
            )
            conn.execute("UPDATE chat_sessions SET last_activity = ? WHERE id = ?", (now, session_id))
            row = conn.execute("SELECT * FROM uploaded_reports WHERE id = ?", (report_id,)).fetchone()
        return _report_row(row)

    def get_report(self, *, session_id: str, report_id: str) -> dict[str, Any] | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM uploaded_reports WHERE id = ? AND session_id = ?",
                (report_id, session_id),
            ).fetchone()
        return _report_row(row) if row else None

    def update_report(
        self,
        *,
        session_id: str,
        report_id: str,
        status: str,
        extracted_text: str | None = None,
        extraction_method: str | None = None,
        is_placeholder: bool | None = None,
    ) -> dict[str, Any]:
        now = to_iso(utc_now())
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE uploaded_reports
                SET status = ?,
                    extracted_text = COALESCE(?, extracted_text),
                    extraction_method = COALESCE(?, extraction_method),
                    is_placeholder = COALESCE(?, is_placeholder),
                    updated_at = ?
                WHERE id = ? AND session_id = ?
                """,
                (
                    status,
                    extracted_text,
                    extraction_method,
                    None if is_placeholder is None else int(is_placeholder),
                    now,
                    report_id,
                    session_id,
                ),
            )
            if cursor.rowcount == 0:
                raise ValueError("Report record not found for session scope.")
            conn.execute("UPDATE chat_sessions SET last_activity = ? WHERE id = ?", (now, session_id))
            row = conn.execute("SELECT * FROM uploaded_reports WHERE id = ?", (report_id,)).fetchone()
        return _report_row(row)

    def get_reports(self, *, session_id: str) -> list[dict[str, Any]]:
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM uploaded_reports WHERE session_id = ? ORDER BY seq ASC",
                (session_id,),
            ).fetchall()
        return [_report_row(row) for row in rows]
