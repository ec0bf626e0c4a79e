from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class SQLiteSessionDB:
    def __init__(self, db_path: str) -> None:
        self._path = Path(db_path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    @property
    def path(self) -> str:
        return str(self._path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self.connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS chat_sessions (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  title TEXT NOT NULL,
                  status TEXT NOT NULL DEFAULT 'active',
                  created_at TEXT NOT NULL,
                  last_activity TEXT NOT NULL,
                  ended_at TEXT
                );

                CREATE TABLE IF NOT EXISTS chat_messages (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  id TEXT UNIQUE NOT NULL,
                  session_id TEXT NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
                  role TEXT NOT NULL,
                  content TEXT NOT NULL,
                  message_kind TEXT NOT NULL DEFAULT 'text',
                  created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS uploaded_reports (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  id TEXT UNIQUE NOT NULL,
                  session_id TEXT NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
                  original_name TEXT NOT NULL,
                  stored_path TEXT NOT NULL,
                  file_size INTEGER NOT NULL,
                  mime_type TEXT NOT NULL,
                  extracted_text TEXT,
                  extraction_method TEXT,
                  is_placeholder INTEGER NOT NULL DEFAULT 0,
                  status TEXT NOT NULL DEFAULT 'pending',
                  uploaded_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_chat_sessions_user_created
                  ON chat_sessions(user_id, created_at DESC);
                CREATE INDEX IF NOT EXISTS idx_chat_sessions_user_status
                  ON chat_sessions(user_id, status);
                CREATE INDEX IF NOT EXISTS idx_chat_messages_session_seq
                  ON chat_messages(session_id, seq);
                CREATE INDEX IF NOT EXISTS idx_uploaded_reports_session_seq
                  ON uploaded_reports(session_id, seq);
                """
            )
