from .database import SQLiteSessionDB
from .service import GREETING_TEXT, ChatSessionManager, SessionNotFound, SessionStateError
from .session_policy_guard import MemoryPolicyError, SessionPolicyGuard
from .session_store import ChatSessionStore

__all__ = [
    "GREETING_TEXT",
    "ChatSessionManager",
    "ChatSessionStore",
    "MemoryPolicyError",
    "SQLiteSessionDB",
    "SessionNotFound",
    "SessionPolicyGuard",
    "SessionStateError",
]
