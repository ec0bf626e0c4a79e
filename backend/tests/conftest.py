from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))


@pytest.fixture
def backend_module(tmp_path, monkeypatch):
    monkeypatch.setenv("MEDASSIST_DB_PATH", str(tmp_path / "medassist-test.sqlite"))
    monkeypatch.setenv("MEDASSIST_UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("MEDASSIST_EMBEDDING_MODE", "local")
    monkeypatch.setenv("ALLOW_ANON", "false")
    # No real waiting in tests; dedicated gateway tests use a fake clock.
    monkeypatch.setenv("MEDASSIST_MIN_CALL_SPACING_SECONDS", "0")
    monkeypatch.setenv("MEDASSIST_BACKOFF_BASE_SECONDS", "0")
    monkeypatch.setenv("MEDASSIST_BACKOFF_CAP_SECONDS", "0")
    # Empty values keep a developer's local .env from enabling real providers.
    for key in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "OPENROUTER_API_KEY", "MEDASSIST_CHAT_PROVIDER"):
        monkeypatch.setenv(key, "")

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")
    return module


@pytest.fixture
def client(backend_module):
    with TestClient(backend_module.app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    def _make(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {user_id}"}

    return _make


@pytest.fixture
def session_db(tmp_path):
    from memory import SQLiteSessionDB

    return SQLiteSessionDB(str(tmp_path / "sessions.sqlite"))
