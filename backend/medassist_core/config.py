from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_BACKEND_DIR = Path(__file__).resolve().parents[1]


def _env_str(key: str, default: str) -> str:
    value = (os.getenv(key) or "").strip()
    return value or default


def _env_int(key: str, default: int) -> int:
    try:
        return int(_env_str(key, str(default)))
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(_env_str(key, str(default)))
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    raw = (os.getenv(key) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    db_path: str
    upload_dir: str
    max_upload_bytes: int = 15 * 1024 * 1024
    min_pdf_chars: int = 50
    min_ocr_chars: int = 20
    ocr_timeout_seconds: float = 60.0
    ocr_corrections: bool = True
    relevance_floor: float = 0.6
    retrieval_limit: int = 3
    embedding_mode: str = "local"
    embedding_dimension: int = 1536
    embedding_model: str = "text-embedding-3-small"
    min_call_spacing_seconds: float = 2.0
    max_retries: int = 2
    backoff_base_seconds: float = 5.0
    backoff_cap_seconds: float = 30.0
    chat_timeout_seconds: float = 25.0
    history_window: int = 8
    report_context_chars: int = 1000
    emergency_number: str = "999"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=_env_str("MEDASSIST_DB_PATH", str(_BACKEND_DIR / "medassist.sqlite")),
            upload_dir=_env_str("MEDASSIST_UPLOAD_DIR", str(_BACKEND_DIR / "uploads" / "medical-reports")),
            max_upload_bytes=_env_int("MEDASSIST_MAX_UPLOAD_BYTES", 15 * 1024 * 1024),
            min_pdf_chars=_env_int("MEDASSIST_MIN_PDF_CHARS", 50),
            min_ocr_chars=_env_int("MEDASSIST_MIN_OCR_CHARS", 20),
            ocr_timeout_seconds=_env_float("MEDASSIST_OCR_TIMEOUT_SECONDS", 60.0),
            ocr_corrections=_env_bool("MEDASSIST_OCR_CORRECTIONS", True),
            relevance_floor=_env_float("MEDASSIST_RELEVANCE_FLOOR", 0.6),
            retrieval_limit=_env_int("MEDASSIST_RETRIEVAL_LIMIT", 3),
            embedding_mode=_env_str("MEDASSIST_EMBEDDING_MODE", "local").lower(),
            embedding_model=_env_str("MEDASSIST_EMBEDDING_MODEL", "text-embedding-3-small"),
            min_call_spacing_seconds=_env_float("MEDASSIST_MIN_CALL_SPACING_SECONDS", 2.0),
            max_retries=_env_int("MEDASSIST_MAX_RETRIES", 2),
            backoff_base_seconds=_env_float("MEDASSIST_BACKOFF_BASE_SECONDS", 5.0),
            backoff_cap_seconds=_env_float("MEDASSIST_BACKOFF_CAP_SECONDS", 30.0),
            chat_timeout_seconds=_env_float("MEDASSIST_CHAT_TIMEOUT_SECONDS", 25.0),
            emergency_number=_env_str("MEDASSIST_EMERGENCY_NUMBER", "999"),
        )
