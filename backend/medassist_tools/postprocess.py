"""Text clean-up applied to every extraction result.

``apply_ocr_corrections`` is a best-effort pass over OCR output only. The
substitutions are regex heuristics for common character confusions in
printed lab reports; they can introduce errors in text that happens to match
the patterns, so they never run on natively extracted text and can be
switched off with ``MEDASSIST_OCR_CORRECTIONS=false``.
"""

from __future__ import annotations

import re

_HORIZONTAL_WS_RE = re.compile(r"[ \t\f\v\u00a0]+")
_EXCESS_BLANK_LINES_RE = re.compile(r"\n{3,}")

_OCR_CORRECTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    # units first, a trailing lower-case l in mmol/l must not become I
    (re.compile(r"(\d+(?:\.\d+)?)\s*mg\s*/\s*dl\b", re.IGNORECASE), r"\1 mg/dL"),
    (re.compile(r"(\d+(?:\.\d+)?)\s*g\s*/\s*dl\b", re.IGNORECASE), r"\1 g/dL"),
    (re.compile(r"(\d+(?:\.\d+)?)\s*mmol\s*/\s*l\b", re.IGNORECASE), r"\1 mmol/L"),
    (re.compile(r"(\d+(?:\.\d+)?)\s*u\s*/\s*l\b", re.IGNORECASE), r"\1 U/L"),
    # lone lower-case l read for a capital I
    (re.compile(r"\bl\b"), "I"),
    # zero at the start of a word read for O
    (re.compile(r"\b0(?=[A-Za-z])"), "O"),
    # one at the start of a word read for I
    (re.compile(r"\b1(?=[A-Za-z]{2,})"), "I"),
)


def normalize_text(text: str) -> str:
    if not text:
        return ""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [_HORIZONTAL_WS_RE.sub(" ", line).strip() for line in normalized.split("\n")]
    normalized = "\n".join(lines)
    normalized = _EXCESS_BLANK_LINES_RE.sub("\n\n", normalized)
    return normalized.strip()


def apply_ocr_corrections(text: str) -> str:
    corrected = text or ""
    for pattern, replacement in _OCR_CORRECTIONS:
        corrected = pattern.sub(replacement, corrected)
    return corrected
