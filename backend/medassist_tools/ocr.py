from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

OCR_FAILED_TEXT = "[OCR processing failed - medical document may contain complex formatting]"

_PRINTED_MEDICAL_CHARS = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789.,:;()/%-+<>=*#&[]"
)

ProgressCallback = Callable[[str, int], None]


@dataclass(frozen=True)
class OcrProfile:
    name: str
    config: str


DENSE_TEXT = OcrProfile(
    name="dense_text",
    config=f"--oem 3 --psm 1 -c preserve_interword_spaces=1 -c tessedit_char_whitelist={_PRINTED_MEDICAL_CHARS}",
)
SINGLE_BLOCK = OcrProfile(name="single_block", config="--oem 1 --psm 6")


@dataclass(frozen=True)
class OcrResult:
    text: str
    profile: str | None = None
    error: str | None = None
    # True when the engine itself failed on some pass, as opposed to every pass reading too little.
    engine_failed: bool = False

    @property
    def ok(self) -> bool:
        return self.profile is not None


def log_progress(label: str, percent: int) -> None:
    logger.debug("OCR progress (%s): %d%%", label, percent)


def meaningful_length(text: str) -> int:
    return len((text or "").strip())


class OcrEngine:
    """pytesseract adapter trying a dense-text pass and then a single-block pass.

    The first pass whose output reaches ``min_chars`` wins. Each pass is
    bounded by ``timeout_seconds``; a timeout or engine error moves on to the
    next profile. When no pass succeeds the result carries ``OCR_FAILED_TEXT``.
    """

    def __init__(
        self,
        *,
        available: bool,
        min_chars: int = 20,
        timeout_seconds: float = 60.0,
        lang: str = "eng",
        profiles: tuple[OcrProfile, ...] = (DENSE_TEXT, SINGLE_BLOCK),
        progress: ProgressCallback | None = None,
    ) -> None:
        self.available = available
        self.min_chars = min_chars
        self.timeout_seconds = timeout_seconds
        self.lang = lang
        self.profiles = profiles
        self.progress = progress or log_progress

    def _run_pass(self, image_path: Path, profile: OcrProfile) -> str:
        import pytesseract

        return pytesseract.image_to_string(
            str(image_path),
            lang=self.lang,
            config=profile.config,
            timeout=self.timeout_seconds,
        )

    def recognize(self, image_path: Path, *, label: str = "image") -> OcrResult:
        if not self.available:
            return OcrResult(text=OCR_FAILED_TEXT, error="OCR engine is not available", engine_failed=True)

        errors: list[str] = []
        engine_failed = False
        total = len(self.profiles)
        self.progress(label, 0)
        for index, profile in enumerate(self.profiles):
            try:
                text = self._run_pass(image_path, profile)
            except (RuntimeError, OSError) as exc:
                logger.warning("OCR pass %s failed on %s: %s", profile.name, label, exc)
                errors.append(f"{profile.name}: {exc}")
                engine_failed = True
                continue
            finally:
                self.progress(label, round(100 * (index + 1) / total))

            if meaningful_length(text) >= self.min_chars:
                if index > 0:
                    logger.info("OCR alternate profile %s used for %s", profile.name, label)
                self.progress(label, 100)
                return OcrResult(text=text, profile=profile.name)
            logger.info(
                "OCR pass %s on %s yielded %d chars (< %d)",
                profile.name,
                label,
                meaningful_length(text),
                self.min_chars,
            )
            errors.append(f"{profile.name}: insufficient text")

        self.progress(label, 100)
        return OcrResult(
            text=OCR_FAILED_TEXT,
            error="; ".join(errors) or "no OCR profiles configured",
            engine_failed=engine_failed or not errors,
        )
