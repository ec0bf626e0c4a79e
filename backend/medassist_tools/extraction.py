from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .capabilities import Capabilities
from .ocr import OCR_FAILED_TEXT, OcrEngine
from .postprocess import apply_ocr_corrections, normalize_text
from .preprocessing import ImagePreprocessor
from .rasterize import rasterize_pdf
from .registry import StrategyDefinition, StrategyRegistry

logger = logging.getLogger(__name__)

PLACEHOLDER_MARKER = "[Extraction inconclusive]"
PAGE_ERROR_MARKER = "[error processing this page]"
PAGE_UNCLEAR_MARKER = "[This page appears to contain mostly images or unclear text]"

_PLACEHOLDER_INDICATORS = (
    PLACEHOLDER_MARKER,
    OCR_FAILED_TEXT,
    "PDF parsing not available",
    "No readable text found",
    "Text extraction failed",
    "Please describe the contents",
)
_NON_SIGNAL_LINES = {PAGE_ERROR_MARKER, PAGE_UNCLEAR_MARKER, OCR_FAILED_TEXT}

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tif", ".tiff", ".webp"}
_MIME_FAMILIES = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/msword": "doc",
    "text/plain": "text",
}
_EXTENSION_FAMILIES = {".pdf": "pdf", ".docx": "docx", ".doc": "doc", ".txt": "text"}


class UploadIOError(Exception):
    """The stored upload could not be read or written at all."""


@dataclass(frozen=True)
class ExtractionResult:
    text: str
    method: str
    is_placeholder: bool = False
    pages: int = 0


def file_family(file_name: str, mime_type: str) -> str | None:
    mime = (mime_type or "").strip().lower()
    if mime.startswith("image/"):
        return "image"
    if mime in _MIME_FAMILIES:
        return _MIME_FAMILIES[mime]
    extension = Path(file_name or "").suffix.lower()
    if extension in IMAGE_EXTENSIONS:
        return "image"
    return _EXTENSION_FAMILIES.get(extension)


def _signal_text(text: str) -> str:
    lines = []
    for line in (text or "").splitlines():
        stripped = line.strip()
        if not stripped or stripped in _NON_SIGNAL_LINES:
            continue
        if stripped.startswith("--- Page ") and stripped.endswith(" ---"):
            continue
        lines.append(stripped)
    return "\n".join(lines)


def _has_placeholder_indicator(text: str) -> bool:
    return any(indicator in (text or "") for indicator in _PLACEHOLDER_INDICATORS)


def has_signal(text: str, min_chars: int) -> bool:
    """True when ``text`` holds at least ``min_chars`` of real content.

    Page separators, page error markers and placeholder wording do not count.
    """
    if _has_placeholder_indicator(text):
        return False
    return len(_signal_text(text)) >= max(1, min_chars)


def is_placeholder_text(text: str) -> bool:
    stripped = (text or "").strip()
    return len(stripped) < 10 or _has_placeholder_indicator(stripped)


def build_placeholder(file_name: str, reasons: list[str]) -> str:
    reason = "; ".join(dict.fromkeys(reasons)) or "no readable text was found"
    return (
        f"{PLACEHOLDER_MARKER} {file_name}\n\n"
        f"I couldn't extract readable text from this document ({reason}).\n\n"
        "Please describe the contents manually:\n"
        "1. What type of medical report this is (blood test, X-ray, prescription, etc.)\n"
        "2. The key findings or values you'd like explained\n"
        "3. Any specific concerns or questions about the results"
    )


class _InsufficientText(Exception):
    pass


class ExtractionCascade:
    """Turns an accepted upload into text, or into a clearly marked placeholder.

    Each file family maps to an ordered chain of strategies. A strategy runs
    only when the capabilities it needs were found at startup, and its output
    is accepted when ``has_signal`` holds for that strategy's threshold. Parser
    errors, corrupt files and encrypted PDFs move on to the next strategy;
    only an unreadable stored file raises ``UploadIOError``.
    """

    def __init__(
        self,
        capabilities: Capabilities,
        *,
        ocr_engine: OcrEngine,
        preprocessor: ImagePreprocessor | None = None,
        min_pdf_chars: int = 50,
        min_ocr_chars: int = 20,
        ocr_corrections: bool = True,
        raster_dpi: int = 300,
        raster_fallback_dpi: int = 200,
    ) -> None:
        self.capabilities = capabilities
        self.ocr_engine = ocr_engine
        self.preprocessor = preprocessor or ImagePreprocessor(enabled=capabilities.imaging)
        self.min_pdf_chars = min_pdf_chars
        self.min_ocr_chars = min_ocr_chars
        self.ocr_corrections = ocr_corrections
        self.raster_dpi = raster_dpi
        self.raster_fallback_dpi = raster_fallback_dpi
        self.registry = self._build_registry()

    def _build_registry(self) -> StrategyRegistry:
        registry = StrategyRegistry()
        registry.register(StrategyDefinition(name="plain_text", handler=self._plain_text))
        registry.register(StrategyDefinition(name="docx_native", handler=self._docx_native, requires=("docx",)))
        registry.register(
            StrategyDefinition(
                name="pdf_native",
                handler=self._pdf_native,
                requires=("pdf_text",),
                min_chars=self.min_pdf_chars,
            )
        )
        registry.register(
            StrategyDefinition(
                name="pdf_ocr",
                handler=self._pdf_ocr,
                requires=("pdf_raster", "ocr"),
                min_chars=self.min_ocr_chars,
                ocr_output=True,
            )
        )
        registry.register(
            StrategyDefinition(
                name="image_ocr",
                handler=self._image_ocr,
                requires=("ocr",),
                min_chars=self.min_ocr_chars,
                ocr_output=True,
            )
        )
        registry.set_chain("text", ["plain_text"])
        registry.set_chain("docx", ["docx_native"])
        registry.set_chain("pdf", ["pdf_native", "pdf_ocr"])
        registry.set_chain("image", ["image_ocr"])
        registry.add_alias("doc", "docx")
        return registry

    def extract(self, path: Path, *, file_name: str | None = None, mime_type: str = "") -> ExtractionResult:
        display_name = file_name or path.name
        self._ensure_readable(path)

        family = file_family(display_name, mime_type)
        if family is None:
            return ExtractionResult(
                text=build_placeholder(display_name, ["this file type is not supported"]),
                method="placeholder",
                is_placeholder=True,
            )

        reasons: list[str] = []
        for strategy in self.registry.chain_for(family):
            missing = [name for name in strategy.requires if not self.capabilities.has(name)]
            if missing:
                logger.info("strategy %s skipped for %s, unavailable: %s", strategy.name, display_name, missing)
                reasons.append(_missing_reason(strategy.name))
                continue
            try:
                raw_text = strategy.handler(path)
            except _InsufficientText as exc:
                reasons.append(str(exc))
                continue
            except Exception as exc:
                logger.warning("strategy %s failed for %s: %s", strategy.name, display_name, exc)
                reasons.append(_failure_reason(strategy.name))
                continue

            text = apply_ocr_corrections(raw_text) if strategy.ocr_output and self.ocr_corrections else raw_text
            text = normalize_text(text)
            if has_signal(text, strategy.min_chars):
                logger.info("extracted %d chars from %s via %s", len(text), display_name, strategy.name)
                return ExtractionResult(
                    text=text,
                    method=strategy.name,
                    pages=max(1, text.count("--- Page ")) if strategy.name == "pdf_ocr" else 0,
                )
            logger.info(
                "strategy %s produced too little text for %s (%d chars), escalating",
                strategy.name,
                display_name,
                len(_signal_text(text)),
            )
            reasons.append("too little readable text was found")

        return ExtractionResult(
            text=build_placeholder(display_name, reasons),
            method="placeholder",
            is_placeholder=True,
        )

    def _ensure_readable(self, path: Path) -> None:
        try:
            with path.open("rb") as handle:
                handle.read(1)
        except OSError as exc:
            raise UploadIOError(f"Uploaded file could not be read: {exc}") from exc

    def _plain_text(self, path: Path) -> str:
        return path.read_bytes().decode("utf-8", errors="replace")

    def _docx_native(self, path: Path) -> str:
        import docx

        document = docx.Document(str(path))
        parts = [paragraph.text for paragraph in document.paragraphs if paragraph.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    parts.append(" | ".join(cells))
        return "\n".join(parts)

    def _pdf_native(self, path: Path) -> str:
        from pypdf import PdfReader

        reader = PdfReader(str(path))
        if reader.is_encrypted and not reader.decrypt(""):
            raise _InsufficientText("the PDF is password protected")
        return "\n\n".join((page.extract_text() or "") for page in reader.pages)

    def _image_ocr(self, path: Path) -> str:
        with tempfile.TemporaryDirectory(prefix="medassist-ocr-") as work_dir:
            prepared = self.preprocessor.process(path, Path(work_dir))
            result = self.ocr_engine.recognize(prepared, label=path.name)
        if not result.ok:
            raise _InsufficientText("OCR could not read text from the image")
        return result.text

    def _pdf_ocr(self, path: Path) -> str:
        with tempfile.TemporaryDirectory(prefix="medassist-ocr-") as work_dir:
            work_path = Path(work_dir)
            page_images = rasterize_pdf(
                path,
                work_path,
                dpi=self.raster_dpi,
                fallback_dpi=self.raster_fallback_dpi,
            )
            if not page_images:
                raise _InsufficientText("the PDF has no pages")
            segments: list[str] = []
            total = len(page_images)
            for number, page_image in enumerate(page_images, start=1):
                segments.append(f"--- Page {number} ---\n{self._ocr_page(page_image, work_path, number)}")
                self.ocr_engine.progress(path.name, round(100 * number / total))
        return "\n\n".join(segments)

    def _ocr_page(self, page_image: Path, work_dir: Path, number: int) -> str:
        try:
            prepared = self.preprocessor.process(page_image, work_dir)
            result = self.ocr_engine.recognize(prepared, label=f"page {number}")
        except Exception as exc:
            logger.warning("OCR failed on page %d: %s", number, exc)
            return PAGE_ERROR_MARKER
        if result.ok:
            return result.text
        if result.engine_failed:
            return PAGE_ERROR_MARKER
        return PAGE_UNCLEAR_MARKER


def _missing_reason(strategy_name: str) -> str:
    if strategy_name in {"pdf_ocr", "image_ocr"}:
        return "OCR is not available on this server"
    if strategy_name == "pdf_native":
        return "PDF parsing is not available on this server"
    return "no parser for this format is available on this server"


def _failure_reason(strategy_name: str) -> str:
    if strategy_name == "docx_native":
        return "the document could not be parsed, legacy .doc files are not supported"
    if strategy_name == "pdf_native":
        return "the PDF could not be parsed"
    return "text recognition failed"
