from __future__ import annotations

import importlib
import logging
from dataclasses import asdict, dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capabilities:
    """Which optional parsers and engines this process can use.

    Probed once when the app container is built; strategies read the record
    instead of importing libraries to find out.
    """

    pdf_text: bool = False
    docx: bool = False
    pdf_raster: bool = False
    imaging: bool = False
    ocr: bool = False
    tesseract_version: str | None = None

    def has(self, name: str) -> bool:
        return bool(getattr(self, name, False))

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _module_available(module_name: str) -> bool:
    try:
        importlib.import_module(module_name)
    except ImportError:
        logger.warning("optional dependency %s is not installed", module_name)
        return False
    return True


def _tesseract_version() -> str | None:
    if not _module_available("pytesseract"):
        return None
    import pytesseract

    try:
        return str(pytesseract.get_tesseract_version())
    except (pytesseract.TesseractNotFoundError, OSError, RuntimeError) as exc:
        logger.warning("tesseract binary unavailable: %s", exc)
        return None


def probe_capabilities() -> Capabilities:
    tesseract_version = _tesseract_version()
    capabilities = Capabilities(
        pdf_text=_module_available("pypdf"),
        docx=_module_available("docx"),
        pdf_raster=_module_available("fitz"),
        imaging=_module_available("PIL.Image"),
        ocr=tesseract_version is not None,
        tesseract_version=tesseract_version,
    )
    logger.info("extraction capabilities: %s", capabilities.as_dict())
    return capabilities
