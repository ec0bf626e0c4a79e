from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class RasterizationError(Exception):
    pass


def _render_pages(pdf_path: Path, work_dir: Path, dpi: int) -> list[Path]:
    import fitz

    pages: list[Path] = []
    with fitz.open(pdf_path) as document:
        if document.needs_pass:
            raise RasterizationError("PDF is password protected")
        for index, page in enumerate(document, start=1):
            output_path = work_dir / f"page_{index:03d}_{dpi}dpi.png"
            pixmap = page.get_pixmap(dpi=dpi)
            pixmap.save(str(output_path))
            pages.append(output_path)
    return pages


def rasterize_pdf(pdf_path: Path, work_dir: Path, *, dpi: int = 300, fallback_dpi: int = 200) -> list[Path]:
    """Render every page of ``pdf_path`` to PNG files in ``work_dir``.

    Rendering at ``dpi`` is retried once at ``fallback_dpi`` when it fails.
    Encrypted documents raise ``RasterizationError`` without a retry.
    """
    try:
        return _render_pages(pdf_path, work_dir, dpi)
    except RasterizationError:
        raise
    except (RuntimeError, ValueError, OSError, MemoryError) as exc:
        if fallback_dpi >= dpi:
            raise RasterizationError(str(exc)) from exc
        logger.warning("rasterizing %s at %d DPI failed (%s), retrying at %d DPI", pdf_path.name, dpi, exc, fallback_dpi)

    for stale in work_dir.glob(f"page_*_{dpi}dpi.png"):
        stale.unlink(missing_ok=True)
    try:
        return _render_pages(pdf_path, work_dir, fallback_dpi)
    except RasterizationError:
        raise
    except (RuntimeError, ValueError, OSError, MemoryError) as exc:
        raise RasterizationError(str(exc)) from exc
