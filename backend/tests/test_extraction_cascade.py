from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

from medassist_tools import (
    Capabilities,
    ExtractionCascade,
    ImagePreprocessor,
    OcrEngine,
    UploadIOError,
    has_signal,
    is_placeholder_text,
)
from medassist_tools.extraction import PAGE_ERROR_MARKER, PAGE_UNCLEAR_MARKER, PLACEHOLDER_MARKER, file_family
from medassist_tools.ocr import OCR_FAILED_TEXT
from medassist_tools.postprocess import apply_ocr_corrections, normalize_text
from medassist_tools.rasterize import RasterizationError


class ScriptedOcrEngine(OcrEngine):
    """Answers OCR passes from a table keyed by (file name, profile name)."""

    def __init__(self, script: dict[tuple[str, str], str | Exception], **kwargs) -> None:
        super().__init__(available=True, **kwargs)
        self.script = script
        self.calls: list[tuple[str, str]] = []

    def _run_pass(self, image_path: Path, profile) -> str:
        key = (Path(image_path).name, profile.name)
        self.calls.append(key)
        outcome = self.script.get(key, "")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakePdfReader:
    pages_text: list[str] = []
    encrypted = False

    def __init__(self, path: str) -> None:
        self.path = path
        self.is_encrypted = self.encrypted
        self.pages = [SimpleNamespace(extract_text=lambda text=text: text) for text in self.pages_text]

    def decrypt(self, password: str) -> int:
        return 0


def _fake_pypdf(monkeypatch, pages_text: list[str], *, encrypted: bool = False) -> None:
    reader = type("Reader", (FakePdfReader,), {"pages_text": pages_text, "encrypted": encrypted})
    monkeypatch.setitem(sys.modules, "pypdf", SimpleNamespace(PdfReader=reader))


def _cascade(capabilities: Capabilities, engine: OcrEngine | None = None, **kwargs) -> ExtractionCascade:
    return ExtractionCascade(
        capabilities,
        ocr_engine=engine or ScriptedOcrEngine({}),
        preprocessor=ImagePreprocessor(enabled=False),
        **kwargs,
    )


def test_plain_text_is_kept_without_ocr_corrections(tmp_path):
    path = tmp_path / "report.txt"
    path.write_text("Hemoglobin 9.2 g/dL, low\nl 0ptional note", encoding="utf-8")
    result = _cascade(Capabilities()).extract(path, file_name="report.txt", mime_type="text/plain")
    assert result.method == "plain_text"
    assert not result.is_placeholder
    assert result.text == "Hemoglobin 9.2 g/dL, low\nl 0ptional note"


def test_docx_paragraphs_and_tables_are_extracted(tmp_path):
    docx = pytest.importorskip("docx")
    document = docx.Document()
    document.add_paragraph("Lipid panel results")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "LDL"
    table.rows[0].cells[1].text = "162 mg/dL"
    path = tmp_path / "lipids.docx"
    document.save(str(path))

    result = _cascade(Capabilities(docx=True)).extract(path, file_name="lipids.docx")
    assert result.method == "docx_native"
    assert "Lipid panel results" in result.text
    assert "LDL | 162 mg/dL" in result.text


def test_corrupt_docx_becomes_placeholder(tmp_path):
    pytest.importorskip("docx")
    path = tmp_path / "broken.docx"
    path.write_bytes(b"not a zip archive")
    result = _cascade(Capabilities(docx=True)).extract(path, file_name="broken.docx")
    assert result.is_placeholder
    assert result.method == "placeholder"
    assert result.text.startswith(f"{PLACEHOLDER_MARKER} broken.docx")


def test_pdf_with_native_text_uses_pdf_native(tmp_path, monkeypatch):
    _fake_pypdf(monkeypatch, ["Complete blood count", "Hemoglobin 13.5 g/dL within reference range"])
    path = tmp_path / "cbc.pdf"
    path.write_bytes(b"%PDF-1.4")
    result = _cascade(Capabilities(pdf_text=True)).extract(path, file_name="cbc.pdf", mime_type="application/pdf")
    assert result.method == "pdf_native"
    assert "Hemoglobin 13.5 g/dL" in result.text


def test_scanned_pdf_escalates_to_page_ocr(tmp_path, monkeypatch):
    _fake_pypdf(monkeypatch, ["", "  "])
    seen_dirs: list[Path] = []

    def fake_rasterize(pdf_path, work_dir, *, dpi, fallback_dpi):
        seen_dirs.append(work_dir)
        pages = []
        for index in (1, 2):
            page = work_dir / f"page_{index:03d}_{dpi}dpi.png"
            page.write_bytes(b"png")
            pages.append(page)
        return pages

    monkeypatch.setattr("medassist_tools.extraction.rasterize_pdf", fake_rasterize)
    engine = ScriptedOcrEngine(
        {
            ("page_001_300dpi.png", "dense_text"): "Glucose 105 mg / dl fasting sample",
            ("page_002_300dpi.png", "dense_text"): RuntimeError("Tesseract process timeout"),
            ("page_002_300dpi.png", "single_block"): RuntimeError("Tesseract process timeout"),
        }
    )
    path = tmp_path / "scan.pdf"
    path.write_bytes(b"%PDF-1.4")

    result = _cascade(Capabilities(pdf_text=True, pdf_raster=True, ocr=True), engine).extract(
        path, file_name="scan.pdf", mime_type="application/pdf"
    )

    assert result.method == "pdf_ocr"
    assert result.pages == 2
    assert "--- Page 1 ---\nGlucose 105 mg/dL fasting sample" in result.text
    assert f"--- Page 2 ---\n{PAGE_ERROR_MARKER}" in result.text
    assert seen_dirs and not seen_dirs[0].exists()


def test_encrypted_pdf_becomes_placeholder(tmp_path, monkeypatch):
    _fake_pypdf(monkeypatch, ["secret"], encrypted=True)

    def locked(pdf_path, work_dir, *, dpi, fallback_dpi):
        raise RasterizationError("PDF is password protected")

    monkeypatch.setattr("medassist_tools.extraction.rasterize_pdf", locked)
    path = tmp_path / "locked.pdf"
    path.write_bytes(b"%PDF-1.4")
    result = _cascade(Capabilities(pdf_text=True, pdf_raster=True, ocr=True)).extract(path, file_name="locked.pdf")
    assert result.is_placeholder
    assert "password protected" in result.text


def test_image_without_ocr_capability_names_the_file(tmp_path):
    path = tmp_path / "xray.png"
    path.write_bytes(b"\x89PNG")
    result = _cascade(Capabilities(imaging=True)).extract(path, file_name="xray.png", mime_type="image/png")
    assert result.is_placeholder
    assert "xray.png" in result.text
    assert "OCR is not available" in result.text


def test_image_ocr_applies_corrections_to_ocr_output(tmp_path):
    path = tmp_path / "lab.png"
    path.write_bytes(b"\x89PNG")
    engine = ScriptedOcrEngine({("lab.png", "dense_text"): "Cholesterol 190 mg / DL  l  recommend 0ral fluids"})
    result = _cascade(Capabilities(ocr=True), engine).extract(path, file_name="lab.png", mime_type="image/png")
    assert result.method == "image_ocr"
    assert "190 mg/dL" in result.text
    assert "I recommend Oral fluids" in result.text


def test_ocr_corrections_can_be_switched_off(tmp_path):
    path = tmp_path / "lab.png"
    path.write_bytes(b"\x89PNG")
    engine = ScriptedOcrEngine({("lab.png", "dense_text"): "Cholesterol 190 mg / DL and 0ral fluids"})
    result = _cascade(Capabilities(ocr=True), engine, ocr_corrections=False).extract(path, file_name="lab.png")
    assert "0ral" in result.text


def test_missing_stored_file_raises_upload_io_error(tmp_path):
    with pytest.raises(UploadIOError):
        _cascade(Capabilities()).extract(tmp_path / "gone.txt", file_name="gone.txt")


def test_unknown_family_is_placeholder(tmp_path):
    path = tmp_path / "data.bin"
    path.write_bytes(b"\x00\x01")
    result = _cascade(Capabilities()).extract(path, file_name="data.bin", mime_type="application/octet-stream")
    assert result.is_placeholder


def test_file_family_prefers_mime_then_extension():
    assert file_family("scan.bin", "image/jpeg") == "image"
    assert file_family("report.PDF", "") == "pdf"
    assert file_family("old.doc", "application/msword") == "doc"
    assert file_family("notes.txt", "application/octet-stream") == "text"


def test_ocr_engine_uses_alternate_profile_when_first_is_too_short(tmp_path):
    engine = ScriptedOcrEngine(
        {
            ("page.png", "dense_text"): "abc",
            ("page.png", "single_block"): "White cell count 7.2 x10^9/L normal",
        }
    )
    result = engine.recognize(tmp_path / "page.png", label="page")
    assert result.ok
    assert result.profile == "single_block"
    assert engine.calls == [("page.png", "dense_text"), ("page.png", "single_block")]


def test_ocr_engine_moves_on_after_timeout(tmp_path):
    engine = ScriptedOcrEngine(
        {
            ("page.png", "dense_text"): RuntimeError("Tesseract process timeout"),
            ("page.png", "single_block"): "Platelets 250 x10^9/L within range",
        }
    )
    result = engine.recognize(tmp_path / "page.png")
    assert result.profile == "single_block"


def test_ocr_engine_reports_failure_when_every_pass_fails(tmp_path):
    progress: list[int] = []
    engine = ScriptedOcrEngine({("page.png", "dense_text"): "x"}, progress=lambda label, pct: progress.append(pct))
    result = engine.recognize(tmp_path / "page.png")
    assert not result.ok
    assert result.text == OCR_FAILED_TEXT
    assert "insufficient text" in result.error
    assert progress[0] == 0 and progress[-1] == 100


def test_unavailable_ocr_engine_does_not_run():
    engine = OcrEngine(available=False)
    result = engine.recognize(Path("missing.png"))
    assert not result.ok
    assert result.text == OCR_FAILED_TEXT


def test_normalize_text_collapses_whitespace_and_blank_lines():
    raw = "Line  one\t\twith gaps\r\n\r\n\r\n\r\nLine two   \n"
    assert normalize_text(raw) == "Line one with gaps\n\nLine two"
    assert normalize_text("") == ""


def test_ocr_corrections_fix_units_and_common_confusions():
    assert apply_ocr_corrections("Hb 12.1 g /dl") == "Hb 12.1 g/dL"
    assert apply_ocr_corrections("Potassium 4.1 mmol/l") == "Potassium 4.1 mmol/L"
    assert apply_ocr_corrections("ALT 35 u / l") == "ALT 35 U/L"
    assert apply_ocr_corrections("1mmune status") == "Immune status"
    assert apply_ocr_corrections("Value 10 and 150") == "Value 10 and 150"


def test_signal_ignores_page_separators_and_markers():
    assert not has_signal(f"--- Page 1 ---\n{PAGE_ERROR_MARKER}\n--- Page 2 ---", 5)
    assert has_signal("--- Page 1 ---\nSodium 140 mmol/L", 10)
    assert not has_signal(OCR_FAILED_TEXT, 1)


def test_placeholder_text_detection():
    assert is_placeholder_text("short")
    assert is_placeholder_text(f"{PLACEHOLDER_MARKER} scan.pdf and more words here")
    assert not is_placeholder_text("Hemoglobin 9.2 g/dL, low")


def test_registry_chains_and_aliases():
    cascade = _cascade(Capabilities())
    chains = cascade.registry.describe()
    assert chains["pdf"] == ["pdf_native", "pdf_ocr"]
    assert chains["doc"] == chains["docx"] == ["docx_native"]
    assert [strategy.name for strategy in cascade.registry.chain_for("doc")] == ["docx_native"]
    with pytest.raises(KeyError):
        cascade.registry.chain_for("spreadsheet")
    with pytest.raises(KeyError):
        cascade.registry.set_chain("spreadsheet", ["xlsx_native"])


def _two_page_scan(monkeypatch, tmp_path):
    _fake_pypdf(monkeypatch, ["", ""])

    def fake_rasterize(pdf_path, work_dir, *, dpi, fallback_dpi):
        pages = []
        for index in (1, 2):
            page = work_dir / f"page_{index:03d}_{dpi}dpi.png"
            page.write_bytes(b"png")
            pages.append(page)
        return pages

    monkeypatch.setattr("medassist_tools.extraction.rasterize_pdf", fake_rasterize)
    path = tmp_path / "scan.pdf"
    path.write_bytes(b"%PDF-1.4")
    return path


def test_page_with_short_pass_then_engine_error_is_marked_as_error(tmp_path, monkeypatch):
    path = _two_page_scan(monkeypatch, tmp_path)
    engine = ScriptedOcrEngine(
        {
            ("page_001_300dpi.png", "dense_text"): "Sodium 140 mmol/L reference 135-145",
            ("page_002_300dpi.png", "dense_text"): "ab",
            ("page_002_300dpi.png", "single_block"): RuntimeError("Tesseract process timeout"),
        }
    )
    result = _cascade(Capabilities(pdf_text=True, pdf_raster=True, ocr=True), engine).extract(path, file_name="scan.pdf")
    assert f"--- Page 2 ---\n{PAGE_ERROR_MARKER}" in result.text


def test_page_where_every_pass_reads_too_little_is_marked_unclear(tmp_path, monkeypatch):
    path = _two_page_scan(monkeypatch, tmp_path)
    engine = ScriptedOcrEngine(
        {
            ("page_001_300dpi.png", "dense_text"): "Sodium 140 mmol/L reference 135-145",
            ("page_002_300dpi.png", "dense_text"): "ab",
            ("page_002_300dpi.png", "single_block"): "c",
        }
    )
    result = _cascade(Capabilities(pdf_text=True, pdf_raster=True, ocr=True), engine).extract(path, file_name="scan.pdf")
    assert f"--- Page 2 ---\n{PAGE_UNCLEAR_MARKER}" in result.text


def test_ocr_result_flags_engine_failures(tmp_path):
    short_only = ScriptedOcrEngine({("page.png", "dense_text"): "ab"}).recognize(tmp_path / "page.png")
    assert not short_only.engine_failed
    mixed = ScriptedOcrEngine(
        {("page.png", "dense_text"): "ab", ("page.png", "single_block"): OSError("tesseract not found")}
    ).recognize(tmp_path / "page.png")
    assert mixed.engine_failed
    assert OcrEngine(available=False).recognize(Path("missing.png")).engine_failed
