import io

import fitz
import pytest
from docx import Document
from openpyxl import Workbook

from services.content_extractor import (
    DOCX_MIME,
    PDF_MIME,
    XLSX_MIME,
    FileContentExtractor,
    UnsupportedFileType,
)


def _pdf_bytes(text):
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def _docx_bytes(*paragraphs):
    doc = Document()
    for paragraph in paragraphs:
        doc.add_paragraph(paragraph)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def _xlsx_bytes():
    wb = Workbook()
    ws = wb.active
    ws.title = "Clientes"
    ws.append(["Nombre", "Plan"])
    ws.append(["Ana", None])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def extractor():
    return FileContentExtractor()


def test_supported_by_mime_or_extension(extractor):
    assert extractor.is_supported("report", PDF_MIME)
    assert extractor.is_supported("Report.DOCX", "application/octet-stream")
    assert not extractor.is_supported("photo.png", "image/png")
    assert not extractor.is_supported(None, None)


def test_legacy_office_formats_are_not_supported(extractor):
    assert not extractor.is_supported("acta.doc", "application/msword")
    assert not extractor.is_supported("cuentas.xls", "application/vnd.ms-excel")
    with pytest.raises(UnsupportedFileType):
        extractor.extract(b"\xd0\xcf\x11\xe0", "cuentas.xls", "application/vnd.ms-excel")


def test_extract_pdf(extractor):
    text = extractor.extract(_pdf_bytes("Contrato de servicios"), "c.pdf", PDF_MIME)
    assert "Contrato de servicios" in text


def test_extract_word(extractor):
    text = extractor.extract(_docx_bytes("Primera linea", "Segunda linea"), "n.docx", DOCX_MIME)
    assert text == "Primera linea\nSegunda linea"


def test_extract_excel_lists_each_sheet(extractor):
    text = extractor.extract(_xlsx_bytes(), "c.xlsx", XLSX_MIME)
    assert text.startswith("Hoja: Clientes")
    assert "Nombre\tPlan" in text
    assert "Ana" in text


def test_unsupported_type_raises(extractor):
    with pytest.raises(UnsupportedFileType):
        extractor.extract(b"\x89PNG", "photo.png", "image/png")


def test_corrupt_file_raises(extractor):
    with pytest.raises(Exception):
        extractor.extract(b"not a pdf", "broken.pdf", PDF_MIME)
