import io
import logging
from typing import Optional

import fitz  # PyMuPDF
from docx import Document
from openpyxl import load_workbook

logger = logging.getLogger("brify_sync.extractor")

PDF_MIME = "application/pdf"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# Legacy binary .doc and .xls are not readable by python-docx or openpyxl.
SUPPORTED_MIME_TYPES = {PDF_MIME, XLSX_MIME, DOCX_MIME}
SUPPORTED_EXTENSIONS = (".pdf", ".xlsx", ".docx")


class UnsupportedFileType(ValueError):
    pass


class FileContentExtractor:
    """Plain-text extraction for PDF, Word and Excel files."""

    def is_supported(self, name: Optional[str], mime_type: Optional[str]) -> bool:
        mime = (mime_type or "").lower()
        lowered = (name or "").lower()
        return mime in SUPPORTED_MIME_TYPES or lowered.endswith(SUPPORTED_EXTENSIONS)

    def extract(self, content: bytes, name: Optional[str], mime_type: Optional[str]) -> str:
        mime = (mime_type or "").lower()
        lowered = (name or "").lower()

        if mime == PDF_MIME or lowered.endswith(".pdf"):
            return self.extract_pdf(content)
        if mime == XLSX_MIME or lowered.endswith(".xlsx"):
            return self.extract_excel(content)
        if mime == DOCX_MIME or lowered.endswith(".docx"):
            return self.extract_word(content)
        raise UnsupportedFileType(f"Tipo de archivo no soportado: {mime_type}")

    def extract_pdf(self, content: bytes) -> str:
        doc = fitz.open(stream=content, filetype="pdf")
        try:
            pages = [page.get_text() for page in doc]
        finally:
            doc.close()
        return "\n".join(p.strip() for p in pages).strip()

    def extract_word(self, content: bytes) -> str:
        doc = Document(io.BytesIO(content))
        return "\n".join(para.text for para in doc.paragraphs).strip()

    def extract_excel(self, content: bytes) -> str:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        sections = []
        try:
            for sheet in wb.worksheets:
                lines = []
                for row in sheet.iter_rows(values_only=True):
                    values = [str(v) for v in row if v is not None]
                    if values:
                        lines.append("\t".join(values))
                sections.append(f"Hoja: {sheet.title}\n" + "\n".join(lines))
        finally:
            wb.close()
        return "\n\n".join(sections).strip()
