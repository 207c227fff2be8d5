"""
Content Extractor
=================
Turns an uploaded file's bytes + declared media type into something the
analysis prompt can carry:

  - plain text (word-processing, spreadsheet/CSV, text/*, unknown types), or
  - a native pass-through payload (PDF in "native" mode), forwarded to the
    model as a document block so layout and embedded images are kept.

Format decoding is delegated to python-docx, openpyxl, xlrd, csv and pypdf.
"""
from __future__ import annotations

import asyncio
import csv
import io
import mimetypes
from dataclasses import dataclass
from typing import Optional, Sequence

import pypdf
import xlrd
from docx import Document as DocxDocument
from openpyxl import load_workbook

from tender.core.config import settings
from tender.core.logger import logger
from tender.utils.exceptions import ExtractionFailure

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MSWORD = "application/msword"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLS = "application/vnd.ms-excel"
CSV = "text/csv"

WORD_TYPES = {DOCX, MSWORD}
SPREADSHEET_TYPES = {XLSX, XLS, CSV}

# Every OOXML file is a zip archive; Excel 97-2003 workbooks are OLE2 compound files
_ZIP_MAGIC = b"PK\x03\x04"
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


@dataclass
class ExtractedContent:
    file_name: str
    media_type: str
    text: str = ""
    native: bool = False
    data: Optional[bytes] = None

    def is_readable(self, min_chars: int) -> bool:
        """Native payloads are always readable; text must clear min_chars after trimming."""
        return self.native or len(self.text.strip()) >= min_chars


def normalize_media_type(media_type: Optional[str], file_name: str = "") -> str:
    """Lower-case, drop parameters, and guess from the file name when the client sent nothing useful."""
    mt = (media_type or "").split(";", 1)[0].strip().lower()
    if not mt or mt == "application/octet-stream":
        guessed, _ = mimetypes.guess_type(file_name or "")
        if guessed:
            return guessed.lower()
    return mt or "application/octet-stream"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Format helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _rows_to_csv(rows) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    for row in rows:
        writer.writerow(["" if cell is None else cell for cell in row])
    return buf.getvalue().rstrip("\n")


def _render_sheets(sheets: Sequence[tuple[str, str]]) -> str:
    """'=== Sheet: <name> ===' header then the CSV dump; sheets separated by a blank line."""
    return "\n\n".join(f"=== Sheet: {name} ===\n{body}" for name, body in sheets)


def _extract_docx(file_bytes: bytes) -> str:
    doc = DocxDocument(io.BytesIO(file_bytes))
    parts = [p.text for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                parts.append("\t".join(cells))
    return "\n".join(parts)


def _extract_xlsx(file_bytes: bytes) -> str:
    workbook = load_workbook(io.BytesIO(file_bytes), read_only=True, data_only=True)
    try:
        sheets = [
            (ws.title, _rows_to_csv(ws.iter_rows(values_only=True)))
            for ws in workbook.worksheets
        ]
    finally:
        workbook.close()
    return _render_sheets(sheets)


def _xls_cell(value):
    # xlrd hands back every number as a float
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _extract_xls(file_bytes: bytes) -> str:
    workbook = xlrd.open_workbook(file_contents=file_bytes)
    try:
        sheets = [
            (
                sheet.name,
                _rows_to_csv(
                    [_xls_cell(v) for v in sheet.row_values(r)] for r in range(sheet.nrows)
                ),
            )
            for sheet in workbook.sheets()
        ]
    finally:
        workbook.release_resources()
    return _render_sheets(sheets)


def _extract_csv(file_bytes: bytes) -> str:
    text = file_bytes.decode("utf-8-sig")
    rows = list(csv.reader(io.StringIO(text)))
    return _render_sheets([("Sheet1", _rows_to_csv(rows))])


def _extract_pdf_text(file_bytes: bytes) -> str:
    reader = pypdf.PdfReader(io.BytesIO(file_bytes))
    pages = [(page.extract_text() or "").strip() for page in reader.pages]
    return "\n\n".join(p for p in pages if p)


class ContentExtractor:
    """Per-file extraction. Stateless apart from the configured PDF mode."""

    def __init__(self, pdf_native: Optional[bool] = None):
        self.pdf_native = settings.pdf_native_enabled if pdf_native is None else pdf_native

    def extract(
        self,
        file_name: str,
        data: bytes,
        media_type: Optional[str],
        allow_native: bool = True,
    ) -> ExtractedContent:
        """
        Decode one file.

        Raises ExtractionFailure naming the file when word-processing,
        spreadsheet or (text-mode) PDF content cannot be decoded.
        Unknown media types degrade to a lossy UTF-8 decode.
        """
        mt = normalize_media_type(media_type, file_name)

        if mt == PDF:
            if self.pdf_native and allow_native:
                logger.info("Extraction: %s -> native pass-through", file_name)
                return ExtractedContent(file_name=file_name, media_type=mt, native=True, data=data)
            logger.info("Extraction: %s -> pdf text layer", file_name)
            text = self._decode(file_name, _extract_pdf_text, data, "Failed to parse PDF file")
        elif mt in WORD_TYPES:
            logger.info("Extraction: %s -> word-processing text", file_name)
            text = self._decode(file_name, _extract_docx, data, "Failed to parse Word document")
        elif mt in SPREADSHEET_TYPES:
            logger.info("Extraction: %s -> spreadsheet dump", file_name)
            text = self._extract_spreadsheet(file_name, mt, data)
        elif mt.startswith("text/"):
            text = data.decode("utf-8", errors="replace")
        else:
            logger.info("Extraction: %s has unrecognized type %s, decoding as UTF-8", file_name, mt)
            text = data.decode("utf-8", errors="replace")

        return ExtractedContent(file_name=file_name, media_type=mt, text=text)

    def _extract_spreadsheet(self, file_name: str, mt: str, data: bytes) -> str:
        reason = "Failed to parse Excel/CSV file"
        if mt == CSV:
            return self._decode(file_name, _extract_csv, data, reason)
        if data.startswith(_ZIP_MAGIC):
            return self._decode(file_name, _extract_xlsx, data, reason)
        if data.startswith(_OLE2_MAGIC):
            return self._decode(file_name, _extract_xls, data, reason)
        if mt == XLS:
            # Browsers label plain CSV exports as vnd.ms-excel
            return self._decode(file_name, _extract_csv, data, reason)
        raise ExtractionFailure(file_name, reason)

    @staticmethod
    def _decode(file_name: str, decoder, data: bytes, reason: str) -> str:
        try:
            return decoder(data)
        except Exception as e:
            logger.warning("Extraction failed for %s: %s", file_name, e)
            raise ExtractionFailure(file_name, reason) from e

    async def extract_many(
        self,
        files: Sequence[tuple[str, bytes, Optional[str]]],
        max_native: Optional[int] = None,
        concurrency: Optional[int] = None,
    ) -> list[ExtractedContent]:
        """
        Extract a batch concurrently, preserving input order.

        Only the first max_native PDFs may be passed through natively; the rest
        fall back to their text layer. The first failure propagates.
        """
        max_native = settings.BEDROCK_MAX_NATIVE_DOCUMENTS if max_native is None else max_native
        sem = asyncio.Semaphore(concurrency or settings.EXTRACTION_CONCURRENCY)

        allow_native: list[bool] = []
        native_slots = max_native
        for file_name, _, media_type in files:
            is_pdf = normalize_media_type(media_type, file_name) == PDF
            allow_native.append(is_pdf and native_slots > 0)
            if is_pdf and native_slots > 0:
                native_slots -= 1

        async def _one(index: int) -> ExtractedContent:
            file_name, data, media_type = files[index]
            async with sem:
                return await asyncio.to_thread(
                    self.extract, file_name, data, media_type, allow_native[index]
                )

        return list(await asyncio.gather(*(_one(i) for i in range(len(files)))))
