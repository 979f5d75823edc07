from __future__ import annotations

import csv
import io
import logging
import os
from typing import BinaryIO, Optional, Union

import docx
import openpyxl
import pdfplumber

logger = logging.getLogger(__name__)

WORD_TYPES = {"doc", "docx"}
SPREADSHEET_TYPES = {"xlsx", "xls", "ods"}


def file_type(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lstrip(".").lower()


def decode_bytes(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def extract_text_from_pdf(source: Union[str, bytes, BinaryIO]) -> Optional[str]:
    try:
        if isinstance(source, (bytes, bytearray)):
            buffer = io.BytesIO(source)
        elif hasattr(source, "read"):
            buffer = source
            buffer.seek(0)
        else:
            buffer = source

        with pdfplumber.open(buffer) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
        text = "\n".join(pages).strip()
        return text if text else None
    except Exception:
        logger.warning("PDF text extraction failed", exc_info=True)
        return None


def extract_text_from_word(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    return "\n\n".join(paragraph.text for paragraph in document.paragraphs)


def extract_text_from_spreadsheet(data: bytes) -> str:
    """Render every sheet as CSV under a ``## Sheet: <name>`` header."""
    workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        parts: list[str] = []
        for sheet in workbook.worksheets:
            out = io.StringIO()
            writer = csv.writer(out, lineterminator="\n")
            for row in sheet.iter_rows(values_only=True):
                writer.writerow(["" if value is None else value for value in row])
            parts.append(f"\n## Sheet: {sheet.title}\n\n{out.getvalue().rstrip()}\n\n")
        return "".join(parts)
    finally:
        workbook.close()


def extract_text(filename: str, data: bytes) -> str:
    """Best-effort raw text for an uploaded file; falls back to decoding the bytes."""
    kind = file_type(filename)

    if kind == "pdf":
        text = extract_text_from_pdf(data)
        return text if text is not None else decode_bytes(data)

    if kind in WORD_TYPES:
        try:
            content = extract_text_from_word(data)
            logger.info("Word document processed, extracted %s characters", len(content))
            return content
        except Exception:
            logger.warning("Word extraction failed for %s, falling back to raw bytes", filename, exc_info=True)
            return decode_bytes(data)

    if kind in SPREADSHEET_TYPES:
        try:
            return extract_text_from_spreadsheet(data)
        except Exception:
            logger.warning("Spreadsheet extraction failed for %s, falling back to raw bytes", filename, exc_info=True)
            return decode_bytes(data)

    return decode_bytes(data)
