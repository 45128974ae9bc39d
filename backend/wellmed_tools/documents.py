from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pypdf import PdfReader
from pypdf.errors import PyPdfError

logger = logging.getLogger(__name__)

MAX_EXTRACTED_CHARS = 20000
ALLOWED_PDF_MIME_TYPES = {"application/pdf", "application/x-pdf"}

_INFO_FIELDS = {
    "title": "/Title",
    "author": "/Author",
    "subject": "/Subject",
    "creator": "/Creator",
    "producer": "/Producer",
}


@dataclass(frozen=True)
class ExtractedDocument:
    text: str
    pages: int
    method: str
    info: dict[str, str] = field(default_factory=dict)

    @property
    def characters(self) -> int:
        return len(self.text)


def extension_from_filename(file_name: str) -> str:
    return Path(file_name).suffix.lower().strip()


def is_pdf_upload(file_name: str, mime_type: str) -> bool:
    if mime_type in ALLOWED_PDF_MIME_TYPES:
        return True
    return not mime_type and extension_from_filename(file_name) == ".pdf"


def _pdf_info(reader: PdfReader) -> dict[str, str]:
    metadata = reader.metadata
    if not metadata:
        return {}
    info: dict[str, str] = {}
    for name, key in _INFO_FIELDS.items():
        value: Any = metadata.get(key)
        if value is not None and str(value).strip():
            info[name] = str(value).strip()
    return info


def extract_pdf(pdf_bytes: bytes) -> ExtractedDocument:
    """Text, page count and document info from a PDF.

    Pages are decoded with ``pypdf`` (compressed content streams included) and
    joined with newlines; the result is capped at ``MAX_EXTRACTED_CHARS``. A file
    that cannot be parsed yields an empty document rather than an error.
    """
    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        page_texts = [(page.extract_text() or "").strip() for page in reader.pages]
        info = _pdf_info(reader)
    except (PyPdfError, ValueError, KeyError) as exc:
        logger.warning("unreadable PDF upload (%s bytes): %s", len(pdf_bytes), exc)
        return ExtractedDocument(text="", pages=0, method="pdf_unreadable")
    text = "\n".join(chunk for chunk in page_texts if chunk)
    return ExtractedDocument(text=text[:MAX_EXTRACTED_CHARS], pages=len(page_texts), method="pypdf", info=info)


def extract_document_text(file_name: str, mime_type: str, document_bytes: bytes) -> ExtractedDocument:
    ext = extension_from_filename(file_name)
    if mime_type.startswith("text/") or ext in {".txt", ".md", ".csv"}:
        text = document_bytes.decode("utf-8", errors="ignore").strip()
        return ExtractedDocument(text=text[:MAX_EXTRACTED_CHARS], pages=1 if text else 0, method="direct_text")
    if is_pdf_upload(file_name, mime_type) or ext == ".pdf":
        return extract_pdf(document_bytes)
    text = document_bytes.decode("utf-8", errors="ignore").strip()
    return ExtractedDocument(text=text[:MAX_EXTRACTED_CHARS], pages=0, method="generic_extract")
