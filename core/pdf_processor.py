import hashlib
import io
import logging
from dataclasses import dataclass, field
from typing import Sequence

import pdfplumber
from PyPDF2 import PdfReader

from config import MAX_FILE_SIZE, MAX_FILE_SIZE_MB
from core.errors import ExtractionServiceError, InputRejectedError

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"


@dataclass(frozen=True)
class DocumentPayload:
    """One uploaded artifact, as opaque bytes plus its display name."""
    filename: str
    content: bytes = field(repr=False)
    label: str = ""

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def md5(self) -> str:
        return hashlib.md5(self.content).hexdigest()

    @property
    def display_name(self) -> str:
        return f"{self.label}: {self.filename}" if self.label else self.filename


@dataclass(frozen=True)
class EncodedDocument:
    """Text rendition of a payload, as handed to the extraction service."""
    filename: str
    label: str
    md5: str
    text: str


def validate_document(doc: DocumentPayload, max_size: int = MAX_FILE_SIZE) -> DocumentPayload:
    """Intake check run before any document reaches the pipeline."""
    is_pdf = doc.filename.lower().endswith(".pdf") or doc.content.startswith(PDF_MAGIC)
    if not is_pdf:
        raise InputRejectedError(
            f'Security Rejection: "{doc.filename}" is not a PDF. Only PDF artifacts are accepted.'
        )
    if doc.size > max_size:
        raise InputRejectedError(
            f'File size limit ({MAX_FILE_SIZE_MB}MB) exceeded by "{doc.filename}". Protocol aborted.'
        )
    if doc.size == 0:
        raise InputRejectedError(f'"{doc.filename}" is empty.')
    return doc


def validate_documents(docs: Sequence[DocumentPayload], min_count: int = 1, max_count: int | None = 1) -> list:
    if len(docs) < min_count:
        raise InputRejectedError(
            f"Analysis Requirement: at least {min_count} document(s) required, got {len(docs)}."
        )
    if max_count is not None and len(docs) > max_count:
        raise InputRejectedError(
            f"Analysis Requirement: at most {max_count} document(s) accepted, got {len(docs)}."
        )
    return [validate_document(d) for d in docs]


def _pdfplumber_pages(content: bytes) -> list:
    with pdfplumber.open(io.BytesIO(content)) as pdf:
        return [page.extract_text() for page in pdf.pages]


def _pypdf2_pages(content: bytes) -> list:
    return [page.extract_text() for page in PdfReader(io.BytesIO(content)).pages]


PAGE_READERS = (("pdfplumber", _pdfplumber_pages), ("PyPDF2", _pypdf2_pages))


def extract_text(doc: DocumentPayload) -> str:
    """Page text from the first reader that yields any; "" when none does."""
    for name, read_pages in PAGE_READERS:
        try:
            pages = read_pages(doc.content)
        except Exception as e:
            logger.warning("%s failed on %s: %s", name, doc.filename, e)
            continue
        text = "\n".join(p for p in pages if p)
        if text.strip():
            return text
    return ""


def encode_document(doc: DocumentPayload) -> EncodedDocument:
    text = extract_text(doc)
    if not text.strip():
        raise ExtractionServiceError(f'No extractable text in "{doc.filename}".')
    return EncodedDocument(filename=doc.filename, label=doc.label, md5=doc.md5, text=text)
