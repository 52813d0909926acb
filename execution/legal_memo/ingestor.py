"""
Document Ingestor

Validates an uploaded file and produces the representations the pipeline
needs: extracted text for memo drafting, a base64 data URI for embedding, and
a collision-free object storage key.

PDF text is extracted with PyMuPDF, DOCX with python-docx; anything else is
decoded as UTF-8.
"""

import io
import re
import base64
import logging
import mimetypes
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import DEFAULT_MAX_UPLOAD_MB
from .errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class FileTooLargeError(ServiceError):
    """Raised when an upload exceeds the size limit."""

    def __init__(self, size: int, max_bytes: int):
        super().__init__(
            ErrorKind.VALIDATION,
            f"File is {size} bytes, limit is {max_bytes}",
            user_message=f"Please select a file smaller than {max_bytes // (1024 * 1024)}MB.",
        )
        self.size = size
        self.max_bytes = max_bytes


@dataclass
class IngestedDocument:
    """A validated upload with its extracted text."""
    filename: str
    content_type: str
    data: bytes
    text: str

    @property
    def size(self) -> int:
        return len(self.data)

    def to_data_uri(self) -> str:
        """Encode as ``data:<mime>;base64,<data>``."""
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


def guess_content_type(filename: str) -> str:
    """Guess a MIME type from the file extension."""
    suffix = Path(filename).suffix.lower()
    if suffix == ".docx":
        return DOCX_MIME
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def build_storage_key(
    filename: str,
    now: Optional[datetime] = None,
    prefix: str = "documents",
) -> str:
    """Time-stamped, name-qualified object key, e.g. documents/1700000000000-brief.pdf"""
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    safe_name = _UNSAFE_KEY_CHARS.sub("_", Path(filename).name).strip("_") or "document"
    return f"{prefix}/{millis}-{safe_name}"


def extract_text(data: bytes, content_type: str) -> str:
    """Extract plain text from document bytes based on MIME type."""
    if content_type == PDF_MIME:
        return _extract_pdf_text(data)
    if content_type == DOCX_MIME:
        return _extract_docx_text(data)
    return data.decode("utf-8", errors="replace")


def _extract_pdf_text(data: bytes) -> str:
    import fitz  # PyMuPDF

    with fitz.open(stream=data, filetype="pdf") as doc:
        pages = [page.get_text() for page in doc]
    return "\n\n".join(p.strip() for p in pages if p.strip())


def _extract_docx_text(data: bytes) -> str:
    from docx import Document

    document = Document(io.BytesIO(data))
    return "\n".join(p.text for p in document.paragraphs if p.text.strip())


class DocumentIngestor:
    """
    Validates and prepares a user-selected file.

    Usage:
        ingestor = DocumentIngestor(max_bytes=10 * 1024 * 1024)
        doc = ingestor.ingest("complaint.pdf", raw_bytes)
        doc.text, doc.to_data_uri()
    """

    def __init__(self, max_bytes: int = DEFAULT_MAX_UPLOAD_MB * 1024 * 1024):
        self.max_bytes = max_bytes

    def validate_size(self, size: int) -> None:
        """Reject oversized or empty files before anything is read or stored."""
        if size > self.max_bytes:
            raise FileTooLargeError(size, self.max_bytes)
        if size == 0:
            raise ServiceError(
                ErrorKind.VALIDATION,
                "File is empty",
                user_message="The selected file is empty.",
            )

    def ingest(
        self,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> IngestedDocument:
        """
        Validate size and extract text.

        Args:
            filename: Original file name as selected by the user
            data: Raw file bytes
            content_type: MIME type, guessed from the filename if omitted

        Returns:
            IngestedDocument

        Raises:
            ServiceError: VALIDATION if the file is too large, empty or unreadable
        """
        self.validate_size(len(data))

        if not content_type or content_type == "application/octet-stream":
            content_type = guess_content_type(filename)

        try:
            text = extract_text(data, content_type)
        except Exception as e:
            logger.error(f"Text extraction failed for {filename}: {type(e).__name__}: {e}")
            raise ServiceError(
                ErrorKind.VALIDATION,
                f"Could not read {filename}: {e}",
                user_message="The document could not be read. Please upload a PDF, DOCX or TXT file.",
            ) from e

        logger.info(f"Ingested {filename} ({len(data)} bytes, {content_type}, {len(text)} chars)")
        return IngestedDocument(
            filename=filename,
            content_type=content_type,
            data=data,
            text=text,
        )
