"""Text extraction for attached files using pypdf.

Turns an uploaded PDF or plain-text file into the text that gets embedded
in an ``Attached file (...)`` chat message.
"""

import io
import logging
from pathlib import PurePath

from pydantic import BaseModel, Field
from pypdf import PdfReader
from pypdf.errors import PdfReadError

logger = logging.getLogger(__name__)

# Constants
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
PDF_MAGIC_BYTES = b"%PDF"
PDF_MIME_TYPE = "application/pdf"
TEXT_MIME_TYPES = frozenset({"text/plain", "text/csv", "text/markdown"})
TEXT_EXTENSIONS = frozenset({".txt", ".csv", ".md"})


class ExtractedText(BaseModel):
    """Text pulled out of an uploaded file.

    Attributes:
        text: Combined text content.
        pages: Page count for paged formats, None otherwise.
    """

    text: str
    pages: int | None = Field(None, ge=0)


class ExtractionError(Exception):
    """Raised when a file cannot be read."""


class UnsupportedFileTypeError(ExtractionError):
    """Raised for file types with no text extractor."""


def _validate_size(data: bytes) -> None:
    if not data:
        raise ExtractionError("Empty file provided")

    if len(data) > MAX_FILE_SIZE:
        size_mb = len(data) / (1024 * 1024)
        raise ExtractionError(f"File size ({size_mb:.1f}MB) exceeds maximum allowed (10MB)")


def _extract_pdf(data: bytes) -> ExtractedText:
    if not data.lstrip()[:10].startswith(PDF_MAGIC_BYTES):
        raise ExtractionError("Invalid PDF: file does not start with PDF header")

    try:
        reader = PdfReader(io.BytesIO(data))
        pages = reader.pages
        page_count = len(pages)
    except PdfReadError as e:
        raise ExtractionError(f"Corrupt or invalid PDF: {e}") from e
    except Exception as e:
        raise ExtractionError(f"Failed to read PDF: {e}") from e

    if page_count == 0:
        raise ExtractionError("PDF contains no pages")

    text_parts: list[str] = []
    for i, page in enumerate(pages):
        try:
            page_text = page.extract_text()
        except Exception as e:
            logger.warning(f"Failed to extract text from page {i + 1}: {e}")
            continue
        if page_text:
            text_parts.append(page_text)

    text = "\n\n".join(text_parts)
    if not text.strip():
        logger.warning("PDF contains no extractable text (may be scanned/image-based)")

    return ExtractedText(text=text, pages=page_count)


def _extract_plain(data: bytes) -> ExtractedText:
    try:
        return ExtractedText(text=data.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ExtractionError(f"Text file is not valid UTF-8: {e}") from e


def extract_text(data: bytes, mime_type: str | None, filename: str = "") -> ExtractedText:
    """Extract text from an uploaded file.

    Args:
        data: Raw file bytes.
        mime_type: MIME type reported by the browser, if any.
        filename: Original filename, used when the MIME type is unhelpful.

    Returns:
        ExtractedText with the text and, for PDFs, the page count.

    Raises:
        ExtractionError: If the file is empty, too large or unreadable.
        UnsupportedFileTypeError: If no extractor handles the file type.
    """
    _validate_size(data)

    mime = (mime_type or "").split(";")[0].strip().lower()
    suffix = PurePath(filename).suffix.lower()

    if mime == PDF_MIME_TYPE or suffix == ".pdf":
        return _extract_pdf(data)
    if mime in TEXT_MIME_TYPES or suffix in TEXT_EXTENSIONS:
        return _extract_plain(data)

    raise UnsupportedFileTypeError(f"Unsupported file type: {mime or suffix or 'unknown'}")
