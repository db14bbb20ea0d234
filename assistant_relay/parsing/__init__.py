"""Text extraction for files attached to chat messages.

Responsibilities:
    - PDF text extraction with pypdf
    - UTF-8 decoding for plain text, CSV and Markdown
    - Size and format validation before parsing
"""

from assistant_relay.parsing.extractor import (
    MAX_FILE_SIZE,
    ExtractedText,
    ExtractionError,
    UnsupportedFileTypeError,
    extract_text,
)

__all__ = [
    "MAX_FILE_SIZE",
    "ExtractedText",
    "ExtractionError",
    "UnsupportedFileTypeError",
    "extract_text",
]
