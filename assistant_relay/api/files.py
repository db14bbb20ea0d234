"""Upload helpers and the read-file endpoint.

Extracts text from an attached file so the UI can build an
``Attached file (...)`` message around it.
"""

import logging

from fastapi import APIRouter, UploadFile, status

from assistant_relay.api.errors import ApiError
from assistant_relay.models.schemas import ReadFileResponse
from assistant_relay.parsing.extractor import (
    MAX_FILE_SIZE,
    ExtractionError,
    UnsupportedFileTypeError,
    extract_text,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["files"])

# 10MB limit matches the extractor constant
MAX_UPLOAD_SIZE = MAX_FILE_SIZE


def validate_upload(file: UploadFile | None) -> str:
    """Validate that a file was sent and carries a filename.

    Raises:
        ApiError: 400 if the file or its filename is missing.
    """
    if file is None:
        raise ApiError("No file uploaded", status_code=status.HTTP_400_BAD_REQUEST)
    if not file.filename:
        raise ApiError("Filename is required", status_code=status.HTTP_400_BAD_REQUEST)
    return file.filename


async def read_and_validate_size(file: UploadFile) -> bytes:
    """Read file content and validate size.

    Raises:
        ApiError: 400 if the file is empty, 413 if it exceeds the size limit.
    """
    content = await file.read()

    if not content:
        raise ApiError("No file uploaded", details="File is empty",
                       status_code=status.HTTP_400_BAD_REQUEST)

    if len(content) > MAX_UPLOAD_SIZE:
        size_mb = len(content) / (1024 * 1024)
        raise ApiError(
            "File too large",
            details=f"File size ({size_mb:.1f}MB) exceeds maximum allowed (10MB)",
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
        )

    return content


@router.post("/read-file", response_model=ReadFileResponse)
async def read_file(file: UploadFile | None = None) -> ReadFileResponse:
    """Extract the text of an uploaded PDF or text file.

    Raises:
        400: Missing, empty or unreadable file.
        413: File exceeds 10MB limit.
        415: File type has no extractor.
    """
    filename = validate_upload(file)
    content = await read_and_validate_size(file)

    try:
        extracted = extract_text(content, file.content_type, filename)
    except UnsupportedFileTypeError as e:
        raise ApiError(
            "Unsupported file type",
            details=str(e),
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
        ) from e
    except ExtractionError as e:
        logger.warning(f"Extraction failed for {filename}: {e}")
        raise ApiError(
            "Failed to read file",
            details=str(e),
            status_code=status.HTTP_400_BAD_REQUEST,
        ) from e

    logger.info(f"Extracted {len(extracted.text)} chars from {filename}")
    return ReadFileResponse(text=extracted.text, filename=filename, pages=extracted.pages)
