"""Document endpoints: list, upload, delete and download vector-store files."""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, UploadFile, status
from fastapi.responses import Response

from assistant_relay.api.errors import ApiError
from assistant_relay.api.files import read_and_validate_size, validate_upload
from assistant_relay.models.schemas import DocumentList, DocumentUploadResponse
from assistant_relay.storage.documents import (
    DocumentNotFoundError,
    DocumentStore,
    get_document_store,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["documents"])


def document_store() -> DocumentStore:
    """Resolve the document store, reporting missing configuration as 503."""
    try:
        return get_document_store()
    except ValueError as e:
        raise ApiError(
            "Document store is not configured",
            details=str(e),
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        ) from e


@router.get("", response_model=DocumentList)
async def list_documents(store: DocumentStore = Depends(document_store)) -> DocumentList:
    """List every file in the vector store."""
    try:
        files = await store.list_files()
    except Exception as e:
        raise ApiError("Failed to fetch documents", details=str(e)) from e
    logger.info(f"Listed {len(files)} documents")
    return DocumentList(files=files)


@router.post("", response_model=DocumentUploadResponse)
async def upload_document(
    file: UploadFile | None = None,
    store: DocumentStore = Depends(document_store),
) -> DocumentUploadResponse:
    """Upload a file and index it for retrieval.

    Raises:
        400: Missing filename or empty file.
        413: File exceeds 10MB limit.
        500: Upload or indexing failed.
    """
    filename = validate_upload(file)
    content = await read_and_validate_size(file)

    try:
        uploaded = await store.upload_file(content, filename)
    except Exception as e:
        raise ApiError("Upload failed", details=str(e)) from e
    return DocumentUploadResponse(data=uploaded)


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    store: DocumentStore = Depends(document_store),
) -> dict[str, bool]:
    """Remove a file from the vector store and delete it."""
    try:
        await store.delete_file(document_id)
    except Exception as e:
        raise ApiError("Failed to delete file", details=str(e)) from e
    return {"success": True}


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    store: DocumentStore = Depends(document_store),
) -> Response:
    """Download the original bytes of an indexed file."""
    try:
        filename, content = await store.download_file(document_id)
    except DocumentNotFoundError as e:
        raise ApiError(str(e), status_code=status.HTTP_404_NOT_FOUND) from e
    except Exception as e:
        raise ApiError("Failed to download file", details=str(e)) from e

    return Response(
        content=content,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )
