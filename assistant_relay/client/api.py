"""HTTP client for the thread, document and file-reading endpoints."""

import logging
import os

import httpx

from assistant_relay.models.schemas import (
    Document,
    DocumentList,
    DocumentUploadResponse,
    MessageRole,
    MessageType,
    ReadFileResponse,
    StoredMessage,
    Thread,
)

logger = logging.getLogger(__name__)

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")


class ApiClient:
    """Thin async wrapper over the collaborator endpoints.

    Args:
        base_url: Root URL of the relay API.
        client: Optional shared AsyncClient (tests pass one with a custom
            transport). A private client is created otherwise.
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._owns_client = client is None

    @property
    def http(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def list_threads(self) -> list[Thread]:
        response = await self._client.get("/api/threads")
        response.raise_for_status()
        return [Thread.model_validate(t) for t in response.json()]

    async def create_thread(self, name: str) -> Thread:
        response = await self._client.post("/api/threads", json={"name": name})
        response.raise_for_status()
        return Thread.model_validate(response.json())

    async def rename_thread(self, thread_id: str, name: str) -> Thread:
        response = await self._client.put(f"/api/threads/{thread_id}", json={"name": name})
        response.raise_for_status()
        return Thread.model_validate(response.json())

    async def delete_thread(self, thread_id: str) -> None:
        response = await self._client.delete(f"/api/threads/{thread_id}")
        response.raise_for_status()

    async def list_messages(self, thread_id: str) -> list[StoredMessage]:
        response = await self._client.get(f"/api/threads/{thread_id}/messages")
        response.raise_for_status()
        return [StoredMessage.model_validate(m) for m in response.json()]

    async def append_message(
        self,
        thread_id: str,
        role: MessageRole,
        content: str,
        type: MessageType = MessageType.TEXT,
        image_url: str | None = None,
    ) -> StoredMessage:
        response = await self._client.post(
            f"/api/threads/{thread_id}/messages",
            json={
                "role": role.value,
                "content": content,
                "type": type.value,
                "image_url": image_url,
            },
        )
        response.raise_for_status()
        return StoredMessage.model_validate(response.json())

    async def read_file(self, filename: str, data: bytes, mime_type: str) -> ReadFileResponse:
        response = await self._client.post(
            "/api/read-file",
            files={"file": (filename, data, mime_type)},
        )
        response.raise_for_status()
        return ReadFileResponse.model_validate(response.json())

    async def list_documents(self) -> list[Document]:
        response = await self._client.get("/api/documents")
        response.raise_for_status()
        return DocumentList.model_validate(response.json()).files

    async def upload_document(self, filename: str, data: bytes, mime_type: str) -> DocumentUploadResponse:
        response = await self._client.post(
            "/api/documents",
            files={"file": (filename, data, mime_type)},
        )
        response.raise_for_status()
        return DocumentUploadResponse.model_validate(response.json())

    async def delete_document(self, document_id: str) -> None:
        response = await self._client.delete(f"/api/documents/{document_id}")
        response.raise_for_status()
