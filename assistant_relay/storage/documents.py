"""Document store backed by the OpenAI files API and a vector store.

Uploads are added to the configured vector store so retrieval runs can
search them. A local JSON mapping records which original file each
vector-store entry came from; writing it is best effort and never fails an
upload.
"""

import asyncio
import json
import logging
import os
import time
from pathlib import Path

from openai import AsyncOpenAI

from assistant_relay.models.schemas import Document, UploadedDocument
from assistant_relay.upstream.config import UpstreamConfig, get_upstream_config

logger = logging.getLogger(__name__)

_DATA_DIR = Path(os.getenv("DATA_DIR", Path(__file__).parent.parent.parent / "data"))
_MAPPING_FILE = _DATA_DIR / "vector-file-mapping.json"


class DocumentNotFoundError(Exception):
    """Raised when a document has no downloadable original."""


class DocumentStore:
    """listFiles / uploadFile / deleteFile / downloadFile over a vector store."""

    def __init__(
        self,
        config: UpstreamConfig | None = None,
        client: AsyncOpenAI | None = None,
        mapping_file: str | Path = _MAPPING_FILE,
    ) -> None:
        self._config = config or get_upstream_config()
        if not self._config.vector_store_id:
            raise ValueError("VECTOR_STORE_ID is required for the document store")
        self._vector_store_id = self._config.vector_store_id
        self._client = client or AsyncOpenAI(
            api_key=self._config.api_key,
            base_url=self._config.base_url,
        )
        self._mapping_file = Path(mapping_file)

    async def list_files(self) -> list[Document]:
        """List indexed files with their original filenames."""
        entries = [
            entry
            async for entry in self._client.vector_stores.files.list(
                vector_store_id=self._vector_store_id
            )
        ]
        names = await asyncio.gather(*(self._filename(entry.id) for entry in entries))
        return [
            Document(
                id=entry.id,
                filename=name,
                bytes=entry.usage_bytes or 0,
                created_at=entry.created_at,
                status=entry.status,
            )
            for entry, name in zip(entries, names, strict=True)
        ]

    async def _filename(self, file_id: str) -> str:
        try:
            meta = await self._client.files.retrieve(file_id)
        except Exception as e:
            logger.warning(f"Failed to fetch metadata for file {file_id}: {e}")
            return "Untitled"
        return meta.filename or "Untitled"

    async def upload_file(self, data: bytes, filename: str) -> UploadedDocument:
        """Upload a file and add it to the vector store."""
        uploaded = await self._client.files.create(
            file=(filename, data),
            purpose="assistants",
        )
        entry = await self._client.vector_stores.files.create(
            vector_store_id=self._vector_store_id,
            file_id=uploaded.id,
        )
        logger.info(f"Indexed {filename!r} as {entry.id} (file {uploaded.id})")

        self._record_mapping(entry.id, uploaded.id, filename)
        return UploadedDocument(
            id=entry.id,
            filename=filename,
            original_file_id=uploaded.id,
            status=entry.status,
        )

    async def delete_file(self, file_id: str) -> None:
        """Remove a file from the vector store and delete the stored file."""
        await self._client.vector_stores.files.delete(
            file_id, vector_store_id=self._vector_store_id
        )
        await self._client.files.delete(file_id)
        self._forget_mapping(file_id)
        logger.info(f"Deleted document {file_id}")

    async def download_file(self, file_id: str) -> tuple[str, bytes]:
        """Fetch the original bytes of an indexed file.

        Returns:
            The filename and file content.

        Raises:
            DocumentNotFoundError: If no mapping exists for the file.
        """
        mapping = next(
            (m for m in self._load_mappings() if m.get("vector_store_file_id") == file_id),
            None,
        )
        if mapping is None:
            raise DocumentNotFoundError(
                "Download is not available for this file. The original file ID is missing."
            )

        original_id = mapping["original_file_id"]
        meta = await self._client.files.retrieve(original_id)
        content = await self._client.files.content(original_id)
        filename = meta.filename or mapping.get("filename") or "document"
        return filename, content.content

    def _load_mappings(self) -> list[dict]:
        try:
            return json.loads(self._mapping_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable mapping file {self._mapping_file}: {e}")
            return []

    def _save_mappings(self, mappings: list[dict]) -> None:
        try:
            self._mapping_file.parent.mkdir(parents=True, exist_ok=True)
            self._mapping_file.write_text(json.dumps(mappings, indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to save file mapping: {e}")

    def _record_mapping(self, vector_file_id: str, original_id: str, filename: str) -> None:
        mappings = self._load_mappings()
        mappings.append({
            "vector_store_file_id": vector_file_id,
            "original_file_id": original_id,
            "filename": filename,
            "created_at": int(time.time() * 1000),
        })
        self._save_mappings(mappings)

    def _forget_mapping(self, vector_file_id: str) -> None:
        mappings = self._load_mappings()
        kept = [m for m in mappings if m.get("vector_store_file_id") != vector_file_id]
        if len(kept) != len(mappings):
            self._save_mappings(kept)


# Module-level singleton instance
_document_store: DocumentStore | None = None


def get_document_store() -> DocumentStore:
    """Get or create the global document store."""
    global _document_store
    if _document_store is None:
        _document_store = DocumentStore()
    return _document_store
