"""Thread and message endpoints backed by the SQLite thread store."""

import logging

import aiosqlite
from fastapi import APIRouter, Depends, status

from assistant_relay.api.errors import ApiError
from assistant_relay.models.schemas import (
    MessageCreate,
    StoredMessage,
    Thread,
    ThreadCreate,
)
from assistant_relay.storage.threads import ThreadNotFoundError, ThreadStore, get_thread_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/threads", tags=["threads"])


def _not_found(thread_id: str) -> ApiError:
    return ApiError(
        "Thread not found",
        details=f"No thread with id {thread_id}",
        status_code=status.HTTP_404_NOT_FOUND,
    )


def _storage_error(action: str, e: Exception) -> ApiError:
    return ApiError(f"Failed to {action}", details=str(e))


@router.get("", response_model=list[Thread])
async def list_threads(store: ThreadStore = Depends(get_thread_store)) -> list[Thread]:
    """List all threads, newest first."""
    try:
        threads = await store.list_threads()
    except aiosqlite.Error as e:
        raise _storage_error("fetch threads", e) from e
    logger.debug(f"Fetched {len(threads)} threads")
    return threads


@router.post("", response_model=Thread)
async def create_thread(
    body: ThreadCreate,
    store: ThreadStore = Depends(get_thread_store),
) -> Thread:
    """Create a new thread."""
    try:
        return await store.create_thread(body.name)
    except aiosqlite.Error as e:
        raise _storage_error("create thread", e) from e


@router.get("/{thread_id}", response_model=Thread)
async def get_thread(thread_id: str, store: ThreadStore = Depends(get_thread_store)) -> Thread:
    try:
        return await store.get_thread(thread_id)
    except ThreadNotFoundError as e:
        raise _not_found(thread_id) from e
    except aiosqlite.Error as e:
        raise _storage_error("fetch thread", e) from e


@router.put("/{thread_id}", response_model=Thread)
async def rename_thread(
    thread_id: str,
    body: ThreadCreate,
    store: ThreadStore = Depends(get_thread_store),
) -> Thread:
    """Rename a thread."""
    try:
        return await store.rename_thread(thread_id, body.name)
    except ThreadNotFoundError as e:
        raise _not_found(thread_id) from e
    except aiosqlite.Error as e:
        raise _storage_error("rename thread", e) from e


@router.delete("/{thread_id}")
async def delete_thread(
    thread_id: str,
    store: ThreadStore = Depends(get_thread_store),
) -> dict[str, bool]:
    """Delete a thread and all of its messages."""
    try:
        await store.delete_thread(thread_id)
    except ThreadNotFoundError as e:
        raise _not_found(thread_id) from e
    except aiosqlite.Error as e:
        raise _storage_error("delete thread", e) from e
    return {"success": True}


@router.get("/{thread_id}/messages", response_model=list[StoredMessage])
async def list_messages(
    thread_id: str,
    store: ThreadStore = Depends(get_thread_store),
) -> list[StoredMessage]:
    """List a thread's messages in the order they were added."""
    try:
        return await store.list_messages(thread_id)
    except ThreadNotFoundError as e:
        raise _not_found(thread_id) from e
    except aiosqlite.Error as e:
        raise _storage_error("fetch messages", e) from e


@router.post("/{thread_id}/messages", response_model=StoredMessage)
async def append_message(
    thread_id: str,
    body: MessageCreate,
    store: ThreadStore = Depends(get_thread_store),
) -> StoredMessage:
    """Append a message to a thread."""
    try:
        return await store.append_message(
            thread_id, body.role, body.content, body.type, body.image_url
        )
    except ThreadNotFoundError as e:
        raise _not_found(thread_id) from e
    except aiosqlite.Error as e:
        raise _storage_error("store message", e) from e
