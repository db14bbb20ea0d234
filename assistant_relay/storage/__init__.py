"""Persistence collaborators.

    - threads: chat threads and messages in SQLite (aiosqlite)
    - documents: uploaded files in the OpenAI vector store
"""

from assistant_relay.storage.documents import (
    DocumentNotFoundError,
    DocumentStore,
    get_document_store,
)
from assistant_relay.storage.threads import (
    ThreadNotFoundError,
    ThreadStore,
    close_thread_store,
    get_thread_store,
)

__all__ = [
    "DocumentNotFoundError",
    "DocumentStore",
    "ThreadNotFoundError",
    "ThreadStore",
    "close_thread_store",
    "get_document_store",
    "get_thread_store",
]
