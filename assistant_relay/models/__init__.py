"""Pydantic models for API requests, responses and conversation state.

Provides type safety, validation, and automatic OpenAPI documentation.

Models:
    - Message: A message in the local conversation state
    - ChatRequest: Incoming relay request with the full history
    - ImageResponse: Non-streamed image placeholder reply
    - ErrorEnvelope: Body of every failed request
    - Thread / StoredMessage: Persisted chat history
    - Document: A file indexed in the vector store
"""

from assistant_relay.models.schemas import (
    ChatMessage,
    ChatRequest,
    Document,
    DocumentList,
    DocumentUploadResponse,
    ErrorEnvelope,
    FileAttachment,
    ImageRequest,
    ImageResponse,
    ImageUrlResponse,
    Message,
    MessageCreate,
    MessageRole,
    MessageType,
    ReadFileResponse,
    StoredMessage,
    Thread,
    ThreadCreate,
    UploadedDocument,
)

__all__ = [
    "ChatMessage",
    "ChatRequest",
    "Document",
    "DocumentList",
    "DocumentUploadResponse",
    "ErrorEnvelope",
    "FileAttachment",
    "ImageRequest",
    "ImageResponse",
    "ImageUrlResponse",
    "Message",
    "MessageCreate",
    "MessageRole",
    "MessageType",
    "ReadFileResponse",
    "StoredMessage",
    "Thread",
    "ThreadCreate",
    "UploadedDocument",
]
