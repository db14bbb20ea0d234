from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Speaker of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageType(str, Enum):
    """Kind of content a message carries."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"


class FileAttachment(BaseModel):
    """File attached to a user message.

    Attributes:
        name: Original filename.
        mime_type: Reported MIME type.
        size_bytes: Size of the original upload.
        content_ref: Where the original bytes can be fetched from, if anywhere.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str
    mime_type: str = Field("application/octet-stream", alias="mimeType")
    size_bytes: int = Field(0, ge=0, alias="sizeBytes")
    content_ref: str | None = Field(None, alias="contentRef")


class Message(BaseModel):
    """A message in the local conversation state.

    The id is assigned at creation and never reused. Only an open assistant
    message has its content grown by the stream consumer.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    role: MessageRole
    content: str = ""
    type: MessageType = MessageType.TEXT
    timestamp: datetime = Field(default_factory=datetime.now)
    file: FileAttachment | None = None
    image_url: str | None = Field(None, alias="imageUrl")


class ChatMessage(BaseModel):
    """A single role/content pair in a chat request history."""

    role: MessageRole = Field(..., description="Message role: 'user', 'assistant', or 'system'")
    content: str = Field(..., description="The message content")


class ChatRequest(BaseModel):
    """Request payload for the chat relay endpoint.

    Attributes:
        messages: Ordered conversation history, newest last.
        detailed_mode: Use the higher sampling temperature.
        thread_id: Upstream assistant thread to reuse, if any.
    """

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(..., min_length=1)
    detailed_mode: bool = Field(False, alias="detailedMode")
    thread_id: str | None = Field(None, alias="threadId")


class ImageResponse(BaseModel):
    """Non-streamed reply for image generation requests."""

    model_config = ConfigDict(populate_by_name=True)

    role: MessageRole = MessageRole.ASSISTANT
    content: str
    type: MessageType = MessageType.IMAGE
    image_url: str | None = Field(None, alias="imageUrl")


class ImageRequest(BaseModel):
    prompt: str = Field(..., min_length=1)


class ImageUrlResponse(BaseModel):
    url: str


class ErrorEnvelope(BaseModel):
    """JSON body returned for every failed request."""

    error: str
    details: str | None = None


class ThreadCreate(BaseModel):
    name: str = Field(..., min_length=1)


class Thread(BaseModel):
    """A persisted chat thread."""

    id: str
    name: str
    created_at: str


class MessageCreate(BaseModel):
    role: MessageRole
    content: str
    type: MessageType = MessageType.TEXT
    image_url: str | None = None


class StoredMessage(BaseModel):
    """A message persisted under a thread."""

    id: str
    thread_id: str
    role: MessageRole
    content: str
    type: MessageType = MessageType.TEXT
    image_url: str | None = None
    created_at: str


class Document(BaseModel):
    """A file indexed in the vector store.

    Attributes:
        id: Vector-store file identifier.
        filename: Original filename ("Untitled" when unknown).
        bytes: Storage used by the indexed file.
        created_at: Unix timestamp of indexing.
        status: Indexing status reported by the vector store.
    """

    id: str
    filename: str = "Untitled"
    bytes: int = 0
    created_at: int = 0
    status: str | None = None


class DocumentList(BaseModel):
    success: bool = True
    files: list[Document]


class UploadedDocument(BaseModel):
    id: str
    filename: str
    original_file_id: str
    status: str | None = None


class DocumentUploadResponse(BaseModel):
    success: bool = True
    data: UploadedDocument


class ReadFileResponse(BaseModel):
    """Text pulled out of an uploaded file."""

    text: str
    filename: str
    pages: int | None = None
