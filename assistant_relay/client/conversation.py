"""In-memory conversation state shared by the UI and the stream consumer.

Maps a thread id to its ordered message list. Committed history is
append-only; at most one trailing assistant message per thread is open and
accumulating streamed text.
"""

import logging
from datetime import datetime

from assistant_relay.models.schemas import (
    ChatMessage,
    FileAttachment,
    Message,
    MessageRole,
    MessageType,
    StoredMessage,
)
from assistant_relay.upstream.intent import parse_attached_file

logger = logging.getLogger(__name__)


class ConversationStateError(Exception):
    """Raised when a mutation would break the conversation invariants."""


class ConversationStore:
    """Ordered message log per thread."""

    def __init__(self) -> None:
        self._threads: dict[str, list[Message]] = {}
        self._open: dict[str, str] = {}

    def thread_ids(self) -> list[str]:
        return list(self._threads)

    def messages(self, thread_id: str) -> list[Message]:
        """Return a snapshot of the thread's messages, oldest first."""
        return list(self._threads.get(thread_id, []))

    def history(self, thread_id: str) -> list[ChatMessage]:
        """Return the role/content pairs sent to the relay."""
        return [
            ChatMessage(role=m.role, content=m.content)
            for m in self._threads.get(thread_id, [])
        ]

    def open_message_id(self, thread_id: str) -> str | None:
        return self._open.get(thread_id)

    def load(self, thread_id: str, messages: list[Message]) -> None:
        """Replace a thread's history, e.g. with messages fetched from storage."""
        if thread_id in self._open:
            raise ConversationStateError(f"Thread {thread_id} is streaming; cannot reload it")
        self._threads[thread_id] = list(messages)

    def append(self, thread_id: str, message: Message) -> Message:
        """Append a committed message to the end of the thread."""
        if thread_id in self._open:
            raise ConversationStateError(f"Thread {thread_id} already has a reply streaming")
        self._threads.setdefault(thread_id, []).append(message)
        return message

    def open_assistant(self, thread_id: str) -> Message:
        """Append an empty assistant placeholder and mark it as open."""
        placeholder = self.append(thread_id, Message(role=MessageRole.ASSISTANT))
        self._open[thread_id] = placeholder.id
        return placeholder

    def append_delta(self, thread_id: str, message_id: str, text: str) -> Message:
        """Grow the open placeholder's content in place."""
        message = self._require_open(thread_id, message_id)
        message.content += text
        return message

    def finalize(self, thread_id: str, message_id: str) -> Message:
        """Close the open placeholder; its content is frozen from now on."""
        message = self._require_open(thread_id, message_id)
        del self._open[thread_id]
        return message

    def discard(self, thread_id: str, message_id: str) -> None:
        """Remove the open placeholder after a failed request."""
        message = self._require_open(thread_id, message_id)
        self._threads[thread_id].remove(message)
        del self._open[thread_id]
        logger.debug(f"Discarded reply {message_id} from thread {thread_id}")

    def clear(self, thread_id: str) -> None:
        self._open.pop(thread_id, None)
        self._threads.pop(thread_id, None)

    def _require_open(self, thread_id: str, message_id: str) -> Message:
        if self._open.get(thread_id) != message_id:
            raise ConversationStateError(f"Message {message_id} is not open in thread {thread_id}")
        for message in reversed(self._threads[thread_id]):
            if message.id == message_id:
                return message
        raise ConversationStateError(f"Message {message_id} not found in thread {thread_id}")


def message_from_stored(stored: StoredMessage) -> Message:
    """Rebuild a conversation message from its persisted form.

    User messages built from a file get their attachment back; image replies
    keep their type and URL.
    """
    attached = parse_attached_file(stored.content) if stored.role is MessageRole.USER else None
    return Message(
        id=stored.id,
        role=stored.role,
        content=stored.content,
        type=MessageType.FILE if attached else stored.type,
        timestamp=datetime.fromisoformat(stored.created_at),
        file=FileAttachment(name=attached.name) if attached else None,
        image_url=stored.image_url,
    )
