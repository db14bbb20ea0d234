"""Client-side consumer for the chat relay stream.

Sends the conversation, reads the response body incrementally, and grows
one assistant placeholder in the conversation state as frames arrive.

Outcomes:
    - completed: the ``[DONE]`` frame arrived; the reply is kept.
    - ended: the body ended without ``[DONE]``; the partial reply is kept.
    - cancelled: ``cancel()`` was called; the partial reply is kept.
    - failed: transport error or error status; the placeholder is removed.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from pydantic import ValidationError

from assistant_relay.client.api import ApiClient
from assistant_relay.client.conversation import ConversationStateError, ConversationStore
from assistant_relay.models.schemas import (
    ErrorEnvelope,
    FileAttachment,
    ImageResponse,
    Message,
    MessageRole,
    MessageType,
)
from assistant_relay.streaming.cancellation import CancellationToken
from assistant_relay.streaming.framer import FrameDecoder

logger = logging.getLogger(__name__)


class StreamOutcome(str, Enum):
    COMPLETED = "completed"
    ENDED = "ended"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class StreamResult:
    """What one ``send`` call produced."""

    user_message: Message
    reply: Message | None
    outcome: StreamOutcome
    error: str | None = None


class StreamConsumer:
    """Issues relay requests and applies the streamed reply to the conversation.

    One request at a time; ``cancel()`` aborts the in-flight one
    immediately, even while a read is pending.
    """

    def __init__(self, conversation: ConversationStore, api: ApiClient) -> None:
        self._conversation = conversation
        self._api = api
        self._token: CancellationToken | None = None

    @property
    def streaming(self) -> bool:
        return self._token is not None

    def cancel(self) -> bool:
        """Cancel the in-flight request.

        Returns:
            True if a request was in flight.
        """
        if self._token is None:
            return False
        self._token.cancel("stopped by user")
        return True

    async def send(
        self,
        thread_id: str,
        content: str,
        *,
        attachment: FileAttachment | None = None,
        detailed: bool = True,
        persist: bool = False,
        on_update: Callable[[Message], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> StreamResult:
        """Send a user message and stream the assistant reply into the thread.

        Args:
            thread_id: Conversation to append to.
            content: User message text, stored verbatim.
            attachment: File the message was built from, if any.
            detailed: Ask the relay for detailed mode.
            persist: Also store both messages through the threads API.
            on_update: Called with the placeholder once it is opened and after
                every applied delta.
            on_error: Called with a user-facing message when the request fails.

        Returns:
            The user message, the reply (None when removed) and the outcome.
        """
        if self._token is not None:
            raise ConversationStateError("A reply is already streaming")

        user_message = self._conversation.append(
            thread_id,
            Message(
                role=MessageRole.USER,
                content=content,
                type=MessageType.FILE if attachment else MessageType.TEXT,
                file=attachment,
            ),
        )
        history = self._conversation.history(thread_id)
        placeholder = self._conversation.open_assistant(thread_id)
        token = CancellationToken()
        self._token = token
        if on_update:
            on_update(placeholder)

        payload = {
            "messages": [m.model_dump(mode="json") for m in history],
            "detailedMode": detailed,
        }

        try:
            if persist:
                await self._persist(thread_id, user_message)
            outcome = await self._until_cancelled(
                self._exchange(payload, thread_id, placeholder, token, on_update), token
            )
        except httpx.HTTPStatusError as e:
            error = _error_message(e.response)
            return self._fail(thread_id, user_message, placeholder, error, on_error)
        except httpx.HTTPError as e:
            if not token.cancelled:
                error = f"Connection failed: {e}"
                return self._fail(thread_id, user_message, placeholder, error, on_error)
            outcome = StreamOutcome.CANCELLED
        finally:
            self._token = None

        reply = self._conversation.finalize(thread_id, placeholder.id)
        logger.info(f"Reply {reply.id} {outcome.value} with {len(reply.content)} chars")
        if persist and reply.content:
            await self._persist(thread_id, reply)
        return StreamResult(user_message=user_message, reply=reply, outcome=outcome)

    async def _exchange(
        self,
        payload: dict[str, Any],
        thread_id: str,
        placeholder: Message,
        token: CancellationToken,
        on_update: Callable[[Message], None] | None,
    ) -> StreamOutcome:
        async with self._api.http.stream(
            "POST",
            "/api/chat",
            json=payload,
            headers={"Accept": "text/event-stream"},
        ) as response:
            if response.is_error:
                await response.aread()
            response.raise_for_status()
            if response.headers.get("content-type", "").startswith("application/json"):
                return await self._apply_json_reply(response, thread_id, placeholder)
            return await self._read_frames(response, thread_id, placeholder, token, on_update)

    @staticmethod
    async def _until_cancelled(
        work: Coroutine[Any, Any, StreamOutcome],
        token: CancellationToken,
    ) -> StreamOutcome:
        """Run the request until it finishes or the token is cancelled.

        Cancelling interrupts a pending connect or read at once. Deltas already
        applied to the placeholder are kept.
        """
        request = asyncio.create_task(work)
        stopped = asyncio.create_task(token.wait())
        try:
            done, _ = await asyncio.wait({request, stopped}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            request.cancel()
            raise
        finally:
            stopped.cancel()

        if request in done:
            return request.result()
        request.cancel()
        await asyncio.gather(request, return_exceptions=True)
        return StreamOutcome.CANCELLED

    async def _read_frames(
        self,
        response: httpx.Response,
        thread_id: str,
        placeholder: Message,
        token: CancellationToken,
        on_update: Callable[[Message], None] | None,
    ) -> StreamOutcome:
        decoder = FrameDecoder()
        async for chunk in response.aiter_bytes():
            for frame in decoder.feed(chunk):
                if token.cancelled:
                    return StreamOutcome.CANCELLED
                if frame.terminal:
                    return StreamOutcome.COMPLETED
                self._conversation.append_delta(thread_id, placeholder.id, frame.content)
                if on_update:
                    on_update(placeholder)
            if token.cancelled:
                return StreamOutcome.CANCELLED

        for frame in decoder.flush():
            if frame.terminal:
                return StreamOutcome.COMPLETED
            self._conversation.append_delta(thread_id, placeholder.id, frame.content)
            if on_update:
                on_update(placeholder)
        logger.warning(f"Stream for reply {placeholder.id} ended without a terminal frame")
        return StreamOutcome.ENDED

    async def _apply_json_reply(
        self,
        response: httpx.Response,
        thread_id: str,
        placeholder: Message,
    ) -> StreamOutcome:
        reply = ImageResponse.model_validate_json(await response.aread())
        self._conversation.append_delta(thread_id, placeholder.id, reply.content)
        placeholder.type = reply.type
        placeholder.image_url = reply.image_url
        return StreamOutcome.COMPLETED

    def _fail(
        self,
        thread_id: str,
        user_message: Message,
        placeholder: Message,
        error: str,
        on_error: Callable[[str], None] | None,
    ) -> StreamResult:
        logger.error(f"Chat request failed: {error}")
        self._conversation.discard(thread_id, placeholder.id)
        if on_error:
            on_error(error)
        return StreamResult(
            user_message=user_message,
            reply=None,
            outcome=StreamOutcome.FAILED,
            error=error,
        )

    async def _persist(self, thread_id: str, message: Message) -> None:
        try:
            await self._api.append_message(
                thread_id, message.role, message.content, message.type, message.image_url
            )
        except httpx.HTTPError as e:
            logger.warning(f"Failed to store {message.role.value} message in thread {thread_id}: {e}")


def _error_message(response: httpx.Response) -> str:
    """Prefer the relay's error envelope over the bare status code."""
    try:
        return ErrorEnvelope.model_validate_json(response.content).error
    except ValidationError:
        return f"HTTP {response.status_code}"
