"""Upstream adapter: one ordered delta sequence from three OpenAI protocols.

Core module for talking to the assistant platform.

Upstream shapes:

1. **Completion chunks** - ``chat.completions`` with ``stream=True``. Used for
   plain chat, file-grounded questions and the retrieval fallback.
2. **Run events** - an Assistants run streamed over a thread. Message delta
   events carry lists of content parts that are unwrapped the same way the
   browser unwraps frames.
3. **Polled text** - an Assistants run polled to completion. The final
   answer is re-chunked into fixed-size slices so the client still sees a
   stream.

All three go through ``normalize_upstream`` so the rest of the relay only
ever sees plain strings. Upstream exceptions are not interpreted here; they
propagate to the relay.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from enum import Enum
from typing import Any

from openai import AsyncOpenAI

from assistant_relay.models.schemas import ChatMessage, ChatRequest, MessageRole
from assistant_relay.streaming.cancellation import CancellationToken
from assistant_relay.streaming.framer import normalize_content
from assistant_relay.upstream.config import UpstreamConfig, UpstreamMode, get_upstream_config
from assistant_relay.upstream.intent import (
    AttachedFile,
    has_citation,
    is_useful_delta,
    parse_attached_file,
)

logger = logging.getLogger(__name__)

TERMINAL_RUN_STATES = frozenset({"completed", "failed", "cancelled", "expired", "incomplete"})
MESSAGE_DELTA_EVENT = "thread.message.delta"

FILE_GROUNDED_INSTRUCTIONS = (
    "You are a helpful assistant. Answer using ONLY the document below as your "
    "knowledge. If the document does not contain the answer, say so.\n\n"
    "Document:\n{body}"
)


class UpstreamError(Exception):
    """Base class for failures raised by the upstream adapter itself."""


class PollingTimeoutError(UpstreamError):
    """Raised when a polled run never reaches a terminal state."""


class UpstreamShape(str, Enum):
    """Response shapes produced by the upstream platform."""

    COMPLETION_CHUNK = "completion_chunk"
    RUN_EVENT = "run_event"
    POLLED_TEXT = "polled_text"


class RelayMode(str, Enum):
    """How a single request is served."""

    FILE_GROUNDED = "file_grounded"
    RETRIEVAL = "retrieval"
    CONFIRMED_SOURCE = "confirmed_source"
    PLAIN = "plain"


def _as_dict(obj: Any) -> dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    return {}


def normalize_upstream(shape: UpstreamShape, item: Any) -> str:
    """Extract the text carried by one upstream item.

    Args:
        shape: Which upstream protocol produced the item.
        item: A completion chunk, an assistant stream event, or a thread
            message (SDK objects or their dict dumps).

    Returns:
        The delta text, or an empty string when the item carries none.
    """
    if shape is UpstreamShape.COMPLETION_CHUNK:
        choices = _as_dict(item).get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("delta") or {}).get("content") or ""

    if shape is UpstreamShape.RUN_EVENT:
        event = _as_dict(item)
        if event.get("event") != MESSAGE_DELTA_EVENT:
            return ""
        delta = (event.get("data") or {}).get("delta") or {}
        return normalize_content(delta.get("content"))

    if shape is UpstreamShape.POLLED_TEXT:
        message = _as_dict(item)
        parts = [p for p in message.get("content") or [] if p.get("type", "text") == "text"]
        return normalize_content(parts)

    raise ValueError(f"Unknown upstream shape: {shape}")


def chunk_text(text: str, size: int) -> list[str]:
    """Split text into consecutive slices of at most ``size`` characters."""
    if size < 1:
        raise ValueError("Chunk size must be positive")
    return [text[i:i + size] for i in range(0, len(text), size)]


def latest_user_message(messages: list[ChatMessage]) -> ChatMessage | None:
    for message in reversed(messages):
        if message.role is MessageRole.USER:
            return message
    return None


class UpstreamAdapter:
    """Turns a chat request into an ordered stream of text deltas.

    Wraps AsyncOpenAI with:
    - Content-based mode selection (attached file vs. configured variant)
    - Retrieval runs with a plain-completion fallback
    - Polled runs re-chunked into synthetic deltas
    - Cancellation checks at every suspension point
    """

    def __init__(
        self,
        config: UpstreamConfig | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            config: Optional upstream configuration.
                    Loads from environment if not provided.
            client: Optional pre-built OpenAI client.
        """
        self._config = config or get_upstream_config()
        self._client = client or AsyncOpenAI(
            api_key=self._config.api_key,
            base_url=self._config.base_url,
        )

    @property
    def config(self) -> UpstreamConfig:
        return self._config

    def select_mode(self, request: ChatRequest) -> RelayMode:
        """Choose how to serve a request from its content and configuration."""
        latest = latest_user_message(request.messages)
        if latest is not None and parse_attached_file(latest.content) is not None:
            return RelayMode.FILE_GROUNDED
        return {
            UpstreamMode.RETRIEVAL: RelayMode.RETRIEVAL,
            UpstreamMode.CONFIRMED_SOURCE: RelayMode.CONFIRMED_SOURCE,
            UpstreamMode.PLAIN: RelayMode.PLAIN,
        }[self._config.mode]

    async def stream(
        self,
        request: ChatRequest,
        mode: RelayMode,
        token: CancellationToken,
    ) -> AsyncIterator[str]:
        """Yield response deltas for a request.

        Args:
            request: Validated chat request.
            mode: Mode picked by ``select_mode``.
            token: Cancellation token checked at every suspension point.

        Yields:
            Non-empty text deltas in output order.

        Raises:
            StreamCancelled: When the token is cancelled mid-request.
        """
        temperature = self._config.temperature_for(request.detailed_mode)
        history = [{"role": m.role.value, "content": m.content} for m in request.messages]

        if mode is RelayMode.FILE_GROUNDED:
            latest = latest_user_message(request.messages)
            attached = parse_attached_file(latest.content)
            deltas = self._stream_file_grounded(attached, temperature, token)
        elif mode is RelayMode.RETRIEVAL:
            deltas = self._stream_retrieval(request, history, temperature, token)
        elif mode is RelayMode.CONFIRMED_SOURCE:
            deltas = self._stream_confirmed_source(request, history, temperature, token)
        else:
            deltas = self._stream_completion(history, temperature, token)

        async with aclosing(deltas):
            async for text in deltas:
                yield text

    async def _stream_completion(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        token: CancellationToken,
    ) -> AsyncIterator[str]:
        token.raise_if_cancelled()
        stream = await self._client.chat.completions.create(
            model=self._config.model_name,
            messages=messages,
            temperature=temperature,
            max_tokens=self._config.max_tokens,
            stream=True,
        )
        async for chunk in stream:
            token.raise_if_cancelled()
            text = normalize_upstream(UpstreamShape.COMPLETION_CHUNK, chunk)
            if text:
                yield text

    async def _complete(self, messages: list[dict[str, str]], temperature: float) -> str:
        completion = await self._client.chat.completions.create(
            model=self._config.model_name,
            messages=messages,
            temperature=temperature,
            max_tokens=self._config.max_tokens,
        )
        return completion.choices[0].message.content or ""

    async def _stream_file_grounded(
        self,
        attached: AttachedFile,
        temperature: float,
        token: CancellationToken,
    ) -> AsyncIterator[str]:
        logger.info(f"Answering from attached file {attached.name!r} ({len(attached.body)} chars)")
        messages = [
            {"role": "system", "content": FILE_GROUNDED_INSTRUCTIONS.format(body=attached.body)},
            {"role": "user", "content": attached.query},
        ]
        async for text in self._stream_completion(messages, temperature, token):
            yield text

    async def _open_thread(self, request: ChatRequest, token: CancellationToken) -> str:
        """Create or reuse an upstream thread and append the history to it.

        A fresh thread receives every user/assistant message in order. A
        reused thread already holds the earlier turns, so only the newest
        message is appended.
        """
        if request.thread_id:
            thread_id = request.thread_id
            pending = request.messages[-1:]
        else:
            thread = await self._client.beta.threads.create()
            thread_id = thread.id
            pending = request.messages

        for message in pending:
            token.raise_if_cancelled()
            # Threads only hold user/assistant turns; system text goes on the run
            if message.role is MessageRole.SYSTEM or not message.content:
                continue
            await self._client.beta.threads.messages.create(
                thread_id,
                role=message.role.value,
                content=message.content,
            )
        return thread_id

    def _run_options(self, request: ChatRequest, temperature: float) -> dict[str, Any]:
        options: dict[str, Any] = {
            "assistant_id": self._config.assistant_id,
            "temperature": temperature,
        }
        instructions = "\n\n".join(
            m.content for m in request.messages if m.role is MessageRole.SYSTEM and m.content
        )
        if instructions:
            options["additional_instructions"] = instructions
        return options

    async def _stream_run(
        self,
        request: ChatRequest,
        temperature: float,
        token: CancellationToken,
    ) -> AsyncIterator[str]:
        thread_id = await self._open_thread(request, token)
        token.raise_if_cancelled()
        async with self._client.beta.threads.runs.stream(
            thread_id=thread_id,
            **self._run_options(request, temperature),
        ) as run_stream:
            async for event in run_stream:
                token.raise_if_cancelled()
                text = normalize_upstream(UpstreamShape.RUN_EVENT, event)
                if text:
                    yield text

    async def _stream_retrieval(
        self,
        request: ChatRequest,
        history: list[dict[str, str]],
        temperature: float,
        token: CancellationToken,
    ) -> AsyncIterator[str]:
        useful = False
        emitted: list[str] = []

        async for text in self._stream_run(request, temperature, token):
            if not useful and is_useful_delta(text):
                useful = True
            emitted.append(text)
            yield text

        if useful and "".join(emitted).strip():
            return

        logger.info("Retrieval answer looked unhelpful; continuing with a plain completion")
        async for text in self._stream_completion(history, temperature, token):
            yield text

    async def _run_to_completion(
        self,
        request: ChatRequest,
        temperature: float,
        token: CancellationToken,
    ) -> str:
        """Run the assistant, poll until it stops, and return its answer text.

        Raises:
            PollingTimeoutError: If the run is still active after
                ``max_poll_attempts`` checks.
        """
        thread_id = await self._open_thread(request, token)
        run = await self._client.beta.threads.runs.create(
            thread_id=thread_id,
            **self._run_options(request, temperature),
        )

        attempts = 0
        while run.status not in TERMINAL_RUN_STATES:
            if attempts >= self._config.max_poll_attempts:
                await self._cancel_run(thread_id, run.id)
                raise PollingTimeoutError(
                    f"Run {run.id} still {run.status} after {attempts} status checks"
                )
            await token.sleep(self._config.poll_interval)
            run = await self._client.beta.threads.runs.retrieve(run.id, thread_id=thread_id)
            attempts += 1

        if run.status != "completed":
            logger.warning(f"Run {run.id} ended with status {run.status}")
            return ""

        page = await self._client.beta.threads.messages.list(
            thread_id,
            run_id=run.id,
            order="desc",
        )
        for message in page.data:
            if message.role == MessageRole.ASSISTANT.value:
                return normalize_upstream(UpstreamShape.POLLED_TEXT, message)
        return ""

    async def _cancel_run(self, thread_id: str, run_id: str) -> None:
        try:
            await self._client.beta.threads.runs.cancel(run_id, thread_id=thread_id)
        except Exception as e:
            logger.warning(f"Failed to cancel abandoned run {run_id}: {e}")

    async def _stream_confirmed_source(
        self,
        request: ChatRequest,
        history: list[dict[str, str]],
        temperature: float,
        token: CancellationToken,
    ) -> AsyncIterator[str]:
        answer = await self._run_to_completion(request, temperature, token)
        if not has_citation(answer):
            logger.info("Retrieval answer has no source citation; using a plain completion")
            token.raise_if_cancelled()
            answer = await self._complete(history, temperature)

        for index, piece in enumerate(chunk_text(answer, self._config.chunk_size)):
            if index:
                await token.sleep(self._config.chunk_delay)
            token.raise_if_cancelled()
            yield piece

    async def close(self) -> None:
        """Close the underlying OpenAI client."""
        await self._client.close()


# Module-level singleton instance
_upstream_adapter: UpstreamAdapter | None = None


def get_upstream_adapter() -> UpstreamAdapter:
    """Get or create the global upstream adapter.

    Returns:
        The UpstreamAdapter instance.
    """
    global _upstream_adapter
    if _upstream_adapter is None:
        _upstream_adapter = UpstreamAdapter()
    return _upstream_adapter


async def close_upstream_adapter() -> None:
    """Close the global adapter if it was ever created."""
    global _upstream_adapter
    if _upstream_adapter is not None:
        await _upstream_adapter.close()
        _upstream_adapter = None
