"""Streaming chat relay endpoint.

Bridges one HTTP request to one upstream adapter run:

    received -> dispatched(mode) -> streaming -> completed | aborted | failed

Deltas are written as ``data:`` frames and a completed stream ends with the
``[DONE]`` sentinel. An aborted or failed stream is closed without it, so the
client can tell "upstream finished" from "the stream stopped".
"""

import asyncio
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from assistant_relay.api.errors import ApiError, error_response
from assistant_relay.models.schemas import ChatRequest, ImageResponse
from assistant_relay.streaming.cancellation import CancellationToken, StreamCancelled
from assistant_relay.streaming.framer import encode_delta, encode_done
from assistant_relay.upstream.adapter import (
    RelayMode,
    UpstreamAdapter,
    get_upstream_adapter,
    latest_user_message,
)
from assistant_relay.upstream.intent import is_image_request, parse_attached_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

IMAGE_REPLY = "I've generated this image based on your request:"
IMAGE_PLACEHOLDER_URL = "/placeholder.svg?height=512&width=512"

DISCONNECT_POLL_INTERVAL = 0.1
# nginx "client closed request"; the client is already gone
CLIENT_CLOSED_REQUEST = 499


def upstream_adapter() -> UpstreamAdapter:
    """Resolve the upstream adapter, reporting missing configuration as 500."""
    try:
        return get_upstream_adapter()
    except ValueError as e:
        raise ApiError("Upstream is not configured", details=str(e)) from e


class RelayState(str, Enum):
    RECEIVED = "received"
    DISPATCHED = "dispatched"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass
class StreamSession:
    """Transient state for one in-flight relay request."""

    id: str = field(default_factory=lambda: uuid4().hex[:12])
    token: CancellationToken = field(default_factory=CancellationToken)
    state: RelayState = RelayState.RECEIVED
    mode: RelayMode | None = None
    deltas: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.deltas)

    def transition(self, state: RelayState) -> None:
        logger.info(f"Relay {self.id}: {self.state.value} -> {state.value}")
        self.state = state


def wants_image(request: ChatRequest) -> bool:
    """Check the newest user turn for an image generation request.

    For attached-file messages only the user's query is inspected, not the
    file body.
    """
    latest = latest_user_message(request.messages)
    if latest is None:
        return False
    attached = parse_attached_file(latest.content)
    return is_image_request(attached.query if attached else latest.content)


async def relay_frames(
    session: StreamSession,
    first: str | None,
    deltas: AsyncGenerator[str, None],
    is_disconnected: Callable[[], Awaitable[bool]],
) -> AsyncIterator[str]:
    """Encode adapter deltas as wire frames until done, cancelled or failed.

    Args:
        session: Session for this request; its token is shared with the adapter.
        first: Delta already pulled before the response was opened, if any.
        deltas: The adapter's remaining delta stream.
        is_disconnected: Probe for the client having gone away.

    Yields:
        Encoded frames, ending with ``[DONE]`` only when the adapter finished.
    """

    async def client_gone() -> bool:
        if not session.token.cancelled and await is_disconnected():
            session.token.cancel("client disconnected")
        return session.token.cancelled

    text = first
    try:
        while text is not None:
            if await client_gone():
                session.transition(RelayState.ABORTED)
                return
            session.deltas.append(text)
            yield encode_delta(text)
            try:
                text = await anext(deltas)
            except StopAsyncIteration:
                text = None

        if await client_gone():
            session.transition(RelayState.ABORTED)
            return
        session.transition(RelayState.COMPLETED)
        yield encode_done()
    except StreamCancelled:
        session.transition(RelayState.ABORTED)
    except asyncio.CancelledError:
        session.token.cancel("response task cancelled")
        session.transition(RelayState.ABORTED)
        raise
    except Exception as e:
        logger.error(f"Relay {session.id} interrupted after {len(session.deltas)} deltas: {e}")
        session.transition(RelayState.FAILED)
    finally:
        await deltas.aclose()
        logger.debug(f"Relay {session.id} sent {len(session.text)} chars")


async def _next_delta(deltas: AsyncGenerator[str, None]) -> str | None:
    try:
        return await anext(deltas)
    except StopAsyncIteration:
        return None


async def _wait_for_disconnect(is_disconnected: Callable[[], Awaitable[bool]]) -> None:
    while not await is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


async def pull_first_delta(
    session: StreamSession,
    deltas: AsyncGenerator[str, None],
    is_disconnected: Callable[[], Awaitable[bool]],
) -> str | None:
    """Pull the first delta while watching for the client to go away.

    No frame has been written yet, so a polled run or thread setup upstream
    is only interrupted by this watcher. On disconnect the session token is
    cancelled and the pending pull is cancelled with it.

    Returns:
        The first delta, or None if the adapter finished without output.

    Raises:
        StreamCancelled: If the client disconnected first.
    """
    pull = asyncio.create_task(_next_delta(deltas))
    watch = asyncio.create_task(_wait_for_disconnect(is_disconnected))
    try:
        done, _ = await asyncio.wait({pull, watch}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        pull.cancel()
        raise
    finally:
        watch.cancel()

    if pull in done:
        return pull.result()

    session.token.cancel("client disconnected")
    pull.cancel()
    await asyncio.gather(pull, return_exceptions=True)
    watch.result()
    raise StreamCancelled(session.token.reason)


async def _parse_chat_request(request: Request) -> ChatRequest:
    """Read and validate the request body.

    Raises:
        ValueError: If the body is not JSON or fails validation.
    """
    try:
        body = await request.json()
    except UnicodeDecodeError as e:
        raise ValueError(f"Body is not valid UTF-8: {e}") from e
    return ChatRequest.model_validate(body)


@router.post("/chat", response_model=None)
async def chat(
    request: Request,
    adapter: UpstreamAdapter = Depends(upstream_adapter),
) -> Response:
    """Relay a conversation to the upstream model and stream the reply.

    Accepts ``{"messages": [{role, content}, ...], "detailedMode": bool}``.

    Returns:
        An event stream of ``data:`` frames, a single JSON image reply, or
        a 500 error envelope if the request fails before streaming starts.
    """
    session = StreamSession()

    try:
        chat_request = await _parse_chat_request(request)
    except ValueError as e:
        logger.warning(f"Relay {session.id}: rejected malformed request: {e}")
        session.transition(RelayState.FAILED)
        return error_response("Invalid chat request", str(e))

    if wants_image(chat_request):
        logger.info(f"Relay {session.id}: image request, skipping upstream")
        session.transition(RelayState.COMPLETED)
        reply = ImageResponse(content=IMAGE_REPLY, image_url=IMAGE_PLACEHOLDER_URL)
        return JSONResponse(content=reply.model_dump(mode="json", by_alias=True))

    session.mode = adapter.select_mode(chat_request)
    session.transition(RelayState.DISPATCHED)
    logger.info(
        f"Relay {session.id}: mode={session.mode.value} "
        f"messages={len(chat_request.messages)} detailed={chat_request.detailed_mode}"
    )

    deltas = adapter.stream(chat_request, session.mode, session.token)
    try:
        first = await pull_first_delta(session, deltas, request.is_disconnected)
    except StreamCancelled:
        logger.info(f"Relay {session.id}: client left before the first delta")
        session.transition(RelayState.ABORTED)
        await deltas.aclose()
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    except Exception as e:
        logger.exception(f"Relay {session.id}: upstream failed before streaming")
        session.transition(RelayState.FAILED)
        await deltas.aclose()
        return error_response("Failed to process your request", str(e))

    session.transition(RelayState.STREAMING)
    return StreamingResponse(
        relay_frames(session, first, deltas, request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
