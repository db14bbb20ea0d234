"""Unit tests for the upstream adapter.

The OpenAI client is replaced by mocks that replay completion chunks, run
events and polled runs.
"""

from collections.abc import AsyncIterator
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_check as check

from assistant_relay.models.schemas import ChatMessage, ChatRequest, MessageRole
from assistant_relay.streaming.cancellation import CancellationToken, StreamCancelled
from assistant_relay.upstream.adapter import (
    PollingTimeoutError,
    RelayMode,
    UpstreamAdapter,
    UpstreamShape,
    chunk_text,
    normalize_upstream,
)
from assistant_relay.upstream.config import UpstreamConfig, UpstreamMode

REFUSAL = "I do not have that information."


class Dumpable(SimpleNamespace):
    """Attribute access plus ``model_dump``, like an SDK object."""

    def model_dump(self) -> dict[str, Any]:
        return vars(self)


async def replay(items: list[Any]) -> AsyncIterator[Any]:
    for item in items:
        yield item


class FakeRunStream:
    """Async context manager yielding recorded run events."""

    def __init__(self, events: list[dict[str, Any]]) -> None:
        self._events = events

    async def __aenter__(self) -> "FakeRunStream":
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return replay(self._events)


def completion_chunk(text: str) -> dict[str, Any]:
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


def message_delta(text: str) -> dict[str, Any]:
    return {
        "event": "thread.message.delta",
        "data": {"delta": {"content": [{"index": 0, "type": "text", "text": {"value": text}}]}},
    }


def make_client(
    stream_deltas: list[str] | None = None,
    completion: str = "",
    run_events: list[dict[str, Any]] | None = None,
    run_statuses: list[str] | None = None,
    answer: str = "",
) -> MagicMock:
    """Build a mock AsyncOpenAI client.

    Args:
        stream_deltas: Texts replayed by a streamed chat completion.
        completion: Text of a non-streamed chat completion.
        run_events: Events replayed by ``runs.stream``.
        run_statuses: Status after ``runs.create`` and each ``runs.retrieve``.
        answer: Text of the assistant message listed after a polled run.
    """
    client = MagicMock()

    async def create_completion(**kwargs: Any) -> Any:
        if kwargs.get("stream"):
            return replay([completion_chunk(t) for t in stream_deltas or []])
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=completion))])

    client.chat.completions.create = AsyncMock(side_effect=create_completion)
    client.beta.threads.create = AsyncMock(return_value=SimpleNamespace(id="thread_1"))
    client.beta.threads.messages.create = AsyncMock()
    client.beta.threads.runs.stream = MagicMock(return_value=FakeRunStream(run_events or []))

    statuses = [SimpleNamespace(id="run_1", status=s) for s in run_statuses or ["completed"]]
    client.beta.threads.runs.create = AsyncMock(return_value=statuses[0])
    client.beta.threads.runs.retrieve = AsyncMock(side_effect=statuses[1:] or None)
    client.beta.threads.runs.cancel = AsyncMock()
    client.beta.threads.messages.list = AsyncMock(
        return_value=SimpleNamespace(
            data=[
                Dumpable(
                    role="assistant",
                    content=[{"type": "text", "text": {"value": answer, "annotations": []}}],
                )
            ]
        )
    )
    client.close = AsyncMock()
    return client


def make_request(*contents: str, detailed: bool = False, thread_id: str | None = None) -> ChatRequest:
    roles = [MessageRole.USER, MessageRole.ASSISTANT]
    messages = [ChatMessage(role=roles[i % 2], content=c) for i, c in enumerate(contents)]
    return ChatRequest(messages=messages, detailed_mode=detailed, thread_id=thread_id)


async def collect(adapter: UpstreamAdapter, request: ChatRequest, token: CancellationToken | None = None) -> list[str]:
    mode = adapter.select_mode(request)
    return [text async for text in adapter.stream(request, mode, token or CancellationToken())]


def with_mode(config: UpstreamConfig, mode: UpstreamMode) -> UpstreamConfig:
    return config.model_copy(update={"mode": mode})


class TestNormalizeUpstream:
    """Tests for the per-shape delta extraction."""

    def test_completion_chunk(self) -> None:
        """Completion chunks carry text in the first choice's delta."""
        check.equal(normalize_upstream(UpstreamShape.COMPLETION_CHUNK, completion_chunk("hi")), "hi")
        check.equal(normalize_upstream(UpstreamShape.COMPLETION_CHUNK, {"choices": []}), "")
        check.equal(
            normalize_upstream(UpstreamShape.COMPLETION_CHUNK, {"choices": [{"delta": {}}]}),
            "",
        )

    def test_run_event_message_delta(self) -> None:
        """Message delta events are unwrapped like browser frames."""
        check.equal(normalize_upstream(UpstreamShape.RUN_EVENT, message_delta("abc")), "abc")

    def test_other_run_events_carry_no_text(self) -> None:
        """Lifecycle events are ignored."""
        event = {"event": "thread.run.created", "data": {"id": "run_1"}}

        check.equal(normalize_upstream(UpstreamShape.RUN_EVENT, event), "")

    def test_polled_message_text_parts(self) -> None:
        """Only text parts of a polled message are kept."""
        message = Dumpable(
            role="assistant",
            content=[
                {"type": "image_file", "image_file": {"file_id": "f"}},
                {"type": "text", "text": {"value": "answer"}},
            ],
        )

        check.equal(normalize_upstream(UpstreamShape.POLLED_TEXT, message), "answer")


class TestChunkText:
    """Tests for synthetic delta slicing."""

    def test_slices_in_order(self) -> None:
        """1300 characters at 512 per slice gives 512, 512, 276."""
        text = "".join(chr(ord("a") + i % 26) for i in range(1300))

        pieces = chunk_text(text, 512)

        check.equal([len(p) for p in pieces], [512, 512, 276])
        check.equal("".join(pieces), text)

    def test_empty_text(self) -> None:
        """No text means no slices."""
        check.equal(chunk_text("", 512), [])

    def test_rejects_non_positive_size(self) -> None:
        """Slice size must be at least one."""
        with pytest.raises(ValueError, match="positive"):
            chunk_text("abc", 0)


class TestSelectMode:
    """Tests for request mode selection."""

    def test_attached_file_is_file_grounded(self, upstream_config: UpstreamConfig) -> None:
        """An attached-file message overrides the configured mode."""
        config = with_mode(upstream_config, UpstreamMode.RETRIEVAL)
        adapter = UpstreamAdapter(config=config, client=make_client())
        request = make_request("Attached file (x.txt):\n\nHELLO\n\nUser query: summarize")

        check.equal(adapter.select_mode(request), RelayMode.FILE_GROUNDED)

    @pytest.mark.parametrize(
        ("mode", "expected"),
        [
            (UpstreamMode.RETRIEVAL, RelayMode.RETRIEVAL),
            (UpstreamMode.CONFIRMED_SOURCE, RelayMode.CONFIRMED_SOURCE),
            (UpstreamMode.PLAIN, RelayMode.PLAIN),
        ],
    )
    def test_configured_mode(
        self, upstream_config: UpstreamConfig, mode: UpstreamMode, expected: RelayMode
    ) -> None:
        """Without an attachment the configured variant is used."""
        adapter = UpstreamAdapter(config=with_mode(upstream_config, mode), client=make_client())

        check.equal(adapter.select_mode(make_request("hello")), expected)


class TestPlainMode:
    """Tests for streamed chat completions."""

    async def test_yields_deltas_in_order(self, upstream_config: UpstreamConfig) -> None:
        """Every non-empty chunk becomes one delta."""
        client = make_client(stream_deltas=["Hel", "", "lo", "!"])
        adapter = UpstreamAdapter(config=upstream_config, client=client)

        deltas = await collect(adapter, make_request("hi"))

        check.equal(deltas, ["Hel", "lo", "!"])

    async def test_sends_history_and_detailed_temperature(self, upstream_config: UpstreamConfig) -> None:
        """The full history goes upstream with the detailed-mode temperature."""
        client = make_client(stream_deltas=["ok"])
        adapter = UpstreamAdapter(config=upstream_config, client=client)

        await collect(adapter, make_request("hi", "hello", "how are you", detailed=True))

        kwargs = client.chat.completions.create.call_args.kwargs
        check.equal(kwargs["model"], "gpt-4o-mini")
        check.equal(kwargs["temperature"], 0.9)
        check.is_true(kwargs["stream"])
        check.equal(
            kwargs["messages"],
            [
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": "hello"},
                {"role": "user", "content": "how are you"},
            ],
        )

    async def test_cancelled_token_stops_before_upstream_call(
        self, upstream_config: UpstreamConfig
    ) -> None:
        """A cancelled request never reaches the upstream API."""
        client = make_client(stream_deltas=["never"])
        adapter = UpstreamAdapter(config=upstream_config, client=client)
        token = CancellationToken()
        token.cancel()

        with pytest.raises(StreamCancelled):
            await collect(adapter, make_request("hi"), token)

        client.chat.completions.create.assert_not_called()


class TestFileGroundedMode:
    """Tests for answering from an attached file."""

    async def test_file_body_becomes_system_context(self, upstream_config: UpstreamConfig) -> None:
        """The body is the system context and the query is the user turn."""
        client = make_client(stream_deltas=["It says HELLO."])
        adapter = UpstreamAdapter(config=upstream_config, client=client)
        request = make_request("Attached file (x.txt):\n\nHELLO\n\nUser query: summarize")

        deltas = await collect(adapter, request)

        messages = client.chat.completions.create.call_args.kwargs["messages"]
        check.equal(deltas, ["It says HELLO."])
        check.equal(len(messages), 2)
        check.equal(messages[0]["role"], "system")
        check.is_in("HELLO", messages[0]["content"])
        check.equal(messages[1], {"role": "user", "content": "summarize"})
        client.beta.threads.create.assert_not_called()


class TestRetrievalMode:
    """Tests for streamed assistant runs with a plain fallback."""

    async def test_useful_answer_is_not_supplemented(self, upstream_config: UpstreamConfig) -> None:
        """A useful run answer is relayed as-is."""
        events = [
            {"event": "thread.run.created", "data": {"id": "run_1"}},
            message_delta("The report "),
            message_delta("lists three risks."),
        ]
        client = make_client(run_events=events)
        adapter = UpstreamAdapter(config=with_mode(upstream_config, UpstreamMode.RETRIEVAL), client=client)

        deltas = await collect(adapter, make_request("what risks?"))

        check.equal(deltas, ["The report ", "lists three risks."])
        client.chat.completions.create.assert_not_called()

    async def test_refusal_triggers_plain_fallback(self, upstream_config: UpstreamConfig) -> None:
        """An unhelpful run answer is followed by a plain completion."""
        client = make_client(run_events=[message_delta(REFUSAL)], stream_deltas=["Paris", "."])
        adapter = UpstreamAdapter(config=with_mode(upstream_config, UpstreamMode.RETRIEVAL), client=client)

        deltas = await collect(adapter, make_request("capital of France?"))

        check.equal(deltas, [REFUSAL, "Paris", "."])
        client.chat.completions.create.assert_awaited_once()

    async def test_empty_run_triggers_plain_fallback(self, upstream_config: UpstreamConfig) -> None:
        """A run that produced no text falls back as well."""
        client = make_client(run_events=[], stream_deltas=["fallback"])
        adapter = UpstreamAdapter(config=with_mode(upstream_config, UpstreamMode.RETRIEVAL), client=client)

        check.equal(await collect(adapter, make_request("hi")), ["fallback"])

    async def test_fresh_thread_receives_history_and_system_instructions(
        self, upstream_config: UpstreamConfig
    ) -> None:
        """Each non-system message is added; system text goes on the run."""
        client = make_client(run_events=[message_delta("ok")])
        adapter = UpstreamAdapter(config=with_mode(upstream_config, UpstreamMode.RETRIEVAL), client=client)
        request = ChatRequest(
            messages=[
                ChatMessage(role=MessageRole.SYSTEM, content="Be brief."),
                ChatMessage(role=MessageRole.USER, content="hi"),
                ChatMessage(role=MessageRole.ASSISTANT, content="hello"),
                ChatMessage(role=MessageRole.USER, content="bye"),
            ]
        )

        await collect(adapter, request)

        added = [
            (c.kwargs["role"], c.kwargs["content"])
            for c in client.beta.threads.messages.create.call_args_list
        ]
        check.equal(added, [("user", "hi"), ("assistant", "hello"), ("user", "bye")])
        run_kwargs = client.beta.threads.runs.stream.call_args.kwargs
        check.equal(run_kwargs["thread_id"], "thread_1")
        check.equal(run_kwargs["assistant_id"], "asst_test")
        check.equal(run_kwargs["additional_instructions"], "Be brief.")

    async def test_reused_thread_receives_only_newest_message(
        self, upstream_config: UpstreamConfig
    ) -> None:
        """A known thread already holds earlier turns."""
        client = make_client(run_events=[message_delta("ok")])
        adapter = UpstreamAdapter(config=with_mode(upstream_config, UpstreamMode.RETRIEVAL), client=client)

        await collect(adapter, make_request("hi", "hello", "bye", thread_id="thread_existing"))

        client.beta.threads.create.assert_not_called()
        client.beta.threads.messages.create.assert_awaited_once_with(
            "thread_existing", role="user", content="bye"
        )


class TestConfirmedSourceMode:
    """Tests for polled runs re-chunked into deltas."""

    async def test_cited_answer_is_chunked(self, upstream_config: UpstreamConfig) -> None:
        """A cited answer is sliced into fixed-size deltas."""
        marker = "【1:0†report.pdf】"
        answer = "x" * (1300 - len(marker)) + marker
        client = make_client(run_statuses=["queued", "in_progress", "completed"], answer=answer)
        config = with_mode(upstream_config, UpstreamMode.CONFIRMED_SOURCE)
        adapter = UpstreamAdapter(config=config, client=client)

        deltas = await collect(adapter, make_request("revenue?"))

        check.equal([len(d) for d in deltas], [512, 512, 276])
        check.equal("".join(deltas), answer)
        check.equal(client.beta.threads.runs.retrieve.await_count, 2)
        client.beta.threads.runs.retrieve.assert_awaited_with("run_1", thread_id="thread_1")
        client.chat.completions.create.assert_not_called()

    async def test_uncited_answer_falls_back_to_completion(self, upstream_config: UpstreamConfig) -> None:
        """Without a citation the answer is replaced by a plain completion."""
        client = make_client(answer="Probably Paris.", completion="Paris is the capital.")
        adapter = UpstreamAdapter(
            config=with_mode(upstream_config, UpstreamMode.CONFIRMED_SOURCE), client=client
        )

        deltas = await collect(adapter, make_request("capital of France?"))

        check.equal(deltas, ["Paris is the capital."])
        check.is_false(client.chat.completions.create.call_args.kwargs.get("stream", False))

    async def test_failed_run_falls_back_to_completion(self, upstream_config: UpstreamConfig) -> None:
        """A run that ends unsuccessfully is treated as uncited."""
        client = make_client(run_statuses=["queued", "failed"], completion="fallback")
        adapter = UpstreamAdapter(
            config=with_mode(upstream_config, UpstreamMode.CONFIRMED_SOURCE), client=client
        )

        check.equal(await collect(adapter, make_request("hi")), ["fallback"])
        client.beta.threads.messages.list.assert_not_called()

    async def test_polling_is_bounded(self, upstream_config: UpstreamConfig) -> None:
        """A run that never finishes is cancelled and reported."""
        statuses = ["queued"] + ["in_progress"] * 10
        client = make_client(run_statuses=statuses)
        adapter = UpstreamAdapter(
            config=with_mode(upstream_config, UpstreamMode.CONFIRMED_SOURCE), client=client
        )

        with pytest.raises(PollingTimeoutError):
            await collect(adapter, make_request("hi"))

        check.equal(client.beta.threads.runs.retrieve.await_count, upstream_config.max_poll_attempts)
        client.beta.threads.runs.cancel.assert_awaited_once_with("run_1", thread_id="thread_1")

    async def test_cancel_between_slices(self, upstream_config: UpstreamConfig) -> None:
        """Cancelling after the first slice stops before the second."""
        answer = "y" * 1000 + "[1:0†notes.txt]"
        client = make_client(answer=answer)
        adapter = UpstreamAdapter(
            config=with_mode(upstream_config, UpstreamMode.CONFIRMED_SOURCE), client=client
        )
        request = make_request("hi")
        token = CancellationToken()
        received: list[str] = []

        with pytest.raises(StreamCancelled):
            async for text in adapter.stream(request, RelayMode.CONFIRMED_SOURCE, token):
                received.append(text)
                token.cancel("stopped")

        check.equal(received, [answer[:512]])
