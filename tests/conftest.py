"""Pytest fixtures and shared test configuration.

Provides reusable fixtures for unit and integration tests.

Fixtures:
    - upstream_config: Upstream configuration that never reads the environment
    - thread_store: Connected SQLite thread store in a temporary directory
    - async_client: HTTPX client for API testing
    - sse_body: Encodes deltas as a relay response body
"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from assistant_relay.api import app
from assistant_relay.storage.threads import ThreadStore
from assistant_relay.streaming.framer import encode_delta, encode_done
from assistant_relay.upstream.config import UpstreamConfig, UpstreamMode


@pytest.fixture
def upstream_config() -> UpstreamConfig:
    """Return a plain-mode config with no pacing delays.

    Returns:
        UpstreamConfig suitable for adapter tests.
    """
    return UpstreamConfig(
        api_key="sk-test-key",
        model_name="gpt-4o-mini",
        assistant_id="asst_test",
        vector_store_id="vs_test",
        mode=UpstreamMode.PLAIN,
        poll_interval=0.001,
        max_poll_attempts=3,
        chunk_delay=0.0,
    )


@pytest.fixture
async def thread_store(tmp_path: Path) -> AsyncGenerator[ThreadStore]:
    """Create a connected thread store backed by a temporary file.

    Yields:
        ThreadStore that is disconnected after the test.
    """
    store = ThreadStore(tmp_path / "threads.db")
    await store.connect()
    yield store
    await store.disconnect()


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient]:
    """Create async HTTP client for API testing.

    Dependency overrides set by a test are cleared afterwards.

    Yields:
        Configured AsyncClient for making test requests.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def sse_body() -> Callable[..., bytes]:
    """Build a relay response body from deltas.

    Returns:
        Function taking deltas and a ``done`` flag.
    """

    def build(deltas: list[str], done: bool = True) -> bytes:
        frames = "".join(encode_delta(d) for d in deltas)
        if done:
            frames += encode_done()
        return frames.encode("utf-8")

    return build
