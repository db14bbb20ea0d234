"""Upstream model access.

Handles every request the relay forwards to the OpenAI platform.

Responsibilities:
    - Configuration from environment variables
    - Mode selection from message content (attached file, image request)
    - Normalizing completion chunks, run events and polled runs into deltas
    - Retrieval fallback when an answer looks unhelpful or uncited
"""

from assistant_relay.upstream.adapter import (
    PollingTimeoutError,
    RelayMode,
    UpstreamAdapter,
    UpstreamError,
    UpstreamShape,
    close_upstream_adapter,
    get_upstream_adapter,
    normalize_upstream,
)
from assistant_relay.upstream.config import UpstreamConfig, UpstreamMode, get_upstream_config

__all__ = [
    "PollingTimeoutError",
    "RelayMode",
    "UpstreamAdapter",
    "UpstreamConfig",
    "UpstreamError",
    "UpstreamMode",
    "UpstreamShape",
    "close_upstream_adapter",
    "get_upstream_adapter",
    "get_upstream_config",
    "normalize_upstream",
]
