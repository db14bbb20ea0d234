"""Wire protocol for relaying chat deltas to the browser.

Responsibilities:
    - Encoding deltas and the terminal sentinel as ``data:`` frames
    - Incremental decoding that survives arbitrary chunk boundaries
    - Cooperative cancellation shared by both ends of the stream
"""

from assistant_relay.streaming.cancellation import CancellationToken, StreamCancelled
from assistant_relay.streaming.framer import (
    DONE_FRAME,
    Frame,
    FrameDecoder,
    encode_delta,
    encode_done,
    normalize_content,
)

__all__ = [
    "DONE_FRAME",
    "CancellationToken",
    "Frame",
    "FrameDecoder",
    "StreamCancelled",
    "encode_delta",
    "encode_done",
    "normalize_content",
]
