"""Line-delimited event framing for the chat stream.

Each delta travels as one ``data: <payload>`` line followed by a blank line.
The payload is either a JSON object ``{"content": "..."}`` or the literal
terminal sentinel ``[DONE]``.
"""

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
FRAME_TERMINATOR = "\n\n"


@dataclass(frozen=True)
class Frame:
    """A decoded wire frame.

    Attributes:
        content: Normalized delta text (empty for the terminal frame).
        terminal: True only for the literal ``[DONE]`` sentinel.
    """

    content: str = ""
    terminal: bool = False


DONE_FRAME = Frame(terminal=True)


def encode_delta(text: str) -> str:
    """Encode one content delta as a wire frame."""
    return f"{DATA_PREFIX}{json.dumps({'content': text})}{FRAME_TERMINATOR}"


def encode_done() -> str:
    """Encode the terminal sentinel frame."""
    return f"{DATA_PREFIX}{DONE_SENTINEL}{FRAME_TERMINATOR}"


def _part_text(part: Any) -> str | None:
    """Pull the text out of one content sub-part.

    Precedence: nested ``{"value": str}`` field, then a direct string field,
    then the part itself when it is a plain string.
    """
    if isinstance(part, str):
        return part
    if not isinstance(part, dict):
        return None

    for key in ("text", "value"):
        field = part.get(key)
        if isinstance(field, dict) and isinstance(field.get("value"), str):
            return field["value"]

    for key in ("text", "value", "content"):
        field = part.get(key)
        if isinstance(field, str):
            return field

    return None


def normalize_content(content: Any) -> str:
    """Normalize a payload's ``content`` field into a single string.

    Args:
        content: A plain string, or a list of sub-parts in any of the
            upstream shapes (``{"text": {"value": ...}}``, ``{"text": ...}``,
            bare strings).

    Returns:
        The concatenated text. Parts with no recognizable text are skipped.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        pieces = (_part_text(part) for part in content)
        return "".join(piece for piece in pieces if piece)
    return ""


def parse_payload(payload: str) -> Frame | None:
    """Parse a single frame payload (the text after ``data: ``).

    Returns:
        The decoded frame, or None for malformed or empty payloads.
    """
    if payload == DONE_SENTINEL:
        return DONE_FRAME

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.warning(f"Skipping malformed frame payload: {e}")
        return None

    if not isinstance(data, dict):
        logger.warning(f"Skipping frame payload that is not an object: {payload[:80]}")
        return None

    text = normalize_content(data.get("content"))
    if not text:
        return None
    return Frame(content=text)


class FrameDecoder:
    """Incremental decoder for the frame stream.

    Bytes may arrive split at any offset, including inside a multi-byte
    UTF-8 sequence. The incomplete trailing line is carried over and
    prepended to the next chunk.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")()
        self._carryover = ""

    @property
    def carryover(self) -> str:
        """Text of the incomplete trailing line held back so far."""
        return self._carryover

    def feed(self, chunk: bytes | str) -> list[Frame]:
        """Decode a chunk and return every complete frame it finishes."""
        text = chunk if isinstance(chunk, str) else self._utf8.decode(chunk)
        lines = (self._carryover + text).split("\n")
        self._carryover = lines.pop()
        return self._decode_lines(lines)

    def flush(self) -> list[Frame]:
        """Decode whatever is left once the byte stream has ended."""
        tail = self._carryover + self._utf8.decode(b"", final=True)
        self._carryover = ""
        return self._decode_lines([tail]) if tail else []

    def _decode_lines(self, lines: list[str]) -> list[Frame]:
        frames: list[Frame] = []
        for line in lines:
            line = line.removesuffix("\r")
            if not line.startswith(DATA_PREFIX):
                continue
            frame = parse_payload(line[len(DATA_PREFIX):])
            if frame is not None:
                frames.append(frame)
        return frames


def decode_stream(chunks: list[bytes]) -> list[Frame]:
    """Decode a complete sequence of chunks in one call."""
    decoder = FrameDecoder()
    frames: list[Frame] = []
    for chunk in chunks:
        frames.extend(decoder.feed(chunk))
    frames.extend(decoder.flush())
    return frames
