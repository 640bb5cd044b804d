"""
Server-Sent Events parsing for the claude.ai completion stream.

The stream is a sequence of ``data: <json>`` lines. Parsing is split into
pure pieces so the state machine can be tested without a network:

- ``feed_lines`` splits decoded text into complete lines plus a remainder
- ``parse_sse_line`` turns one complete line into an event dict (or None)
- ``apply_event`` folds one event into an ``SSEAccumulator``
- ``SSEStreamParser`` wires the three together over raw byte chunks

A malformed event is logged and skipped; it never aborts the stream.
"""

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_TOKEN = "[DONE]"


@dataclass(frozen=True)
class ClaudeMaxUsage:
    """Token counts reported by the stream."""
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class SSEAccumulator:
    """Running state of one completion stream."""
    content_parts: List[str] = field(default_factory=list)
    usage: Optional[ClaudeMaxUsage] = None
    stop_reason: Optional[str] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)
    malformed_events: int = 0
    completed: bool = False

    @property
    def content(self) -> str:
        return "".join(self.content_parts)


def feed_lines(buffer: str, text: str) -> Tuple[List[str], str]:
    """
    Split buffered plus newly decoded text into complete lines.

    The last segment has no terminating newline yet, so it is returned as
    the new buffer instead of being treated as a line.

    Args:
        buffer: Partial line held back from the previous call
        text: Newly decoded text

    Returns:
        (complete lines without line terminators, remainder)
    """
    lines = (buffer + text).split("\n")
    remainder = lines.pop()
    return [line.rstrip("\r") for line in lines], remainder


def parse_sse_line(line: str) -> Optional[Dict[str, Any]]:
    """
    Decode one complete SSE line.

    Returns None for blank lines, comments, non-data fields and the
    ``[DONE]`` terminator.

    Raises:
        ValueError: If the data payload is not a JSON object
    """
    if not line.strip() or line.startswith(":"):
        return None
    if not line.startswith(DATA_PREFIX):
        return None

    payload = line[len(DATA_PREFIX):]
    if payload.startswith(" "):
        payload = payload[1:]
    if payload.strip() == DONE_TOKEN:
        return None

    event = json.loads(payload)
    if not isinstance(event, dict):
        raise ValueError(f"SSE payload is not an object: {type(event).__name__}")
    return event


def _usage_from(block: Optional[Dict[str, Any]], previous: Optional[ClaudeMaxUsage]) -> Optional[ClaudeMaxUsage]:
    if not isinstance(block, dict):
        return None
    base = previous or ClaudeMaxUsage()
    return ClaudeMaxUsage(
        input_tokens=block.get("input_tokens", base.input_tokens) or 0,
        output_tokens=block.get("output_tokens", base.output_tokens) or 0,
    )


def apply_event(state: SSEAccumulator, event: Dict[str, Any]) -> None:
    """Fold one decoded event into the accumulator."""
    event_type = event.get("type")

    if event_type == "content_block_delta":
        delta = event.get("delta") or {}
        if delta.get("type") == "text_delta" and delta.get("text"):
            state.content_parts.append(delta["text"])

    elif event_type == "message_start":
        # Provisional; message_delta carries the final count
        message = event.get("message") or {}
        usage = _usage_from(message.get("usage"), state.usage)
        if usage is not None:
            state.usage = usage

    elif event_type == "message_delta":
        usage = _usage_from(event.get("usage"), state.usage)
        if usage is not None:
            state.usage = usage
        stop_reason = (event.get("delta") or {}).get("stop_reason")
        if stop_reason:
            state.stop_reason = stop_reason

    elif event_type == "message_stop":
        state.completed = True

    elif event_type == "ping":
        pass

    elif event_type == "error":
        logger.warning(f"Claude Max SSE error event: {event.get('error', event)}")
        state.errors.append(event)

    else:
        logger.debug(f"Ignoring Claude Max SSE event type: {event_type}")


class SSEStreamParser:
    """
    Incremental parser over raw byte chunks.

    Bytes are decoded with an incremental UTF-8 decoder so multi-byte
    characters split across chunks are reassembled.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.state = SSEAccumulator()

    def feed(self, chunk: bytes) -> None:
        """Consume one chunk; only complete lines are processed."""
        lines, self._buffer = feed_lines(self._buffer, self._decoder.decode(chunk))
        for line in lines:
            self._process_line(line)

    def close(self) -> SSEAccumulator:
        """Flush the decoder and any final unterminated line."""
        lines, remainder = feed_lines(self._buffer, self._decoder.decode(b"", final=True))
        self._buffer = ""
        for line in lines:
            self._process_line(line)
        if remainder.strip():
            self._process_line(remainder.rstrip("\r"))
        return self.state

    def _process_line(self, line: str) -> None:
        try:
            event = parse_sse_line(line)
        except ValueError as e:
            self.state.malformed_events += 1
            logger.debug(f"Failed to parse SSE event: {e} (line: {line[:100]!r})")
            return

        if event is not None:
            apply_event(self.state, event)


async def parse_sse_stream(chunks: AsyncIterator[bytes]) -> SSEAccumulator:
    """Parse a whole byte stream, returning the final accumulator."""
    parser = SSEStreamParser()
    async for chunk in chunks:
        parser.feed(chunk)
    return parser.close()
