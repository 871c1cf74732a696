"""Stream framer for JSON-RPC over a raw byte stream.

Two wire encodings are detected per payload:

- FRAMED: header block, blank line (\\r\\n\\r\\n or \\n\\n), then exactly
  Content-Length bytes of UTF-8 JSON body.
- BARE: a JSON object or array with no headers, newline terminated.

Any other newline-terminated JSON value is answered with a parse error.
A non-JSON line with no colon cannot start a header block and is dropped.

Responses are written back in the encoding of the payload that produced
them. Payloads are dispatched one at a time in arrival order, and each
dispatch is awaited before the next payload is extracted.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ..errors import FramingError, PayloadParseError
from ..protocol.types import JsonRpcErrorCode, JsonRpcRequest, JsonRpcResponse

if TYPE_CHECKING:
    from ..protocol.dispatcher import RpcDispatcher

logger = logging.getLogger(__name__)

ENCODING = "utf-8"

HEADER_SEPARATORS = (b"\r\n\r\n", b"\n\n")

# Bare input this long with no newline or header separator is reported once
STALL_THRESHOLD = 4096
SAMPLE_BYTES = 120

_WHITESPACE = b" \t\r\n"
_BOM = b"\xef\xbb\xbf"
_CONTENT_LENGTH_RE = re.compile(r"^content-length\s*:\s*(.*?)\s*$", re.IGNORECASE)

_decoder = json.JSONDecoder()


class WireMode(str, Enum):
    """Encoding of one payload on the wire."""

    FRAMED = "framed"
    BARE = "bare"


@dataclass
class Frame:
    """One payload recovered from the stream.

    Either `payload` holds the decoded JSON value or `error` describes why
    the bytes could not be decoded.
    """

    mode: WireMode
    payload: Any = None
    error: str | None = None


Emit = Callable[[bytes], None]


# =============================================================================
# Encoding
# =============================================================================


def encode_body(payload: Any) -> bytes:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode(ENCODING)


def encode_frame(body: bytes, mode: WireMode) -> bytes:
    """Wrap a JSON body for the wire."""
    if mode is WireMode.FRAMED:
        return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body
    return body + b"\n"


def encode_responses(
    responses: list[JsonRpcResponse],
    mode: WireMode,
    batched: bool,
) -> bytes:
    """Encode the responses of one payload.

    Args:
        responses: Responses in request order (must not be empty)
        mode: Wire encoding of the originating payload
        batched: Whether the originating payload was a JSON array

    Returns:
        One framed or newline-terminated body. Several responses to a batch
        are aggregated into one JSON array; a single response is unwrapped.
    """
    if not responses:
        raise ValueError("No responses to encode")
    items = [response.to_wire() for response in responses]
    payload = items if batched and len(items) > 1 else items[0]
    return encode_frame(encode_body(payload), mode)


def parse_error_response(message: str) -> JsonRpcResponse:
    return JsonRpcResponse.failure(None, JsonRpcErrorCode.PARSE_ERROR, f"Parse error: {message}")


# =============================================================================
# Decoding helpers
# =============================================================================


def parse_content_length(header: bytes) -> int:
    """Read the Content-Length value from a header block.

    Raises:
        FramingError: If the header is missing, repeated with different
            values, or not a non-negative integer
    """
    text = header.decode("latin-1")
    values = []
    for line in re.split(r"\r?\n", text):
        match = _CONTENT_LENGTH_RE.match(line.strip())
        if match:
            values.append(match.group(1))

    if not values:
        raise FramingError("Missing Content-Length header")
    if len(set(values)) > 1:
        raise FramingError(f"Conflicting Content-Length headers: {values}")
    if not values[0].isdigit():
        raise FramingError(f"Invalid Content-Length: {values[0]!r}")
    return int(values[0])


def find_separator(data: bytes) -> tuple[int, int] | None:
    """Position and length of the earliest header separator, if any."""
    found = [(data.find(sep), len(sep)) for sep in HEADER_SEPARATORS]
    found = [item for item in found if item[0] >= 0]
    if not found:
        return None
    return min(found)


def parse_json(data: bytes) -> Any:
    """Decode UTF-8 JSON.

    Raises:
        PayloadParseError: If the bytes are not valid UTF-8 JSON
    """
    try:
        return json.loads(data.decode(ENCODING))
    except (UnicodeDecodeError, ValueError) as e:
        raise PayloadParseError(str(e)) from e


def _could_complete(data: bytes) -> bool:
    """Whether more bytes could still turn data into one valid JSON value."""
    try:
        text = data.decode(ENCODING)
    except UnicodeDecodeError as e:
        if e.reason != "unexpected end of data" or e.end != len(data):
            return False
        text = data[: e.start].decode(ENCODING, errors="replace")

    try:
        _decoder.raw_decode(text)
    except json.JSONDecodeError as e:
        if e.pos >= len(text):
            return True
        return e.msg.startswith("Unterminated string") and "\n" not in text[e.pos :]
    return True


def decode_requests(payload: Any) -> tuple[list[JsonRpcRequest], bool]:
    """Validate a decoded payload as one request or a batch.

    Returns:
        (requests, batched)

    Raises:
        PayloadParseError: If the payload or any batch element is malformed.
            A batch is accepted or rejected as a whole.
    """
    batched = isinstance(payload, list)
    items = payload if batched else [payload]
    if batched and not items:
        raise PayloadParseError("Empty batch")

    requests = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise PayloadParseError(f"Element {index} is not an object")
        if item.get("jsonrpc") != "2.0":
            raise PayloadParseError(f'Element {index} lacks jsonrpc "2.0"')
        if not isinstance(item.get("method"), str):
            raise PayloadParseError(f"Element {index} lacks a string method")
        try:
            requests.append(JsonRpcRequest.model_validate(item))
        except ValidationError as e:
            raise PayloadParseError(f"Element {index} is not a valid request: {e}") from e
    return requests, batched


# =============================================================================
# Framer
# =============================================================================


class StreamFramer:
    """Turns inbound bytes into dispatched requests and encoded responses.

    Usage:
        framer = StreamFramer(dispatcher, emit=stdout_write)
        await framer.feed(chunk)  # for every chunk read

    Contract:
        - feed() appends the chunk, then drains every complete payload
        - Incomplete trailing bytes stay buffered for the next feed()
        - A feed() arriving while a drain is active only appends; the
          active drain keeps extracting until no complete payload remains
        - Malformed frames are logged and skipped; the stream continues

    The buffer has no size cap. A sender that never completes a frame
    grows it without bound.
    """

    def __init__(self, dispatcher: RpcDispatcher, emit: Emit) -> None:
        self.dispatcher = dispatcher
        self._emit = emit
        self._buffer = bytearray()
        self._draining = False
        self._stall_reported = False

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet consumed."""
        return len(self._buffer)

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def feed(self, chunk: bytes) -> None:
        """Append a chunk and process every complete payload."""
        self._buffer.extend(chunk)
        if self._draining:
            return
        await self.drain()

    async def drain(self) -> None:
        """Extract and dispatch payloads until the buffer holds no complete one."""
        if self._draining:
            return
        self._draining = True
        try:
            while True:
                frame = self._next_frame()
                if frame is None:
                    break
                await self._process(frame)
        finally:
            self._draining = False

    # =========================================================================
    # Extraction
    # =========================================================================

    def _next_frame(self) -> Frame | None:
        while True:
            self._skip_whitespace()
            if not self._buffer:
                return None

            if self._buffer[:1] in (b"{", b"["):
                return self._next_bare()

            newline = self._buffer.find(b"\n")
            if newline >= 0:
                line = bytes(self._buffer[:newline])
                try:
                    payload = parse_json(line)
                except PayloadParseError:
                    # Header lines always carry a colon
                    if b":" not in line:
                        self._consume(newline + 1)
                        logger.warning(f"Discarding non-JSON line: {self._sample(line)!r}")
                        continue
                else:
                    self._consume(newline + 1)
                    return Frame(WireMode.BARE, payload=payload)

            try:
                frame = self._next_framed()
            except FramingError as e:
                # Header block already consumed; continue with the next payload
                logger.warning(f"Discarding header block: {e}")
                continue
            if frame is None:
                self._report_stall(bytes(self._buffer))
            return frame

    def _skip_whitespace(self) -> None:
        if self._buffer.startswith(_BOM):
            del self._buffer[: len(_BOM)]
        index = 0
        while index < len(self._buffer) and self._buffer[index] in _WHITESPACE:
            index += 1
        if index:
            del self._buffer[:index]

    def _next_framed(self) -> Frame | None:
        separator = find_separator(self._buffer)
        if separator is None:
            return None

        position, length = separator
        body_start = position + length
        header = bytes(self._buffer[:position])
        try:
            content_length = parse_content_length(header)
        except FramingError as e:
            del self._buffer[:body_start]
            raise FramingError(f"{e} (header: {header[:SAMPLE_BYTES]!r})") from e

        if len(self._buffer) < body_start + content_length:
            return None

        body = bytes(self._buffer[body_start : body_start + content_length])
        del self._buffer[: body_start + content_length]
        self._stall_reported = False
        try:
            return Frame(WireMode.FRAMED, payload=parse_json(body))
        except PayloadParseError as e:
            return Frame(WireMode.FRAMED, error=str(e))

    def _next_bare(self) -> Frame | None:
        data = bytes(self._buffer)

        try:
            payload = parse_json(data)
        except PayloadParseError:
            pass
        else:
            self._consume(len(data))
            return Frame(WireMode.BARE, payload=payload)

        newline = data.find(b"\n")
        if newline >= 0:
            try:
                payload = parse_json(data[:newline])
            except PayloadParseError as e:
                if not _could_complete(data):
                    self._consume(newline + 1)
                    return Frame(WireMode.BARE, error=str(e))
            else:
                self._consume(newline + 1)
                return Frame(WireMode.BARE, payload=payload)

        # A complete value followed by more input on the same line, or
        # spanning several lines
        frame = self._next_multiline(data)
        if frame is not None:
            return frame

        self._report_stall(data)
        return None

    def _next_multiline(self, data: bytes) -> Frame | None:
        try:
            text = data.decode(ENCODING)
            payload, end = _decoder.raw_decode(text)
        except (UnicodeDecodeError, ValueError):
            return None
        self._consume(len(text[:end].encode(ENCODING)))
        return Frame(WireMode.BARE, payload=payload)

    def _consume(self, count: int) -> None:
        del self._buffer[:count]
        self._stall_reported = False

    def _report_stall(self, data: bytes) -> None:
        if self._stall_reported or len(data) <= STALL_THRESHOLD:
            return
        if b"\n" in data or find_separator(data) is not None:
            return
        self._stall_reported = True
        logger.warning(
            f"{len(data)} bytes buffered without a complete payload"
            f" (sample: {self._sample(data)!r})"
        )

    @staticmethod
    def _sample(data: bytes | bytearray) -> bytes:
        return bytes(data[:SAMPLE_BYTES])

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _process(self, frame: Frame) -> None:
        if frame.error is not None:
            logger.warning(f"Rejecting unparsable {frame.mode.value} payload: {frame.error}")
            self._emit(encode_responses([parse_error_response(frame.error)], frame.mode, False))
            return

        try:
            requests, batched = decode_requests(frame.payload)
        except PayloadParseError as e:
            logger.warning(f"Rejecting malformed {frame.mode.value} payload: {e}")
            self._emit(encode_responses([parse_error_response(str(e))], frame.mode, False))
            return

        responses = []
        for request in requests:
            response = await self.dispatcher.dispatch(request)
            if response is not None:
                responses.append(response)

        if responses:
            self._emit(encode_responses(responses, frame.mode, batched))
