"""
Streaming decoder for Scryfall bulk data.

The bulk file is one JSON array of several hundred thousand card objects
(hundreds of MB). ijson parses it incrementally, so only the element being
built plus one network chunk is held in memory at a time.

Elements are yielded as plain Python values without validation: a
syntactically valid element that is not a valid card is the caller's
per-record problem. Broken JSON is fatal (DatasetDecodeError) because the
parser cannot resynchronize after it.

ijson picks its fastest installed backend. The C backend (yajl2_c) reports
an integer outside the signed 64-bit range as a parse error, so such a
value is fatal there even though the pure-Python backend would decode it.
"""
import logging
from typing import Any, AsyncIterator, Optional

import ijson

logger = logging.getLogger(__name__)

_WHITESPACE = b" \t\r\n"
_UTF8_BOM = b"\xef\xbb\xbf"


class DatasetDecodeError(Exception):
    """Raised when the dataset stream is not a readable JSON array."""


class AsyncChunkReader:
    """
    File-like adapter exposing `async read(size)` over an async byte iterator.

    ijson recognises objects with an awaitable `read` and switches to its
    async parser. At most one upstream chunk is buffered beyond what the
    parser has asked for.
    """

    def __init__(self, chunks: AsyncIterator[bytes]):
        self._chunks = chunks.__aiter__()
        self._buffer = b""
        self._exhausted = False
        self.bytes_read = 0

    async def _fill(self) -> bool:
        """Pull the next non-empty chunk into the buffer. False at end of stream."""
        while not self._exhausted:
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                return False
            if chunk:
                self._buffer += chunk
                return True
        return False

    async def read(self, size: int = -1) -> bytes:
        if not self._buffer and not await self._fill():
            return b""
        if size is None or size < 0:
            size = len(self._buffer)
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        self.bytes_read += len(data)
        return data

    async def peek_first_byte(self) -> Optional[bytes]:
        """Return the first significant byte (after BOM/whitespace) without consuming it."""
        while True:
            if self._buffer.startswith(_UTF8_BOM):
                self._buffer = self._buffer[len(_UTF8_BOM):]
            stripped = self._buffer.lstrip(_WHITESPACE)
            if stripped:
                self._buffer = stripped
                return stripped[:1]
            self._buffer = b""
            if not await self._fill():
                return None


async def iter_source_records(stream: AsyncChunkReader) -> AsyncIterator[Any]:
    """
    Lazily yield each element of the top-level JSON array in `stream`.

    Forward-only and single pass: the underlying stream is consumed as the
    caller iterates and cannot be restarted.

    Raises:
        DatasetDecodeError: if the stream is empty, is not a JSON array, or
            contains invalid/truncated JSON.
    """
    first = await stream.peek_first_byte()
    if first is None:
        raise DatasetDecodeError("Dataset stream is empty")
    if first != b"[":
        raise DatasetDecodeError(
            f"Dataset stream is not a JSON array (starts with {first!r})"
        )

    count = 0
    try:
        async for element in ijson.items(stream, "item", use_float=True):
            count += 1
            yield element
    except ijson.JSONError as exc:
        raise DatasetDecodeError(
            f"Invalid JSON in dataset stream after {count} records: {exc}"
        ) from exc

    logger.debug("Decoded %d records (%d bytes)", count, stream.bytes_read)
