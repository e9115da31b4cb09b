"""Incremental parser for newline-delimited JSON streams.

Bytes can arrive split at any boundary (mid-line, mid-character).  A
single residual buffer carries the unterminated tail between reads; each
completed non-blank line is parsed and validated on its own, and a line
that fails is logged and dropped without ending the stream.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import AsyncIterable, AsyncIterator, Generator

from ollama_bridge.errors import MalformedChunkError, ValidationError
from ollama_bridge.types import StreamRecord

from .validator import validate_record

_logger = logging.getLogger(__name__)

_LOG_PREVIEW = 200


class NDJSONStreamParser:
    """Reassemble and validate ``StreamRecord`` lines from raw bytes.

    Usage::

        parser = NDJSONStreamParser()
        for chunk in byte_chunks:
            for record in parser.feed(chunk):
                ...
        for record in parser.finish():
            ...
    """

    def __init__(self) -> None:
        self.buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.chunks_read = 0
        self.bytes_read = 0
        self.records_parsed = 0
        self.lines_skipped = 0

    def feed(self, chunk: bytes) -> Generator[StreamRecord, None, None]:
        """Feed raw bytes.  Yields records for every line completed."""
        self.chunks_read += 1
        self.bytes_read += len(chunk)
        self.buffer += self._decoder.decode(chunk)

        lines = self.buffer.split("\n")
        self.buffer = lines.pop()
        for line in lines:
            record = self._parse_line(line)
            if record is not None:
                yield record

    def finish(self) -> Generator[StreamRecord, None, None]:
        """Flush the decoder and parse whatever is left in the buffer."""
        self.buffer += self._decoder.decode(b"", final=True)
        tail, self.buffer = self.buffer, ""
        record = self._parse_line(tail)
        if record is not None:
            yield record

    def _parse_line(self, line: str) -> StreamRecord | None:
        stripped = line.strip()
        if not stripped:
            return None
        try:
            return self._parse_chunk(stripped)
        except MalformedChunkError as e:
            self.lines_skipped += 1
            _logger.warning("Skipping malformed stream line: %s | %s", e, stripped[:_LOG_PREVIEW])
            return None

    def _parse_chunk(self, line: str) -> StreamRecord:
        try:
            data = json.loads(line)
            validate_record(data, streamed=True)
        except json.JSONDecodeError as e:
            raise MalformedChunkError(str(e), chunk_index=self.chunks_read) from e
        except ValidationError as e:
            raise MalformedChunkError(str(e), chunk_index=self.chunks_read) from e
        self.records_parsed += 1
        return StreamRecord.from_wire(data)


async def iter_stream_records(
    source: AsyncIterable[bytes],
) -> AsyncIterator[StreamRecord]:
    """Yield records from *source*, stopping after the ``done`` record.

    Pull-based: *source* is not read again until the consumer has taken
    the previous record.
    """
    parser = NDJSONStreamParser()
    try:
        async for chunk in source:
            for record in parser.feed(chunk):
                yield record
                if record.done:
                    return
        for record in parser.finish():
            yield record
    finally:
        _logger.debug(
            "Stream finished: %d chunks, %d bytes, %d records, %d skipped",
            parser.chunks_read, parser.bytes_read,
            parser.records_parsed, parser.lines_skipped,
        )
