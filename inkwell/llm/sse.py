"""
Incremental text/event-stream decoding.

Transports hand us text in whatever pieces the network produced, so a line
(or even a CRLF terminator) may be split across fragments. EventStreamParser
keeps the unterminated tail between calls and only acts on complete lines.
"""

import codecs
import json
import logging
import re
from typing import Any, AsyncIterable, AsyncIterator, Iterator, Optional

from inkwell.core.exceptions import ProtocolError

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\n|\r\n?")
_NOTHING = object()


class EventStreamParser:
    """
    Turns event-stream fragments into decoded ``message`` records.

    Each record's data field is expected to hold one JSON value. Records of
    any other event type are dropped. A record still pending when the stream
    ends (no closing blank line) is never emitted.
    """

    def __init__(self):
        self._buffer = ""
        self._ignore_next_lf = False
        self._event_type: Optional[str] = None
        self._data: Optional[str] = None

    def feed(self, fragment: str) -> Iterator[Any]:
        # A CRLF may arrive as "...\r" + "\n...": the LF is not a new line
        if self._ignore_next_lf and fragment.startswith("\n"):
            fragment = fragment[1:]
        self._ignore_next_lf = fragment.endswith("\r")

        lines = _LINE_BREAK.split(self._buffer + fragment)
        self._buffer = lines.pop()

        for line in lines:
            record = self._process_line(line)
            if record is not _NOTHING:
                yield record

    def _process_line(self, line: str) -> Any:
        if not line:
            return self._dispatch()

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event_type = value
        elif name == "data":
            self._data = value if self._data is None else f"{self._data}\n{value}"
        return _NOTHING

    def _dispatch(self) -> Any:
        event_type, data = self._event_type, self._data
        self._event_type = None
        self._data = None

        if not data or (event_type or "message") != "message":
            return _NOTHING
        try:
            record = json.loads(data)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Malformed JSON in event data: {data[:80]!r}") from e
        logger.debug("event", extra={"sse_record": record})
        return record


async def parse_event_stream(fragments: AsyncIterable[str]) -> AsyncIterator[Any]:
    """Async counterpart of EventStreamParser.feed over a whole stream."""
    parser = EventStreamParser()
    async for fragment in fragments:
        for record in parser.feed(fragment):
            yield record


async def decode_utf8(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Decode a byte stream whose reads may split multi-byte characters."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    async for chunk in chunks:
        text = decoder.decode(chunk)
        if text:
            yield text
    tail = decoder.decode(b"", final=True)
    if tail:
        yield tail
