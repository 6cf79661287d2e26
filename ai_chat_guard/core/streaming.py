"""
Server-sent event stream parsing.

Turns the raw byte/text chunks of an OpenAI-compatible ``chat/completions``
stream into text fragments.

Wire Format:
- Events are newline-separated lines, ``\\r\\n`` tolerated
- Blank lines separate events and are ignored
- ``data: <json>`` carries a chunk; the fragment is ``choices[0].delta.content``
- ``data: [DONE]`` ends the stream
"""

import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, List, Optional, Union

LOGGER = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


def extract_delta_content(event: Any) -> Optional[str]:
    """Return ``choices[0].delta.content`` from a parsed chunk, if present."""
    if not isinstance(event, dict):
        return None
    choices = event.get("choices")
    if not choices or not isinstance(choices, list):
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


class SSEFragmentParser:
    """Incremental parser for chunked SSE input.

    Partial lines are buffered as bytes across ``feed`` calls, so a line split
    at any chunk boundary (including inside a multibyte character) parses the
    same as an unsplit one. Each complete line is decoded on its own; a line
    that is not valid UTF-8 is logged and skipped.
    """

    def __init__(self):
        self._buffer = b""
        self.done = False

    def feed(self, chunk: Union[str, bytes]) -> List[str]:
        """Consume a chunk and return the fragments completed by it.

        Args:
            chunk: Raw text or UTF-8 bytes read from the stream

        Returns:
            Non-empty content fragments, in order
        """
        if self.done:
            return []
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")

        self._buffer += chunk
        *lines, self._buffer = self._buffer.split(b"\n")

        fragments = []
        for line in lines:
            fragment = self._parse_line(line)
            if self.done:
                break
            if fragment:
                fragments.append(fragment)
        return fragments

    def close(self) -> List[str]:
        """Flush a final unterminated line at end of input."""
        if self.done or not self._buffer:
            self._buffer = b""
            return []
        line, self._buffer = self._buffer, b""
        fragment = self._parse_line(line)
        return [fragment] if fragment and not self.done else []

    def _parse_line(self, raw_line: bytes) -> Optional[str]:
        try:
            line = raw_line.decode("utf-8")
        except UnicodeDecodeError as e:
            LOGGER.warning("Skipping undecodable stream line: %s", e)
            return None

        line = line.rstrip("\r").strip()
        if not line or not line.startswith(DATA_PREFIX):
            return None

        data = line[len(DATA_PREFIX):].strip()
        if data == DONE_SENTINEL:
            self.done = True
            if self._buffer:
                LOGGER.debug("Discarding %d buffered bytes after [DONE]", len(self._buffer))
            self._buffer = b""
            return None

        try:
            event = json.loads(data)
        except json.JSONDecodeError as e:
            LOGGER.warning("Skipping malformed stream event: %s", e)
            return None
        return extract_delta_content(event)


async def iter_stream_fragments(
    chunks: AsyncIterable[Union[str, bytes]]
) -> AsyncIterator[str]:
    """Yield content fragments from an async iterable of raw chunks.

    Stops at ``[DONE]`` without draining the rest of ``chunks``.
    """
    parser = SSEFragmentParser()
    async for chunk in chunks:
        for fragment in parser.feed(chunk):
            yield fragment
        if parser.done:
            return
    for fragment in parser.close():
        yield fragment
