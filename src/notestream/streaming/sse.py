"""Incremental ``data:`` line extraction from a streamed HTTP body.

Network chunks do not respect line boundaries.  The parser keeps the
unterminated tail of each chunk and prefixes it to the next one, so an
event line split across chunks is reassembled instead of dropped.
Lines are decoded only once complete, which also keeps multibyte UTF-8
characters intact when a chunk boundary falls inside one.
"""

from __future__ import annotations

import logging

_logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "


class SSELineParser:
    """Split byte chunks into ``data:`` payload strings.

    Usage::

        parser = SSELineParser()
        async for chunk in resp.aiter_bytes():
            for payload in parser.feed(chunk):
                ...
        for payload in parser.flush():
            ...
    """

    def __init__(self) -> None:
        self._carry = b""
        self.dropped_lines = 0

    def feed(self, chunk: bytes) -> list[str]:
        """Consume one network chunk and return the complete payloads in it."""
        data = self._carry + chunk
        lines = data.split(b"\n")
        self._carry = lines.pop()
        payloads: list[str] = []
        for raw in lines:
            payload = self._payload(raw)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def flush(self) -> list[str]:
        """Return the payload of a final line that had no terminator."""
        raw, self._carry = self._carry, b""
        if not raw:
            return []
        payload = self._payload(raw)
        return [payload] if payload is not None else []

    @property
    def pending(self) -> bytes:
        """Bytes of the current unterminated line."""
        return self._carry

    def _payload(self, raw: bytes) -> str | None:
        line = raw.decode("utf-8", errors="replace").rstrip("\r")
        if line.startswith(DATA_PREFIX):
            return line[len(DATA_PREFIX):]
        if line:
            # event:, id:, comments and anything else
            self.dropped_lines += 1
        return None
