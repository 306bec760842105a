"""A writer that dispatches complete lines to handlers."""

from __future__ import annotations

from collections.abc import Callable

LineHandler = Callable[[str], bool]


class LineWriter:
    """Buffers written data and calls handlers for each finished line.

    Each line is passed with its trailing newline. Handlers run in order
    until one returns False.
    """

    def __init__(self, *handlers: LineHandler) -> None:
        self._handlers = handlers
        self._buffer = bytearray()

    def write(self, data: bytes | str) -> int:
        """Append ``data``; returns the number of items written."""
        raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        self._buffer.extend(raw)
        while True:
            index = self._buffer.find(b"\n")
            if index < 0:
                break
            line = bytes(self._buffer[: index + 1])
            del self._buffer[: index + 1]
            self._handle_line(line.decode("utf-8", errors="replace"))
        return len(data)

    def _handle_line(self, line: str) -> None:
        for handler in self._handlers:
            if not handler(line):
                break