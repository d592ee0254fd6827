"""In-memory stand-in for a Birch VFD on the other end of the serial line.

Implements the transport interface ``BirchVFD`` writes to and decodes the
byte stream into a character grid, so tests can assert on what a real
display would show. Rows and columns are 0-based.
"""

from typing import List, Optional

import serial


class VFDSimulator:
    """Fake serial transport that renders the Birch wire protocol."""

    def __init__(self, width: int = 20, height: int = 2,
                 fail_writes: bool = False, fail_flush: bool = False) -> None:
        self.width = width
        self.height = height
        self.fail_writes = fail_writes
        self.fail_flush = fail_flush
        self.writes: List[bytes] = []
        self.flush_count = 0
        self.is_open = True
        self.x = 0
        self.y = 0
        self.lines: List[List[str]] = []
        self._pending = b""
        self.clear()

    # --- transport interface ---
    def write(self, data: bytes) -> int:
        if self.fail_writes:
            raise serial.SerialTimeoutException("Write timeout")
        self.writes.append(bytes(data))
        self._pending += bytes(data)
        self._consume()
        return len(data)

    def flush(self) -> None:
        if self.fail_flush:
            raise serial.SerialException("Flush failed")
        self.flush_count += 1

    def close(self) -> None:
        self.is_open = False

    # --- protocol decoding ---
    def clear(self) -> None:
        self.lines = [list(" " * self.width) for _ in range(self.height)]
        self.x = 0
        self.y = 0

    def _consume(self) -> None:
        buf = self._pending
        i = 0
        while i < len(buf):
            byte = buf[i]
            if byte == 0x1B:
                if i + 1 >= len(buf):
                    break
                if buf[i + 1] == 0x40:
                    self.clear()
                i += 2
            elif byte == 0x1F:
                if i + 3 >= len(buf):
                    break
                if buf[i + 1] == 0x24:
                    # wire coordinates are 1-based
                    self.x = buf[i + 2] - 1
                    self.y = buf[i + 3] - 1
                i += 4
            elif byte == 0x0C:
                self.clear()
                i += 1
            else:
                self._put(byte)
                i += 1
        self._pending = buf[i:]

    def _put(self, byte: int) -> None:
        if 0 <= self.x < self.width and 0 <= self.y < self.height:
            self.lines[self.y][self.x] = chr(byte)
        self.x += 1
        # the device moves to the next row on its own
        if self.x >= self.width:
            self.x = 0
            self.y = (self.y + 1) % self.height

    # --- inspection helpers ---
    @property
    def text_writes(self) -> List[bytes]:
        """Writes that are neither the initialize, clear nor cursor command."""
        return [w for w in self.writes
                if w not in (b"\x1b\x40", b"\x0c") and not w.startswith(b"\x1f\x24")]

    @property
    def cursor_writes(self) -> List[bytes]:
        return [w for w in self.writes if w.startswith(b"\x1f\x24")]

    def reset_log(self) -> None:
        self.writes = []
        self.flush_count = 0

    def get_line(self, y: int) -> str:
        return "".join(self.lines[y])

    def assert_line_equals(self, y: int, expected: str) -> None:
        line = self.get_line(y).rstrip()
        assert line == expected.rstrip(), f"Line {y}: expected '{expected}', got '{line}'"

    def assert_char_at(self, x: int, y: int, expected: str) -> None:
        actual = self.lines[y][x]
        assert actual == expected, f"Char at ({x},{y}) expected '{expected}', got '{actual}'"

    def dump(self, title: Optional[str] = None) -> str:
        rows = [f"Line {y}: '{self.get_line(y)}'" for y in range(self.height)]
        if title:
            rows.insert(0, title)
        return "\n".join(rows)
