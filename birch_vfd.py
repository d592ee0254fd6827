"""
Birch VFD Display Control Library

Python interface for Birch-style serial VFD character displays.
Keeps a software model of the cursor and lays text out across the
display with wrapping or truncation.
"""

import serial
import time
import logging
from typing import Union, Any, Tuple
from enum import Enum

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)-8s [BirchVFD] %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger('BirchVFD')

Text = Union[str, bytes]


class TextFit(Enum):
    """How a piece of text fits in the space left on the display."""
    ONE_LINE = "one_line"
    ONE_LINE_TRUNCATED = "one_line_truncated"
    NEEDS_WRAP = "needs_wrap"
    NEEDS_WRAP_AROUND = "needs_wrap_around"
    TOO_LONG = "too_long"


class BirchVFDError(Exception):
    """Base exception for Birch VFD display errors."""
    pass


class OpenError(BirchVFDError):
    """Serial connection could not be established."""
    pass


class TransportError(BirchVFDError):
    """Write or flush failed on an established connection."""
    pass


class PlacementError(BirchVFDError):
    """Text cannot be placed under the requested policy. Nothing was sent."""
    pass


class TextTooLong(PlacementError):
    """Text is longer than the space left on the display."""

    def __init__(self, capacity: int, provided: int):
        self.capacity = capacity
        self.provided = provided
        super().__init__(
            f"Text too long to fit on display. A maximum of {capacity} characters "
            f"can be displayed, but {provided} were provided."
        )


class WrapNotAllowed(PlacementError):
    """Text needs more than one line but wrapping and truncation are disabled."""

    def __init__(self, message: str = "Text requires wrapping, use write_text() with wrap enabled."):
        super().__init__(message)


class BirchVFD:
    """
    Birch VFD Display Controller with software cursor tracking

    The device never reports its cursor, so the controller keeps a logical
    cursor (0-based column and row) and converts it to the 1-based wire
    coordinates on every cursor move.

    Basic Usage:
        with BirchVFD('/dev/ttyUSB0', width=20, height=2) as display:
            display.clear()
            display.write_line("Epale!")
            display.place("Text that is longer than one line", allow_truncate=True)

    Text placement:
    - Text no longer than a display line is written as-is at the cursor
    - Longer text wraps onto the rows below while it fits
    - With wrap_around, writing continues from the top-left corner
    - With truncation, whatever does not fit on the current line is dropped
    - Anything else is rejected before a single byte is sent

    Hardware Compatibility:
        Some displays drop bytes when commands arrive back to back. Use
        ``base_command_delay`` to pause after every command and
        ``initialization_delay`` to give the reset command time to settle.
    """

    DEFAULT_WIDTH = 20
    DEFAULT_HEIGHT = 2
    # Wire coordinates are single bytes holding position + 1
    MAX_DIMENSION = 254
    WIRE_OFFSET = 1

    CMD_INITIALIZE = b'\x1B\x40'
    CMD_CLEAR = b'\x0C'
    CMD_CURSOR_POSITION = b'\x1F\x24'

    # Characters the encoding cannot represent are sent as "?"
    ENCODING_ERRORS = 'replace'

    def __init__(self, serial_port: Union[str, Any],
                 width: int = DEFAULT_WIDTH,
                 height: int = DEFAULT_HEIGHT,
                 baudrate: int = 9600,
                 timeout: float = 1.0,
                 encoding: str = 'utf-8',
                 debug: bool = False,
                 # Hardware compatibility delays (normally 0.0)
                 base_command_delay: float = 0.0,
                 initialization_delay: float = 0.0):
        """
        Open the display and send the initialize command.

        Args:
            serial_port: Serial device path, or an open transport exposing
                ``write(bytes)`` and ``flush()`` (e.g. a ``serial.Serial``)
            width: Number of columns (1-254)
            height: Number of rows (1-254)
            baudrate: Communication baud rate (default 9600, 8N1, no flow control)
            timeout: Read and write timeout in seconds for a port opened by path
            encoding: Encoding used to turn ``str`` text into display bytes
            debug: Enable debug logging
            base_command_delay: Delay after every command (seconds, default 0.0)
            initialization_delay: Delay after the initialize command (seconds, default 0.0)

        Raises:
            BirchVFDError: Invalid display geometry
            OpenError: The serial port could not be opened
            TransportError: The initialize command could not be sent
        """
        if not 1 <= width <= self.MAX_DIMENSION:
            raise BirchVFDError(f"Invalid width: {width} (must be 1-{self.MAX_DIMENSION})")
        if not 1 <= height <= self.MAX_DIMENSION:
            raise BirchVFDError(f"Invalid height: {height} (must be 1-{self.MAX_DIMENSION})")

        self.width = width
        self.height = height
        self.encoding = encoding
        self.debug = debug
        self.base_command_delay = base_command_delay
        self.initialization_delay = initialization_delay
        self._cursor_x = 0
        self._cursor_y = 0

        if debug:
            logger.setLevel(logging.DEBUG)
            logger.debug("Initializing Birch VFD controller")

        if isinstance(serial_port, str):
            logger.debug(f"Opening serial port: {serial_port} at {baudrate} baud")
            try:
                self.ser = serial.Serial(
                    port=serial_port,
                    baudrate=baudrate,
                    bytesize=serial.EIGHTBITS,
                    parity=serial.PARITY_NONE,
                    stopbits=serial.STOPBITS_ONE,
                    xonxoff=False,
                    rtscts=False,
                    dsrdtr=False,
                    timeout=timeout,
                    write_timeout=timeout,
                )
            except (serial.SerialException, OSError, ValueError) as e:
                logger.error(f"Serial connection failed: {e}")
                raise OpenError(f"Serial connection failed: {e}") from e
        else:
            logger.debug("Using existing serial connection")
            self.ser = serial_port

        try:
            self.initialize()
        except TransportError:
            self.close()
            raise

    @classmethod
    def create_hardware(cls, port: str, **kwargs) -> "BirchVFD":
        """Factory for a display on a serial device path."""
        return cls(port, **kwargs)

    @classmethod
    def create_with_transport(cls, transport: Any, **kwargs) -> "BirchVFD":
        """Factory for a display on an already open transport."""
        return cls(transport, **kwargs)

    def _send_command(self, command: bytes, description: str = "Command", delay: float = None) -> None:
        """
        Send command with optional delay override.

        Args:
            command: Command bytes to send
            description: Debug description
            delay: Override delay (None = use base_command_delay, 0.0 = no delay)
        """
        if delay is None:
            delay = self.base_command_delay

        hex_str = ' '.join(f'{byte:02X}' for byte in command)
        logger.debug(f"Sending: {description} | Bytes: {hex_str} | Delay: {delay:.3f}s")

        try:
            self.ser.write(command)
        except (serial.SerialException, OSError) as e:
            logger.error(f"Command failed: {e}")
            raise TransportError(f"Command failed: {e}") from e

        if delay > 0:
            time.sleep(delay)

    def _flush_best_effort(self, operation: str) -> None:
        """Flush the transport, logging instead of raising on failure."""
        try:
            self.ser.flush()
        except (serial.SerialException, OSError) as e:
            logger.warning(f"Failed to flush serial port after {operation}: {e}")

    # === COMMANDS ===

    def initialize(self, delay: float = None) -> None:
        """Reset the display (ESC @) and home the logical cursor."""
        init_delay = delay if delay is not None else self.initialization_delay
        self._send_command(self.CMD_INITIALIZE, "Initialize display", init_delay)
        self._cursor_x = 0
        self._cursor_y = 0

    def clear(self, delay: float = None) -> None:
        """
        Clear the display and home the logical cursor.

        The flush that follows is best effort: the clear byte has already
        been handed to the port, so a flush failure is only logged.
        """
        self._send_command(self.CMD_CLEAR, "Clear display", delay)
        self._cursor_x = 0
        self._cursor_y = 0
        self._flush_best_effort("clear command")

    def set_cursor(self, column: int, row: int, delay: float = None) -> None:
        """
        Move the cursor to a 0-based (column, row).

        Out of range positions are clamped to [0, width] x [0, height];
        the clamped position is both sent and stored.

        Args:
            column: Target column
            row: Target row
            delay: Optional delay override (for slow hardware)
        """
        col = self._clamp(column, self.width)
        line = self._clamp(row, self.height)
        if (col, line) != (column, row):
            logger.debug(f"Cursor ({column},{row}) clamped to ({col},{line})")

        cmd = self.CMD_CURSOR_POSITION + bytes([col + self.WIRE_OFFSET, line + self.WIRE_OFFSET])
        self._send_command(cmd, f"Set cursor: ({col},{line})", delay)
        self._cursor_x = col
        self._cursor_y = line

    def get_cursor(self) -> Tuple[int, int]:
        """Return the logical cursor as (column, row)."""
        return self._cursor_x, self._cursor_y

    def raw_write(self, data: bytes, delay: float = None) -> None:
        """Send bytes verbatim. The logical cursor is not updated."""
        self._send_command(bytes(data), f"Raw write: {bytes(data)!r}", delay)

    # === LAYOUT ===

    @staticmethod
    def _clamp(value: int, upper: int) -> int:
        return max(0, min(value, upper))

    def _encode(self, text: Text) -> bytes:
        if isinstance(text, (bytes, bytearray)):
            return bytes(text)
        return text.encode(self.encoding, self.ENCODING_ERRORS)

    def _space_on_line(self) -> int:
        return max(0, self.width - self._cursor_x)

    def _lines_left(self) -> int:
        # rows strictly below the cursor
        return max(0, self.height - (self._cursor_y + 1))

    def remaining_capacity(self) -> int:
        """Bytes that fit from the cursor to the end of the last row."""
        return self._space_on_line() + self._lines_left() * self.width

    def _take(self, text: Text, budget: int) -> Tuple[bytes, Text]:
        """
        Split off the longest prefix of ``text`` that encodes to at most
        ``budget`` bytes.

        ``bytes`` are cut at the exact offset. ``str`` is cut on a character
        boundary so a multi-byte character is never split; the line may be
        left slightly short.
        """
        if isinstance(text, (bytes, bytearray)):
            return bytes(text[:budget]), text[budget:]

        size = 0
        count = 0
        for ch in text:
            n = len(ch.encode(self.encoding, self.ENCODING_ERRORS))
            if size + n > budget:
                break
            size += n
            count += 1
        return text[:count].encode(self.encoding, self.ENCODING_ERRORS), text[count:]

    def classify(self, text: Text, allow_truncate: bool = False, wrap_around: bool = False) -> TextFit:
        """
        Decide how ``text`` fits at the current cursor position.

        Text no longer than a full line is always ONE_LINE, whatever the
        cursor column; placing it is the caller's business. Longer text
        wraps when the rest of the current line plus the rows below can
        hold it. Truncation is the fallback for text that cannot be wrapped.
        """
        length = len(self._encode(text))

        if length <= self.width:
            return TextFit.ONE_LINE

        if self.remaining_capacity() >= length:
            return TextFit.NEEDS_WRAP

        if wrap_around and length <= self.width * self.height:
            return TextFit.NEEDS_WRAP_AROUND

        if allow_truncate and self._cursor_x < self.width:
            return TextFit.ONE_LINE_TRUNCATED

        return TextFit.TOO_LONG

    def write_text(self, text: Text, wrap: bool = True, truncate: bool = False,
                   wrap_around: bool = False, delay: float = None) -> None:
        """
        Write text at the cursor, wrapping or truncating as allowed.

        Args:
            text: ``str`` (encoded with ``encoding``) or ``bytes``
            wrap: Continue on the rows below when the text overflows a line
            truncate: Drop what does not fit on the current line when
                the text cannot be wrapped
            wrap_around: Continue at the top-left corner after the last row
            delay: Optional delay override (for slow hardware)

        Raises:
            TextTooLong: The text does not fit; nothing was sent
            WrapNotAllowed: The text needs wrapping but ``wrap`` and
                ``truncate`` are both off; nothing was sent
            TransportError: A command could not be sent
        """
        data = self._encode(text)
        fit = self.classify(text, allow_truncate=truncate, wrap_around=wrap_around)

        if fit in (TextFit.NEEDS_WRAP, TextFit.NEEDS_WRAP_AROUND) and not wrap:
            if truncate and self._cursor_x < self.width:
                fit = TextFit.ONE_LINE_TRUNCATED
            else:
                raise WrapNotAllowed()

        logger.debug(f"Placing {len(data)} bytes at {self.get_cursor()}: {fit.value}")

        if fit is TextFit.ONE_LINE:
            self.raw_write(data, delay)
        elif fit is TextFit.ONE_LINE_TRUNCATED:
            chunk, _ = self._take(text, self._space_on_line())
            if chunk:
                self.raw_write(chunk, delay)
                self._cursor_x += len(chunk)
        elif fit in (TextFit.NEEDS_WRAP, TextFit.NEEDS_WRAP_AROUND):
            self._write_wrapped(text, wrap_around, delay)
        else:
            capacity = self.width * self.height if wrap_around else self.remaining_capacity()
            raise TextTooLong(capacity, len(data))

    def _write_wrapped(self, text: Text, wrap_around: bool, delay: float = None) -> None:
        """Write ``text`` line by line, moving to column 0 of the next row between chunks."""
        remaining = text
        while remaining:
            chunk, remaining = self._take(remaining, self._space_on_line())
            if chunk:
                self.raw_write(chunk, delay)
                self._cursor_x += len(chunk)
            elif self._cursor_x == 0:
                logger.warning(f"Character wider than the display, {len(self._encode(remaining))} bytes not written")
                break

            if not remaining:
                break

            if self._cursor_y + 1 < self.height:
                self.set_cursor(0, self._cursor_y + 1, delay)
            elif wrap_around:
                self.set_cursor(0, 0, delay)
            else:
                logger.warning(f"Display full, {len(self._encode(remaining))} bytes not written")
                break

    def place(self, text: Text, allow_truncate: bool = False, delay: float = None) -> None:
        """Write text at the cursor, wrapping onto the rows below when needed."""
        self.write_text(text, wrap=True, truncate=allow_truncate, delay=delay)

    def write_line(self, text: Text, delay: float = None) -> None:
        """Write text that must fit on a single line."""
        self.write_text(text, wrap=False, truncate=False, delay=delay)

    def close(self) -> None:
        """Close serial connection. No command is sent to the display."""
        ser = getattr(self, 'ser', None)
        if ser is not None and getattr(ser, 'is_open', True) and hasattr(ser, 'close'):
            try:
                logger.debug("Closing serial connection")
                ser.close()
            except (serial.SerialException, OSError) as e:
                logger.error(f"Error closing connection: {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
