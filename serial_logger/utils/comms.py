import sys
import time
import datetime
import threading
from typing import NamedTuple

import serial
import serial.tools.list_ports

from .errors import PortUnavailable, SerialIoError

DEFAULT_BAUD = 115200
DEFAULT_DELIMITER = b"\n"
# short read timeout so a closed reader is noticed quickly
READ_TIMEOUT = 0.1
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


# ==================================================================================
# MESSAGES
# Everything the controller reacts to arrives as one of these on a single channel.
# ==================================================================================
COMMAND = "command"
RECORD = "record"
READ_ERROR = "read_error"
DISCONNECTED = "disconnected"
EOF = "eof"
INPUT_ERROR = "input_error"


class Message(NamedTuple):
    kind: str
    payload: object = None


class Record(NamedTuple):
    """One line received from the device, stamped when it was framed."""
    timestamp: datetime.datetime
    data: str

    @classmethod
    def capture(cls, data: str) -> "Record":
        return cls(datetime.datetime.now(), data)

    def formatted_timestamp(self) -> str:
        # milliseconds, not microseconds
        return self.timestamp.strftime(TIMESTAMP_FORMAT)[:-3]


def clean_line(raw: bytes) -> str:
    """Decode one frame, drop tabs and surrounding whitespace."""
    return raw.decode("utf-8", errors="ignore").replace("\t", "").strip()


class LineFramer:
    """
    Splits a raw byte stream into frames at each delimiter.
    Bytes after the last delimiter stay pending until more data arrives;
    they are never emitted on their own.
    """

    def __init__(self, delimiter: bytes = DEFAULT_DELIMITER):
        if not delimiter:
            raise ValueError("Frame delimiter must not be empty")
        self.delimiter = delimiter
        self._buffer = bytearray()

    def feed(self, chunk: bytes):
        if chunk:
            self._buffer.extend(chunk)

    def next_frame(self) -> str | None:
        """Return the next non-empty frame, or None if no complete frame is buffered."""
        while True:
            idx = self._buffer.find(self.delimiter)
            if idx < 0:
                return None
            raw = bytes(self._buffer[:idx])
            del self._buffer[:idx + len(self.delimiter)]
            if raw.endswith(b"\r"):
                raw = raw[:-1]
            line = clean_line(raw)
            if line:
                return line

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def discard(self) -> int:
        """Drop any partial frame, returning how many bytes were dropped."""
        dropped = len(self._buffer)
        self._buffer.clear()
        return dropped


def list_port_names():
    return [p.device for p in serial.tools.list_ports.comports()]


class SerialReader:
    """
    Owns one open serial connection and turns it into Records.
    The record stream is lazy and infinite and cannot be restarted once closed.
    """

    def __init__(self, ser, delimiter: bytes = DEFAULT_DELIMITER):
        self.ser = ser
        self.framer = LineFramer(delimiter)
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def open(cls, port: str, baud: int = DEFAULT_BAUD, delimiter: bytes = DEFAULT_DELIMITER,
             timeout: float = READ_TIMEOUT) -> "SerialReader":
        """Open the port or raise PortUnavailable."""
        try:
            ser = serial.Serial(port, baud, timeout=timeout)
        except (serial.SerialException, ValueError, OSError) as exc:
            raise PortUnavailable(port, exc, available=list_port_names()) from exc
        return cls(ser, delimiter)

    @property
    def closed(self) -> bool:
        return self._closed

    def read_next(self) -> Record | None:
        """
        Block until the next complete frame and return it as a Record.
        Raises SerialIoError when the port read fails.
        Returns None once the reader has been closed.
        """
        while True:
            frame = self.framer.next_frame()
            if frame is not None:
                return Record.capture(frame)
            if self._closed:
                return None
            try:
                chunk = self.ser.read(self.ser.in_waiting or 1)
            except (serial.SerialException, OSError) as exc:
                # closing the port from another thread interrupts the read
                if self._closed:
                    return None
                raise SerialIoError(f"Error reading from serial port: {exc}") from exc
            self.framer.feed(chunk)

    def records(self):
        """Lazy generator over read_next(); ends only when the reader is closed."""
        while True:
            record = self.read_next()
            if record is None:
                return
            yield record

    def close(self) -> int:
        """Close the port. Returns the number of partial-frame bytes dropped."""
        with self._lock:
            if self._closed:
                return 0
            self._closed = True
        try:
            self.ser.close()
        except (serial.SerialException, OSError):
            pass
        return self.framer.discard()


# ==================================================================================
# PRODUCER THREADS
# Every way out of a producer thread leaves a message on the channel.
# ==================================================================================
def start_serial_pump(reader: SerialReader, channel, stop_event: threading.Event,
                      max_read_errors: int = 5, retry_delay: float = 0.5) -> threading.Thread:
    """
    Reads records in a background thread and posts them to the channel.
    Read failures are posted as READ_ERROR and retried; after max_read_errors
    consecutive failures a DISCONNECTED message is posted and the thread ends.
    Any other exception also ends the thread with DISCONNECTED.
    """
    def _read_loop():
        failures = 0
        while not stop_event.is_set():
            try:
                record = reader.read_next()
            except SerialIoError as exc:
                if stop_event.is_set():
                    return None
                failures += 1
                channel.put(Message(READ_ERROR, exc))
                if failures >= max_read_errors:
                    return exc
                time.sleep(retry_delay)
                continue
            if record is None:
                return None
            failures = 0
            channel.put(Message(RECORD, record))
        return None

    def _pump():
        try:
            lost = _read_loop()
        except Exception as exc:
            lost = exc
        if lost is not None:
            channel.put(Message(DISCONNECTED, lost))

    t = threading.Thread(target=_pump, name="serial-pump", daemon=True)
    t.start()
    return t


def start_stdin_listener(channel, stream=None) -> threading.Thread:
    """
    Reads commands from stdin in a separate thread and puts them on the channel.
    End of input is posted as an EOF message, and so is unreadable input
    (preceded by an INPUT_ERROR message).
    """
    def _listen():
        source = stream if stream is not None else sys.stdin
        try:
            for line in source:
                channel.put(Message(COMMAND, line.strip()))
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            channel.put(Message(INPUT_ERROR, exc))
        finally:
            channel.put(Message(EOF))

    t = threading.Thread(target=_listen, name="stdin-listener", daemon=True)
    t.start()
    return t
