from csv import writer, Error as CsvError
from pathlib import Path

from .comms import Record
from .errors import WriteFailure

HEADER = ["timestamp", "data"]

# durability policies
FLUSH_EVERY_RECORD = "flush"
BUFFER_UNTIL_STOP = "buffer"
DURABILITY_POLICIES = (FLUSH_EVERY_RECORD, BUFFER_UNTIL_STOP)


class CsvRecorder:
    """
    The CSV output file. Opened lazily on the first recording run and kept
    open across pauses; every OS or csv error surfaces as WriteFailure.
    """

    def __init__(self, path, append: bool = False, durability: str = FLUSH_EVERY_RECORD):
        if durability not in DURABILITY_POLICIES:
            raise ValueError(f"Unknown durability policy: {durability!r}")
        self.path = Path(path)
        self.append = append
        self.durability = durability
        self.rows_written = 0
        self._handle = None
        self._writer = None

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def open(self):
        if self.is_open:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # header only goes into a fresh (or empty) file
            needs_header = not self.append or not self.path.exists() or self.path.stat().st_size == 0
            self._handle = self.path.open("a" if self.append else "w", newline="", encoding="utf-8")
            self._writer = writer(self._handle)
            if needs_header:
                self._writer.writerow(HEADER)
                self._handle.flush()
        except (OSError, ValueError, CsvError) as exc:
            self._handle = None
            self._writer = None
            raise WriteFailure(f"Failed to open CSV file {self.path}: {exc}") from exc

    def write(self, record: Record):
        if not self.is_open:
            raise WriteFailure(f"CSV file {self.path} is not open")
        try:
            self._writer.writerow([record.formatted_timestamp(), record.data])
            if self.durability == FLUSH_EVERY_RECORD:
                self._handle.flush()
        except (OSError, ValueError, CsvError) as exc:
            raise WriteFailure(f"Failed to write record to CSV: {exc}") from exc
        self.rows_written += 1

    def flush(self):
        if not self.is_open:
            return
        try:
            self._handle.flush()
        except (OSError, ValueError, CsvError) as exc:
            raise WriteFailure(f"Failed to flush CSV writer: {exc}") from exc

    def close(self):
        """Flush and close. Safe to call more than once."""
        if not self.is_open:
            return
        handle = self._handle
        self._handle = None
        self._writer = None
        try:
            handle.flush()
        except (OSError, ValueError, CsvError) as exc:
            raise WriteFailure(f"Failed to flush CSV writer: {exc}") from exc
        finally:
            handle.close()
