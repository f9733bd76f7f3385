from enum import Enum

from .utils.comms import Message, Record, COMMAND, RECORD, READ_ERROR, DISCONNECTED, EOF, INPUT_ERROR
from .utils.errors import WriteFailure
from .utils.logger import Logger
from .utils.recorder import CsvRecorder

START = "start"
STOP = "stop"
EXIT = "exit"
COMMANDS = (START, STOP, EXIT)
SYNONYMS = {"quit": EXIT}

EXIT_OK = 0
EXIT_FAILURE = 1


class SessionState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    TERMINATED = "terminated"


def parse_command(text: str) -> str | None:
    """Normalise a typed command; None if it is not one we know."""
    word = text.strip().lower()
    word = SYNONYMS.get(word, word)
    return word if word in COMMANDS else None


class RecordFilter:
    """
    Optional gate on what counts as a data line.
    match: keep only lines containing this marker, recording the text after it.
    expect_fields: drop payloads whose comma-separated field count differs.
    """

    def __init__(self, match: str | None = None, expect_fields: int | None = None):
        self.match = match or None
        self.expect_fields = expect_fields

    def apply(self, record: Record) -> Record | None:
        """Return the record to write, or None to skip it silently.
        Raises ValueError for a matching line with the wrong field count."""
        data = record.data
        if self.match:
            if self.match not in data:
                return None
            data = data.split(self.match, 1)[1].strip()
        if self.expect_fields is not None:
            fields = data.split(",")
            if len(fields) != self.expect_fields:
                raise ValueError(
                    f"Unexpected number of fields (expected {self.expect_fields}, "
                    f"got {len(fields)}). Data: {data}"
                )
        if data == record.data:
            return record
        return record._replace(data=data)


class SessionController:
    """
    Owns the session state and the CSV output.

    Commands and records arrive as messages on one channel and are handled in
    channel order. Records are only written while RUNNING; anything that
    arrives while IDLE or PAUSED is discarded.
    """

    def __init__(self, recorder: CsvRecorder, logger: Logger, reader=None,
                 stop_event=None, record_filter: RecordFilter | None = None):
        self.recorder = recorder
        self.logger = logger
        self.reader = reader
        self.stop_event = stop_event
        self.record_filter = record_filter or RecordFilter()
        self.state = SessionState.IDLE
        self.run_number = 0
        self.records_discarded = 0
        self.exit_code = EXIT_OK

    # ------------------------------------------------------------------
    # COMMANDS
    # ------------------------------------------------------------------
    def handle_command(self, text: str) -> SessionState:
        """Apply one user command. Commands with no transition from the
        current state are ignored."""
        if not text.strip():
            return self.state
        command = parse_command(text)
        if command is None:
            self.logger.log("Unknown command. Use 'start', 'stop', or 'exit'.")
            return self.state
        if self.state is SessionState.TERMINATED:
            return self.state

        if command == START:
            self._start()
        elif command == STOP:
            self._stop()
        elif command == EXIT:
            if self.state in (SessionState.RUNNING, SessionState.PAUSED):
                self.logger.log("Exiting...")
                self.terminate()
        return self.state

    def _start(self):
        if self.state is SessionState.RUNNING:
            self.logger.log("Recording is already started.")
            return
        try:
            # opened once, on the first run only
            self.recorder.open()
        except WriteFailure as exc:
            self._fail(exc)
            return
        self.state = SessionState.RUNNING
        self.run_number += 1
        self.logger.log(f"Recording started (run {self.run_number}).")

    def _stop(self):
        if self.state is not SessionState.RUNNING:
            self.logger.log("Recording is not active.")
            return
        self.state = SessionState.PAUSED
        try:
            self.recorder.flush()
        except WriteFailure as exc:
            self._fail(exc)
            return
        self.logger.log("Recording stopped.")

    # ------------------------------------------------------------------
    # RECORDS
    # ------------------------------------------------------------------
    def handle_record(self, record: Record) -> bool:
        """Write the record if RUNNING. Returns True when a row was written."""
        if self.state is not SessionState.RUNNING:
            self.records_discarded += 1
            return False
        try:
            record = self.record_filter.apply(record)
        except ValueError as exc:
            self.logger.log(f"Warning: {exc}")
            return False
        if record is None:
            return False
        try:
            self.recorder.write(record)
        except WriteFailure as exc:
            self._fail(exc)
            return False
        return True

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------
    def handle_message(self, message: Message) -> bool:
        """Dispatch one channel message. Returns True when the loop should end."""
        kind = message.kind
        if kind == RECORD:
            self.handle_record(message.payload)
        elif kind == COMMAND:
            self.handle_command(message.payload)
            if self.state is SessionState.IDLE and parse_command(message.payload) == EXIT:
                # nothing was opened, nothing to close
                self.logger.log("Exiting without recording.")
                return True
        elif kind == EOF:
            self.logger.log("Input closed.")
            if self.state in (SessionState.RUNNING, SessionState.PAUSED):
                self.terminate()
            return True
        elif kind == INPUT_ERROR:
            self.logger.error(f"Command input failed: {message.payload}")
        elif kind == READ_ERROR:
            self.logger.error(str(message.payload))
        elif kind == DISCONNECTED:
            self.logger.error(f"Serial port disconnected: {message.payload}")
            self.exit_code = EXIT_FAILURE
            self.terminate()
        return self.state is SessionState.TERMINATED

    def run(self, channel) -> int:
        """Consume the channel until the session ends. Always releases the
        serial port and the CSV file, including on KeyboardInterrupt."""
        self.logger.log("Enter a command (start, stop, exit):")
        try:
            while True:
                if self.handle_message(channel.get()):
                    break
        finally:
            self.shutdown()
        return self.exit_code

    def terminate(self):
        """Move to TERMINATED: stop the reader, flush and close the CSV."""
        if self.state is SessionState.TERMINATED:
            return
        self.state = SessionState.TERMINATED
        self._stop_reader()
        try:
            self.recorder.close()
        except WriteFailure as exc:
            self.logger.error(str(exc))
            self.exit_code = EXIT_FAILURE

    def shutdown(self):
        if self.state in (SessionState.RUNNING, SessionState.PAUSED):
            self.terminate()
        else:
            self._stop_reader()
        self.logger.log(
            f"Session ended: {self.recorder.rows_written} rows written, "
            f"{self.records_discarded} records discarded."
        )

    def _stop_reader(self):
        if self.stop_event is not None:
            self.stop_event.set()
        if self.reader is not None and not self.reader.closed:
            dropped = self.reader.close()
            if dropped:
                self.logger.log(f"Dropped {dropped} bytes of partial data.")

    def _fail(self, exc: WriteFailure):
        self.logger.error(str(exc))
        self.exit_code = EXIT_FAILURE
        self.terminate()
