import datetime
import time
import sys

from .paths import get_logs_dir


def _format_elapsed(seconds: float) -> str:
    #formats the time to look like stopper-style HH:MM:SS.mmm
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:06.3f}"

class Logger:
    # NOTE: This logger is used both for the console and for the session log file.
    #       Tests hook in through the callback to see every message.
    def __init__(self, log_dir=None, session_name=None, callback=None, echo: bool = True):
        self.start_time = time.time()
        self.timestamp = datetime.datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        self.callback = callback
        self.echo = echo
        if session_name and session_name.strip():
            # Sanitize name
            safe_name = "".join([c for c in session_name if c.isalnum() or c in (' ', '_', '-')]).strip()
            self.path = get_logs_dir(log_dir) / safe_name
        else:
            # logs/session_TIMESTAMP
            self.path = get_logs_dir(log_dir) / f"session_{self.timestamp}"

        #setting the path to the session directory
        self.path.mkdir(parents=True, exist_ok=True)

        self.file_path = self.path / "session_log.txt"
        #creating the log file
        with self.file_path.open("w", encoding="utf-8") as handle:
            handle.write(f"Session log started at {self.timestamp} (t=0.000)\n")

    def _elapsed_str(self, timestamp: float | None = None) -> str:
        if timestamp is None:
            timestamp = time.time()
        elapsed = max(0.0, timestamp - self.start_time)
        return _format_elapsed(elapsed)

    def _write(self, stamped: str):
        with self.file_path.open("a", encoding="utf-8") as handle:
            handle.write(stamped + "\n")

    def log(self, message: str):
        stamped = f"[{self._elapsed_str()}] {message}"
        self._write(stamped)
        if self.echo:
            print(stamped)
            sys.stdout.flush()

        if self.callback:
            self.callback(message)

    def error(self, message: str):
        """Same as log() but marked as an error and echoed to stderr."""
        stamped = f"[{self._elapsed_str()}] ERROR: {message}"
        self._write(stamped)
        print(stamped, file=sys.stderr)
        sys.stderr.flush()

        if self.callback:
            self.callback(f"ERROR: {message}")
