"""
Serial CSV Logger - Main Engine

This module wires the logger together:
1. Opens the serial port and starts the reader thread
2. Listens for start / stop / exit on stdin
3. Hands both streams to the session controller, which writes the CSV
4. Optionally plots the recording once the session is over

Usage:
    serial-logger --port COM3 [--baud 115200] [--output output.csv]
    python -m serial_logger -p /dev/ttyUSB0
"""
import sys
import codecs
import argparse
import threading
from queue import Queue

from . import __version__
from .session_runner import SessionController, RecordFilter, EXIT_FAILURE
from .utils.comms import SerialReader, start_serial_pump, start_stdin_listener, DEFAULT_BAUD
from .utils.errors import PortUnavailable
from .utils.logger import Logger
from .utils.paths import resolve_path
from .utils.plotter import generate_post_session_plot
from .utils.recorder import CsvRecorder, DURABILITY_POLICIES, FLUSH_EVERY_RECORD

# ========= DEFAULTS ========= #
DEFAULT_OUTPUT = "output.csv"
DEFAULT_LOG_DIR = "logs"
DEFAULT_MAX_READ_ERRORS = 5
READ_RETRY_DELAY = 0.5
# ============================ #


def _delimiter(value: str) -> bytes:
    """argparse type: accepts escapes such as '\\n' or '\\r\\n'."""
    try:
        decoded = codecs.decode(value, "unicode_escape").encode("latin-1")
    except (UnicodeDecodeError, UnicodeEncodeError) as exc:
        raise argparse.ArgumentTypeError(f"invalid delimiter {value!r}: {exc}")
    if not decoded:
        raise argparse.ArgumentTypeError("delimiter must not be empty")
    return decoded


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer")
    if number < 1:
        raise argparse.ArgumentTypeError(f"{value!r} must be at least 1")
    return number


#parse the arguments
def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="serial-logger",
        description="Reads serial data and stores it in a CSV",
        epilog="While running, type 'start', 'stop' or 'exit' and press Enter.",
    )
    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-p", "--port",
        required=True,
        help="Serial port to connect to (e.g., COM3 or /dev/ttyUSB0)",
    )
    parser.add_argument(
        "-b", "--baud",
        type=int,
        default=DEFAULT_BAUD,
        help=f"Baud rate for the serial port (default: {DEFAULT_BAUD})",
    )
    parser.add_argument(
        "-o", "--output",
        default=DEFAULT_OUTPUT,
        help=f"CSV file to write (default: {DEFAULT_OUTPUT})",
    )
    parser.add_argument(
        "--append",
        action="store_true",
        help="Append to an existing CSV instead of overwriting it",
    )
    parser.add_argument(
        "--durability",
        choices=DURABILITY_POLICIES,
        default=FLUSH_EVERY_RECORD,
        help="'flush' writes every row to disk immediately, 'buffer' flushes on stop/exit",
    )
    parser.add_argument(
        "--delimiter",
        type=_delimiter,
        default=b"\n",
        help="Line delimiter between records, escapes allowed (default: \\n)",
    )
    parser.add_argument(
        "--match",
        default=None,
        help="Only record lines containing this text; the text after it is stored",
    )
    parser.add_argument(
        "--expect-fields",
        type=_positive_int,
        default=None,
        help="Drop records that do not have exactly N comma-separated fields",
    )
    parser.add_argument(
        "--max-read-errors",
        type=_positive_int,
        default=DEFAULT_MAX_READ_ERRORS,
        help=f"Consecutive read failures before giving up (default: {DEFAULT_MAX_READ_ERRORS})",
    )
    parser.add_argument(
        "--log-dir",
        default=DEFAULT_LOG_DIR,
        help=f"Directory for session log folders (default: {DEFAULT_LOG_DIR})",
    )
    parser.add_argument(
        "--session-name",
        default=None,
        help="Custom name for the session log folder (default: session_<timestamp>)",
    )
    parser.add_argument(
        "--plot",
        action="store_true",
        help="Save a PNG plot of the recorded data when the session ends",
    )
    return parser.parse_args(argv)


def main(args, channel=None, stdin=None, status_callback=None) -> int:
    """
    Runs one logging session and returns the process exit code.
    If no channel is provided we create one and listen to stdin (or `stdin`).
    """
    # 1. Initialize Logger
    logger = Logger(log_dir=args.log_dir, session_name=args.session_name, callback=status_callback)
    output = resolve_path(args.output)
    logger.log(f"Logging to -> {output}")

    recorder = CsvRecorder(
        output,
        append=args.append,
        durability=args.durability,
    )

    # 2. Open Serial Port
    try:
        reader = SerialReader.open(args.port, args.baud, delimiter=args.delimiter)
    except PortUnavailable as exc:
        logger.error(str(exc))
        return EXIT_FAILURE
    logger.log(f"Serial port {args.port} opened at {args.baud} baud.")

    # 3. Wire the channel: serial records + user commands, one consumer
    stop_event = threading.Event()
    record_filter = RecordFilter(
        match=args.match,
        expect_fields=args.expect_fields,
    )
    controller = SessionController(
        recorder, logger, reader=reader, stop_event=stop_event, record_filter=record_filter
    )

    if channel is None:
        channel = Queue()
        start_stdin_listener(channel, stdin)

    start_serial_pump(
        reader,
        channel,
        stop_event,
        max_read_errors=args.max_read_errors,
        retry_delay=READ_RETRY_DELAY,
    )

    # 4. Main loop (blocks until exit)
    try:
        exit_code = controller.run(channel)
    except KeyboardInterrupt:
        # run() has already flushed and closed the CSV
        logger.log("Interrupted.")
        exit_code = controller.exit_code

    if args.plot and recorder.rows_written:
        generate_post_session_plot(output, logger)

    return exit_code


def run(argv=None):
    """Console entry point."""
    sys.exit(main(parse_args(argv)))


if __name__ == "__main__":
    run()
