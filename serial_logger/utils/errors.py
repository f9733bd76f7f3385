"""Error kinds raised by the serial logger."""


class SerialLoggerError(Exception):
    """Base class for every error the logger reports to the user."""


class PortUnavailable(SerialLoggerError):
    """The serial port could not be opened. Fatal at startup."""

    def __init__(self, port, reason, available=None):
        self.port = port
        self.reason = reason
        self.available = list(available or [])
        msg = f"Could not open serial port {port}: {reason}"
        if self.available:
            msg += f" (available ports: {', '.join(self.available)})"
        else:
            msg += " (no serial ports found)"
        super().__init__(msg)


class SerialIoError(SerialLoggerError):
    """A read from an open port failed. Reported and retried."""


class WriteFailure(SerialLoggerError):
    """The CSV output could not be opened or written. Fatal."""
