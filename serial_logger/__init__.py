"""Serial CSV Logger: records serial port lines into a CSV under start/stop control."""

__version__ = "1.0.0"
