import time

import serial


class FakeSerial:
    """Stands in for serial.Serial. Items in `chunks` are returned by read()
    in order (exceptions are raised); afterwards reads time out with b""."""

    def __init__(self, chunks=(), on_idle=None):
        self.chunks = list(chunks)
        self.on_idle = on_idle
        self.in_waiting = 0
        self.closed = False
        self.reads = 0

    def read(self, size=1):
        if self.closed:
            raise serial.SerialException("Attempting to use a port that is not open")
        self.reads += 1
        if self.chunks:
            item = self.chunks.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        if self.on_idle:
            hook, self.on_idle = self.on_idle, None
            hook()
        time.sleep(0.005)
        return b""

    def close(self):
        self.closed = True
