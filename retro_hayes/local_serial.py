"""Console DTE: stdin/stdout standing in for a serial port."""

import os
import select
import sys
import termios
import tty


class LocalSerial:
    """Drop-in replacement for serial.Serial that uses the local terminal."""

    is_local = True

    def __init__(self):
        self._stdin_fd = sys.stdin.fileno()
        self._stdout_fd = sys.stdout.fileno()
        self._old_settings = None
        if os.isatty(self._stdin_fd):
            self._old_settings = termios.tcgetattr(self._stdin_fd)
            tty.setraw(self._stdin_fd)
        self._closed = False

    @property
    def in_waiting(self) -> int:
        """Return number of bytes available to read (0 or 1)."""
        r, _, _ = select.select([self._stdin_fd], [], [], 0)
        return 1 if r else 0

    def write(self, data: bytes) -> int:
        return os.write(self._stdout_fd, data)

    def read(self, size: int = 1) -> bytes:
        """Read up to `size` bytes, waiting at most 100ms like a timed serial port."""
        r, _, _ = select.select([self._stdin_fd], [], [], 0.1)
        if not r:
            return b""
        data = os.read(self._stdin_fd, size)
        if not data:
            raise EOFError("console input closed")
        return data

    def flush(self) -> None:
        pass

    def fileno(self) -> int:
        return self._stdin_fd

    def close(self) -> None:
        """Restore terminal settings."""
        if not self._closed:
            if self._old_settings is not None:
                termios.tcsetattr(self._stdin_fd, termios.TCSADRAIN, self._old_settings)
            self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
