"""16x2 status display, kept in memory."""

import logging
import threading
import time
from typing import List

logger = logging.getLogger(__name__)

COLUMNS = 16
ROWS = 2
BANNER = "RetroHayes 1.0"


class StatusLCD:
    """
    Character display contents.

    Hosts without an I2C panel still get the same text in memory and in
    the debug log, so the state dump can show it.
    """

    def __init__(self, columns: int = COLUMNS, rows: int = ROWS):
        self.columns = columns
        self.rows = rows
        self._lock = threading.Lock()
        self._lines = [""] * rows
        self.status = ""
        self.status_time = 0.0

    def printf(self, row: int, text: str) -> None:
        """Left aligned, truncated to the panel width."""
        if not 0 <= row < self.rows:
            raise ValueError(f"LCD row {row} out of range")
        text = text[:self.columns]
        with self._lock:
            self._lines[row] = text
        logger.debug(f"LCD[{row}] {text!r}")

    def center(self, row: int, text: str) -> None:
        self.printf(row, text[:self.columns].center(self.columns).rstrip())

    def clear(self) -> None:
        """Blank both rows; the last status is still remembered."""
        with self._lock:
            self._lines = [""] * self.rows

    def show_status(self, text: str) -> None:
        """Result code line; remembered so a stale NO CARRIER can be cleared."""
        self.status = text
        self.status_time = time.monotonic()
        self.printf(1, text)

    @property
    def lines(self) -> List[str]:
        with self._lock:
            return list(self._lines)

    def __str__(self) -> str:
        return "\n".join(f"|{line:<{self.columns}}|" for line in self.lines)
