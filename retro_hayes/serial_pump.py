"""DTE byte pump: command line editor, data forwarding and the +++ escape detector."""

import logging
import threading
import time
from collections import deque

from .errors import DTEError
from .hardware import LED
from .registers import BS_CH, CR_CH, ESC_CH, ESC_GUARD_20MS
from .result_codes import ResultCode
from .state import Mode

logger = logging.getLogger(__name__)

DEL = 0x7F


class EscapeDetector:
    """
    Guard-time escape detection.

    Bytes are counted per guard tick. An escape needs a silent tick, then
    a tick holding exactly three escape characters, then another silent
    tick.
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.count_at_tick = 0
        self.count_at_last_tick = 0
        self.last_three = deque(maxlen=3)
        self.wait_for_one_tick = False

    def feed(self, c: int) -> None:
        self.count_at_tick += 1
        self.last_three.append(c)

    def tick(self, esc: int) -> bool:
        """Close the current guard interval; True when an escape just completed."""
        detected = False
        if (self.count_at_tick == 3 and self.count_at_last_tick == 0
                and list(self.last_three) == [esc] * 3):
            self.wait_for_one_tick = True
        elif self.wait_for_one_tick and self.count_at_tick == 0:
            self.wait_for_one_tick = False
            self.last_three.clear()
            detected = True
        else:
            self.wait_for_one_tick = False
        self.count_at_last_tick = self.count_at_tick
        self.count_at_tick = 0
        return detected


class SerialPump:
    """Reads the DTE and acts on each byte according to the modem mode."""

    def __init__(self, modem):
        self.modem = modem
        self.detector = EscapeDetector()
        self.buffer = ""
        self._stop = threading.Event()
        self._next_tick = 0.0

    def guard_seconds(self) -> float:
        return max(1, self.modem.registers.read(ESC_GUARD_20MS)) * 0.020

    def reset_timer(self) -> None:
        """Restart the guard ticker, picking up a changed S12."""
        self.detector.reset()
        self._next_tick = time.monotonic() + self.guard_seconds()

    def stop(self) -> None:
        self._stop.set()

    def run(self) -> None:
        """Serve the DTE until stopped or the terminal goes away."""
        self.reset_timer()
        dte = self.modem.dte
        while not self._stop.is_set():
            now = time.monotonic()
            if now >= self._next_tick:
                self.tick()
                self._next_tick = now + self.guard_seconds()
                continue
            try:
                c = dte.read_byte(self._next_tick - now)
            except DTEError as e:
                logger.error(f"Stopping, no more terminal input: {e}")
                self._stop.set()
                return
            if c is not None:
                self.handle_byte(c)

    def tick(self) -> None:
        state = self.modem.state
        if state.mode is Mode.COMMAND:
            self.detector.reset()
            return
        if self.detector.tick(self.modem.registers.read(ESC_CH)):
            logger.info("Escape sequence, entering command mode")
            state.mode = Mode.COMMAND
            self.buffer = ""
            self.modem.report(ResultCode.OK)

    def handle_byte(self, c: int) -> None:
        try:
            if self.modem.state.mode is Mode.DATA:
                self._data_byte(c)
            else:
                self._command_byte(c)
        except DTEError as e:
            logger.error(f"{e}")

    def _data_byte(self, c: int) -> None:
        self.detector.feed(c)
        state = self.modem.state
        conn = state.conn
        if state.off_hook and conn is not None:
            try:
                conn.write(bytes([c]))
                self.modem.pins.blink(LED.SD)
            except OSError as e:
                logger.warning(f"Write to {conn} failed: {e}")

    def _command_byte(self, c: int) -> None:
        modem = self.modem
        if modem.config.echo_in_cmd_mode:
            modem.dte.write(bytes([c]))

        cr = modem.registers.read(CR_CH)
        bs = modem.registers.read(BS_CH)

        if c == ord("/") and self.buffer.upper() == "A":
            self.buffer = ""
            modem.print_line("")
            last = modem.state.last_cmd
            if not last:
                modem.report(ResultCode.ERROR)
                return
            logger.debug(f"Repeating {last!r}")
            self.run_command(last)
        elif c == cr:
            if self.buffer:
                line, self.buffer = self.buffer, ""
                self.run_command(line)
        elif c in (bs, DEL):
            if self.buffer:
                self.buffer = self.buffer[:-1]
        elif c >= 0x20:
            self.buffer += chr(c)

    def run_command(self, line: str) -> None:
        status = self.modem.dispatcher.run(line)
        self.modem.report(status)
