"""Call supervisor: listens for calls, rings the DTE, and carries network bytes."""

import logging
import queue
import threading
import time
from typing import List, Optional

from .connection import Connection, Direction
from .errors import DTEError, FatalNetworkError, TransientNetworkError
from .hardware import LED, Pin
from .protocols import BUSY_MESSAGE, Listener, SSHListener, TelnetListener
from .registers import AUTO_ANSWER, CARRIER_DETECT_RESP_100MS, INACTIVITY_TIMER_10S, RING_COUNT
from .result_codes import ResultCode
from .state import Mode

logger = logging.getLogger(__name__)

MAX_RINGS = 10
RING_MESSAGE = b"Ringing...\r\n"
ANSWERED_MESSAGE = b"Answered\r\n"

_ANSWERED = "answered"
_CLOSED = "closed"
_FAILED = "failed"


class CallSupervisor:
    """
    Owns the call in progress.

    Inbound calls from the listeners and outbound calls from the dialer
    arrive on one queue and are handled one at a time on the supervisor
    thread. Durations are parameters so tests can run them quickly.
    """

    def __init__(self, modem, ring_seconds: float = 2.0, silence_seconds: float = 4.0,
                 slice_seconds: float = 0.02, poll_seconds: float = 0.25,
                 ring_decay_seconds: float = 8.0):
        self.modem = modem
        self.ring_seconds = ring_seconds
        self.silence_seconds = silence_seconds
        self.slice_seconds = slice_seconds
        self.poll_seconds = poll_seconds
        self.ring_decay_seconds = ring_decay_seconds
        self.calls: "queue.Queue[Connection]" = queue.Queue()
        self.listeners: List[Listener] = []
        self._ringing: Optional[Connection] = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    # --- lifecycle ---

    def start(self, telnet_port: Optional[int] = None, ssh_port: Optional[int] = None,
              keyfile: str = "./id_rsa", host: str = "0.0.0.0") -> None:
        """Start the listeners that are enabled, the call loop and the ring counter watcher."""
        if telnet_port is not None:
            self._add_listener(TelnetListener(telnet_port, self.deliver, self.is_busy, host=host))
        if ssh_port is not None:
            self._add_listener(SSHListener(ssh_port, self.deliver, self.is_busy, keyfile=keyfile, host=host))
        for target, name in ((self._run, "call-supervisor"), (self._ring_decay_loop, "ring-decay")):
            thread = threading.Thread(target=target, name=name, daemon=True)
            thread.start()
            self._threads.append(thread)

    def _add_listener(self, listener: Listener) -> None:
        if listener.start():
            self.listeners.append(listener)

    def stop(self) -> None:
        self._stop.set()
        for listener in self.listeners:
            listener.stop()

    # --- call queue ---

    def deliver(self, conn: Connection) -> None:
        """Hand a new inbound or freshly dialed connection to the supervisor."""
        logger.debug(f"Call queued: {conn}")
        self.calls.put(conn)

    @property
    def ringing(self) -> Optional[Connection]:
        with self._lock:
            return self._ringing

    def is_busy(self) -> bool:
        state = self.modem.state
        return state.line_busy or state.off_hook or self.ringing is not None

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                conn = self.calls.get(timeout=0.5)
            except queue.Empty:
                continue
            try:
                self.handle(conn)
            except Exception as e:
                logger.exception(f"Call handling failed for {conn}: {e}")
                conn.close()

    def handle(self, conn: Connection) -> None:
        if conn.direction is Direction.INBOUND:
            state = self.modem.state
            if state.line_busy or state.off_hook:
                logger.info(f"Line busy, dropping {conn}")
                try:
                    conn.write(BUSY_MESSAGE)
                except OSError:
                    pass
                conn.close()
                return
            if not self.ring(conn):
                return
        self.pump(conn)

    # --- ringing ---

    def _wait(self, conn: Connection, seconds: float) -> Optional[str]:
        """Sleep in slices, watching for the DTE going off-hook or the caller leaving."""
        deadline = time.monotonic() + seconds
        while time.monotonic() < deadline:
            if self.modem.state.off_hook:
                return _ANSWERED
            if conn.remote_closed():
                return _CLOSED
            time.sleep(self.slice_seconds)
        return None

    def ring(self, conn: Connection) -> bool:
        """
        Ring the DTE for an inbound call.

        Returns:
            True once the call is answered and carrier is up, False if the
            call was dropped.
        """
        modem = self.modem
        state = modem.state
        regs = modem.registers
        pins = modem.pins

        with self._lock:
            self._ringing = conn
        state.line_busy = True
        outcome = None
        try:
            for ring in range(1, MAX_RINGS + 1):
                try:
                    conn.write(RING_MESSAGE)
                except OSError as e:
                    logger.info(f"Caller went away: {e}")
                    outcome = _CLOSED
                    break

                pins.raise_pin(Pin.RI)
                modem.tones.ring()
                outcome = self._wait(conn, self.ring_seconds)
                if outcome:
                    break
                pins.lower_pin(Pin.RI)
                modem.report(ResultCode.RING)
                modem.lcd.printf(0, f"RING {ring}")

                count = regs.increment(RING_COUNT)
                state.note_ring()
                auto_answer = regs.read(AUTO_ANSWER)
                if auto_answer > 0 and count >= auto_answer:
                    logger.info(f"Auto-answer on ring {count}")
                    status = modem.answer(conn)
                    modem.report(status)
                    outcome = _ANSWERED if status is ResultCode.CONNECT else _FAILED
                    break

                outcome = self._wait(conn, self.silence_seconds)
                if outcome:
                    break
        finally:
            with self._lock:
                self._ringing = None
            pins.lower_pin(Pin.RI)

        if outcome == _ANSWERED and self._await_carrier(conn):
            try:
                conn.write(ANSWERED_MESSAGE)
            except OSError as e:
                logger.warning(f"Can't tell caller the call was answered: {e}")
            regs.write(RING_COUNT, 0)
            return True

        if outcome in (None, _CLOSED):
            logger.info(f"No answer for {conn}")
            modem.report(ResultCode.NO_ANSWER)
        conn.close()
        if state.on_hook:
            state.line_busy = False
        return False

    def _await_carrier(self, conn: Connection) -> bool:
        """Wait for an ATA in progress to finish bringing carrier up on this call."""
        limit = self.modem.registers.read(CARRIER_DETECT_RESP_100MS) * 0.1 + 2.0
        deadline = time.monotonic() + limit
        state = self.modem.state
        while time.monotonic() < deadline:
            if state.dcd and state.conn is conn:
                return True
            if state.on_hook:
                return False
            time.sleep(self.slice_seconds)
        logger.info("Off hook but no carrier, dropping caller")
        return False

    def check_ring_counter(self, now: Optional[float] = None) -> None:
        """Clear the ring counter once no ring has been seen for the decay period."""
        now = time.monotonic() if now is None else now
        regs = self.modem.registers
        if regs.read(RING_COUNT) and now - self.modem.state.last_ring_time >= self.ring_decay_seconds:
            logger.debug("Clearing ring counter")
            regs.write(RING_COUNT, 0)

    def _ring_decay_loop(self) -> None:
        interval = min(0.5, self.ring_decay_seconds)
        while not self._stop.wait(interval):
            self.check_ring_counter()

    # --- connected call ---

    def pump(self, conn: Connection) -> None:
        """Carry network bytes to the DTE until the call ends, then tear it down."""
        modem = self.modem
        logger.info(f"Call up: {conn}")
        modem.lcd.printf(0, conn.remote_addr)
        call_id = None
        if modem.call_log:
            call_id = modem.call_log.start_call(conn.direction.value, conn.protocol, conn.remote_addr)

        reason = self._carry(conn)

        status = modem.hangup(conn)
        if status is ResultCode.NO_CARRIER:
            modem.report(status)
        conn.close()
        logger.info(f"Call ended ({reason}) after {conn.duration()}s: {conn}")

        if modem.call_log and call_id is not None:
            modem.call_log.end_call(call_id, conn.sent, conn.recv, reason)
        if modem.metrics:
            modem.metrics.record_call_end(
                conn.direction.value, conn.protocol, conn.duration(), conn.sent, conn.recv, reason
            )

    def _carry(self, conn: Connection) -> str:
        """Returns the reason the call ended."""
        modem = self.modem
        state = modem.state
        idle_since = time.monotonic()
        retried = False

        while not self._stop.is_set():
            if not state.dcd or state.on_hook or state.conn is not conn:
                return "hangup"

            limit = modem.registers.read(INACTIVITY_TIMER_10S) * 10
            try:
                data = conn.read(self.poll_seconds)
            except TimeoutError:
                if limit and time.monotonic() - idle_since >= limit:
                    logger.info(f"Inactivity timer ({limit}s) expired")
                    return "inactivity"
                continue
            except TransientNetworkError as e:
                if retried:
                    logger.warning(f"Read keeps failing: {e}")
                    return "error"
                retried = True
                continue
            except FatalNetworkError as e:
                if conn.closed:
                    return "hangup"
                logger.warning(f"Read from {conn} failed: {e}")
                return "error"

            retried = False
            if not data:
                return "remote_closed"
            idle_since = time.monotonic()
            if state.mode is Mode.DATA:
                try:
                    modem.dte.write(data)
                except DTEError as e:
                    logger.error(f"Dropped {len(data)} bytes for the DTE: {e}")
                modem.pins.blink(LED.RD)
        return "shutdown"
