"""Outbound dialing: number resolution, connect with user abort, carrier up."""

import logging
import threading
import time
from typing import Callable, Optional, Tuple

from .errors import DialFailed, DialTimeout, DTEError, ModemError, StateError, UnsupportedError
from .phonebook import DIAL_DIGITS
from .protocols import dial_ssh, dial_telnet
from .registers import COMMA_PAUSE_S
from .result_codes import ResultCode
from .state import Mode
from .supervisor import MAX_RINGS

logger = logging.getLogger(__name__)

CONNECT_SPEED = 38400
CONNECT_TIMEOUT = MAX_RINGS * 6

_ABORT = "abort"
_ERROR = "error"
_CONNECTED = "connected"


class Target:
    """Where a dial request ends up."""

    def __init__(self, protocol: str, address: str, username: str = "", password: str = ""):
        self.protocol = protocol
        self.address = address
        self.username = username
        self.password = password

    def __repr__(self) -> str:
        user = f"{self.username}@" if self.username else ""
        return f"Target({self.protocol} {user}{self.address})"


class _Attempt:
    """First outcome wins; later ones are refused."""

    def __init__(self):
        self._lock = threading.Lock()
        self.done = threading.Event()
        self.kind: Optional[str] = None
        self.value = None

    def deliver(self, kind: str, value=None) -> bool:
        with self._lock:
            if self.kind is not None:
                return False
            self.kind = kind
            self.value = value
        self.done.set()
        return True


class Dialer:
    """
    Places outbound calls for the D commands.

    The connect runs on its own thread while the calling thread watches
    the DTE; any byte typed before the connect completes abandons it.
    """

    def __init__(self, modem, timeout: float = CONNECT_TIMEOUT,
                 telnet_dialer: Callable = dial_telnet, ssh_dialer: Callable = dial_ssh,
                 abort_poll: float = 0.05):
        self.modem = modem
        self.timeout = timeout
        self.telnet_dialer = telnet_dialer
        self.ssh_dialer = ssh_dialer
        self.abort_poll = abort_poll

    def dial(self, token: str) -> ResultCode:
        """
        Run a D token.

        Args:
            token: Normalized dial token such as "DT5551212", "DHhost:23;" or "DL".

        Returns:
            CONNECT, or OK when the request ended in ";" or the user aborted.

        Raises:
            DialTimeout: Connect timed out (NO ANSWER).
            DialFailed: Connect refused or failed (BUSY).
            ModemError: Bad request or number not found (ERROR).
        """
        state = self.modem.state
        if state.dcd:
            raise StateError("Already connected")

        body = token[1:]
        stay = body.endswith(";")
        if stay:
            body = body[:-1]

        if body == "L":
            last = state.last_dialed
            if not last:
                raise StateError("Nothing to redial")
            logger.info(f"Redialing {last}")
            return self.dial(last + ";" if stay else last)

        state.last_dialed = "D" + body
        target, digits = self.resolve(body)
        return self._call(target, digits, stay)

    def resolve(self, body: str) -> Tuple[Target, str]:
        """Map a dial request to a destination and the digits to play."""
        phonebook = self.modem.phonebook
        kind = body[:1]

        if kind == "H":
            return Target("TELNET", body[1:]), ""
        if kind == "E":
            parts = body[1:].split("|")
            if len(parts) != 3 or not parts[0].strip():
                raise UnsupportedError(f"ATDE needs host|user|pass, got {body[1:]!r}")
            host, username, password = parts
            return Target("SSH", host.strip(), username, password), ""
        if kind == "S":
            entry = phonebook.lookup_stored(int(body[1:]))
            return self._entry_target(entry), entry.number

        digits = body[1:] if kind in ("T", "P") else body
        number = "".join(c for c in digits.upper() if c in DIAL_DIGITS)
        _, entry = phonebook.lookup(number)
        return self._entry_target(entry), digits

    @staticmethod
    def _entry_target(entry) -> Target:
        return Target(entry.protocol, entry.host, entry.username, entry.password)

    def _connect(self, attempt: _Attempt, target: Target) -> None:
        try:
            if target.protocol == "SSH":
                conn = self.ssh_dialer(target.address, target.username, target.password, self.timeout)
            else:
                conn = self.telnet_dialer(target.address, self.timeout)
        except ModemError as e:
            attempt.deliver(_ERROR, e)
            return
        except ValueError as e:
            attempt.deliver(_ERROR, UnsupportedError(str(e)))
            return
        except Exception as e:
            logger.exception(f"Dial to {target} failed: {e}")
            attempt.deliver(_ERROR, DialFailed(str(e)))
            return
        if not attempt.deliver(_CONNECTED, conn):
            logger.info(f"Dial already abandoned, closing late connection {conn}")
            conn.close()

    def _wait(self, attempt: _Attempt) -> None:
        """Watch the DTE for an abort until the attempt finishes or times out."""
        dte = self.modem.dte
        deadline = time.monotonic() + self.timeout + 1.0
        while not attempt.done.is_set():
            try:
                key = dte.read_byte(self.abort_poll)
            except DTEError as e:
                logger.error(f"Dial aborted, terminal gone: {e}")
                attempt.deliver(_ABORT)
                continue
            if key is not None:
                logger.info("Dial aborted from the DTE")
                attempt.deliver(_ABORT)
            elif time.monotonic() >= deadline:
                attempt.deliver(_ERROR, DialTimeout("No answer"))

    def _call(self, target: Target, digits: str, stay: bool) -> ResultCode:
        modem = self.modem
        state = modem.state
        logger.info(f"Dialing {target}")

        modem.go_off_hook()
        modem.lcd.printf(0, f"DIAL {digits or target.address}")
        modem.tones.dial(digits, comma_pause=modem.registers.read(COMMA_PAUSE_S))

        attempt = _Attempt()
        threading.Thread(target=self._connect, args=(attempt, target),
                         name="dial", daemon=True).start()
        self._wait(attempt)

        if attempt.kind == _ABORT:
            modem.hangup()
            self._record("ABORTED")
            return ResultCode.OK

        if attempt.kind == _ERROR:
            error = attempt.value
            modem.hangup()
            if isinstance(error, DialFailed):
                modem.tones.busy()
            self._record(error.result.text)
            raise error

        conn = attempt.value
        mode = Mode.COMMAND if stay else Mode.DATA
        conn.mode = mode
        state.connect(conn, CONNECT_SPEED, mode)
        modem.tones.carrier()
        modem.supervisor.deliver(conn)
        self._record(ResultCode.CONNECT.text)
        logger.info(f"Connected: {conn}")
        return ResultCode.OK if stay else ResultCode.CONNECT

    def _record(self, result: str) -> None:
        if self.modem.metrics:
            self.modem.metrics.record_dial(result)
