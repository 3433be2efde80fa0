"""Modem state shared between the DTE pump, the dispatcher and the call supervisor."""

import threading
import time
from enum import Enum
from typing import Optional


class Mode(Enum):
    COMMAND = "command"
    DATA = "data"


class Hook(Enum):
    ON = "on"
    OFF = "off"


def _locked(attr: str) -> property:
    def getter(self):
        with self._lock:
            return getattr(self, attr)

    def setter(self, value):
        with self._lock:
            setattr(self, attr, value)

    return property(getter, setter)


class ModemState:
    """
    Locked modem state.

    All access goes through the properties below. Compound changes that
    must be seen together (carrier, speed and connection) have their own
    methods so nobody observes carrier without a connection.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._mode = Mode.COMMAND
        self._hook = Hook.ON
        self._dcd = False
        self._line_busy = False
        self._connect_speed = 0
        self._last_cmd = ""
        self._last_dialed = ""
        self._current_config = 0
        self._conn = None
        self._last_ring_time = 0.0

    mode = _locked("_mode")
    line_busy = _locked("_line_busy")
    last_cmd = _locked("_last_cmd")
    last_dialed = _locked("_last_dialed")
    current_config = _locked("_current_config")
    last_ring_time = _locked("_last_ring_time")

    @property
    def hook(self) -> Hook:
        with self._lock:
            return self._hook

    @property
    def dcd(self) -> bool:
        with self._lock:
            return self._dcd

    @property
    def connect_speed(self) -> int:
        with self._lock:
            return self._connect_speed

    @property
    def conn(self):
        with self._lock:
            return self._conn

    @property
    def off_hook(self) -> bool:
        return self.hook is Hook.OFF

    @property
    def on_hook(self) -> bool:
        return self.hook is Hook.ON

    def go_off_hook(self) -> None:
        with self._lock:
            self._hook = Hook.OFF
            self._line_busy = True

    def connect(self, conn, speed: int, mode: Mode = Mode.DATA) -> None:
        """Bring carrier up on a connection."""
        if conn is None or speed <= 0:
            raise ValueError("carrier needs a connection and a speed")
        with self._lock:
            self._hook = Hook.OFF
            self._line_busy = True
            self._conn = conn
            self._connect_speed = speed
            self._dcd = True
            self._mode = mode

    def disconnect(self) -> Optional[object]:
        """Drop carrier, go on-hook and return the connection that was up, if any."""
        with self._lock:
            conn = self._conn
            self._conn = None
            self._dcd = False
            self._connect_speed = 0
            self._mode = Mode.COMMAND
            self._hook = Hook.ON
            self._line_busy = False
            return conn

    def disconnect_if(self, conn) -> bool:
        """Drop carrier only while `conn` is still the live call; returns whether it was."""
        with self._lock:
            if conn is None or self._conn is not conn:
                return False
            self.disconnect()
            return True

    def reset(self) -> None:
        """Factory-reset values; the caller closes any connection first."""
        with self._lock:
            self._mode = Mode.COMMAND
            self._hook = Hook.ON
            self._dcd = False
            self._line_busy = False
            self._connect_speed = 0
            self._last_cmd = ""
            self._last_dialed = ""
            self._conn = None

    def note_ring(self) -> None:
        self.last_ring_time = time.monotonic()

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "mode": self._mode.value,
                "hook": self._hook.value,
                "dcd": self._dcd,
                "line_busy": self._line_busy,
                "connect_speed": self._connect_speed,
                "last_cmd": self._last_cmd,
                "last_dialed": self._last_dialed,
                "current_config": self._current_config,
                "conn": str(self._conn) if self._conn is not None else "none",
            }
