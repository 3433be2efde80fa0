"""S-register file."""

import logging
import threading
from typing import Dict

logger = logging.getLogger(__name__)

NUM_REGISTERS = 256

AUTO_ANSWER = 0
RING_COUNT = 1
ESC_CH = 2
CR_CH = 3
LF_CH = 4
BS_CH = 5
BLIND_DIAL_WAIT_S = 6
CARRIER_WAIT_S = 7
COMMA_PAUSE_S = 8
CARRIER_DETECT_RESP_100MS = 9
CARRIER_LOSS_HANGUP_100MS = 10
DTMF_MS = 11
ESC_GUARD_20MS = 12
DTR_DETECT_10MS = 25
RTS_TO_CTS_10MS = 26
INACTIVITY_TIMER_10S = 30
DELAY_D_S = 38

DEFAULTS = {
    AUTO_ANSWER: 0,
    RING_COUNT: 0,
    ESC_CH: 43,
    CR_CH: 13,
    LF_CH: 10,
    BS_CH: 8,
    BLIND_DIAL_WAIT_S: 2,
    CARRIER_WAIT_S: 50,
    COMMA_PAUSE_S: 2,
    CARRIER_DETECT_RESP_100MS: 6,
    CARRIER_LOSS_HANGUP_100MS: 14,
    DTMF_MS: 95,
    ESC_GUARD_20MS: 50,
    DTR_DETECT_10MS: 5,
    RTS_TO_CTS_10MS: 1,
    INACTIVITY_TIMER_10S: 0,
    DELAY_D_S: 20,
}


def _check_value(value: int) -> int:
    if not 0 <= value <= 255:
        raise ValueError(f"register value out of range: {value}")
    return value


def _check_index(reg: int) -> int:
    if not 0 <= reg < NUM_REGISTERS:
        raise ValueError(f"register index out of range: {reg}")
    return reg


class Registers:
    """
    256 unsigned 8-bit registers with factory defaults.

    Reads never fail for a valid index. Writes reject values outside
    0-255 without touching the register.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._regs = bytearray(NUM_REGISTERS)
        self.reset()

    def reset(self) -> None:
        """Restore factory defaults."""
        with self._lock:
            self._regs = bytearray(NUM_REGISTERS)
            for reg, value in DEFAULTS.items():
                self._regs[reg] = value

    def read(self, reg: int) -> int:
        with self._lock:
            return self._regs[_check_index(reg)]

    def write(self, reg: int, value: int) -> None:
        value = _check_value(value)
        with self._lock:
            self._regs[_check_index(reg)] = value
        logger.debug(f"S{reg:02d}={value}")

    def increment(self, reg: int) -> int:
        """Add one to a register, saturating at 255, and return the new value."""
        with self._lock:
            reg = _check_index(reg)
            if self._regs[reg] < 255:
                self._regs[reg] += 1
            return self._regs[reg]

    def copy(self) -> "Registers":
        clone = Registers()
        clone.update_from(self)
        return clone

    def update_from(self, other: "Registers") -> None:
        """Overwrite every register with the values held by another file."""
        snapshot = other.snapshot()
        with self._lock:
            self._regs = bytearray(snapshot)

    def snapshot(self) -> bytes:
        with self._lock:
            return bytes(self._regs)

    def to_dict(self) -> Dict[str, int]:
        """Non-zero registers keyed by decimal index, for persistence."""
        return {str(i): v for i, v in enumerate(self.snapshot()) if v}

    @classmethod
    def from_dict(cls, data: Dict) -> "Registers":
        """Build a register file from a persisted mapping; missing entries are zero."""
        regs = cls()
        values = bytearray(NUM_REGISTERS)
        for key, value in (data or {}).items():
            values[_check_index(int(key))] = _check_value(int(value))
        with regs._lock:
            regs._regs = values
        return regs

    def __eq__(self, other) -> bool:
        if not isinstance(other, Registers):
            return NotImplemented
        return self.snapshot() == other.snapshot()

    def format_lines(self, width: int = 80):
        """Render as `Snn:vvv` entries wrapped at the given width."""
        lines = []
        line = ""
        for i, value in enumerate(self.snapshot()):
            if not value and i not in DEFAULTS:
                continue
            entry = f"S{i:02d}:{value:03d} "
            if len(line) + len(entry) > width:
                lines.append(line.rstrip())
                line = ""
            line += entry
        if line:
            lines.append(line.rstrip())
        return lines

    def __str__(self) -> str:
        return "\n".join(self.format_lines())
