"""Two stored (config, registers) profiles and the power-up selection."""

import logging
import threading
from typing import List, Tuple

from .config import ModemConfig
from .errors import PersistError, UnsupportedError
from .registers import Registers
from .storage import load_record, save_record

logger = logging.getLogger(__name__)

NUM_PROFILES = 2


def _check_slot(slot: int) -> int:
    if not 0 <= slot < NUM_PROFILES:
        raise UnsupportedError(f"No stored profile {slot}")
    return slot


class StoredProfiles:
    """
    Persistent pair of profile slots.

    Every mutation is written through to the backing file. A missing or
    unreadable file leaves factory defaults in both slots.
    """

    def __init__(self, path: str = "./profiles.yaml"):
        self.path = path
        self._lock = threading.Lock()
        self.power_up_config = 0
        self.slots: List[Tuple[ModemConfig, Registers]] = []
        self.factory_reset()

    def factory_reset(self) -> None:
        """Rebuild both slots from hard-coded defaults (does not save)."""
        with self._lock:
            self.power_up_config = 0
            self.slots = [(ModemConfig(), Registers()) for _ in range(NUM_PROFILES)]

    def load(self) -> None:
        """Read the profile file; on any failure keep factory defaults."""
        try:
            data = load_record(self.path)
            self._from_dict(data)
            logger.info(f"Loaded stored profiles from {self.path}")
        except FileNotFoundError:
            logger.info(f"No stored profiles at {self.path}, using factory defaults")
            self.factory_reset()
        except (PersistError, ValueError, TypeError, KeyError) as e:
            logger.error(f"Can't load stored profiles: {e}")
            self.factory_reset()

    def save(self) -> None:
        """Write both slots; raises PersistError on failure."""
        save_record(self.path, self.to_dict())
        logger.info(f"Saved stored profiles to {self.path}")

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "power_up_config": self.power_up_config,
                "profiles": [
                    {"config": config.to_dict(), "registers": regs.to_dict()}
                    for config, regs in self.slots
                ],
            }

    def _from_dict(self, data: dict) -> None:
        if not isinstance(data, dict):
            raise ValueError("stored profile record is not a mapping")
        entries = data.get("profiles") or []
        slots = []
        for i in range(NUM_PROFILES):
            if i < len(entries):
                entry = entries[i] or {}
                slots.append((
                    ModemConfig.from_dict(entry.get("config")),
                    Registers.from_dict(entry.get("registers")),
                ))
            else:
                slots.append((ModemConfig(), Registers()))
        power_up = int(data.get("power_up_config", 0))
        with self._lock:
            self.power_up_config = power_up if 0 <= power_up < NUM_PROFILES else 0
            self.slots = slots

    def write_active(self, slot: int, config: ModemConfig, registers: Registers) -> None:
        """Snapshot the live config and registers into a slot (AT&Wn)."""
        _check_slot(slot)
        with self._lock:
            previous = self.slots[slot]
            self.slots[slot] = (config.copy(), registers.copy())
        try:
            self.save()
        except PersistError:
            with self._lock:
                self.slots[slot] = previous
            logger.warning(f"Stored profile {slot} left unchanged, save failed")
            raise

    def set_power_up(self, slot: int) -> None:
        """Select the slot loaded at power-on (AT&Yn)."""
        _check_slot(slot)
        with self._lock:
            previous = self.power_up_config
            self.power_up_config = slot
        try:
            self.save()
        except PersistError:
            with self._lock:
                self.power_up_config = previous
            logger.warning(f"Power-up profile left at {previous}, save failed")
            raise

    def switch(self, slot: int) -> Tuple[ModemConfig, Registers]:
        """Return copies of a slot's config and registers."""
        _check_slot(slot)
        with self._lock:
            config, regs = self.slots[slot]
            return config.copy(), regs.copy()

    def format_lines(self) -> List[str]:
        lines = []
        with self._lock:
            slots = list(self.slots)
            power_up = self.power_up_config
        for i, (config, regs) in enumerate(slots):
            marker = " (power-up)" if i == power_up else ""
            lines.append(f"STORED PROFILE {i}:{marker}")
            lines.append(config.summary())
            lines.extend(regs.format_lines())
        return lines

    def __str__(self) -> str:
        return "\n".join(self.format_lines())
