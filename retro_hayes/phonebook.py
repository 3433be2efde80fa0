"""Phonebook: maps dialable numbers to network destinations."""

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

from .errors import ModemError, PersistError
from .storage import load_record, save_record

logger = logging.getLogger(__name__)

PROTOCOLS = ("TELNET", "SSH")
DIAL_DIGITS = "0123456789ABCD#*"
PRESENTATION = "()-+"


class PhonebookError(ModemError):
    """Invalid phonebook entry or unknown number."""


def sanitize_number(phone: str) -> str:
    """Strip presentation characters so numbers compare equal."""
    return "".join(c for c in phone.upper() if c not in PRESENTATION and not c.isspace())


def is_valid_number(phone: str) -> bool:
    cleaned = sanitize_number(phone)
    return bool(cleaned) and all(c in DIAL_DIGITS for c in cleaned)


@dataclass
class PhonebookEntry:
    """A single stored number."""
    phone: str
    host: str
    protocol: str = "TELNET"
    username: str = ""
    password: str = ""

    @property
    def number(self) -> str:
        return sanitize_number(self.phone)


def _parse_entry(data: dict) -> PhonebookEntry:
    entry = PhonebookEntry(
        phone=str(data["phone"]),
        host=str(data["host"]),
        protocol=str(data.get("protocol", "TELNET")).upper(),
        username=str(data.get("username") or ""),
        password=str(data.get("password") or ""),
    )
    if entry.protocol not in PROTOCOLS:
        raise PhonebookError(f"Unsupported protocol {entry.protocol!r}")
    if not is_valid_number(entry.phone):
        raise PhonebookError(f"Invalid phone number {entry.phone!r}")
    return entry


class Phonebook:
    """
    Slot-indexed phonebook persisted as a JSON or YAML list.

    Invariants: slot indices are unique, no two entries share a sanitized
    phone number and every protocol is TELNET or SSH. Every mutation is
    written through to disk.
    """

    def __init__(self, path: str = "./phonebook.json"):
        self.path = path
        self._lock = threading.Lock()
        self.entries: Dict[int, PhonebookEntry] = {}

    def load(self) -> None:
        """Load from disk; a missing or bad file leaves the phonebook empty."""
        with self._lock:
            self.entries = {}
            try:
                data = load_record(self.path)
            except FileNotFoundError:
                logger.info(f"No phonebook at {self.path}")
                return
            except PersistError as e:
                logger.error(f"Can't load phonebook: {e}")
                return

            entries: Dict[int, PhonebookEntry] = {}
            seen = set()
            for item in data or []:
                try:
                    slot = int(item["slot"])
                    entry = _parse_entry(item)
                except (KeyError, TypeError, ValueError, PhonebookError) as e:
                    logger.warning(f"Skipping phonebook record {item!r}: {e}")
                    continue
                if slot < 0 or slot in entries or entry.number in seen:
                    logger.warning(f"Skipping duplicate phonebook slot {slot} ({entry.phone})")
                    continue
                entries[slot] = entry
                seen.add(entry.number)
            self.entries = entries
        logger.info(f"Loaded {len(entries)} phonebook entries from {self.path}")

    def to_list(self) -> List[dict]:
        with self._lock:
            return [dict(slot=slot, **asdict(self.entries[slot])) for slot in sorted(self.entries)]

    def save(self) -> None:
        save_record(self.path, self.to_list())

    def lookup(self, number: str) -> Tuple[int, PhonebookEntry]:
        """
        Find an entry by phone number.

        Raises:
            PhonebookError: If no entry matches.
        """
        wanted = sanitize_number(number)
        with self._lock:
            for slot, entry in self.entries.items():
                if entry.number == wanted:
                    return slot, entry
        raise PhonebookError(f"{number} is not in the phonebook")

    def lookup_stored(self, slot: int) -> PhonebookEntry:
        with self._lock:
            entry = self.entries.get(slot)
        if entry is None:
            raise PhonebookError(f"Phonebook slot {slot} is empty")
        return entry

    def add(self, slot: int, payload: str) -> PhonebookEntry:
        """
        Store `phone|host|protocol|username|password` in a slot.

        Args:
            slot: Phonebook slot index.
            payload: Pipe separated fields; username and password may be empty.

        Raises:
            PhonebookError: On malformed payload, unsupported protocol or a
                number already stored in another slot.
            PersistError: If the file can't be written; the slot is left as it was.
        """
        if slot < 0:
            raise PhonebookError(f"Bad phonebook slot {slot}")
        parts = payload.split("|")
        if len(parts) < 3 or len(parts) > 5:
            raise PhonebookError(f"Bad phonebook entry {payload!r}")
        parts += [""] * (5 - len(parts))
        entry = _parse_entry(dict(
            phone=parts[0].strip(),
            host=parts[1].strip(),
            protocol=parts[2].strip(),
            username=parts[3],
            password=parts[4],
        ))
        with self._lock:
            for other_slot, other in self.entries.items():
                if other_slot != slot and other.number == entry.number:
                    raise PhonebookError(f"{entry.phone} already stored in slot {other_slot}")
            previous = self.entries.get(slot)
            self.entries[slot] = entry
        try:
            self.save()
        except PersistError:
            self._restore(slot, previous)
            raise
        logger.info(f"Phonebook slot {slot} = {entry.phone} -> {entry.host} ({entry.protocol})")
        return entry

    def delete(self, slot: int) -> None:
        with self._lock:
            if slot not in self.entries:
                raise PhonebookError(f"Phonebook slot {slot} is empty")
            previous = self.entries.pop(slot)
        try:
            self.save()
        except PersistError:
            self._restore(slot, previous)
            raise
        logger.info(f"Phonebook slot {slot} deleted")

    def _restore(self, slot: int, entry: Optional[PhonebookEntry]) -> None:
        """Put a slot back the way it was after a failed save."""
        with self._lock:
            if entry is None:
                self.entries.pop(slot, None)
            else:
                self.entries[slot] = entry
        logger.warning(f"Phonebook slot {slot} left unchanged, save failed")

    def __len__(self) -> int:
        return len(self.entries)

    def format_lines(self) -> List[str]:
        lines = ["Phonebook:"]
        for item in self.to_list():
            user = f" {item['username']}" if item["username"] else ""
            lines.append(f"{item['slot']:3d}: {item['phone']:<16} {item['protocol']:<6} {item['host']}{user}")
        return lines

