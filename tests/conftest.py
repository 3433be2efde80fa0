"""Pytest fixtures for RetroHayes tests."""

import queue

import pytest
from unittest.mock import MagicMock

from retro_hayes.connection import Connection, Direction
from retro_hayes.errors import DTEError


@pytest.fixture
def mock_serial():
    """Mock serial port for testing."""
    mock = MagicMock()
    mock.in_waiting = 0
    mock.read.return_value = b""
    mock.write.return_value = None
    mock.flush.return_value = None
    mock.dtr = True
    return mock


@pytest.fixture
def mock_socket():
    """Mock socket for testing."""
    mock = MagicMock()
    mock.recv.return_value = b""
    mock.sendall.return_value = None
    mock.setblocking.return_value = None
    mock.close.return_value = None
    mock.getpeername.return_value = ("192.0.2.7", 40000)
    return mock


class FakeConnection(Connection):
    """In-memory call: the test pushes far-end bytes and reads what the modem sent."""

    protocol = "telnet"

    def __init__(self, direction=Direction.INBOUND, remote_addr="192.0.2.7:40000"):
        super().__init__(direction, remote_addr)
        self.inbox = queue.Queue()
        self.outbox = bytearray()
        self.far_end_gone = False

    def push(self, data: bytes) -> None:
        self.inbox.put(data)

    def hang_up_far_end(self) -> None:
        self.far_end_gone = True
        self.inbox.put(b"")

    def _read(self, timeout):
        try:
            return self.inbox.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError("fake read timed out")

    def _write(self, data):
        if self.far_end_gone:
            raise BrokenPipeError("far end gone")
        self.outbox.extend(data)

    def _close(self):
        pass

    def remote_closed(self):
        return self._closed or self.far_end_gone


class FakeDTE:
    """Terminal stand-in: queued keystrokes in, captured bytes out."""

    def __init__(self):
        self.keys = queue.Queue()
        self.written = bytearray()
        self.started = False
        self.gone = False

    def start(self):
        self.started = True

    def stop(self):
        self.started = False

    def type(self, text):
        for c in text.encode() if isinstance(text, str) else text:
            self.keys.put(c)

    def unplug(self):
        """Terminal input ends; reads fail once the typed keys are used up."""
        self.gone = True

    def read_byte(self, timeout=None):
        try:
            return self.keys.get(timeout=timeout)
        except queue.Empty:
            if self.gone:
                raise DTEError("DTE input is gone")
            return None

    def write(self, data):
        self.written.extend(data)

    def print_line(self, text="", eol=b"\r\n"):
        self.write(text.encode() + eol)

    @property
    def output(self):
        return self.written.decode(errors="replace")

    def clear(self):
        self.written.clear()


@pytest.fixture
def fake_conn():
    return FakeConnection()


@pytest.fixture
def fake_dte():
    return FakeDTE()


@pytest.fixture
def phonebook_file(tmp_path):
    """Phonebook with a Telnet entry in slot 2 and an SSH entry in slot 5."""
    path = tmp_path / "phonebook.json"
    path.write_text(
        '[{"slot": 2, "phone": "555-1212", "host": "example.test", "protocol": "TELNET"},'
        ' {"slot": 5, "phone": "(555) 9999", "host": "shell.example.test:2222",'
        ' "protocol": "SSH", "username": "Retro", "password": "S3cret"}]'
    )
    return str(path)


@pytest.fixture
def modem(tmp_path, fake_dte, phonebook_file):
    """Modem on stub backends with fast timings; background tasks not started."""
    from retro_hayes.hardware import StubPins
    from retro_hayes.hayes import Modem
    from retro_hayes.lcd import StatusLCD
    from retro_hayes.phonebook import Phonebook
    from retro_hayes.profiles import StoredProfiles
    from retro_hayes.registers import CARRIER_DETECT_RESP_100MS
    from retro_hayes.tones import NullTones

    m = Modem(
        dte=fake_dte,
        pins=StubPins(),
        lcd=StatusLCD(),
        tones=NullTones(),
        phonebook=Phonebook(phonebook_file),
        profiles=StoredProfiles(str(tmp_path / "profiles.yaml")),
        connect_timeout=2.0,
        ready_delay=0,
        ring_seconds=0.05,
        silence_seconds=0.05,
        slice_seconds=0.005,
        poll_seconds=0.02,
        ring_decay_seconds=0.2,
    )
    m.phonebook.load()
    m.registers.write(CARRIER_DETECT_RESP_100MS, 0)
    yield m
    m.supervisor.stop()
    m.hangup()
