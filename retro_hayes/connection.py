"""Network connections carrying a call: Telnet and SSH, inbound and outbound."""

import logging
import select
import socket
import threading
import time
from enum import Enum
from typing import Optional

from .errors import FatalNetworkError, TransientNetworkError
from .state import Mode
from .telnet import ACCEPT_NEGOTIATION, TelnetFilter, escape_iac

logger = logging.getLogger(__name__)

READ_CHUNK = 1024


class Direction(Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class Connection:
    """
    Byte stream of one call.

    read() may run on the call supervisor thread while write() runs on the
    DTE pump thread. Reads raise TimeoutError when nothing arrives before
    the deadline and return b"" once the far end has closed.
    """

    protocol = "?"

    def __init__(self, direction: Direction, remote_addr: str):
        self.direction = direction
        self.remote_addr = remote_addr
        self.mode = Mode.DATA
        self.sent = 0
        self.recv = 0
        self.started = time.time()
        self._closed = False
        self._close_lock = threading.Lock()
        self._write_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, timeout: Optional[float] = None) -> bytes:
        """
        Raises:
            TimeoutError: Nothing arrived before the deadline.
            TransientNetworkError: The read was interrupted and may be retried.
            FatalNetworkError: The transport failed and the call is over.
        """
        try:
            data = self._read(timeout)
        except TimeoutError:
            raise
        except (InterruptedError, BlockingIOError) as e:
            raise TransientNetworkError(f"Read from {self.remote_addr} interrupted: {e}") from e
        except (OSError, ValueError, EOFError) as e:
            raise FatalNetworkError(f"Read from {self.remote_addr} failed: {e}") from e
        self.recv += len(data)
        return data

    def write(self, data: bytes) -> int:
        if self._closed:
            raise OSError("connection closed")
        with self._write_lock:
            self._write(data)
            self.sent += len(data)
        return len(data)

    def close(self) -> None:
        """Close once; later calls do nothing."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._close()
        except OSError as e:
            logger.debug(f"Error closing {self}: {e}")
        logger.info(f"Closed {self}")

    def remote_closed(self) -> bool:
        """True once the far end has hung up; never consumes payload."""
        raise NotImplementedError

    def _read(self, timeout: Optional[float]) -> bytes:
        raise NotImplementedError

    def _write(self, data: bytes) -> None:
        raise NotImplementedError

    def _close(self) -> None:
        raise NotImplementedError

    def duration(self) -> int:
        return int(time.time() - self.started)

    def __str__(self) -> str:
        peer = "from" if self.direction is Direction.INBOUND else "to"
        return (
            f"{self.protocol} {self.direction.value} {peer} {self.remote_addr} "
            f"(sent {self.sent}, recv {self.recv})"
        )


class TelnetConnection(Connection):
    """
    Telnet over a TCP socket.

    Option negotiation is filtered out of the read stream and every option
    the peer proposes is refused. Outgoing 0xFF bytes are escaped.
    """

    protocol = "telnet"

    def __init__(self, sock: socket.socket, direction: Direction, remote_addr: str = ""):
        if not remote_addr:
            try:
                host, port = sock.getpeername()[:2]
                remote_addr = f"{host}:{port}"
            except OSError:
                remote_addr = "unknown"
        super().__init__(direction, remote_addr)
        self.sock = sock
        self._filter = TelnetFilter()
        self._pending = b""

    def negotiate(self) -> None:
        """Announce server side options after accept."""
        self.sock.sendall(ACCEPT_NEGOTIATION)

    def _read(self, timeout: Optional[float]) -> bytes:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._pending:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            readable, _, _ = select.select([self.sock], [], [], remaining)
            if not readable:
                raise TimeoutError("telnet read timed out")
            chunk = self.sock.recv(READ_CHUNK)
            if not chunk:
                return b""
            payload, replies = self._filter.feed(chunk)
            if replies:
                with self._write_lock:
                    self.sock.sendall(replies)
            self._pending = payload
        data, self._pending = self._pending, b""
        return data

    def _write(self, data: bytes) -> None:
        self.sock.sendall(escape_iac(data))

    def _close(self) -> None:
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()

    def remote_closed(self) -> bool:
        if self._closed:
            return True
        try:
            readable, _, _ = select.select([self.sock], [], [], 0)
            if not readable:
                return False
            return self.sock.recv(1, socket.MSG_PEEK) == b""
        except (OSError, ValueError):
            return True


class SSHConnection(Connection):
    """SSH session channel; the paramiko channel is selectable like a socket."""

    protocol = "ssh"

    def __init__(self, channel, direction: Direction, remote_addr: str, owner=None):
        """
        Args:
            channel: paramiko Channel carrying the shell session.
            direction: Which side placed the call.
            remote_addr: host:port for display.
            owner: paramiko SSHClient or Transport closed with the channel.
        """
        super().__init__(direction, remote_addr)
        self.channel = channel
        self.owner = owner

    def _read(self, timeout: Optional[float]) -> bytes:
        if not self.channel.recv_ready():
            readable, _, _ = select.select([self.channel], [], [], timeout)
            if not readable:
                raise TimeoutError("ssh read timed out")
        return self.channel.recv(READ_CHUNK)

    def _write(self, data: bytes) -> None:
        self.channel.sendall(data)

    def _close(self) -> None:
        self.channel.close()
        if self.owner is not None:
            self.owner.close()

    def remote_closed(self) -> bool:
        return self._closed or self.channel.closed or self.channel.eof_received
