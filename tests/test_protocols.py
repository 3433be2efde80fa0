"""Tests for protocols module."""

import queue
import socket
import threading

import paramiko
import pytest
from unittest.mock import MagicMock, patch

from retro_hayes.connection import Direction, SSHConnection, TelnetConnection
from retro_hayes.errors import DialFailed, DialTimeout
from retro_hayes.protocols import (
    BUSY_MESSAGE,
    SSHListener,
    TelnetListener,
    dial_ssh,
    dial_telnet,
    split_host_port,
)
from retro_hayes.telnet import ACCEPT_NEGOTIATION


class TestSplitHostPort:
    """Tests for host[:port] parsing."""

    def test_default_port(self):
        assert split_host_port("bbs.test", 23) == ("bbs.test", 23)

    def test_explicit_port(self):
        assert split_host_port("bbs.test:6400", 23) == ("bbs.test", 6400)

    def test_ipv6(self):
        assert split_host_port("[::1]:2222", 22) == ("::1", 2222)
        assert split_host_port("[::1]", 22) == ("::1", 22)

    @pytest.mark.parametrize("address", ["", ":23", "host:0", "host:99999", "host:abc"])
    def test_bad(self, address):
        with pytest.raises(ValueError):
            split_host_port(address, 23)


class TestDialTelnet:
    """Tests for outbound Telnet."""

    def test_connects(self):
        """A reachable port yields an outbound TelnetConnection."""
        server = socket.socket()
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        port = server.getsockname()[1]
        try:
            conn = dial_telnet(f"127.0.0.1:{port}", timeout=2.0)
            assert isinstance(conn, TelnetConnection)
            assert conn.direction is Direction.OUTBOUND
            assert conn.remote_addr == f"127.0.0.1:{port}"
            conn.close()
        finally:
            server.close()

    def test_refused_is_busy(self):
        """A refused connect is DialFailed."""
        spare = socket.socket()
        spare.bind(("127.0.0.1", 0))
        port = spare.getsockname()[1]
        spare.close()
        with pytest.raises(DialFailed):
            dial_telnet(f"127.0.0.1:{port}", timeout=2.0)

    def test_timeout_is_no_answer(self):
        """A connect timeout is DialTimeout."""
        with patch("retro_hayes.protocols.socket.create_connection", side_effect=socket.timeout("timed out")):
            with pytest.raises(DialTimeout):
                dial_telnet("unreachable.test", timeout=0.1)


class TestDialSSH:
    """Tests for outbound SSH with a mocked paramiko client."""

    def test_connects_with_pty(self):
        """Password auth, xterm 80x40 pty, shell channel."""
        with patch("retro_hayes.protocols.paramiko.SSHClient") as client_cls:
            client = client_cls.return_value
            conn = dial_ssh("shell.test:2222", "Retro", "S3cret", timeout=5)

        kwargs = client.connect.call_args.kwargs
        assert kwargs["hostname"] == "shell.test"
        assert kwargs["port"] == 2222
        assert kwargs["username"] == "Retro"
        assert kwargs["password"] == "S3cret"
        client.invoke_shell.assert_called_once_with(term="xterm", width=80, height=40)
        assert isinstance(conn, SSHConnection)
        assert conn.owner is client

    def test_auth_failure_is_busy(self):
        """Bad credentials are DialFailed and the client is closed."""
        with patch("retro_hayes.protocols.paramiko.SSHClient") as client_cls:
            client = client_cls.return_value
            client.connect.side_effect = paramiko.AuthenticationException("denied")
            with pytest.raises(DialFailed):
                dial_ssh("shell.test", "u", "p", timeout=5)
        client.close.assert_called_once()

    def test_timeout_is_no_answer(self):
        """A connect timeout is DialTimeout."""
        with patch("retro_hayes.protocols.paramiko.SSHClient") as client_cls:
            client_cls.return_value.connect.side_effect = socket.timeout("timed out")
            with pytest.raises(DialTimeout):
                dial_ssh("shell.test", "u", "p", timeout=5)


class TestTelnetListener:
    """Tests for the inbound Telnet listener on an ephemeral port."""

    def test_call_delivered(self):
        """An accepted call is negotiated and handed over."""
        calls = queue.Queue()
        listener = TelnetListener(0, calls.put, lambda: False, host="127.0.0.1")
        assert listener.start()
        try:
            client = socket.create_connection(("127.0.0.1", listener.port), timeout=2.0)
            conn = calls.get(timeout=2.0)
            assert isinstance(conn, TelnetConnection)
            assert conn.direction is Direction.INBOUND
            assert client.recv(16) == ACCEPT_NEGOTIATION
            conn.close()
            client.close()
        finally:
            listener.stop()

    def test_busy_rejects(self):
        """A busy line tells the caller and hangs up."""
        on_call = MagicMock()
        listener = TelnetListener(0, on_call, lambda: True, host="127.0.0.1")
        assert listener.start()
        try:
            client = socket.create_connection(("127.0.0.1", listener.port), timeout=2.0)
            data = b""
            while True:
                chunk = client.recv(64)
                if not chunk:
                    break
                data += chunk
            assert data == BUSY_MESSAGE
            on_call.assert_not_called()
            client.close()
        finally:
            listener.stop()


class TestSSHListener:
    """Tests for the SSH listener."""

    def test_missing_host_key_skips_listener(self, tmp_path):
        """Without a host key the listener doesn't start."""
        listener = SSHListener(0, MagicMock(), lambda: False, keyfile=str(tmp_path / "missing"),
                               host="127.0.0.1")
        assert listener.start() is False
        assert listener.sock is None

    def test_stalled_handshake_does_not_block_next_caller(self):
        """Each SSH caller is handled on its own thread."""
        release = threading.Event()
        seen = queue.Queue()
        callers = []

        def handle(listener, client, remote):
            callers.append(remote)
            seen.put(remote)
            if len(callers) == 1:
                release.wait(5)
            client.close()

        with patch.object(SSHListener, "prepare"), patch.object(SSHListener, "handle", handle):
            listener = SSHListener(0, MagicMock(), lambda: False, host="127.0.0.1")
            assert listener.start()
            try:
                first = socket.create_connection(("127.0.0.1", listener.port), timeout=2.0)
                seen.get(timeout=2.0)
                second = socket.create_connection(("127.0.0.1", listener.port), timeout=2.0)
                assert seen.get(timeout=2.0)
                assert not release.is_set()
                first.close()
                second.close()
            finally:
                release.set()
                listener.stop()
