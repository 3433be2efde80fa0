"""Protocol-specific dialers and listeners for Telnet and SSH."""

import logging
import socket
import threading
from typing import Callable, Optional, Tuple

import paramiko

from .connection import Direction, SSHConnection, TelnetConnection
from .errors import DialFailed, DialTimeout

logger = logging.getLogger(__name__)

TELNET_PORT = 23
SSH_PORT = 22
BUSY_MESSAGE = b"Busy...\r\n"
SSH_HANDSHAKE_TIMEOUT = 20


def split_host_port(address: str, default_port: int) -> Tuple[str, int]:
    """
    Split `host[:port]`, accepting `[v6addr]:port`.

    Raises:
        ValueError: On an empty host or a bad port.
    """
    address = address.strip()
    host, port = address, default_port
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise ValueError(f"Bad address {address!r}")
        host = address[1:end]
        rest = address[end + 1:]
        if rest.startswith(":"):
            port = int(rest[1:])
    elif address.count(":") == 1:
        host, port_text = address.split(":")
        port = int(port_text)
    if not host or not 0 < port < 65536:
        raise ValueError(f"Bad address {address!r}")
    return host, port


def dial_telnet(address: str, timeout: float) -> TelnetConnection:
    """
    Open an outbound Telnet call.

    Args:
        address: host[:port], port defaults to 23.
        timeout: Connect timeout in seconds.

    Raises:
        DialTimeout: If the connect timed out.
        DialFailed: On any other connect error.
    """
    host, port = split_host_port(address, TELNET_PORT)
    logger.info(f"Dialing telnet {host}:{port}")
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except socket.timeout as e:
        raise DialTimeout(f"telnet {host}:{port}: {e}") from e
    except OSError as e:
        raise DialFailed(f"telnet {host}:{port}: {e}") from e
    sock.settimeout(None)
    return TelnetConnection(sock, Direction.OUTBOUND, f"{host}:{port}")


def dial_ssh(address: str, username: str, password: str, timeout: float) -> SSHConnection:
    """
    Open an outbound SSH call with password authentication.

    Args:
        address: host[:port], port defaults to 22.
        username: Remote account.
        password: Remote password.
        timeout: Connect timeout in seconds.

    Raises:
        DialTimeout: If the connect timed out.
        DialFailed: On authentication or any other SSH error.
    """
    host, port = split_host_port(address, SSH_PORT)
    logger.info(f"Dialing ssh {username}@{host}:{port}")

    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    try:
        client.connect(
            hostname=host,
            port=port,
            username=username,
            password=password,
            timeout=timeout,
            banner_timeout=timeout,
            auth_timeout=timeout,
            look_for_keys=False,
            allow_agent=False,
        )
        channel = client.invoke_shell(term="xterm", width=80, height=40)
    except socket.timeout as e:
        client.close()
        raise DialTimeout(f"ssh {host}:{port}: {e}") from e
    except paramiko.AuthenticationException as e:
        client.close()
        raise DialFailed(f"ssh {host}:{port}: authentication failed") from e
    except (paramiko.SSHException, OSError) as e:
        client.close()
        raise DialFailed(f"ssh {host}:{port}: {e}") from e

    logger.info(f"SSH connected to {host}:{port}")
    return SSHConnection(channel, Direction.OUTBOUND, f"{host}:{port}", owner=client)


class Listener:
    """
    Accept loop on a TCP port.

    Every accepted call is handed to `on_call`, unless `is_busy()` says the
    line is in use, in which case the caller is told and dropped.
    Listeners with a slow handshake handle each caller on its own thread so
    one stalled client can't hold up the next.
    """

    name = "listener"
    slow_handshake = False

    def __init__(self, port: int, on_call: Callable, is_busy: Callable[[], bool],
                 host: str = "0.0.0.0"):
        self.host = host
        self.port = port
        self.on_call = on_call
        self.is_busy = is_busy
        self.sock: Optional[socket.socket] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> bool:
        """Bind and start accepting; False if the listener can't run."""
        try:
            self.prepare()
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(5)
        except (OSError, paramiko.SSHException) as e:
            logger.error(f"{self.name} listener on port {self.port} disabled: {e}")
            return False
        self.sock = sock
        self.port = sock.getsockname()[1]
        self._thread = threading.Thread(target=self._accept_loop, name=f"{self.name}-listener", daemon=True)
        self._thread.start()
        logger.info(f"{self.name} listener on {self.host}:{self.port}")
        return True

    def stop(self) -> None:
        self._stop.set()
        if self.sock is not None:
            self.sock.close()

    def prepare(self) -> None:
        """Load anything needed before binding."""

    def _accept_loop(self) -> None:
        while not self._stop.is_set():
            try:
                client, addr = self.sock.accept()
            except OSError as e:
                if not self._stop.is_set():
                    logger.error(f"{self.name} accept failed: {e}")
                return
            remote = f"{addr[0]}:{addr[1]}"
            logger.info(f"{self.name} call from {remote}")
            if self.slow_handshake:
                threading.Thread(target=self._serve, args=(client, remote),
                                 name=f"{self.name}-{remote}", daemon=True).start()
            else:
                self._serve(client, remote)

    def _serve(self, client: socket.socket, remote: str) -> None:
        try:
            self.handle(client, remote)
        except Exception as e:
            logger.error(f"{self.name} call from {remote} failed: {e}")
            client.close()

    def handle(self, client: socket.socket, remote: str) -> None:
        raise NotImplementedError


class TelnetListener(Listener):
    name = "telnet"

    def handle(self, client: socket.socket, remote: str) -> None:
        if self.is_busy():
            logger.info(f"Line busy, rejecting {remote}")
            client.sendall(BUSY_MESSAGE)
            client.close()
            return
        conn = TelnetConnection(client, Direction.INBOUND, remote)
        conn.negotiate()
        self.on_call(conn)


class _ModemSSHServer(paramiko.ServerInterface):
    """No authentication; only the first session channel is granted."""

    def __init__(self):
        self.session_granted = False

    def get_allowed_auths(self, username):
        return "none"

    def check_auth_none(self, username):
        return paramiko.AUTH_SUCCESSFUL

    def check_channel_request(self, kind, chanid):
        if kind == "session" and not self.session_granted:
            self.session_granted = True
            return paramiko.OPEN_SUCCEEDED
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_channel_pty_request(self, channel, term, width, height, pixelwidth, pixelheight, modes):
        return True

    def check_channel_shell_request(self, channel):
        return True


class SSHListener(Listener):
    name = "ssh"
    slow_handshake = True

    def __init__(self, port: int, on_call: Callable, is_busy: Callable[[], bool],
                 keyfile: str = "./id_rsa", host: str = "0.0.0.0"):
        super().__init__(port, on_call, is_busy, host)
        self.keyfile = keyfile
        self.host_key: Optional[paramiko.PKey] = None

    def prepare(self) -> None:
        self.host_key = paramiko.RSAKey.from_private_key_file(self.keyfile)
        logger.info(f"Loaded SSH host key {self.keyfile}")

    def handle(self, client: socket.socket, remote: str) -> None:
        transport = paramiko.Transport(client)
        transport.add_server_key(self.host_key)
        try:
            transport.start_server(server=_ModemSSHServer())
            channel = transport.accept(SSH_HANDSHAKE_TIMEOUT)
        except (paramiko.SSHException, EOFError, OSError) as e:
            logger.warning(f"SSH handshake with {remote} failed: {e}")
            transport.close()
            return
        if channel is None:
            logger.warning(f"No session channel from {remote}")
            transport.close()
            return
        if self.is_busy():
            logger.info(f"Line busy, rejecting {remote}")
            channel.sendall(BUSY_MESSAGE)
            channel.close()
            transport.close()
            return
        self.on_call(SSHConnection(channel, Direction.INBOUND, remote, owner=transport))
