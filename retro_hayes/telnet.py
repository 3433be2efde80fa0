"""Telnet command bytes and a stream filter that refuses every option."""

import enum
import logging
from typing import Tuple

logger = logging.getLogger(__name__)


class TelnetCommand(enum.IntEnum):
    IAC = 255    # interpret as command
    DONT = 254   # you are not to use option
    DO = 253     # please, you use option
    WONT = 252   # I won't use option
    WILL = 251   # I will use option
    SB = 250     # interpret as subnegotiation
    GA = 249
    NOP = 241
    SE = 240     # end sub negotiation


class TelnetOption(enum.IntEnum):
    BINARY = 0
    ECHO = 1
    SGA = 3
    TTYPE = 24
    NAWS = 31
    LINEMODE = 34


class _State(enum.Enum):
    DATA = 0
    IAC = 1
    OPTION = 2     # after WILL/WONT/DO/DONT
    SB = 3
    SB_IAC = 4


IAC = bytes([TelnetCommand.IAC])

# Sent by the listener right after accept.
ACCEPT_NEGOTIATION = bytes([
    TelnetCommand.IAC, TelnetCommand.DO, TelnetOption.LINEMODE,
    TelnetCommand.IAC, TelnetCommand.DONT, TelnetOption.ECHO,
    TelnetCommand.IAC, TelnetCommand.WILL, TelnetOption.ECHO,
])

_REFUSALS = {
    TelnetCommand.WILL: TelnetCommand.DONT,
    TelnetCommand.DO: TelnetCommand.WONT,
    TelnetCommand.DONT: TelnetCommand.WONT,
}


def _name(value: int, enum_cls) -> str:
    try:
        return enum_cls(value).name
    except ValueError:
        return str(value)


def escape_iac(data: bytes) -> bytes:
    """Double every 0xFF so it travels as data."""
    return data.replace(IAC, IAC + IAC)


class TelnetFilter:
    """
    Incremental Telnet parser.

    Feed it raw bytes from the network; it returns the user payload and
    any replies that must be sent back. State carries across calls so a
    command split between two reads is handled.
    """

    def __init__(self):
        self._state = _State.DATA
        self._verb = 0

    def feed(self, data: bytes) -> Tuple[bytes, bytes]:
        """
        Args:
            data: Raw bytes read from the socket.

        Returns:
            (payload, replies)
        """
        payload = bytearray()
        replies = bytearray()
        for b in data:
            state = self._state
            if state is _State.DATA:
                if b == TelnetCommand.IAC:
                    self._state = _State.IAC
                else:
                    payload.append(b)
            elif state is _State.IAC:
                if b == TelnetCommand.IAC:
                    payload.append(b)
                    self._state = _State.DATA
                elif b in (TelnetCommand.WILL, TelnetCommand.WONT, TelnetCommand.DO, TelnetCommand.DONT):
                    self._verb = b
                    self._state = _State.OPTION
                elif b == TelnetCommand.SB:
                    self._state = _State.SB
                else:
                    logger.debug(f"Ignoring telnet command {_name(b, TelnetCommand)}")
                    self._state = _State.DATA
            elif state is _State.OPTION:
                refusal = _REFUSALS.get(self._verb)
                logger.debug(
                    f"Telnet {_name(self._verb, TelnetCommand)} {_name(b, TelnetOption)}"
                    + (f", replying {refusal.name}" if refusal else "")
                )
                if refusal is not None:
                    replies.extend((TelnetCommand.IAC, refusal, b))
                self._state = _State.DATA
            elif state is _State.SB:
                if b == TelnetCommand.IAC:
                    self._state = _State.SB_IAC
            elif state is _State.SB_IAC:
                # IAC SE ends the subnegotiation, IAC IAC is an escaped byte inside it.
                self._state = _State.DATA if b == TelnetCommand.SE else _State.SB
        return bytes(payload), bytes(replies)
