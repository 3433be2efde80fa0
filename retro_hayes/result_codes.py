"""Hayes result codes and the reporter filter applied before they reach the DTE."""

import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ResultCode(Enum):
    """Modem responses as (numeric, text) pairs."""
    OK = (0, "OK")
    CONNECT = (1, "CONNECT")
    RING = (2, "RING")
    NO_CARRIER = (3, "NO CARRIER")
    ERROR = (4, "ERROR")
    CONNECT_1200 = (5, "CONNECT 1200")
    NO_DIALTONE = (6, "NO DIALTONE")
    BUSY = (7, "BUSY")
    NO_ANSWER = (8, "NO ANSWER")
    CONNECT_2400 = (10, "CONNECT 2400")
    CONNECT_4800 = (11, "CONNECT 4800")
    CONNECT_9600 = (12, "CONNECT 9600")
    CONNECT_14400 = (13, "CONNECT 14400")
    CONNECT_19200 = (14, "CONNECT 19200")
    CONNECT_57600 = (18, "CONNECT 57600")
    CONNECT_7200 = (24, "CONNECT 7200")
    CONNECT_12000 = (25, "CONNECT 12000")
    CONNECT_38400 = (28, "CONNECT 38400")
    CONNECT_300 = (40, "CONNECT 300")
    CONNECT_115200 = (87, "CONNECT 115200")

    @property
    def code(self) -> int:
        return self.value[0]

    @property
    def text(self) -> str:
        return self.value[1]

    def __str__(self) -> str:
        return self.text


CONNECT_SPEEDS = {
    300: ResultCode.CONNECT_300,
    1200: ResultCode.CONNECT_1200,
    2400: ResultCode.CONNECT_2400,
    4800: ResultCode.CONNECT_4800,
    7200: ResultCode.CONNECT_7200,
    9600: ResultCode.CONNECT_9600,
    12000: ResultCode.CONNECT_12000,
    14400: ResultCode.CONNECT_14400,
    19200: ResultCode.CONNECT_19200,
    38400: ResultCode.CONNECT_38400,
    57600: ResultCode.CONNECT_57600,
    115200: ResultCode.CONNECT_115200,
}


def speed_to_result(speed: int) -> ResultCode:
    """Map a connect speed to its CONNECT variant, bare CONNECT if unknown."""
    return CONNECT_SPEEDS.get(speed, ResultCode.CONNECT)


def filter_result(code: ResultCode, config, connect_speed: int = 0) -> Optional[ResultCode]:
    """
    Apply the modem configuration to a result code.

    Args:
        code: Result produced by a command or event.
        config: Active ModemConfig.
        connect_speed: Current connect speed, used for CONNECT substitution.

    Returns:
        The code to report, or None when quiet mode suppresses it.
    """
    if config.quiet:
        return None
    if code is ResultCode.CONNECT and config.connect_msg_speed:
        return speed_to_result(connect_speed)
    if code is ResultCode.BUSY and not config.busy_detect:
        return ResultCode.OK
    if code in (ResultCode.NO_DIALTONE, ResultCode.NO_ANSWER) and not config.extended_result_codes:
        return ResultCode.OK
    return code


def format_result(code: ResultCode, config, connect_speed: int = 0) -> Optional[str]:
    """
    Render a result code for the DTE, without the line terminator.

    Returns:
        Text form when verbose, numeric form otherwise, or None when quiet.
    """
    filtered = filter_result(code, config, connect_speed)
    if filtered is None:
        return None
    if config.verbose:
        return filtered.text
    return str(filtered.code)
