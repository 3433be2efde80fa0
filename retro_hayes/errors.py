"""Exception taxonomy for the modem control plane."""

from .result_codes import ResultCode


class ModemError(Exception):
    """Base error; carries the result code it is reported as."""
    result = ResultCode.ERROR


class ParseError(ModemError):
    """Malformed AT command line."""


class UnsupportedError(ModemError):
    """Known command with an argument the modem does not support."""


class StateError(ModemError):
    """Command not valid in the current modem state."""


class DialTimeout(ModemError):
    """Outbound connect did not complete in time."""
    result = ResultCode.NO_ANSWER


class DialFailed(ModemError):
    """Outbound connect was refused or failed."""
    result = ResultCode.BUSY


class DTEError(ModemError):
    """I/O failure talking to the DTE or a status device."""


class TransientNetworkError(ModemError):
    """Network hiccup worth one retry."""


class FatalNetworkError(ModemError):
    """Network failure that ends the call."""
    result = ResultCode.NO_CARRIER


class PersistError(ModemError):
    """Phonebook or stored profile file could not be read or written."""
