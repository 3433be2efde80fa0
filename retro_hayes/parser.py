"""AT command line tokenizer."""

import logging
from typing import List, Tuple

from .errors import ParseError

logger = logging.getLogger(__name__)

# Allowed argument digits per single letter command; a missing digit means 0.
TOGGLES = {
    "E": "01",
    "H": "01",
    "Q": "01",
    "V": "01",
    "Z": "01",
    "M": "012",
    "W": "012",
    "L": "0123",
    "X": "01234567",
    "I": "012345",
    "Y": "01",
    "C": "01",
    "N": "012345",
    "B": "012345",
}

AMPERSAND = {
    "V": "0",
    "C": "01",
    "D": "0123",
    "F": "0",
    "S": "01",
    "W": "01",
    "Y": "01",
}

DIAL_CHARS = set("0123456789,;@!W*#ABCD")
DIAL_FILLER = set("()-+ ")

MAX_REGISTER = 255
MAX_VALUE = 255


def _read_number(text: str, i: int, limit: int) -> Tuple[int, int]:
    start = i
    while i < len(text) and text[i].isdigit():
        i += 1
    if i == start:
        raise ParseError(f"Expected a number at {text[start:]!r}")
    value = int(text[start:i])
    if value > limit:
        raise ParseError(f"{value} out of range 0-{limit}")
    return value, i


def _parse_register(text: str, i: int, prefix: str) -> Tuple[str, int]:
    """Sn / Sn? / Sn=v / S? and the same forms for `*`."""
    i += 1
    if i < len(text) and text[i] == "?":
        return f"{prefix}?", i + 1
    if prefix == "*" and (i >= len(text) or not text[i].isdigit()):
        return "*", i
    reg, i = _read_number(text, i, MAX_REGISTER)
    if i < len(text) and text[i] == "=":
        value, i = _read_number(text, i + 1, MAX_VALUE)
        return f"{prefix}{reg}={value}", i
    if i < len(text) and text[i] == "?":
        return f"{prefix}{reg}?", i + 1
    if prefix == "*":
        raise ParseError(f"Bad debug command {text!r}")
    return f"{prefix}{reg}", i


def _dial_digits(text: str, i: int) -> Tuple[str, int]:
    """Digit span ending at the last dial character; presentation characters are dropped."""
    end = i
    last = -1
    while end < len(text):
        c = text[end].upper()
        if c in DIAL_CHARS:
            last = end
        elif c not in DIAL_FILLER:
            break
        end += 1
    if last < 0:
        raise ParseError(f"No number to dial in {text!r}")
    digits = "".join(c.upper() for c in text[i:last + 1] if c.upper() in DIAL_CHARS)
    return digits, last + 1


def _parse_dial(text: str, i: int) -> Tuple[str, int]:
    i += 1
    kind = text[i].upper() if i < len(text) else ""

    if kind in ("T", "P"):
        digits, i = _dial_digits(text, i + 1)
        return f"D{kind}{digits}", i

    if kind == "H":
        host = "".join(text[i + 1:].split())
        if not host or host == ";":
            raise ParseError("ATDH needs a host")
        return f"DH{host}", len(text)

    if kind == "E":
        payload = text[i + 1:].strip()
        if not payload:
            raise ParseError("ATDE needs host|user|pass")
        return f"DE{payload}", len(text)

    if kind == "L":
        i += 1
        if i < len(text) and text[i] == ";":
            return "DL;", i + 1
        return "DL", i

    if kind == "S":
        slot, i = _read_number(text, i + 1, 9999)
        if i < len(text) and text[i] == ";":
            return f"DS{slot};", i + 1
        return f"DS{slot}", i

    digits, i = _dial_digits(text, i)
    return f"D{digits}", i


def _parse_ampersand(text: str, i: int) -> Tuple[str, int]:
    i += 1
    if i >= len(text):
        raise ParseError("Bare &")
    cmd = text[i].upper()

    if cmd == "Z":
        slot, i = _read_number(text, i + 1, 9999)
        if i >= len(text) or text[i] != "=":
            raise ParseError("&Z needs =<phone|host|proto|user|pass>")
        payload = text[i + 1:].strip()
        if not payload:
            raise ParseError("&Z needs a payload")
        return f"&Z{slot}={payload}", len(text)

    allowed = AMPERSAND.get(cmd)
    if allowed is None:
        raise ParseError(f"Unknown command &{cmd}")
    i += 1
    arg = "0"
    if i < len(text) and text[i].isdigit():
        arg = text[i]
        i += 1
    if arg not in allowed:
        raise ParseError(f"Bad argument for &{cmd}: {arg}")
    return f"&{cmd}{arg}", i


def parse(line: str) -> List[str]:
    """
    Split an AT command line into normalized tokens.

    The whole line is checked before anything runs; any bad token rejects
    the line.

    Args:
        line: Command line as typed, with or without the trailing CR.

    Returns:
        Tokens such as ["E0", "S0=3", "DT5551212"]; empty for a bare AT.

    Raises:
        ParseError: If the line is malformed.
    """
    text = line.strip()
    if text[:2].upper() != "AT":
        raise ParseError(f"Not an AT command: {line!r}")

    tokens = []
    i = 2
    while i < len(text):
        c = text[i].upper()
        if c.isspace():
            i += 1
            continue

        if c == "A":
            tokens.append("A")
            i += 1
        elif c == "O":
            tokens.append("O")
            i += 1
            if i < len(text) and text[i] == "0":
                i += 1
        elif c in TOGGLES:
            i += 1
            arg = "0"
            if i < len(text) and text[i].isdigit():
                arg = text[i]
                i += 1
            if arg not in TOGGLES[c]:
                raise ParseError(f"Bad argument for {c}: {arg}")
            tokens.append(c + arg)
        elif c == "S":
            token, i = _parse_register(text, i, "S")
            tokens.append(token)
        elif c == "*":
            token, i = _parse_register(text, i, "*")
            tokens.append(token)
        elif c == "D":
            token, i = _parse_dial(text, i)
            tokens.append(token)
        elif c == "&":
            token, i = _parse_ampersand(text, i)
            tokens.append(token)
        else:
            raise ParseError(f"Unknown command {c!r} in {line!r}")

    logger.debug(f"Parsed {line!r} -> {tokens}")
    return tokens
