"""AT command dispatcher: runs parsed tokens against the modem."""

import logging
import time
from typing import List

from .errors import ModemError, StateError, UnsupportedError
from .hardware import Pin
from .logging_config import set_debug
from .parser import parse
from .registers import ESC_GUARD_20MS
from .result_codes import ResultCode
from .state import Mode

logger = logging.getLogger(__name__)

NUM_DEBUG_REGISTERS = 10

DEBUG_REGISTERS = {
    0: "debug logging",
    1: "LED test (seconds)",
    2: "DTR input level",
    3: "RTS input level",
    9: "toggle RI (times)",
}

PRODUCT = "RetroHayes"
VERSION = "1.0"


class CommandDispatcher:
    """
    Executes AT command lines.

    A line is parsed completely before anything runs. Tokens then execute
    left to right and execution stops at the first result other than OK.
    """

    def __init__(self, modem, ri_toggle_seconds: float = 2.0):
        self.modem = modem
        self.ri_toggle_seconds = ri_toggle_seconds
        self.current_register = 0
        self.debug_registers = [0] * NUM_DEBUG_REGISTERS

    def run(self, line: str) -> ResultCode:
        """
        Parse and execute one command line.

        Args:
            line: The line as typed at the DTE, without CR.

        Returns:
            The result code to report.
        """
        logger.info(f"Command: {line!r}")
        try:
            tokens = parse(line)
        except ModemError as e:
            logger.info(f"Rejected {line!r}: {e}")
            return e.result

        status = self.execute(tokens)
        if status in (ResultCode.OK, ResultCode.CONNECT):
            self.modem.state.last_cmd = line
        return status

    def execute(self, tokens: List[str]) -> ResultCode:
        for token in tokens:
            try:
                status = self.execute_token(token)
            except ModemError as e:
                logger.info(f"{token}: {e}")
                status = e.result
            except Exception as e:
                logger.exception(f"{token} failed: {e}")
                status = ResultCode.ERROR
            if status is not ResultCode.OK:
                return status
        return ResultCode.OK

    def execute_token(self, token: str) -> ResultCode:
        modem = self.modem
        config = modem.config
        head = token[0]
        arg = token[1:]

        if head == "A":
            return modem.answer()
        if head == "D":
            return modem.dialer.dial(token)
        if head == "S":
            return self._register(token)
        if head == "*":
            return self._debug(token)
        if head == "&":
            return self._ampersand(token)
        if head == "O":
            return self._online()

        value = int(arg)
        if head == "H":
            if value == 0:
                return modem.hangup()
            modem.pickup()
        elif head == "E":
            config.echo_in_cmd_mode = value == 1
        elif head == "Q":
            config.quiet = value == 1
        elif head == "V":
            config.verbose = value == 1
        elif head == "W":
            config.connect_msg_speed = value != 0
        elif head == "L":
            config.speaker_volume = value
        elif head == "M":
            config.speaker_mode = value
        elif head == "X":
            config.set_x_level(value)
        elif head == "Z":
            modem.soft_reset(value)
        elif head == "I":
            for line in self.info(value):
                modem.print_line(line)
        elif head in "YCNB":
            logger.debug(f"Ignoring {token}")
        else:
            raise UnsupportedError(f"Unknown command {token}")
        return ResultCode.OK

    def _online(self) -> ResultCode:
        state = self.modem.state
        if not state.dcd:
            raise StateError("No carrier to go online with")
        state.mode = Mode.DATA
        return ResultCode.OK

    # --- S registers ---

    def _register(self, token: str) -> ResultCode:
        modem = self.modem
        registers = modem.registers
        if token == "S?":
            modem.print_line(str(registers.read(self.current_register)))
            return ResultCode.OK

        body = token[1:]
        if body.endswith("?"):
            modem.print_line(str(registers.read(int(body[:-1]))))
        elif "=" in body:
            reg, value = (int(part) for part in body.split("="))
            try:
                registers.write(reg, value)
            except ValueError as e:
                raise UnsupportedError(str(e)) from e
            if reg == ESC_GUARD_20MS:
                modem.pump.reset_timer()
        else:
            self.current_register = int(body)
        return ResultCode.OK

    # --- debug registers ---

    def _debug(self, token: str) -> ResultCode:
        modem = self.modem
        if token == "*":
            modem.dump_state()
            return ResultCode.OK
        if token == "*?":
            for reg in range(NUM_DEBUG_REGISTERS):
                name = DEBUG_REGISTERS.get(reg, "unused")
                modem.print_line(f"*{reg}:{self.debug_registers[reg]:03d} {name}")
            return ResultCode.OK

        body = token[1:]
        if body.endswith("?"):
            reg = int(body[:-1])
            self._check_debug_register(reg)
            modem.print_line(str(self.debug_registers[reg]))
            return ResultCode.OK

        reg, value = (int(part) for part in body.split("="))
        self._check_debug_register(reg)
        self.debug_registers[reg] = value
        if reg == 0:
            set_debug(value != 0, modem.log_level)
        elif reg == 1:
            modem.pins.led_test(value)
        elif reg == 2:
            modem.pins.set_input(Pin.DTR, value != 0)
        elif reg == 3:
            modem.pins.set_input(Pin.RTS, value != 0)
        elif reg == 9:
            self._toggle_ri(value)
        return ResultCode.OK

    @staticmethod
    def _check_debug_register(reg: int) -> None:
        if reg >= NUM_DEBUG_REGISTERS:
            raise UnsupportedError(f"No debug register *{reg}")

    def _toggle_ri(self, times: int) -> None:
        pins = self.modem.pins
        for _ in range(times):
            logger.info("Toggling RI up")
            pins.raise_pin(Pin.RI)
            time.sleep(self.ri_toggle_seconds)
            logger.info("Toggling RI down")
            pins.lower_pin(Pin.RI)
            time.sleep(self.ri_toggle_seconds)

    # --- & commands ---

    def _ampersand(self, token: str) -> ResultCode:
        modem = self.modem
        config = modem.config
        cmd = token[1]

        if cmd == "Z":
            slot_text, payload = token[2:].split("=", 1)
            slot = int(slot_text)
            if payload.strip().upper() == "D":
                modem.phonebook.delete(slot)
            else:
                modem.phonebook.add(slot, payload)
            return ResultCode.OK

        value = int(token[2:])
        if cmd == "V":
            for line in self.view():
                modem.print_line(line)
        elif cmd == "C":
            config.dcd_pinned = value == 1
        elif cmd == "S":
            config.dsr_pinned = value == 1
        elif cmd == "D":
            config.dtr_action = value
        elif cmd == "F":
            modem.factory_reset()
        elif cmd == "W":
            modem.profiles.write_active(value, config, modem.registers)
        elif cmd == "Y":
            modem.profiles.set_power_up(value)
        else:
            raise UnsupportedError(f"Unknown command {token}")
        return ResultCode.OK

    def view(self) -> List[str]:
        """Lines printed by AT&V."""
        modem = self.modem
        lines = ["ACTIVE PROFILE:", modem.config.summary()]
        lines.extend(modem.registers.format_lines())
        lines.append("")
        lines.extend(modem.profiles.format_lines())
        lines.append("")
        lines.extend(modem.phonebook.format_lines())
        return lines

    def info(self, level: int) -> List[str]:
        """Lines printed by ATI0 to ATI5."""
        modem = self.modem
        if level == 0:
            return [f"{PRODUCT} {VERSION}"]
        if level == 1:
            return [VERSION]
        if level == 2:
            return ["ROM OK"]
        if level == 3:
            return [f"{PRODUCT} Telnet/SSH modem emulator"]
        if level == 4:
            return [modem.config.summary()]
        return [f"Phonebook entries: {len(modem.phonebook)}"]
