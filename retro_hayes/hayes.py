"""The modem: ties registers, configuration, state and the background tasks together."""

import logging
import threading
import time
from typing import List, Optional

from .call_log import CallLog
from .commands import CommandDispatcher
from .config import ModemConfig
from .dial import CONNECT_SPEED, CONNECT_TIMEOUT, Dialer
from .errors import DTEError
from .hardware import LED, Pin
from .lcd import BANNER
from .metrics import Metrics
from .monitors import DTRMonitor, PinMonitor
from .registers import CARRIER_DETECT_RESP_100MS, CR_CH, LF_CH, Registers
from .result_codes import ResultCode, format_result
from .serial_pump import SerialPump
from .state import ModemState
from .supervisor import CallSupervisor

logger = logging.getLogger(__name__)

READY_DELAY = 0.25


class Modem:
    """
    One emulated Hayes modem.

    Every task gets this object rather than reaching for globals: the DTE
    pump and dispatcher, the call supervisor, the dialer and the pin and
    DTR monitors all read and change the modem through it.
    """

    def __init__(self, dte, pins, lcd, tones, phonebook, profiles,
                 metrics: Optional[Metrics] = None, call_log: Optional[CallLog] = None,
                 connect_timeout: float = CONNECT_TIMEOUT, ready_delay: float = READY_DELAY,
                 log_level: int = logging.INFO, **supervisor_options):
        """
        Args:
            dte: DTE wrapper for the attached terminal.
            pins: Pin and LED backend from get_pins().
            lcd: StatusLCD.
            tones: Tone backend from get_tones().
            phonebook: Phonebook, loaded on reset.
            profiles: StoredProfiles, loaded at power-on.
            metrics: Optional Prometheus metrics.
            call_log: Optional SQLite call log.
            connect_timeout: Outbound connect timeout in seconds.
            ready_delay: Pause before raising CTS after a reset.
            log_level: Level restored when debug logging is switched off.
            **supervisor_options: Timing overrides for CallSupervisor.
        """
        self.dte = dte
        self.pins = pins
        self.lcd = lcd
        self.tones = tones
        self.phonebook = phonebook
        self.profiles = profiles
        self.metrics = metrics
        self.call_log = call_log
        self.ready_delay = ready_delay
        self.log_level = log_level

        self.registers = Registers()
        self.config = ModemConfig()
        self.state = ModemState()

        self.dispatcher = CommandDispatcher(self)
        self.dialer = Dialer(self, timeout=connect_timeout)
        self.supervisor = CallSupervisor(self, **supervisor_options)
        self.pump = SerialPump(self)
        self.monitors = [PinMonitor(self), DTRMonitor(self)]
        self._hangup_lock = threading.Lock()

    # --- lifecycle ---

    def power_on(self, telnet_port: Optional[int] = None, ssh_port: Optional[int] = None,
                 keyfile: str = "./id_rsa") -> None:
        """Load stored settings, start the background tasks and tell the DTE we're ready."""
        logger.info("------------ Starting up")
        self.profiles.load()
        self.soft_reset(self.profiles.power_up_config)
        self.lcd.center(0, BANNER)

        self.dte.start()
        for monitor in self.monitors:
            monitor.start()
        self.supervisor.start(telnet_port=telnet_port, ssh_port=ssh_port, keyfile=keyfile)

        logger.info("Modem Ready")
        self.report(ResultCode.OK)

    def run(self) -> None:
        """Serve the DTE; returns only when the pump is stopped."""
        self.pump.run()

    def shutdown(self) -> None:
        logger.info("Shutting down")
        self.pump.stop()
        for monitor in self.monitors:
            monitor.stop()
        self.supervisor.stop()
        self.hangup()
        self.dte.stop()
        self.tones.close()
        self.pins.clear()
        if self.metrics:
            self.metrics.stop()
        if self.call_log:
            self.call_log.close()

    # --- DTE output ---

    @property
    def eol(self) -> bytes:
        return bytes([self.registers.read(CR_CH), self.registers.read(LF_CH)])

    def print_line(self, text: str = "") -> None:
        self.dte.print_line(text, eol=self.eol)

    def report(self, code: ResultCode) -> None:
        """Show a result code on the LCD and, unless quiet, on the DTE."""
        self.lcd.show_status(code.text)
        text = format_result(code, self.config, self.state.connect_speed)
        if text is None:
            return
        try:
            self.print_line(text)
        except DTEError as e:
            logger.error(f"Can't report {code.text}: {e}")

    # --- hook and carrier ---

    def go_off_hook(self) -> None:
        self.state.go_off_hook()
        self.pins.led_on(LED.OH)

    def pickup(self) -> None:
        """ATH1"""
        logger.info("Off hook")
        self.go_off_hook()

    def hangup(self, conn=None) -> ResultCode:
        """
        Drop carrier and go on-hook. Safe to call repeatedly.

        Args:
            conn: Only hang up if this connection is still the live call.
                A newer call that replaced it is left alone.

        Returns:
            NO_CARRIER if a connection was closed, otherwise OK.
        """
        with self._hangup_lock:
            if conn is None:
                conn = self.state.disconnect()
            elif not self.state.disconnect_if(conn):
                return ResultCode.OK
            if not self.config.dcd_pinned:
                self.pins.lower_pin(Pin.CD)
            if not self.config.dsr_pinned:
                self.pins.lower_pin(Pin.DSR)
            self.pins.led_off(LED.OH)
            if conn is None:
                return ResultCode.OK
            logger.info(f"Hanging up {conn}")
            conn.close()
            self.lcd.printf(0, "")
            return ResultCode.NO_CARRIER

    def answer(self, conn=None) -> ResultCode:
        """
        ATA: pick up the ringing call and bring carrier up.

        Args:
            conn: The call to answer; defaults to whatever is ringing.
        """
        state = self.state
        if state.off_hook:
            logger.info("Can't answer, line off hook already")
            return ResultCode.ERROR

        if conn is None:
            conn = self.supervisor.ringing
        self.go_off_hook()
        time.sleep(self.registers.read(CARRIER_DETECT_RESP_100MS) * 0.1)

        if conn is None or conn.closed:
            logger.info("Answered with nobody calling")
            self.hangup()
            return ResultCode.NO_CARRIER

        state.connect(conn, CONNECT_SPEED)
        self.tones.carrier()
        logger.info(f"Answered {conn}")
        return ResultCode.CONNECT

    # --- resets ---

    def factory_reset(self) -> None:
        """AT&F: hang up and restore hard-coded defaults."""
        logger.info("Resetting modem")
        self.hangup()
        self.lcd.clear()
        self.state.reset()
        for pin in (Pin.DSR, Pin.CTS, Pin.RI):
            self.pins.lower_pin(pin)
        self.registers.reset()
        self.config.reset()
        self.phonebook.load()
        self.pump.reset_timer()

    def soft_reset(self, slot: int) -> None:
        """ATZn: reset, then make stored profile n live."""
        config, registers = self.profiles.switch(slot)
        self.factory_reset()
        self.config.update_from(config)
        self.registers.update_from(registers)
        self.state.current_config = slot
        self.pump.reset_timer()
        self.ready()

    def ready(self) -> None:
        """Signal the DTE that the modem will take commands."""
        time.sleep(self.ready_delay)
        self.pins.raise_pin(Pin.CTS)
        self.pins.led_on(LED.MR)

    # --- diagnostics ---

    def format_state(self) -> List[str]:
        state = self.state.snapshot()
        config = self.config
        lines = [
            f"Hook     : {'OFF HOOK' if state['hook'] == 'off' else 'ON HOOK'}",
            f"Echo     : {config.echo_in_cmd_mode}",
            f"Mode     : {state['mode'].capitalize()}",
            f"Quiet    : {config.quiet}",
            f"Verbose  : {config.verbose}",
            f"Line Busy: {state['line_busy']}",
            f"DCD      : {state['dcd']}",
            f"Speed    : {state['connect_speed']}",
            f"Volume   : {config.speaker_volume}",
            f"SpkrMode : {config.speaker_mode}",
            f"Last Cmd : {state['last_cmd']}",
            f"Last num : {state['last_dialed']}",
            f"Profile  : {state['current_config']}",
            f"Cur reg  : {self.dispatcher.current_register}",
        ]
        lines.extend(self.phonebook.format_lines())
        lines.append("Registers:")
        lines.extend(self.registers.format_lines())
        lines.append(f"Connection: {state['conn']}")
        if self.call_log:
            lines.extend(self.call_log.format_lines())
        lines.extend(self.pins.show().splitlines())
        lines.extend(str(self.lcd).splitlines())
        return lines

    def log_state(self) -> None:
        for line in self.format_state():
            logger.info(line)

    def dump_state(self) -> None:
        """AT*: state to the DTE and to the log."""
        for line in self.format_state():
            self.print_line(line)
        self.log_state()
