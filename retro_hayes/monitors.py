"""Periodic watchers for the control lines, DTR and the status display."""

import logging
import threading
import time
from typing import Optional

from .hardware import LED, Pin
from .registers import AUTO_ANSWER, DTR_DETECT_10MS
from .result_codes import ResultCode
from .state import Mode

logger = logging.getLogger(__name__)

HIGH_SPEED = 19200
NO_CARRIER_HOLD_SECONDS = 10.0


class PeriodicTask:
    """Calls poll() every `interval` seconds on a daemon thread."""

    interval = 1.0
    name = "periodic"

    def __init__(self, modem):
        self.modem = modem
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.poll()
            except Exception as e:
                logger.exception(f"{self.name} failed: {e}")

    def poll(self) -> None:
        raise NotImplementedError


class PinMonitor(PeriodicTask):
    """Drive outputs and lamps from modem state and the &C/&S policies."""

    interval = 0.1
    name = "pin-monitor"

    def poll(self) -> None:
        modem = self.modem
        state = modem.state
        config = modem.config
        pins = modem.pins

        pins.set_led(LED.HS, state.connect_speed > HIGH_SPEED)
        pins.set_led(LED.AA, modem.registers.read(AUTO_ANSWER) > 0)
        pins.set_led(LED.OH, state.off_hook)

        carrier = state.dcd
        if config.dcd_pinned or carrier:
            pins.raise_pin(Pin.CD)
        else:
            pins.lower_pin(Pin.CD)

        if config.dsr_pinned or carrier:
            pins.raise_pin(Pin.DSR)
        else:
            pins.lower_pin(Pin.DSR)

        if pins.read_pin(Pin.RTS):
            pins.raise_pin(Pin.CTS)
        else:
            pins.lower_pin(Pin.CTS)

        lcd = modem.lcd
        if (lcd.status == ResultCode.NO_CARRIER.text
                and time.monotonic() - lcd.status_time >= NO_CARRIER_HOLD_SECONDS):
            lcd.show_status(ResultCode.OK.text)


class DTRMonitor(PeriodicTask):
    """
    Act on the DTE dropping DTR, as set by &D.

    DTR must stay down for S25 x 10ms before anything happens, and must
    come back up before it can trigger again.
    """

    interval = 0.005
    name = "dtr-monitor"

    def __init__(self, modem):
        super().__init__(modem)
        self.was_up = False
        self.wait_for_up = True
        self.down_since = time.monotonic()

    def poll(self, now: Optional[float] = None) -> None:
        now = time.monotonic() if now is None else now
        pins = self.modem.pins

        if pins.read_pin(Pin.DTR):
            if not self.was_up:
                logger.info(f"DTR up after {now - self.down_since:.2f}s down")
            self.was_up = True
            self.wait_for_up = False
            pins.led_on(LED.TR)
            return

        if self.wait_for_up:
            return

        if self.was_up:
            logger.info("DTR down")
            self.down_since = now
            self.was_up = False
            return

        window = self.modem.registers.read(DTR_DETECT_10MS) * 0.010
        if now - self.down_since >= window:
            self.wait_for_up = True
            self.process()

    def process(self) -> None:
        modem = self.modem
        action = modem.config.dtr_action
        logger.info(f"DTR dropped, &D{action}")

        if action == 0:
            modem.pins.led_off(LED.TR)
        elif action == 1:
            if modem.state.mode is Mode.DATA:
                modem.state.mode = Mode.COMMAND
                modem.report(ResultCode.OK)
        elif action == 2:
            modem.pins.led_off(LED.TR)
            if modem.state.off_hook:
                modem.report(modem.hangup())
        elif action == 3:
            if modem.state.off_hook:
                modem.report(modem.hangup())
            modem.soft_reset(modem.state.current_config)
            modem.report(ResultCode.OK)
