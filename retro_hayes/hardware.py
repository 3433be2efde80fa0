"""RS-232 control pins and front panel LEDs, as a stub or on Raspberry Pi GPIO."""

import logging
import threading
import time
from enum import Enum, IntEnum
from typing import Dict

logger = logging.getLogger(__name__)


class Pin(Enum):
    """Control lines seen from the modem (DCE) side."""
    RI = "RI"
    CD = "CD"
    DSR = "DSR"
    CTS = "CTS"
    DTR = "DTR"   # input from the DTE
    RTS = "RTS"   # input from the DTE


class LED(Enum):
    """Front panel lamps of a classic external modem."""
    HS = "HS"   # high speed
    AA = "AA"   # auto answer
    RI = "RI"   # ring
    MR = "MR"   # modem ready
    TR = "TR"   # terminal ready
    RD = "RD"   # receive data
    CS = "CS"   # clear to send
    CD = "CD"   # carrier detect
    SD = "SD"   # send data
    OH = "OH"   # off hook


INPUT_PINS = (Pin.DTR, Pin.RTS)

# Lamp lit alongside each output line.
PIN_LEDS = {
    Pin.RI: LED.RI,
    Pin.CD: LED.CD,
    Pin.DSR: LED.MR,
    Pin.CTS: LED.CS,
}


class BCM(IntEnum):
    """Broadcom GPIO numbers used by the Raspberry Pi build."""
    HS_LED = 2
    AA_LED = 3
    RI_LED = 4
    MR_LED = 5
    RTS_PIN = 7
    TR_LED = 9
    RD_LED = 10
    CS_LED = 11
    CTS_PIN = 12
    DTR_PIN = 16
    CD_LED = 17
    SD_LED = 22
    RI_PIN = 23
    CD_PIN = 24
    DSR_PIN = 25
    OH_LED = 27


class StubPins:
    """
    In-memory pins for hosts without GPIO.

    DTR and RTS read high by default so the DTE always looks ready; the
    debug commands can drop them to exercise the DTR handling.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pins: Dict[Pin, bool] = {pin: False for pin in Pin}
        self._leds: Dict[LED, bool] = {led: False for led in LED}
        self._pins[Pin.DTR] = True
        self._pins[Pin.RTS] = True

    # --- pins ---

    def raise_pin(self, pin: Pin) -> None:
        self._set_pin(pin, True)

    def lower_pin(self, pin: Pin) -> None:
        self._set_pin(pin, False)

    def read_pin(self, pin: Pin) -> bool:
        with self._lock:
            return self._pins[pin]

    def _set_pin(self, pin: Pin, level: bool) -> None:
        if pin in INPUT_PINS:
            raise ValueError(f"{pin.value} is an input")
        self._drive(pin, level)
        led = PIN_LEDS.get(pin)
        if led is not None:
            self._light(led, level)

    def _drive(self, pin: Pin, level: bool) -> None:
        with self._lock:
            self._pins[pin] = level

    def set_input(self, pin: Pin, level: bool) -> None:
        """Force a DTE-driven line; only meaningful on the stub."""
        if pin not in INPUT_PINS:
            raise ValueError(f"{pin.value} is not an input")
        with self._lock:
            self._pins[pin] = level
        logger.info(f"{pin.value} forced {'high' if level else 'low'}")

    # --- LEDs ---

    def led_on(self, led: LED) -> None:
        self._light(led, True)

    def led_off(self, led: LED) -> None:
        self._light(led, False)

    def set_led(self, led: LED, lit: bool) -> None:
        self._light(led, lit)

    def led_is_lit(self, led: LED) -> bool:
        with self._lock:
            return self._leds[led]

    def _light(self, led: LED, lit: bool) -> None:
        with self._lock:
            self._leds[led] = lit

    def blink(self, led: LED) -> None:
        """Short flash for data activity."""
        self._light(led, True)
        self._light(led, False)

    def led_test(self, seconds: int) -> None:
        """Light every lamp for a while, then restore the previous state."""
        with self._lock:
            saved = dict(self._leds)
        for led in LED:
            self._light(led, True)
        time.sleep(seconds)
        for led, lit in saved.items():
            self._light(led, lit)

    def clear(self) -> None:
        """Drop every output line and lamp."""
        for pin in Pin:
            if pin not in INPUT_PINS:
                self._set_pin(pin, False)
        for led in LED:
            self._light(led, False)

    def show(self) -> str:
        """`PINs: CTS:[High] ...` and `LEDs: [ HS aa ...]`, lit lamps upper case."""
        with self._lock:
            pins = " ".join(
                f"{pin.value}:[{'High' if level else 'Low'}]" for pin, level in self._pins.items()
            )
            leds = " ".join(
                led.value if lit else led.value.lower() for led, lit in self._leds.items()
            )
        return f"PINs: {pins}\nLEDs: [ {leds} ]"


class GpioPins(StubPins):
    """
    Raspberry Pi backend using gpiozero.

    The RS-232 transceiver inverts the control lines, so a raised pin is
    driven low at the GPIO header.
    """

    def __init__(self):
        super().__init__()
        from gpiozero import LED as GpioLED
        from gpiozero import DigitalInputDevice, DigitalOutputDevice

        self._out = {
            Pin.RI: DigitalOutputDevice(BCM.RI_PIN, active_high=False),
            Pin.CD: DigitalOutputDevice(BCM.CD_PIN, active_high=False),
            Pin.DSR: DigitalOutputDevice(BCM.DSR_PIN, active_high=False),
            Pin.CTS: DigitalOutputDevice(BCM.CTS_PIN, active_high=False),
        }
        self._in = {
            Pin.DTR: DigitalInputDevice(BCM.DTR_PIN, pull_up=True),
            Pin.RTS: DigitalInputDevice(BCM.RTS_PIN, pull_up=True),
        }
        self._lamps = {
            LED.HS: GpioLED(BCM.HS_LED),
            LED.AA: GpioLED(BCM.AA_LED),
            LED.RI: GpioLED(BCM.RI_LED),
            LED.MR: GpioLED(BCM.MR_LED),
            LED.TR: GpioLED(BCM.TR_LED),
            LED.RD: GpioLED(BCM.RD_LED),
            LED.CS: GpioLED(BCM.CS_LED),
            LED.CD: GpioLED(BCM.CD_LED),
            LED.SD: GpioLED(BCM.SD_LED),
            LED.OH: GpioLED(BCM.OH_LED),
        }
        logger.info("GPIO pins initialized")

    def _drive(self, pin: Pin, level: bool) -> None:
        super()._drive(pin, level)
        if level:
            self._out[pin].on()
        else:
            self._out[pin].off()

    def read_pin(self, pin: Pin) -> bool:
        if pin in self._in:
            # Pulled up and inverted: an asserted line reads low.
            return not self._in[pin].value
        return super().read_pin(pin)

    def set_input(self, pin: Pin, level: bool) -> None:
        logger.warning(f"Can't force {pin.value} on real hardware")

    def _light(self, led: LED, lit: bool) -> None:
        super()._light(led, lit)
        if lit:
            self._lamps[led].on()
        else:
            self._lamps[led].off()

    def blink(self, led: LED) -> None:
        self._lamps[led].blink(on_time=0.02, off_time=0.02, n=1)


def get_pins(use_gpio: bool = False) -> StubPins:
    """Return the GPIO backend when requested, otherwise the stub."""
    if use_gpio:
        return GpioPins()
    return StubPins()
