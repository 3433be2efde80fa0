"""Tests for hardware module."""

import pytest

from retro_hayes.hardware import LED, Pin, StubPins, get_pins


class TestStubPins:
    """Tests for in-memory pins and LEDs."""

    def test_inputs_default_high(self):
        pins = StubPins()
        assert pins.read_pin(Pin.DTR)
        assert pins.read_pin(Pin.RTS)
        assert pins.read_pin(Pin.CD) is False

    def test_output_lights_lamp(self):
        """Raising CD lights the CD lamp; DSR lights MR."""
        pins = StubPins()
        pins.raise_pin(Pin.CD)
        pins.raise_pin(Pin.DSR)
        assert pins.read_pin(Pin.CD)
        assert pins.led_is_lit(LED.CD)
        assert pins.led_is_lit(LED.MR)
        pins.lower_pin(Pin.CD)
        assert pins.led_is_lit(LED.CD) is False

    def test_cannot_drive_inputs(self):
        pins = StubPins()
        with pytest.raises(ValueError):
            pins.raise_pin(Pin.DTR)

    def test_set_input(self):
        pins = StubPins()
        pins.set_input(Pin.DTR, False)
        assert pins.read_pin(Pin.DTR) is False
        with pytest.raises(ValueError):
            pins.set_input(Pin.CD, True)

    def test_clear(self):
        pins = StubPins()
        pins.raise_pin(Pin.RI)
        pins.led_on(LED.OH)
        pins.clear()
        assert pins.read_pin(Pin.RI) is False
        assert pins.led_is_lit(LED.OH) is False
        assert pins.read_pin(Pin.DTR)

    def test_led_test_restores(self):
        pins = StubPins()
        pins.led_on(LED.AA)
        pins.led_test(0)
        assert pins.led_is_lit(LED.AA)
        assert pins.led_is_lit(LED.HS) is False

    def test_show(self):
        """Pins as High/Low and lit lamps in upper case."""
        pins = StubPins()
        pins.raise_pin(Pin.CTS)
        pins.led_on(LED.OH)
        text = pins.show()
        assert "CTS:[High]" in text
        assert "RI:[Low]" in text
        assert " OH " in text
        assert " hs " in text


class TestGetPins:
    def test_stub_by_default(self):
        assert type(get_pins()) is StubPins

    def test_gpio_needs_gpiozero(self):
        pytest.importorskip("gpiozero")
        from retro_hayes.hardware import GpioPins

        assert issubclass(GpioPins, StubPins)
