"""Tests for hayes module."""

from retro_hayes.call_log import CallLog
from retro_hayes.hardware import LED, Pin
from retro_hayes.registers import CR_CH
from retro_hayes.result_codes import ResultCode

from conftest import FakeConnection


class TestReport:
    """Tests for result code output."""

    def test_verbose(self, modem, fake_dte):
        modem.report(ResultCode.OK)
        assert fake_dte.output == "OK\r\n"
        assert modem.lcd.status == "OK"

    def test_quiet_still_updates_lcd(self, modem, fake_dte):
        modem.config.quiet = True
        modem.report(ResultCode.RING)
        assert fake_dte.output == ""
        assert modem.lcd.status == "RING"

    def test_line_ending_from_registers(self, modem, fake_dte):
        modem.registers.write(CR_CH, ord("!"))
        modem.report(ResultCode.OK)
        assert fake_dte.output == "OK!\n"


class TestHangup:
    """Tests for going on-hook."""

    def test_closes_call(self, modem, fake_conn):
        modem.state.connect(fake_conn, 38400)
        modem.pins.raise_pin(Pin.CD)
        assert modem.hangup() is ResultCode.NO_CARRIER
        assert fake_conn.closed
        assert modem.pins.read_pin(Pin.CD) is False
        assert modem.pins.led_is_lit(LED.OH) is False

    def test_idempotent(self, modem, fake_conn):
        modem.state.connect(fake_conn, 38400)
        modem.hangup()
        assert modem.hangup() is ResultCode.OK

    def test_stale_connection_is_left_alone(self, modem, fake_conn):
        """hangup(conn) does nothing once another call has replaced conn."""
        newer = FakeConnection()
        modem.state.connect(newer, 38400)
        modem.pins.raise_pin(Pin.CD)
        assert modem.hangup(fake_conn) is ResultCode.OK
        assert modem.state.conn is newer
        assert newer.closed is False
        assert modem.pins.read_pin(Pin.CD)
        assert modem.hangup(newer) is ResultCode.NO_CARRIER
        assert newer.closed

    def test_pinned_carrier_stays_up(self, modem):
        modem.config.dcd_pinned = True
        modem.pins.raise_pin(Pin.CD)
        modem.hangup()
        assert modem.pins.read_pin(Pin.CD)


class TestAnswer:
    def test_answer_given_call(self, modem, fake_conn):
        assert modem.answer(fake_conn) is ResultCode.CONNECT
        assert modem.state.dcd
        assert modem.state.connect_speed == 38400
        assert modem.pins.led_is_lit(LED.OH)

    def test_caller_already_gone(self, modem, fake_conn):
        fake_conn.close()
        assert modem.answer(fake_conn) is ResultCode.NO_CARRIER
        assert modem.state.on_hook


class TestFactoryReset:
    def test_clears_panel(self, modem):
        """AT&F blanks the LCD."""
        modem.lcd.printf(0, "DIAL 5551212")
        modem.report(ResultCode.BUSY)
        modem.factory_reset()
        assert modem.lcd.lines == ["", ""]


class TestPowerOn:
    def test_power_on_and_shutdown(self, modem, fake_dte):
        """Power-on loads profile 0, shows the banner and says OK."""
        modem.power_on()
        try:
            assert fake_dte.started
            assert fake_dte.output == "OK\r\n"
            assert modem.lcd.lines[0].strip() == "RetroHayes 1.0"
            assert modem.pins.read_pin(Pin.CTS)
        finally:
            modem.shutdown()
        assert fake_dte.started is False


class TestFormatState:
    def test_lines(self, modem):
        lines = modem.format_state()
        assert lines[0] == "Hook     : ON HOOK"
        assert "Registers:" in lines
        assert "Connection: none" in lines
        assert any(line.startswith("PINs:") for line in lines)

    def test_call_log_summary(self, modem, tmp_path):
        """With a call log the dump includes call totals."""
        modem.call_log = CallLog(str(tmp_path / "calls.db"))
        try:
            modem.call_log.start_call("outbound", "telnet", "bbs.test:23")
            lines = modem.format_state()
        finally:
            modem.call_log.close()
        assert any(line.startswith("Calls    : 1 total") for line in lines)

    def test_no_call_log(self, modem):
        assert not any(line.startswith("Calls") for line in modem.format_state())
