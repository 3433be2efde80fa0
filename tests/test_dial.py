"""Tests for dial module."""

import threading
import time

import pytest
from unittest.mock import MagicMock

from retro_hayes.connection import Direction
from retro_hayes.errors import DialFailed, DialTimeout
from retro_hayes.result_codes import ResultCode
from retro_hayes.state import Mode

from conftest import FakeConnection


@pytest.fixture
def outbound():
    return FakeConnection(Direction.OUTBOUND, "example.test:23")


@pytest.fixture
def dialers(modem, outbound):
    """Replace the network dialers with mocks returning the outbound fake."""
    modem.dialer.telnet_dialer = MagicMock(return_value=outbound)
    modem.dialer.ssh_dialer = MagicMock(return_value=outbound)
    return modem.dialer


class TestDialByNumber:
    """Tests for phonebook dialing."""

    def test_dial_phonebook_telnet(self, modem, fake_dte, dialers, outbound):
        """ATDT5551212 calls the Telnet host from slot 2 and reports CONNECT 38400."""
        status = modem.dispatcher.run("ATDT5551212")
        modem.report(status)

        dialers.telnet_dialer.assert_called_once_with("example.test", dialers.timeout)
        assert status is ResultCode.CONNECT
        assert fake_dte.output == "CONNECT 38400\r\n"
        assert modem.state.mode is Mode.DATA
        assert modem.state.dcd
        assert modem.state.conn is outbound
        assert modem.state.connect_speed == 38400
        assert modem.supervisor.calls.get_nowait() is outbound

    def test_stay_in_command_mode(self, modem, dialers, outbound):
        """A trailing ; connects but stays in command mode with OK."""
        assert modem.dispatcher.run("ATD555-1212;") is ResultCode.OK
        assert modem.state.dcd
        assert modem.state.mode is Mode.COMMAND
        assert outbound.mode is Mode.COMMAND

    def test_stored_slot_ssh(self, modem, dialers):
        """DS5 uses the SSH credentials stored in slot 5."""
        assert modem.dispatcher.run("ATDS5") is ResultCode.CONNECT
        dialers.ssh_dialer.assert_called_once_with(
            "shell.example.test:2222", "Retro", "S3cret", dialers.timeout
        )

    def test_unknown_number(self, modem, dialers):
        """A number not in the phonebook is ERROR and the line is released."""
        assert modem.dispatcher.run("ATDT911") is ResultCode.ERROR
        dialers.telnet_dialer.assert_not_called()
        assert modem.state.on_hook
        assert modem.state.line_busy is False

    def test_redial(self, modem, dialers):
        """DL dials the last number again."""
        modem.dispatcher.run("ATDT5551212")
        modem.hangup()
        dialers.telnet_dialer.return_value = FakeConnection(Direction.OUTBOUND)
        assert modem.dispatcher.run("ATDL") is ResultCode.CONNECT
        assert dialers.telnet_dialer.call_count == 2
        assert modem.state.last_dialed == "DT5551212"

    def test_redial_without_history(self, modem, dialers):
        assert modem.dispatcher.run("ATDL") is ResultCode.ERROR

    def test_already_connected(self, modem, dialers, fake_conn):
        modem.state.connect(fake_conn, 38400, Mode.COMMAND)
        assert modem.dispatcher.run("ATDT5551212") is ResultCode.ERROR
        dialers.telnet_dialer.assert_not_called()


class TestDialDirect:
    """Tests for DH and DE."""

    def test_host(self, modem, dialers):
        assert modem.dispatcher.run("ATDH bbs.test:2323") is ResultCode.CONNECT
        dialers.telnet_dialer.assert_called_once_with("bbs.test:2323", dialers.timeout)

    def test_ssh(self, modem, dialers):
        assert modem.dispatcher.run("ATDEshell.test|Me|PassWord") is ResultCode.CONNECT
        dialers.ssh_dialer.assert_called_once_with("shell.test", "Me", "PassWord", dialers.timeout)

    def test_ssh_needs_three_fields(self, modem, dialers):
        assert modem.dispatcher.run("ATDEshell.test|Me") is ResultCode.ERROR
        dialers.ssh_dialer.assert_not_called()

    def test_bad_address(self, modem, dialers):
        """A bad port from the real dialer surfaces as ERROR."""
        dialers.telnet_dialer.side_effect = ValueError("Bad address")
        assert modem.dispatcher.run("ATDHhost:99999") is ResultCode.ERROR
        assert modem.state.on_hook


class TestDialFailures:
    """Tests for outcome mapping."""

    def test_failed_is_busy(self, modem, fake_dte, dialers):
        dialers.telnet_dialer.side_effect = DialFailed("refused")
        status = modem.dispatcher.run("ATDHbbs.test")
        assert status is ResultCode.BUSY
        assert modem.state.on_hook
        modem.report(status)
        assert fake_dte.output == "BUSY\r\n"

    def test_timeout_is_no_answer(self, modem, dialers):
        dialers.telnet_dialer.side_effect = DialTimeout("timed out")
        assert modem.dispatcher.run("ATDHbbs.test") is ResultCode.NO_ANSWER
        assert modem.state.on_hook

    def test_metrics_record_outcome(self, modem, dialers):
        modem.metrics = MagicMock()
        modem.dispatcher.run("ATDHbbs.test")
        modem.metrics.record_dial.assert_called_once_with("CONNECT")


class TestDialAbort:
    """Tests for aborting a dial from the DTE."""

    def test_keypress_aborts(self, modem, fake_dte, dialers):
        """Any byte from the DTE cancels the dial with OK; a late connection is dropped."""
        release = threading.Event()
        late = FakeConnection(Direction.OUTBOUND, "unreachable.test:23")

        def slow_dial(address, timeout):
            release.wait(5)
            return late

        dialers.telnet_dialer = slow_dial
        fake_dte.type("x")

        status = modem.dispatcher.run("ATDHunreachable.test")
        assert status is ResultCode.OK
        assert modem.state.on_hook
        assert modem.state.dcd is False
        assert modem.supervisor.calls.empty()

        release.set()
        for _ in range(200):
            if late.closed:
                break
            time.sleep(0.01)
        assert late.closed
        assert modem.supervisor.calls.empty()

    def test_terminal_gone_aborts(self, modem, fake_dte, dialers):
        """Losing the terminal mid-dial abandons the call instead of connecting it."""
        release = threading.Event()
        late = FakeConnection(Direction.OUTBOUND, "unreachable.test:23")

        def slow_dial(address, timeout):
            release.wait(5)
            return late

        dialers.telnet_dialer = slow_dial
        fake_dte.unplug()

        assert modem.dispatcher.run("ATDHunreachable.test") is ResultCode.OK
        assert modem.state.on_hook
        release.set()
        for _ in range(200):
            if late.closed:
                break
            time.sleep(0.01)
        assert late.closed
