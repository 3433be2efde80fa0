"""Tests for result_codes module."""

import pytest

from retro_hayes.config import ModemConfig
from retro_hayes.result_codes import ResultCode, filter_result, format_result, speed_to_result


class TestSpeedToResult:
    """Tests for CONNECT speed lookup."""

    @pytest.mark.parametrize("speed,expected", [
        (300, ResultCode.CONNECT_300),
        (2400, ResultCode.CONNECT_2400),
        (38400, ResultCode.CONNECT_38400),
        (115200, ResultCode.CONNECT_115200),
        (31337, ResultCode.CONNECT),
    ])
    def test_lookup(self, speed, expected):
        """Known speeds map to their code, others to bare CONNECT."""
        assert speed_to_result(speed) is expected


class TestFilterResult:
    """Tests for the reporter filter."""

    def test_quiet_suppresses(self):
        """Quiet mode reports nothing."""
        assert filter_result(ResultCode.OK, ModemConfig(quiet=True)) is None

    def test_connect_speed_substitution(self):
        """CONNECT becomes CONNECT <speed> when W is on."""
        assert filter_result(ResultCode.CONNECT, ModemConfig(), 38400) is ResultCode.CONNECT_38400
        assert filter_result(ResultCode.CONNECT, ModemConfig(connect_msg_speed=False), 38400) is ResultCode.CONNECT

    def test_busy_without_busy_detect(self):
        """BUSY is reported as OK when busy detect is off."""
        assert filter_result(ResultCode.BUSY, ModemConfig(busy_detect=False)) is ResultCode.OK
        assert filter_result(ResultCode.BUSY, ModemConfig()) is ResultCode.BUSY

    def test_extended_codes_off(self):
        """NO DIALTONE and NO ANSWER collapse to OK without extended codes."""
        config = ModemConfig(extended_result_codes=False)
        assert filter_result(ResultCode.NO_ANSWER, config) is ResultCode.OK
        assert filter_result(ResultCode.NO_DIALTONE, config) is ResultCode.OK
        assert filter_result(ResultCode.NO_CARRIER, config) is ResultCode.NO_CARRIER


class TestFormatResult:
    """Tests for the text rendering."""

    def test_verbose(self):
        """Verbose mode uses the text form."""
        assert format_result(ResultCode.NO_CARRIER, ModemConfig()) == "NO CARRIER"

    def test_numeric(self):
        """Non-verbose mode uses the number."""
        config = ModemConfig(verbose=False)
        assert format_result(ResultCode.OK, config) == "0"
        assert format_result(ResultCode.CONNECT, config, 38400) == "28"

    def test_quiet(self):
        """Quiet mode renders nothing."""
        assert format_result(ResultCode.OK, ModemConfig(quiet=True)) is None
