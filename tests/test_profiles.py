"""Tests for profiles and storage modules."""

import pytest

from retro_hayes.config import ModemConfig
from retro_hayes.errors import PersistError, UnsupportedError
from retro_hayes.profiles import StoredProfiles
from retro_hayes.registers import AUTO_ANSWER, Registers
from retro_hayes.storage import load_record, save_record


class TestStorage:
    """Tests for record load/save."""

    def test_json_round_trip(self, tmp_path):
        """A .json path is written as JSON and reads back."""
        path = tmp_path / "record.json"
        save_record(str(path), [{"slot": 1, "phone": "123"}])
        assert path.read_text().startswith("[")
        assert load_record(str(path)) == [{"slot": 1, "phone": "123"}]

    def test_yaml_round_trip(self, tmp_path):
        """Other suffixes are written as YAML."""
        path = tmp_path / "record.yaml"
        save_record(str(path), {"power_up_config": 1})
        assert "power_up_config: 1" in path.read_text()
        assert load_record(str(path)) == {"power_up_config": 1}

    def test_missing_file(self, tmp_path):
        """A missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_record(str(tmp_path / "nope.yaml"))

    def test_corrupt_file(self, tmp_path):
        """Unparseable content raises PersistError."""
        path = tmp_path / "bad.yaml"
        path.write_text("key: [unclosed\n")
        with pytest.raises(PersistError):
            load_record(str(path))

    def test_unwritable_path(self, tmp_path):
        """A write into a missing directory raises PersistError."""
        with pytest.raises(PersistError):
            save_record(str(tmp_path / "missing" / "x.json"), [])


class TestStoredProfiles:
    """Tests for the two stored profile slots."""

    def test_defaults_without_file(self, tmp_path):
        """A missing file leaves factory defaults."""
        profiles = StoredProfiles(str(tmp_path / "profiles.yaml"))
        profiles.load()
        config, regs = profiles.switch(1)
        assert config == ModemConfig()
        assert regs == Registers()
        assert profiles.power_up_config == 0

    def test_write_active_persists(self, tmp_path):
        """&W writes through and survives a reload."""
        path = str(tmp_path / "profiles.yaml")
        profiles = StoredProfiles(path)
        config = ModemConfig(verbose=False, dtr_action=2)
        regs = Registers()
        regs.write(AUTO_ANSWER, 2)
        profiles.write_active(1, config, regs)
        profiles.set_power_up(1)

        reloaded = StoredProfiles(path)
        reloaded.load()
        assert reloaded.power_up_config == 1
        stored_config, stored_regs = reloaded.switch(1)
        assert stored_config == config
        assert stored_regs == regs

    def test_slot_is_a_snapshot(self, tmp_path):
        """Later changes to the live values don't leak into the slot."""
        profiles = StoredProfiles(str(tmp_path / "profiles.yaml"))
        config = ModemConfig()
        profiles.write_active(0, config, Registers())
        config.quiet = True
        assert profiles.switch(0)[0].quiet is False

    def test_bad_slot(self, tmp_path):
        """Only slots 0 and 1 exist."""
        profiles = StoredProfiles(str(tmp_path / "profiles.yaml"))
        with pytest.raises(UnsupportedError):
            profiles.switch(2)
        with pytest.raises(UnsupportedError):
            profiles.set_power_up(2)

    def test_failed_save_rolls_back(self, tmp_path):
        """A save that can't be written leaves both slots and the power-up choice alone."""
        profiles = StoredProfiles(str(tmp_path / "missing" / "profiles.yaml"))
        with pytest.raises(PersistError):
            profiles.write_active(1, ModemConfig(quiet=True), Registers())
        assert profiles.switch(1)[0].quiet is False
        with pytest.raises(PersistError):
            profiles.set_power_up(1)
        assert profiles.power_up_config == 0

    def test_corrupt_file_falls_back(self, tmp_path):
        """A bad record leaves defaults instead of failing."""
        path = tmp_path / "profiles.yaml"
        path.write_text("profiles: [{registers: {'0': 999}}]\n")
        profiles = StoredProfiles(str(path))
        profiles.load()
        assert profiles.switch(0)[1] == Registers()

    def test_format_lines(self, tmp_path):
        """Both slots are listed with the power-up marker."""
        profiles = StoredProfiles(str(tmp_path / "profiles.yaml"))
        text = str(profiles)
        assert "STORED PROFILE 0: (power-up)" in text
        assert "STORED PROFILE 1:" in text
