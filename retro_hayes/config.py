"""Configuration loading and dataclasses for RetroHayes."""

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class ModemConfig:
    """Live mode flags changed by AT commands and saved in stored profiles."""
    echo_in_cmd_mode: bool = True
    quiet: bool = False
    verbose: bool = True
    speaker_volume: int = 2
    speaker_mode: int = 1
    busy_detect: bool = True
    extended_result_codes: bool = True
    dcd_pinned: bool = False   # &C1: DCD held high regardless of carrier
    dsr_pinned: bool = False   # &S1: DSR held high regardless of carrier
    dtr_action: int = 0        # &D0-&D3
    connect_msg_speed: bool = True

    def reset(self) -> None:
        """Restore factory defaults in place."""
        self.update_from(ModemConfig())

    def copy(self) -> "ModemConfig":
        return ModemConfig(**asdict(self))

    def update_from(self, other: "ModemConfig") -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(other, f.name))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ModemConfig":
        """Build from a persisted mapping; unknown keys are ignored."""
        data = data or {}
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @property
    def x_level(self) -> int:
        """X command level implied by the result-code flags."""
        if not self.extended_result_codes:
            return 0
        if not self.busy_detect:
            return 1
        return 7

    def set_x_level(self, level: int) -> None:
        if level == 0:
            self.extended_result_codes = False
            self.busy_detect = False
        elif level in (1, 2):
            self.extended_result_codes = True
            self.busy_detect = False
        else:
            self.extended_result_codes = True
            self.busy_detect = True

    def summary(self) -> str:
        """One-line `&V` style rendering."""
        b = lambda flag: "1" if flag else "0"
        return (
            f"E{b(self.echo_in_cmd_mode)} L{self.speaker_volume} M{self.speaker_mode} "
            f"Q{b(self.quiet)} V{b(self.verbose)} W{b(self.connect_msg_speed)} X{self.x_level} "
            f"&C{b(self.dcd_pinned)} &D{self.dtr_action} &S{b(self.dsr_pinned)}"
        )


@dataclass
class GlobalConfig:
    """Application settings from the command line and optional YAML file."""
    serial_port: str = ""           # empty: use stdin/stdout
    speed: int = 115200
    phonebook: str = "./phonebook.json"
    profiles: str = "./profiles.yaml"
    telnet_port: int = 20000
    ssh_port: int = 22000
    keyfile: str = "./id_rsa"
    no_telnet: bool = False
    no_ssh: bool = False
    syslog: bool = False
    log_file: str = ""              # empty: stderr
    log_level: str = "INFO"
    gpio: bool = False
    sound: bool = False
    call_log_db: str = ""           # empty: call log disabled
    grafana_cloud_url: str = ""
    grafana_cloud_user: str = ""
    grafana_cloud_api_key: str = ""

    @property
    def log_target(self) -> str:
        if self.syslog:
            return "syslog"
        return self.log_file


def _parse_global_config(data: dict) -> GlobalConfig:
    """Parse global config from YAML data."""
    defaults = GlobalConfig()
    return GlobalConfig(
        serial_port=data.get("serial_port", defaults.serial_port),
        speed=int(data.get("speed", defaults.speed)),
        phonebook=data.get("phonebook", defaults.phonebook),
        profiles=data.get("profiles", defaults.profiles),
        telnet_port=int(data.get("telnet_port", defaults.telnet_port)),
        ssh_port=int(data.get("ssh_port", defaults.ssh_port)),
        keyfile=data.get("keyfile", defaults.keyfile),
        no_telnet=bool(data.get("no_telnet", defaults.no_telnet)),
        no_ssh=bool(data.get("no_ssh", defaults.no_ssh)),
        syslog=bool(data.get("syslog", defaults.syslog)),
        log_file=data.get("log_file", defaults.log_file),
        log_level=data.get("log_level", defaults.log_level),
        gpio=bool(data.get("gpio", defaults.gpio)),
        sound=bool(data.get("sound", defaults.sound)),
        call_log_db=data.get("call_log_db", defaults.call_log_db),
        grafana_cloud_url=data.get("grafana_cloud_url", ""),
        grafana_cloud_user=data.get("grafana_cloud_user", ""),
        grafana_cloud_api_key=data.get("grafana_cloud_api_key", ""),
    )


def load_config(config_path: str = "retro_hayes.yaml") -> GlobalConfig:
    """
    Load application settings from a YAML file.

    Args:
        config_path: Path to the YAML config file.

    Returns:
        GlobalConfig with file values over defaults.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        yaml.YAMLError: If config file is invalid YAML.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    gc = _parse_global_config(data.get("global", {}) or {})
    logger.info(f"Loaded config from {config_path}")
    return gc
