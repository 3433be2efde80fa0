#!/usr/bin/env python3
"""
RetroHayes - Hayes modem emulator

Presents a Hayes AT command set on a serial port (or the console) and
carries calls over Telnet and SSH.
"""

import argparse
import logging
import signal
import sys
from pathlib import Path

import serial

from retro_hayes.call_log import CallLog
from retro_hayes.config import GlobalConfig, load_config
from retro_hayes.dte import DTE, open_port
from retro_hayes.hardware import get_pins
from retro_hayes.hayes import Modem
from retro_hayes.lcd import StatusLCD
from retro_hayes.logging_config import setup_logging
from retro_hayes.metrics import Metrics
from retro_hayes.phonebook import Phonebook
from retro_hayes.profiles import StoredProfiles
from retro_hayes.tones import get_tones

logger = logging.getLogger(__name__)


def _get_version():
    """Get version from importlib.metadata, falling back to pyproject.toml."""
    try:
        from importlib.metadata import version as pkg_version
        return pkg_version("retro-hayes")
    except Exception:
        pass
    try:
        import re
        pyproject = Path(__file__).parent / "pyproject.toml"
        text = pyproject.read_text()
        match = re.search(r'^version\s*=\s*"([^"]+)"', text, re.MULTILINE)
        if match:
            return match.group(1)
    except Exception:
        pass
    return "unknown"


__version__ = _get_version()


def build_modem(gc: GlobalConfig, port, debug: bool = False) -> Modem:
    """Wire the modem up from application settings and an open DTE port."""
    call_log = CallLog(gc.call_log_db) if gc.call_log_db else None
    metrics = Metrics(
        url=gc.grafana_cloud_url,
        user=gc.grafana_cloud_user,
        api_key=gc.grafana_cloud_api_key,
    )
    modem = Modem(
        dte=DTE(port, debug=debug),
        pins=get_pins(gc.gpio),
        lcd=StatusLCD(),
        tones=None,
        phonebook=Phonebook(gc.phonebook),
        profiles=StoredProfiles(gc.profiles),
        metrics=metrics,
        call_log=call_log,
        log_level=getattr(logging, gc.log_level.upper(), logging.INFO),
    )
    modem.tones = get_tones(gc.sound, speaker_volume=lambda: modem.config.speaker_volume)
    return modem


def main_loop(gc: GlobalConfig, debug: bool = False) -> None:
    """
    Run the modem until interrupted.

    Args:
        gc: Application settings.
        debug: If True, log at DEBUG and echo the log to stderr.
    """
    # Handle SIGTERM (from systemd stop) the same as SIGINT
    def _handle_sigterm(signum, frame):
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, _handle_sigterm)

    level = "DEBUG" if debug else gc.log_level
    setup_logging(log_target=gc.log_target, level=level, console=debug)
    logger.info(f"RetroHayes v{__version__} starting...")
    logger.info(f"Cmdline: {' '.join(sys.argv)}")

    try:
        port = open_port(gc.serial_port, gc.speed)
    except serial.SerialException as e:
        logger.error(f"Can't open serial port {gc.serial_port}: {e}")
        sys.exit(1)

    modem = build_modem(gc, port, debug=debug)
    signal.signal(signal.SIGQUIT, lambda signum, frame: modem.log_state())

    try:
        modem.power_on(
            telnet_port=None if gc.no_telnet else gc.telnet_port,
            ssh_port=None if gc.no_ssh else gc.ssh_port,
            keyfile=gc.keyfile,
        )
        modem.run()
    except KeyboardInterrupt:
        logger.info("RetroHayes shutting down.")
    finally:
        modem.shutdown()
        port.close()
    sys.exit(0)


def _apply_args(gc: GlobalConfig, args: argparse.Namespace) -> GlobalConfig:
    """Command line flags that were given win over the config file."""
    overrides = {
        "serial_port": args.serial,
        "speed": args.speed,
        "phonebook": args.addressbook,
        "profiles": args.profiles,
        "telnet_port": args.telnetport,
        "ssh_port": args.sshport,
        "keyfile": args.keyfile,
        "log_file": args.logfile,
        "call_log_db": args.calllog,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(gc, name, value)
    for name, flag in (("syslog", args.syslog), ("no_telnet", args.notelnet),
                       ("no_ssh", args.nossh), ("gpio", args.gpio), ("sound", args.sound)):
        if flag:
            setattr(gc, name, True)
    return gc


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="RetroHayes - Hayes modem emulator")
    parser.add_argument("--syslog", action="store_true", help="Log to syslog")
    parser.add_argument("--logfile", help="Log to this file (default: stderr)")
    parser.add_argument("--serial", help="Serial device for the DTE (default: stdin/stdout)")
    parser.add_argument("--speed", type=int, help="Serial port speed (default: 115200)")
    parser.add_argument("--addressbook", help="Phonebook file (default: ./phonebook.json)")
    parser.add_argument("--profiles", help="Stored profile file (default: ./profiles.yaml)")
    parser.add_argument("--telnetport", type=int, help="Telnet listener port (default: 20000)")
    parser.add_argument("--sshport", type=int, help="SSH listener port (default: 22000)")
    parser.add_argument("--keyfile", help="SSH host key (default: ./id_rsa)")
    parser.add_argument("--notelnet", action="store_true", help="Don't listen for Telnet calls")
    parser.add_argument("--nossh", action="store_true", help="Don't listen for SSH calls")
    parser.add_argument("--gpio", action="store_true", help="Drive Raspberry Pi GPIO pins and LEDs")
    parser.add_argument("--sound", action="store_true", help="Play dial, ring and busy tones")
    parser.add_argument("--calllog", help="SQLite call log database (default: disabled)")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--debug", action="store_true", help="Debug logging, echoed to stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def cli():
    """CLI entry point for the retro-hayes console script."""
    args = parse_args()
    gc = load_config(args.config) if args.config else GlobalConfig()
    main_loop(_apply_args(gc, args), debug=args.debug)


if __name__ == "__main__":
    cli()
