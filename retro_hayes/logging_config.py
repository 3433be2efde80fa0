"""Logging configuration for RetroHayes."""

import logging
import logging.handlers
import sys


def setup_logging(log_target: str = "", level: str = "INFO", console: bool = False) -> None:
    """
    Configure logging to syslog, a file or stderr.

    Args:
        log_target: "syslog" for system syslog, a file path for file logging,
            or empty for stderr.
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        console: If True, also log to stderr alongside a syslog or file sink.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if log_target == "syslog":
        syslog_handler = logging.handlers.SysLogHandler(address="/dev/log")
        syslog_formatter = logging.Formatter(
            "retro-hayes: [%(levelname)s] %(name)s: %(message)s"
        )
        syslog_handler.setLevel(log_level)
        syslog_handler.setFormatter(syslog_formatter)
        root_logger.addHandler(syslog_handler)
    elif log_target:
        file_handler = logging.FileHandler(log_target)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # stdout belongs to the DTE when running on the console
    if console or not log_target:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    logging.info(f"Logging initialized: level={level}, target={log_target or 'stderr'}")


def set_debug(enabled: bool, default_level: int = logging.INFO) -> None:
    """Switch the root logger and its handlers between DEBUG and the configured level."""
    level = logging.DEBUG if enabled else default_level
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)
    logging.info(f"Debug logging {'enabled' if enabled else 'disabled'}")
