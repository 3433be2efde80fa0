"""Human-readable record files for the phonebook and stored profiles."""

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from .errors import PersistError

logger = logging.getLogger(__name__)


def load_record(path: str) -> Any:
    """
    Read a JSON or YAML record.

    YAML is a superset of JSON, so one loader handles both suffixes.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        PersistError: If the file can't be read or parsed.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Record file not found: {path}")
    try:
        with open(p, "r") as f:
            return yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise PersistError(f"Can't read {path}: {e}") from e


def save_record(path: str, data: Any) -> None:
    """
    Write a record, as JSON for a `.json` path and YAML otherwise.

    Raises:
        PersistError: If the file can't be written.
    """
    p = Path(path)
    try:
        with open(p, "w") as f:
            if p.suffix.lower() == ".json":
                json.dump(data, f, indent=2)
                f.write("\n")
            else:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise PersistError(f"Can't write {path}: {e}") from e
    logger.debug(f"Wrote {path}")
