"""
Settings for a validation run, optionally loaded from a YAML file.

Example settings.yml:

    crl_check_all: true
    log_level: INFO
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class Settings:
    """
    Attributes:
        crl_check_all (bool): Check revocation of every certificate on the
            leaf's path, not only the leaf itself.
        log_level (str): Level used when the CLI is not given -v.
    """
    crl_check_all: bool = True
    log_level: str = "WARNING"

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level)


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise ValueError(msg)


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Load settings from a YAML mapping, falling back to defaults.

    Args:
        path (Path | None): Settings file. None returns the defaults.

    Returns:
        Settings: Parsed settings.

    Raises:
        ValueError: If the file is missing, not valid YAML, not a mapping,
            has unknown keys, or has values of the wrong type.
    """
    if path is None:
        return Settings()
    if not path.is_file():
        raise ValueError(f"Missing settings file: {path}")
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ValueError(f"{path} is not valid YAML: {e}")
    if data is None:    # empty file
        return Settings()
    _assert(isinstance(data, dict), f"{path} must contain a mapping")

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    _assert(not unknown, f"Unknown settings in {path}: {unknown}")

    if "crl_check_all" in data:
        _assert(isinstance(data["crl_check_all"], bool), "crl_check_all must be true or false")
    if "log_level" in data:
        level = data["log_level"]
        _assert(isinstance(level, str) and level.upper() in _LOG_LEVELS,
                f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        data["log_level"] = level.upper()
    return Settings(**data)
