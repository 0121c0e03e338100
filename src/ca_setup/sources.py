"""
Input slots handed to the validation engine.

A source is one of three explicit states:

    Provided     the bytes were read from `path`
    Unreadable   the file at `path` could not be read
    NotProvided  the caller never named a file (only valid for the CRL chain)

Keeping these as distinct types means "no CRL chain" (a warning) can never be
confused with "CRL chain could not be read" (an error) or "CRL chain is empty"
(an error found later by the parser).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Provided:
    path: str
    data: bytes


@dataclass(frozen=True)
class Unreadable:
    path: str
    reason: str = ""


@dataclass(frozen=True)
class NotProvided:
    pass


Source = Union[Provided, Unreadable]
OptionalSource = Union[Provided, Unreadable, NotProvided]


def read_source(path: Optional[str]) -> OptionalSource:
    """
    Read a file into a source slot without raising.

    Args:
        path (str | None): Path given on the command line, or None when the
            option was omitted.

    Returns:
        Provided | Unreadable | NotProvided: The state of the slot.
    """
    if path is None:
        return NotProvided()
    p = Path(path)
    if not p.is_file():     # Directories and missing files are both unreadable
        LOGGER.debug("Not a readable file: %s", p)
        return Unreadable(str(path), "not a file")
    try:
        return Provided(str(path), p.read_bytes())
    except OSError as e:
        LOGGER.debug("Failed to read %s: %s", p, e)
        return Unreadable(str(path), e.strerror or str(e))
