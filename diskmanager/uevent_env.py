"""Parsing of block-device uevent messages."""

from __future__ import annotations

import re
from dataclasses import dataclass

from diskmanager.models import DiskManagerError

_UINT_MAX = 0xFFFFFFFF
_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)
_LINE_SEPARATORS = re.compile(r"[\n\0]")


class UeventParseError(DiskManagerError):
    """The uevent message lacks a required field."""


@dataclass
class UeventEnv:
    """Fields of one uevent message."""

    action: str = ""
    subsystem: str = ""
    dev_type: str = ""
    major: int = 0
    minor: int = 0
    dev_path: str = ""
    sys_path: str = ""
    dev_name: str = ""
    eject_request: bool = False

    def is_block_disk_event(self) -> bool:
        """Return True for a whole-disk event of the block subsystem."""
        return self.subsystem == "block" and self.dev_type == "disk"


def to_lower(text: str) -> str:
    """Lower-case the ASCII letters of text."""
    return text.translate(_ASCII_LOWER)


def _parse_uint(value: str) -> int:
    if not value or not value.isascii() or not value.isdigit():
        return 0
    number = int(value)
    return number if number <= _UINT_MAX else 0


def parse_uevent(raw: str) -> UeventEnv:
    """Parse "KEY=value" lines of a uevent into a UeventEnv.

    Raises UeventParseError if ACTION, SUBSYSTEM or DEVTYPE is missing.
    """
    env = UeventEnv()
    for line in _LINE_SEPARATORS.split(raw):
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = to_lower(key)
        if key == "action":
            env.action = to_lower(value)
        elif key == "subsystem":
            env.subsystem = to_lower(value)
        elif key == "devtype":
            env.dev_type = to_lower(value)
        elif key == "major":
            env.major = _parse_uint(value)
        elif key == "minor":
            env.minor = _parse_uint(value)
        elif key == "devpath":
            env.dev_path = value
        elif key == "devname":
            env.dev_name = value
        elif key == "disk_eject_request":
            env.eject_request = value == "1"

    env.sys_path = "/sys" + env.dev_path if env.dev_path else ""

    missing = [
        name
        for name, present in (
            ("ACTION", env.action),
            ("SUBSYSTEM", env.subsystem),
            ("DEVTYPE", env.dev_type),
        )
        if not present
    ]
    if missing:
        raise UeventParseError(f"uevent missing {', '.join(missing)}")
    return env