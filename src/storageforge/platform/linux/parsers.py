"""
Linux output parsers.

Parsers for blkid and mdadm output and for human-entered sizes. These are
the only places where command output text is interpreted.
"""

from __future__ import annotations

import re

DEFAULT_SWAP_MIB = 2048

_UUID_RE = re.compile(r"^[0-9A-Fa-f-]{8,36}$")


def parse_uuid_value(output: str) -> str | None:
    """
    Parse `blkid -s UUID -o value` output.

    Returns None when blkid printed nothing usable.
    """
    for line in output.strip().splitlines():
        value = line.strip()
        if value and _UUID_RE.match(value):
            return value
    return None


def parse_mdadm_scan(output: str) -> dict[str, dict[str, str]]:
    """
    Parse `mdadm --detail --scan` output.

    Example input:
    ARRAY /dev/md/DATA metadata=1.2 name=host:DATA UUID=3b8f...
    """
    arrays: dict[str, dict[str, str]] = {}

    for line in output.strip().splitlines():
        fields = line.split()
        if len(fields) < 2 or fields[0] != "ARRAY":
            continue

        attrs: dict[str, str] = {}
        for item in fields[2:]:
            if "=" in item:
                key, value = item.split("=", 1)
                attrs[key.lower()] = value
        arrays[fields[1]] = attrs

    return arrays


def parse_size_mib(value: str | int, default: int = DEFAULT_SWAP_MIB) -> int:
    """
    Convert a human size such as "4G", "2GB" or "512M" to MiB.

    A bare number is taken as MiB. Anything unparseable falls back to the
    default rather than guessing.
    """
    if isinstance(value, int):
        return value

    match = re.fullmatch(r"\s*(\d+)\s*([GgMm])?[Bb]?\s*", value)
    if not match:
        return default

    number, unit = int(match.group(1)), (match.group(2) or "M").upper()
    return number * 1024 if unit == "G" else number
