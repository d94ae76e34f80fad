"""Scanner serial numbers.

Serials are printed on the device and double as the credential it presents
with every scan: ``SCN-`` followed by 8 and then 4 upper-case alphanumerics,
e.g. ``SCN-AAAAAAAA-1111``.
"""

from __future__ import annotations

import re
import secrets
import string

SERIAL_PATTERN = re.compile(r"^SCN-[A-Z0-9]{8}-[A-Z0-9]{4}$")
_ALPHABET = string.ascii_uppercase + string.digits


def normalize_serial(raw: str | None) -> str | None:
    """Upper-case and trim a serial; ``None`` if it does not match the format."""

    if raw is None:
        return None
    candidate = raw.strip().upper()
    if not SERIAL_PATTERN.match(candidate):
        return None
    return candidate


def generate_serial() -> str:
    part1 = "".join(secrets.choice(_ALPHABET) for _ in range(8))
    part2 = "".join(secrets.choice(_ALPHABET) for _ in range(4))
    return f"SCN-{part1}-{part2}"
