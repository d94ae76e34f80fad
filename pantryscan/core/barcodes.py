"""Barcode normalisation helpers.

Scanners, the catalog and hand-entered products do not always agree on the
same representation of a retail barcode: UPC-A codes arrive with 12 digits
while the EAN-13 form of the same code carries a leading zero, and keyboard
wedge scanners sometimes leave spaces or dashes behind. Products are stored
under the canonical form returned by ``normalize_barcode`` and looked up under
every alias from ``barcode_aliases``.
"""

from __future__ import annotations

import re
from typing import List

__all__ = ["normalize_barcode", "barcode_aliases", "is_catalog_barcode"]


_SEPARATORS_RE = re.compile(r"[\s\-]+")
_DIGITS_RE = re.compile(r"^\d+$")


def _strip_separators(value: str) -> str:
    return _SEPARATORS_RE.sub("", value.strip())


def normalize_barcode(raw: str | None) -> str | None:
    """Return the canonical representation for a scanned barcode.

    * Removes whitespace and dashes.
    * Returns ``None`` if nothing is left or the value is not purely numeric.
    * Coerces 12-digit UPC-A codes into 13 digits by prefixing a leading zero.
    """

    if raw is None:
        return None

    cleaned = _strip_separators(raw)
    if not cleaned or not _DIGITS_RE.match(cleaned):
        return None

    if len(cleaned) == 12:
        cleaned = "0" + cleaned
    return cleaned


def barcode_aliases(raw: str | None) -> list[str]:
    """Return barcode variants that should be considered equivalent."""

    if raw is None:
        return []

    cleaned = _strip_separators(raw)
    if not cleaned:
        return []

    aliases: List[str] = []
    seen: set[str] = set()

    def add(candidate: str | None) -> None:
        if not candidate or candidate in seen:
            return
        seen.add(candidate)
        aliases.append(candidate)

    add(normalize_barcode(cleaned))

    if _DIGITS_RE.match(cleaned):
        add(cleaned)
        if len(cleaned) == 12:
            add("0" + cleaned)
        if len(cleaned) == 13 and cleaned.startswith("0"):
            add(cleaned[1:])

    return aliases


def is_catalog_barcode(value: str | None) -> bool:
    """Only purely numeric codes are worth a catalog round trip."""

    return bool(value) and bool(_DIGITS_RE.match(value))
