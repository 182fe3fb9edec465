"""
codes.py — NCM product-code normalization helpers.

Spreadsheets and the ComexStat API disagree on how codes are written
("8708.29.90", 8708299 with a dropped leading zero, "87082990 "). Every
consumer canonicalizes through normalize_code() so that dictionary rows,
measurement rows and cache keys compare by plain string equality.

Usage:
    from cgim_shared.codes import normalize_code

    normalize_code("8708.29.90")   # "87082990"
    normalize_code(2011000)        # "02011000"
    normalize_code("abc")          # None
    normalize_code("870829901")    # None (longer than 8 digits)
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from cgim_shared.constants import CODE_WIDTH

_NON_DIGITS = re.compile(r"\D")
_CANONICAL = re.compile(rf"^\d{{{CODE_WIDTH}}}$")


def normalize_code(raw: Any, *, truncate: bool = False) -> str | None:
    """
    Canonicalize a raw product code into an 8-digit string.

    Non-digit characters are stripped and the remainder is left-padded with
    zeros. Input without any digit yields None. Codes with more than 8
    digits are rejected unless ``truncate`` is set, in which case only the
    first 8 digits are kept.

    Args:
        raw:      Any value (str, int, float, None, ...).
        truncate: Keep the first 8 digits of over-long codes instead of
                  rejecting them.

    Returns:
        The canonical code, or None.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, float):
        # Excel hands integer-valued cells back as floats ("87082990.0")
        if raw != raw:
            return None
        if raw.is_integer():
            raw = int(raw)

    digits = _NON_DIGITS.sub("", str(raw))
    if not digits:
        return None

    padded = digits.zfill(CODE_WIDTH)
    if len(padded) > CODE_WIDTH:
        if not truncate:
            return None
        padded = padded[:CODE_WIDTH]
    return padded


def is_valid_code(value: Any) -> bool:
    """True when value is already a canonical 8-digit code."""
    return isinstance(value, str) and bool(_CANONICAL.match(value))


def normalize_codes(values: Iterable[Any]) -> list[str]:
    """Normalize, drop invalid entries and deduplicate preserving order."""
    seen: set[str] = set()
    out: list[str] = []
    for v in values:
        code = normalize_code(v)
        if code is None or code in seen:
            continue
        seen.add(code)
        out.append(code)
    return out


def chunked(codes: list[str], size: int) -> list[list[str]]:
    """Split a code list into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [codes[i : i + size] for i in range(0, len(codes), size)]
