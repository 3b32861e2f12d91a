"""
Imperfect Abs — String & JSON Helpers
=======================================

Bounds-checked helpers the hub uses to read untrusted oracle responses
and to format oracle arguments.

    • extract_json_value  — flat key lookup in a JSON object string
    • parse_uint          — ASCII digits → unsigned int (uint256 bounded)
    • parse_int           — optional leading '-' + digits (int256 bounded)
    • format_coordinate   — fixed-point (×1e6) integer → "40.712800"
    • parse_coordinate    — inverse of format_coordinate

None of these index past the end of their input: every scan is guarded by
an explicit length check and slices are only taken inside the buffer.
"""

from __future__ import annotations

from scoring.rules import COORDINATE_SCALE, INT256_MAX, UINT256_MAX
from smart_contracts.imperfect_abs.errors import InvalidFormat


def extract_json_value(json: str, key: str) -> str:
    """Return the raw value of ``key`` in a flat JSON object string.

    Looks for the literal ``"key":``. A quoted value is returned without
    its quotes; a bare value runs up to the next ``,`` or ``}``.
    Returns ``""`` if the key is absent or the value is unterminated.
    """
    needle = f'"{key}":'
    data_len = len(json)
    needle_len = len(needle)
    if data_len < needle_len:
        return ""

    i = 0
    while i + needle_len <= data_len:
        if json[i : i + needle_len] != needle:
            i += 1
            continue

        start = i + needle_len
        while start < data_len and json[start] == " ":
            start += 1
        if start >= data_len:
            return ""

        if json[start] == '"':
            start += 1
            end = start
            while end < data_len and json[end] != '"':
                end += 1
            if end >= data_len:
                return ""
            return json[start:end]

        end = start
        while end < data_len and json[end] not in ",}":
            end += 1
        if end >= data_len:
            return ""
        return json[start:end].rstrip()

    return ""


def _accumulate(raw: str, digits: str, limit: int) -> int:
    result = 0
    for ch in digits:
        if not ("0" <= ch <= "9"):
            raise InvalidFormat(raw, f"non-digit character {ch!r}")
        result = result * 10 + (ord(ch) - 48)
        if result > limit:
            raise InvalidFormat(raw, "overflow")
    return result


def parse_uint(value: str) -> int:
    """Parse an unsigned decimal string, failing on overflow past uint256."""
    if not value:
        raise InvalidFormat(value, "empty string")
    return _accumulate(value, value, UINT256_MAX)


def parse_int(value: str) -> int:
    """Parse a signed decimal string within the int256 range."""
    if not value:
        raise InvalidFormat(value, "empty string")

    negative = value[0] == "-"
    digits = value[1:] if negative else value
    if not digits:
        raise InvalidFormat(value, "sign without digits")

    # |INT256_MIN| is one larger than INT256_MAX
    limit = INT256_MAX + 1 if negative else INT256_MAX
    magnitude = _accumulate(value, digits, limit)
    return -magnitude if negative else magnitude


def _decimals(scale: int) -> int:
    text = str(scale)
    if scale <= 0 or text.rstrip("0") != "1":
        raise ValueError(f"scale must be a positive power of ten, got {scale}")
    return len(text) - 1


def format_coordinate(value: int, scale: int = COORDINATE_SCALE) -> str:
    """Format a fixed-point coordinate, e.g. -74006000 → "-74.006000"."""
    decimals = _decimals(scale)
    negative = value < 0
    magnitude = -value if negative else value
    integer, fraction = divmod(magnitude, scale)
    sign = "-" if negative else ""
    return f"{sign}{integer}.{fraction:0{decimals}d}"


def parse_coordinate(text: str, scale: int = COORDINATE_SCALE) -> int:
    """Parse "40.712800" back into its fixed-point integer (40712800)."""
    decimals = _decimals(scale)
    if not text:
        raise InvalidFormat(text, "empty string")

    negative = text[0] == "-"
    body = text[1:] if negative else text
    integer_part, dot, fraction_part = body.partition(".")
    if not integer_part:
        raise InvalidFormat(text, "missing integer part")
    if dot and not fraction_part:
        raise InvalidFormat(text, "missing fractional digits")
    if len(fraction_part) > decimals:
        raise InvalidFormat(text, f"more than {decimals} fractional digits")

    integer = parse_uint(integer_part)
    fraction = parse_uint(fraction_part.ljust(decimals, "0")) if dot else 0
    magnitude = integer * scale + fraction
    return -magnitude if negative else magnitude
