"""
Parsing helpers for numeric fields that cross the explorer/RPC boundary.

Explorer responses mix JSON numbers, decimal strings and hex strings for the
same logical field depending on endpoint and version, so every value is parsed
and validated before it is used in arithmetic.
"""

from typing import Any, Optional


def strip_hex_prefix(value: str) -> str:
    """Remove a leading ``0x``/``0X`` prefix if present."""
    if value[:2].lower() == "0x":
        return value[2:]
    return value


def parse_int(value: Any, allow_negative: bool = False) -> Optional[int]:
    """
    Parse an untrusted integer field.
    
    Accepts ints, integral floats, decimal strings and ``0x``-prefixed hex
    strings. Returns None for anything that is not a well-formed integer.
    """
    if value is None or isinstance(value, bool):
        return None
    
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        result = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            if text[:2].lower() == "0x":
                result = int(text[2:], 16)
            else:
                result = int(text, 10)
        except ValueError:
            return None
    else:
        return None
    
    if result < 0 and not allow_negative:
        return None
    return result


def parse_hex_word(data: str, index: int) -> int:
    """
    Decode the ``index``-th 32-byte big-endian word of a hex blob.
    
    Raises:
        ValueError: If the blob is too short or contains non-hex characters
    """
    clean = strip_hex_prefix(data)
    start = index * 64
    word = clean[start:start + 64]
    if len(word) != 64:
        raise ValueError(
            f"Expected 64 hex chars for word {index}, got {len(word)}"
        )
    return int(word, 16)


def address_from_word(result: str) -> str:
    """Extract a 20-byte address from a left-padded 32-byte return value."""
    clean = strip_hex_prefix(result or "")
    if len(clean) < 40:
        raise ValueError(f"Return value too short to hold an address: {result!r}")
    return "0x" + clean[-40:].lower()
