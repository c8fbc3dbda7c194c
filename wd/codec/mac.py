# wd/codec/mac.py

"""
BSSID text handling and 48-bit integer conversion.

Two BSSIDs are only ever compared after normalization. The canonical form is
six uppercase, zero-padded hex octets separated by colons.
"""

import re
from typing import Optional

from wd.errors import InvalidFormat

_NON_HEX = re.compile(r"[^0-9A-Fa-f]")
_SEPARATORS = re.compile(r"[:-]")
_HEX12 = re.compile(r"^[0-9A-Fa-f]{12}$")
_OCTET = re.compile(r"^[0-9A-Fa-f]{1,2}$")

MAX_MAC = (1 << 48) - 1


def _colonize(hex12: str) -> str:
    upper = hex12.upper()
    return ":".join(upper[i:i + 2] for i in range(0, 12, 2))


def normalize(text: str) -> Optional[str]:
    """
    Canonicalize a BSSID typed by a user.

    All non-hex characters are dropped; the result is ``None`` unless exactly
    twelve hex digits remain.

    Parameters
    ----------
    text
        BSSID in colon, hyphen or unseparated form.

    Returns
    -------
    Optional[str]
        Canonical "AA:BB:CC:DD:EE:FF" string, or None if malformed.
    """
    cleaned = _NON_HEX.sub("", text)
    if len(cleaned) != 12:
        return None
    return _colonize(cleaned)


def normalize_loose(text: str) -> str:
    """
    Comparison form that also accepts unpadded octets.

    The WLOC service reports BSSIDs such as "11:5:33:44:3d:62"; each octet is
    zero-padded before joining. Input that cannot be read as a MAC is returned
    uppercased so it still compares unequal to every real BSSID.
    """
    trimmed = text.strip()
    parts = _SEPARATORS.split(trimmed)
    if len(parts) == 6 and all(_OCTET.match(p) for p in parts):
        return ":".join(p.zfill(2) for p in parts).upper()
    if _HEX12.match(trimmed):
        return _colonize(trimmed)
    hex_only = _NON_HEX.sub("", trimmed)
    if len(hex_only) == 12:
        return _colonize(hex_only)
    return trimmed.upper()


def validate_and_normalize(text: str) -> str:
    """
    Normalize user input or raise `InvalidFormat` with a readable message.
    """
    trimmed = (text or "").strip()
    if not trimmed:
        raise InvalidFormat("BSSID cannot be empty")
    normalized = normalize(trimmed)
    if normalized is None:
        raise InvalidFormat(
            "Invalid BSSID format. Expected 12 hexadecimal digits "
            "(e.g., AA:BB:CC:DD:EE:FF)"
        )
    return normalized


def same_bssid(a: str, b: str) -> bool:
    return normalize_loose(a) == normalize_loose(b)


def decode_from_integer(value: int) -> str:
    """
    Convert a 48-bit integer MAC into its canonical string.
    """
    if value < 0 or value > MAX_MAC:
        raise InvalidFormat(f"MAC integer out of range: {value}")
    return _colonize(f"{value:012x}")


def encode_to_integer(text: str) -> int:
    """
    Convert a colon- or hyphen-separated MAC into a 48-bit integer.
    """
    hex_part = _SEPARATORS.sub("", text)
    if not _HEX12.match(hex_part):
        raise InvalidFormat("Invalid MAC address length")
    return int(hex_part, 16)


def format_for_url(bssid: str) -> str:
    return normalize_loose(bssid).replace(":", "-")


def parse_from_url(text: str) -> str:
    return normalize(text) or text
