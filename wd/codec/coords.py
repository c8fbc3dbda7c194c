# wd/codec/coords.py

"""
Fixed-point coordinate conversion.

The two location services encode degrees as integers at different scales:
the tile protocol at 1e-7 and the WLOC protocol at 1e-8. Both scales were
observed on live responses, neither is documented upstream.
"""

from typing import Optional

TILE_SCALE_POW = -7
WLOC_SCALE_POW = -8

# (-180, -180) is what the WLOC service returns for "no location known"
SENTINEL_DEGREES = -180.0


def decode_coordinate(raw: int, scale_pow: int) -> float:
    """
    Convert a fixed-point integer into decimal degrees.

    Parameters
    ----------
    raw
        Integer coordinate as carried on the wire.
    scale_pow
        Power of ten applied to `raw` (``-7`` or ``-8``).

    Returns
    -------
    float
        Decimal degrees.
    """
    return raw * 10.0 ** scale_pow


def encode_coordinate(value: float, scale_pow: int) -> int:
    """
    Convert decimal degrees into a fixed-point integer, rounding to nearest.
    """
    return round(value * 10.0 ** -scale_pow)


def tile_coord_from_int(raw: int) -> float:
    return decode_coordinate(raw, TILE_SCALE_POW)


def int_from_tile_coord(value: float) -> int:
    return encode_coordinate(value, TILE_SCALE_POW)


def is_sentinel(raw_lat: Optional[int], raw_lng: Optional[int], scale_pow: int) -> bool:
    """
    True when the raw pair is exactly the "no location" marker at this scale.

    The comparison is done on integers so float noise from the scale factor
    cannot hide the marker.
    """
    if raw_lat is None or raw_lng is None:
        return False
    marker = encode_coordinate(SENTINEL_DEGREES, scale_pow)
    return raw_lat == marker and raw_lng == marker
