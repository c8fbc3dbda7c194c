# wd/tiles/morton.py

"""
Slippy-map tile projection and Morton (Z-order) tile keys.

The tile service addresses a tile by a single integer: a level marker bit at
``2**(2*level)`` followed by the interleaved bits of the tile column and row.
Column bits land on even positions and row bits on odd positions, matching
the server's own encoding.
"""

import math
from typing import Tuple

TILE_SEARCH_LEVEL = 13


def to_tile(lat: float, lng: float, level: int) -> Tuple[int, int]:
    """
    Project a coordinate onto the Web-Mercator tile grid.

    Parameters
    ----------
    lat
        Latitude in decimal degrees.
    lng
        Longitude in decimal degrees.
    level
        Zoom level; the grid is ``2**level`` tiles wide.

    Returns
    -------
    Tuple[int, int]
        (x, y) tile column and row.
    """
    n = 2 ** level
    x = math.floor((lng + 180.0) / 360.0 * n)
    lat_rad = math.radians(lat)
    y = math.floor(
        (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * n
    )
    return x, y


def from_tile(x: int, y: int, level: int) -> Tuple[float, float]:
    """
    North-west corner of a tile, as (lat, lng).
    """
    n = 2 ** level
    lng = x / n * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / n))))
    return lat, lng


def pack(x: int, y: int, level: int) -> int:
    """
    Interleave a tile's column and row into a Morton tile key.
    """
    column, row = x, y
    result = 1 << (2 * level)
    for i in range(level):
        if column & 0x1:
            result += 1 << (2 * i)
        if row & 0x1:
            result += 1 << (2 * i + 1)
        column >>= 1
        row >>= 1
    return result


def unpack(tile_key: int) -> Tuple[int, int, int]:
    """
    Inverse of `pack`: recover (x, y, level) from a tile key.
    """
    column = row = level = 0
    key = tile_key
    while key > 1:
        mask = 1 << level
        if key & 0x1:
            column |= mask
        if key & 0x2:
            row |= mask
        level += 1
        key >>= 2
    return column, row, level


def encode(lat: float, lng: float, level: int) -> int:
    x, y = to_tile(lat, lng, level)
    return pack(x, y, level)


def decode(tile_key: int) -> Tuple[float, float, int]:
    x, y, level = unpack(tile_key)
    lat, lng = from_tile(x, y, level)
    return lat, lng, level


def optimal_zoom_level(radius_m: float) -> int:
    """
    Pick a zoom level whose tiles roughly match a search radius in metres.

    Level 16 tiles are ~610 m wide at the equator; each level halves that.
    """
    if radius_m > 1000:
        return 16
    if radius_m > 500:
        return 17
    if radius_m > 250:
        return 18
    if radius_m > 125:
        return 19
    return 20
