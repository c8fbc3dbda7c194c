# wd/discovery/tiles.py

"""
Tile search: find the access point closest to a point by scanning tiles.

The centre tile at the configured zoom level is computed from the target,
then either its fixed 3x3 neighbourhood or an outward spiral of tiles is
requested from the tile service. Every device of every tile is measured
against the target and the nearest one wins. A spiral scan stops at
`cfg.max_tiles`, or once the ring just outside the one in which data first
appeared has been fully scanned, so a closer device across a tile border is
still found.
"""

from __future__ import annotations

from itertools import islice
from typing import Iterable, Iterator, List, Optional, Tuple

from wd.codec.tile import TileDevice
from wd.codec.wloc import Location
from wd.discovery.cancel import CancelToken
from wd.discovery.config import SPIRAL, SearchConfig
from wd.discovery.types import TileResult, WifiResult
from wd.errors import EndpointError, NetworkError, ProtocolError
from wd.tiles.morton import pack, to_tile
from wd.tiles.spiral import Spiral, neighborhood
from wd.transport.client import LocationClient
from wd.transport.endpoints import Region, select_region
from wd.utils.geo import haversine
from wd.utils.log import get_logger

logger = get_logger(__name__)


def candidate_tiles(lat: float, lng: float, cfg: SearchConfig) -> Iterator[Tuple[int, int]]:
    """
    Tiles to scan, in scan order, for a target point.

    Columns wrap around the antimeridian; rows outside the grid are dropped.
    """
    level = cfg.tile_level
    size = 2 ** level
    cx, cy = to_tile(lat, lng, level)
    if cfg.tile_mode == SPIRAL:
        tiles: Iterable[Tuple[int, int]] = islice(Spiral(cx, cy), cfg.max_tiles)
    else:
        tiles = neighborhood(cx, cy)
    for x, y in tiles:
        if 0 <= y < size:
            yield x % size, y


def _ring(x: int, y: int, cx: int, cy: int, size: int) -> int:
    # columns wrap, so measure them the short way round
    dx = abs(x - cx) % size
    return max(min(dx, size - dx), abs(y - cy))


def _scan_region(
    client: LocationClient,
    region: Region,
    lat: float,
    lng: float,
    cfg: SearchConfig,
    cancel: Optional[CancelToken],
) -> Tuple[TileResult, int]:
    target = (lat, lng)
    cx, cy = to_tile(lat, lng, cfg.tile_level)
    size = 2 ** cfg.tile_level
    closest: Optional[WifiResult] = None
    searched = with_data = total = decode_failures = 0
    data_ring: Optional[int] = None

    for x, y in candidate_tiles(lat, lng, cfg):
        ring = _ring(x, y, cx, cy, size)
        if cfg.tile_mode == SPIRAL and data_ring is not None and ring > data_ring + 1:
            break
        if cancel is not None:
            cancel.check()
        key = pack(x, y, cfg.tile_level)
        searched += 1
        timeout = cancel.remaining(client.timeout) if cancel is not None else None
        try:
            devices: List[TileDevice] = client.fetch_tile(region, key, timeout=timeout)
        except (EndpointError, NetworkError) as exc:
            logger.warning("Tile %d (%d,%d) on %s skipped: %s", key, x, y, region.value, exc)
            continue
        except ProtocolError as exc:
            logger.error("Tile %d (%d,%d) on %s undecodable: %s", key, x, y, region.value, exc)
            decode_failures += 1
            continue

        if not devices:
            continue
        with_data += 1
        total += len(devices)
        if data_ring is None:
            data_ring = ring
        for device in devices:
            distance = haversine(target, (device.latitude, device.longitude))
            if closest is None or distance < closest.distance_m:
                closest = WifiResult(
                    bssid=device.bssid,
                    location=Location(latitude=device.latitude, longitude=device.longitude),
                    region=region,
                    distance_m=distance,
                )

    logger.info(
        "Scanned %d tile(s) on %s: %d with data, %d access points",
        searched, region.value, with_data, total,
    )
    result = TileResult(
        closest=closest,
        tiles_searched=searched,
        tiles_with_data=with_data,
        total_found=total,
        region=region,
    )
    return result, decode_failures


def tile_search(
    client: LocationClient,
    lat: float,
    lng: float,
    cfg: Optional[SearchConfig] = None,
    region: Optional[Region] = None,
    cancel: Optional[CancelToken] = None,
) -> TileResult:
    """
    Find the access point nearest to (lat, lng) from the tile service.

    Failed tiles are skipped. When every tile of the first region is empty
    or failed, and `cfg.fallback` is set, the scan is repeated on the other
    region.

    Returns
    -------
    TileResult
        `closest` is None when no tile had data.

    Raises
    ------
    ProtocolError
        No tile had data and at least one tile could not be decoded.
    SearchCancelled
        The token fired between tiles.
    """
    cfg = cfg or SearchConfig.default()
    first = region or select_region(lat, lng)
    regions = [first, first.other()] if cfg.fallback else [first]

    result: Optional[TileResult] = None
    decode_failures = 0
    for attempt in regions:
        result, failures = _scan_region(client, attempt, lat, lng, cfg, cancel)
        decode_failures += failures
        if result.closest is not None:
            logger.info(
                "Closest access point %s is %.0fm from the target",
                result.closest.bssid, result.closest.distance_m,
            )
            return result

    if decode_failures:
        raise ProtocolError(f"{decode_failures} tile response(s) could not be decoded")
    return result
