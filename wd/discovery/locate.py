# wd/discovery/locate.py

from __future__ import annotations

from typing import Optional

from wd.discovery.cancel import CancelToken
from wd.discovery.config import SearchConfig
from wd.discovery.proximity import proximity_search
from wd.discovery.tiles import tile_search
from wd.discovery.types import LocationSearchResult
from wd.errors import InvalidFormat, NotFound
from wd.transport.client import LocationClient
from wd.utils.geo import valid_coordinate
from wd.utils.log import get_logger

logger = get_logger(__name__)


def location_search(
    client: LocationClient,
    lat: float,
    lng: float,
    cfg: Optional[SearchConfig] = None,
    seed_bssid: Optional[str] = None,
    cancel: Optional[CancelToken] = None,
) -> LocationSearchResult:
    """
    Find access points around a point.

    Without a seed BSSID a tile search supplies one; the proximity walk then
    grows the result set from it. When the walk yields nothing within range,
    the tile hit itself is returned if it lies within range.

    Raises
    ------
    InvalidFormat
        Coordinates out of range.
    NotFound
        Neither the tile scan nor the walk produced an access point in range.
    """
    cfg = cfg or SearchConfig.default()
    if not valid_coordinate(lat, lng):
        raise InvalidFormat("Invalid coordinates")

    seed = None
    if seed_bssid is None:
        seed = tile_search(client, lat, lng, cfg, cancel=cancel)
        if seed.closest is None:
            raise NotFound("No access points found in this area")
        seed_bssid = seed.closest.bssid
        logger.info("Tile search seeded the walk with %s", seed_bssid)

    walk = proximity_search(client, seed_bssid, lat, lng, cfg, cancel=cancel)
    if not walk.results:
        hit = seed.closest if seed is not None else None
        if hit is None or hit.distance_m > cfg.max_distance_m:
            raise NotFound("No access points found near this location")
        walk.results = [hit]
    return LocationSearchResult(seed=seed, proximity=walk)
