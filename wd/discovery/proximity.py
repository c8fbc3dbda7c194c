# wd/discovery/proximity.py

"""
Proximity search: walk the service's neighbour graph towards a target point.

Each round asks the WLOC service for every access point it lists around the
current frontier BSSID, records the new ones, and moves the frontier to the
newly seen access point nearest the target. The walk ends when a round finds
nothing closer (converged), when a round fails or comes back empty, or when
the iteration ceiling is reached (stopped early). Nothing guarantees
convergence, so the ceiling is always enforced.

All rounds of one walk go to a single region picked from the target's
coordinates; there is no per-round fallback.
"""

from __future__ import annotations

import math
from typing import Optional

from wd.codec.mac import validate_and_normalize
from wd.codec.wloc import RETURN_ALL, WlocRequest
from wd.discovery.cancel import CancelToken
from wd.discovery.config import SearchConfig
from wd.discovery.types import AccumulatedResultSet, ProximityResult, WifiResult
from wd.errors import EndpointError, NetworkError
from wd.transport.client import LocationClient
from wd.transport.endpoints import Region, select_region
from wd.utils.geo import haversine
from wd.utils.log import get_logger

logger = get_logger(__name__)


def proximity_search(
    client: LocationClient,
    seed_bssid: str,
    target_lat: float,
    target_lng: float,
    cfg: Optional[SearchConfig] = None,
    region: Optional[Region] = None,
    cancel: Optional[CancelToken] = None,
) -> ProximityResult:
    """
    Collect access points around a target by walking from a seed BSSID.

    Parameters
    ----------
    client
        Transport client.
    seed_bssid
        Starting BSSID, typically the closest hit of a tile search.
    target_lat, target_lng
        Point the walk moves towards, in decimal degrees.
    cfg
        Iteration ceiling and result radius.
    region
        Region to query; picked from the target when omitted.
    cancel
        Optional cancellation token, checked before every round.

    Returns
    -------
    ProximityResult
        Access points within `cfg.max_distance_m`, nearest first.

    Raises
    ------
    InvalidFormat
        Malformed seed BSSID.
    ProtocolError
        A round returned an undecodable body.
    SearchCancelled
        The token fired between rounds.
    """
    cfg = cfg or SearchConfig.default()
    region = region or select_region(target_lat, target_lng)
    target = (target_lat, target_lng)

    accumulated = AccumulatedResultSet()
    frontier: Optional[str] = validate_and_normalize(seed_bssid)
    previous: Optional[str] = None
    best_distance = math.inf
    outcome = ProximityResult()

    logger.info(
        "Proximity walk from %s towards %.6f,%.6f on %s",
        frontier, target_lat, target_lng, region.value,
    )

    while frontier is not None and frontier != previous:
        if outcome.iterations >= cfg.max_iterations:
            outcome.stopped_early = True
            logger.warning(
                "Proximity walk stopped at the %d-round ceiling", cfg.max_iterations
            )
            break
        if cancel is not None:
            cancel.check()

        previous = frontier
        outcome.iterations += 1
        timeout = cancel.remaining(client.timeout) if cancel is not None else None
        request = WlocRequest(wifi_devices=[frontier], num_wifi_results=RETURN_ALL)
        try:
            response = client.query(region, request, timeout=timeout)
        except (EndpointError, NetworkError) as exc:
            logger.warning("Round %d for %s failed: %s", outcome.iterations, frontier, exc)
            break

        devices = response.located_devices()
        if not devices:
            logger.info("No located neighbours for %s, stopping", frontier)
            break

        round_best: Optional[str] = None
        for device in devices:
            if device.bssid in accumulated:
                continue
            distance = haversine(
                target, (device.location.latitude, device.location.longitude)
            )
            accumulated.add(
                WifiResult(
                    bssid=device.bssid,
                    location=device.location,
                    region=region,
                    distance_m=distance,
                )
            )
            if distance < best_distance:
                best_distance = distance
                round_best = device.bssid

        if round_best is not None and round_best != frontier:
            frontier = round_best
            logger.debug(
                "Round %d: closer access point %s at %.0fm",
                outcome.iterations, frontier, best_distance,
            )
        else:
            outcome.converged = True
            logger.info(
                "No closer access point after %d round(s); nearest is %.0fm away",
                outcome.iterations, best_distance,
            )

    outcome.total_found = len(accumulated)
    outcome.results = accumulated.sorted_by_distance(cfg.max_distance_m)
    return outcome
