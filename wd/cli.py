#!/usr/bin/env python3
"""
CLI entry point for the wd WiFi / cell-tower discovery toolkit.

Defines the following commands:
  wd bssid BSSID
  wd cell MCC MNC CELL_ID TAC [--all]
  wd tile LAT LNG [--spiral] [--max-tiles N]
  wd proximity SEED LAT LNG [--max-iterations N] [--max-distance M]
  wd locate LAT LNG [--seed BSSID] [--wide]
  wd serve [--host HOST] [--port 8000]
  wd version
"""

import json
import sys
from argparse import ArgumentParser, ArgumentTypeError, Namespace
from importlib.metadata import PackageNotFoundError, version as _get_version

import uvicorn

from wd.discovery.cancel import CancelToken
from wd.discovery.config import GRID, SPIRAL, SearchConfig
from wd.discovery.direct import lookup_bssid, lookup_cell_tower
from wd.discovery.locate import location_search
from wd.discovery.proximity import proximity_search
from wd.discovery.tiles import tile_search
from wd.errors import (
    DiscoveryError,
    EndpointError,
    InvalidFormat,
    NetworkError,
    NotFound,
    ProtocolError,
    SearchCancelled,
)
from wd.server import create_app
from wd.transport.client import LocationClient
from wd.utils.log import get_logger
from wd.utils.validate import CellOut, TileOut, WifiOut

logger = get_logger(__name__)

# exit code and user-facing hint per error class
_EXIT = [
    (InvalidFormat, 2, "check the identifier or coordinates you entered"),
    (NotFound, 3, "not in the location database"),
    (ProtocolError, 4, "the upstream response format may have changed"),
    (EndpointError, 5, "the location service rejected the request"),
    (NetworkError, 6, "check your network connection"),
    (SearchCancelled, 7, "the search ran out of time"),
]


def _emit(payload) -> None:
    print(json.dumps(payload, indent=2))


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, mode="json")


def bssid(client: LocationClient, value: str, cancel: CancelToken) -> None:
    """
    Look up a single BSSID.
    """
    logger.info("Lookup: bssid=%s", value)
    result = lookup_bssid(client, value, cancel=cancel)
    _emit(_dump(WifiOut.from_result(result)))


def cell(
    client: LocationClient,
    mcc: int,
    mnc: int,
    cell_id: int,
    tac_id: int,
    return_all: bool,
    cancel: CancelToken,
) -> None:
    """
    Look up an LTE cell tower.
    """
    logger.info("Cell: mcc=%d mnc=%d cell=%d tac=%d all=%s", mcc, mnc, cell_id, tac_id, return_all)
    results = lookup_cell_tower(
        client, mcc, mnc, cell_id, tac_id, return_all=return_all, cancel=cancel
    )
    _emit([_dump(CellOut.from_result(r)) for r in results])


def tile(client: LocationClient, lat: float, lng: float, cfg: SearchConfig, cancel: CancelToken) -> None:
    """
    Find the access point closest to a point from the tile service.

    Parameters
    ----------
    lat, lng
        Target point in decimal degrees.
    cfg
        Tile mode and tile ceiling.
    """
    logger.info("Tile: lat=%f lng=%f mode=%s", lat, lng, cfg.tile_mode)
    result = tile_search(client, lat, lng, cfg, cancel=cancel)
    if result.closest is None:
        raise NotFound("No access points found in this area")
    _emit(_dump(TileOut.from_result(result)))


def proximity(
    client: LocationClient,
    seed: str,
    lat: float,
    lng: float,
    cfg: SearchConfig,
    cancel: CancelToken,
) -> None:
    """
    Walk the neighbour graph from `seed` towards (lat, lng).
    """
    logger.info("Proximity: seed=%s lat=%f lng=%f", seed, lat, lng)
    walk = proximity_search(client, seed, lat, lng, cfg, cancel=cancel)
    if walk.stopped_early:
        logger.warning("Stopped after %d rounds without converging", walk.iterations)
    _emit({
        "results": [_dump(WifiOut.from_result(r)) for r in walk.results],
        "totalFound": walk.total_found,
        "iterations": walk.iterations,
        "converged": walk.converged,
        "stoppedEarly": walk.stopped_early,
    })


def locate(
    client: LocationClient,
    lat: float,
    lng: float,
    seed: str | None,
    cfg: SearchConfig,
    cancel: CancelToken,
) -> None:
    """
    Tile search for a seed, then a proximity walk from it.
    """
    logger.info("Locate: lat=%f lng=%f seed=%s", lat, lng, seed)
    found = location_search(client, lat, lng, cfg, seed_bssid=seed, cancel=cancel)
    _emit([_dump(WifiOut.from_result(r)) for r in found.proximity.results])


def serve(host: str, port: int) -> None:
    """
    Spin up FastAPI+Uvicorn to serve the lookup API.

    Parameters
    ----------
    host
        Interface to bind.
    port
        Port on which to serve HTTP.
    """
    logger.info("Serve: host=%s, port=%d", host, port)
    app = create_app()
    uvicorn.run(app, host=host, port=port)


def version() -> None:
    """
    Print the installed wd package version.
    """
    try:
        ver = _get_version("wd")
    except PackageNotFoundError:
        ver = "unknown"
    logger.info("wd version %s", ver)


def _positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise ArgumentTypeError(f"must be a positive integer, got {text}")
    return value


def _positive_float(text: str) -> float:
    value = float(text)
    if value <= 0:
        raise ArgumentTypeError(f"must be positive, got {text}")
    return value


def parse_args(argv: list[str] | None = None) -> Namespace:
    """
    Parse command-line arguments and return the populated namespace.
    """
    parser = ArgumentParser(prog="wd")
    parser.add_argument(
        "--timeout", type=float, default=60.0, help="Overall search deadline in seconds."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # wd bssid
    p = subparsers.add_parser("bssid", help="Locate an access point by BSSID.")
    p.add_argument("bssid", type=str, help="BSSID, e.g. AA:BB:CC:DD:EE:FF.")

    # wd cell
    p = subparsers.add_parser("cell", help="Locate an LTE cell tower.")
    p.add_argument("mcc", type=int, help="Mobile country code.")
    p.add_argument("mnc", type=int, help="Mobile network code.")
    p.add_argument("cell_id", type=int, help="Cell identifier.")
    p.add_argument("tac_id", type=int, help="Tracking area code.")
    p.add_argument("--all", dest="return_all", action="store_true", help="Return nearby towers too.")

    # wd tile
    p = subparsers.add_parser("tile", help="Closest access point to a point.")
    p.add_argument("lat", type=float, help="Latitude.")
    p.add_argument("lng", type=float, help="Longitude.")
    p.add_argument("--spiral", action="store_true", help="Expanding spiral instead of 3x3.")
    p.add_argument("--max-tiles", type=_positive_int, default=25, help="Tile ceiling for --spiral.")

    # wd proximity
    p = subparsers.add_parser("proximity", help="Walk the neighbour graph from a seed.")
    p.add_argument("seed", type=str, help="Seed BSSID.")
    p.add_argument("lat", type=float, help="Target latitude.")
    p.add_argument("lng", type=float, help="Target longitude.")
    p.add_argument("--max-iterations", type=_positive_int, default=10, help="Round ceiling.")
    p.add_argument("--max-distance", type=_positive_float, default=2000.0, help="Radius in metres.")

    # wd locate
    p = subparsers.add_parser("locate", help="Access points around a point.")
    p.add_argument("lat", type=float, help="Latitude.")
    p.add_argument("lng", type=float, help="Longitude.")
    p.add_argument("--seed", type=str, help="Skip the tile search and start here.")
    p.add_argument("--wide", action="store_true", help="Use the wide search preset.")

    # wd serve
    p = subparsers.add_parser("serve", help="Serve the lookup API via FastAPI + Uvicorn.")
    p.add_argument("--host", type=str, default="127.0.0.1", help="Interface to bind.")
    p.add_argument("--port", type=int, default=8000, help="Port number to serve on.")

    # wd version
    subparsers.add_parser("version", help="Show wd version and exit.")

    return parser.parse_args(argv)


def run(args: Namespace) -> None:
    """
    Dispatch a parsed command; discovery errors propagate to the caller.
    """
    if args.command == "serve":
        serve(args.host, args.port)
        return
    if args.command == "version":
        version()
        return

    cancel = CancelToken.after(args.timeout)
    with LocationClient() as client:
        match args.command:
            case "bssid":
                bssid(client, args.bssid, cancel)
            case "cell":
                cell(client, args.mcc, args.mnc, args.cell_id, args.tac_id, args.return_all, cancel)
            case "tile":
                cfg = SearchConfig(tile_mode=SPIRAL if args.spiral else GRID, max_tiles=args.max_tiles)
                tile(client, args.lat, args.lng, cfg, cancel)
            case "proximity":
                cfg = SearchConfig(
                    max_iterations=args.max_iterations, max_distance_m=args.max_distance
                )
                proximity(client, args.seed, args.lat, args.lng, cfg, cancel)
            case "locate":
                cfg = SearchConfig.wide() if args.wide else SearchConfig.default()
                locate(client, args.lat, args.lng, args.seed, cfg, cancel)
            case _:
                sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """
    Entry point: dispatch to the selected subcommand.
    """
    args = parse_args(argv)
    try:
        run(args)
    except DiscoveryError as exc:
        code, hint = next(
            ((c, h) for cls, c, h in _EXIT if isinstance(exc, cls)), (1, "unexpected failure")
        )
        logger.error("%s (%s)", exc, hint)
        sys.exit(code)


if __name__ == "__main__":
    main()
