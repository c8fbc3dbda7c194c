# wd/server.py
"""
FastAPI server exposing the discovery engine.

Routes are plain `def` handlers: the engine blocks on HTTP round-trips, so
FastAPI runs each request in its worker threadpool.
"""

from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Callable, Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from wd.discovery.cancel import CancelToken
from wd.discovery.config import SearchConfig
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
from wd.gate import AbuseGate
from wd.transport.client import LocationClient
from wd.utils.geo import valid_coordinate
from wd.utils.log import get_logger
from wd.utils.validate import (
    BssidQuery,
    CellOut,
    Center,
    ErrorBody,
    LocationQuery,
    ProximityOut,
    ProximityQuery,
    TileOut,
    TileQuery,
    WifiOut,
)

logger = get_logger(__name__)

# seconds one API request may spend talking to the upstream services
REQUEST_BUDGET_S = 60.0
SWEEP_EVERY = 100

_STATUS_BY_ERROR = [
    (InvalidFormat, 400),
    (NotFound, 404),
    (EndpointError, 502),
    (ProtocolError, 502),
    (NetworkError, 503),
    (SearchCancelled, 504),
]


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def error_response(status_code: int, kind: str, message: str) -> JSONResponse:
    body = ErrorBody(type=kind, message=message)
    return JSONResponse(status_code=status_code, content={"error": body.model_dump()})


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, mode="json")


def create_app(
    client_factory: Optional[Callable[[], LocationClient]] = None,
    gate: Optional[AbuseGate] = None,
    cfg: Optional[SearchConfig] = None,
) -> FastAPI:
    """
    Build a FastAPI instance around one shared LocationClient.

    Parameters
    ----------
    client_factory
        Builds the transport client; a default `LocationClient` otherwise.
    gate
        Abuse gate consulted before every API request.
    cfg
        Base search configuration; request bodies may narrow it.
    """
    base_cfg = cfg or SearchConfig.default()
    factory = client_factory or (lambda: LocationClient(timeout=base_cfg.timeout))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.client.close()

    app = FastAPI(title="wd", lifespan=lifespan)
    app.state.client = factory()
    app.state.gate = gate or AbuseGate()
    app.state.cfg = base_cfg
    app.state.seen = 0

    @app.middleware("http")
    async def abuse_gate(request: Request, call_next):
        if not request.url.path.startswith("/api/"):
            return await call_next(request)
        app.state.seen += 1
        if app.state.seen % SWEEP_EVERY == 0:
            app.state.gate.sweep()
        ip = _client_ip(request)
        request.state.ip = ip
        if app.state.gate.is_blocked(ip):
            logger.warning("Rejected request from blocked IP %s", ip)
            return error_response(429, "RATE_LIMITED", "Too many failed lookups, try again later")
        return await call_next(request)

    @app.exception_handler(DiscoveryError)
    async def discovery_error(request: Request, exc: DiscoveryError) -> JSONResponse:
        status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
        if isinstance(exc, NotFound):
            app.state.gate.record_failure(getattr(request.state, "ip", _client_ip(request)))
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return error_response(status, exc.kind, str(exc))

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0]["msg"] if errors else "Invalid request"
        return error_response(400, "INVALID_REQUEST", message)

    @app.get("/api/status", response_class=JSONResponse)
    def status() -> JSONResponse:
        return JSONResponse(status_code=200, content={"status": "ok"})

    @app.post("/api/bssid", response_class=JSONResponse)
    def bssid(query: BssidQuery) -> JSONResponse:
        """
        Locate one access point by BSSID, falling back to the China endpoint.
        """
        try:
            result = lookup_bssid(
                app.state.client, query.bssid, cancel=CancelToken.after(REQUEST_BUDGET_S)
            )
        except InvalidFormat as exc:
            return error_response(400, "INVALID_BSSID", str(exc))
        return JSONResponse(status_code=200, content={"result": _dump(WifiOut.from_result(result))})

    @app.get("/api/cell-tower", response_class=JSONResponse)
    def cell_tower(
        mcc: Optional[str] = None,
        mnc: Optional[str] = None,
        cell_id: Optional[str] = Query(None, alias="cellId"),
        tac_id: Optional[str] = Query(None, alias="tacId"),
        return_all: bool = Query(False, alias="returnAll"),
    ) -> JSONResponse:
        """
        Locate an LTE cell tower (or every tower around it with returnAll).
        """
        raw = (mcc, mnc, cell_id, tac_id)
        if any(not value for value in raw):
            raise InvalidFormat(
                "Missing required parameters. Please provide MCC, MNC, Cell ID, and TAC ID."
            )
        if not all(value.isdigit() for value in raw):
            raise InvalidFormat("Cell tower parameters must be non-negative integers.")
        results = lookup_cell_tower(
            app.state.client,
            *(int(value) for value in raw),
            return_all=return_all,
            cancel=CancelToken.after(REQUEST_BUDGET_S),
        )
        return JSONResponse(
            status_code=200,
            content={"results": [_dump(CellOut.from_result(r)) for r in results]},
        )

    @app.post("/api/tile-search", response_class=JSONResponse)
    def tiles(query: TileQuery) -> JSONResponse:
        """
        Closest access point to a point, from a 3x3 or spiral tile scan.
        """
        if not valid_coordinate(query.latitude, query.longitude):
            return error_response(400, "INVALID_LOCATION", "Invalid coordinates")
        search_cfg = replace(
            app.state.cfg,
            tile_mode=query.mode,
            max_tiles=query.max_tiles or app.state.cfg.max_tiles,
        )
        result = tile_search(
            app.state.client, query.latitude, query.longitude, search_cfg,
            cancel=CancelToken.after(REQUEST_BUDGET_S),
        )
        return JSONResponse(status_code=200, content=_dump(TileOut.from_result(result)))

    @app.post("/api/proximity-search", response_class=JSONResponse)
    def proximity(query: ProximityQuery) -> JSONResponse:
        """
        Walk the neighbour graph from a seed BSSID towards a target point.
        """
        if not valid_coordinate(query.target_lat, query.target_lng):
            return error_response(400, "INVALID_LOCATION", "Invalid coordinates")
        search_cfg = replace(
            app.state.cfg,
            max_iterations=query.max_iterations or app.state.cfg.max_iterations,
            max_distance_m=query.max_distance,
        )
        walk = proximity_search(
            app.state.client, query.seed_bssid, query.target_lat, query.target_lng,
            search_cfg, cancel=CancelToken.after(REQUEST_BUDGET_S),
        )
        body = ProximityOut(
            results=[WifiOut.from_result(r) for r in walk.results],
            count=len(walk.results),
            total_found=walk.total_found,
            center=Center(latitude=query.target_lat, longitude=query.target_lng),
            iterations=walk.iterations,
            max_distance=query.max_distance,
            converged=walk.converged,
            stopped_early=walk.stopped_early,
        )
        return JSONResponse(status_code=200, content=_dump(body))

    @app.post("/api/location-search", response_class=JSONResponse)
    def locate(query: LocationQuery) -> JSONResponse:
        """
        Access points around a point: tile search for a seed, then a walk.
        """
        if not valid_coordinate(query.latitude, query.longitude):
            return error_response(400, "INVALID_LOCATION", "Invalid coordinates")
        search_cfg = replace(app.state.cfg, max_distance_m=query.max_distance)
        found = location_search(
            app.state.client, query.latitude, query.longitude, search_cfg,
            seed_bssid=query.seed_bssid, cancel=CancelToken.after(REQUEST_BUDGET_S),
        )
        results = [_dump(WifiOut.from_result(r)) for r in found.proximity.results]
        return JSONResponse(
            status_code=200,
            content={
                "results": results,
                "count": len(results),
                "center": {"latitude": query.latitude, "longitude": query.longitude},
                "iterations": found.proximity.iterations,
                "seedBSSID": found.seed.closest.bssid if found.seed else query.seed_bssid,
            },
        )

    return app
