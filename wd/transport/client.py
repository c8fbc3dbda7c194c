from __future__ import annotations

from typing import Dict, List, Optional

import httpx

from wd.codec.tile import TileDevice, parse_tile_response
from wd.codec.wloc import WlocRequest, WlocResponse, parse_response, serialize_request
from wd.errors import EndpointError, NetworkError
from wd.transport.endpoints import (
    TILE_ENDPOINTS,
    TILE_HEADERS,
    TILE_KEY_HEADER,
    WLOC_ENDPOINTS,
    WLOC_HEADERS,
    Region,
)
from wd.utils.log import get_logger

logger = get_logger(__name__)


class LocationClient:
    """
    Blocking client for the WLOC (POST) and tile (GET) services.

    One call is one HTTP exchange: there are no retries here, fallbacks are
    decided by the discovery engine.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
        wloc_endpoints: Optional[Dict[Region, str]] = None,
        tile_endpoints: Optional[Dict[Region, str]] = None,
    ) -> None:
        self._timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)
        self.wloc_endpoints = dict(wloc_endpoints or WLOC_ENDPOINTS)
        self.tile_endpoints = dict(tile_endpoints or TILE_ENDPOINTS)

    @property
    def timeout(self) -> float:
        return self._timeout

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "LocationClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def query(
        self,
        region: Region,
        request: WlocRequest,
        timeout: Optional[float] = None,
    ) -> WlocResponse:
        """
        POST one WLOC request and decode the answer.

        Raises
        ------
        PayloadTooLarge
            Before any network traffic, if the request cannot be framed.
        EndpointError
            Non-2xx status.
        NetworkError
            DNS, connection or timeout failure.
        ProtocolError
            Undecodable body.
        """
        body = serialize_request(request)
        response = self._request(
            "POST",
            self.wloc_endpoints[region],
            headers=WLOC_HEADERS,
            content=body,
            timeout=timeout,
        )
        return parse_response(response.content)

    def fetch_tile(
        self,
        region: Region,
        tile_key: int,
        timeout: Optional[float] = None,
    ) -> List[TileDevice]:
        headers = dict(TILE_HEADERS)
        headers[TILE_KEY_HEADER] = str(tile_key)
        response = self._request(
            "GET",
            self.tile_endpoints[region],
            headers=headers,
            timeout=timeout,
        )
        return parse_tile_response(response.content)

    def _request(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        content: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        try:
            response = self._client.request(
                method,
                url,
                headers=headers,
                content=content,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.RequestError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise NetworkError(str(exc)) from exc

        if 200 <= response.status_code < 300:
            return response

        logger.warning("%s %s returned %d", method, url, response.status_code)
        raise EndpointError(response.status_code, response.text or response.reason_phrase)
