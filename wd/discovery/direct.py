# wd/discovery/direct.py

"""
Single-shot lookups: one BSSID or one cell tower.

Both try the preferred region first and the other region when the first
answers with nothing usable, fails at the HTTP level or sends a body that
cannot be decoded. A malformed response is never reported as "not found".
"""

from __future__ import annotations

from typing import Callable, List, Optional, TypeVar

from wd.codec.mac import same_bssid, validate_and_normalize
from wd.codec.wloc import (
    RETURN_ALL,
    RETURN_MATCHES,
    CellTowerQuery,
    WlocRequest,
    WlocResponse,
)
from wd.discovery.cancel import CancelToken
from wd.discovery.types import CellResult, WifiResult
from wd.errors import EndpointError, InvalidFormat, NetworkError, NotFound, ProtocolError
from wd.transport.client import LocationClient
from wd.transport.endpoints import Region
from wd.utils.log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

MAX_MCC = 999
MAX_MNC = 999
MAX_CELL_ID = 0xFFFFFFFF
MAX_TAC = 0xFFFF


def region_order(first: Optional[Region], fallback: bool = True) -> List[Region]:
    first = first or Region.GLOBAL
    return [first, first.other()] if fallback else [first]


def _first_hit(
    client: LocationClient,
    request: WlocRequest,
    regions: List[Region],
    extract: Callable[[WlocResponse, Region], Optional[T]],
    cancel: Optional[CancelToken],
    what: str,
) -> T:
    """
    Query each region in turn and return the first non-empty extraction.

    Raises `ProtocolError` when any region sent an undecodable body, the
    last transport error when no region answered at all, and `NotFound`
    when at least one answered but none had a usable record.
    """
    last_error: Optional[Exception] = None
    decode_error: Optional[ProtocolError] = None
    answered = False
    for region in regions:
        if cancel is not None:
            cancel.check()
        timeout = cancel.remaining(client.timeout) if cancel is not None else None
        try:
            response = client.query(region, request, timeout=timeout)
        except (EndpointError, NetworkError) as exc:
            logger.warning("%s lookup on %s failed: %s", what, region.value, exc)
            last_error = exc
            continue
        except ProtocolError as exc:
            logger.error("%s lookup on %s undecodable: %s", what, region.value, exc)
            decode_error = exc
            continue
        answered = True
        hit = extract(response, region)
        if hit is not None:
            return hit
        logger.info("%s not found on %s endpoint", what, region.value)

    if decode_error is not None:
        raise decode_error
    if not answered and last_error is not None:
        raise last_error
    raise NotFound(f"{what} not found")


def lookup_bssid(
    client: LocationClient,
    bssid: str,
    region: Optional[Region] = None,
    fallback: bool = True,
    cancel: Optional[CancelToken] = None,
) -> WifiResult:
    """
    Locate one access point by BSSID.

    Parameters
    ----------
    client
        Transport client.
    bssid
        BSSID in any accepted textual form.
    region
        Region to ask first; GLOBAL when omitted.
    fallback
        Ask the other region when the first has no usable answer.
    cancel
        Optional cancellation token.

    Returns
    -------
    WifiResult
        The matching device, tagged with the region that answered.

    Raises
    ------
    InvalidFormat
        Malformed BSSID, before any network traffic.
    NotFound
        No region returned the device with a real location.
    ProtocolError
        A region returned an undecodable body and no region had the device.
    EndpointError, NetworkError
        Every region failed before answering.
    """
    target = validate_and_normalize(bssid)
    request = WlocRequest(wifi_devices=[target], num_wifi_results=RETURN_MATCHES)

    def extract(response: WlocResponse, answered_by: Region) -> Optional[WifiResult]:
        for device in response.wifi_devices:
            if device.location is not None and same_bssid(device.bssid, target):
                return WifiResult(bssid=target, location=device.location, region=answered_by)
        return None

    result = _first_hit(
        client, request, region_order(region, fallback), extract, cancel, f"BSSID {target}"
    )
    logger.info(
        "Located %s at %.6f,%.6f via %s",
        target, result.location.latitude, result.location.longitude, result.region.value,
    )
    return result


def validate_cell_tower(mcc: int, mnc: int, cell_id: int, tac_id: int) -> None:
    """
    Range-check cell identifiers; raises `InvalidFormat` on the first bad one.
    """
    if not 0 <= mcc <= MAX_MCC:
        raise InvalidFormat("Invalid MCC (Mobile Country Code). Must be 0-999.")
    if not 0 <= mnc <= MAX_MNC:
        raise InvalidFormat("Invalid MNC (Mobile Network Code). Must be 0-999.")
    if not 0 <= cell_id <= MAX_CELL_ID:
        raise InvalidFormat("Invalid Cell ID. Must be 0-4294967295.")
    if not 0 <= tac_id <= MAX_TAC:
        raise InvalidFormat("Invalid TAC (Tracking Area Code). Must be 0-65535.")


def lookup_cell_tower(
    client: LocationClient,
    mcc: int,
    mnc: int,
    cell_id: int,
    tac_id: int,
    return_all: bool = False,
    region: Optional[Region] = None,
    fallback: bool = True,
    cancel: Optional[CancelToken] = None,
) -> List[CellResult]:
    """
    Locate an LTE cell tower, optionally with every tower the service lists
    around it.

    Without `return_all` the exact (mcc, mnc, cell_id, tac_id) match is
    returned, or the first listed tower when the service has no exact match.
    """
    validate_cell_tower(mcc, mnc, cell_id, tac_id)
    wanted = (mcc, mnc, cell_id, tac_id)
    request = WlocRequest(
        cell_tower=CellTowerQuery(mcc=mcc, mnc=mnc, cell_id=cell_id, tac_id=tac_id),
        num_cell_results=RETURN_ALL if return_all else RETURN_MATCHES,
    )

    def extract(response: WlocResponse, answered_by: Region) -> Optional[List[CellResult]]:
        towers = response.cell_towers
        if not towers:
            return None
        if not return_all:
            exact = [t for t in towers if t.key == wanted]
            towers = exact or towers[:1]
        results = [CellResult(tower=t, region=answered_by) for t in towers if t.location]
        return results or None

    label = f"cell tower MCC:{mcc} MNC:{mnc} TAC:{tac_id} Cell:{cell_id}"
    results = _first_hit(client, request, region_order(region, fallback), extract, cancel, label)
    logger.info("Located %d tower(s) for %s", len(results), label)
    return results
