from typing import Callable, Iterable, Optional, Tuple

import httpx
import pytest

from wd.codec.schema import AppleWLoc, WifiTile
from wd.codec.wloc import INITIAL_WLOC_BYTES
from wd.transport.client import LocationClient

CHINA_HOSTS = {"gs-loc-cn.apple.com", "gspe85-cn-ssl.ls.apple.com"}

Device = Tuple[str, Optional[float], Optional[float]]


def _wloc_body(
    devices: Iterable[Device] = (),
    towers: Iterable[tuple] = (),
    raw_location: Optional[Tuple[int, int]] = None,
) -> bytes:
    msg = AppleWLoc()
    for bssid, lat, lng in devices:
        device = msg.wifi_devices.add(bssid=bssid)
        if lat is not None and lng is not None:
            device.location.latitude = round(lat * 1e8)
            device.location.longitude = round(lng * 1e8)
            device.location.horizontal_accuracy = 30
    if raw_location is not None:
        device = msg.wifi_devices.add(bssid="00:00:00:00:00:01")
        device.location.latitude, device.location.longitude = raw_location
    for mcc, mnc, cell_id, tac_id, lat, lng in towers:
        tower = msg.cell_tower_response.add(mcc=mcc, mnc=mnc, cell_id=cell_id, tac_id=tac_id)
        if lat is not None:
            tower.location.latitude = round(lat * 1e8)
            tower.location.longitude = round(lng * 1e8)
    return b"\x00" * 10 + msg.SerializeToString()


def _tile_body(devices: Iterable[Tuple[int, float, float]]) -> bytes:
    msg = WifiTile()
    region = msg.region.add()
    for mac, lat, lng in devices:
        device = region.devices.add(bssid=mac)
        device.entry.lat = round(lat * 1e7)
        device.entry.long = round(lng * 1e7)
    return msg.SerializeToString()


def _requested_bssids(request: httpx.Request) -> list:
    payload = request.content[len(INITIAL_WLOC_BYTES) + 1:]
    msg = AppleWLoc()
    msg.ParseFromString(payload)
    return [d.bssid for d in msg.wifi_devices]


@pytest.fixture
def wloc_body() -> Callable[..., bytes]:
    return _wloc_body


@pytest.fixture
def tile_body() -> Callable[..., bytes]:
    return _tile_body


@pytest.fixture
def requested_bssids() -> Callable[[httpx.Request], list]:
    return _requested_bssids


@pytest.fixture
def make_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], LocationClient]:
    def factory(handler) -> LocationClient:
        return LocationClient(client=httpx.Client(transport=httpx.MockTransport(handler)))
    return factory


def is_china(request: httpx.Request) -> bool:
    return request.url.host in CHINA_HOSTS


@pytest.fixture
def china() -> Callable[[httpx.Request], bool]:
    return is_china
