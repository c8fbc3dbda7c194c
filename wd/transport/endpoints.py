# wd/transport/endpoints.py

"""
Regional endpoints and the fixed header sets both services require.

The header values impersonate an iOS 17.5 device; the services reject
requests that deviate from them, so keep them byte-for-byte.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict

from wd.utils.geo import in_china


class Region(str, Enum):
    GLOBAL = "global"
    CHINA = "china"

    def other(self) -> "Region":
        return Region.CHINA if self is Region.GLOBAL else Region.GLOBAL


WLOC_ENDPOINTS: Dict[Region, str] = {
    Region.GLOBAL: "https://gs-loc.apple.com/clls/wloc",
    Region.CHINA: "https://gs-loc-cn.apple.com/clls/wloc",
}

TILE_ENDPOINTS: Dict[Region, str] = {
    Region.GLOBAL: "https://gspe85-ssl.ls.apple.com/wifi_request_tile",
    Region.CHINA: "https://gspe85-cn-ssl.ls.apple.com/wifi_request_tile",
}

WLOC_HEADERS: Dict[str, str] = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "*/*",
    "Accept-Charset": "utf-8",
    "Accept-Language": "en-us",
    "User-Agent": "locationd/2890.16.16 CFNetwork/1496.0.7 Darwin/23.5.0",
}

TILE_HEADERS: Dict[str, str] = {
    "Accept": "*/*",
    "Connection": "keep-alive",
    "User-Agent": "geod/1 CFNetwork/1496.0.7 Darwin/23.5.0",
    "Accept-Language": "en-US,en-GB;q=0.9,en;q=0.8",
    "X-os-version": "17.5.21F79",
}
TILE_KEY_HEADER = "X-tilekey"


def select_region(lat: float, lng: float) -> Region:
    """
    Pick the endpoint region for a target point.

    The bounding box is approximate; callers that can afford a second request
    fall back to the other region on an empty answer.
    """
    return Region.CHINA if in_china(lat, lng) else Region.GLOBAL
