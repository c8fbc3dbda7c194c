# wd/codec/tile.py

"""
Decoder for the wifi_request_tile protocol.

A tile response is a ``WifiTile`` message: regions of devices, each device a
48-bit MAC integer plus a fixed-point position at the 1e-7 tile scale.
"""

from typing import List

from google.protobuf.message import DecodeError
from pydantic import BaseModel

from wd.codec.coords import TILE_SCALE_POW, decode_coordinate, is_sentinel
from wd.codec.mac import decode_from_integer
from wd.codec.schema import WifiTile
from wd.codec.wloc import decompress_body
from wd.errors import InvalidFormat, ProtocolError
from wd.utils.log import get_logger

logger = get_logger(__name__)


class TileDevice(BaseModel):
    """
    One access point listed in a tile.
    """
    bssid: str
    latitude: float
    longitude: float


def parse_tile_response(body: bytes) -> List[TileDevice]:
    """
    Decode every usable device of a tile body.

    Devices without a MAC or a position, with an out-of-range MAC, or at the
    sentinel position are skipped.

    Raises
    ------
    ProtocolError
        Body not decompressible or not a valid ``WifiTile`` message.
    """
    msg = WifiTile()
    try:
        msg.ParseFromString(decompress_body(body))
    except DecodeError as exc:
        raise ProtocolError(f"Failed to decode tile: {exc}") from exc

    devices: List[TileDevice] = []
    for region in msg.region:
        for device in region.devices:
            if not device.bssid or not device.HasField("entry"):
                continue
            entry = device.entry
            if is_sentinel(entry.lat, entry.long, TILE_SCALE_POW):
                continue
            try:
                bssid = decode_from_integer(device.bssid)
            except InvalidFormat:
                logger.debug("Skipping tile device with bad MAC %d", device.bssid)
                continue
            devices.append(
                TileDevice(
                    bssid=bssid,
                    latitude=decode_coordinate(entry.lat, TILE_SCALE_POW),
                    longitude=decode_coordinate(entry.long, TILE_SCALE_POW),
                )
            )
    return devices
