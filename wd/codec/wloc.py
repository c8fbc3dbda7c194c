# wd/codec/wloc.py

"""
WLOC request framing and response decoding.

A request body is ``INITIAL_WLOC_BYTES + [payload length] + payload``, where
the payload is an ``AppleWLoc`` protobuf message. A response body may be
gzip-compressed; once inflated it carries a 10-byte header followed by an
``AppleWLoc`` message.

Decoded messages are validated into the pydantic records below. The records
accept both the snake_case and camelCase spelling of each wire field, so
nothing past this module ever has to care which one the decoder produced.
"""

from __future__ import annotations

import gzip
import zlib
from typing import Any, List, Mapping, Optional

from google.protobuf import json_format
from google.protobuf.message import DecodeError
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from wd.codec.coords import WLOC_SCALE_POW, decode_coordinate, is_sentinel
from wd.codec.mac import normalize_loose
from wd.codec.schema import AppleWLoc, camel_case
from wd.errors import PayloadTooLarge, ProtocolError
from wd.utils.log import get_logger

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Fingerprint prefix required by gs-loc.apple.com (observed 2024, locale
# en-001_001, bundle com.apple.locationd, iOS 17.5.1 21F90). Opaque: do not
# try to rebuild it from its parts.
INITIAL_WLOC_BYTES = bytes.fromhex(
    "0001000a656e2d3030315f3030310013636f6d2e6170706c652e6c6f636174696f6e64"
    "000c31372e352e312e323146393000000001000000"
)
MAX_PAYLOAD_BYTES = 255
RESPONSE_HEADER_BYTES = 10
GZIP_MAGIC = b"\x1f\x8b"

RETURN_MATCHES = -1  # only the requested devices
RETURN_ALL = 0       # everything the service knows nearby

DEFAULT_OPERATING_SYSTEM = "iPhone OS17.5/21F79"
DEFAULT_MODEL = "iPhone12,1"
# -----------------------------------------------------------------------------


def _either(name: str) -> AliasChoices:
    return AliasChoices(name, camel_case(name))


def _pick(raw: Mapping[str, Any], name: str) -> Any:
    value = raw.get(name)
    if value is None:
        value = raw.get(camel_case(name))
    return value


def _opt_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


# ---- request side -----------------------------------------------------------

class DeviceType(BaseModel):
    """
    Client identity the service insists on before it answers.
    """
    operating_system: str = DEFAULT_OPERATING_SYSTEM
    model: str = DEFAULT_MODEL


class CellTowerQuery(BaseModel):
    mcc: int
    mnc: int
    cell_id: int
    tac_id: int


class WlocRequest(BaseModel):
    """
    Everything the client can ask the WLOC service in one round-trip.

    Attributes
    ----------
    wifi_devices
        Canonical BSSIDs to look up.
    cell_tower
        Optional cell tower to look up.
    num_wifi_results
        ``RETURN_MATCHES`` for exact matches, ``RETURN_ALL`` for neighbours.
    num_cell_results
        Same semantics for cell towers.
    device_type
        Spoofed client identity.
    """
    wifi_devices: List[str] = Field(default_factory=list)
    cell_tower: Optional[CellTowerQuery] = None
    num_wifi_results: int = RETURN_MATCHES
    num_cell_results: int = RETURN_ALL
    device_type: DeviceType = Field(default_factory=DeviceType)


def build_message(request: WlocRequest):
    msg = AppleWLoc()
    for bssid in request.wifi_devices:
        msg.wifi_devices.add(bssid=bssid)
    msg.num_wifi_results = request.num_wifi_results
    msg.num_cell_results = request.num_cell_results
    if request.cell_tower is not None:
        tower = msg.cell_tower_request
        tower.mcc = request.cell_tower.mcc
        tower.mnc = request.cell_tower.mnc
        tower.cell_id = request.cell_tower.cell_id
        tower.tac_id = request.cell_tower.tac_id
    msg.device_type.operating_system = request.device_type.operating_system
    msg.device_type.model = request.device_type.model
    return msg


def serialize_request(request: WlocRequest) -> bytes:
    """
    Frame a request for the WLOC endpoint.

    Raises
    ------
    PayloadTooLarge
        If the encoded payload does not fit in the single length byte.
    """
    payload = build_message(request).SerializeToString()
    if len(payload) > MAX_PAYLOAD_BYTES:
        raise PayloadTooLarge(
            f"WLOC payload is {len(payload)} bytes, limit is {MAX_PAYLOAD_BYTES}"
        )
    return INITIAL_WLOC_BYTES + bytes([len(payload)]) + payload


# ---- response side ----------------------------------------------------------

class Location(BaseModel):
    """
    Decoded position in decimal degrees.

    `altitude` and the accuracies stay in the service's integer metres.
    """
    latitude: float
    longitude: float
    altitude: Optional[int] = None
    horizontal_accuracy: Optional[int] = None
    vertical_accuracy: Optional[int] = None

    @classmethod
    def from_raw(cls, raw: Any, scale_pow: int = WLOC_SCALE_POW) -> Optional["Location"]:
        """
        Build a Location from a decoded wire dict, or None for "no fix".

        Missing coordinates and the (-180, -180) sentinel both yield None.
        """
        if raw is None:
            return None
        if isinstance(raw, Location):
            return raw
        lat = _opt_int(_pick(raw, "latitude"))
        lng = _opt_int(_pick(raw, "longitude"))
        if lat is None or lng is None or is_sentinel(lat, lng, scale_pow):
            return None
        return cls(
            latitude=decode_coordinate(lat, scale_pow),
            longitude=decode_coordinate(lng, scale_pow),
            altitude=_opt_int(_pick(raw, "altitude")),
            horizontal_accuracy=_opt_int(_pick(raw, "horizontal_accuracy")),
            vertical_accuracy=_opt_int(_pick(raw, "vertical_accuracy")),
        )


class WifiDevice(BaseModel):
    bssid: str
    location: Optional[Location] = None

    @field_validator("bssid", mode="before")
    @classmethod
    def _canonical_bssid(cls, value: Any) -> str:
        return normalize_loose(str(value or ""))

    @field_validator("location", mode="before")
    @classmethod
    def _decode_location(cls, value: Any) -> Optional[Location]:
        return Location.from_raw(value)


class CellTower(BaseModel):
    mcc: int = 0
    mnc: int = 0
    cell_id: int = Field(0, validation_alias=_either("cell_id"))
    tac_id: int = Field(0, validation_alias=_either("tac_id"))
    location: Optional[Location] = None
    uarfcn: Optional[int] = None
    pid: Optional[int] = None

    @field_validator("location", mode="before")
    @classmethod
    def _decode_location(cls, value: Any) -> Optional[Location]:
        return Location.from_raw(value)

    @property
    def key(self) -> tuple[int, int, int, int]:
        return (self.mcc, self.mnc, self.cell_id, self.tac_id)


class WlocResponse(BaseModel):
    wifi_devices: List[WifiDevice] = Field(
        default_factory=list, validation_alias=_either("wifi_devices")
    )
    cell_towers: List[CellTower] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "cell_towers", "cell_tower_response", "cellTowerResponse"
        ),
    )

    @field_validator("wifi_devices", mode="after")
    @classmethod
    def _drop_blank(cls, devices: List[WifiDevice]) -> List[WifiDevice]:
        return [d for d in devices if d.bssid]

    def located_devices(self) -> List[WifiDevice]:
        return [d for d in self.wifi_devices if d.location is not None]


def decompress_body(body: bytes) -> bytes:
    """
    Inflate a gzip body when it starts with the gzip magic; pass others through.
    """
    if body[:2] != GZIP_MAGIC:
        return body
    try:
        return gzip.decompress(body)
    except (OSError, EOFError, zlib.error) as exc:
        raise ProtocolError(f"Failed to decompress response: {exc}") from exc


def parse_response(body: bytes) -> WlocResponse:
    """
    Decode a WLOC response body.

    Parameters
    ----------
    body
        Raw HTTP body, possibly gzip-compressed.

    Returns
    -------
    WlocResponse
        Devices and towers with canonical BSSIDs and sentinel-free locations.

    Raises
    ------
    ProtocolError
        Body shorter than the header, not decompressible, or not a valid
        ``AppleWLoc`` message.
    """
    data = decompress_body(body)
    if len(data) < RESPONSE_HEADER_BYTES:
        raise ProtocolError(f"Response too short: {len(data)} bytes")
    msg = AppleWLoc()
    try:
        msg.ParseFromString(data[RESPONSE_HEADER_BYTES:])
    except DecodeError as exc:
        raise ProtocolError(f"Failed to decode protobuf: {exc}") from exc
    raw = json_format.MessageToDict(msg)
    try:
        response = WlocResponse.model_validate(raw)
    except ValidationError as exc:
        raise ProtocolError(f"Unexpected WLOC message shape: {exc}") from exc
    logger.debug(
        "Decoded WLOC response: %d wifi devices, %d cell towers",
        len(response.wifi_devices), len(response.cell_towers),
    )
    return response
