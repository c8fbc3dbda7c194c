"""
Error taxonomy for the wd toolkit.

Every failure raised by the codecs, the transport client and the discovery
engine derives from `DiscoveryError`. The `kind` attribute is a stable string
the HTTP service and the CLI use to pick a message for the user.
"""


class DiscoveryError(Exception):
    """Base error for all wd failures."""

    kind = "API_ERROR"


class InvalidFormat(DiscoveryError):
    """Malformed input identifier (BSSID, cell-tower fields, coordinates)."""

    kind = "INVALID_REQUEST"


class PayloadTooLarge(InvalidFormat):
    """Encoded WLOC payload does not fit the single length byte."""


class EndpointError(DiscoveryError):
    """Upstream service answered with a non-2xx status."""

    kind = "API_ERROR"

    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(f"upstream returned HTTP {status}")


class ProtocolError(DiscoveryError):
    """Response body too short, not decompressible, or not decodable."""

    kind = "PROTOCOL_ERROR"


class NotFound(DiscoveryError):
    """No endpoint, round or tile produced a usable record."""

    kind = "NOT_FOUND"


class NetworkError(DiscoveryError):
    """Transport-level failure: DNS, refused connection, timeout."""

    kind = "NETWORK_ERROR"


class SearchCancelled(DiscoveryError):
    """The caller cancelled the search or its deadline passed."""

    kind = "CANCELLED"
