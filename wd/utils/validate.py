"""
Pydantic schemas for the HTTP service's requests and responses.

Field names follow the JSON the web client already speaks (camelCase on the
wire), with snake_case attribute names in Python.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from wd.discovery.types import CellResult, TileResult, WifiResult


class _Api(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LocationOut(_Api):
    latitude: float
    longitude: float
    altitude: Optional[int] = None


class WifiOut(_Api):
    """
    One located access point as returned to clients.
    """
    bssid: str
    location: LocationOut
    accuracy: Optional[float] = None
    distance: Optional[float] = None
    source: Literal["global", "china"]

    @classmethod
    def from_result(cls, result: WifiResult) -> "WifiOut":
        loc = result.location
        return cls(
            bssid=result.bssid,
            location=LocationOut(
                latitude=loc.latitude, longitude=loc.longitude, altitude=loc.altitude
            ),
            accuracy=loc.horizontal_accuracy,
            distance=result.distance_m,
            source=result.region.value,
        )


class TowerOut(_Api):
    mcc: int
    mnc: int
    cell_id: int = Field(serialization_alias="cellId")
    tac_id: int = Field(serialization_alias="tacId")
    uarfcn: Optional[int] = None
    pid: Optional[int] = None


class CellOut(_Api):
    """
    One located cell tower as returned to clients.
    """
    tower: TowerOut
    location: LocationOut
    accuracy: Optional[float] = None
    source: Literal["global", "china"]

    @classmethod
    def from_result(cls, result: CellResult) -> "CellOut":
        t = result.tower
        return cls(
            tower=TowerOut(
                mcc=t.mcc, mnc=t.mnc, cell_id=t.cell_id, tac_id=t.tac_id,
                uarfcn=t.uarfcn, pid=t.pid,
            ),
            location=LocationOut(latitude=t.location.latitude, longitude=t.location.longitude),
            accuracy=t.location.horizontal_accuracy,
            source=result.region.value,
        )


class BssidQuery(_Api):
    bssid: str = ""


class TileQuery(_Api):
    latitude: float
    longitude: float
    mode: Literal["grid", "spiral"] = "grid"
    max_tiles: Optional[int] = Field(None, alias="maxTiles", ge=1, le=225)


class ProximityQuery(_Api):
    seed_bssid: str = Field(alias="seedBSSID")
    target_lat: float = Field(alias="targetLat")
    target_lng: float = Field(alias="targetLng")
    max_distance: float = Field(2000.0, alias="maxDistance", gt=0)
    max_iterations: Optional[int] = Field(None, alias="maxIterations", ge=1, le=50)


class LocationQuery(_Api):
    latitude: float
    longitude: float
    seed_bssid: Optional[str] = Field(None, alias="seedBssid")
    max_distance: float = Field(2000.0, alias="maxDistance", gt=0)


class Center(_Api):
    latitude: float
    longitude: float


class TileOut(_Api):
    closest_bssid: Optional[str] = Field(serialization_alias="closestBSSID")
    closest_location: Optional[LocationOut] = Field(None, serialization_alias="closestLocation")
    distance: Optional[float] = None
    tiles_searched: int = Field(serialization_alias="tilesSearched")
    tiles_with_data: int = Field(serialization_alias="tilesWithData")
    total_aps_found: int = Field(serialization_alias="totalAPsFound")
    source: Literal["global", "china"]
    message: Optional[str] = None

    @classmethod
    def from_result(cls, result: TileResult) -> "TileOut":
        closest = result.closest
        return cls(
            closest_bssid=closest.bssid if closest else None,
            closest_location=(
                LocationOut(
                    latitude=closest.location.latitude,
                    longitude=closest.location.longitude,
                )
                if closest else None
            ),
            distance=result.distance_m,
            tiles_searched=result.tiles_searched,
            tiles_with_data=result.tiles_with_data,
            total_aps_found=result.total_found,
            source=result.region.value,
            message=None if closest else "No access points found in this area",
        )


class ProximityOut(_Api):
    results: List[WifiOut]
    count: int
    total_found: int = Field(serialization_alias="totalFound")
    center: Center
    iterations: int
    max_distance: float = Field(serialization_alias="maxDistance")
    converged: bool
    stopped_early: bool = Field(serialization_alias="stoppedEarly")


class ErrorBody(_Api):
    type: str
    message: str
