# wd/discovery/types.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from wd.codec.wloc import CellTower, Location
from wd.transport.endpoints import Region


@dataclass
class WifiResult:
    """
    One located access point.

    Parameters
    ----------
    bssid : str
        Canonical BSSID.
    location : Location
        Decoded, sentinel-free position.
    region : Region
        Endpoint region that produced the record.
    distance_m : Optional[float]
        Distance to the search target, when the search had one.
    """
    bssid: str
    location: Location
    region: Region
    distance_m: Optional[float] = None


@dataclass
class CellResult:
    """
    One located cell tower.

    Parameters
    ----------
    tower : CellTower
        Identifiers plus the decoded location.
    region : Region
        Endpoint region that produced the record.
    """
    tower: CellTower
    region: Region


class AccumulatedResultSet:
    """
    Best-known result per canonical BSSID, built across search rounds.
    """

    def __init__(self) -> None:
        self._items: Dict[str, WifiResult] = {}

    def __contains__(self, bssid: str) -> bool:
        return bssid in self._items

    def __len__(self) -> int:
        return len(self._items)

    def add(self, result: WifiResult) -> bool:
        """
        Insert `result` unless its BSSID is already known; True if inserted.
        """
        if result.bssid in self._items:
            return False
        self._items[result.bssid] = result
        return True

    def sorted_by_distance(self, max_distance_m: Optional[float] = None) -> List[WifiResult]:
        items = sorted(self._items.values(), key=lambda r: r.distance_m or 0.0)
        if max_distance_m is None:
            return items
        return [r for r in items if (r.distance_m or 0.0) <= max_distance_m]


@dataclass
class ProximityResult:
    """
    Outcome of a neighbour-graph walk.

    Parameters
    ----------
    results : List[WifiResult]
        Access points within the radius, nearest first.
    total_found : int
        Access points discovered before the radius filter.
    iterations : int
        Rounds that issued a query.
    converged : bool
        True when the walk stopped because no closer access point appeared.
    stopped_early : bool
        True when the iteration ceiling ended the walk.
    """
    results: List[WifiResult] = field(default_factory=list)
    total_found: int = 0
    iterations: int = 0
    converged: bool = False
    stopped_early: bool = False


@dataclass
class TileResult:
    """
    Outcome of a tile scan; `closest` is None when no tile had data.
    """
    closest: Optional[WifiResult]
    tiles_searched: int
    tiles_with_data: int
    total_found: int
    region: Region

    @property
    def distance_m(self) -> Optional[float]:
        return self.closest.distance_m if self.closest else None


@dataclass
class LocationSearchResult:
    seed: Optional[TileResult]
    proximity: ProximityResult
