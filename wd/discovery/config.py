# wd/discovery/config.py

from dataclasses import dataclass

GRID = "grid"
SPIRAL = "spiral"


@dataclass
class SearchConfig:
    """
    Knobs bounding how much remote traffic one search may generate.

    Attributes
    ----------
    max_iterations
        Ceiling on proximity-walk rounds; hitting it stops the walk early.
    max_distance_m
        Results farther than this from the target are dropped.
    tile_level
        Zoom level of the tile grid used by tile search.
    tile_mode
        "grid" for the fixed 3x3 block, "spiral" for an expanding spiral.
    max_tiles
        Number of tiles a spiral scan may request.
    fallback
        Retry the other region when the bounding-box guess comes up empty.
    timeout
        Per-request HTTP timeout (s).
    """
    max_iterations:   int    = 10
    max_distance_m:   float  = 2000.0
    tile_level:       int    = 13
    tile_mode:        str    = GRID
    max_tiles:        int    = 25
    fallback:         bool   = True
    timeout:          float  = 10.0

    def __post_init__(self) -> None:
        if self.tile_mode not in (GRID, SPIRAL):
            raise ValueError(f"tile_mode must be {GRID!r} or {SPIRAL!r}")
        if self.max_iterations < 1 or self.max_tiles < 1:
            raise ValueError("max_iterations and max_tiles must be positive")

    @classmethod
    def default(cls):
        """Preset used by the HTTP service (3x3 grid, 2 km radius)."""
        return cls()

    @classmethod
    def wide(cls):
        """Preset for sparse areas: spiral scan, longer walk, larger radius."""
        return cls(
            max_iterations=15,
            max_distance_m=5000.0,
            tile_mode=SPIRAL,
            max_tiles=49,
        )
