import httpx
import pytest

from wd.codec.mac import decode_from_integer, encode_to_integer
from wd.codec.wloc import Location
from wd.discovery.cancel import CancelToken
from wd.discovery.config import SPIRAL, SearchConfig
from wd.discovery.direct import lookup_bssid, lookup_cell_tower, region_order
from wd.discovery.locate import location_search
from wd.discovery.proximity import proximity_search
from wd.discovery.tiles import candidate_tiles, tile_search
from wd.discovery.types import AccumulatedResultSet, WifiResult
from wd.errors import (
    EndpointError,
    InvalidFormat,
    NetworkError,
    NotFound,
    ProtocolError,
    SearchCancelled,
)
from wd.tiles.morton import TILE_SEARCH_LEVEL, to_tile, unpack
from wd.transport.endpoints import Region

MOUNTAIN_VIEW = (37.422, -122.084)


# ---- direct lookups ---------------------------------------------------------

def test_lookup_bssid_direct_hit(make_client, wloc_body) -> None:
    client = make_client(
        lambda request: httpx.Response(
            200, content=wloc_body([("aa:bb:cc:dd:ee:ff", *MOUNTAIN_VIEW)])
        )
    )
    result = lookup_bssid(client, "aabbccddeeff")
    assert result.bssid == "AA:BB:CC:DD:EE:FF"
    assert result.region is Region.GLOBAL
    assert result.location.latitude == pytest.approx(37.422)
    assert result.location.longitude == pytest.approx(-122.084)


def test_lookup_bssid_matches_unpadded_service_form(make_client, wloc_body) -> None:
    client = make_client(
        lambda request: httpx.Response(200, content=wloc_body([("a:b:c:d:e:f", 1.0, 2.0)]))
    )
    assert lookup_bssid(client, "0A:0B:0C:0D:0E:0F").bssid == "0A:0B:0C:0D:0E:0F"


def test_lookup_bssid_falls_back_to_china(make_client, wloc_body, china) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if china(request):
            return httpx.Response(200, content=wloc_body([("AA:BB:CC:DD:EE:FF", 31.23, 121.47)]))
        return httpx.Response(200, content=wloc_body([("AA:BB:CC:DD:EE:FF", None, None)]))

    result = lookup_bssid(make_client(handler), "AA:BB:CC:DD:EE:FF")
    assert result.region is Region.CHINA
    assert result.region.value == "china"


def test_lookup_bssid_endpoint_error_then_fallback(make_client, wloc_body, china) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if china(request):
            return httpx.Response(200, content=wloc_body([("AA:BB:CC:DD:EE:FF", 31.23, 121.47)]))
        return httpx.Response(503)

    assert lookup_bssid(make_client(handler), "AA:BB:CC:DD:EE:FF").region is Region.CHINA


def test_lookup_bssid_not_found(make_client, wloc_body) -> None:
    client = make_client(lambda request: httpx.Response(200, content=wloc_body()))
    with pytest.raises(NotFound):
        lookup_bssid(client, "AA:BB:CC:DD:EE:FF")


def test_lookup_bssid_sentinel_is_not_found(make_client, wloc_body) -> None:
    body = wloc_body(raw_location=(-18000000000, -18000000000))
    client = make_client(lambda request: httpx.Response(200, content=body))
    with pytest.raises(NotFound):
        lookup_bssid(client, "00:00:00:00:00:01")


def test_lookup_bssid_all_regions_unreachable(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(NetworkError):
        lookup_bssid(make_client(handler), "AA:BB:CC:DD:EE:FF")


def test_lookup_bssid_all_regions_reject(make_client) -> None:
    client = make_client(lambda request: httpx.Response(500))
    with pytest.raises(EndpointError):
        lookup_bssid(client, "AA:BB:CC:DD:EE:FF")


UNDECODABLE = b"\x00" * 10 + b"\x0a\x05ab"


def test_lookup_bssid_decode_error_falls_back_to_china(make_client, wloc_body, china) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        if china(request):
            return httpx.Response(200, content=wloc_body([("AA:BB:CC:DD:EE:FF", 31.23, 121.47)]))
        return httpx.Response(200, content=UNDECODABLE)

    result = lookup_bssid(make_client(handler), "AA:BB:CC:DD:EE:FF")
    assert result.region is Region.CHINA
    assert calls == ["gs-loc.apple.com", "gs-loc-cn.apple.com"]


def test_lookup_bssid_decode_error_everywhere(make_client) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        return httpx.Response(200, content=b"nope")

    with pytest.raises(ProtocolError):
        lookup_bssid(make_client(handler), "AA:BB:CC:DD:EE:FF")
    assert calls == ["gs-loc.apple.com", "gs-loc-cn.apple.com"]


def test_lookup_bssid_decode_error_is_never_not_found(make_client, wloc_body, china) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if china(request):
            return httpx.Response(200, content=wloc_body())
        return httpx.Response(200, content=UNDECODABLE)

    with pytest.raises(ProtocolError):
        lookup_bssid(make_client(handler), "AA:BB:CC:DD:EE:FF")


def test_lookup_cell_tower_decode_error_falls_back(make_client, wloc_body, china) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if china(request):
            return httpx.Response(
                200, content=wloc_body(towers=[(460, 0, 12345, 678, 39.9, 116.4)])
            )
        return httpx.Response(200, content=UNDECODABLE)

    results = lookup_cell_tower(make_client(handler), 460, 0, 12345, 678)
    assert [r.region for r in results] == [Region.CHINA]


def test_lookup_bssid_rejects_bad_input_offline(make_client) -> None:
    calls = []
    client = make_client(lambda request: calls.append(request) or httpx.Response(500))
    with pytest.raises(InvalidFormat):
        lookup_bssid(client, "not a bssid")
    assert calls == []


def test_region_order() -> None:
    assert region_order(None) == [Region.GLOBAL, Region.CHINA]
    assert region_order(Region.CHINA) == [Region.CHINA, Region.GLOBAL]
    assert region_order(Region.CHINA, fallback=False) == [Region.CHINA]


def test_lookup_cell_tower_exact_match(make_client, wloc_body) -> None:
    body = wloc_body(towers=[
        (310, 410, 999, 1, 40.1, -74.1),
        (310, 410, 12345, 678, 40.0, -74.0),
    ])
    client = make_client(lambda request: httpx.Response(200, content=body))
    results = lookup_cell_tower(client, 310, 410, 12345, 678)
    assert len(results) == 1
    assert results[0].tower.key == (310, 410, 12345, 678)
    assert results[0].tower.location.latitude == pytest.approx(40.0)


def test_lookup_cell_tower_return_all(make_client, wloc_body) -> None:
    body = wloc_body(towers=[
        (310, 410, 999, 1, 40.1, -74.1),
        (310, 410, 12345, 678, 40.0, -74.0),
        (310, 410, 5, 5, None, None),
    ])
    client = make_client(lambda request: httpx.Response(200, content=body))
    results = lookup_cell_tower(client, 310, 410, 12345, 678, return_all=True)
    assert [r.tower.cell_id for r in results] == [999, 12345]


@pytest.mark.parametrize(
    "args", [(1000, 1, 1, 1), (1, -1, 1, 1), (1, 1, 1 << 32, 1), (1, 1, 1, 70000)]
)
def test_lookup_cell_tower_validates_ranges(make_client, args) -> None:
    client = make_client(lambda request: httpx.Response(500))
    with pytest.raises(InvalidFormat):
        lookup_cell_tower(client, *args)


# ---- proximity walk ---------------------------------------------------------

def _always_closer(wloc_body, requested_bssids):
    # every round reveals one new access point nearer to (0, 0)
    def handler(request: httpx.Request) -> httpx.Response:
        k = encode_to_integer(requested_bssids(request)[0])
        return httpx.Response(
            200, content=wloc_body([(decode_from_integer(k + 1), 0.01 / (k + 2), 0.0)])
        )
    return handler


def test_proximity_stops_at_iteration_ceiling(make_client, wloc_body, requested_bssids) -> None:
    client = make_client(_always_closer(wloc_body, requested_bssids))
    walk = proximity_search(client, "00:00:00:00:00:01", 0.0, 0.0)
    assert walk.stopped_early
    assert not walk.converged
    assert walk.iterations == 10
    assert walk.total_found == 10
    assert len(walk.results) == 10
    distances = [r.distance_m for r in walk.results]
    assert distances == sorted(distances)


def test_proximity_honours_custom_ceiling(make_client, wloc_body, requested_bssids) -> None:
    client = make_client(_always_closer(wloc_body, requested_bssids))
    walk = proximity_search(
        client, "00:00:00:00:00:01", 0.0, 0.0, SearchConfig(max_iterations=3)
    )
    assert walk.iterations == 3
    assert walk.stopped_early


def test_proximity_converges(make_client, wloc_body) -> None:
    body = wloc_body([
        ("00:00:00:00:00:0A", 0.001, 0.0),
        ("00:00:00:00:00:0B", 0.002, 0.0),
        ("00:00:00:00:00:0C", 1.0, 0.0),
    ])
    client = make_client(lambda request: httpx.Response(200, content=body))
    walk = proximity_search(client, "00:00:00:00:00:01", 0.0, 0.0)
    assert walk.converged
    assert not walk.stopped_early
    assert walk.iterations == 2
    assert walk.total_found == 3
    # the 111 km device is outside the default 2 km radius
    assert [r.bssid for r in walk.results] == ["00:00:00:00:00:0A", "00:00:00:00:00:0B"]


def test_proximity_keeps_partial_results_on_failure(make_client, wloc_body) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) > 1:
            return httpx.Response(500)
        return httpx.Response(200, content=wloc_body([("00:00:00:00:00:0A", 0.001, 0.0)]))

    walk = proximity_search(make_client(handler), "00:00:00:00:00:01", 0.0, 0.0)
    assert walk.iterations == 2
    assert [r.bssid for r in walk.results] == ["00:00:00:00:00:0A"]
    assert not walk.converged


def test_proximity_uses_target_region(make_client, wloc_body) -> None:
    hosts = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        return httpx.Response(200, content=wloc_body())

    proximity_search(make_client(handler), "00:00:00:00:00:01", 39.9, 116.4)
    assert hosts == ["gs-loc-cn.apple.com"]


def test_proximity_decode_error_propagates(make_client, wloc_body) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(200, content=wloc_body([("00:00:00:00:00:0A", 0.001, 0.0)]))
        return httpx.Response(200, content=UNDECODABLE)

    with pytest.raises(ProtocolError):
        proximity_search(make_client(handler), "00:00:00:00:00:01", 0.0, 0.0)
    assert len(calls) == 2


def test_proximity_cancelled_before_first_round(make_client) -> None:
    calls = []
    client = make_client(lambda request: calls.append(request) or httpx.Response(500))
    token = CancelToken()
    token.cancel()
    with pytest.raises(SearchCancelled):
        proximity_search(client, "00:00:00:00:00:01", 0.0, 0.0, cancel=token)
    assert calls == []


# ---- tile search ------------------------------------------------------------

def _tile_of(request: httpx.Request):
    x, y, _ = unpack(int(request.headers["x-tilekey"]))
    return x, y


def test_candidate_tiles_grid_and_spiral() -> None:
    cx, cy = to_tile(*MOUNTAIN_VIEW, TILE_SEARCH_LEVEL)
    grid = list(candidate_tiles(*MOUNTAIN_VIEW, SearchConfig()))
    assert len(grid) == 9
    assert grid[0] == (cx, cy)
    spiral = list(candidate_tiles(*MOUNTAIN_VIEW, SearchConfig(tile_mode=SPIRAL, max_tiles=13)))
    assert len(spiral) == 13
    assert spiral[1] == (cx + 1, cy)


def test_candidate_tiles_wrap_antimeridian() -> None:
    tiles = list(candidate_tiles(0.0, 179.99, SearchConfig()))
    assert all(0 <= x < 2 ** TILE_SEARCH_LEVEL for x, _ in tiles)
    assert 0 in {x for x, _ in tiles}


def test_tile_search_grid_picks_closest(make_client, tile_body) -> None:
    cx, cy = to_tile(*MOUNTAIN_VIEW, TILE_SEARCH_LEVEL)
    lat, lng = MOUNTAIN_VIEW

    def handler(request: httpx.Request) -> httpx.Response:
        x, y = _tile_of(request)
        if (x, y) == (cx, cy):
            return httpx.Response(200, content=tile_body([(0xAABBCCDDEEFF, lat + 0.0001, lng)]))
        return httpx.Response(200, content=tile_body([(0x110000000000 + x, lat + 0.01, lng)]))

    result = tile_search(make_client(handler), lat, lng)
    assert result.closest.bssid == "AA:BB:CC:DD:EE:FF"
    assert result.distance_m == pytest.approx(11.1, abs=0.5)
    assert result.tiles_searched == 9
    assert result.tiles_with_data == 9
    assert result.total_found == 9
    assert result.region is Region.GLOBAL


def test_tile_search_spiral_scans_one_ring_past_first_data(make_client, tile_body) -> None:
    cx, cy = to_tile(*MOUNTAIN_VIEW, TILE_SEARCH_LEVEL)
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(_tile_of(request))
        if _tile_of(request) == (cx + 1, cy):
            return httpx.Response(200, content=tile_body([(0xAABBCCDDEEFF, *MOUNTAIN_VIEW)]))
        return httpx.Response(200, content=b"")

    cfg = SearchConfig(tile_mode=SPIRAL, max_tiles=49)
    result = tile_search(make_client(handler), *MOUNTAIN_VIEW, cfg)
    assert result.closest.bssid == "AA:BB:CC:DD:EE:FF"
    # data first seen in ring 1, so rings 0-2 are scanned
    assert result.tiles_searched == 25
    assert len(requested) == 25


def test_tile_search_spiral_finds_closer_device_across_border(make_client, tile_body) -> None:
    lat, lng = MOUNTAIN_VIEW
    cx, cy = to_tile(lat, lng, TILE_SEARCH_LEVEL)

    def handler(request: httpx.Request) -> httpx.Response:
        tile = _tile_of(request)
        if tile == (cx, cy):
            return httpx.Response(200, content=tile_body([(0xAAAAAAAAAAAA, lat, lng - 0.035)]))
        if tile == (cx + 1, cy):
            return httpx.Response(200, content=tile_body([(0xBBBBBBBBBBBB, lat, lng + 0.00002)]))
        return httpx.Response(200, content=b"")

    spiral = tile_search(
        make_client(handler), lat, lng, SearchConfig(tile_mode=SPIRAL, max_tiles=49)
    )
    grid = tile_search(make_client(handler), lat, lng)
    assert spiral.closest.bssid == "BB:BB:BB:BB:BB:BB"
    assert spiral.closest.bssid == grid.closest.bssid
    assert spiral.distance_m < 5.0
    assert spiral.tiles_searched == 9


def test_tile_search_spiral_rings_wrap_antimeridian(make_client, tile_body) -> None:
    lat, lng = 0.0, 179.99
    cx, cy = to_tile(lat, lng, TILE_SEARCH_LEVEL)
    assert cx == 2 ** TILE_SEARCH_LEVEL - 1

    def handler(request: httpx.Request) -> httpx.Response:
        if _tile_of(request) == (0, cy):
            return httpx.Response(200, content=tile_body([(0xAABBCCDDEEFF, lat, -179.99)]))
        return httpx.Response(200, content=b"")

    cfg = SearchConfig(tile_mode=SPIRAL, max_tiles=49)
    result = tile_search(make_client(handler), lat, lng, cfg)
    assert result.closest.bssid == "AA:BB:CC:DD:EE:FF"
    # the wrapped column is ring 1, so the scan ends after ring 2
    assert result.tiles_searched == 25


def test_tile_search_falls_back_to_china(make_client, tile_body, china) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if china(request):
            return httpx.Response(200, content=tile_body([(0xAABBCCDDEEFF, *MOUNTAIN_VIEW)]))
        return httpx.Response(200, content=b"")

    result = tile_search(make_client(handler), *MOUNTAIN_VIEW)
    assert result.region is Region.CHINA
    assert result.closest.distance_m == pytest.approx(0.0, abs=1.0)


def test_tile_search_every_tile_fails(make_client) -> None:
    result = tile_search(make_client(lambda request: httpx.Response(500)), *MOUNTAIN_VIEW)
    assert result.closest is None
    assert result.distance_m is None
    assert result.tiles_with_data == 0


def test_tile_search_skips_failed_tiles(make_client, tile_body) -> None:
    cx, cy = to_tile(*MOUNTAIN_VIEW, TILE_SEARCH_LEVEL)

    def handler(request: httpx.Request) -> httpx.Response:
        if _tile_of(request) == (cx - 1, cy + 1):
            return httpx.Response(200, content=tile_body([(0xAABBCCDDEEFF, *MOUNTAIN_VIEW)]))
        return httpx.Response(502)

    result = tile_search(make_client(handler), *MOUNTAIN_VIEW)
    assert result.closest.bssid == "AA:BB:CC:DD:EE:FF"
    assert result.tiles_searched == 9
    assert result.tiles_with_data == 1


def test_tile_search_undecodable_everywhere(make_client) -> None:
    client = make_client(lambda request: httpx.Response(200, content=b"\x0a\x05ab"))
    with pytest.raises(ProtocolError):
        tile_search(client, *MOUNTAIN_VIEW)


def test_tile_search_honours_deadline(make_client) -> None:
    client = make_client(lambda request: httpx.Response(200, content=b""))
    with pytest.raises(SearchCancelled):
        tile_search(client, *MOUNTAIN_VIEW, cancel=CancelToken.after(0))


# ---- location search --------------------------------------------------------

def test_location_search_seeds_walk_from_tiles(make_client, tile_body, wloc_body) -> None:
    lat, lng = MOUNTAIN_VIEW

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, content=tile_body([(0xAABBCCDDEEFF, lat + 0.001, lng)]))
        return httpx.Response(200, content=wloc_body([
            ("AA:BB:CC:DD:EE:FF", lat + 0.001, lng),
            ("11:22:33:44:55:66", lat + 0.0005, lng),
        ]))

    found = location_search(make_client(handler), lat, lng)
    assert found.seed.closest.bssid == "AA:BB:CC:DD:EE:FF"
    assert [r.bssid for r in found.proximity.results] == [
        "11:22:33:44:55:66", "AA:BB:CC:DD:EE:FF",
    ]


def test_location_search_falls_back_to_tile_hit(make_client, tile_body, wloc_body) -> None:
    lat, lng = MOUNTAIN_VIEW

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, content=tile_body([(0xAABBCCDDEEFF, lat, lng)]))
        return httpx.Response(200, content=wloc_body())

    found = location_search(make_client(handler), lat, lng)
    assert [r.bssid for r in found.proximity.results] == ["AA:BB:CC:DD:EE:FF"]


def test_location_search_nothing_nearby(make_client) -> None:
    client = make_client(lambda request: httpx.Response(200, content=b""))
    with pytest.raises(NotFound):
        location_search(client, *MOUNTAIN_VIEW)


def test_location_search_rejects_bad_coordinates(make_client) -> None:
    client = make_client(lambda request: httpx.Response(500))
    with pytest.raises(InvalidFormat):
        location_search(client, 91.0, 0.0)


# ---- helpers ----------------------------------------------------------------

def test_accumulated_result_set_keeps_first() -> None:
    results = AccumulatedResultSet()
    loc = Location(latitude=0.0, longitude=0.0)
    assert results.add(WifiResult("AA:BB:CC:DD:EE:FF", loc, Region.GLOBAL, 5.0))
    assert not results.add(WifiResult("AA:BB:CC:DD:EE:FF", loc, Region.GLOBAL, 1.0))
    results.add(WifiResult("11:22:33:44:55:66", loc, Region.GLOBAL, 3000.0))
    assert len(results) == 2
    assert "AA:BB:CC:DD:EE:FF" in results
    assert [r.distance_m for r in results.sorted_by_distance()] == [5.0, 3000.0]
    assert [r.distance_m for r in results.sorted_by_distance(2000.0)] == [5.0]


def test_cancel_token() -> None:
    token = CancelToken()
    assert not token.cancelled
    assert token.remaining(4.0) == 4.0
    token.check()
    token.cancel()
    assert token.cancelled
    with pytest.raises(SearchCancelled):
        token.check()

    deadline = CancelToken.after(30)
    assert 0 < deadline.remaining() <= 30
    assert deadline.remaining(5.0) == 5.0
    assert CancelToken.after(0).cancelled


def test_search_config_validation() -> None:
    with pytest.raises(ValueError):
        SearchConfig(tile_mode="hex")
    with pytest.raises(ValueError):
        SearchConfig(max_iterations=0)
    wide = SearchConfig.wide()
    assert wide.tile_mode == SPIRAL
    assert wide.max_distance_m > SearchConfig.default().max_distance_m
