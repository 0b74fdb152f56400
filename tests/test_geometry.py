# tests/test_geometry.py
import pytest
from shapely import wkt as shapely_wkt

from listing_explorer.geometry import InvalidPolygonError, parse_polygons, to_wkt
from conftest import square_feature


def test_single_feature():
    polygons = parse_polygons(square_feature(-98, 30))
    assert len(polygons) == 1
    assert polygons[0].bounds == (-98.0, 30.0, -97.0, 31.0)


def test_list_collection_and_bare_geometry():
    features = [square_feature(-98, 30), square_feature(-90, 35)]
    assert len(parse_polygons(features)) == 2
    collection = {"type": "FeatureCollection", "features": features}
    assert len(parse_polygons(collection)) == 2
    assert len(parse_polygons(features[0]["geometry"])) == 1


def test_open_ring_is_closed():
    feature = square_feature(0, 0)
    feature["geometry"]["coordinates"][0].pop()
    polygon = parse_polygons(feature)[0]
    coords = list(polygon.exterior.coords)
    assert coords[0] == coords[-1]
    assert polygon.area == pytest.approx(1.0)


def test_hole_is_kept():
    feature = square_feature(0, 0, size=10)
    feature["geometry"]["coordinates"].append([[2, 2], [4, 2], [4, 4], [2, 4], [2, 2]])
    polygon = parse_polygons(feature)[0]
    assert len(polygon.interiors) == 1
    assert polygon.area == pytest.approx(96.0)


@pytest.mark.parametrize("payload", [
    None,
    "POLYGON((0 0, 1 0, 1 1, 0 0))",
    {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}},
    {"type": "Feature", "geometry": None},
    {"type": "LineString", "coordinates": [[0, 0], [1, 1]]},
    [{"type": "Feature"}],
])
def test_rejects_non_polygons(payload):
    with pytest.raises(InvalidPolygonError):
        parse_polygons(payload)


def test_rejects_bad_coordinates():
    feature = square_feature(0, 0)
    feature["geometry"]["coordinates"] = [[["a", 0], [1, 0], [1, 1]]]
    with pytest.raises(InvalidPolygonError, match="Invalid coordinates"):
        parse_polygons(feature)
    feature["geometry"]["coordinates"] = []
    with pytest.raises(InvalidPolygonError, match="Invalid coordinates"):
        parse_polygons(feature)


def test_rejects_out_of_range_and_degenerate():
    with pytest.raises(InvalidPolygonError, match="out of range"):
        parse_polygons(square_feature(179.5, 0))
    degenerate = square_feature(0, 0)
    degenerate["geometry"]["coordinates"] = [[[0, 0], [1, 1], [0, 0], [1, 1]]]
    with pytest.raises(InvalidPolygonError, match="three distinct"):
        parse_polygons(degenerate)


def test_rejects_self_intersection():
    bowtie = square_feature(0, 0)
    bowtie["geometry"]["coordinates"] = [[[0, 0], [1, 1], [1, 0], [0, 1], [0, 0]]]
    with pytest.raises(InvalidPolygonError, match="Invalid polygon"):
        parse_polygons(bowtie)


def test_polygon_count_limits():
    with pytest.raises(InvalidPolygonError, match="At least one"):
        parse_polygons([])
    with pytest.raises(InvalidPolygonError, match="Too many"):
        parse_polygons([square_feature(i, 0) for i in range(3)], max_polygons=2)


def test_to_wkt_is_lng_lat_polygon():
    polygon = parse_polygons(square_feature(-98, 30))[0]
    text = to_wkt(polygon)
    assert text.startswith("POLYGON")
    assert "-98 30" in text
    assert shapely_wkt.loads(text).equals(polygon)
