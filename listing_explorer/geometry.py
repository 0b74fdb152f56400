# listing_explorer/geometry.py
"""GeoJSON polygon parsing and WKT conversion for the spatial search.

Clients send whatever the drawing tool emitted: one Feature, a list of
Features, a FeatureCollection or bare Polygon geometries. Everything is turned
into validated shapely polygons; PostGIS receives them as WKT in EPSG:4326.
"""
import numbers
from typing import Any, List

from shapely.geometry import Polygon
from shapely.validation import explain_validity

from .utils import env_int

MAX_SEARCH_POLYGONS = env_int("MAX_SEARCH_POLYGONS", 20)
SRID = 4326

INVALID_POLYGON_MESSAGE = "Invalid polygon data. Expected GeoJSON Polygon feature."


class InvalidPolygonError(ValueError):
    pass


def _features(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        kind = payload.get("type")
        if kind == "FeatureCollection":
            features = payload.get("features")
            if not isinstance(features, list):
                raise InvalidPolygonError(INVALID_POLYGON_MESSAGE)
            return features
        if kind in ("Feature", "Polygon"):
            return [payload]
    raise InvalidPolygonError(INVALID_POLYGON_MESSAGE)


def _geometry(feature: Any) -> dict:
    if not isinstance(feature, dict):
        raise InvalidPolygonError(INVALID_POLYGON_MESSAGE)
    geometry = feature.get("geometry") if feature.get("type") == "Feature" else feature
    if not isinstance(geometry, dict) or geometry.get("type") != "Polygon":
        raise InvalidPolygonError(INVALID_POLYGON_MESSAGE)
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list) or not coordinates or not isinstance(coordinates[0], list):
        raise InvalidPolygonError("Invalid coordinates in polygon")
    return geometry


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _ring(raw: Any) -> List[tuple]:
    if not isinstance(raw, list):
        raise InvalidPolygonError("Invalid coordinates in polygon")
    ring = []
    for position in raw:
        if (not isinstance(position, (list, tuple)) or len(position) < 2
                or not _is_number(position[0]) or not _is_number(position[1])):
            raise InvalidPolygonError("Invalid coordinates in polygon")
        lng, lat = float(position[0]), float(position[1])
        if not -180 <= lng <= 180 or not -90 <= lat <= 90:
            raise InvalidPolygonError(f"Coordinate out of range: [{lng}, {lat}]")
        ring.append((lng, lat))
    if len(set(ring)) < 3:
        raise InvalidPolygonError("Polygon ring needs at least three distinct positions")
    return ring


def to_polygon(geometry: dict) -> Polygon:
    rings = [_ring(r) for r in geometry["coordinates"]]
    # shapely closes open rings
    polygon = Polygon(rings[0], rings[1:])
    if not polygon.is_valid:
        raise InvalidPolygonError(f"Invalid polygon: {explain_validity(polygon)}")
    return polygon


def parse_polygons(payload: Any, max_polygons: int = None) -> List[Polygon]:
    """Turn a request payload into a list of valid polygons.

    Raises InvalidPolygonError for unsupported shapes, bad coordinates,
    self-intersections, an empty payload or too many polygons.
    """
    limit = MAX_SEARCH_POLYGONS if max_polygons is None else max_polygons
    features = _features(payload)
    if not features:
        raise InvalidPolygonError("At least one polygon is required")
    if len(features) > limit:
        raise InvalidPolygonError(f"Too many polygons: {len(features)} (max {limit})")
    return [to_polygon(_geometry(f)) for f in features]


def to_wkt(polygon: Polygon) -> str:
    return polygon.wkt
