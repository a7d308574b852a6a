# geometry.py
"""
Geodesic area of drawn field boundaries.

Rings are sequences of (longitude, latitude) pairs in degrees. The area uses
the spherical-excess approximation on a sphere of the WGS84 equatorial radius,
which is what map drawing widgets report for drawn polygons.
"""
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple

from shapely.geometry import Polygon, mapping, shape

LOG = logging.getLogger("agriyield.geometry")

EARTH_RADIUS_M = 6378137.0
SQ_METERS_PER_HECTARE = 10000.0

Point = Tuple[float, float]


@dataclass(frozen=True)
class MeasuredBoundary:
    area_m2: float
    area_hectares: float
    payload: str  # GeoJSON Feature string, "" for an empty boundary

    @property
    def is_empty(self) -> bool:
        return not self.payload

    def to_dict(self) -> dict:
        return {
            "area_m2": self.area_m2,
            "area_hectares": self.area_hectares,
            "geojson": self.payload,
        }


EMPTY_BOUNDARY = MeasuredBoundary(area_m2=0.0, area_hectares=0.0, payload="")


def normalize_ring(ring: Sequence[Sequence[float]]) -> List[Point]:
    """
    Return the ring as open (lon, lat) float tuples: entries that are not
    numeric pairs are skipped and a repeated closing point is dropped.
    """
    pts: List[Point] = []
    for p in ring or []:
        try:
            pts.append((float(p[0]), float(p[1])))
        except (TypeError, ValueError, IndexError):
            continue
    if len(pts) > 1 and pts[0] == pts[-1]:
        pts = pts[:-1]
    return pts


def geodesic_area_m2(ring: Sequence[Sequence[float]]) -> float:
    pts = normalize_ring(ring)
    if len(set(pts)) < 3:
        return 0.0
    total = 0.0
    n = len(pts)
    for i in range(n):
        lon1, lat1 = pts[i]
        lon2, lat2 = pts[(i + 1) % n]
        total += math.radians(lon2 - lon1) * (
            2 + math.sin(math.radians(lat1)) + math.sin(math.radians(lat2))
        )
    return abs(total * EARTH_RADIUS_M * EARTH_RADIUS_M / 2.0)


def ring_to_geojson(ring: Sequence[Sequence[float]]) -> str:
    pts = normalize_ring(ring)
    if len(set(pts)) < 3:
        return ""
    feature = {"type": "Feature", "properties": {}, "geometry": mapping(Polygon(pts))}
    return json.dumps(feature, separators=(",", ":"))


def measure_ring(ring: Sequence[Sequence[float]]) -> MeasuredBoundary:
    """
    Measure a drawn ring. Degenerate input (fewer than 3 distinct vertices)
    gives EMPTY_BOUNDARY; self-intersecting rings are measured as-is.
    """
    pts = normalize_ring(ring)
    if len(set(pts)) < 3:
        return EMPTY_BOUNDARY
    area_m2 = geodesic_area_m2(pts)
    return MeasuredBoundary(
        area_m2=area_m2,
        area_hectares=area_m2 / SQ_METERS_PER_HECTARE,
        payload=ring_to_geojson(pts),
    )


def _first_exterior(geom) -> List[Point]:
    if geom.is_empty:
        return []
    if geom.geom_type == "Polygon":
        return list(geom.exterior.coords)
    if geom.geom_type == "MultiPolygon":
        return list(geom.geoms[0].exterior.coords)
    return []


def ring_from_geojson(geojson: Any) -> List[Point]:
    """
    Extract the outer ring from a GeoJSON Feature, Polygon or MultiPolygon
    (first polygon). Accepts a dict or a JSON string; returns [] when there is
    nothing usable.
    """
    if not geojson:
        return []
    if isinstance(geojson, str):
        try:
            geojson = json.loads(geojson)
        except ValueError:
            LOG.warning("ring_from_geojson: not valid JSON")
            return []
    if not isinstance(geojson, dict):
        return []
    if geojson.get("type") == "Feature":
        geojson = geojson.get("geometry") or {}
    try:
        geom = shape(geojson)
    except Exception as e:
        LOG.warning("ring_from_geojson: unusable geometry: %s", e)
        return []
    return normalize_ring(_first_exterior(geom))


def measure_geojson(geojson: Any) -> MeasuredBoundary:
    return measure_ring(ring_from_geojson(geojson))


def rounded_hectares(area_hectares: float) -> float:
    """Hectares as persisted: two decimals."""
    return round(float(area_hectares), 2)
