"""
Crosswalk polygons and point-in-polygon membership.

Polygons are stored the way GeoJSON and the map layer store them,
(longitude, latitude) per vertex, optionally closed by repeating the first
vertex. Query points come from the tracker and are (latitude, longitude).
Both conventions are handled here so callers don't have to flip anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from crosswalk_sentinel.errors import InvalidCoordinate
from crosswalk_sentinel.geo.convert import ensure_pair


@dataclass(frozen=True)
class CrosswalkZone:
    name: str
    polygon: tuple[tuple[float, float], ...]  # (lon, lat) vertices

    @classmethod
    def from_vertices(cls, name: str, vertices: Iterable[Sequence[float]]) -> "CrosswalkZone":
        """Validate vertices and drop the closing duplicate if present."""
        polygon = [ensure_pair(v, f"crosswalk '{name}' vertex") for v in vertices]
        if len(polygon) > 1 and polygon[0] == polygon[-1]:
            polygon = polygon[:-1]
        if len(polygon) < 3:
            raise InvalidCoordinate(
                f"crosswalk '{name}' needs at least 3 distinct vertices, got {len(polygon)}"
            )
        return cls(name=name, polygon=tuple(polygon))

    def contains(self, point_lat_lon: Sequence[float]) -> bool:
        return point_in_polygon(point_lat_lon, self.polygon)


def point_in_polygon(
    point_lat_lon: Sequence[float],
    polygon_lon_lat: Sequence[Sequence[float]],
) -> bool:
    """
    Ray-casting test for a (lat, lon) point against a (lon, lat) polygon.

    Points exactly on an edge may land on either side; crosswalk edges are
    painted lines, so that ambiguity doesn't matter here.
    """
    lat, lon = ensure_pair(point_lat_lon, "query point")
    vertices = [(v[1], v[0]) for v in polygon_lon_lat]  # → (lat, lon)
    if len(vertices) > 1 and vertices[0] == vertices[-1]:
        vertices = vertices[:-1]

    inside = False
    j = len(vertices) - 1
    for i in range(len(vertices)):
        lat_i, lon_i = vertices[i]
        lat_j, lon_j = vertices[j]
        if (lat_i > lat) != (lat_j > lat):
            crossing = (lon_j - lon_i) * (lat - lat_i) / (lat_j - lat_i) + lon_i
            if lon < crossing:
                inside = not inside
        j = i
    return inside


def active_crosswalks(point_lat_lon: Sequence[float], zones: Iterable[CrosswalkZone]) -> list[str]:
    """Names of every zone that contains the point, in zone order."""
    return [zone.name for zone in zones if zone.contains(point_lat_lon)]


def is_in_crosswalk(point_lat_lon: Sequence[float], zones: Iterable[CrosswalkZone]) -> bool:
    return any(zone.contains(point_lat_lon) for zone in zones)
