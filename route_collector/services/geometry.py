"""Conversion of route geometry from the remote WKT subset into GeoJSON."""

import logging
import math
import re
from typing import Any, Dict, List, Optional

from ..config import settings

logger = logging.getLogger(__name__)

Coordinate = List[float]

_POINT_RE = re.compile(r"^\s*POINT\s*\(\s*([^\s,()]+)\s+([^\s,()]+)\s*\)\s*$", re.IGNORECASE)
_LINESTRING_RE = re.compile(r"^\s*LINESTRING\s*\((.+)\)\s*$", re.IGNORECASE)


def find_route_item(document: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return the first result item of type ``route`` from a detail payload."""
    result = document.get("result")
    if not isinstance(result, dict):
        return None
    items = result.get("items")
    if not isinstance(items, list):
        return None
    for item in items:
        if isinstance(item, dict) and item.get("type") == "route":
            return item
    return None


def _to_coordinate(lon_text: str, lat_text: str) -> Coordinate:
    lon = float(lon_text)
    lat = float(lat_text)
    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise ValueError(f"non-finite coordinate {lon_text} {lat_text}")
    return [lon, lat]


class GeometryCodec:
    """Decode WKT points/line strings and build route feature collections."""

    def __init__(
        self,
        forward_label: Optional[str] = None,
        return_label: Optional[str] = None,
    ) -> None:
        self.forward_label = forward_label or settings.direction_forward_label
        self.return_label = return_label or settings.direction_return_label

    @staticmethod
    def parse_point(wkt: Optional[str]) -> Optional[Coordinate]:
        """
        Decode a ``POINT(lon lat)`` string.

        Returns:
            ``[lon, lat]`` or None when the string is not a valid point.
        """
        if not isinstance(wkt, str):
            return None
        match = _POINT_RE.match(wkt)
        if not match:
            return None
        try:
            return _to_coordinate(match.group(1), match.group(2))
        except ValueError:
            return None

    @staticmethod
    def parse_linestring(wkt: Optional[str]) -> List[Coordinate]:
        """
        Decode a ``LINESTRING(lon lat, lon lat, ...)`` string.

        Coordinate order is preserved. Any malformed pair invalidates the whole
        line and an empty list is returned.
        """
        if not isinstance(wkt, str):
            return []
        match = _LINESTRING_RE.match(wkt)
        if not match:
            return []
        coordinates: List[Coordinate] = []
        try:
            for pair in match.group(1).split(","):
                parts = pair.split()
                if len(parts) != 2:
                    raise ValueError(f"expected 'lon lat', got {pair!r}")
                coordinates.append(_to_coordinate(parts[0], parts[1]))
        except ValueError as exc:
            logger.warning("Failed to parse WKT line string: %s", exc)
            return []
        return coordinates

    @staticmethod
    def encode_point(coordinate: Coordinate) -> str:
        lon, lat = coordinate
        return f"POINT({float(lon)!r} {float(lat)!r})"

    @staticmethod
    def encode_linestring(coordinates: List[Coordinate]) -> str:
        pairs = ", ".join(f"{float(lon)!r} {float(lat)!r}" for lon, lat in coordinates)
        return f"LINESTRING({pairs})"

    def direction_label(self, direction: Dict[str, Any]) -> str:
        """Human readable label: ``forward`` is outbound, anything else is the return trip."""
        return self.forward_label if direction.get("type") == "forward" else self.return_label

    def to_feature_collection(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Convert a route detail payload into a GeoJSON FeatureCollection.

        Args:
            document: Full detail payload containing ``result.items``

        Returns:
            FeatureCollection with one Point per platform that has a centroid
            and one LineString per geometry segment.
        """
        features: List[Dict[str, Any]] = []

        route = find_route_item(document)
        if route is None:
            logger.error("No route item in detail payload; writing empty feature collection")
            return {"type": "FeatureCollection", "features": features}

        directions = route.get("directions")
        for direction in directions if isinstance(directions, list) else []:
            if not isinstance(direction, dict):
                continue
            label = self.direction_label(direction)

            platforms = direction.get("platforms")
            for platform in platforms if isinstance(platforms, list) else []:
                if not isinstance(platform, dict):
                    continue
                geometry = platform.get("geometry")
                if not isinstance(geometry, dict):
                    continue
                coordinate = self.parse_point(geometry.get("centroid"))
                if coordinate is None:
                    continue
                features.append(
                    {
                        "type": "Feature",
                        "geometry": {"type": "Point", "coordinates": coordinate},
                        "properties": {
                            "name": platform.get("name"),
                            "station_id": platform.get("station_id"),
                            "direction": label,
                            "type": "stop",
                        },
                    }
                )

            geometry = direction.get("geometry")
            segments = geometry.get("immersion") if isinstance(geometry, dict) else None
            for segment in segments if isinstance(segments, list) else []:
                if not isinstance(segment, dict):
                    continue
                coordinates = self.parse_linestring(segment.get("selection"))
                if not coordinates:
                    continue
                features.append(
                    {
                        "type": "Feature",
                        "geometry": {"type": "LineString", "coordinates": coordinates},
                        "properties": {
                            "name": f"{route.get('name')} — route",
                            "direction": label,
                            "type": "route",
                        },
                    }
                )

        return {"type": "FeatureCollection", "features": features}
