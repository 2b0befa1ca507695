"""Geofence math: great-circle distance and outlet zone resolution."""
import math
from dataclasses import dataclass
from typing import Any, NamedTuple, Optional, Sequence

EARTH_RADIUS_METERS = 6371000


class Coordinate(NamedTuple):
    latitude: float
    longitude: float


@dataclass
class ZoneResolution:
    """Result of resolving a point against the active zones.

    `matched` is the first zone (in iteration order) whose radius contains the
    point. `nearest` is the closest zone by pure distance, reported even when
    nothing matched so the caller can say how far away the user is.
    """
    matched: Optional[Any] = None
    matched_distance: Optional[float] = None
    nearest: Optional[Any] = None
    nearest_distance: Optional[float] = None


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in meters between two coordinates."""
    phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding can push h a hair outside [0, 1]
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def resolve_zone(point: Coordinate, zones: Sequence[Any]) -> ZoneResolution:
    """Find the zone containing `point`.

    Zones need `latitude`, `longitude` and `radius` attributes. First match
    wins: overlapping zones resolve to whichever is listed first, even if a
    later one is closer.
    """
    result = ZoneResolution()

    for zone in zones:
        if getattr(zone, "is_active", True) is False:
            continue

        distance = distance_meters(point, Coordinate(zone.latitude, zone.longitude))

        if result.nearest_distance is None or distance < result.nearest_distance:
            result.nearest = zone
            result.nearest_distance = distance

        if distance <= zone.radius:
            result.matched = zone
            result.matched_distance = distance
            break

    return result
