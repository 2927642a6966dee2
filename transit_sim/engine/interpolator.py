"""
Route interpolation for the OnTime transit simulator.

This module maps a scalar progress value onto a route polyline. Progress is
spread evenly across segments: with N waypoints, each segment covers
1 / (N - 1) of the progress range regardless of its physical length, so a
bus sits exactly on waypoint k at progress k / (N - 1).
"""

import math
from dataclasses import dataclass
from typing import List

from transit_sim.common.models import InvalidRouteError, RoutePath

# Earth radius in meters
EARTH_RADIUS_M = 6371000


@dataclass(frozen=True)
class Position:
    """
    Continuous position of a bus on its route.

    Attributes:
        lat: Interpolated latitude
        lng: Interpolated longitude
        current_stop_index: Index of the waypoint the bus last passed
        next_stop_index: Index of the waypoint the bus is heading to
        local_t: Fraction of the current segment already covered, in [0, 1)
        current_stop: Name of the last passed waypoint
        next_stop: Name of the next waypoint
    """
    lat: float
    lng: float
    current_stop_index: int
    next_stop_index: int
    local_t: float
    current_stop: str
    next_stop: str


def _check_route(route: RoutePath) -> int:
    count = len(route.waypoints)
    if count < 2:
        raise InvalidRouteError(
            f"route {route.route_id} must have at least 2 waypoints, got {count}"
        )
    return count


def _segment_at(progress: float, count: int):
    p = progress * (count - 1)
    segment = min(max(int(math.floor(p)), 0), count - 2)
    return segment, p - segment


def position_at(route: RoutePath, progress: float) -> Position:
    """
    Compute the continuous position of a bus at `progress` along `route`.

    Algorithm:
    1. Map progress onto a continuous segment index p = progress * (N - 1)
    2. segment = floor(p), clamped to [0, N - 2]
    3. local_t = p - segment
    4. Linearly interpolate lat/lng between waypoint[segment] and waypoint[segment + 1]

    Wrapping progress back below 1.0 is the caller's job.

    Args:
        route: Route to interpolate along
        progress: Fractional position, in [0, 1)

    Returns:
        Position with coordinates and bracketing stop indices

    Raises:
        InvalidRouteError: If the route has fewer than 2 waypoints
        ValueError: If progress is outside [0, 1)
    """
    count = _check_route(route)

    if not (0.0 <= progress < 1.0):
        raise ValueError(f"progress must be in [0.0, 1.0), got {progress}")

    segment, local_t = _segment_at(progress, count)

    start = route.waypoints[segment]
    end = route.waypoints[segment + 1]

    lat = start.lat + (end.lat - start.lat) * local_t
    lng = start.lng + (end.lng - start.lng) * local_t

    next_index = min(segment + 1, count - 1)

    return Position(
        lat=lat,
        lng=lng,
        current_stop_index=segment,
        next_stop_index=next_index,
        local_t=local_t,
        current_stop=start.name,
        next_stop=route.waypoints[next_index].name
    )


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Calculate distance between two coordinates using Haversine formula.

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)

    a = math.sin(delta_lat / 2) ** 2 + \
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def segment_lengths_m(route: RoutePath) -> List[float]:
    """Length of every segment of the route, in meters."""
    _check_route(route)
    return [
        haversine_m(start.lat, start.lng, end.lat, end.lng)
        for start, end in zip(route.waypoints, route.waypoints[1:])
    ]


def route_length_m(route: RoutePath) -> float:
    """Total length of the route polyline, in meters."""
    return sum(segment_lengths_m(route))


def _distance_from_start(lengths: List[float], progress: float) -> float:
    if progress >= 1.0:
        return sum(lengths)
    segment, local_t = _segment_at(progress, len(lengths) + 1)
    return sum(lengths[:segment]) + lengths[segment] * local_t


def distance_between_m(route: RoutePath, from_progress: float, to_progress: float) -> float:
    """
    Distance travelled along the route going forward from one progress value to another.

    When `to_progress` lies behind `from_progress` the bus has to finish the
    route and start over, so the distance covers the rest of the route plus
    the stretch from the first waypoint to `to_progress`.

    Args:
        route: Route to measure along
        from_progress: Starting progress, in [0, 1]
        to_progress: Target progress, in [0, 1]

    Returns:
        Distance in meters
    """
    lengths = segment_lengths_m(route)

    start = _distance_from_start(lengths, from_progress)
    target = _distance_from_start(lengths, to_progress)

    if target >= start:
        return target - start
    return (sum(lengths) - start) + target
