"""
Stop arrival projection for the OnTime transit simulator.

This module derives arrival windows, confidence scores and occupancy tags
for a stop from the simulated state of the buses whose routes serve it.
"""

import math
from typing import Dict, Iterable, List

from transit_sim.common.models import (
    BusSimState,
    BusStatus,
    OccupancyTag,
    RoutePath,
    StopArrivalEstimate,
)
from transit_sim.engine.interpolator import distance_between_m

DEFAULT_NOMINAL_SPEED_KMH = 20.0
MAX_CONFIDENCE = 0.95
MIN_CONFIDENCE = 0.3
CONFIDENCE_DECAY_PER_MIN = 0.02


class UnknownStopError(ValueError):
    """Raised when a stop is not part of any supplied route."""
    pass


def occupancy_tag(occupancy_pct: float) -> OccupancyTag:
    """
    Bucket an occupancy percentage.

    - Below 40%: Low
    - 40% to 70%: Medium
    - Above 70%: High
    """
    if occupancy_pct < 40:
        return OccupancyTag.LOW
    if occupancy_pct <= 70:
        return OccupancyTag.MEDIUM
    return OccupancyTag.HIGH


def arrival_confidence(minutes_away: float) -> float:
    """
    Confidence score for an arrival `minutes_away` minutes out.

    Starts at 0.95 for a bus at the stop and drops by 0.02 per minute,
    never going below 0.3.
    """
    confidence = MAX_CONFIDENCE - CONFIDENCE_DECAY_PER_MIN * minutes_away
    return round(max(MIN_CONFIDENCE, confidence), 2)


def arrival_window(minutes_away: float) -> tuple:
    """
    Whole-minute arrival window for a bus `minutes_away` minutes out.

    The window widens by one minute for every ten minutes of travel.
    """
    low = int(math.floor(minutes_away))
    high = low + 2 + int(minutes_away // 10)
    return low, high


def format_arrival_window(low: int, high: int) -> str:
    """
    Human-readable countdown for an arrival window.

    Examples:
        >>> format_arrival_window(0, 2)
        'Arrived'
        >>> format_arrival_window(4, 6)
        '4 min'
        >>> format_arrival_window(12, 15)
        '12-15 min'
    """
    if low <= 0:
        return "Arrived"
    if low <= 5:
        return f"{low} min"
    return f"{low}-{high} min"


def project_arrivals(
    stop_id: str,
    routes_by_id: Dict[str, RoutePath],
    bus_states: Iterable[BusSimState],
    nominal_speed_kmh: float = DEFAULT_NOMINAL_SPEED_KMH
) -> List[StopArrivalEstimate]:
    """
    Project arrivals at a stop from the current fleet state.

    For each bus whose route contains the stop:
    1. Measure the distance along the route from the bus to the stop
       (a bus that already passed the stop reaches it on its next run)
    2. Convert the distance to minutes at the nominal speed
    3. Derive the arrival window, confidence and occupancy tag

    Buses that are out of service are skipped.

    Args:
        stop_id: Stop identifier or name
        routes_by_id: Routes keyed by route_id
        bus_states: Current state of the fleet
        nominal_speed_kmh: Assumed travel speed

    Returns:
        Estimates sorted ascending by range_min_low (empty if no bus serves the stop)

    Raises:
        UnknownStopError: If no supplied route contains the stop
        ValueError: If nominal_speed_kmh is not positive
    """
    if nominal_speed_kmh <= 0:
        raise ValueError(f"nominal_speed_kmh must be positive, got {nominal_speed_kmh}")

    if not any(route.has_stop(stop_id) for route in routes_by_id.values()):
        raise UnknownStopError(f"Stop not found in any route: {stop_id}")

    meters_per_minute = nominal_speed_kmh * 1000 / 60
    estimates: List[StopArrivalEstimate] = []

    for bus in bus_states:
        if bus.status == BusStatus.OUT_OF_SERVICE:
            continue

        route = routes_by_id.get(bus.route_id)
        if route is None:
            continue

        stop_index = route.stop_index(stop_id)
        if stop_index is None:
            continue

        distance = distance_between_m(route, bus.progress, route.stop_progress(stop_index))
        minutes_away = distance / meters_per_minute
        low, high = arrival_window(minutes_away)

        estimates.append(StopArrivalEstimate(
            stop_id=route.waypoints[stop_index].key,
            route_id=route.route_id,
            bus_id=bus.bus_id,
            range_min_low=low,
            range_min_high=high,
            confidence=arrival_confidence(minutes_away),
            occupancy_tag=occupancy_tag(bus.occupancy_pct)
        ))

    estimates.sort(key=lambda e: (e.range_min_low, e.range_min_high, e.bus_id))
    return estimates
