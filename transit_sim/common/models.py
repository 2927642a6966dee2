"""
Data models for the OnTime transit simulator.

This module contains dataclasses for routes, simulated bus state, arrival
estimates and demo scenarios. All models include validation methods to
ensure data integrity.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class InvalidRouteError(ValueError):
    """Raised when a route is malformed (too short or with zero-length segments)."""
    pass


class BusStatus(str, Enum):
    """Operational status of a simulated bus."""
    MOVING = "Moving"
    STOPPED = "Stopped"
    DELAYED = "Delayed"
    OUT_OF_SERVICE = "OutOfService"


DELAYED_THRESHOLD_MIN = 5.0


def derive_status(speed_kmh: float, delay_min: float) -> BusStatus:
    """
    Derive a bus status from speed and delay.

    - Zero speed: Stopped
    - Delay above 5 minutes: Delayed
    - Otherwise: Moving

    OutOfService is never derived; it is only set by an administrative override.
    """
    if speed_kmh == 0:
        return BusStatus.STOPPED
    if delay_min > DELAYED_THRESHOLD_MIN:
        return BusStatus.DELAYED
    return BusStatus.MOVING


class OccupancyTag(str, Enum):
    """Coarse bucket summarizing an occupancy percentage."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# Route Models

@dataclass(frozen=True)
class Waypoint:
    """
    A named geographic point on a route polyline.

    Attributes:
        name: Human-readable stop name
        lat: Latitude
        lng: Longitude
        stop_id: Optional stop identifier (the name is used when absent)
    """
    name: str
    lat: float
    lng: float
    stop_id: Optional[str] = None

    @property
    def key(self) -> str:
        """Identifier used to look the stop up in a route."""
        return self.stop_id or self.name

    @property
    def coordinate(self) -> Tuple[float, float]:
        return (self.lat, self.lng)

    def validate(self) -> None:
        """
        Validate waypoint data.

        Raises:
            ValueError: If validation fails
        """
        if not self.name:
            raise ValueError("name cannot be empty")
        if not (-90 <= self.lat <= 90):
            raise ValueError(f"lat must be between -90 and 90, got {self.lat}")
        if not (-180 <= self.lng <= 180):
            raise ValueError(f"lng must be between -180 and 180, got {self.lng}")


@dataclass(frozen=True)
class RoutePath:
    """
    An ordered, immutable sequence of waypoints describing one directed path.

    Use RoutePath.create() to build a validated route.

    Attributes:
        route_id: Unique identifier for the route
        name: Human-readable name of the route
        waypoints: Waypoints ordered start to end
        color_tag: Display colour for map overlays
    """
    route_id: str
    name: str
    waypoints: Tuple[Waypoint, ...]
    color_tag: str = "#84cc16"

    @classmethod
    def create(
        cls,
        route_id: str,
        name: str,
        waypoints: List[Waypoint],
        color_tag: str = "#84cc16"
    ) -> "RoutePath":
        """
        Build a route and validate it.

        Raises:
            InvalidRouteError: If fewer than 2 waypoints are given or two
                consecutive waypoints share a coordinate
        """
        route = cls(
            route_id=route_id,
            name=name,
            waypoints=tuple(waypoints),
            color_tag=color_tag
        )
        route.validate()
        return route

    def validate(self) -> None:
        """
        Validate route configuration.

        Raises:
            InvalidRouteError: If validation fails
        """
        if not self.route_id:
            raise InvalidRouteError("route_id cannot be empty")
        if len(self.waypoints) < 2:
            raise InvalidRouteError(
                f"route {self.route_id} must have at least 2 waypoints, got {len(self.waypoints)}"
            )

        for waypoint in self.waypoints:
            try:
                waypoint.validate()
            except ValueError as e:
                raise InvalidRouteError(f"route {self.route_id}: {e}")

        for previous, current in zip(self.waypoints, self.waypoints[1:]):
            if previous.coordinate == current.coordinate:
                raise InvalidRouteError(
                    f"route {self.route_id}: zero-length segment between "
                    f"'{previous.name}' and '{current.name}'"
                )

    @property
    def stop_count(self) -> int:
        return len(self.waypoints)

    def stop_index(self, stop_key: str) -> Optional[int]:
        """Index of the waypoint whose stop_id or name matches, or None."""
        for i, waypoint in enumerate(self.waypoints):
            if stop_key in (waypoint.stop_id, waypoint.name):
                return i
        return None

    def has_stop(self, stop_key: str) -> bool:
        return self.stop_index(stop_key) is not None

    def stop_progress(self, index: int) -> float:
        """Progress value at which a bus sits exactly on waypoint `index`."""
        return index / (len(self.waypoints) - 1)


# Simulation State Models

@dataclass(frozen=True)
class BusSimState:
    """
    Simulated state of one bus.

    Attributes:
        bus_id: Unique identifier for the bus
        route_id: Route this bus runs on
        progress: Fractional position along the route, in [0, 1)
        speed_kmh: Current speed in km/h
        delay_min: Delay against schedule in minutes (negative means early)
        occupancy_pct: Occupancy percentage (0-100)
        status: Operational status
        last_update: Time of the last update
    """
    bus_id: str
    route_id: str
    progress: float = 0.0
    speed_kmh: float = 0.0
    delay_min: float = 0.0
    occupancy_pct: int = 0
    status: BusStatus = BusStatus.STOPPED
    last_update: datetime = field(default_factory=datetime.now)

    def validate(self) -> None:
        """
        Validate bus state.

        Raises:
            ValueError: If validation fails
        """
        if not self.bus_id:
            raise ValueError("bus_id cannot be empty")
        if not self.route_id:
            raise ValueError("route_id cannot be empty")
        if not (0.0 <= self.progress < 1.0):
            raise ValueError(f"progress must be in [0.0, 1.0), got {self.progress}")
        if self.speed_kmh < 0:
            raise ValueError(f"speed_kmh must be non-negative, got {self.speed_kmh}")
        if not (0 <= self.occupancy_pct <= 100):
            raise ValueError(f"occupancy_pct must be between 0 and 100, got {self.occupancy_pct}")
        if self.status == BusStatus.STOPPED and self.speed_kmh != 0:
            raise ValueError(f"stopped bus must have zero speed, got {self.speed_kmh}")


@dataclass(frozen=True)
class StopArrivalEstimate:
    """
    Projected arrival window of one bus at one stop.

    Attributes:
        stop_id: Stop the estimate is for
        route_id: Route of the arriving bus
        bus_id: Arriving bus
        range_min_low: Earliest arrival, in minutes
        range_min_high: Latest arrival, in minutes
        confidence: Confidence score in [0, 1]
        occupancy_tag: Occupancy bucket of the arriving bus
    """
    stop_id: str
    route_id: str
    bus_id: str
    range_min_low: int
    range_min_high: int
    confidence: float
    occupancy_tag: OccupancyTag

    def validate(self) -> None:
        """
        Validate arrival estimate.

        Raises:
            ValueError: If validation fails
        """
        if self.range_min_low < 0:
            raise ValueError(f"range_min_low must be non-negative, got {self.range_min_low}")
        if self.range_min_high < self.range_min_low:
            raise ValueError(
                f"range_min_high ({self.range_min_high}) is below range_min_low ({self.range_min_low})"
            )
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(f"confidence must be between 0 and 1, got {self.confidence}")


@dataclass(frozen=True)
class FleetSnapshot:
    """Immutable view of the whole fleet at one virtual instant."""
    virtual_seconds: int
    tick_count: int
    scenario_id: Optional[str]
    buses: Tuple[BusSimState, ...]

    def get(self, bus_id: str) -> Optional[BusSimState]:
        for bus in self.buses:
            if bus.bus_id == bus_id:
                return bus
        return None


# Scenario Models

@dataclass(frozen=True)
class BusMetadata:
    """
    Fixed bus card shown during a scripted scenario.

    Attributes:
        bus_id: Unique identifier for the bus
        route_name: Display name of the route
        current_location: Where the bus is right now
        status_text: Free-form status line (e.g. "Boarding Passengers")
        passengers: Passengers on board
        total_seats: Seating capacity
        next_stops: Upcoming stop names
        driver_name: Driver shown on the card
        driver_rating: Driver rating (0-5)
        bus_number: Registration plate
    """
    bus_id: str
    route_name: str
    current_location: str
    status_text: str
    passengers: int
    total_seats: int
    next_stops: Tuple[str, ...] = ()
    driver_name: str = ""
    driver_rating: float = 0.0
    bus_number: str = ""

    @property
    def occupancy_pct(self) -> int:
        return round(self.passengers * 100 / self.total_seats)

    @property
    def crowd_status(self) -> str:
        pct = self.occupancy_pct
        if pct < 50:
            return "comfortable"
        if pct <= 85:
            return "crowded"
        return "packed"

    def validate(self) -> None:
        """
        Validate bus metadata.

        Raises:
            ValueError: If validation fails
        """
        if not self.bus_id:
            raise ValueError("bus_id cannot be empty")
        if self.total_seats <= 0:
            raise ValueError(f"total_seats must be positive, got {self.total_seats}")
        if not (0 <= self.passengers <= self.total_seats):
            raise ValueError(
                f"passengers must be between 0 and total_seats ({self.total_seats}), got {self.passengers}"
            )
        if not (0.0 <= self.driver_rating <= 5.0):
            raise ValueError(f"driver_rating must be between 0 and 5, got {self.driver_rating}")


@dataclass(frozen=True)
class ScenarioDescriptor:
    """
    A scripted override of the default fleet: one fixed route and one fixed bus.

    Attributes:
        scenario_id: Identifier of the scenario
        center: Map centre as (lat, lng)
        zoom_level: Map zoom level
        bus_metadata: Bus shown by the scenario
        route: Route the scenario bus runs on
    """
    scenario_id: str
    center: Tuple[float, float]
    zoom_level: int
    bus_metadata: BusMetadata
    route: RoutePath

    def validate(self) -> None:
        """
        Validate scenario descriptor.

        Raises:
            ValueError: If validation fails
        """
        if not self.scenario_id:
            raise ValueError("scenario_id cannot be empty")
        if not (0 <= self.zoom_level <= 22):
            raise ValueError(f"zoom_level must be between 0 and 22, got {self.zoom_level}")
        self.bus_metadata.validate()
        self.route.validate()
