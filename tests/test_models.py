"""
Unit tests for data models.

Tests cover route construction and validation, bus state invariants,
arrival estimates and scenario descriptors.
"""

import pytest

from transit_sim.common.models import (
    BusMetadata,
    BusSimState,
    BusStatus,
    FleetSnapshot,
    InvalidRouteError,
    OccupancyTag,
    RoutePath,
    ScenarioDescriptor,
    StopArrivalEstimate,
    Waypoint,
    derive_status,
)


@pytest.fixture
def three_stop_route():
    return RoutePath.create(
        route_id="R1",
        name="Test Route",
        waypoints=[
            Waypoint("Start", 30.70, 76.70, stop_id="A"),
            Waypoint("Middle", 30.71, 76.71, stop_id="B"),
            Waypoint("End", 30.72, 76.72),
        ]
    )


class TestWaypoint:
    """Tests for Waypoint model."""

    def test_key_prefers_stop_id(self):
        assert Waypoint("Plaza", 30.0, 76.0, stop_id="P1").key == "P1"

    def test_key_falls_back_to_name(self):
        assert Waypoint("Plaza", 30.0, 76.0).key == "Plaza"

    def test_coordinate(self):
        assert Waypoint("Plaza", 30.5, 76.5).coordinate == (30.5, 76.5)

    def test_invalid_latitude(self):
        with pytest.raises(ValueError, match="lat must be between -90 and 90"):
            Waypoint("Bad", 91.0, 76.0).validate()

    def test_invalid_longitude(self):
        with pytest.raises(ValueError, match="lng must be between -180 and 180"):
            Waypoint("Bad", 30.0, -181.0).validate()

    def test_empty_name(self):
        with pytest.raises(ValueError, match="name cannot be empty"):
            Waypoint("", 30.0, 76.0).validate()


class TestRoutePath:
    """Tests for RoutePath model."""

    def test_create_valid_route(self, three_stop_route):
        assert three_stop_route.route_id == "R1"
        assert three_stop_route.stop_count == 3
        assert isinstance(three_stop_route.waypoints, tuple)

    def test_create_single_waypoint_raises(self):
        with pytest.raises(InvalidRouteError, match="at least 2 waypoints"):
            RoutePath.create("R1", "Short", [Waypoint("Only", 30.0, 76.0)])

    def test_create_empty_route_raises(self):
        with pytest.raises(InvalidRouteError, match="at least 2 waypoints"):
            RoutePath.create("R1", "Empty", [])

    def test_create_zero_length_segment_raises(self):
        with pytest.raises(InvalidRouteError, match="zero-length segment"):
            RoutePath.create("R1", "Dup", [
                Waypoint("A", 30.0, 76.0),
                Waypoint("B", 30.0, 76.0),
            ])

    def test_repeated_non_consecutive_coordinate_allowed(self):
        route = RoutePath.create("LOOP", "Loop", [
            Waypoint("A", 30.0, 76.0),
            Waypoint("B", 30.1, 76.1),
            Waypoint("A again", 30.0, 76.0),
        ])
        assert route.stop_count == 3

    def test_invalid_waypoint_is_route_error(self):
        with pytest.raises(InvalidRouteError, match="lat must be between"):
            RoutePath.create("R1", "Bad", [
                Waypoint("A", 30.0, 76.0),
                Waypoint("B", 120.0, 76.0),
            ])

    def test_invalid_route_error_is_value_error(self):
        assert issubclass(InvalidRouteError, ValueError)

    def test_stop_index_by_id_and_name(self, three_stop_route):
        assert three_stop_route.stop_index("B") == 1
        assert three_stop_route.stop_index("Middle") == 1
        assert three_stop_route.stop_index("End") == 2
        assert three_stop_route.stop_index("Z") is None

    def test_has_stop(self, three_stop_route):
        assert three_stop_route.has_stop("A")
        assert not three_stop_route.has_stop("Nowhere")

    def test_stop_progress(self, three_stop_route):
        assert three_stop_route.stop_progress(0) == 0.0
        assert three_stop_route.stop_progress(1) == 0.5
        assert three_stop_route.stop_progress(2) == 1.0

    def test_route_is_immutable(self, three_stop_route):
        with pytest.raises(AttributeError):
            three_stop_route.name = "Changed"


class TestBusSimState:
    """Tests for BusSimState model."""

    def test_valid_state(self):
        BusSimState("B1", "R1", progress=0.5, speed_kmh=20.0, occupancy_pct=50,
                    status=BusStatus.MOVING).validate()

    def test_defaults(self):
        bus = BusSimState("B1", "R1")
        assert bus.progress == 0.0
        assert bus.speed_kmh == 0.0
        assert bus.status == BusStatus.STOPPED

    def test_progress_one_is_invalid(self):
        with pytest.raises(ValueError, match="progress must be in"):
            BusSimState("B1", "R1", progress=1.0).validate()

    def test_negative_progress_is_invalid(self):
        with pytest.raises(ValueError, match="progress must be in"):
            BusSimState("B1", "R1", progress=-0.1).validate()

    def test_negative_speed_is_invalid(self):
        with pytest.raises(ValueError, match="speed_kmh must be non-negative"):
            BusSimState("B1", "R1", speed_kmh=-1.0, status=BusStatus.MOVING).validate()

    def test_occupancy_out_of_range(self):
        with pytest.raises(ValueError, match="occupancy_pct must be between 0 and 100"):
            BusSimState("B1", "R1", occupancy_pct=101).validate()

    def test_stopped_bus_with_speed_is_invalid(self):
        with pytest.raises(ValueError, match="stopped bus must have zero speed"):
            BusSimState("B1", "R1", speed_kmh=10.0, status=BusStatus.STOPPED).validate()

    def test_negative_delay_is_valid(self):
        BusSimState("B1", "R1", speed_kmh=10.0, delay_min=-3.0,
                    status=BusStatus.MOVING).validate()

    def test_status_values(self):
        assert BusStatus.OUT_OF_SERVICE.value == "OutOfService"
        assert BusStatus("Delayed") == BusStatus.DELAYED


class TestDeriveStatus:
    """Tests for deriving a status from speed and delay."""

    @pytest.mark.parametrize("speed, delay, expected", [
        (0.0, 12.0, BusStatus.STOPPED),
        (18.0, 5.1, BusStatus.DELAYED),
        (18.0, 5.0, BusStatus.MOVING),
        (18.0, -2.0, BusStatus.MOVING),
    ])
    def test_derived_status(self, speed, delay, expected):
        assert derive_status(speed, delay) == expected


class TestStopArrivalEstimate:
    """Tests for StopArrivalEstimate model."""

    def test_valid_estimate(self):
        StopArrivalEstimate("S1", "R1", "B1", 3, 5, 0.89, OccupancyTag.LOW).validate()

    def test_high_below_low(self):
        with pytest.raises(ValueError, match="is below range_min_low"):
            StopArrivalEstimate("S1", "R1", "B1", 5, 3, 0.8, OccupancyTag.LOW).validate()

    def test_negative_low(self):
        with pytest.raises(ValueError, match="range_min_low must be non-negative"):
            StopArrivalEstimate("S1", "R1", "B1", -1, 3, 0.8, OccupancyTag.LOW).validate()

    def test_confidence_out_of_range(self):
        with pytest.raises(ValueError, match="confidence must be between 0 and 1"):
            StopArrivalEstimate("S1", "R1", "B1", 1, 3, 1.5, OccupancyTag.LOW).validate()


class TestFleetSnapshot:
    """Tests for FleetSnapshot model."""

    def test_get(self):
        bus = BusSimState("B1", "R1")
        snapshot = FleetSnapshot(virtual_seconds=10, tick_count=10, scenario_id=None, buses=(bus,))
        assert snapshot.get("B1") is bus
        assert snapshot.get("B2") is None


class TestBusMetadata:
    """Tests for BusMetadata model."""

    def _metadata(self, passengers, total_seats=60):
        return BusMetadata(
            bus_id="B1",
            route_name="Test",
            current_location="Depot",
            status_text="Boarding",
            passengers=passengers,
            total_seats=total_seats
        )

    def test_occupancy_pct_rounds(self):
        assert self._metadata(41).occupancy_pct == 68

    def test_crowd_status_buckets(self):
        assert self._metadata(20).crowd_status == "comfortable"
        assert self._metadata(30).crowd_status == "crowded"
        assert self._metadata(51).crowd_status == "crowded"
        assert self._metadata(52).crowd_status == "packed"

    def test_passengers_over_capacity(self):
        with pytest.raises(ValueError, match="passengers must be between"):
            self._metadata(61).validate()

    def test_zero_seats(self):
        with pytest.raises(ValueError, match="total_seats must be positive"):
            self._metadata(0, total_seats=0).validate()


class TestScenarioDescriptor:
    """Tests for ScenarioDescriptor model."""

    def test_invalid_zoom(self, three_stop_route):
        scenario = ScenarioDescriptor(
            scenario_id="demo",
            center=(30.7, 76.7),
            zoom_level=30,
            bus_metadata=BusMetadata("B1", "Test", "Depot", "Idle", 10, 60),
            route=three_stop_route
        )
        with pytest.raises(ValueError, match="zoom_level must be between 0 and 22"):
            scenario.validate()

    def test_empty_scenario_id(self, three_stop_route):
        scenario = ScenarioDescriptor(
            scenario_id="",
            center=(30.7, 76.7),
            zoom_level=15,
            bus_metadata=BusMetadata("B1", "Test", "Depot", "Idle", 10, 60),
            route=three_stop_route
        )
        with pytest.raises(ValueError, match="scenario_id cannot be empty"):
            scenario.validate()
