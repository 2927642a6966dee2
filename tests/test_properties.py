"""
Property-based tests for the OnTime transit simulator.

These tests use the Hypothesis library to verify universal properties
across randomized inputs, ensuring correctness at scale.
"""

import math

from hypothesis import given, settings, strategies as st

from transit_sim.common.config_loader import EngineConfig
from transit_sim.common.models import BusSimState, BusStatus, RoutePath, Waypoint
from transit_sim.engine.bus_simulator import derive_status, seeded_random, update_bus_state
from transit_sim.engine.clock import SimulationClock
from transit_sim.engine.eta_projector import project_arrivals
from transit_sim.engine.event_bus import DemoEventBus
from transit_sim.engine.interpolator import position_at
from transit_sim.engine.scenarios import default_fleet, default_routes, sector17_scenario
from transit_sim.engine.simulation_engine import SimulationEngine


# Strategy for generating coordinates
latitudes = st.floats(min_value=-89.0, max_value=89.0, allow_nan=False, allow_infinity=False)
longitudes = st.floats(min_value=-179.0, max_value=179.0, allow_nan=False, allow_infinity=False)

# Strategy for generating progress values in [0, 1)
progress_values = st.floats(min_value=0.0, max_value=1.0, exclude_max=True, allow_nan=False)

# Strategy for generating bus statuses
statuses = st.sampled_from([BusStatus.MOVING, BusStatus.STOPPED, BusStatus.DELAYED])


def _distinct_consecutive(points):
    return all(a != b for a, b in zip(points, points[1:]))


@st.composite
def routes(draw):
    """Valid routes with 2 to 8 waypoints."""
    points = draw(
        st.lists(st.tuples(latitudes, longitudes), min_size=2, max_size=8)
        .filter(_distinct_consecutive)
    )
    return RoutePath.create(
        route_id="P1",
        name="Generated",
        waypoints=[Waypoint(f"W{i}", lat, lng, stop_id=f"W{i}") for i, (lat, lng) in enumerate(points)]
    )


@st.composite
def bus_states(draw):
    status = draw(statuses)
    speed = 0.0 if status == BusStatus.STOPPED else draw(st.floats(min_value=0.1, max_value=45.0))
    return BusSimState(
        bus_id=draw(st.text(min_size=1, max_size=8, alphabet="ABCDEFG0123456789")),
        route_id="R1",
        progress=draw(progress_values),
        speed_kmh=speed,
        delay_min=draw(st.floats(min_value=-20.0, max_value=30.0)),
        occupancy_pct=draw(st.integers(min_value=0, max_value=100)),
        status=status
    )


def _between(value, a, b, tolerance=1e-9):
    return min(a, b) - tolerance <= value <= max(a, b) + tolerance


class TestInterpolationBounds:
    """
    Interpolated positions stay on the polyline.

    For every valid route and progress in [0, 1), position_at returns a point
    on the segment between two consecutive waypoints.
    """

    @settings(max_examples=100)
    @given(route=routes(), progress=progress_values)
    def test_position_on_bracketing_segment(self, route, progress):
        position = position_at(route, progress)

        assert 0 <= position.current_stop_index < route.stop_count - 1
        assert position.next_stop_index == position.current_stop_index + 1
        assert 0.0 <= position.local_t <= 1.0

        start = route.waypoints[position.current_stop_index]
        end = route.waypoints[position.next_stop_index]
        assert _between(position.lat, start.lat, end.lat)
        assert _between(position.lng, start.lng, end.lng)

        expected_lat = start.lat + (end.lat - start.lat) * position.local_t
        expected_lng = start.lng + (end.lng - start.lng) * position.local_t
        assert math.isclose(position.lat, expected_lat, abs_tol=1e-9)
        assert math.isclose(position.lng, expected_lng, abs_tol=1e-9)


class TestInterpolationEndpoints:
    """
    Progress 0 sits on the first waypoint; progress approaching 1 approaches the last.
    """

    @settings(max_examples=100)
    @given(route=routes())
    def test_start_is_first_waypoint(self, route):
        position = position_at(route, 0.0)
        first = route.waypoints[0]
        assert (position.lat, position.lng) == (first.lat, first.lng)

    @settings(max_examples=100)
    @given(route=routes())
    def test_end_approaches_last_waypoint(self, route):
        position = position_at(route, 1.0 - 1e-12)
        last = route.waypoints[-1]
        assert math.isclose(position.lat, last.lat, abs_tol=1e-6)
        assert math.isclose(position.lng, last.lng, abs_tol=1e-6)


class TestClockInvariant:
    """
    Virtual time stays within [0, period) after every clock operation.
    """

    @settings(max_examples=100)
    @given(
        period=st.integers(min_value=1, max_value=100000),
        operations=st.lists(
            st.one_of(
                st.tuples(st.just("tick"), st.integers(min_value=0, max_value=200000)),
                st.tuples(st.sampled_from(["pause", "resume", "reset"]), st.none())
            ),
            max_size=50
        )
    )
    def test_virtual_seconds_in_range(self, period, operations):
        clock = SimulationClock(period_seconds=period, running=True)

        for name, argument in operations:
            if name == "tick":
                clock.tick(argument)
            else:
                getattr(clock, name)()
            assert 0 <= clock.virtual_seconds < period


class TestStatusDerivation:
    """
    derive_status is a pure function of speed and delay.
    """

    @settings(max_examples=100)
    @given(
        speed=st.floats(min_value=0.0, max_value=45.0),
        delay=st.floats(min_value=-60.0, max_value=60.0)
    )
    def test_same_inputs_same_status(self, speed, delay):
        status = derive_status(speed, delay)
        assert derive_status(speed, delay) == status
        assert status != BusStatus.OUT_OF_SERVICE
        if speed == 0:
            assert status == BusStatus.STOPPED


class TestUpdateRuleInvariants:
    """
    Repeated updates keep occupancy in [0, 100], progress in [0, 1)
    and zero speed for stopped buses.
    """

    @settings(max_examples=100)
    @given(
        bus=bus_states(),
        seed=st.integers(min_value=0, max_value=2 ** 32 - 1),
        ticks=st.integers(min_value=1, max_value=200),
        progress_delta=st.floats(min_value=0.0, max_value=0.5)
    )
    def test_invariants_hold_across_ticks(self, bus, seed, ticks, progress_delta):
        draw = seeded_random(seed)

        for _ in range(ticks):
            bus = update_bus_state(bus, draw, progress_delta=progress_delta)
            assert 0 <= bus.occupancy_pct <= 100
            assert 0.0 <= bus.progress < 1.0
            assert bus.status == derive_status(bus.speed_kmh, bus.delay_min)
            bus.validate()


class TestEtaOrdering:
    """
    project_arrivals returns estimates sorted ascending by range_min_low.
    """

    @settings(max_examples=100)
    @given(
        progresses=st.lists(progress_values, min_size=0, max_size=12),
        stop_index=st.integers(min_value=0, max_value=5)
    )
    def test_estimates_sorted(self, progresses, stop_index):
        route = default_routes()[0]
        fleet = [
            BusSimState(f"B{i}", route.route_id, progress=p, speed_kmh=20.0, status=BusStatus.MOVING)
            for i, p in enumerate(progresses)
        ]
        stop_id = route.waypoints[stop_index].key

        estimates = project_arrivals(stop_id, {route.route_id: route}, fleet)

        lows = [e.range_min_low for e in estimates]
        assert lows == sorted(lows)
        assert len(estimates) == len(fleet)
        for estimate in estimates:
            estimate.validate()


class TestScenarioEndToEnd:
    """
    Publishing the Sector 17 scenario delivers exactly that descriptor, and
    its route starts at the Sector 17 Plaza coordinate.
    """

    def test_handler_receives_descriptor(self):
        events = DemoEventBus()
        received = []
        events.subscribe(received.append)
        scenario = sector17_scenario()

        events.publish(scenario)

        assert received == [scenario]
        assert received[0].bus_metadata.bus_id == "CHD-S17-001"
        assert len(received[0].route.waypoints) == 6
        assert received[0].route.waypoints[0].name == "Sector 17 Plaza"
        assert received[0].route.waypoints[-1].name == "Elante Mall"

        position = position_at(received[0].route, 0.0)
        assert (position.lat, position.lng) == (30.7333, 76.7794)


class TestTickIndependence:
    """
    Views sampling at different cadences see identical fleet state whenever
    they sample at the same virtual time.
    """

    @settings(max_examples=50, deadline=None)
    @given(
        first_interval=st.integers(min_value=1, max_value=20),
        second_interval=st.integers(min_value=1, max_value=20),
        tick_interval=st.integers(min_value=1, max_value=15),
        duration=st.integers(min_value=1, max_value=120),
        seed=st.integers(min_value=0, max_value=1000)
    )
    def test_coincident_samples_agree(self, first_interval, second_interval, tick_interval, duration, seed):
        first, second = {}, {}
        config = EngineConfig(tick_interval_seconds=tick_interval, seed=seed)

        with SimulationEngine(default_routes(), default_fleet(), config=config) as engine:
            engine.start()
            engine.attach_view("fast", first_interval,
                               lambda s: first.__setitem__(s.virtual_seconds, s.buses))
            engine.attach_view("slow", second_interval,
                               lambda s: second.__setitem__(s.virtual_seconds, s.buses))
            engine.advance(duration)

        for virtual_time in set(first) & set(second):
            assert first[virtual_time] == second[virtual_time]
