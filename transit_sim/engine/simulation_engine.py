"""
Simulation engine for the OnTime transit simulator.

The engine owns one simulated fleet together with its clock, its timers and
its random source. Each live view creates its own engine and disposes of it
when it goes away; nothing here is process-wide.

Timers:
    clock         every 1s, advances the virtual clock
    resimulation  every tick_interval_seconds, applies the update rule to the fleet
    view:<name>   one per attached display adapter, at the adapter's cadence
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from transit_sim.common.config_loader import EngineConfig, ProgressDriver, load_configuration
from transit_sim.common.models import (
    BusSimState,
    BusStatus,
    FleetSnapshot,
    RoutePath,
    ScenarioDescriptor,
    StopArrivalEstimate,
)
from transit_sim.engine.bus_simulator import (
    RandomDraw,
    advance_progress,
    derive_status,
    seeded_random,
    update_bus_state,
)
from transit_sim.engine.clock import SimulationClock
from transit_sim.engine.eta_projector import project_arrivals
from transit_sim.engine.event_bus import DemoEventBus
from transit_sim.engine.interpolator import Position, position_at
from transit_sim.engine.scenarios import scenario_fleet
from transit_sim.engine.scheduler import TimerHandle, TimerScheduler

logger = logging.getLogger(__name__)

ViewCallback = Callable[[FleetSnapshot], None]

RESTORED_SPEED_KMH = 20.0


class EngineDisposedError(RuntimeError):
    """Raised when a disposed engine is used."""
    pass


class SimulationEngine:
    """
    Owns the simulated fleet and drives it from its timers.

    Usage:
        with SimulationEngine(routes, fleet, config) as engine:
            engine.start()
            with engine.view("table", 15, render_table):
                engine.advance(60)
    """

    def __init__(
        self,
        routes: Iterable[RoutePath],
        fleet: Dict[str, BusSimState],
        config: Optional[EngineConfig] = None,
        draw: Optional[RandomDraw] = None,
        event_bus: Optional[DemoEventBus] = None,
        time_source: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the engine. Timers only start with start().

        Args:
            routes: Routes of the default network
            fleet: Seed fleet keyed by bus_id
            config: Simulation settings (defaults apply when omitted)
            draw: Uniform random source for the update rule (seeded from config.seed when omitted)
            event_bus: Scenario channel to follow, if any
            time_source: Wall clock in seconds, used by the elapsedTime driver and run()
            sleep: Sleep function used by run()

        Raises:
            ConfigurationError: If the settings are invalid
            ValueError: If a bus references an unknown route
        """
        self.config = config or EngineConfig()
        self.config.validate()

        self._default_routes: Dict[str, RoutePath] = {route.route_id: route for route in routes}
        self._default_fleet: Dict[str, BusSimState] = dict(fleet)

        for bus in self._default_fleet.values():
            bus.validate()
            if bus.route_id not in self._default_routes:
                raise ValueError(f"Bus {bus.bus_id} references unknown route: {bus.route_id}")

        self.routes: Dict[str, RoutePath] = dict(self._default_routes)
        self._fleet: Dict[str, BusSimState] = dict(self._default_fleet)
        self.scenario: Optional[ScenarioDescriptor] = None

        self._draw = draw or seeded_random(self.config.seed)
        self._time_source = time_source
        self._sleep = sleep
        self._last_step_time: Optional[float] = None

        self.clock = SimulationClock(period_seconds=self.config.clock_period_seconds)
        self.scheduler = TimerScheduler()
        self._core_timers: List[TimerHandle] = []

        self._subscription = event_bus.subscribe(self.load_scenario) if event_bus else None
        self._disposed = False

        logger.info(
            f"Initialized simulation engine: {len(self.routes)} routes, {len(self._fleet)} buses, "
            f"interval={self.config.tick_interval_seconds}s, driver={self.config.progress_driver.value}"
        )

    @classmethod
    def from_config_file(cls, config_path: str, **kwargs) -> "SimulationEngine":
        """
        Build an engine from a routes.yaml file.

        Raises:
            ConfigurationError: If loading or validation fails
        """
        routes, buses, engine_config = load_configuration(config_path)
        kwargs.setdefault('config', engine_config)
        return cls(routes, buses, **kwargs)

    # --- Lifecycle ---

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def started(self) -> bool:
        return bool(self._core_timers)

    def start(self) -> None:
        """Register the clock and resimulation timers and set the clock running."""
        self._check_not_disposed()
        if self.started:
            return

        self._core_timers = [
            self.scheduler.every(1, self._tick_clock, name="clock"),
            self.scheduler.every(self.config.tick_interval_seconds, self.step, name="resimulation"),
        ]
        self._last_step_time = self._time_source()
        self.clock.resume()

        logger.info("Simulation engine started")

    def pause(self) -> None:
        self.clock.pause()

    def resume(self) -> None:
        self._check_not_disposed()
        # elapsed time spent paused does not count as travel
        self._last_step_time = self._time_source()
        self.clock.resume()

    def reset(self) -> None:
        """Rewind the clock and put the active fleet back to its seed state."""
        self._check_not_disposed()
        self.clock.reset()
        if self.scenario is not None:
            self._fleet = scenario_fleet(self.scenario)
        else:
            self._fleet = dict(self._default_fleet)
        self._last_step_time = self._time_source()

    def dispose(self) -> None:
        """Cancel every timer and stop following the scenario channel. Safe to call twice."""
        if self._disposed:
            return

        self.scheduler.cancel_all()
        self._core_timers = []
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self.clock.pause()
        self._disposed = True

        logger.info("Simulation engine disposed")

    def __enter__(self) -> "SimulationEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def _check_not_disposed(self) -> None:
        if self._disposed:
            raise EngineDisposedError("Simulation engine has been disposed")

    # --- Ticking ---

    def _tick_clock(self) -> None:
        self.clock.tick(1)

    def advance(self, seconds: float) -> int:
        """
        Move virtual time forward, firing every timer that falls due.

        Returns:
            Number of timer callbacks fired
        """
        self._check_not_disposed()
        return self.scheduler.advance(seconds)

    def _progress_delta(self) -> float:
        if self.config.progress_driver == ProgressDriver.TICK_COUNT:
            return self.config.progress_step

        now = self._time_source()
        last = self._last_step_time if self._last_step_time is not None else now
        self._last_step_time = now
        return max(0.0, now - last) / self.config.route_duration_seconds

    def step(self) -> FleetSnapshot:
        """
        Resimulate the whole fleet once.

        The new fleet replaces the old one in a single assignment, so readers
        never see a half-updated fleet. Nothing happens while the clock is paused.

        Returns:
            Snapshot after the step
        """
        self._check_not_disposed()
        if not self.clock.running:
            return self.snapshot()

        delta = self._progress_delta()

        if self.scenario is not None:
            # scripted scenario: the bus only moves along its route
            now = datetime.now()
            self._fleet = {
                bus_id: self._advance_scripted(bus, delta, now)
                for bus_id, bus in self._fleet.items()
            }
        else:
            self._fleet = {
                bus_id: update_bus_state(
                    bus,
                    self._draw,
                    progress_delta=delta,
                    delay_bounds=self.config.delay_bounds
                )
                for bus_id, bus in self._fleet.items()
            }

        logger.debug(f"Resimulated {len(self._fleet)} buses at virtual time {self.clock.format()}")
        return self.snapshot()

    @staticmethod
    def _advance_scripted(bus: BusSimState, delta: float, now: datetime) -> BusSimState:
        if bus.status == BusStatus.OUT_OF_SERVICE:
            return replace(bus, last_update=now)
        return replace(bus, progress=advance_progress(bus.progress, delta), last_update=now)

    # --- Reading state ---

    @property
    def virtual_seconds(self) -> int:
        return self.clock.virtual_seconds

    def snapshot(self) -> FleetSnapshot:
        return FleetSnapshot(
            virtual_seconds=self.clock.virtual_seconds,
            tick_count=self.clock.tick_count,
            scenario_id=self.scenario.scenario_id if self.scenario else None,
            buses=tuple(self._fleet[bus_id] for bus_id in sorted(self._fleet))
        )

    def bus_states(self) -> List[BusSimState]:
        return [self._fleet[bus_id] for bus_id in sorted(self._fleet)]

    def get_bus(self, bus_id: str) -> BusSimState:
        """
        Raises:
            KeyError: If the bus is not in the active fleet
        """
        if bus_id not in self._fleet:
            raise KeyError(f"Unknown bus: {bus_id}")
        return self._fleet[bus_id]

    def position_of(self, bus_id: str) -> Position:
        bus = self.get_bus(bus_id)
        return position_at(self.routes[bus.route_id], bus.progress)

    def positions(self) -> Dict[str, Position]:
        return {bus.bus_id: position_at(self.routes[bus.route_id], bus.progress)
                for bus in self.bus_states()}

    def arrivals_for(self, stop_id: str) -> List[StopArrivalEstimate]:
        """
        Raises:
            UnknownStopError: If no active route contains the stop
        """
        return project_arrivals(
            stop_id,
            self.routes,
            self._fleet.values(),
            nominal_speed_kmh=self.config.nominal_speed_kmh
        )

    # --- Display adapters ---

    def attach_view(self, name: str, interval_seconds: float, callback: ViewCallback) -> TimerHandle:
        """
        Register a display adapter that samples the fleet every `interval_seconds`.

        The caller owns the returned handle and must cancel it when the view
        goes away; view() does that automatically.
        """
        self._check_not_disposed()
        return self.scheduler.every(
            interval_seconds,
            lambda: callback(self.snapshot()),
            name=f"view:{name}"
        )

    @contextmanager
    def view(self, name: str, interval_seconds: float, callback: ViewCallback) -> Iterator[TimerHandle]:
        """Attach a view for the duration of a with-block, cancelling it on every exit path."""
        handle = self.attach_view(name, interval_seconds, callback)
        try:
            yield handle
        finally:
            handle.cancel()

    # --- Scenarios and overrides ---

    def load_scenario(self, scenario: ScenarioDescriptor) -> None:
        """
        Replace the fleet and routes with a scripted scenario.

        Raises:
            ValueError: If the scenario is invalid
        """
        self._check_not_disposed()
        scenario.validate()

        self.routes = {scenario.route.route_id: scenario.route}
        self._fleet = scenario_fleet(scenario)
        self.scenario = scenario
        self._last_step_time = self._time_source()

        logger.info(
            f"Loaded scenario {scenario.scenario_id}: bus {scenario.bus_metadata.bus_id} "
            f"on {scenario.route.name}"
        )

    def clear_scenario(self) -> None:
        """Return to the default network and its seed fleet."""
        self._check_not_disposed()
        if self.scenario is None:
            return

        logger.info(f"Cleared scenario {self.scenario.scenario_id}")
        self.routes = dict(self._default_routes)
        self._fleet = dict(self._default_fleet)
        self.scenario = None

    def set_out_of_service(self, bus_id: str) -> BusSimState:
        """Take a bus out of service; the update rule leaves it untouched until restored."""
        bus = self.get_bus(bus_id)
        updated = replace(bus, status=BusStatus.OUT_OF_SERVICE, speed_kmh=0.0)
        self._fleet = {**self._fleet, bus_id: updated}
        logger.info(f"Bus {bus_id} taken out of service")
        return updated

    def restore_service(self, bus_id: str) -> BusSimState:
        """Put an out-of-service bus back on the road at a nominal speed."""
        bus = self.get_bus(bus_id)
        if bus.status != BusStatus.OUT_OF_SERVICE:
            return bus

        updated = replace(
            bus,
            speed_kmh=RESTORED_SPEED_KMH,
            status=derive_status(RESTORED_SPEED_KMH, bus.delay_min)
        )
        self._fleet = {**self._fleet, bus_id: updated}
        logger.info(f"Bus {bus_id} restored to service")
        return updated

    # --- Wall-clock driver ---

    def run(self, duration_seconds: Optional[float] = None) -> None:
        """
        Drive the engine from the wall clock until `duration_seconds` pass or the user interrupts.

        Each loop sleeps one second and advances virtual time until it matches
        the wall-clock time elapsed since the run began.
        """
        self.start()
        started = self._time_source()
        origin = self.scheduler.now
        elapsed = 0.0

        if duration_seconds is None:
            logger.info("Running simulation in wall-clock time until interrupted")
        else:
            logger.info(f"Running simulation in wall-clock time for {duration_seconds}s")

        iteration = 0
        while duration_seconds is None or elapsed < duration_seconds:
            iteration += 1
            try:
                self._sleep(1)
                elapsed = self._time_source() - started
                # a failed callback leaves the scheduler short of the previous target
                self.advance(max(0.0, elapsed - (self.scheduler.now - origin)))
            except KeyboardInterrupt:
                logger.info("Received interrupt signal, stopping simulation")
                break
            except EngineDisposedError:
                logger.info("Engine disposed while running, stopping simulation")
                break
            except Exception as e:
                # timers that fell due after the failing callback fire on the next iteration
                logger.error(f"Error in simulation iteration {iteration}: {e}", exc_info=True)
