#!/usr/bin/env python3
"""
Live Feed Service for the OnTime transit simulator.

This service runs a SimulationEngine in wall-clock time, logs the fleet and
the arrivals at the user's favourite stops, and optionally publishes both to
AWS EventBridge for downstream display surfaces.

Environment Variables:
    CONFIG_FILE: Path to routes.yaml configuration file (default: data/routes.yaml)
    PREFERENCES_FILE: Path to the preferences YAML file (default: data/preferences.yaml)
    TICK_INTERVAL: Seconds between fleet resimulations, overrides preferences (1-60)
    EVENT_BUS_NAME: EventBridge event bus to publish to (publishing disabled when unset)
    AWS_REGION: AWS region for EventBridge (default: ap-south-1)
    LOG_LEVEL: Logging level (default: INFO)

Usage:
    # Run the default network until interrupted
    python -m transit_sim.engine.live_feed

    # Run the Sector 17 demo for two minutes
    python -m transit_sim.engine.live_feed --search "sector 17" --duration 120
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from transit_sim.common.config_loader import ConfigurationError, EngineConfig, load_configuration
from transit_sim.common.eventbridge_client import EventBridgeClient
from transit_sim.common.models import FleetSnapshot
from transit_sim.common.preferences import PreferenceStore, Preferences
from transit_sim.engine.bus_simulator import delay_color, status_color
from transit_sim.engine.eta_projector import UnknownStopError, format_arrival_window
from transit_sim.engine.event_bus import DemoEventBus
from transit_sim.engine.scenarios import default_fleet, default_routes, trigger_search
from transit_sim.engine.simulation_engine import SimulationEngine

logger = logging.getLogger(__name__)

ARRIVALS_INTERVAL_SECONDS = 30


class LiveFeedService:
    """
    Runs one engine and feeds its state to the log and, optionally, EventBridge.

    The fleet view runs at the preference refresh interval; the arrivals view
    runs every 30 seconds for each favourite stop.
    """

    def __init__(
        self,
        config_file: Optional[str],
        preferences: Preferences,
        event_bus_name: Optional[str] = None,
        region_name: str = "ap-south-1",
        tick_interval: Optional[int] = None
    ):
        self.config_file = config_file
        self.preferences = preferences
        self.event_bus_name = event_bus_name
        self.region_name = region_name
        self.tick_interval = tick_interval

        self.demo_events = DemoEventBus()
        self.engine: Optional[SimulationEngine] = None
        self.eventbridge_client: Optional[EventBridgeClient] = None

        logger.info(
            f"Initializing Live Feed Service: config={config_file}, "
            f"refresh={preferences.refresh_interval}s, low_bandwidth={preferences.low_bandwidth}, "
            f"event_bus={event_bus_name}"
        )

    def create_engine(self) -> SimulationEngine:
        """
        Build the engine from the configuration file, or from the built-in
        default network when the file is missing or unusable.
        """
        interval = self.tick_interval or self.preferences.refresh_interval

        routes, buses, engine_config = default_routes(), default_fleet(), EngineConfig()

        if self.config_file and os.path.exists(self.config_file):
            try:
                routes, buses, engine_config = load_configuration(self.config_file)
            except ConfigurationError as e:
                logger.error(f"Failed to load configuration, falling back to default network: {e}")
        else:
            logger.warning(f"Configuration file not found: {self.config_file}, using default network")

        self.engine = SimulationEngine(
            routes,
            buses,
            config=engine_config.with_refresh_interval(interval),
            event_bus=self.demo_events
        )
        return self.engine

    def initialize_clients(self) -> None:
        if not self.event_bus_name:
            logger.info("EVENT_BUS_NAME not set, EventBridge publishing disabled")
            return

        self.eventbridge_client = EventBridgeClient(
            event_bus_name=self.event_bus_name,
            region_name=self.region_name
        )
        self.demo_events.subscribe(self.eventbridge_client.publish_scenario_event)

    def publish_fleet(self, snapshot: FleetSnapshot) -> None:
        """Fleet view: log every bus and publish the snapshot."""
        for bus in snapshot.buses:
            color, _ = status_color(bus.status)
            logger.info(
                f"{bus.bus_id} [{bus.route_id}] {bus.status.value} ({color}) "
                f"speed={bus.speed_kmh:.0f}km/h "
                f"delay={bus.delay_min:+.1f}min ({delay_color(bus.delay_min)}) "
                f"occupancy={bus.occupancy_pct}% progress={bus.progress:.2f}"
            )

        if self.eventbridge_client:
            # low bandwidth consumers get state without coordinates
            positions = None if self.preferences.low_bandwidth else self.engine.positions()
            self.eventbridge_client.publish_fleet_snapshot(snapshot, positions)

    def publish_arrivals(self, snapshot: FleetSnapshot) -> None:
        """Arrivals view: log and publish estimates for every favourite stop."""
        for stop_id in self.preferences.favorite_stops:
            try:
                estimates = self.engine.arrivals_for(stop_id)
            except UnknownStopError:
                logger.debug(f"Favourite stop {stop_id} is not on any active route")
                continue

            windows = ", ".join(
                f"{e.bus_id} {format_arrival_window(e.range_min_low, e.range_min_high)}"
                for e in estimates
            ) or "no buses"
            logger.info(f"Stop {stop_id}: {windows}")

            if self.eventbridge_client:
                self.eventbridge_client.publish_arrivals_event(stop_id, estimates)

    def run(self, duration_seconds: Optional[float] = None, search: Optional[str] = None) -> None:
        """
        Main service loop: runs until `duration_seconds` pass or the user interrupts.

        Views are attached for the lifetime of the loop and the engine is
        disposed on every exit path.
        """
        logger.info("Starting Live Feed Service")

        self.initialize_clients()
        engine = self.create_engine()

        with engine:
            engine.start()
            if search and not trigger_search(search, self.demo_events):
                logger.warning(f"No demo scenario matches '{search}'")

            with engine.view("fleet", engine.config.tick_interval_seconds, self.publish_fleet), \
                    engine.view("arrivals", ARRIVALS_INTERVAL_SECONDS, self.publish_arrivals):
                engine.run(duration_seconds)

        logger.info("Live Feed Service stopped")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the simulated OnTime live feed")
    parser.add_argument('--config', default=os.getenv('CONFIG_FILE', 'data/routes.yaml'),
                        help='Path to routes.yaml')
    parser.add_argument('--preferences', default=os.getenv('PREFERENCES_FILE', 'data/preferences.yaml'),
                        help='Path to the preferences file')
    parser.add_argument('--tick-interval', type=int, default=os.getenv('TICK_INTERVAL'),
                        help='Seconds between fleet resimulations (1-60)')
    parser.add_argument('--event-bus', default=os.getenv('EVENT_BUS_NAME'),
                        help='EventBridge bus to publish to')
    parser.add_argument('--region', default=os.getenv('AWS_REGION', 'ap-south-1'),
                        help='AWS region')
    parser.add_argument('--duration', type=float, default=None,
                        help='Stop after this many seconds')
    parser.add_argument('--search', default=None,
                        help='Search query that may trigger a demo scenario (e.g. "sector 17")')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entry point for the Live Feed Service.

    Reads configuration from environment variables and flags and starts the service.
    """
    log_level = os.getenv('LOG_LEVEL', 'INFO')
    logging.basicConfig(
        level=getattr(logging, log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    args = parse_args(argv)

    try:
        preferences = PreferenceStore(args.preferences).load()
    except ConfigurationError as e:
        logger.error(f"Failed to load preferences: {e}")
        sys.exit(1)

    tick_interval = int(args.tick_interval) if args.tick_interval is not None else None
    if tick_interval is not None and not (1 <= tick_interval <= 60):
        logger.error(f"TICK_INTERVAL must be between 1 and 60, got {tick_interval}")
        sys.exit(1)

    service = LiveFeedService(
        config_file=args.config,
        preferences=preferences,
        event_bus_name=args.event_bus,
        region_name=args.region,
        tick_interval=tick_interval
    )

    try:
        service.run(duration_seconds=args.duration, search=args.search)
    except ConfigurationError as e:
        logger.critical(f"Fatal configuration error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
