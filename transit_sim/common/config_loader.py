"""
Configuration loader for the OnTime transit simulator.

This module provides functionality to load routes, the seed fleet and the
simulation settings from YAML configuration files and convert them into
RoutePath, BusSimState and EngineConfig objects.
"""

import yaml
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .models import BusSimState, BusStatus, InvalidRouteError, RoutePath, Waypoint, derive_status

MIN_TICK_INTERVAL_SECONDS = 1
MAX_TICK_INTERVAL_SECONDS = 60


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""
    pass


class ProgressDriver(str, Enum):
    """How bus progress advances on each resimulation tick."""
    TICK_COUNT = "tickCount"
    ELAPSED_TIME = "elapsedTime"


@dataclass
class EngineConfig:
    """
    Simulation settings for a SimulationEngine.

    Attributes:
        tick_interval_seconds: Seconds between fleet resimulations (1-60)
        clock_period_seconds: Virtual clock wraps at this value
        progress_driver: tickCount (fixed step per tick) or elapsedTime (wall clock)
        progress_step: Progress added per tick with the tickCount driver
        route_duration_seconds: Time to run a whole route with the elapsedTime driver
        nominal_speed_kmh: Speed assumed when projecting arrivals
        delay_bounds: Optional (min, max) clamp on delay in minutes
        seed: Seed for the engine's random source
    """
    tick_interval_seconds: int = 5
    clock_period_seconds: int = 86400
    progress_driver: ProgressDriver = ProgressDriver.TICK_COUNT
    progress_step: float = 0.01
    route_duration_seconds: float = 1080.0
    nominal_speed_kmh: float = 20.0
    delay_bounds: Optional[Tuple[float, float]] = None
    seed: Optional[int] = None

    def validate(self) -> None:
        """
        Validate simulation settings.

        Raises:
            ConfigurationError: If validation fails
        """
        if not (MIN_TICK_INTERVAL_SECONDS <= self.tick_interval_seconds <= MAX_TICK_INTERVAL_SECONDS):
            raise ConfigurationError(
                f"tick_interval_seconds must be between {MIN_TICK_INTERVAL_SECONDS} and "
                f"{MAX_TICK_INTERVAL_SECONDS}, got {self.tick_interval_seconds}"
            )
        if self.clock_period_seconds <= 0:
            raise ConfigurationError(
                f"clock_period_seconds must be positive, got {self.clock_period_seconds}"
            )
        if not (0.0 <= self.progress_step < 1.0):
            raise ConfigurationError(f"progress_step must be in [0.0, 1.0), got {self.progress_step}")
        if self.route_duration_seconds <= 0:
            raise ConfigurationError(
                f"route_duration_seconds must be positive, got {self.route_duration_seconds}"
            )
        if self.nominal_speed_kmh <= 0:
            raise ConfigurationError(f"nominal_speed_kmh must be positive, got {self.nominal_speed_kmh}")
        if self.delay_bounds is not None and self.delay_bounds[0] > self.delay_bounds[1]:
            raise ConfigurationError(f"delay_bounds must be (min, max), got {self.delay_bounds}")

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "EngineConfig":
        """
        Build settings from a `simulation:` mapping; missing keys keep their defaults.

        Raises:
            ConfigurationError: If a value is invalid
        """
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigurationError("'simulation' must be a mapping")

        try:
            config = cls()
            if 'tick_interval_seconds' in data:
                config.tick_interval_seconds = int(data['tick_interval_seconds'])
            if 'clock_period_seconds' in data:
                config.clock_period_seconds = int(data['clock_period_seconds'])
            if 'progress_driver' in data:
                config.progress_driver = ProgressDriver(data['progress_driver'])
            if 'progress_step' in data:
                config.progress_step = float(data['progress_step'])
            if 'route_duration_seconds' in data:
                config.route_duration_seconds = float(data['route_duration_seconds'])
            if 'nominal_speed_kmh' in data:
                config.nominal_speed_kmh = float(data['nominal_speed_kmh'])
            if data.get('delay_bounds') is not None:
                low, high = data['delay_bounds']
                config.delay_bounds = (float(low), float(high))
            if data.get('seed') is not None:
                config.seed = int(data['seed'])
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid simulation settings: {e}")

        config.validate()
        return config

    def with_refresh_interval(self, refresh_interval: int) -> "EngineConfig":
        """
        Copy of these settings resimulating at an externally supplied interval.

        Raises:
            ConfigurationError: If the interval is outside 1-60 seconds
        """
        config = replace(self, tick_interval_seconds=int(refresh_interval))
        config.validate()
        return config


class ConfigLoader:
    """
    Loads and validates simulator configuration from YAML files.

    The loader parses routes.yaml files containing routes, the seed fleet and
    simulation settings, validates the configuration completeness, and creates
    RoutePath, BusSimState and EngineConfig objects.
    """

    def __init__(self, config_path: str):
        """
        Initialize the configuration loader.

        Args:
            config_path: Path to the YAML configuration file

        Raises:
            ConfigurationError: If the file doesn't exist
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        self._raw_config: Dict = {}
        self._routes: List[RoutePath] = []
        self._buses: Dict[str, BusSimState] = {}

    def load(self) -> None:
        """
        Load and parse the YAML configuration file.

        Raises:
            ConfigurationError: If the file can't be parsed or is invalid
        """
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration file: {e}")

        if not self._raw_config:
            raise ConfigurationError("Configuration file is empty")

        if not isinstance(self._raw_config, dict):
            raise ConfigurationError("Configuration must be a mapping")

        if 'routes' not in self._raw_config:
            raise ConfigurationError("Configuration must contain 'routes' key")

        if not isinstance(self._raw_config['routes'], list):
            raise ConfigurationError("'routes' must be a list")

        if not self._raw_config['routes']:
            raise ConfigurationError("Configuration must contain at least one route")

    def parse_routes(self) -> List[RoutePath]:
        """
        Parse routes from the loaded configuration.

        Returns:
            List of RoutePath objects

        Raises:
            ConfigurationError: If route data is invalid
        """
        if not self._raw_config:
            raise ConfigurationError("Configuration not loaded. Call load() first.")

        routes = []
        route_ids_seen = set()

        for route_data in self._raw_config['routes']:
            if not isinstance(route_data, dict):
                raise ConfigurationError(f"Route entry must be a mapping, got {route_data!r}")

            route_id = route_data.get('route_id')
            if not route_id:
                raise ConfigurationError("Route missing 'route_id' field")
            if 'waypoints' not in route_data:
                raise ConfigurationError(f"Route {route_id} missing 'waypoints' field")

            if route_id in route_ids_seen:
                raise ConfigurationError(f"Duplicate route_id: {route_id}")
            route_ids_seen.add(route_id)

            try:
                route = RoutePath.create(
                    route_id=route_id,
                    name=route_data.get('name', route_id),
                    waypoints=self._parse_waypoints(route_data['waypoints'], route_id),
                    color_tag=route_data.get('color', "#84cc16")
                )
            except InvalidRouteError as e:
                raise ConfigurationError(f"Invalid route {route_id}: {e}")

            routes.append(route)

        self._routes = routes
        return routes

    def _parse_waypoints(self, waypoints_data: List[Dict], route_id: str) -> List[Waypoint]:
        """
        Parse waypoints from route configuration.

        Raises:
            ConfigurationError: If waypoint data is invalid
        """
        if not isinstance(waypoints_data, list):
            raise ConfigurationError(f"Route {route_id}: 'waypoints' must be a list")

        waypoints = []
        for waypoint_data in waypoints_data:
            if not isinstance(waypoint_data, dict):
                raise ConfigurationError(
                    f"Route {route_id}: Waypoint entry must be a mapping, got {waypoint_data!r}"
                )
            for required in ('name', 'lat', 'lng'):
                if required not in waypoint_data:
                    raise ConfigurationError(
                        f"Route {route_id}: Waypoint missing required field '{required}'"
                    )
            try:
                waypoints.append(Waypoint(
                    name=waypoint_data['name'],
                    lat=float(waypoint_data['lat']),
                    lng=float(waypoint_data['lng']),
                    stop_id=waypoint_data.get('stop_id')
                ))
            except (ValueError, TypeError) as e:
                raise ConfigurationError(
                    f"Route {route_id}, Waypoint {waypoint_data.get('name')}: Invalid data - {e}"
                )

        return waypoints

    def parse_buses(self) -> Dict[str, BusSimState]:
        """
        Parse the seed fleet from the loaded configuration.

        A bus without an explicit status gets the status derived from its
        seed speed and delay.

        Returns:
            Dictionary mapping bus_id to BusSimState objects

        Raises:
            ConfigurationError: If bus data is invalid or routes not parsed yet
        """
        if not self._raw_config:
            raise ConfigurationError("Configuration not loaded. Call load() first.")

        if not self._routes:
            raise ConfigurationError("Routes not parsed. Call parse_routes() first.")

        buses_data = self._raw_config.get('buses')
        if not isinstance(buses_data, list) or not buses_data:
            raise ConfigurationError("Configuration must contain a non-empty 'buses' list")

        buses = {}
        for bus_data in buses_data:
            if not isinstance(bus_data, dict):
                raise ConfigurationError(f"Bus entry must be a mapping, got {bus_data!r}")

            bus_id = bus_data.get('bus_id')
            if not bus_id:
                raise ConfigurationError("Bus missing 'bus_id' field")
            if 'route_id' not in bus_data:
                raise ConfigurationError(f"Bus {bus_id} missing 'route_id' field")
            if bus_id in buses:
                raise ConfigurationError(f"Duplicate bus_id: {bus_id}")

            try:
                speed = float(bus_data.get('speed_kmh', 0.0))
                delay = float(bus_data.get('delay_min', 0.0))
                if 'status' in bus_data:
                    status = BusStatus(bus_data['status'])
                else:
                    status = derive_status(speed, delay)

                bus = BusSimState(
                    bus_id=bus_id,
                    route_id=bus_data['route_id'],
                    progress=float(bus_data.get('progress', 0.0)),
                    speed_kmh=speed,
                    delay_min=delay,
                    occupancy_pct=int(bus_data.get('occupancy_pct', 0)),
                    status=status
                )
                bus.validate()
            except (ValueError, TypeError) as e:
                raise ConfigurationError(f"Bus {bus_id}: Invalid data - {e}")

            buses[bus_id] = bus

        self._buses = buses
        return buses

    def parse_engine_config(self) -> EngineConfig:
        """
        Parse the `simulation:` section; defaults apply when it is absent.

        Raises:
            ConfigurationError: If the settings are invalid
        """
        if not self._raw_config:
            raise ConfigurationError("Configuration not loaded. Call load() first.")
        return EngineConfig.from_dict(self._raw_config.get('simulation'))

    def get_routes(self) -> List[RoutePath]:
        """
        Get the parsed routes.

        Raises:
            ConfigurationError: If routes haven't been parsed yet
        """
        if not self._routes:
            raise ConfigurationError("Routes not parsed. Call parse_routes() first.")
        return self._routes

    def get_buses(self) -> Dict[str, BusSimState]:
        """
        Get the parsed buses.

        Raises:
            ConfigurationError: If buses haven't been parsed yet
        """
        if not self._buses:
            raise ConfigurationError("Buses not parsed. Call parse_buses() first.")
        return self._buses

    def get_route_by_id(self, route_id: str) -> RoutePath:
        """
        Get a specific route by ID.

        Raises:
            ConfigurationError: If route not found or routes not parsed
        """
        for route in self.get_routes():
            if route.route_id == route_id:
                return route

        raise ConfigurationError(f"Route not found: {route_id}")

    def validate_completeness(self) -> None:
        """
        Validate that the configuration is complete and consistent.

        Raises:
            ConfigurationError: If validation fails
        """
        if not self._routes:
            raise ConfigurationError("No routes loaded")

        if not self._buses:
            raise ConfigurationError("No buses loaded")

        route_ids = {route.route_id for route in self._routes}
        for bus in self._buses.values():
            if bus.route_id not in route_ids:
                raise ConfigurationError(
                    f"Bus {bus.bus_id} references non-existent route: {bus.route_id}"
                )


def load_configuration(config_path: str) -> Tuple[List[RoutePath], Dict[str, BusSimState], EngineConfig]:
    """
    Convenience function to load and parse configuration in one call.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Tuple of (routes, buses, engine_config)

    Raises:
        ConfigurationError: If loading or validation fails
    """
    loader = ConfigLoader(config_path)
    loader.load()
    routes = loader.parse_routes()
    buses = loader.parse_buses()
    engine_config = loader.parse_engine_config()
    loader.validate_completeness()

    return routes, buses, engine_config
