"""
Example script demonstrating how to use the configuration loader.

This script loads the routes.yaml configuration file and displays
information about the loaded routes, buses and simulation settings.
"""

import sys
from pathlib import Path

# Add parent directory to path to import transit_sim
sys.path.insert(0, str(Path(__file__).parent.parent))

from transit_sim.common.config_loader import ConfigurationError, load_configuration
from transit_sim.engine.bus_simulator import status_color
from transit_sim.engine.interpolator import route_length_m


def main():
    """Load and display configuration information."""
    config_path = Path(__file__).parent.parent / "data" / "routes.yaml"

    print(f"Loading configuration from: {config_path}")
    print("-" * 60)

    try:
        routes, buses, engine_config = load_configuration(str(config_path))
    except ConfigurationError as e:
        print(f"\n✗ Configuration error: {e}")
        sys.exit(1)

    print(f"\n✓ Successfully loaded {len(routes)} routes and {len(buses)} buses\n")

    print("ROUTES:")
    print("=" * 60)
    for route in routes:
        print(f"\nRoute {route.route_id}: {route.name} [{route.color_tag}]")
        print(f"  Length: {route_length_m(route) / 1000:.2f} km")
        for i, waypoint in enumerate(route.waypoints, 1):
            print(f"    {i}. {waypoint.name} ({waypoint.key}) at ({waypoint.lat:.4f}, {waypoint.lng:.4f})")

    print("\n\nBUSES:")
    print("=" * 60)
    for bus_id in sorted(buses):
        bus = buses[bus_id]
        color, _ = status_color(bus.status)
        print(f"  {bus_id} on {bus.route_id}: {bus.status.value} ({color}), "
              f"{bus.progress:.0%} along, {bus.speed_kmh:.0f} km/h, {bus.occupancy_pct}% full")

    print("\n\nSIMULATION:")
    print("=" * 60)
    print(f"Tick interval: {engine_config.tick_interval_seconds}s")
    print(f"Progress driver: {engine_config.progress_driver.value}")
    print(f"Nominal speed: {engine_config.nominal_speed_kmh} km/h")


if __name__ == "__main__":
    main()
