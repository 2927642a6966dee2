"""
Example demonstrating the Sector 17 demo scenario.

This example shows how to:
- Build an engine for the default Chandigarh network
- Switch it into the Sector 17 demo through a search query
- Follow the scenario bus along its route in virtual time
- Read arrival windows at Elante Mall
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from transit_sim.common.config_loader import EngineConfig
from transit_sim.engine.eta_projector import format_arrival_window
from transit_sim.engine.event_bus import DemoEventBus
from transit_sim.engine.scenarios import default_fleet, default_routes, trigger_search
from transit_sim.engine.simulation_engine import SimulationEngine


def main():
    """Run the Sector 17 demo for five virtual minutes."""
    events = DemoEventBus()
    config = EngineConfig(tick_interval_seconds=5, seed=17)

    print("=" * 60)
    print("Sector 17 Demo Example")
    print("=" * 60)

    with SimulationEngine(default_routes(), default_fleet(), config=config, event_bus=events) as engine:
        engine.start()

        trigger_search("Sector 17", events)
        scenario = engine.scenario
        metadata = scenario.bus_metadata

        print(f"\nScenario: {scenario.scenario_id} (zoom {scenario.zoom_level})")
        print(f"Bus: {metadata.bus_id} {metadata.bus_number}, driver {metadata.driver_name} ({metadata.driver_rating})")
        print(f"Occupancy: {metadata.passengers}/{metadata.total_seats} ({metadata.occupancy_pct}%, {metadata.crowd_status})")

        print("\n" + "-" * 60)
        print("Following the bus:")
        print("-" * 60)

        def show(snapshot):
            position = engine.position_of(metadata.bus_id)
            arrivals = engine.arrivals_for("ELT")
            window = format_arrival_window(arrivals[0].range_min_low, arrivals[0].range_min_high)
            print(
                f"{engine.clock.format()}  ({position.lat:.4f}, {position.lng:.4f})  "
                f"{position.current_stop} -> {position.next_stop}  Elante Mall: {window}"
            )

        with engine.view("console", 30, show):
            engine.advance(300)

    print("\n" + "=" * 60)
    print("Example complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
