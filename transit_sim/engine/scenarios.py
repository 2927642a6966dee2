"""
Built-in routes, fleet and demo scenarios for the OnTime transit simulator.

The default routes and fleet are the deterministic state that collaborators
fall back to when live data is unavailable. The Sector 17 scenario is the
scripted demo a search for "Sector 17" switches the map into.
"""

import logging
from typing import Dict, List, Optional

from transit_sim.common.models import (
    BusMetadata,
    BusSimState,
    BusStatus,
    RoutePath,
    ScenarioDescriptor,
    Waypoint,
)
from transit_sim.engine.event_bus import DemoEventBus

logger = logging.getLogger(__name__)

CHANDIGARH_CENTER = (30.75, 76.78)
CHANDIGARH_ZOOM = 12

SECTOR_17_SCENARIO_ID = "sector17-elante"
SECTOR_17_PLAZA = Waypoint("Sector 17 Plaza", 30.7333, 76.7794, stop_id="S17")
ELANTE_MALL = Waypoint("Elante Mall", 30.7046, 76.8006, stop_id="ELT")

SCENARIO_BUS_SPEED_KMH = 20.0


def sector17_route() -> RoutePath:
    """Sector 17 Plaza to Elante Mall, six stops."""
    return RoutePath.create(
        route_id=SECTOR_17_SCENARIO_ID,
        name="Sector 17 → Elante Mall Express",
        color_tag="#3b82f6",
        waypoints=[
            SECTOR_17_PLAZA,
            Waypoint("Tribune Chowk", 30.732, 76.782, stop_id="TRB"),
            Waypoint("Sector 22 Market", 30.728, 76.787, stop_id="S22"),
            Waypoint("Piccadilly Square", 30.72, 76.792, stop_id="PCD"),
            Waypoint("Industrial Area Phase 1", 30.713, 76.798, stop_id="IAP1"),
            ELANTE_MALL,
        ]
    )


def sector17_scenario() -> ScenarioDescriptor:
    """The scripted Sector 17 demo: bus CHD-S17-001 boarding at Sector 17 Plaza."""
    return ScenarioDescriptor(
        scenario_id=SECTOR_17_SCENARIO_ID,
        center=SECTOR_17_PLAZA.coordinate,
        zoom_level=15,
        route=sector17_route(),
        bus_metadata=BusMetadata(
            bus_id="CHD-S17-001",
            route_name="Sector 17 → Elante Mall Express",
            current_location="Sector 17 Plaza Bus Stop",
            status_text="Boarding Passengers",
            passengers=41,
            total_seats=60,
            next_stops=("Tribune Chowk", "Piccadilly Square", "Elante Mall"),
            driver_name="Rajesh Kumar",
            driver_rating=4.8,
            bus_number="PB-02-AC-5647"
        )
    )


def scenario_fleet(scenario: ScenarioDescriptor) -> Dict[str, BusSimState]:
    """Single-bus fleet for a scenario, parked at the start of its route."""
    metadata = scenario.bus_metadata
    bus = BusSimState(
        bus_id=metadata.bus_id,
        route_id=scenario.route.route_id,
        progress=0.0,
        speed_kmh=SCENARIO_BUS_SPEED_KMH,
        delay_min=0.0,
        occupancy_pct=min(100, metadata.occupancy_pct),
        status=BusStatus.MOVING
    )
    return {bus.bus_id: bus}


def default_routes() -> List[RoutePath]:
    """The three routes of the default Chandigarh network."""
    return [
        RoutePath.create(
            route_id="R1",
            name="Sector 17 → Elante Mall",
            color_tag="#3b82f6",
            waypoints=list(sector17_route().waypoints)
        ),
        RoutePath.create(
            route_id="R2",
            name="Rock Garden → PGI Hospital",
            color_tag="#10b981",
            waypoints=[
                Waypoint("Rock Garden", 30.7525, 76.8078, stop_id="RKG"),
                Waypoint("Sector 22 Market", 30.728, 76.787, stop_id="S22"),
                Waypoint("Sector 16 Stadium", 30.7436, 76.7751, stop_id="S16"),
                Waypoint("PGI Hospital", 30.7649, 76.7760, stop_id="PGI"),
            ]
        ),
        RoutePath.create(
            route_id="R3",
            name="Sukhna Lake → University",
            color_tag="#8b5cf6",
            waypoints=[
                Waypoint("Sukhna Lake", 30.7421, 76.8188, stop_id="SKL"),
                Waypoint("Rose Garden", 30.7461, 76.7819, stop_id="RSG"),
                Waypoint("Panjab University", 30.7600, 76.7684, stop_id="PU"),
            ]
        ),
    ]


def default_fleet() -> Dict[str, BusSimState]:
    """The four-bus default fleet, keyed by bus_id."""
    buses = [
        BusSimState("CHD-001", "R1", progress=0.15, speed_kmh=28.0, delay_min=4.0,
                    occupancy_pct=70, status=BusStatus.MOVING),
        BusSimState("CHD-002", "R1", progress=0.0, speed_kmh=0.0, delay_min=2.0,
                    occupancy_pct=40, status=BusStatus.STOPPED),
        BusSimState("CHD-003", "R2", progress=0.3, speed_kmh=15.0, delay_min=8.0,
                    occupancy_pct=90, status=BusStatus.DELAYED),
        BusSimState("CHD-004", "R3", progress=0.5, speed_kmh=32.0, delay_min=-1.0,
                    occupancy_pct=55, status=BusStatus.MOVING),
    ]
    return {bus.bus_id: bus for bus in buses}


def match_scenario(query: str) -> Optional[ScenarioDescriptor]:
    """
    Map a search query to a demo scenario.

    Queries mentioning "sector 17", or exactly "s17", select the Sector 17 demo.

    Returns:
        The matching scenario, or None
    """
    term = query.lower().strip()
    if "sector 17" in term or term == "s17":
        return sector17_scenario()
    return None


def trigger_search(query: str, event_bus: DemoEventBus) -> bool:
    """
    Publish the scenario matching a search query, if any.

    Returns:
        True if a scenario was published
    """
    scenario = match_scenario(query)
    if scenario is None:
        return False

    logger.info(f"Search '{query}' triggered scenario {scenario.scenario_id}")
    event_bus.publish(scenario)
    return True
