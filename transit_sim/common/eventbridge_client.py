"""
EventBridge client wrapper for the OnTime transit simulator.

This module provides a wrapper around the AWS EventBridge client with retry
logic, exponential backoff, and convenience methods for publishing fleet
snapshots, stop arrival estimates and scenario activations to downstream
consumers.
"""

import json
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from .models import BusSimState, FleetSnapshot, ScenarioDescriptor, StopArrivalEstimate

logger = logging.getLogger(__name__)

EVENT_SOURCE = 'ontime-transit-sim'
# PutEvents accepts at most 10 entries per call
MAX_ENTRIES_PER_CALL = 10


class PublishError(Exception):
    """Raised when EventBridge reports failed entries."""
    pass


class EventBridgeClient:
    """
    Wrapper for AWS EventBridge operations with retry logic.

    This client publishes simulation state with automatic retry on failures.
    Publishing is non-critical: failures are logged and reported through the
    return value, never raised.
    """

    def __init__(
        self,
        event_bus_name: str,
        region_name: str = "ap-south-1",
        max_retries: int = 3,
        client: Optional[Any] = None
    ):
        """
        Initialize EventBridge client.

        Args:
            event_bus_name: Name of the EventBridge event bus
            region_name: AWS region name
            max_retries: Maximum number of attempts for failed publishes
            client: Optional boto3 client (for testing)
        """
        self.event_bus_name = event_bus_name
        self.region_name = region_name
        self.max_retries = max_retries

        self.client = client or boto3.client(
            'events',
            region_name=region_name
        )

    @staticmethod
    def bus_state_detail(
        bus: BusSimState,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None
    ) -> Dict[str, Any]:
        """Event detail for one bus; coordinates are omitted when not given."""
        detail = {
            'bus_id': bus.bus_id,
            'route_id': bus.route_id,
            'progress': bus.progress,
            'speed_kmh': bus.speed_kmh,
            'delay_min': bus.delay_min,
            'occupancy_pct': bus.occupancy_pct,
            'status': bus.status.value,
            'last_update': bus.last_update.isoformat()
        }
        if latitude is not None and longitude is not None:
            detail['latitude'] = latitude
            detail['longitude'] = longitude
        return detail

    def publish_bus_state_event(
        self,
        bus: BusSimState,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None
    ) -> bool:
        """
        Publish a single bus state update.

        Returns:
            True if publish succeeded, False otherwise
        """
        return self._publish_entries([
            self._entry('bus.state.updated', self.bus_state_detail(bus, latitude, longitude))
        ]) == 1

    def publish_fleet_snapshot(
        self,
        snapshot: FleetSnapshot,
        positions: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Publish one bus.state.updated event per bus in a snapshot.

        Events are sent in batches of 10 entries per PutEvents call.

        Args:
            snapshot: Fleet snapshot to publish
            positions: Optional bus_id -> Position mapping adding coordinates

        Returns:
            Number of events published
        """
        positions = positions or {}
        entries = []
        for bus in snapshot.buses:
            position = positions.get(bus.bus_id)
            detail = self.bus_state_detail(
                bus,
                latitude=position.lat if position else None,
                longitude=position.lng if position else None
            )
            detail['virtual_seconds'] = snapshot.virtual_seconds
            if snapshot.scenario_id:
                detail['scenario_id'] = snapshot.scenario_id
            entries.append(self._entry('bus.state.updated', detail))

        published = 0
        for i in range(0, len(entries), MAX_ENTRIES_PER_CALL):
            published += self._publish_entries(entries[i:i + MAX_ENTRIES_PER_CALL])

        logger.debug(f"Published {published}/{len(entries)} bus state events")
        return published

    def publish_arrivals_event(
        self,
        stop_id: str,
        estimates: List[StopArrivalEstimate],
        timestamp: Optional[datetime] = None
    ) -> bool:
        """
        Publish the arrival estimates for one stop.

        Returns:
            True if publish succeeded, False otherwise
        """
        timestamp = timestamp or datetime.now()
        detail = {
            'stop_id': stop_id,
            'timestamp': timestamp.isoformat(),
            'arrivals': [
                {
                    'bus_id': estimate.bus_id,
                    'route_id': estimate.route_id,
                    'in_min_range': [estimate.range_min_low, estimate.range_min_high],
                    'confidence': estimate.confidence,
                    'occupancy_tag': estimate.occupancy_tag.value
                }
                for estimate in estimates
            ]
        }
        return self._publish_entries([self._entry('stop.arrivals.updated', detail)]) == 1

    def publish_scenario_event(self, scenario: ScenarioDescriptor) -> bool:
        """
        Publish a scenario activation.

        Returns:
            True if publish succeeded, False otherwise
        """
        detail = {
            'scenario_id': scenario.scenario_id,
            'center': {'lat': scenario.center[0], 'lng': scenario.center[1]},
            'zoom_level': scenario.zoom_level,
            'bus_id': scenario.bus_metadata.bus_id,
            'route_id': scenario.route.route_id,
            'route_name': scenario.route.name,
            'stops': [waypoint.name for waypoint in scenario.route.waypoints]
        }
        return self._publish_entries([self._entry('scenario.activated', detail)]) == 1

    def _entry(self, detail_type: str, detail: Dict[str, Any]) -> Dict[str, str]:
        return {
            'Source': EVENT_SOURCE,
            'DetailType': detail_type,
            'Detail': json.dumps(detail),
            'EventBusName': self.event_bus_name
        }

    def _publish_entries(self, entries: List[Dict[str, str]]) -> int:
        """
        Publish a batch of entries with exponential backoff retry logic.

        Only the entries EventBridge reports as failed are retried.

        Returns:
            Number of entries published
        """
        pending = list(entries)
        published = 0

        for attempt in range(self.max_retries):
            try:
                response = self.client.put_events(Entries=pending)

                failed_count = response.get('FailedEntryCount', 0)
                if failed_count == 0:
                    published += len(pending)
                    logger.info(
                        f"Successfully published {len(pending)} events to EventBridge "
                        f"bus {self.event_bus_name}"
                    )
                    return published

                results = response.get('Entries', [])
                failed = [
                    entry for entry, result in zip(pending, results)
                    if result.get('ErrorCode') or result.get('ErrorMessage')
                ]
                if len(failed) != failed_count:
                    # results don't line up with the request; retry the whole batch
                    failed = pending
                published += len(pending) - len(failed)
                error_msg = next(
                    (r.get('ErrorMessage') for r in results if r.get('ErrorMessage')),
                    'Unknown error'
                )
                pending = failed
                raise PublishError(f"{failed_count} entries failed: {error_msg}")

            except (ClientError, PublishError) as e:
                if attempt == self.max_retries - 1:
                    logger.warning(
                        f"Failed to publish {len(pending)} events to EventBridge after "
                        f"{self.max_retries} attempts: {e}. Continuing without event publication."
                    )
                    return published

                wait_time = 2 ** attempt

                logger.warning(
                    f"EventBridge publish failed (attempt {attempt + 1}/{self.max_retries}): "
                    f"{e}. Retrying in {wait_time}s..."
                )

                time.sleep(wait_time)

        return published
