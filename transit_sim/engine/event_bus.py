"""
Demo scenario event bus for the OnTime transit simulator.

A search component publishes a ScenarioDescriptor here and map components
subscribed to the bus switch to the scripted scenario. Delivery is
synchronous and in-process; events are not buffered, so a subscriber that
registers after publish() misses that event.
"""

import itertools
import logging
from typing import Callable, Dict

from transit_sim.common.models import ScenarioDescriptor

logger = logging.getLogger(__name__)

ScenarioHandler = Callable[[ScenarioDescriptor], None]


class Subscription:
    """Token returned by DemoEventBus.subscribe()."""

    def __init__(self, bus: "DemoEventBus", token: int):
        self._bus = bus
        self.token = token

    @property
    def active(self) -> bool:
        return self._bus.is_subscribed(self)

    def unsubscribe(self) -> None:
        self._bus.unsubscribe(self)


class DemoEventBus:
    """Publish/subscribe channel carrying scenario events."""

    def __init__(self) -> None:
        self._handlers: Dict[int, ScenarioHandler] = {}
        self._tokens = itertools.count(1)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def subscribe(self, handler: ScenarioHandler) -> Subscription:
        token = next(self._tokens)
        self._handlers[token] = handler
        return Subscription(self, token)

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription. Unsubscribing twice is a no-op."""
        self._handlers.pop(subscription.token, None)

    def is_subscribed(self, subscription: Subscription) -> bool:
        return subscription.token in self._handlers

    def publish(self, scenario: ScenarioDescriptor) -> int:
        """
        Deliver a scenario to every current subscriber, in subscription order.

        A handler that raises is logged; the remaining subscribers still
        receive the event.

        Returns:
            Number of handlers that received the event
        """
        delivered = 0
        for token, handler in list(self._handlers.items()):
            # unsubscribed by an earlier handler during this publish
            if token not in self._handlers:
                continue
            try:
                handler(scenario)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Scenario handler {token} failed for {scenario.scenario_id}: {e}",
                    exc_info=True
                )

        logger.debug(f"Published scenario {scenario.scenario_id} to {delivered} subscribers")
        return delivered
