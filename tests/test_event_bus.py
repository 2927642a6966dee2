"""
Unit tests for the demo scenario event bus.
"""

import logging

import pytest
from unittest.mock import Mock

from transit_sim.engine.event_bus import DemoEventBus
from transit_sim.engine.scenarios import sector17_scenario


@pytest.fixture
def scenario():
    return sector17_scenario()


class TestDemoEventBus:
    """Tests for subscribe/publish semantics."""

    def test_publish_without_subscribers(self, scenario):
        assert DemoEventBus().publish(scenario) == 0

    def test_publish_delivers_to_all_in_order(self, scenario):
        bus = DemoEventBus()
        received = []
        bus.subscribe(lambda s: received.append(("first", s.scenario_id)))
        bus.subscribe(lambda s: received.append(("second", s.scenario_id)))

        assert bus.publish(scenario) == 2
        assert received == [("first", "sector17-elante"), ("second", "sector17-elante")]

    def test_unsubscribe_stops_delivery(self, scenario):
        bus = DemoEventBus()
        handler = Mock()
        subscription = bus.subscribe(handler)

        subscription.unsubscribe()
        bus.publish(scenario)

        handler.assert_not_called()
        assert not subscription.active
        assert bus.subscriber_count == 0

    def test_unsubscribe_twice_is_noop(self):
        bus = DemoEventBus()
        subscription = bus.subscribe(Mock())
        bus.unsubscribe(subscription)
        bus.unsubscribe(subscription)
        assert bus.subscriber_count == 0

    def test_same_handler_subscribed_twice(self, scenario):
        bus = DemoEventBus()
        handler = Mock()
        first = bus.subscribe(handler)
        bus.subscribe(handler)

        first.unsubscribe()
        bus.publish(scenario)

        assert handler.call_count == 1

    def test_late_subscriber_misses_event(self, scenario):
        bus = DemoEventBus()
        bus.publish(scenario)

        handler = Mock()
        bus.subscribe(handler)
        handler.assert_not_called()

    def test_failing_handler_does_not_block_others(self, scenario, caplog):
        bus = DemoEventBus()
        healthy = Mock()
        bus.subscribe(Mock(side_effect=RuntimeError("map unavailable")))
        bus.subscribe(healthy)

        with caplog.at_level(logging.ERROR):
            delivered = bus.publish(scenario)

        assert delivered == 1
        healthy.assert_called_once_with(scenario)
        assert "map unavailable" in caplog.text

    def test_handler_unsubscribing_later_handler(self, scenario):
        bus = DemoEventBus()
        later = Mock()
        later_subscription = None

        def first(_):
            later_subscription.unsubscribe()

        bus.subscribe(first)
        later_subscription = bus.subscribe(later)

        assert bus.publish(scenario) == 1
        later.assert_not_called()

    def test_subscription_active(self):
        bus = DemoEventBus()
        subscription = bus.subscribe(Mock())
        assert subscription.active
        assert bus.is_subscribed(subscription)
