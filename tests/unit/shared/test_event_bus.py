from dataclasses import dataclass
from uuid import uuid4

import pytest

from shared.domain.events import DomainEvent
from shared.infrastructure.bus import InMemoryEventBus

pytestmark = pytest.mark.unit


@dataclass(frozen=True)
class ParcelShipped(DomainEvent):
    tracking_number: str = ""


@dataclass(frozen=True)
class ParcelLost(DomainEvent):
    pass


class RecordingHandler:
    def __init__(self):
        self.events = []

    def handle(self, event):
        self.events.append(event)


class ExplodingHandler:
    def handle(self, event):
        raise RuntimeError("smtp down")


@pytest.fixture()
def bus():
    return InMemoryEventBus()


class TestInMemoryEventBus:
    def test_event_name_is_class_name(self):
        assert ParcelShipped(aggregate_id=uuid4()).event_name == "ParcelShipped"

    def test_publish_reaches_subscribers_in_order(self, bus):
        first, second = RecordingHandler(), RecordingHandler()
        bus.subscribe(ParcelShipped, first)
        bus.subscribe(ParcelShipped, second)
        event = ParcelShipped(aggregate_id=uuid4(), tracking_number="AWB123")

        bus.publish(event)

        assert first.events == [event]
        assert second.events == [event]
        assert bus.handlers_for(ParcelShipped) == [first, second]

    def test_events_are_routed_by_type(self, bus):
        handler = RecordingHandler()
        bus.subscribe(ParcelLost, handler)
        bus.publish(ParcelShipped(aggregate_id=uuid4()))
        assert handler.events == []

    def test_duplicate_subscription_is_ignored(self, bus):
        handler = RecordingHandler()
        bus.subscribe(ParcelShipped, handler)
        bus.subscribe(ParcelShipped, handler)
        bus.publish(ParcelShipped(aggregate_id=uuid4()))
        assert len(handler.events) == 1

    def test_failing_handler_does_not_stop_others(self, bus):
        survivor = RecordingHandler()
        bus.subscribe(ParcelShipped, ExplodingHandler())
        bus.subscribe(ParcelShipped, survivor)

        bus.publish(ParcelShipped(aggregate_id=uuid4()))

        assert len(survivor.events) == 1

    def test_unsubscribe_all(self, bus):
        bus.subscribe(ParcelShipped, RecordingHandler())
        bus.unsubscribe_all()
        assert bus.handlers_for(ParcelShipped) == []
