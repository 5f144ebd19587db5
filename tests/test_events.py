"""
Tests for the event bus and the append-only event store.
"""

import pytest

from heirloom.events import (
    AllocationClaimed,
    ConfidentialTransfer,
    EstateCreated,
    EstateFinalized,
    Event,
    EventBus,
    EventStore,
    HeirAdded,
)


class TestEventModel:
    """Tests for event serialization."""

    def test_event_type_and_stream(self):
        event = EstateCreated(estate_id=3, executor="0x" + "11" * 20, name="E")
        assert event.event_type == "EstateCreated"
        assert event.stream_id == "estate-3"

    def test_token_events_have_token_stream(self):
        event = ConfidentialTransfer(token="0xabc", amount_handle="0x01")
        assert event.stream_id == "token-0xabc"

    def test_round_trip_through_dict(self):
        event = HeirAdded(estate_id=1, heir="0x" + "a1" * 20)
        restored = HeirAdded.from_dict(event.to_dict())
        assert restored == event

    def test_digest_is_deterministic(self):
        event = EstateFinalized(estate_id=1, executor="0x" + "11" * 20)
        assert event.digest() == event.digest()
        other = EstateFinalized(estate_id=2, executor="0x" + "11" * 20)
        assert event.digest() != other.digest()

    def test_to_json_has_no_amounts(self):
        """Domain events carry ids, addresses and handles only."""
        payload = AllocationClaimed(estate_id=0, heir="0x" + "a1" * 20).to_json()
        assert "amount" not in payload


class TestEventBus:
    """Tests for publish and subscribe."""

    def test_typed_subscription(self):
        bus = EventBus()
        received = []
        bus.subscribe(EstateCreated)(received.append)

        bus.publish(EstateCreated(estate_id=1))
        bus.publish(HeirAdded(estate_id=1))

        assert [type(e) for e in received] == [EstateCreated]

    def test_subscribe_all(self):
        bus = EventBus()
        received = []
        bus.subscribe()(received.append)
        bus.publish(EstateCreated())
        bus.publish(HeirAdded())
        assert len(received) == 2

    def test_priority_order(self):
        bus = EventBus()
        order = []
        bus.subscribe(Event, priority=1)(lambda e: order.append("low"))
        bus.subscribe(Event, priority=10)(lambda e: order.append("high"))
        bus.publish(Event())
        assert order == ["high", "low"]

    def test_filter(self):
        bus = EventBus()
        received = []
        bus.subscribe(EstateCreated, filter_func=lambda e: e.estate_id == 2)(received.append)
        bus.publish(EstateCreated(estate_id=1))
        bus.publish(EstateCreated(estate_id=2))
        assert [e.estate_id for e in received] == [2]

    def test_failing_handler_is_isolated(self):
        errors = []
        bus = EventBus(on_error=errors.append)
        received = []

        @bus.subscribe(Event, priority=5)
        def explode(event):
            raise RuntimeError("boom")

        bus.subscribe(Event)(received.append)
        bus.publish(Event())

        assert len(received) == 1
        assert len(errors) == 1
        assert isinstance(errors[0].cause, RuntimeError)
        assert bus.metrics["error_count"] == 1

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe()(received.append)
        assert bus.unsubscribe(received.append)
        bus.publish(Event())
        assert received == []
        assert not bus.unsubscribe(received.append)


class TestEventStore:
    """Tests for the append-only store."""

    @pytest.fixture
    def store(self):
        store = EventStore()
        store.append([
            EstateCreated(estate_id=0),
            HeirAdded(estate_id=0),
            EstateCreated(estate_id=1),
        ])
        return store

    def test_sequence_and_versions(self, store):
        records = store.read_all()
        assert [r.sequence_number for r in records] == [1, 2, 3]
        assert [r.version for r in records] == [1, 2, 1]

    def test_read_stream(self, store):
        events = store.read_stream("estate-0")
        assert [e.event_type for e in events] == ["EstateCreated", "HeirAdded"]
        assert store.read_stream("estate-0", from_version=1)[0].event_type == "HeirAdded"
        assert store.read_stream("estate-9") == []

    def test_events_of_type(self, store):
        assert len(store.events_of_type(EstateCreated)) == 2

    def test_stream_ids(self, store):
        assert set(store.get_stream_ids()) == {"estate-0", "estate-1"}
        assert store.total_events == 3

    def test_record_to_dict(self, store):
        data = store.read_all()[0].to_dict()
        assert data["stream_id"] == "estate-0"
        assert data["event"]["event_type"] == "EstateCreated"
