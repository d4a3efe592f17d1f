"""Tests for the events engine."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from defarm_engine.domain import Event, EventType, EventVisibility, OperationType
from defarm_engine.engines import EventsEngine

DFID = "DFID-20240926-000001-TEST"


class TestCreateEvent:
    @pytest.mark.parametrize(
        "visibility,encrypted",
        [
            (EventVisibility.PUBLIC, False),
            (EventVisibility.PRIVATE, True),
            (EventVisibility.CIRCUIT_ONLY, False),
        ],
    )
    def test_encryption_follows_visibility(self, events_engine, visibility, encrypted):
        event = events_engine.create_event(DFID, EventType.CREATED, "tester", visibility)
        assert event.is_encrypted is encrypted

    def test_caller_cannot_override_encryption_flag(self):
        event = Event(
            dfid=DFID,
            event_type=EventType.UPDATED,
            source="tester",
            visibility=EventVisibility.PUBLIC,
            is_encrypted=True,
        )
        assert event.is_encrypted is False

    def test_default_visibility_is_public(self, events_engine):
        event = events_engine.create_event(DFID, EventType.CREATED, "tester")
        assert event.visibility == EventVisibility.PUBLIC

    def test_engine_default_visibility_can_be_overridden(self, storage):
        engine = EventsEngine(storage, default_visibility=EventVisibility.PRIVATE)
        assert engine.create_event(DFID, EventType.CREATED, "tester").is_encrypted

    def test_events_are_immutable(self, events_engine):
        event = events_engine.create_event(DFID, EventType.CREATED, "tester")
        with pytest.raises(ValueError):
            event.source = "someone-else"

    def test_get_event(self, events_engine):
        event = events_engine.create_event(DFID, EventType.CREATED, "tester")
        assert events_engine.get_event(event.event_id) == event
        assert events_engine.get_event(uuid.uuid4()) is None


class TestQueries:
    def test_events_for_item_sorted_by_timestamp(self, events_engine, storage):
        base = datetime(2024, 9, 26, tzinfo=timezone.utc)
        late = Event(dfid=DFID, event_type=EventType.ENRICHED, source="s", timestamp=base + timedelta(hours=1))
        early = Event(dfid=DFID, event_type=EventType.CREATED, source="s", timestamp=base)
        storage.store_event(late)
        storage.store_event(early)
        storage.store_event(Event(dfid="OTHER", event_type=EventType.CREATED, source="s"))

        assert [e.event_type for e in events_engine.get_events_for_item(DFID)] == [
            EventType.CREATED,
            EventType.ENRICHED,
        ]

    def test_filters(self, events_engine):
        events_engine.create_event(DFID, EventType.CREATED, "s")
        events_engine.create_event(DFID, EventType.ENRICHED, "s", EventVisibility.PRIVATE)
        events_engine.create_event("OTHER", EventType.ENRICHED, "s")

        assert len(events_engine.get_events_by_type(EventType.ENRICHED)) == 2
        assert len(events_engine.get_events_by_type(EventType.ENRICHED, DFID)) == 1
        assert len(events_engine.get_public_events()) == 2
        assert len(events_engine.get_private_events(DFID)) == 1
        assert len(events_engine.list_all_events()) == 3

    def test_time_range_is_inclusive(self, events_engine, storage):
        base = datetime(2024, 9, 26, tzinfo=timezone.utc)
        for hours in range(4):
            storage.store_event(
                Event(
                    dfid=DFID,
                    event_type=EventType.UPDATED,
                    source="s",
                    timestamp=base + timedelta(hours=hours),
                )
            )
        found = events_engine.get_events_in_time_range(
            DFID, base + timedelta(hours=1), base + timedelta(hours=2)
        )
        assert len(found) == 2


class TestHelpers:
    def test_merged_event_metadata(self, events_engine):
        event = events_engine.create_item_merged_event(DFID, "DFID-2", "items_engine")
        assert event.event_type == EventType.MERGED
        assert event.metadata == {"merged_dfid": "DFID-2"}

    def test_enriched_event_lists_keys(self, events_engine):
        event = events_engine.create_item_enriched_event(DFID, "s", {"peso", "raca"})
        assert event.metadata["enriched_keys"] == ["peso", "raca"]

    def test_circuit_operation_event_types(self, events_engine):
        circuit_id = uuid.uuid4()
        push = events_engine.create_circuit_operation_event(DFID, circuit_id, OperationType.PUSH, "u")
        pull = events_engine.create_circuit_operation_event(DFID, circuit_id, OperationType.PULL, "u")
        assert push.event_type == EventType.PUSHED_TO_CIRCUIT
        assert pull.event_type == EventType.PULLED_FROM_CIRCUIT
        assert push.metadata["circuit_id"] == str(circuit_id)
        assert push.source == "u"
