import threading

import pytest

from insightvalue.core.errors import InfrastructureError
from insightvalue.core.events.event_bus import EventBus, event_bus
from insightvalue.core.events.event_models import EventRecord
from insightvalue.core.utils.transactions import KeyedLocks
from insightvalue.domains.insights import events, services


@pytest.mark.unit
def test_failing_handler_is_logged_and_others_still_run(caplog):
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("index unavailable")

    bus.subscribe(["a.happened", "b.happened"], broken)
    bus.subscribe("a.happened", seen.append)
    record = EventRecord(event_type="a.happened", payload={})

    assert bus.publish(record) == 1
    assert seen == [record]
    failed = [r for r in caplog.records if r.levelname == "ERROR"]
    assert len(failed) == 1
    assert "broken" in failed[0].getMessage()
    assert failed[0].exc_info[0] is RuntimeError


@pytest.mark.unit
def test_subscribe_is_idempotent_and_unsubscribe_removes():
    bus = EventBus()
    handler = lambda event: None  # noqa: E731
    bus.subscribe("x", handler)
    bus.subscribe(["x"], handler)
    assert bus.handlers_for("x") == [handler]
    bus.unsubscribe("x", handler)
    assert bus.handlers_for("x") == []


@pytest.mark.integration
def test_subscriber_failure_does_not_fail_committed_point_batch(app):
    calls = []

    def flaky_subscriber(event):
        calls.append(event.id)
        if len(calls) == 2:
            raise InfrastructureError("Search index unavailable.")

    with app.app_context():
        insight = services.create_insight(title="Flaky index")
        channel = services.upsert_effect_channel(
            insight.id, method_key="*", metric_key="pe", stage="output", operator="add"
        )
        event_bus.subscribe(events.EFFECT_POINT_UPSERTED, flaky_subscriber)
        try:
            services.upsert_effect_points(
                channel.id,
                [
                    {"effect_date": "2025-01-01", "effect_value": 1},
                    {"effect_date": "2025-01-02", "effect_value": 2},
                    {"effect_date": "2025-01-03", "effect_value": 3},
                ],
            )
        finally:
            event_bus.unsubscribe(events.EFFECT_POINT_UPSERTED, flaky_subscriber)

        stored = [p.effect_date.isoformat() for p in services.list_effect_points(channel.id)]
        assert stored == ["2025-01-01", "2025-01-02", "2025-01-03"]
        assert len(calls) == 3
        assert EventRecord.query.filter_by(event_type=events.EFFECT_POINT_UPSERTED).count() == 3


@pytest.mark.unit
def test_keyed_locks_drop_entries_once_released():
    locks = KeyedLocks()
    for key in range(50):
        with locks.hold(key):
            assert locks.active_count() == 1
    assert locks.active_count() == 0


@pytest.mark.unit
def test_keyed_locks_serialize_same_key_and_keep_entry_while_waited_on():
    locks = KeyedLocks()
    entered = threading.Event()
    release = threading.Event()
    order = []

    def first():
        with locks.hold("insight-1"):
            entered.set()
            release.wait(timeout=5)
            order.append("first")

    def second():
        entered.wait(timeout=5)
        with locks.hold("insight-1"):
            order.append("second")

    t1 = threading.Thread(target=first)
    t2 = threading.Thread(target=second)
    t1.start()
    t2.start()
    entered.wait(timeout=5)
    assert locks.active_count() == 1
    release.set()
    t1.join(timeout=5)
    t2.join(timeout=5)

    assert order == ["first", "second"]
    assert locks.active_count() == 0
