from datetime import date

import pytest

from insightvalue.core.errors import NotFoundError, ValidationError
from insightvalue.core.events.event_models import EventRecord
from insightvalue.domains.insights import events, services
from insightvalue.domains.insights.models.insight_models import Insight

pytestmark = pytest.mark.integration


def test_create_insight_applies_defaults_and_logs_event(app):
    with app.app_context():
        insight = services.create_insight(title="  Copper squeeze  ", tags=["metals", "metals", " china "])

        assert insight.id is not None
        assert insight.title == "Copper squeeze"
        assert insight.thesis == ""
        assert insight.status == "draft"
        assert insight.tags == ["metals", "china"]
        assert insight.meta == {}
        assert insight.deleted_at is None

        event = EventRecord.query.filter_by(event_type=events.INSIGHT_CREATED).one()
        assert event.insight_id == insight.id
        assert event.payload["title"] == "Copper squeeze"


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"title": "   "}, "title"),
        ({"title": "ok", "status": "pending"}, "status"),
        ({"title": "ok", "status": "deleted"}, "status"),
        ({"title": "ok", "valid_from": "2025-02-30"}, "valid_from"),
        ({"title": "ok", "valid_from": "2025-03-01", "valid_to": "2025-02-01"}, "valid_from"),
        ({"title": "ok", "meta": ["not", "a", "dict"]}, "meta"),
        ({"title": "ok", "thesis": 5}, "thesis"),
        ({"title": "ok", "tags": ["ai", 7]}, "tags"),
    ],
)
def test_create_insight_rejects_invalid_input_without_writing(app, kwargs, field):
    with app.app_context():
        with pytest.raises(ValidationError) as excinfo:
            services.create_insight(**kwargs)
        assert excinfo.value.field == field
        assert Insight.query.count() == 0
        assert EventRecord.query.count() == 0


def test_get_unknown_insight_raises_not_found(app):
    with app.app_context():
        with pytest.raises(NotFoundError):
            services.get_insight(999)


def test_update_touches_only_given_fields(app):
    with app.app_context():
        insight = services.create_insight(
            title="Rates pivot", thesis="Cuts by Q3", valid_from=date(2025, 1, 1), tags=["rates"]
        )
        updated = services.update_insight(insight.id, status="active", valid_to="2025-12-31")

        assert updated.status == "active"
        assert updated.valid_from == date(2025, 1, 1)
        assert updated.valid_to == date(2025, 12, 31)
        assert updated.thesis == "Cuts by Q3"
        assert updated.tags == ["rates"]

        event = EventRecord.query.filter_by(event_type=events.INSIGHT_UPDATED).one()
        assert set(event.payload["fields"]) == {"status", "valid_to"}


def test_update_checks_window_against_stored_values(app):
    with app.app_context():
        insight = services.create_insight(title="Window", valid_from="2025-06-01")
        with pytest.raises(ValidationError):
            services.update_insight(insight.id, valid_to="2025-05-01")
        assert services.get_insight(insight.id).valid_to is None


def test_update_allows_any_live_status_but_not_deleted(app):
    with app.app_context():
        insight = services.create_insight(title="Status moves", status="archived")
        assert services.update_insight(insight.id, status="draft").status == "draft"
        assert services.update_insight(insight.id, status="active").status == "active"
        with pytest.raises(ValidationError):
            services.update_insight(insight.id, status="deleted")


def test_update_rejects_unknown_fields(app):
    with app.app_context():
        insight = services.create_insight(title="Strict")
        with pytest.raises(ValidationError):
            services.update_insight(insight.id, owner="someone")


def test_update_rejects_non_text_thesis(app):
    with app.app_context():
        insight = services.create_insight(title="Typed", thesis="Original")
        with pytest.raises(ValidationError) as excinfo:
            services.update_insight(insight.id, thesis=5)
        assert excinfo.value.field == "thesis"
        assert services.get_insight(insight.id).thesis == "Original"


def test_remove_is_soft_and_terminal(app):
    with app.app_context():
        insight = services.create_insight(title="Short-lived", status="active")
        removed = services.remove_insight(insight.id)

        assert removed.status == "deleted"
        assert removed.deleted_at is not None
        assert Insight.query.filter_by(id=insight.id).count() == 1

        # Removing twice is a no-op and logs nothing new.
        services.remove_insight(insight.id)
        assert EventRecord.query.filter_by(event_type=events.INSIGHT_DELETED).count() == 1

        with pytest.raises(ValidationError) as excinfo:
            services.update_insight(insight.id, status="active")
        assert excinfo.value.code == "insight_deleted"


def test_list_hides_deleted_and_orders_by_latest_change(app):
    with app.app_context():
        first = services.create_insight(title="Oil supply shock")
        second = services.create_insight(title="Oil demand slump", thesis="China reopening fades")
        gone = services.create_insight(title="Oil glut")
        services.remove_insight(gone.id)
        services.update_insight(first.id, thesis="OPEC cuts deepen")

        page = services.list_insights()
        assert [i.id for i in page["items"]] == [first.id, second.id]
        assert page["total"] == 2

        everything = services.list_insights(status="all")
        assert everything["total"] == 3

        only_deleted = services.list_insights(status="deleted")
        assert [i.id for i in only_deleted["items"]] == [gone.id]

        by_text = services.list_insights(query="china")
        assert [i.id for i in by_text["items"]] == [second.id]


def test_list_paginates_and_clamps_limit(app):
    with app.app_context():
        for idx in range(5):
            services.create_insight(title=f"Insight {idx}")
        page = services.list_insights(limit=2, offset=2)
        assert len(page["items"]) == 2
        assert page["total"] == 5
        assert page["limit"] == 2
        assert page["offset"] == 2

        clamped = services.list_insights(limit=10_000)
        assert clamped["limit"] == app.config["INSIGHT_LIST_LIMIT_MAX"]


def test_facts_are_listed_newest_first_and_removable(app):
    with app.app_context():
        older = services.create_fact("Copper inventories at 10y low")
        newer = services.create_fact("LME warrants cancelled")

        page = services.list_facts()
        assert [f.id for f in page["items"]] == [newer.id, older.id]

        services.remove_fact(older.id)
        assert services.list_facts()["total"] == 1
        with pytest.raises(NotFoundError):
            services.remove_fact(older.id)
        with pytest.raises(ValidationError):
            services.create_fact("   ")
