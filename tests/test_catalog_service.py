import os

import pytest
from sqlalchemy.pool import StaticPool

from voltquest import create_app
from voltquest.errors import ConflictError, NotFoundError, ValidationError
from voltquest.models import db
from voltquest.models.catalog import Badge, Quest, VirtualItem
from voltquest.services.catalog_service import (
    create_badge,
    create_item,
    create_quest,
    delete_item,
    get_catalog_cache,
    list_purchasable_items,
    seed_catalog,
    set_quest_status,
    update_item,
)


os.environ.setdefault("SECRET_KEY", "test-secret-key")


def _make_app(ttl: int):
    return create_app(
        {
            "TESTING": True,
            "CATALOG_CACHE_TTL": ttl,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_ENGINE_OPTIONS": {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            },
        }
    )


@pytest.fixture()
def app():
    app = _make_app(0)
    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture()
def cached_app():
    app = _make_app(60)
    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


SEED = {
    "items": [
        {
            "item_id": "frame_gold",
            "name": "Golden frame",
            "item_type": "PROFILE_FRAME",
            "cost_points": 60,
            "value_points": 80,
            "rarity": "rare",
        },
        {
            "item_id": "trophy_founder",
            "name": "Founder trophy",
            "item_type": "TROPHY",
            "cost_points": None,
            "value_points": 500,
        },
    ],
    "badges": [
        {
            "badge_id": "FIRST_CHECK_IN",
            "name": "First check-in",
            "criteria": {"sourceCounter": "contributionCounters.checkIns", "threshold": 1},
        }
    ],
    "quests": [
        {
            "quest_id": "WEEKEND_WARRIOR",
            "name": "Weekend warrior",
            "quest_category": "weekly",
            "completion_criteria": {"sourceCounter": "checkIns", "threshold": 5},
            "time_limit": {
                "start_date": "2024-07-06T00:00:00Z",
                "end_date": "2024-07-07T23:59:59Z",
            },
            "rewards": {"points": 50, "virtual_item_id": "trophy_founder"},
        }
    ],
}


def test_seed_catalog_upserts_by_code(app):
    with app.app_context():
        assert seed_catalog(SEED) == {"items": 2, "badges": 1, "quests": 1}
        assert seed_catalog(SEED) == {"items": 2, "badges": 1, "quests": 1}

        assert VirtualItem.query.count() == 2
        assert Badge.query.count() == 1
        quest = Quest.query.filter_by(quest_code="WEEKEND_WARRIOR").one()
        assert quest.category == "WEEKLY"
        assert quest.to_dict()["rewards"] == {
            "points": 50,
            "badge_id": None,
            "virtual_item_id": "trophy_founder",
        }
        assert quest.to_dict()["end_date"].startswith("2024-07-07T23:59:59")

        assert [item.item_code for item in list_purchasable_items()] == ["frame_gold"]
        assert VirtualItem.query.filter_by(item_code="frame_gold").one().rarity == "RARE"


def test_snapshot_resolves_quest_item_value(app):
    with app.app_context():
        seed_catalog(SEED)
        snapshot = get_catalog_cache().snapshot()

        assert [rule.code for rule in snapshot.badges] == ["FIRST_CHECK_IN"]
        quest = snapshot.quests[0]
        assert quest.reward_item_code == "trophy_founder"
        assert quest.reward_item_value == 500
        assert quest.criterion.threshold == 5


def test_item_crud(app):
    with app.app_context():
        item = create_item(
            {"item_id": "cable_skin", "name": "Cable skin", "item_type": "SKIN", "cost_points": 15, "value_points": 10}
        )
        assert item.to_dict()["item_id"] == "cable_skin"

        with pytest.raises(ConflictError):
            create_item(
                {"item_id": "cable_skin", "name": "Again", "item_type": "SKIN", "cost_points": 1, "value_points": 1}
            )

        updated = update_item("cable_skin", {"cost_points": None})
        assert updated.cost_points is None
        assert list_purchasable_items() == []

        delete_item("cable_skin")
        assert VirtualItem.query.count() == 0
        with pytest.raises(NotFoundError):
            delete_item("cable_skin")


@pytest.mark.parametrize(
    "payload",
    [
        {"name": "No id", "item_type": "SKIN", "value_points": 1},
        {"item_id": "x", "item_type": "SKIN", "value_points": 1},
        {"item_id": "x", "name": "X", "item_type": "SKIN", "value_points": -5},
        {"item_id": "x", "name": "X", "item_type": "SKIN", "value_points": 1, "cost_points": "10"},
    ],
)
def test_item_validation(app, payload):
    with app.app_context():
        with pytest.raises(ValidationError):
            create_item(payload)
        assert VirtualItem.query.count() == 0


def test_badge_and_quest_validation(app):
    with app.app_context():
        with pytest.raises(ValidationError):
            create_badge({"badge_id": "BAD", "name": "Bad", "criteria": {"sourceCounter": "tacos", "threshold": 1}})
        with pytest.raises(ValidationError):
            create_quest(
                {
                    "quest_id": "Q",
                    "name": "Q",
                    "completion_criteria": {"actionType": "check_in"},
                    "target_personas": ["ASTRONAUT"],
                }
            )
        with pytest.raises(ValidationError):
            create_quest(
                {
                    "quest_id": "Q",
                    "name": "Q",
                    "completion_criteria": {"actionType": "check_in"},
                    "time_limit": {"start_date": "2024-07-08", "end_date": "2024-07-01"},
                }
            )
        with pytest.raises(NotFoundError):
            create_quest(
                {
                    "quest_id": "Q",
                    "name": "Q",
                    "completion_criteria": {"actionType": "check_in"},
                    "rewards": {"virtual_item_id": "missing"},
                }
            )
        assert Quest.query.count() == 0


def test_set_quest_status(app):
    with app.app_context():
        create_quest({"quest_id": "Q1", "name": "Q1", "completion_criteria": {"actionType": "check_in"}})

        assert set_quest_status("Q1", "inactive").status == "INACTIVE"
        assert get_catalog_cache().snapshot().quests == ()

        with pytest.raises(ValidationError):
            set_quest_status("Q1", None)
        with pytest.raises(ValidationError):
            set_quest_status("Q1", "PAUSED")


def test_cached_snapshot_is_stale_until_invalidated(cached_app):
    with cached_app.app_context():
        catalog = get_catalog_cache()
        assert catalog.ttl == 60
        assert catalog.snapshot().badges == ()

        # A write that bypasses the service is invisible until the TTL or an invalidation.
        db.session.add(
            Badge(
                badge_code="SNEAKY",
                name="Sneaky",
                criteria={"sourceCounter": "checkIns", "threshold": 1},
            )
        )
        db.session.commit()
        assert catalog.snapshot().badges == ()

        catalog.invalidate()
        assert [rule.code for rule in catalog.snapshot().badges] == ["SNEAKY"]


def test_service_writes_invalidate_the_cache(cached_app):
    with cached_app.app_context():
        catalog = get_catalog_cache()
        assert catalog.snapshot().badges == ()

        create_badge(
            {
                "badge_id": "FRESH",
                "name": "Fresh",
                "criteria": {"actionType": "redeem_easter_egg"},
            }
        )

        assert [rule.code for rule in catalog.snapshot().badges] == ["FRESH"]
