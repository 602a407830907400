import os
import threading

import pytest

from voltquest import create_app
from voltquest.errors import GamificationError
from voltquest.models import db
from voltquest.models.catalog import VirtualItem
from voltquest.models.event import GameEvent
from voltquest.models.gamification import GameProfile, ProfileItem
from voltquest.models.user import User
from voltquest.services.gamification_service import log_action, purchase_virtual_item


os.environ.setdefault("SECRET_KEY", "test-secret-key")


@pytest.fixture()
def app(tmp_path):
    # A file database so every thread gets its own connection and session.
    app = create_app(
        {
            "TESTING": True,
            "CATALOG_CACHE_TTL": 0,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'voltquest.db'}",
            "SQLALCHEMY_ENGINE_OPTIONS": {
                "connect_args": {"check_same_thread": False, "timeout": 30},
            },
        }
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _run_concurrently(app, calls):
    """Start every call at once, each in its own thread and app context."""

    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)

    def worker(index, call):
        with app.app_context():
            barrier.wait()
            try:
                call()
                results[index] = "ok"
            except GamificationError as exc:
                results[index] = exc.error_code
            except Exception as exc:  # surfaced through the assertions below
                results[index] = repr(exc)

    threads = [
        threading.Thread(target=worker, args=(index, call)) for index, call in enumerate(calls)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results


def test_parallel_purchases_cannot_double_spend(app):
    user = User(email="spender@example.com")
    db.session.add(user)
    db.session.flush()
    for code in ("i0", "i1"):
        db.session.add(
            VirtualItem(
                item_code=code,
                name=code.upper(),
                item_type="SKIN",
                cost_points=60,
                value_points=60,
            )
        )
    db.session.add(GameProfile(user_id=user.id, points_balance=100, net_worth=100))
    db.session.commit()
    user_id = user.id
    db.session.close()

    results = _run_concurrently(
        app,
        [
            lambda: purchase_virtual_item(user_id, "i0"),
            lambda: purchase_virtual_item(user_id, "i1"),
        ],
    )

    assert sorted(results) == ["insufficient_funds", "ok"]
    profile = GameProfile.query.filter_by(user_id=user_id).one()
    assert profile.points_balance == 40
    assert profile.net_worth == 100
    assert profile.items_purchased == 1
    assert ProfileItem.query.filter_by(profile_id=profile.id).count() == 1
    assert GameEvent.query.filter_by(user_id=user_id).count() == 1


def test_parallel_actions_are_all_counted(app):
    user = User(email="busy@example.com")
    db.session.add(user)
    db.session.commit()
    user_id = user.id
    db.session.close()

    results = _run_concurrently(
        app, [lambda: log_action(user_id, "check_in") for _ in range(6)]
    )

    assert results == ["ok"] * 6
    profile = GameProfile.query.filter_by(user_id=user_id).one()
    assert profile.points_balance == 60
    assert profile.check_ins == 6
    assert GameProfile.query.count() == 1
