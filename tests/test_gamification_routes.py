import os

import pytest
from sqlalchemy.pool import StaticPool

from voltquest import create_app
from voltquest.models import db
from voltquest.models.catalog import Badge, VirtualItem
from voltquest.models.gamification import GameProfile
from voltquest.models.user import User


os.environ.setdefault("SECRET_KEY", "test-secret-key")


@pytest.fixture()
def app():
    app = create_app(
        {
            "TESTING": True,
            "CATALOG_CACHE_TTL": 0,
            "RATELIMIT_ENABLED": False,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_ENGINE_OPTIONS": {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            },
        }
    )
    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def _create_user(email: str, **kwargs) -> int:
    user = User(email=email, **kwargs)
    db.session.add(user)
    db.session.commit()
    return user.id


def _login(client, user_id: int) -> None:
    with client.session_transaction() as sess:
        sess["user_id"] = user_id


def test_endpoints_require_login(app, client):
    for method, path in (
        ("get", "/api/gamification/profile"),
        ("post", "/api/gamification/action"),
        ("post", "/api/gamification/items/purchase"),
        ("get", "/api/gamification/leaderboard"),
    ):
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.get_json() == {"ok": False, "error": "auth_required"}


def test_action_then_profile(app, client):
    with app.app_context():
        user_id = _create_user("driver@example.com")
    _login(client, user_id)

    response = client.post(
        "/api/gamification/action",
        json={"action_type": "check_in", "session_id": "app-1", "details": {"station": "ST-9"}},
    )
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["ok"] is True
    assert payload["rewards"]["points"] == 10
    assert payload["data"]["points_balance"] == 10
    assert payload["data"]["contribution_counters"]["check_ins"] == 1

    profile = client.get("/api/gamification/profile").get_json()["data"]
    assert profile["user_id"] == user_id
    assert profile["net_worth"] == 10

    events = client.get("/api/gamification/events").get_json()["data"]
    assert {event["kind"] for event in events} == {"ACTION_PERFORMED", "POINTS_TRANSACTION"}


def test_action_validation_error_is_json(app, client):
    with app.app_context():
        user_id = _create_user("blank@example.com")
    _login(client, user_id)

    response = client.post("/api/gamification/action", json={})
    assert response.status_code == 400
    payload = response.get_json()
    assert payload["ok"] is False
    assert payload["error"] == "validation_error"
    assert payload["details"] == {"field": "action_type"}


def test_purchase_flow_and_errors(app, client):
    with app.app_context():
        user_id = _create_user("shopper@example.com")
        db.session.add(
            VirtualItem(
                item_code="frame_gold",
                name="Golden frame",
                item_type="PROFILE_FRAME",
                cost_points=60,
                value_points=80,
            )
        )
        db.session.add(GameProfile(user_id=user_id, points_balance=100, net_worth=100))
        db.session.commit()
    _login(client, user_id)

    items = client.get("/api/gamification/items").get_json()["data"]
    assert [item["item_id"] for item in items] == ["frame_gold"]

    response = client.post("/api/gamification/items/purchase", json={"itemId": "frame_gold"})
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["new_balance"] == 40
    assert data["profile"]["net_worth"] == 120
    assert data["profile"]["inventory"]["items_owned"] == ["frame_gold"]

    again = client.post("/api/gamification/items/purchase", json={"item_id": "frame_gold"})
    assert again.status_code == 400
    assert again.get_json()["error"] == "already_owned"

    missing = client.post("/api/gamification/items/purchase", json={"item_id": "ghost"})
    assert missing.status_code == 404
    assert missing.get_json()["error"] == "item_not_found"


def test_insufficient_funds(app, client):
    with app.app_context():
        user_id = _create_user("broke@example.com")
        db.session.add(
            VirtualItem(
                item_code="frame_gold",
                name="Golden frame",
                item_type="PROFILE_FRAME",
                cost_points=60,
                value_points=80,
            )
        )
        db.session.commit()
    _login(client, user_id)

    response = client.post("/api/gamification/items/purchase", json={"item_id": "frame_gold"})
    assert response.status_code == 400
    payload = response.get_json()
    assert payload["error"] == "insufficient_funds"
    assert payload["details"]["points_balance"] == 0


def test_profile_expand_resolves_catalog(app, client):
    with app.app_context():
        user_id = _create_user("expand@example.com")
        db.session.add(
            Badge(
                badge_code="FIRST_CHECK_IN",
                name="First check-in",
                icon_url="https://cdn.example.com/first.png",
                criteria={"sourceCounter": "checkIns", "threshold": 1},
            )
        )
        db.session.commit()
    _login(client, user_id)

    client.post("/api/gamification/action", json={"action_type": "check_in"})

    plain = client.get("/api/gamification/profile").get_json()["data"]
    assert plain["inventory"]["badges_earned"] == ["FIRST_CHECK_IN"]

    expanded = client.get("/api/gamification/profile?expand=1").get_json()["data"]
    badge = expanded["inventory"]["badges_earned"][0]
    assert badge["badge_id"] == "FIRST_CHECK_IN"
    assert badge["icon_url"] == "https://cdn.example.com/first.png"


def test_leaderboard_and_limit_validation(app, client):
    with app.app_context():
        user_id = _create_user("board@example.com")
    _login(client, user_id)
    client.post("/api/gamification/action", json={"action_type": "report_fault"})

    board = client.get("/api/gamification/leaderboard?limit=5").get_json()["data"]
    assert board == [
        {"rank": 1, "user_id": user_id, "persona": "ANXIOUS_NEWCOMER", "net_worth": 50}
    ]

    response = client.get("/api/gamification/leaderboard?limit=abc")
    assert response.status_code == 400


def test_quest_accept_route(app, client):
    with app.app_context():
        user_id = _create_user("quest@example.com")
    _login(client, user_id)

    response = client.post("/api/gamification/quests/NOPE/accept")
    assert response.status_code == 404
    assert response.get_json()["error"] == "quest_not_found"


def test_admin_catalog_requires_admin(app, client):
    with app.app_context():
        player_id = _create_user("player@example.com")
        admin_id = _create_user("admin@example.com", is_admin=True)

    assert client.get("/api/admin/catalog/items").status_code == 401

    _login(client, player_id)
    response = client.get("/api/admin/catalog/items")
    assert response.status_code == 403
    assert response.get_json()["error"] == "admin_required"

    _login(client, admin_id)
    created = client.post(
        "/api/admin/catalog/items",
        json={
            "item_id": "cable_skin",
            "name": "Cable skin",
            "item_type": "SKIN",
            "cost_points": 15,
            "value_points": 10,
        },
    )
    assert created.status_code == 201
    assert created.get_json()["data"]["item_id"] == "cable_skin"

    duplicate = client.post(
        "/api/admin/catalog/items",
        json={"item_id": "cable_skin", "name": "Again", "item_type": "SKIN", "value_points": 1},
    )
    assert duplicate.status_code == 409

    patched = client.patch("/api/admin/catalog/items/cable_skin", json={"cost_points": 20})
    assert patched.get_json()["data"]["cost_points"] == 20

    quest = client.post(
        "/api/admin/catalog/quests",
        json={
            "quest_id": "EGG_HUNT",
            "name": "Egg hunt",
            "completion_criteria": {"actionType": "redeem_easter_egg"},
            "rewards": {"points": 30},
        },
    )
    assert quest.status_code == 201

    paused = client.patch("/api/admin/catalog/quests/EGG_HUNT/status", json={"status": "INACTIVE"})
    assert paused.get_json()["data"]["status"] == "INACTIVE"
    listed = client.get("/api/admin/catalog/quests?include_inactive=1").get_json()["data"]
    assert [entry["quest_id"] for entry in listed] == ["EGG_HUNT"]
    assert client.get("/api/admin/catalog/quests").get_json()["data"] == []

    assert client.delete("/api/admin/catalog/items/cable_skin").status_code == 200
    assert client.get("/api/admin/catalog/items/cable_skin").status_code == 404


def test_healthz_reports_database(app, client):
    response = client.get("/healthz")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["ok"] is True
    assert payload["database"]["online"] is True
    assert payload["uptime_seconds"] >= 0
    assert app.config["START_TIME"].tzinfo is not None


def test_unknown_api_route_is_json(app, client):
    response = client.get("/api/gamification/nowhere")
    assert response.status_code == 404
    assert response.get_json()["ok"] is False
