"""Player-facing gamification API."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..models.catalog import Badge, VirtualItem
from ..services.catalog_service import list_purchasable_items
from ..services.gamification_service import (
    accept_quest,
    get_event_history,
    get_leaderboard,
    get_profile,
    list_badges,
    list_quests,
    log_action,
    purchase_virtual_item,
)
from ..utils.auth import api_login_required, get_current_user

bp = Blueprint("gamification", __name__, url_prefix="/api/gamification")


def _is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes"}


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _serialize_profile(profile, *, expand: bool = False) -> dict:
    """Profile JSON; ``expand`` resolves owned codes to catalog records."""
    data = profile.to_dict()
    if not expand:
        return data

    badge_codes = data["inventory"]["badges_earned"]
    item_codes = data["inventory"]["items_owned"]
    badges = {
        badge.badge_code: badge.to_dict()
        for badge in Badge.query.filter(Badge.badge_code.in_(badge_codes)).all()
    } if badge_codes else {}
    items = {
        item.item_code: item.to_dict()
        for item in VirtualItem.query.filter(VirtualItem.item_code.in_(item_codes)).all()
    } if item_codes else {}

    # Codes whose catalog entry was removed stay visible as bare ids.
    data["inventory"]["badges_earned"] = [
        badges.get(code, {"badge_id": code}) for code in badge_codes
    ]
    data["inventory"]["items_owned"] = [
        items.get(code, {"item_id": code}) for code in item_codes
    ]
    return data


@bp.get("/profile")
@api_login_required
def profile():
    user = get_current_user()
    profile = get_profile(user.id)
    expand = _is_truthy(request.args.get("expand"))
    return jsonify({"ok": True, "data": _serialize_profile(profile, expand=expand)})


@bp.post("/action")
@api_login_required
def action():
    user = get_current_user()
    payload = _json_payload()
    result = log_action(
        user.id,
        payload.get("action_type"),
        session_id=payload.get("session_id"),
        details=payload.get("details"),
    )
    outcome = result.outcome
    return jsonify(
        {
            "ok": True,
            "message": "Action logged successfully",
            "data": _serialize_profile(result.profile),
            "rewards": {
                "points": outcome.total_points,
                "badges_unlocked": outcome.badges_unlocked,
                "quests_completed": outcome.quests_completed,
            },
        }
    )


@bp.get("/items")
@api_login_required
def items():
    items = list_purchasable_items()
    return jsonify({"ok": True, "data": [item.to_dict() for item in items]})


@bp.post("/items/purchase")
@api_login_required
def purchase():
    user = get_current_user()
    payload = _json_payload()
    result = purchase_virtual_item(
        user.id,
        payload.get("item_id", payload.get("itemId")),
        session_id=payload.get("session_id"),
    )
    item_id = result.event.details.get("item_id")
    return jsonify(
        {
            "ok": True,
            "message": f"Successfully purchased '{item_id}'!",
            "data": {
                "new_balance": result.new_balance,
                "profile": _serialize_profile(result.profile),
            },
        }
    )


@bp.get("/leaderboard")
@api_login_required
def leaderboard():
    entries = get_leaderboard(request.args.get("limit"))
    return jsonify({"ok": True, "data": entries})


@bp.get("/events")
@api_login_required
def events():
    user = get_current_user()
    history = get_event_history(user.id, request.args.get("limit"))
    return jsonify({"ok": True, "data": [event.to_dict() for event in history]})


@bp.get("/badges")
@api_login_required
def badges():
    user = get_current_user()
    return jsonify({"ok": True, "data": list_badges(user.id)})


@bp.get("/quests")
@api_login_required
def quests():
    user = get_current_user()
    return jsonify({"ok": True, "data": list_quests(user.id)})


@bp.post("/quests/<quest_id>/accept")
@api_login_required
def accept(quest_id: str):
    user = get_current_user()
    profile = accept_quest(user.id, quest_id)
    return jsonify({"ok": True, "data": _serialize_profile(profile)})
