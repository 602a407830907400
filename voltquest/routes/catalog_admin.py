"""Admin endpoints maintaining the item, badge and quest catalog."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..services.catalog_service import (
    create_badge,
    create_item,
    create_quest,
    delete_item,
    get_item,
    list_catalog_badges,
    list_catalog_quests,
    list_items,
    set_quest_status,
    update_item,
)
from ..utils.auth import api_admin_required

bp = Blueprint("catalog_admin", __name__, url_prefix="/api/admin/catalog")


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _include_inactive() -> bool:
    return (request.args.get("include_inactive") or "").strip().lower() in {"1", "true", "yes"}


@bp.post("/items")
@api_admin_required
def create_item_route():
    item = create_item(_json_payload())
    return jsonify({"ok": True, "message": "Virtual item created successfully", "data": item.to_dict()}), 201


@bp.get("/items")
@api_admin_required
def list_items_route():
    return jsonify({"ok": True, "data": [item.to_dict() for item in list_items()]})


@bp.get("/items/<item_id>")
@api_admin_required
def get_item_route(item_id: str):
    return jsonify({"ok": True, "data": get_item(item_id).to_dict()})


@bp.patch("/items/<item_id>")
@api_admin_required
def update_item_route(item_id: str):
    item = update_item(item_id, _json_payload())
    return jsonify({"ok": True, "message": "Virtual item updated successfully", "data": item.to_dict()})


@bp.delete("/items/<item_id>")
@api_admin_required
def delete_item_route(item_id: str):
    delete_item(item_id)
    return jsonify({"ok": True, "message": "Virtual item deleted successfully"})


@bp.post("/badges")
@api_admin_required
def create_badge_route():
    badge = create_badge(_json_payload())
    return jsonify({"ok": True, "data": badge.to_dict()}), 201


@bp.get("/badges")
@api_admin_required
def list_badges_route():
    badges = list_catalog_badges(include_inactive=_include_inactive())
    return jsonify({"ok": True, "data": [badge.to_dict() for badge in badges]})


@bp.post("/quests")
@api_admin_required
def create_quest_route():
    quest = create_quest(_json_payload())
    return jsonify({"ok": True, "data": quest.to_dict()}), 201


@bp.get("/quests")
@api_admin_required
def list_quests_route():
    quests = list_catalog_quests(include_inactive=_include_inactive())
    return jsonify({"ok": True, "data": [quest.to_dict() for quest in quests]})


@bp.patch("/quests/<quest_id>/status")
@api_admin_required
def quest_status_route(quest_id: str):
    quest = set_quest_status(quest_id, _json_payload().get("status"))
    return jsonify({"ok": True, "data": quest.to_dict()})
