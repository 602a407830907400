"""Catalog store: cached rule snapshots plus item/badge/quest management."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from flask import current_app

from ..constants import CatalogStatus, Persona
from ..errors import (
    ConflictError,
    ItemNotFoundError,
    NotFoundError,
    QuestNotFoundError,
    ValidationError,
)
from ..extensions import cache
from ..models import db
from ..models.catalog import Badge, Quest, VirtualItem
from ..utils.logger import get_logger
from ..utils.time import ensure_utc, parse_iso_datetime, utcnow
from .reward_rules import BadgeRule, Criterion, QuestRule
from .unit_of_work import unit_of_work

logger = get_logger(__name__)

CATALOG_CACHE_KEY = "voltquest:catalog:rules"


@dataclass(frozen=True)
class CatalogSnapshot:
    """Active badge and quest rules as of ``loaded_at``."""

    badges: tuple[BadgeRule, ...]
    quests: tuple[QuestRule, ...]
    loaded_at: datetime


def _parse_rule_criterion(kind: str, code: str, raw) -> Criterion | None:
    try:
        return Criterion.parse(raw)
    except ValueError as exc:
        logger.warning("[CATALOG] Skipping %s %s with invalid criteria: %s", kind, code, exc)
        return None


def load_catalog_snapshot() -> CatalogSnapshot:
    badges = []
    for badge in (
        Badge.query.filter(Badge.status == CatalogStatus.ACTIVE.value)
        .order_by(Badge.badge_code.asc())
        .all()
    ):
        criterion = _parse_rule_criterion("badge", badge.badge_code, badge.criteria)
        if criterion is not None:
            badges.append(BadgeRule(code=badge.badge_code, criterion=criterion))

    quest_rows = (
        Quest.query.filter(Quest.status == CatalogStatus.ACTIVE.value)
        .order_by(Quest.quest_code.asc())
        .all()
    )
    reward_item_codes = {quest.reward_item_code for quest in quest_rows if quest.reward_item_code}
    item_values = {}
    if reward_item_codes:
        item_values = {
            item.item_code: item.value_points
            for item in VirtualItem.query.filter(VirtualItem.item_code.in_(reward_item_codes)).all()
        }

    quests = []
    for quest in quest_rows:
        criterion = _parse_rule_criterion("quest", quest.quest_code, quest.completion_criteria)
        if criterion is None:
            continue
        reward_item_code = quest.reward_item_code
        if reward_item_code and reward_item_code not in item_values:
            logger.warning(
                "[CATALOG] Quest %s rewards unknown item %s; item reward ignored",
                quest.quest_code,
                reward_item_code,
            )
            reward_item_code = None
        quests.append(
            QuestRule(
                code=quest.quest_code,
                criterion=criterion,
                reward_points=quest.reward_points or 0,
                reward_badge_code=quest.reward_badge_code,
                reward_item_code=reward_item_code,
                reward_item_value=item_values.get(reward_item_code, 0) if reward_item_code else 0,
                start=ensure_utc(quest.start_date) if quest.start_date else None,
                end=ensure_utc(quest.end_date) if quest.end_date else None,
                target_personas=frozenset(quest.target_personas or ()),
            )
        )

    return CatalogSnapshot(badges=tuple(badges), quests=tuple(quests), loaded_at=utcnow())


class CatalogCache:
    """Read-through cache of catalog rules.

    A snapshot may be up to ``ttl`` seconds stale. Catalog writes call
    ``invalidate()`` so the next read reloads; ``ttl <= 0`` always reloads.
    """

    def __init__(self, backend, ttl: int) -> None:
        self.backend = backend
        self.ttl = int(ttl)

    def snapshot(self) -> CatalogSnapshot:
        if self.ttl <= 0:
            return load_catalog_snapshot()
        try:
            cached = self.backend.get(CATALOG_CACHE_KEY)
        except Exception as exc:
            logger.warning("[CATALOG] Cache read failed, loading from database: %s", exc)
            return load_catalog_snapshot()
        if cached is None:
            return self.refresh()
        return cached

    def refresh(self) -> CatalogSnapshot:
        snapshot = load_catalog_snapshot()
        if self.ttl > 0:
            try:
                self.backend.set(CATALOG_CACHE_KEY, snapshot, timeout=self.ttl)
            except Exception as exc:
                logger.warning("[CATALOG] Cache write failed: %s", exc)
        logger.info(
            "[CATALOG] Loaded %d badge rules and %d quest rules",
            len(snapshot.badges),
            len(snapshot.quests),
        )
        return snapshot

    def invalidate(self) -> None:
        try:
            self.backend.delete(CATALOG_CACHE_KEY)
        except Exception as exc:
            logger.warning("[CATALOG] Cache invalidation failed: %s", exc)


def get_catalog_cache() -> CatalogCache:
    catalog = current_app.extensions.get("catalog_cache")
    if catalog is None:
        catalog = CatalogCache(cache, current_app.config.get("CATALOG_CACHE_TTL", 60))
        current_app.extensions["catalog_cache"] = catalog
    return catalog


# -- field validation ------------------------------------------------------


def _first(data: Mapping[str, Any], *keys: str):
    for key in keys:
        if key in data:
            return data[key]
    return None


def _require_str(data: Mapping[str, Any], *keys: str, max_length: int = 120) -> str:
    value = _first(data, *keys)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{keys[0]}' is required.", {"field": keys[0]})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"'{keys[0]}' is too long.", {"field": keys[0], "max_length": max_length})
    return value


def _optional_str(data: Mapping[str, Any], *keys: str, max_length: int = 255) -> str | None:
    value = _first(data, *keys)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"'{keys[0]}' must be a string.", {"field": keys[0]})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"'{keys[0]}' is too long.", {"field": keys[0], "max_length": max_length})
    return value or None


def _int_field(value, name: str, *, minimum: int | None = 0, nullable: bool = False) -> int | None:
    if value is None:
        if nullable:
            return None
        raise ValidationError(f"'{name}' is required.", {"field": name})
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"'{name}' must be an integer.", {"field": name})
    if minimum is not None and value < minimum:
        raise ValidationError(f"'{name}' must be >= {minimum}.", {"field": name})
    return value


def _status_field(value, default: str = CatalogStatus.ACTIVE.value) -> str:
    if value is None:
        return default
    normalized = str(value).strip().upper()
    if normalized not in {status.value for status in CatalogStatus}:
        raise ValidationError("'status' must be ACTIVE or INACTIVE.", {"field": "status"})
    return normalized


def _criteria_field(value, name: str) -> dict:
    try:
        Criterion.parse(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid '{name}': {exc}", {"field": name}) from exc
    return dict(value)


def _datetime_field(value, name: str) -> datetime | None:
    try:
        return parse_iso_datetime(value)
    except ValueError as exc:
        raise ValidationError(f"'{name}' must be an ISO-8601 datetime.", {"field": name}) from exc


# -- virtual items ---------------------------------------------------------


def list_purchasable_items() -> list[VirtualItem]:
    return (
        VirtualItem.query.filter(VirtualItem.cost_points.isnot(None))
        .order_by(VirtualItem.cost_points.asc(), VirtualItem.item_code.asc())
        .all()
    )


def list_items() -> list[VirtualItem]:
    return VirtualItem.query.order_by(VirtualItem.item_code.asc()).all()


def find_item(item_code: str) -> VirtualItem | None:
    return VirtualItem.query.filter_by(item_code=item_code).first()


def get_item(item_code: str) -> VirtualItem:
    item = find_item(item_code)
    if item is None:
        raise ItemNotFoundError(f"Item with ID '{item_code}' not found.", {"item_id": item_code})
    return item


def _apply_item_fields(item: VirtualItem, data: Mapping[str, Any], *, partial: bool) -> None:
    if not partial or "name" in data:
        item.name = _require_str(data, "name")
    if not partial or "item_type" in data:
        item.item_type = _require_str(data, "item_type", max_length=40)
    if not partial or "value_points" in data:
        item.value_points = _int_field(data.get("value_points"), "value_points")
    if not partial or "cost_points" in data:
        item.cost_points = _int_field(data.get("cost_points"), "cost_points", nullable=True)
    if "description" in data:
        item.description = _optional_str(data, "description")
    if "rarity" in data or not partial:
        item.rarity = (_optional_str(data, "rarity", max_length=20) or "COMMON").upper()
    if "asset_url" in data:
        item.asset_url = _optional_str(data, "asset_url", max_length=512)


def create_item(data: Mapping[str, Any]) -> VirtualItem:
    item_code = _require_str(data, "item_id", "item_id_string", max_length=64)
    item = VirtualItem(item_code=item_code)
    _apply_item_fields(item, data, partial=False)

    with unit_of_work("create_item", item_id=item_code):
        if find_item(item_code) is not None:
            raise ConflictError(
                f"An item with item_id '{item_code}' already exists.", {"item_id": item_code}
            )
        db.session.add(item)

    get_catalog_cache().invalidate()
    logger.info("[CATALOG] Created item %s", item_code)
    return item


def update_item(item_code: str, data: Mapping[str, Any]) -> VirtualItem:
    with unit_of_work("update_item", item_id=item_code):
        item = get_item(item_code)
        _apply_item_fields(item, data, partial=True)

    get_catalog_cache().invalidate()
    logger.info("[CATALOG] Updated item %s", item_code)
    return item


def delete_item(item_code: str) -> None:
    with unit_of_work("delete_item", item_id=item_code):
        item = get_item(item_code)
        db.session.delete(item)

    get_catalog_cache().invalidate()
    logger.info("[CATALOG] Deleted item %s", item_code)


# -- badges ----------------------------------------------------------------


def list_catalog_badges(*, include_inactive: bool = False) -> list[Badge]:
    query = Badge.query
    if not include_inactive:
        query = query.filter(Badge.status == CatalogStatus.ACTIVE.value)
    return query.order_by(Badge.badge_code.asc()).all()


def _apply_badge_fields(badge: Badge, data: Mapping[str, Any]) -> None:
    badge.name = _require_str(data, "name")
    badge.description = _optional_str(data, "description") or ""
    badge.icon_url = _optional_str(data, "icon_url", max_length=512)
    badge.status = _status_field(data.get("status"))
    badge.criteria = _criteria_field(data.get("criteria"), "criteria")


def create_badge(data: Mapping[str, Any]) -> Badge:
    badge_code = _require_str(data, "badge_id", "badge_id_string", max_length=64)
    badge = Badge(badge_code=badge_code)
    _apply_badge_fields(badge, data)

    with unit_of_work("create_badge", badge_id=badge_code):
        if Badge.query.filter_by(badge_code=badge_code).first() is not None:
            raise ConflictError(
                f"A badge with badge_id '{badge_code}' already exists.", {"badge_id": badge_code}
            )
        db.session.add(badge)

    get_catalog_cache().invalidate()
    logger.info("[CATALOG] Created badge %s", badge_code)
    return badge


# -- quests ----------------------------------------------------------------


def list_catalog_quests(*, include_inactive: bool = False) -> list[Quest]:
    query = Quest.query
    if not include_inactive:
        query = query.filter(Quest.status == CatalogStatus.ACTIVE.value)
    return query.order_by(Quest.quest_code.asc()).all()


def get_quest(quest_code: str) -> Quest:
    quest = Quest.query.filter_by(quest_code=quest_code).first()
    if quest is None:
        raise QuestNotFoundError(f"Quest '{quest_code}' not found.", {"quest_id": quest_code})
    return quest


def _apply_quest_fields(quest: Quest, data: Mapping[str, Any]) -> None:
    quest.name = _require_str(data, "name")
    quest.description = _optional_str(data, "description") or ""
    quest.category = (_optional_str(data, "quest_category", "category", max_length=40) or "GENERAL").upper()
    quest.status = _status_field(data.get("status"))
    quest.completion_criteria = _criteria_field(data.get("completion_criteria"), "completion_criteria")

    personas = data.get("target_personas") or []
    known_personas = {persona.value for persona in Persona}
    if not isinstance(personas, list) or any(p not in known_personas for p in personas):
        raise ValidationError(
            "'target_personas' must list known personas.",
            {"field": "target_personas", "allowed": sorted(known_personas)},
        )
    quest.target_personas = list(personas)

    window = data.get("time_limit") or {}
    if not isinstance(window, Mapping):
        raise ValidationError("'time_limit' must be an object.", {"field": "time_limit"})
    start = _datetime_field(window.get("start_date", data.get("start_date")), "start_date")
    end = _datetime_field(window.get("end_date", data.get("end_date")), "end_date")
    if start is not None and end is not None and end < start:
        raise ValidationError("'end_date' must not precede 'start_date'.", {"field": "end_date"})
    quest.start_date = start
    quest.end_date = end

    rewards = data.get("rewards") or {}
    if not isinstance(rewards, Mapping):
        raise ValidationError("'rewards' must be an object.", {"field": "rewards"})
    quest.reward_points = _int_field(rewards.get("points"), "rewards.points", nullable=True)
    quest.reward_badge_code = _optional_str(rewards, "badge_id", max_length=64)
    quest.reward_item_code = _optional_str(rewards, "virtual_item_id", "item_id", max_length=64)


def create_quest(data: Mapping[str, Any]) -> Quest:
    quest_code = _require_str(data, "quest_id", "quest_id_string", max_length=64)
    quest = Quest(quest_code=quest_code)
    _apply_quest_fields(quest, data)

    with unit_of_work("create_quest", quest_id=quest_code):
        if Quest.query.filter_by(quest_code=quest_code).first() is not None:
            raise ConflictError(
                f"A quest with quest_id '{quest_code}' already exists.", {"quest_id": quest_code}
            )
        if quest.reward_item_code and find_item(quest.reward_item_code) is None:
            raise NotFoundError(
                f"Reward item '{quest.reward_item_code}' not found.",
                {"virtual_item_id": quest.reward_item_code},
            )
        db.session.add(quest)

    get_catalog_cache().invalidate()
    logger.info("[CATALOG] Created quest %s", quest_code)
    return quest


def set_quest_status(quest_code: str, status) -> Quest:
    if status is None:
        raise ValidationError("'status' is required.", {"field": "status"})
    normalized = _status_field(status)
    with unit_of_work("set_quest_status", quest_id=quest_code):
        quest = get_quest(quest_code)
        quest.status = normalized

    get_catalog_cache().invalidate()
    logger.info("[CATALOG] Quest %s set to %s", quest_code, normalized)
    return quest


# -- seeding ---------------------------------------------------------------


def seed_catalog(payload: Mapping[str, Any]) -> dict[str, int]:
    """Upsert items, badges and quests by code from a JSON-style payload."""

    counts = {"items": 0, "badges": 0, "quests": 0}
    with unit_of_work("seed_catalog"):
        for raw in payload.get("items") or []:
            code = _require_str(raw, "item_id", "item_id_string", max_length=64)
            item = find_item(code) or VirtualItem(item_code=code)
            _apply_item_fields(item, raw, partial=False)
            db.session.add(item)
            counts["items"] += 1
        db.session.flush()

        for raw in payload.get("badges") or []:
            code = _require_str(raw, "badge_id", "badge_id_string", max_length=64)
            badge = Badge.query.filter_by(badge_code=code).first() or Badge(badge_code=code)
            _apply_badge_fields(badge, raw)
            db.session.add(badge)
            counts["badges"] += 1

        for raw in payload.get("quests") or []:
            code = _require_str(raw, "quest_id", "quest_id_string", max_length=64)
            quest = Quest.query.filter_by(quest_code=code).first() or Quest(quest_code=code)
            _apply_quest_fields(quest, raw)
            db.session.add(quest)
            counts["quests"] += 1

    get_catalog_cache().invalidate()
    logger.info("[CATALOG] Seeded catalog %s", counts)
    return counts
