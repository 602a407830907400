"""Read-mostly catalog: virtual items, badges and quests."""

from __future__ import annotations

from datetime import datetime, timezone

from ..constants import CatalogStatus
from ..utils.time import utcnow_naive
from . import db


def _normalize_datetime(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class VirtualItem(db.Model):
    """Shop item. ``cost_points`` of ``None`` means the item cannot be bought."""

    __tablename__ = "virtual_items"

    id = db.Column(db.Integer, primary_key=True)
    item_code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    item_type = db.Column(db.String(40), nullable=False)
    cost_points = db.Column(db.Integer, nullable=True)
    value_points = db.Column(db.Integer, nullable=False)
    rarity = db.Column(db.String(20), nullable=False, default="COMMON")
    asset_url = db.Column(db.String(512), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow_naive, nullable=False)

    __table_args__ = (
        db.CheckConstraint(
            "cost_points IS NULL OR cost_points >= 0",
            name="ck_virtual_items_cost_non_negative",
        ),
    )

    @property
    def is_purchasable(self) -> bool:
        return self.cost_points is not None

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_code,
            "name": self.name,
            "description": self.description,
            "item_type": self.item_type,
            "cost_points": self.cost_points,
            "value_points": self.value_points,
            "rarity": self.rarity,
            "asset_url": self.asset_url,
        }

    def __repr__(self) -> str:
        return f"<VirtualItem {self.item_code} cost={self.cost_points}>"


class Badge(db.Model):
    __tablename__ = "badges"

    id = db.Column(db.Integer, primary_key=True)
    badge_code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(255), nullable=False, default="")
    icon_url = db.Column(db.String(512), nullable=True)
    status = db.Column(
        db.String(16),
        nullable=False,
        default=CatalogStatus.ACTIVE.value,
        server_default=CatalogStatus.ACTIVE.value,
    )
    criteria = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow_naive, nullable=False)

    def to_dict(self) -> dict:
        return {
            "badge_id": self.badge_code,
            "name": self.name,
            "description": self.description,
            "icon_url": self.icon_url,
            "status": self.status,
            "criteria": dict(self.criteria or {}),
        }

    def __repr__(self) -> str:
        return f"<Badge {self.badge_code}>"


class Quest(db.Model):
    __tablename__ = "quests"

    id = db.Column(db.Integer, primary_key=True)
    quest_code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(255), nullable=False, default="")
    category = db.Column(db.String(40), nullable=False, default="GENERAL")
    status = db.Column(
        db.String(16),
        nullable=False,
        default=CatalogStatus.ACTIVE.value,
        server_default=CatalogStatus.ACTIVE.value,
    )
    target_personas = db.Column(db.JSON, nullable=False, default=list)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completion_criteria = db.Column(db.JSON, nullable=False)
    reward_points = db.Column(db.Integer, nullable=True)
    reward_badge_code = db.Column(db.String(64), nullable=True)
    reward_item_code = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow_naive, nullable=False)

    __table_args__ = (
        db.CheckConstraint(
            "reward_points IS NULL OR reward_points >= 0",
            name="ck_quests_reward_points_non_negative",
        ),
    )

    def is_open(self, now: datetime) -> bool:
        """Check if the quest is active and ``now`` falls inside its window."""
        if self.status != CatalogStatus.ACTIVE.value:
            return False
        now = _normalize_datetime(now)
        start = _normalize_datetime(self.start_date)
        end = _normalize_datetime(self.end_date)
        if start is not None and now < start:
            return False
        if end is not None and now > end:
            return False
        return True

    def to_dict(self) -> dict:
        start = _normalize_datetime(self.start_date)
        end = _normalize_datetime(self.end_date)
        return {
            "quest_id": self.quest_code,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "target_personas": list(self.target_personas or []),
            "start_date": start.isoformat() if start else None,
            "end_date": end.isoformat() if end else None,
            "completion_criteria": dict(self.completion_criteria or {}),
            "rewards": {
                "points": self.reward_points,
                "badge_id": self.reward_badge_code,
                "virtual_item_id": self.reward_item_code,
            },
        }

    def __repr__(self) -> str:
        return f"<Quest {self.quest_code} status={self.status}>"


__all__ = ["Badge", "Quest", "VirtualItem"]
