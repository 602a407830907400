"""Database models holding per-user gamification state."""

from __future__ import annotations

from datetime import datetime

from ..constants import (
    COUNTER_FIELDS,
    CRITERION_METRICS,
    DEFAULT_PERSONA,
    QuestProgressStatus,
)
from ..utils.time import utcnow
from . import db


class GameProfile(db.Model):
    """Aggregated gamification state for one user."""

    __tablename__ = "game_profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    persona = db.Column(db.String(40), nullable=False, default=DEFAULT_PERSONA)
    points_balance = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    net_worth = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    current_login_streak = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    longest_login_streak = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    last_login_date = db.Column(db.Date, nullable=True)

    check_ins = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    fault_reports = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    ai_validations = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    black_spot_discoveries = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    route_plans = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    chatbot_questions = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    quizzes_correct = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    easter_eggs_redeemed = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    items_purchased = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship(
        "User",
        backref=db.backref("game_profile", uselist=False, cascade="all, delete-orphan"),
    )
    badges = db.relationship(
        "ProfileBadge",
        back_populates="profile",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    items = db.relationship(
        "ProfileItem",
        back_populates="profile",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    quests = db.relationship(
        "ProfileQuest",
        back_populates="profile",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        db.CheckConstraint("points_balance >= 0", name="ck_game_profiles_points_non_negative"),
        db.CheckConstraint("current_login_streak >= 0", name="ck_game_profiles_streak_non_negative"),
        db.CheckConstraint("longest_login_streak >= 0", name="ck_game_profiles_longest_non_negative"),
    )
    __mapper_args__ = {"version_id_col": version}

    def __init__(self, **kwargs):
        # Column defaults only apply at flush; rules run on unsaved profiles too.
        kwargs.setdefault("persona", DEFAULT_PERSONA)
        for field in ("points_balance", "net_worth", "current_login_streak", "longest_login_streak"):
            kwargs.setdefault(field, 0)
        for field in COUNTER_FIELDS:
            kwargs.setdefault(field, 0)
        super().__init__(**kwargs)

    # -- balances ---------------------------------------------------------

    def credit(self, amount: int) -> None:
        """Add spendable points; net worth grows by the same amount."""
        amount = int(amount)
        if amount < 0:
            raise ValueError("credit amount must be non-negative")
        self.points_balance += amount
        self.net_worth += amount

    def debit(self, amount: int) -> None:
        amount = int(amount)
        if amount < 0:
            raise ValueError("debit amount must be non-negative")
        if amount > self.points_balance:
            raise ValueError("debit would make the balance negative")
        self.points_balance -= amount

    # -- counters ---------------------------------------------------------

    def counter(self, field: str) -> int:
        return int(getattr(self, field) or 0)

    def increment_counter(self, field: str, amount: int = 1) -> None:
        if field not in COUNTER_FIELDS:
            raise KeyError(field)
        setattr(self, field, self.counter(field) + amount)

    def metric(self, name: str) -> int:
        return int(getattr(self, CRITERION_METRICS[name]) or 0)

    @property
    def contribution_counters(self) -> dict[str, int]:
        return {field: self.counter(field) for field in COUNTER_FIELDS}

    # -- inventory --------------------------------------------------------

    @property
    def badge_codes(self) -> set[str]:
        return {badge.badge_code for badge in self.badges}

    @property
    def item_codes(self) -> set[str]:
        return {item.item_code for item in self.items}

    def owns_badge(self, badge_code: str) -> bool:
        return badge_code in self.badge_codes

    def owns_item(self, item_code: str) -> bool:
        return item_code in self.item_codes

    def grant_badge(self, badge_code: str, now: datetime | None = None) -> bool:
        if self.owns_badge(badge_code):
            return False
        self.badges.append(ProfileBadge(badge_code=badge_code, earned_at=now or utcnow()))
        return True

    def grant_item(self, item_code: str, now: datetime | None = None, source: str = "purchase") -> bool:
        if self.owns_item(item_code):
            return False
        self.items.append(
            ProfileItem(item_code=item_code, acquired_at=now or utcnow(), source=source)
        )
        return True

    # -- quests -----------------------------------------------------------

    def quest_progress(self, quest_code: str) -> "ProfileQuest | None":
        for progress in self.quests:
            if progress.quest_code == quest_code:
                return progress
        return None

    @property
    def active_quest_codes(self) -> set[str]:
        return {
            progress.quest_code
            for progress in self.quests
            if progress.status == QuestProgressStatus.ACTIVE.value
        }

    @property
    def completed_quest_codes(self) -> set[str]:
        return {
            progress.quest_code
            for progress in self.quests
            if progress.status == QuestProgressStatus.COMPLETED.value
        }

    def activate_quest(self, quest_code: str, now: datetime | None = None) -> bool:
        if self.quest_progress(quest_code) is not None:
            return False
        self.quests.append(
            ProfileQuest(
                quest_code=quest_code,
                status=QuestProgressStatus.ACTIVE.value,
                assigned_at=now or utcnow(),
            )
        )
        return True

    def complete_quest(self, quest_code: str, now: datetime | None = None) -> bool:
        """Mark a quest completed, dropping it from the active set."""
        now = now or utcnow()
        progress = self.quest_progress(quest_code)
        if progress is None:
            self.quests.append(
                ProfileQuest(
                    quest_code=quest_code,
                    status=QuestProgressStatus.COMPLETED.value,
                    assigned_at=now,
                    completed_at=now,
                )
            )
            return True
        if progress.status == QuestProgressStatus.COMPLETED.value:
            return False
        progress.status = QuestProgressStatus.COMPLETED.value
        progress.completed_at = now
        return True

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "persona": self.persona,
            "points_balance": self.points_balance,
            "net_worth": self.net_worth,
            "login_streak": {
                "current": self.current_login_streak,
                "longest": self.longest_login_streak,
                "last_login_date": (
                    self.last_login_date.isoformat() if self.last_login_date else None
                ),
            },
            "contribution_counters": self.contribution_counters,
            "inventory": {
                "badges_earned": sorted(self.badge_codes),
                "items_owned": sorted(self.item_codes),
            },
            "active_quests": sorted(self.active_quest_codes),
            "completed_quests": sorted(self.completed_quest_codes),
        }

    def __repr__(self) -> str:
        return f"<GameProfile user={self.user_id} points={self.points_balance}>"


class ProfileBadge(db.Model):
    __tablename__ = "profile_badges"

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(
        db.Integer, db.ForeignKey("game_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    badge_code = db.Column(db.String(64), nullable=False)
    earned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    profile = db.relationship("GameProfile", back_populates="badges")

    __table_args__ = (
        db.UniqueConstraint("profile_id", "badge_code", name="uq_profile_badges_profile_badge"),
    )


class ProfileItem(db.Model):
    __tablename__ = "profile_items"

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(
        db.Integer, db.ForeignKey("game_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_code = db.Column(db.String(64), nullable=False)
    source = db.Column(db.String(20), nullable=False, default="purchase")  # 'purchase', 'quest'
    acquired_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    profile = db.relationship("GameProfile", back_populates="items")

    __table_args__ = (
        db.UniqueConstraint("profile_id", "item_code", name="uq_profile_items_profile_item"),
    )


class ProfileQuest(db.Model):
    __tablename__ = "profile_quests"

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(
        db.Integer, db.ForeignKey("game_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quest_code = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=QuestProgressStatus.ACTIVE.value)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    profile = db.relationship("GameProfile", back_populates="quests")

    __table_args__ = (
        db.UniqueConstraint("profile_id", "quest_code", name="uq_profile_quests_profile_quest"),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == QuestProgressStatus.COMPLETED.value


__all__ = ["GameProfile", "ProfileBadge", "ProfileItem", "ProfileQuest"]
