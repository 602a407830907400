"""Entry points of the gamification core.

Every public function here is one unit of work for one user: load (or lazily
create) the profile under that user's lock, apply the rules, append the
events and commit once. Either all of it is persisted or none of it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..constants import ActionType, CatalogStatus
from ..errors import (
    ConflictError,
    ProfileNotFoundError,
    QuestUnavailableError,
    ValidationError,
)
from ..models import db
from ..models.catalog import Badge, Quest
from ..models.event import GameEvent
from ..models.gamification import GameProfile
from ..models.user import User
from ..utils.logger import get_logger
from ..utils.time import ensure_utc, utcnow
from .catalog_service import find_item, get_catalog_cache, get_quest
from .purchases import purchase_item
from .reward_rules import Criterion, RuleOutcome, apply_action
from .streaks import advance_login_streak
from .unit_of_work import get_profile_locks, unit_of_work

logger = get_logger(__name__)

MAX_ACTION_TYPE_LENGTH = 64
MAX_SESSION_ID_LENGTH = 128


@dataclass
class ActionResult:
    profile: GameProfile
    outcome: RuleOutcome


@dataclass
class PurchaseResult:
    profile: GameProfile
    event: GameEvent

    @property
    def new_balance(self) -> int:
        return self.profile.points_balance


def _validate_user_id(user_id) -> int:
    if user_id is None or isinstance(user_id, bool):
        raise ValidationError("user_id is required.", {"field": "user_id"})
    try:
        normalized = int(user_id)
    except (TypeError, ValueError):
        raise ValidationError("user_id must be an integer.", {"field": "user_id"}) from None
    if normalized <= 0:
        raise ValidationError("user_id must be positive.", {"field": "user_id"})
    return normalized


def _validate_code(value, field: str, max_length: int = 64) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required.", {"field": field})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} is too long.", {"field": field, "max_length": max_length})
    return value


def _validate_session_id(session_id) -> str | None:
    if session_id is None:
        return None
    if not isinstance(session_id, str):
        raise ValidationError("session_id must be a string.", {"field": "session_id"})
    session_id = session_id.strip()
    if len(session_id) > MAX_SESSION_ID_LENGTH:
        raise ValidationError(
            "session_id is too long.", {"field": "session_id", "max_length": MAX_SESSION_ID_LENGTH}
        )
    return session_id or None


def _validate_limit(limit, *, default: int, maximum: int) -> int:
    if limit is None:
        return min(default, maximum)
    if isinstance(limit, bool):
        raise ValidationError("limit must be a positive integer.", {"field": "limit"})
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        raise ValidationError("limit must be a positive integer.", {"field": "limit"}) from None
    if limit <= 0:
        raise ValidationError("limit must be a positive integer.", {"field": "limit"})
    return min(limit, maximum)


def _load_or_create_profile(user_id: int, *, lock: bool = True) -> GameProfile:
    """Return the user's profile, creating a default one on first use."""

    query = GameProfile.query.filter_by(user_id=user_id)
    if lock:
        query = query.with_for_update()
    profile = query.first()
    if profile is not None:
        return profile

    # game_profiles.user_id references users.id, so an id the identity
    # service never synced has no row to hang a profile on.
    if db.session.get(User, user_id) is None:
        raise ProfileNotFoundError(f"User '{user_id}' not found.", {"user_id": user_id})

    profile = GameProfile(user_id=user_id)
    db.session.add(profile)
    try:
        db.session.flush()
    except IntegrityError:
        # Another worker created it between our read and insert.
        db.session.rollback()
        profile = query.first()
        if profile is None:
            raise ConflictError(
                "Profile creation raced with another request.", {"user_id": user_id}
            )
        return profile

    logger.info("[GAMIFICATION] Created game profile for user %s", user_id)
    return profile


def get_profile(user_id) -> GameProfile:
    """Return the profile for ``user_id``, creating an empty one if needed."""

    user_id = _validate_user_id(user_id)
    with get_profile_locks().hold(user_id):
        with unit_of_work("get_profile", user_id=user_id):
            profile = _load_or_create_profile(user_id, lock=False)
    return profile


def log_action(
    user_id,
    action_type,
    *,
    session_id: str | None = None,
    details: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> ActionResult:
    """Record one user action and apply streak, rewards and unlocks to it."""

    user_id = _validate_user_id(user_id)
    action_type = _validate_code(action_type, "action_type", MAX_ACTION_TYPE_LENGTH)
    session_id = _validate_session_id(session_id)
    if details is not None and not isinstance(details, Mapping):
        raise ValidationError("details must be an object.", {"field": "details"})
    now = ensure_utc(now or utcnow())

    catalog = get_catalog_cache().snapshot()

    with get_profile_locks().hold(user_id):
        with unit_of_work("log_action", user_id=user_id, action_type=action_type):
            profile = _load_or_create_profile(user_id)
            if action_type == ActionType.APP_LOGIN.value:
                advance_login_streak(profile, now)
            outcome = apply_action(
                profile,
                action_type,
                badges=catalog.badges,
                quests=catalog.quests,
                session_id=session_id,
                details=details,
                now=now,
            )
            profile.updated_at = now
            db.session.add_all(outcome.events)

    logger.info(
        "[GAMIFICATION] User %s performed %s (+%d points, badges=%s, quests=%s)",
        user_id,
        action_type,
        outcome.total_points,
        outcome.badges_unlocked,
        outcome.quests_completed,
    )
    return ActionResult(profile=profile, outcome=outcome)


def purchase_virtual_item(
    user_id,
    item_id,
    *,
    session_id: str | None = None,
    now: datetime | None = None,
) -> PurchaseResult:
    """Buy a catalog item with the user's points."""

    user_id = _validate_user_id(user_id)
    item_code = _validate_code(item_id, "item_id")
    session_id = _validate_session_id(session_id)
    now = ensure_utc(now or utcnow())

    with get_profile_locks().hold(user_id):
        with unit_of_work("purchase_virtual_item", user_id=user_id, item_id=item_code):
            item = find_item(item_code)
            profile = _load_or_create_profile(user_id)
            event = purchase_item(
                profile, item, item_code=item_code, session_id=session_id, now=now
            )
            profile.updated_at = now
            db.session.add(event)

    logger.info(
        "[PURCHASE] User %s bought %s for %d points (balance=%d)",
        user_id,
        item_code,
        item.cost_points,
        profile.points_balance,
    )
    return PurchaseResult(profile=profile, event=event)


def accept_quest(user_id, quest_id, *, now: datetime | None = None) -> GameProfile:
    """Add an open quest to the user's active quests (idempotent)."""

    user_id = _validate_user_id(user_id)
    quest_code = _validate_code(quest_id, "quest_id")
    now = ensure_utc(now or utcnow())

    with get_profile_locks().hold(user_id):
        with unit_of_work("accept_quest", user_id=user_id, quest_id=quest_code):
            quest = get_quest(quest_code)
            profile = _load_or_create_profile(user_id)
            if quest_code in profile.completed_quest_codes:
                raise QuestUnavailableError(
                    "Quest already completed.", {"quest_id": quest_code}
                )
            if not quest.is_open(now):
                raise QuestUnavailableError(
                    "Quest is not currently available.", {"quest_id": quest_code}
                )
            personas = quest.target_personas or []
            if personas and profile.persona not in personas:
                raise QuestUnavailableError(
                    "Quest is not available for this persona.", {"quest_id": quest_code}
                )
            if profile.activate_quest(quest_code, now):
                profile.updated_at = now
                logger.info("[GAMIFICATION] User %s accepted quest %s", user_id, quest_code)
    return profile


def list_quests(user_id, *, now: datetime | None = None) -> list[dict]:
    """Open quests with the user's progress towards each."""

    now = ensure_utc(now or utcnow())
    profile = get_profile(user_id)
    quests = (
        Quest.query.filter(Quest.status == CatalogStatus.ACTIVE.value)
        .order_by(Quest.quest_code.asc())
        .all()
    )

    result = []
    for quest in quests:
        progress = profile.quest_progress(quest.quest_code)
        is_completed = progress is not None and progress.is_completed
        if not is_completed and not quest.is_open(now):
            continue
        personas = quest.target_personas or []
        if personas and profile.persona not in personas:
            continue
        try:
            criterion = Criterion.parse(quest.completion_criteria)
        except ValueError:
            continue
        current, total = criterion.progress(profile)
        if is_completed:
            current = total

        payload = quest.to_dict()
        payload.update(
            {
                "progress": {"current": current, "total": total},
                "is_active": progress is not None and not progress.is_completed,
                "is_completed": is_completed,
                "completed_at": (
                    progress.completed_at.isoformat()
                    if progress is not None and progress.completed_at
                    else None
                ),
            }
        )
        result.append(payload)
    return result


def list_badges(user_id) -> list[dict]:
    """Active catalog badges, flagged with whether the user earned them."""

    profile = get_profile(user_id)
    earned = {badge.badge_code: badge.earned_at for badge in profile.badges}
    badges = (
        Badge.query.filter(Badge.status == CatalogStatus.ACTIVE.value)
        .order_by(Badge.badge_code.asc())
        .all()
    )
    items = []
    for badge in badges:
        payload = badge.to_dict()
        earned_at = earned.get(badge.badge_code)
        payload["earned"] = badge.badge_code in earned
        payload["earned_at"] = earned_at.isoformat() if earned_at else None
        items.append(payload)
    return items


def get_leaderboard(limit=None) -> list[dict]:
    config = current_app.config
    limit = _validate_limit(
        limit,
        default=config.get("LEADERBOARD_DEFAULT_LIMIT", 10),
        maximum=config.get("LEADERBOARD_MAX_LIMIT", 100),
    )
    profiles = (
        GameProfile.query.order_by(
            GameProfile.net_worth.desc(),
            GameProfile.points_balance.desc(),
            GameProfile.user_id.asc(),
        )
        .limit(limit)
        .all()
    )
    return [
        {
            "rank": index,
            "user_id": profile.user_id,
            "persona": profile.persona,
            "net_worth": profile.net_worth,
        }
        for index, profile in enumerate(profiles, start=1)
    ]


def get_event_history(user_id, limit=None) -> list[GameEvent]:
    user_id = _validate_user_id(user_id)
    maximum = current_app.config.get("EVENT_HISTORY_MAX_LIMIT", 200)
    limit = _validate_limit(limit, default=50, maximum=maximum)
    return (
        GameEvent.query.filter(GameEvent.user_id == user_id)
        .order_by(GameEvent.timestamp.desc(), GameEvent.id.desc())
        .limit(limit)
        .all()
    )


__all__ = [
    "ActionResult",
    "PurchaseResult",
    "accept_quest",
    "get_event_history",
    "get_leaderboard",
    "get_profile",
    "list_badges",
    "list_quests",
    "log_action",
    "purchase_virtual_item",
]
