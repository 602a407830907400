"""Reward rule engine: turns one user action into points, counters and unlocks.

The functions here never touch the database session. They mutate the
``GameProfile`` they are handed and return the ``GameEvent`` rows the caller
must persist in the same transaction.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from ..constants import (
    COUNTER_FIELDS,
    CRITERION_METRICS,
    KNOWN_ACTION_TYPES,
    ActionType,
    EventKind,
    TransactionReason,
)
from ..errors import ConfigurationError
from ..models.event import GameEvent
from ..models.gamification import GameProfile
from ..utils.time import ensure_utc, utc_naive, utcnow


BASE_REWARD_MAP = {
    ActionType.CHECK_IN.value: 10,
    ActionType.REPORT_FAULT.value: 50,
    ActionType.VALIDATE_AI_PREDICTION.value: 75,
    ActionType.DISCOVER_BLACK_SPOT.value: 1000,
    ActionType.USE_ROUTE_PLANNER.value: 5,
    ActionType.ASK_CHATBOT_QUESTION.value: 5,
    ActionType.FUN_QUIZ_CORRECT.value: 15,
    ActionType.UPLOAD_PHOTO.value: 20,
}

ACTION_COUNTER_MAP = {
    ActionType.CHECK_IN.value: "check_ins",
    ActionType.REPORT_FAULT.value: "fault_reports",
    ActionType.VALIDATE_AI_PREDICTION.value: "ai_validations",
    ActionType.DISCOVER_BLACK_SPOT.value: "black_spot_discoveries",
    ActionType.USE_ROUTE_PLANNER.value: "route_plans",
    ActionType.ASK_CHATBOT_QUESTION.value: "chatbot_questions",
    ActionType.FUN_QUIZ_CORRECT.value: "quizzes_correct",
    ActionType.REDEEM_EASTER_EGG.value: "easter_eggs_redeemed",
}


def validate_reward_tables(
    reward_map: Mapping[str, int] = BASE_REWARD_MAP,
    counter_map: Mapping[str, str] = ACTION_COUNTER_MAP,
) -> None:
    """Fail fast when a reward or counter entry names something unknown."""

    problems = []
    for action_type, points in reward_map.items():
        if action_type not in KNOWN_ACTION_TYPES:
            problems.append(f"reward for unknown action '{action_type}'")
        if not isinstance(points, int) or isinstance(points, bool) or points < 0:
            problems.append(f"reward for '{action_type}' must be a non-negative int")
    for action_type, counter in counter_map.items():
        if action_type not in KNOWN_ACTION_TYPES:
            problems.append(f"counter for unknown action '{action_type}'")
        if counter not in COUNTER_FIELDS or not hasattr(GameProfile, counter):
            problems.append(f"action '{action_type}' maps to unknown counter '{counter}'")
    if problems:
        raise ConfigurationError("; ".join(problems))


def base_reward_for(action_type: str) -> int:
    return BASE_REWARD_MAP.get(action_type, 0)


def counter_for(action_type: str) -> str | None:
    return ACTION_COUNTER_MAP.get(action_type)


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

_METRIC_ALIASES = {
    "virtual_items_purchased": "items_purchased",
    "current_app_login_streak": "login_streak",
    "current_login_streak": "login_streak",
    "longest_app_login_streak": "longest_login_streak",
    "points": "points_balance",
}


def resolve_metric(name: str) -> str | None:
    """Map a criterion's counter reference onto a known metric name.

    Accepts ``check_ins``, ``checkIns``, ``contributionCounters.checkIns`` and
    the legacy ``contribution_summary.total_check_ins`` spelling.
    """
    if not isinstance(name, str) or not name.strip():
        return None
    key = name.strip().rsplit(".", 1)[-1]
    key = _CAMEL_BOUNDARY.sub("_", key).lower()
    if key.startswith("total_"):
        key = key[len("total_"):]
    key = _METRIC_ALIASES.get(key, key)
    return key if key in CRITERION_METRICS else None


@dataclass(frozen=True)
class Criterion:
    """Either ``metric >= threshold`` or an exact action-type match."""

    metric: str | None = None
    threshold: int | None = None
    action_type: str | None = None

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "Criterion":
        if not isinstance(raw, Mapping):
            raise ValueError("criteria must be an object")

        action_type = raw.get("actionType", raw.get("action_type"))
        counter_ref = raw.get("sourceCounter", raw.get("source_counter", raw.get("counter")))
        if counter_ref is None and raw.get("field") is not None:
            source = raw.get("source")
            counter_ref = f"{source}.{raw['field']}" if source else raw["field"]

        if action_type is not None and counter_ref is not None:
            raise ValueError("criteria must use either a counter threshold or an action type")

        if action_type is not None:
            if not isinstance(action_type, str) or not action_type.strip():
                raise ValueError("actionType must be a non-empty string")
            return cls(action_type=action_type.strip())

        if counter_ref is None:
            raise ValueError("criteria need 'sourceCounter' and 'threshold' or 'actionType'")

        metric = resolve_metric(counter_ref)
        if metric is None:
            raise ValueError(f"unknown counter '{counter_ref}'")
        threshold = raw.get("threshold")
        if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 0:
            raise ValueError("threshold must be a non-negative integer")
        return cls(metric=metric, threshold=threshold)

    def is_satisfied(self, profile: GameProfile, action_type: str | None) -> bool:
        if self.action_type is not None:
            return action_type == self.action_type
        return profile.metric(self.metric) >= self.threshold

    def progress(self, profile: GameProfile) -> tuple[int, int]:
        """Return ``(current, total)`` for display; action criteria are 0/1."""
        if self.action_type is not None:
            return 0, 1
        total = max(self.threshold, 1)
        return min(profile.metric(self.metric), total), total

    def to_dict(self) -> dict[str, Any]:
        if self.action_type is not None:
            return {"actionType": self.action_type}
        return {"sourceCounter": self.metric, "threshold": self.threshold}


@dataclass(frozen=True)
class BadgeRule:
    code: str
    criterion: Criterion


@dataclass(frozen=True)
class QuestRule:
    code: str
    criterion: Criterion
    reward_points: int = 0
    reward_badge_code: str | None = None
    reward_item_code: str | None = None
    reward_item_value: int = 0
    start: datetime | None = None
    end: datetime | None = None
    target_personas: frozenset = frozenset()

    def is_open(self, now: datetime) -> bool:
        now = ensure_utc(now)
        if self.start is not None and now < self.start:
            return False
        if self.end is not None and now > self.end:
            return False
        return True

    def targets(self, persona: str) -> bool:
        return not self.target_personas or persona in self.target_personas


@dataclass
class RuleOutcome:
    action_type: str
    points_awarded: int = 0
    counter: str | None = None
    badges_unlocked: list[str] = field(default_factory=list)
    quests_completed: list[str] = field(default_factory=list)
    events: list[GameEvent] = field(default_factory=list)

    @property
    def total_points(self) -> int:
        return sum(
            event.points_change or 0
            for event in self.events
            if event.kind == EventKind.POINTS_TRANSACTION.value
        )


def _transaction_event(
    profile: GameProfile,
    *,
    action_type: str | None,
    session_id: str | None,
    now: datetime,
    points_change: int,
    reason: TransactionReason,
    **extra: Any,
) -> GameEvent:
    details = {"points_change": points_change, "reason": reason.value}
    details.update({key: value for key, value in extra.items() if value is not None})
    return GameEvent(
        user_id=profile.user_id,
        session_id=session_id,
        kind=EventKind.POINTS_TRANSACTION.value,
        action_type=action_type,
        timestamp=utc_naive(now),
        details=details,
    )


def _complete_quest(
    profile: GameProfile,
    rule: QuestRule,
    outcome: RuleOutcome,
    *,
    session_id: str | None,
    now: datetime,
) -> None:
    profile.complete_quest(rule.code, now)
    outcome.quests_completed.append(rule.code)

    points = max(0, rule.reward_points or 0)
    if points:
        profile.credit(points)

    granted_badge = None
    if rule.reward_badge_code and profile.grant_badge(rule.reward_badge_code, now):
        granted_badge = rule.reward_badge_code
        outcome.badges_unlocked.append(granted_badge)

    granted_item = None
    if rule.reward_item_code and profile.grant_item(rule.reward_item_code, now, source="quest"):
        granted_item = rule.reward_item_code
        profile.net_worth += rule.reward_item_value

    outcome.events.append(
        _transaction_event(
            profile,
            action_type=outcome.action_type,
            session_id=session_id,
            now=now,
            points_change=points,
            reason=TransactionReason.QUEST_REWARD,
            quest_id=rule.code,
            badge_id=granted_badge,
            item_id=granted_item,
        )
    )


def _evaluate_unlocks(
    profile: GameProfile,
    outcome: RuleOutcome,
    badges: Iterable[BadgeRule],
    quests: Iterable[QuestRule],
    *,
    session_id: str | None,
    now: datetime,
) -> None:
    badges = tuple(badges)
    quests = tuple(quests)
    # Quest rewards can move net worth, which other criteria may watch,
    # so keep sweeping until a pass grants nothing.
    while True:
        progressed = False
        for rule in badges:
            if profile.owns_badge(rule.code):
                continue
            if rule.criterion.is_satisfied(profile, outcome.action_type):
                profile.grant_badge(rule.code, now)
                outcome.badges_unlocked.append(rule.code)
                progressed = True

        for rule in quests:
            if rule.code in profile.completed_quest_codes:
                continue
            if not rule.is_open(now) or not rule.targets(profile.persona):
                continue
            if rule.criterion.is_satisfied(profile, outcome.action_type):
                _complete_quest(profile, rule, outcome, session_id=session_id, now=now)
                progressed = True

        if not progressed:
            return


def apply_action(
    profile: GameProfile,
    action_type: str,
    *,
    badges: Iterable[BadgeRule] = (),
    quests: Iterable[QuestRule] = (),
    session_id: str | None = None,
    details: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> RuleOutcome:
    """Apply one action to ``profile`` and return the events it produced.

    The first event is always the ``ACTION_PERFORMED`` record; every balance
    change that follows gets its own ``POINTS_TRANSACTION`` event.
    """
    now = ensure_utc(now or utcnow())
    outcome = RuleOutcome(action_type=action_type)
    outcome.events.append(
        GameEvent(
            user_id=profile.user_id,
            session_id=session_id,
            kind=EventKind.ACTION_PERFORMED.value,
            action_type=action_type,
            timestamp=utc_naive(now),
            details=dict(details or {}),
        )
    )

    counter = counter_for(action_type)
    if counter is not None:
        profile.increment_counter(counter)
        outcome.counter = counter

    points = base_reward_for(action_type)
    if points > 0:
        profile.credit(points)
        outcome.points_awarded = points
        outcome.events.append(
            _transaction_event(
                profile,
                action_type=action_type,
                session_id=session_id,
                now=now,
                points_change=points,
                reason=TransactionReason.BASE_REWARD,
            )
        )

    _evaluate_unlocks(profile, outcome, badges, quests, session_id=session_id, now=now)
    return outcome


__all__ = [
    "ACTION_COUNTER_MAP",
    "BASE_REWARD_MAP",
    "BadgeRule",
    "Criterion",
    "QuestRule",
    "RuleOutcome",
    "apply_action",
    "base_reward_for",
    "counter_for",
    "resolve_metric",
    "validate_reward_tables",
]
