"""Closed vocabularies shared by the models and the rule engine."""

from __future__ import annotations

from enum import Enum


class ActionType(str, Enum):
    APP_LOGIN = "app_login"
    CHECK_IN = "check_in"
    REPORT_FAULT = "report_fault"
    VALIDATE_AI_PREDICTION = "validate_ai_prediction"
    DISCOVER_BLACK_SPOT = "discover_new_station_in_black_spot"
    USE_ROUTE_PLANNER = "use_route_planner"
    ASK_CHATBOT_QUESTION = "ask_chatbot_question"
    FUN_QUIZ_CORRECT = "fun_quiz_correct"
    REDEEM_EASTER_EGG = "redeem_easter_egg"
    UPLOAD_PHOTO = "upload_photo"


KNOWN_ACTION_TYPES = frozenset(action.value for action in ActionType)


class EventKind(str, Enum):
    ACTION_PERFORMED = "ACTION_PERFORMED"
    POINTS_TRANSACTION = "POINTS_TRANSACTION"


class TransactionReason(str, Enum):
    BASE_REWARD = "BASE_REWARD"
    QUEST_REWARD = "QUEST_REWARD"
    ITEM_PURCHASE = "ITEM_PURCHASE"


class CatalogStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class QuestProgressStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class Persona(str, Enum):
    """Cosmetic classification shown next to a player's name."""

    ANXIOUS_NEWCOMER = "ANXIOUS_NEWCOMER"
    DAILY_COMMUTER = "DAILY_COMMUTER"
    ROAD_TRIPPER = "ROAD_TRIPPER"
    COMMUNITY_CHAMPION = "COMMUNITY_CHAMPION"


DEFAULT_PERSONA = Persona.ANXIOUS_NEWCOMER.value

# One integer column per counter on ``GameProfile``.
COUNTER_FIELDS = (
    "check_ins",
    "fault_reports",
    "ai_validations",
    "black_spot_discoveries",
    "route_plans",
    "chatbot_questions",
    "quizzes_correct",
    "easter_eggs_redeemed",
    "items_purchased",
)

# Metrics a badge/quest criterion may compare against a threshold, mapped to
# the ``GameProfile`` attribute holding the value.
CRITERION_METRICS = {
    **{field: field for field in COUNTER_FIELDS},
    "login_streak": "current_login_streak",
    "longest_login_streak": "longest_login_streak",
    "net_worth": "net_worth",
    "points_balance": "points_balance",
}
