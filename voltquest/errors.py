"""Exception hierarchy for the gamification core.

Services raise these; blueprints translate them into JSON responses using
``http_status`` and ``to_dict()``. Validation and business-rule errors are
always raised before any mutation of a profile or the event log.
"""

from __future__ import annotations

from typing import Any


class GamificationError(Exception):
    """Base class for every error the core surfaces to callers."""

    http_status: int = 500
    error_code: str = "gamification_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": False,
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"


class ValidationError(GamificationError):
    """A required field is missing or malformed."""

    http_status = 400
    error_code = "validation_error"


class NotFoundError(GamificationError):
    http_status = 404
    error_code = "not_found"


class ProfileNotFoundError(NotFoundError):
    error_code = "user_not_found"


class ItemNotFoundError(NotFoundError):
    error_code = "item_not_found"


class QuestNotFoundError(NotFoundError):
    error_code = "quest_not_found"


class ConflictError(GamificationError):
    """A concurrent write for the same profile won the race."""

    http_status = 409
    error_code = "conflict"


class BusinessRuleError(GamificationError):
    http_status = 400
    error_code = "business_rule_violation"


class NotPurchasableError(BusinessRuleError):
    error_code = "not_purchasable"


class AlreadyOwnedError(BusinessRuleError):
    error_code = "already_owned"


class InsufficientFundsError(BusinessRuleError):
    error_code = "insufficient_funds"


class QuestUnavailableError(BusinessRuleError):
    error_code = "quest_unavailable"


class StorageError(GamificationError):
    """The backing store failed; nothing from the unit of work was kept."""

    http_status = 503
    error_code = "storage_unavailable"


class ConfigurationError(Exception):
    """Raised at startup when the reward tables are inconsistent."""


__all__ = [
    "AlreadyOwnedError",
    "BusinessRuleError",
    "ConfigurationError",
    "ConflictError",
    "GamificationError",
    "InsufficientFundsError",
    "ItemNotFoundError",
    "NotFoundError",
    "NotPurchasableError",
    "ProfileNotFoundError",
    "QuestNotFoundError",
    "QuestUnavailableError",
    "StorageError",
    "ValidationError",
]
