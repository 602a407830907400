"""Virtual item purchase transaction."""

from __future__ import annotations

from datetime import datetime

from ..constants import EventKind, TransactionReason
from ..errors import (
    AlreadyOwnedError,
    InsufficientFundsError,
    ItemNotFoundError,
    NotPurchasableError,
)
from ..models.catalog import VirtualItem
from ..models.event import GameEvent
from ..models.gamification import GameProfile
from ..utils.time import ensure_utc, utc_naive, utcnow


def check_purchase(profile: GameProfile, item: VirtualItem | None, item_code: str | None = None) -> None:
    """Raise the first failing precondition, in the documented order."""

    if item is None:
        raise ItemNotFoundError(
            f"Item with ID '{item_code}' not found.", {"item_id": item_code}
        )
    if item.cost_points is None:
        raise NotPurchasableError(
            "This item cannot be purchased.", {"item_id": item.item_code}
        )
    if profile.owns_item(item.item_code):
        raise AlreadyOwnedError(
            "You already own this item.", {"item_id": item.item_code}
        )
    if profile.points_balance < item.cost_points:
        raise InsufficientFundsError(
            "Insufficient points.",
            {
                "item_id": item.item_code,
                "cost_points": item.cost_points,
                "points_balance": profile.points_balance,
            },
        )


def purchase_item(
    profile: GameProfile,
    item: VirtualItem | None,
    *,
    item_code: str | None = None,
    session_id: str | None = None,
    now: datetime | None = None,
) -> GameEvent:
    """Debit ``profile`` for ``item`` and return the transaction event.

    Nothing on the profile changes unless every precondition holds.
    """
    check_purchase(profile, item, item_code)
    now = ensure_utc(now or utcnow())

    cost = item.cost_points
    profile.debit(cost)
    profile.net_worth += item.value_points - cost
    profile.grant_item(item.item_code, now, source="purchase")
    profile.increment_counter("items_purchased")

    return GameEvent(
        user_id=profile.user_id,
        session_id=session_id,
        kind=EventKind.POINTS_TRANSACTION.value,
        timestamp=utc_naive(now),
        details={
            "points_change": -cost,
            "reason": TransactionReason.ITEM_PURCHASE.value,
            "item_id": item.item_code,
        },
    )
