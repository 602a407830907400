"""Append-only gamification event log."""

from __future__ import annotations

from sqlalchemy import event as orm_event

from ..utils.time import utcnow_naive
from . import db


class GameEvent(db.Model):
    __tablename__ = "game_events"
    __table_args__ = (
        db.Index("ix_game_events_user_id_timestamp", "user_id", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    session_id = db.Column(db.String(128), nullable=True)
    kind = db.Column(db.String(32), nullable=False)  # 'ACTION_PERFORMED', 'POINTS_TRANSACTION'
    action_type = db.Column(db.String(64), nullable=True)
    timestamp = db.Column(db.DateTime, default=utcnow_naive, nullable=False)
    details = db.Column(db.JSON, nullable=False, default=dict)

    @property
    def points_change(self) -> int | None:
        return (self.details or {}).get("points_change")

    @property
    def reason(self) -> str | None:
        return (self.details or {}).get("reason")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "kind": self.kind,
            "action_type": self.action_type,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "details": dict(self.details or {}),
        }

    def __repr__(self):
        return f"<GameEvent {self.kind} for {self.user_id} at {self.timestamp}>"


@orm_event.listens_for(GameEvent, "before_update")
def _refuse_event_update(mapper, connection, target):
    raise RuntimeError(f"game event {target.id} is append-only")


@orm_event.listens_for(GameEvent, "before_delete")
def _refuse_event_delete(mapper, connection, target):
    raise RuntimeError(f"game event {target.id} is append-only")
