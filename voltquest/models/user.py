from flask_login import UserMixin
from sqlalchemy.orm import validates

from ..utils.time import utcnow_naive
from . import db


class User(UserMixin, db.Model):
    """Identity record supplied by the main app's authentication service."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=True)
    is_admin = db.Column(
        db.Boolean,
        default=False,
        nullable=False,
        server_default=db.text("false"),
    )
    created_at = db.Column(db.DateTime, default=utcnow_naive, nullable=False)

    @validates("email")
    def _normalize_email(self, key, value):
        return (value or "").strip().lower()

    def __repr__(self):
        return f"<User {self.email}>"
