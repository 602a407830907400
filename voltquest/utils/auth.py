"""Identity helpers.

The core trusts whatever user the session carries; logging in happens in the
main app's authentication service.
"""

from functools import wraps

from flask import current_app, jsonify, request, session
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from ..models import db
from ..models.user import User


def get_current_user():
    """Return the current session user, recovering gracefully from DB failures."""

    try:
        if current_user.is_authenticated:
            return current_user
    except SQLAlchemyError as exc:
        current_app.logger.warning(
            "[AUTH] current_user authentication check failed: %s", exc
        )
        db.session.rollback()
        return None

    user_id = session.get('user_id')
    if user_id is None:
        return None

    try:
        user = db.session.get(User, user_id)
    except SQLAlchemyError as exc:
        current_app.logger.error(
            "[AUTH] User lookup failed, clearing session: %s", exc
        )
        db.session.rollback()
        session.pop('user_id', None)
        return None

    if user is None:
        session.pop('user_id', None)

    return user


def api_login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        if not user:
            current_app.logger.info(
                "[AUTH] api_login_required rejected. endpoint=%s path=%s",
                request.endpoint,
                request.path,
            )
            return jsonify({"ok": False, "error": "auth_required"}), 401
        return f(*args, **kwargs)
    return decorated_function


def api_admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({"ok": False, "error": "auth_required"}), 401
        if not user.is_admin:
            return jsonify({"ok": False, "error": "admin_required"}), 403
        return f(*args, **kwargs)
    return decorated_function
