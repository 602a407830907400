from datetime import datetime

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..models import db
from ..models.gamification import GameProfile
from ..utils.time import utcnow

bp = Blueprint("status", __name__)


@bp.route("/healthz")
def healthcheck():
    uptime = None
    start_time = current_app.config.get("START_TIME")
    if isinstance(start_time, datetime):
        uptime = (utcnow() - start_time).total_seconds()

    db_online = False
    db_error = None
    profile_count = 0
    try:
        db.session.execute(text("SELECT 1"))
        profile_count = db.session.query(GameProfile).count()
        db_online = True
    except SQLAlchemyError as exc:
        db.session.rollback()
        db_error = str(exc)
        current_app.logger.warning("[HEALTH] Database check failed: %s", exc)

    catalog = current_app.extensions.get("catalog_cache")
    payload = {
        "ok": db_online,
        "uptime_seconds": uptime,
        "database": {"online": db_online, "error": db_error},
        "profiles": profile_count,
        "catalog_cache_ttl": catalog.ttl if catalog is not None else None,
    }
    return jsonify(payload), 200 if db_online else 503
