import os
import sys
import warnings
from time import perf_counter
from urllib.parse import urlparse, urlunparse

from flask import Flask, current_app, g, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool, StaticPool
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config, get_database_uri_from_env

from .cli import register_cli_commands
from .errors import GamificationError
from .extensions import cache, compress, login_manager, migrate
from .models import db
from .routes.catalog_admin import bp as catalog_admin_bp
from .routes.gamification import bp as gamification_bp
from .routes.status import bp as status_bp
from .services.catalog_service import CatalogCache
from .services.reward_rules import validate_reward_tables
from .services.unit_of_work import ProfileLocks
from .utils.logger import configure_logging
from .utils.time import utcnow

limiter = None

SLOW_REQUEST_THRESHOLD_MS = 300


def _mask_database_uri(uri: str) -> str:
    try:
        parsed = urlparse(uri)
        if parsed.password:
            netloc = parsed.netloc.replace(parsed.password, "***")
            parsed = parsed._replace(netloc=netloc)
        return urlunparse(parsed)
    except ValueError:
        return "<unavailable>"


def _configure_secret_key(app: Flask, app_env: str) -> None:
    secret_from_env = os.getenv("SECRET_KEY")
    if secret_from_env:
        app.config["SECRET_KEY"] = secret_from_env

    secret_key = app.config.get("SECRET_KEY")

    if app.config.get("TESTING"):
        if not secret_key or secret_key in {"dev", "change-me"}:
            app.config["SECRET_KEY"] = "test-secret-key"
    elif app_env == "production":
        normalized_secret = secret_key if isinstance(secret_key, str) else str(secret_key or "")
        if not normalized_secret:
            app.logger.critical(
                "[BOOT] SECRET_KEY environment variable missing. Set a strong value (>=32 characters) before starting."
            )
            sys.exit(1)
        if len(normalized_secret) < 32:
            app.logger.critical(
                "[BOOT] SECRET_KEY is too short. Provide a value with at least 32 characters."
            )
            sys.exit(1)
    else:
        if not secret_key or secret_key in {"dev", "change-me", ""}:
            app.config["SECRET_KEY"] = "dev-secret-key"
            app.logger.warning(
                "[BOOT] SECRET_KEY not provided; using development fallback. Do not use in production."
            )


def _configure_database(app: Flask, config_overrides: dict | None) -> None:
    override_database_uri = None
    if config_overrides and "SQLALCHEMY_DATABASE_URI" in config_overrides:
        override_database_uri = config_overrides["SQLALCHEMY_DATABASE_URI"]

    if override_database_uri:
        app.config["SQLALCHEMY_DATABASE_URI"] = override_database_uri
        app.logger.info(
            "[BOOT] SQLALCHEMY_DATABASE_URI configured via overrides: %s",
            _mask_database_uri(override_database_uri),
        )
    else:
        database_url, database_source = get_database_uri_from_env()
        if database_url:
            app.config["SQLALCHEMY_DATABASE_URI"] = database_url
            app.logger.info(
                "[BOOT] SQLALCHEMY_DATABASE_URI resolved from %s: %s",
                database_source,
                _mask_database_uri(database_url),
            )
        else:
            app.logger.warning(
                "[BOOT] DATABASE_URL not set. Falling back to default SQLALCHEMY_DATABASE_URI from Config."
            )
            app.config["SQLALCHEMY_DATABASE_URI"] = Config.SQLALCHEMY_DATABASE_URI

    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    engine_defaults = {
        "pool_size": 5,
        "max_overflow": 5,
        "pool_pre_ping": True,
        "pool_recycle": 280,
    }
    engine_defaults.update(dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS", {})))

    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "") or ""
    if database_uri.startswith("sqlite"):
        # SQLite (especially :memory:) does not accept pool sizing parameters.
        for key in ("pool_size", "max_overflow", "pool_recycle"):
            engine_defaults.pop(key, None)

    poolclass = engine_defaults.get("poolclass")
    if poolclass:
        try:
            is_static_pool = issubclass(poolclass, StaticPool)
            is_queue_pool = issubclass(poolclass, QueuePool)
        except TypeError:
            is_static_pool = False
            is_queue_pool = False

        if is_static_pool:
            for key in ("pool_size", "max_overflow", "pool_recycle"):
                engine_defaults.pop(key, None)
        elif not is_queue_pool:
            engine_defaults.pop("pool_size", None)
            engine_defaults.pop("max_overflow", None)

    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_defaults


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(GamificationError)
    def handle_gamification_error(error: GamificationError):
        app.logger.info(
            "[GAMIFICATION] %s %s rejected: %s (%s)",
            request.method,
            request.path,
            error.error_code,
            error.message,
        )
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        if not request.path.startswith("/api/"):
            return error
        return (
            jsonify({"ok": False, "error": error.name.lower().replace(" ", "_"), "message": error.description}),
            error.code,
        )

    @app.errorhandler(500)
    def handle_internal_error(error):  # pragma: no cover - presentation only
        app.logger.exception("[500] Internal server error")
        try:
            db.session.rollback()
        except SQLAlchemyError:
            app.logger.warning("[500] Session rollback failed")
        return jsonify({"ok": False, "error": "internal_error", "message": "Unexpected server error."}), 500


def create_app(config_overrides: dict | None = None):
    global limiter
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    log_path = configure_logging(app.config.get("LOG_DIR"), app.config.get("LOG_LEVEL", "INFO"))
    app.logger.info("[BOOT] Logging configured. Writing to %s", log_path or "stderr")

    warnings.filterwarnings("ignore", message="Using the in-memory storage")

    app_env = (
        os.getenv("APP_ENV")
        or app.config.get("APP_ENV")
        or os.getenv("FLASK_ENV")
        or "development"
    ).lower()
    app.config["APP_ENV"] = app_env

    _configure_secret_key(app, app_env)

    app.config.setdefault("SESSION_COOKIE_SAMESITE", "Lax")
    app.config.setdefault("COMPRESS_ALGORITHM", ["br", "gzip"])
    app.config["START_TIME"] = utcnow()

    # Reward tables are code, a bad entry must stop the boot.
    validate_reward_tables()
    app.logger.info("[BOOT] Reward tables validated")

    _configure_database(app, config_overrides)

    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # type: ignore[attr-defined]

    db.init_app(app)
    migrate.init_app(app, db)

    login_manager.init_app(app)
    login_manager.session_protection = "strong"

    from .models.user import User  # imported lazily to avoid circular imports

    @login_manager.user_loader
    def load_user(user_id: str):  # pragma: no cover - thin integration wrapper
        try:
            return db.session.get(User, int(user_id))
        except (SQLAlchemyError, ValueError) as e:
            current_app.logger.error("[LOGIN] user_loader failed: %s", e, exc_info=True)
            db.session.rollback()
            return None

    redis_url = app.config.get("REDIS_URL") or None
    cache_config = {"CACHE_DEFAULT_TIMEOUT": max(int(app.config.get("CATALOG_CACHE_TTL") or 0), 1)}
    if redis_url:
        cache_config.update(
            {"CACHE_TYPE": "RedisCache", "CACHE_REDIS_URL": redis_url}
        )
    else:
        cache_config["CACHE_TYPE"] = "SimpleCache"
    cache.init_app(app, config=cache_config)
    compress.init_app(app)

    default_limits = [
        limit.strip()
        for limit in (app.config.get("RATELIMIT_DEFAULT") or "").split(";")
        if limit.strip()
    ]
    if redis_url:
        limiter = Limiter(
            key_func=get_remote_address,
            app=app,
            storage_uri=redis_url,
            default_limits=default_limits,
        )
    else:
        limiter = Limiter(
            key_func=get_remote_address,
            app=app,
            default_limits=default_limits,
        )
    app.extensions["limiter"] = limiter

    app.extensions["catalog_cache"] = CatalogCache(cache, app.config.get("CATALOG_CACHE_TTL", 60))
    app.extensions["profile_locks"] = ProfileLocks(app.config.get("PROFILE_LOCK_STRIPES", 64))
    app.logger.info(
        "[BOOT] Catalog cache ttl=%ss backend=%s, profile lock stripes=%s",
        app.config.get("CATALOG_CACHE_TTL"),
        cache_config["CACHE_TYPE"],
        app.config.get("PROFILE_LOCK_STRIPES"),
    )

    app.register_blueprint(gamification_bp)
    app.register_blueprint(catalog_admin_bp)
    app.register_blueprint(status_bp)

    _register_error_handlers(app)
    register_cli_commands(app)

    @app.before_request
    def start_request_timer():  # pragma: no cover - tiny helper
        g._request_started_at = perf_counter()

    @app.after_request
    def finalize_response(response):  # pragma: no cover - thin instrumentation
        started_at = getattr(g, "_request_started_at", None)
        if started_at is not None:
            elapsed_ms = (perf_counter() - started_at) * 1000
            if elapsed_ms > SLOW_REQUEST_THRESHOLD_MS:
                app.logger.warning(
                    "[SLOW] %s %s took %.1f ms", request.method, request.path, elapsed_ms
                )
        return response

    return app
