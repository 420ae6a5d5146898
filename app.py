from dotenv import load_dotenv
load_dotenv()

import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from sqlalchemy import text
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from errors import LedgerError
from extensions import db, limiter


def _is_production() -> bool:
    return bool(os.getenv("RENDER") or os.getenv("FLASK_ENV") == "production")


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _database_url() -> str:
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        if os.getenv("RENDER") == "true":
            raise RuntimeError("DATABASE_URL missing on Render; refusing to use SQLite.")
        db_url = "sqlite:///points.db"
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)
    return db_url


def _load_config(app: Flask) -> None:
    secret_key = os.getenv("SECRET_KEY") or os.getenv("FLASK_SECRET_KEY")
    if not secret_key:
        # Dev fallback only. Set SECRET_KEY on Render for production.
        secret_key = "dev-secret-key-change-me"
    if _is_production() and secret_key.startswith("dev-secret-key-change"):
        raise RuntimeError("SECRET_KEY must be set to a strong random value in production (Render/FLASK_ENV=production).")
    app.config["SECRET_KEY"] = secret_key

    app.config["SQLALCHEMY_DATABASE_URI"] = _database_url()
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }

    # Rate limiting
    # - In production (Render), set RATE_LIMIT_STORAGE_URL to a Redis URL for multi-instance correctness.
    # - Defaults to in-memory storage for simplicity.
    app.config["RATELIMIT_STORAGE_URI"] = os.getenv("RATE_LIMIT_STORAGE_URL", "memory://")
    app.config["RATELIMIT_DEFAULT"] = os.getenv("RATE_LIMIT_DEFAULT", "200 per day;50 per hour")
    app.config["RATELIMIT_ENABLED"] = _flag("RATE_LIMIT_ENABLED", "1")

    # Ledger locking: Redis when shared across processes, process-local otherwise.
    app.config["LEDGER_LOCK_REDIS_URL"] = os.getenv("LEDGER_LOCK_REDIS_URL") or os.getenv("REDIS_URL")
    app.config["LEDGER_LOCK_TIMEOUT_SECONDS"] = float(os.getenv("LEDGER_LOCK_TIMEOUT_SECONDS", "10"))

    app.config["BOOST_DURATION_DAYS"] = int(os.getenv("BOOST_DURATION_DAYS", "30"))
    app.config["QUEST_CLAIMS_USE_BOOSTS"] = _flag("QUEST_CLAIMS_USE_BOOSTS", "1")
    app.config["DAILY_QUEST_COUNT"] = int(os.getenv("DAILY_QUEST_COUNT", "5"))
    app.config["SEED_CATALOG_ON_STARTUP"] = _flag("SEED_CATALOG_ON_STARTUP", "0")

    # Shared with the payment watcher; unset disables settlement and pass activation.
    app.config["SETTLEMENT_API_KEY"] = os.getenv("SETTLEMENT_API_KEY", "")
    app.config["PREMIUM_PASS_DAYS"] = int(os.getenv("PREMIUM_PASS_DAYS", "30"))


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(LedgerError)
    def _ledger_error(e: LedgerError):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        # Keep API callers on JSON (404, 405, 429 from the limiter, ...).
        if not request.path.startswith("/api/"):
            return e
        return jsonify({"success": False, "error": e.description, "code": e.name.upper().replace(" ", "_")}), e.code

    @app.errorhandler(Exception)
    def _unexpected_error(e: Exception):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"success": False, "error": "Internal server error", "code": "INTERNAL"}), 500


def _ensure_columns(table_name: str, columns_sql: dict[str, str]) -> None:
    """Best-effort: add missing columns for SQLite/Postgres without a full migration tool."""
    dialect = db.engine.dialect.name

    if dialect == "sqlite":
        existing = [r[1] for r in db.session.execute(text(f"PRAGMA table_info({table_name})")).fetchall()]
        for col, col_sql in columns_sql.items():
            if col not in existing:
                db.session.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {col_sql}"))
        db.session.commit()
        return

    if dialect in ("postgresql", "postgres"):
        for _col, col_sql in columns_sql.items():
            db.session.execute(text(f"ALTER TABLE {table_name} ADD COLUMN IF NOT EXISTS {col_sql}"))
        db.session.commit()


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__)
    _load_config(app)
    if overrides:
        app.config.update(overrides)

    # Render (and most PaaS) runs behind a reverse proxy. Without ProxyFix,
    # request.remote_addr is the proxy IP and every client shares one rate limit.
    if _is_production():
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    db.init_app(app)
    CORS(app)
    limiter.init_app(app)

    # Models must be imported before create_all().
    import models_boosts  # noqa: F401
    import models_checkin  # noqa: F401
    import models_ledger  # noqa: F401
    import models_playtime  # noqa: F401
    import models_premium  # noqa: F401
    import models_quests  # noqa: F401
    import models_rewards  # noqa: F401
    from boosts import boosts_api
    from checkin import checkin_api
    from leaderboard import leaderboard_api
    from playtime import playtime_api
    from premium import premium_api
    from quests import quests_api
    from rewards import rewards_api

    app.register_blueprint(checkin_api)
    app.register_blueprint(boosts_api)
    app.register_blueprint(playtime_api)
    app.register_blueprint(rewards_api)
    app.register_blueprint(quests_api)
    app.register_blueprint(leaderboard_api)
    app.register_blueprint(premium_api)

    _register_error_handlers(app)

    @app.get("/api/health")
    def health():
        try:
            db.session.execute(text("SELECT 1"))
            database = "ok"
        except Exception:
            app.logger.exception("Health check query failed")
            db.session.rollback()
            database = "error"
        status = 200 if database == "ok" else 503
        return jsonify({"success": database == "ok", "database": database}), status

    with app.app_context():
        db.create_all()

        # create_all() does not add columns to existing tables. Keep these in
        # sync with columns added after the first deployment.
        try:
            _ensure_columns("daily_check_ins", {
                "settlement_ref": "settlement_ref VARCHAR(128)",
                "settlement_status": "settlement_status VARCHAR(20) NOT NULL DEFAULT 'pending'",
            })
        except Exception:
            app.logger.exception("Schema column check failed; continuing with the existing schema")
            db.session.rollback()

        if app.config.get("SEED_CATALOG_ON_STARTUP"):
            from bootstrap import seed_catalog
            summary = seed_catalog()
            app.logger.info("Catalog seeded: %s", summary)

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("FLASK_ENV", "development") == "development"

    print("=" * 60)
    print("Points & Engagement Ledger")
    print("=" * 60)
    print(f"Database: {app.config['SQLALCHEMY_DATABASE_URI'].split('@')[-1]}")
    print(f"Ledger lock: {'redis' if app.config.get('LEDGER_LOCK_REDIS_URL') else 'process-local'}")
    print(f"Health: http://localhost:{port}/api/health")
    print("=" * 60)

    app.run(debug=debug, port=port)
