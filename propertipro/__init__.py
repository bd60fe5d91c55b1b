import os
import click
from pathlib import Path
from flask import Flask, jsonify, request, g
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from propertipro.extensions import db, migrate, cors
from propertipro.integrations.payments.factory import payment_health
from propertipro.segments.segment_listings import listings_bp
from propertipro.segments.segment_payment_webhooks import webhooks_bp
from propertipro.segments.segment_premium import premium_bp
from propertipro.segments.segment_premium_admin import premium_admin_bp
from propertipro.utils.jwt_utils import decode_token, get_bearer_token
from propertipro.utils.observability import init_sentry, install_request_observers


def _resolve_alembic_head() -> str:
    try:
        from alembic.config import Config
        from alembic.script import ScriptDirectory

        migrations_dir = Path(__file__).resolve().parents[1] / "migrations"
        cfg = Config(str(migrations_dir / "alembic.ini"))
        cfg.set_main_option("script_location", str(migrations_dir))
        script = ScriptDirectory.from_config(cfg)
        heads = script.get_heads()
        return heads[0] if heads else "unknown"
    except Exception:
        return "unknown"


def _resolve_git_sha() -> str:
    for env_key in ("GIT_SHA", "RENDER_GIT_COMMIT", "SOURCE_VERSION"):
        val = (os.getenv(env_key) or "").strip()
        if val:
            return val
    return "unknown"


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except Exception:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def _error_payload(error: str, message: str, status: int) -> dict:
    payload = {
        "ok": False,
        "error": error,
        "message": message,
        "status": int(status),
    }
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def create_app():
    app = Flask(__name__)
    init_sentry(app)

    env = (os.getenv("PROPERTIPRO_ENV", "dev") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")
        if not (os.getenv("XENDIT_CALLBACK_TOKEN") or "").strip():
            app.logger.warning("xendit_callback_token_missing env=%s", env)

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    # Ensure instance dir exists for SQLite paths
    instance_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "instance"))
    os.makedirs(instance_dir, exist_ok=True)

    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{os.path.join(instance_dir, 'propertipro.db').replace(os.sep, '/')}"
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    engine_options = {
        "pool_pre_ping": True,
        "pool_reset_on_return": "rollback",
        "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
    }
    if not database_url.startswith("sqlite://"):
        engine_options.update(
            {
                "pool_size": _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s pool_recycle=%s",
            int(engine_options.get("pool_size", 0) or 0),
            int(engine_options.get("max_overflow", 0) or 0),
            int(engine_options.get("pool_timeout", 0) or 0),
            int(engine_options.get("pool_recycle", 0) or 0),
        )
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    # CORS for the JSON API. The payment webhook sets its own headers.
    cors_origins = (os.getenv("CORS_ORIGINS") or "").strip()
    if env in ("prod", "production"):
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    db.init_app(app)
    migrate.init_app(app, db)
    install_request_observers(app)

    if database_url.startswith("sqlite://") and env not in ("prod", "production"):
        with app.app_context():
            try:
                db.create_all()
            except Exception as e:
                app.logger.warning("sqlite_create_all_failed err=%s", e)

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        # Keep API failures JSON-only for predictable frontend handling.
        if not request.path.startswith("/api/"):
            return error
        status = int(error.code or 500)
        return jsonify(_error_payload(error.name, error.description or error.name, status)), status

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        try:
            db.session.rollback()
        except Exception:
            pass
        if not request.path.startswith("/api/"):
            return jsonify(
                {
                    "ok": False,
                    "error": "InternalServerError",
                    "message": "Internal server error",
                }
            ), 500
        return jsonify(_error_payload("InternalServerError", "Internal server error", 500)), 500

    app.register_blueprint(webhooks_bp)
    app.register_blueprint(premium_bp)
    app.register_blueprint(premium_admin_bp)
    app.register_blueprint(listings_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        db_error = None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            msg = str(e)
            if msg:
                db_error = (msg[:300] + "...") if len(msg) > 300 else msg
        payload = {
            "ok": True,
            "service": "propertipro-backend",
            "env": env,
            "db": db_state,
            "payments": payment_health(),
            "git_sha": _resolve_git_sha(),
            "alembic_head": _resolve_alembic_head(),
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload)

    @app.get("/")
    def root():
        return jsonify({
            "ok": True,
            "service": "propertipro-backend",
            "env": env,
        })

    @app.before_request
    def _capture_auth_context():
        g.auth_user_id = None
        g.auth_role = None
        token = get_bearer_token(request.headers.get("Authorization", ""))
        if not token:
            return
        payload = decode_token(token)
        if not payload:
            return
        try:
            uid = int(payload.get("sub"))
        except Exception:
            return
        g.auth_user_id = uid
        g.auth_role = (str(payload.get("role") or "agent")).strip().lower()
        try:
            import sentry_sdk

            sentry_sdk.set_user({"id": str(uid)})
            sentry_sdk.set_tag("auth_role", g.auth_role)
        except Exception:
            pass

    @app.teardown_request
    def _cleanup_db_session(exc):
        try:
            if exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    @app.cli.command("expire-premium")
    def expire_premium():
        from propertipro.services.premium_service import expire_premium_listings

        result = expire_premium_listings()
        click.echo(f"premium_expiry_ok expired={result['expired']} unpromoted={len(result['unpromoted'])}")

    @app.cli.command("reconcile-premium")
    @click.option("--dry-run", is_flag=True, default=False, help="Report drift without writing")
    @click.option("--persist/--no-persist", default=True, help="Store a reconciliation report")
    def reconcile_premium(dry_run: bool, persist: bool):
        from propertipro.services.reconciliation_service import persist_report, reconcile_premium_listings

        summary = reconcile_premium_listings(apply=not dry_run)
        report_id = None
        if persist:
            report_id = int(persist_report(summary).id)
        click.echo(
            f"premium_reconcile_ok applied={not dry_run} activated={summary['activated_count']} "
            f"errors={summary['activation_error_count']} expired={summary['expired_count']} "
            f"drift={summary['drift_count']} report_id={report_id}"
        )

    return app
