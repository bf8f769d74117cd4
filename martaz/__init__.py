import os

import click
from flask import Flask, jsonify, request, g
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from martaz.errors import ApiError
from martaz.extensions import db, migrate, cors
from martaz.models import User
from martaz.segments.segment_auth import auth_bp
from martaz.segments.segment_listings import listings_bp
from martaz.segments.segment_admin import admin_bp
from martaz.segments.segment_reports import reports_bp, reports_admin_bp
from martaz.segments.segment_messages import messages_bp
from martaz.segments.segment_categories import categories_bp
from martaz.segments.segment_favorites import favorites_bp
from martaz.segments.segment_seo import seo_bp
from martaz.utils.jwt_utils import user_id_from_header
from martaz.utils.observability import init_sentry, install_request_observers


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except ValueError:
            value = int(default)
    return max(minimum, min(value, maximum))


def _with_trace_id(payload: dict) -> dict:
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def _error_payload(error: str, message: str, status: int) -> dict:
    return _with_trace_id({
        "success": False,
        "ok": False,
        "error": error,
        "message": message,
        "status": int(status),
    })


def create_app():
    app = Flask(__name__)
    init_sentry(app)

    env = (os.getenv("MARTAZ_ENV", "dev") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["JSON_SORT_KEYS"] = False

    instance_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "instance"))

    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        os.makedirs(instance_dir, exist_ok=True)
        database_url = f"sqlite:///{os.path.join(instance_dir, 'martaz.db').replace(os.sep, '/')}"
    # Heroku-style URLs still use the legacy scheme.
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    engine_options = {
        "pool_pre_ping": True,
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
            engine_options["pool_size"],
            engine_options["max_overflow"],
            engine_options["pool_timeout"],
            engine_options["pool_recycle"],
        )
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    # CORS configuration
    cors_origins = (os.getenv("CORS_ORIGINS") or "").strip()
    if env in ("prod", "production"):
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    db.init_app(app)
    migrate.init_app(app, db, directory=os.path.join(os.path.dirname(__file__), "..", "migrations"))
    install_request_observers(app)

    @app.errorhandler(ApiError)
    def _api_error(error: ApiError):
        db.session.rollback()
        g.error_code = error.code
        if error.status_code >= 500:
            app.logger.error("api_error path=%s code=%s message=%s", request.path, error.code, error.message)
        return jsonify(_with_trace_id(error.to_payload())), int(error.status_code)

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        # Keep API failures JSON-only for predictable frontend handling.
        if not request.path.startswith("/api/"):
            return error
        return jsonify(
            _error_payload(error.name, error.description or error.name, int(error.code or 500))
        ), int(error.code or 500)

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        db.session.rollback()
        app.logger.exception("unhandled_exception path=%s", request.path)
        return jsonify(_error_payload("InternalServerError", "Internal server error", 500)), 500

    app.register_blueprint(auth_bp)
    app.register_blueprint(listings_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(reports_admin_bp)
    app.register_blueprint(messages_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(favorites_bp)
    app.register_blueprint(seo_bp)

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
            "success": True,
            "ok": True,
            "service": "martaz-backend",
            "env": env,
            "db": db_state,
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload)

    @app.get("/")
    def root():
        return jsonify({
            "success": True,
            "ok": True,
            "service": "martaz-backend",
            "env": env,
        })

    @app.before_request
    def _capture_auth_context():
        g.auth_user_id = None
        g.auth_role = None
        uid = user_id_from_header(request.headers.get("Authorization", ""))
        if uid is None:
            return
        g.auth_user_id = uid
        user = db.session.get(User, uid)
        if user is not None:
            g.auth_role = (user.role or "user").strip().lower()

    @app.teardown_request
    def _cleanup_db_session(exc):
        try:
            if exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    @app.cli.command("bootstrap-superadmin")
    def bootstrap_superadmin():
        cli_env = (os.getenv("MARTAZ_ENV") or os.getenv("FLASK_ENV") or "dev").strip().lower()
        allow = (os.getenv("ALLOW_ADMIN_BOOTSTRAP") or "").strip() == "1"
        if cli_env not in ("dev", "development", "local", "test") and not allow:
            raise click.ClickException("Admin bootstrap disabled. Set ALLOW_ADMIN_BOOTSTRAP=1 or MARTAZ_ENV=dev.")

        email = (os.getenv("ADMIN_EMAIL") or "").strip().lower()
        password = (os.getenv("ADMIN_PASSWORD") or "").strip()
        if not email or not password:
            raise click.ClickException("ADMIN_EMAIL and ADMIN_PASSWORD must be set.")

        u = User.query.filter_by(email=email).first()
        if u:
            u.set_password(password)
            u.role = "superadmin"
            u.status = "active"
        else:
            u = User(email=email, first_name="Admin", last_name="", role="superadmin", status="active")
            u.set_password(password)
            db.session.add(u)
        db.session.commit()
        click.echo(f"superadmin_bootstrap_ok {u.email}")

    @app.cli.command("sweep-featured")
    def sweep_featured():
        from martaz.tasks.listing_tasks import run_featured_expiration_sweep

        result = run_featured_expiration_sweep()
        click.echo(f"featured_sweep_ok unfeatured={result['unfeatured']} unpromoted={result['unpromoted']}")

    return app
