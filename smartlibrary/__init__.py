import logging
import os
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from flask import Flask, jsonify
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate, upgrade

from .config import BASE_DIR, config_by_name
from .models import db

login_manager = LoginManager()
# Bearer tokens only; there is no browser session to protect.
login_manager.session_protection = None

# In-memory storage; counters reset on process restart. Acceptable for
# single-worker deployments. For multi-worker setups use Redis storage.
limiter = Limiter(key_func=get_remote_address)
migrate = Migrate(directory=str(BASE_DIR / "migrations"))


def create_app(config_name=None):
    # Load .env so gunicorn (production) picks up env vars too
    from dotenv import load_dotenv

    load_dotenv(BASE_DIR / ".env")

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    config_cls = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_cls)
    if hasattr(config_cls, "init_app"):
        config_cls.init_app(app)

    if app.config.get("TRUST_PROXY"):
        from werkzeug.middleware.proxy_fix import ProxyFix

        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    _configure_logging(app)

    # Init extensions
    db.init_app(app)
    login_manager.init_app(app)
    limiter.init_app(app)
    migrate.init_app(app, db)

    from .auth import load_principal

    @login_manager.request_loader
    def load_user_from_request(req):
        return load_principal(req)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Unauthorized"}), 401

    # Register blueprints
    from .admin.routes import admin_bp
    from .lending.routes import lending_bp
    from .notifications.routes import notifications_bp

    app.register_blueprint(lending_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(admin_bp, url_prefix="/admin")

    from .errors import register_error_handlers

    register_error_handlers(app)

    @app.after_request
    def set_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        if not app.debug and not app.testing:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Background notification jobs
    if app.config.get("SCHEDULER_ENABLED"):
        from .lending.scheduler import init_scheduler

        init_scheduler(app)

    # Health check endpoints
    @app.route("/ping")
    def ping():
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
        }, 200

    @app.route("/health")
    def health():
        result = {"timestamp": datetime.now(UTC).isoformat()}
        max_failures = int(app.config.get("SCHEDULER_MAX_CONSECUTIVE_FAILURES", 3))

        scheduler = getattr(app, "scheduler", None)
        scheduler_ok = True
        if scheduler is None:
            result["scheduler"] = {"running": False, "reason": "disabled"}
        else:
            try:
                running = bool(scheduler.running)
                jobs = [
                    {"id": job.id, "next_run": job.next_run_time.isoformat() if job.next_run_time else None}
                    for job in scheduler.get_jobs()
                ]
            except Exception:
                # Probe errors are reported as a degraded scheduler, not a 500.
                app.logger.exception("Health check scheduler probe failed.")
                result["scheduler"] = {"running": False, "reason": "probe_failed"}
                scheduler_ok = False
            else:
                job_state = _scheduler_state_snapshot(app)
                failing_jobs = sorted(
                    job_id
                    for job_id, entry in job_state.items()
                    if int(entry.get("consecutive_failures", 0)) >= max_failures
                )
                result["scheduler"] = {
                    "running": running,
                    "jobs": jobs,
                    "job_state": job_state,
                    "failing_jobs": failing_jobs,
                }
                scheduler_ok = running and not failing_jobs

        # Check database connectivity
        try:
            db.session.execute(db.text("SELECT 1"))
            result["database"] = {"status": "ok"}
        except Exception:
            app.logger.exception("Health check database probe failed.")
            result["database"] = {"status": "error", "error": "unavailable"}

        db_ok = result["database"]["status"] == "ok"
        all_ok = scheduler_ok and db_ok
        result["status"] = "ok" if all_ok else "degraded"
        return result, 200 if all_ok else 503

    # Apply pending Alembic migrations
    with app.app_context():
        upgrade()

    return app


def _scheduler_state_snapshot(app):
    state = getattr(app, "scheduler_state", None) or {}
    lock = getattr(app, "scheduler_state_lock", None)
    if lock is None:
        return {job_id: dict(entry) for job_id, entry in state.get("jobs", {}).items()}
    with lock:
        return {job_id: dict(entry) for job_id, entry in state.get("jobs", {}).items()}


def _configure_logging(app):
    """Set up file-based logging with rotation outside debug and testing."""
    if app.debug or app.testing:
        return

    log_dir = Path(app.root_path).parent / "logs"
    log_dir.mkdir(exist_ok=True)

    file_handler = RotatingFileHandler(
        log_dir / "smartlibrary.log",
        maxBytes=5 * 1024 * 1024,  # 5 MB
        backupCount=5,
    )
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    file_handler.setLevel(logging.INFO)
    app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.INFO)
