import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_flag(name, default):
    return os.environ.get(name, default).lower() == "true"


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or os.urandom(32).hex()
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", f"sqlite:///{BASE_DIR / 'smartlibrary.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Honour X-Forwarded-* from one reverse proxy hop.
    TRUST_PROXY = _env_flag("TRUST_PROXY", "false")

    # Deleting an approved request leaves the book quantity untouched unless enabled.
    RELEASE_COPY_ON_DELETE = _env_flag("RELEASE_COPY_ON_DELETE", "false")

    # API access
    ADMIN_API_TOKENS = [t.strip() for t in os.environ.get("ADMIN_API_TOKENS", "").split(",") if t.strip()]
    CRON_SECRET = os.environ.get("CRON_SECRET", "")

    # Rate limiting
    RATELIMIT_DEFAULT = os.environ.get("RATELIMIT_DEFAULT", "200 per hour")
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")

    # Email (Brevo or Resend HTTP API)
    EMAIL_PROVIDER = os.environ.get("EMAIL_PROVIDER", "brevo").lower()
    BREVO_API_KEY = os.environ.get("BREVO_API_KEY", "")
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY", "")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "library@school.example.org")
    MAIL_DEFAULT_SENDER_NAME = os.environ.get("MAIL_DEFAULT_SENDER_NAME", "Smart Library System")
    EMAIL_TIMEOUT_SECONDS = int(os.environ.get("EMAIL_TIMEOUT_SECONDS", "15"))

    # Library branding
    LIBRARY_NAME = os.environ.get("LIBRARY_NAME", "Smart Library System")

    # Reminders
    DUE_SOON_HOURS = int(os.environ.get("DUE_SOON_HOURS", "24"))

    # Scheduler
    SCHEDULER_ENABLED = _env_flag("SCHEDULER_ENABLED", "true")
    SCHEDULER_REMINDER_INTERVAL_MINUTES = int(os.environ.get("SCHEDULER_REMINDER_INTERVAL_MINUTES", "60"))
    SCHEDULER_NOTIFICATION_INTERVAL_MINUTES = int(os.environ.get("SCHEDULER_NOTIFICATION_INTERVAL_MINUTES", "15"))
    SCHEDULER_MAX_CONSECUTIVE_FAILURES = int(os.environ.get("SCHEDULER_MAX_CONSECUTIVE_FAILURES", "3"))


class DevelopmentConfig(Config):
    DEBUG = True

    @classmethod
    def init_app(cls, app):
        if not os.environ.get("SECRET_KEY"):
            app.logger.warning("SECRET_KEY not set, using an ephemeral key.")


class ProductionConfig(Config):
    DEBUG = False

    @classmethod
    def init_app(cls, app):
        app.config["TRUST_PROXY"] = _env_flag("TRUST_PROXY", "true")
        app.config["SCHEDULER_ENABLED"] = _env_flag("SCHEDULER_ENABLED", "true")

        secret_key = os.environ.get("SECRET_KEY", "").strip()
        if not secret_key:
            raise RuntimeError("SECRET_KEY environment variable must be set in production")
        if len(secret_key) < 32:
            raise RuntimeError(
                "SECRET_KEY is too short for production (minimum 32 characters). "
                'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
            )
        weak_markers = ("changeme", "change-this", "replace", "secret", "example", "default")
        if any(marker in secret_key.lower() for marker in weak_markers):
            raise RuntimeError("SECRET_KEY appears to be a placeholder and is not allowed in production.")
        app.config["SECRET_KEY"] = secret_key

        if cls.EMAIL_PROVIDER not in ("brevo", "resend"):
            raise RuntimeError(f"EMAIL_PROVIDER must be 'brevo' or 'resend', got '{cls.EMAIL_PROVIDER}'.")

        # The scheduler and the limiter keep their state in-process, so more
        # than one worker would run every job twice.
        web_concurrency = os.environ.get("WEB_CONCURRENCY")
        if web_concurrency:
            try:
                worker_count = int(web_concurrency)
            except ValueError as exc:
                raise RuntimeError("WEB_CONCURRENCY must be an integer when set.") from exc
            if worker_count <= 0:
                raise RuntimeError("WEB_CONCURRENCY must be at least 1 when set.")
            if worker_count > 1:
                raise RuntimeError(
                    f"WEB_CONCURRENCY is set to {web_concurrency} but this application "
                    "requires a single worker (in-process scheduler + in-memory rate limiting). "
                    "Set WEB_CONCURRENCY=1 or remove it."
                )


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    RATELIMIT_ENABLED = False
    SCHEDULER_ENABLED = False
    BREVO_API_KEY = ""
    RESEND_API_KEY = ""
    EMAIL_PROVIDER = "brevo"
    ADMIN_API_TOKENS = []
    CRON_SECRET = ""
    RELEASE_COPY_ON_DELETE = False
    TRUST_PROXY = False
    SECRET_KEY = "testing-secret-key"


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
