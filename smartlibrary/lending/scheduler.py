import threading
import time
from datetime import UTC, datetime

from apscheduler.schedulers.background import BackgroundScheduler


def init_scheduler(app):
    scheduler = BackgroundScheduler()
    reminder_interval_minutes = max(1, int(app.config.get("SCHEDULER_REMINDER_INTERVAL_MINUTES", 60)))
    notification_interval_minutes = max(1, int(app.config.get("SCHEDULER_NOTIFICATION_INTERVAL_MINUTES", 15)))
    state_lock = threading.Lock()
    app.scheduler_state_lock = state_lock
    app.scheduler_state = {"updated_at": None, "jobs": {}}

    def _record_job_result(job_id, *, status, duration_ms, error=None, summary=None):
        now = datetime.now(UTC).isoformat()
        with state_lock:
            jobs = app.scheduler_state.setdefault("jobs", {})
            entry = jobs.setdefault(job_id, {"consecutive_failures": 0})
            entry["last_status"] = status
            entry["last_run_at"] = now
            entry["last_duration_ms"] = round(duration_ms, 2)
            if status == "ok":
                entry["last_success_at"] = now
                entry["last_error"] = None
                entry["consecutive_failures"] = 0
                if summary is not None:
                    entry["last_sent"] = summary.get("sent", 0)
                    entry["last_failed"] = summary.get("failed", 0)
            else:
                entry["last_error_at"] = now
                entry["last_error"] = (error or "unknown")[:500]
                entry["consecutive_failures"] = int(entry.get("consecutive_failures", 0)) + 1
            app.scheduler_state["updated_at"] = now

    def _run_job(job_id, fn):
        started = time.perf_counter()
        try:
            summary = fn()
        except Exception:
            # Jobs touch the database and the email provider; neither may
            # take down the scheduler thread.
            app.logger.exception("Scheduler job %s crashed.", job_id)
            _record_job_result(
                job_id,
                status="error",
                duration_ms=(time.perf_counter() - started) * 1000,
                error="Unhandled exception",
            )
            return

        duration_ms = (time.perf_counter() - started) * 1000
        _record_job_result(job_id, status="ok", duration_ms=duration_ms, summary=summary)
        app.logger.info("Scheduler job %s completed in %.2f ms.", job_id, duration_ms)

    def run_due_reminders():
        with app.app_context():
            from ..notifications.batch import send_due_reminders

            _run_job("send_due_reminders", send_due_reminders)

    def run_notification_emails():
        with app.app_context():
            from ..notifications.batch import send_pending_notification_emails

            _run_job("send_notification_emails", send_pending_notification_emails)

    scheduler.add_job(
        func=run_due_reminders,
        trigger="interval",
        minutes=reminder_interval_minutes,
        id="send_due_reminders",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        func=run_notification_emails,
        trigger="interval",
        minutes=notification_interval_minutes,
        id="send_notification_emails",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    app.scheduler = scheduler
