"""Tests for scheduler initialization and in-memory job telemetry."""

from datetime import UTC, datetime

import pytest


class _FakeJob:
    def __init__(self, job_id):
        self.id = job_id
        self.next_run_time = datetime.now(UTC)


class _FakeScheduler:
    def __init__(self):
        self.jobs = {}
        self.running = False

    def add_job(self, func, trigger, id, **kwargs):
        self.jobs[id] = {"func": func, "trigger": trigger, "id": id, "kwargs": kwargs}

    def start(self):
        self.running = True

    def get_jobs(self):
        return [_FakeJob(job_id) for job_id in self.jobs]


@pytest.fixture(autouse=True)
def _restore_scheduler_attrs(app):
    saved = {name: getattr(app, name) for name in ("scheduler", "scheduler_state", "scheduler_state_lock") if hasattr(app, name)}
    yield
    for name in ("scheduler", "scheduler_state", "scheduler_state_lock"):
        if name in saved:
            setattr(app, name, saved[name])
        elif hasattr(app, name):
            delattr(app, name)


@pytest.fixture()
def fake_scheduler(app, monkeypatch):
    from smartlibrary.lending import scheduler as scheduler_module

    fake = _FakeScheduler()
    monkeypatch.setattr(scheduler_module, "BackgroundScheduler", lambda: fake)
    scheduler_module.init_scheduler(app)
    return fake


def test_init_scheduler_registers_expected_jobs(app, fake_scheduler):
    assert app.scheduler is fake_scheduler
    assert app.scheduler.running is True
    assert set(fake_scheduler.jobs) == {"send_due_reminders", "send_notification_emails"}
    for job_data in fake_scheduler.jobs.values():
        kwargs = job_data["kwargs"]
        assert job_data["trigger"] == "interval"
        assert kwargs["max_instances"] == 1
        assert kwargs["coalesce"] is True


def test_intervals_come_from_config(app, monkeypatch):
    from smartlibrary.lending import scheduler as scheduler_module

    fake = _FakeScheduler()
    monkeypatch.setattr(scheduler_module, "BackgroundScheduler", lambda: fake)
    app.config["SCHEDULER_REMINDER_INTERVAL_MINUTES"] = 30
    app.config["SCHEDULER_NOTIFICATION_INTERVAL_MINUTES"] = 0

    scheduler_module.init_scheduler(app)

    assert fake.jobs["send_due_reminders"]["kwargs"]["minutes"] == 30
    assert fake.jobs["send_notification_emails"]["kwargs"]["minutes"] == 1


def test_scheduler_job_success_updates_state(app, fake_scheduler, monkeypatch):
    monkeypatch.setattr(
        "smartlibrary.notifications.batch.send_due_reminders",
        lambda: {"sent": 2, "failed": 1, "total": 3, "results": []},
    )

    fake_scheduler.jobs["send_due_reminders"]["func"]()

    state = app.scheduler_state["jobs"]["send_due_reminders"]
    assert state["last_status"] == "ok"
    assert state["consecutive_failures"] == 0
    assert state["last_success_at"] is not None
    assert state["last_sent"] == 2
    assert state["last_failed"] == 1
    assert isinstance(state["last_duration_ms"], float)


def test_scheduler_job_failure_increments_counter(app, fake_scheduler, monkeypatch):
    def _boom():
        raise RuntimeError("simulated failure")

    monkeypatch.setattr("smartlibrary.notifications.batch.send_pending_notification_emails", _boom)

    fake_scheduler.jobs["send_notification_emails"]["func"]()
    fake_scheduler.jobs["send_notification_emails"]["func"]()

    state = app.scheduler_state["jobs"]["send_notification_emails"]
    assert state["last_status"] == "error"
    assert state["consecutive_failures"] == 2
    assert state["last_error"] == "Unhandled exception"


def test_scheduler_success_resets_failure_counter(app, fake_scheduler, monkeypatch):
    def _boom():
        raise RuntimeError("simulated failure")

    monkeypatch.setattr("smartlibrary.notifications.batch.send_pending_notification_emails", _boom)
    fake_scheduler.jobs["send_notification_emails"]["func"]()

    monkeypatch.setattr(
        "smartlibrary.notifications.batch.send_pending_notification_emails",
        lambda: {"sent": 0, "failed": 0, "total": 0, "results": []},
    )
    fake_scheduler.jobs["send_notification_emails"]["func"]()

    state = app.scheduler_state["jobs"]["send_notification_emails"]
    assert state["last_status"] == "ok"
    assert state["consecutive_failures"] == 0
    assert state["last_error"] is None


def test_scheduled_job_runs_against_database(app, fake_scheduler):
    # No borrowed books: the real job completes with nothing to send.
    fake_scheduler.jobs["send_due_reminders"]["func"]()

    state = app.scheduler_state["jobs"]["send_due_reminders"]
    assert state["last_status"] == "ok"
    assert state["last_sent"] == 0
