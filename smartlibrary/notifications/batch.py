"""Batch jobs run by the scheduler and the cron endpoint."""

import math
from datetime import UTC, datetime, time, timedelta

from flask import current_app, render_template
from sqlalchemy.exc import SQLAlchemyError

from ..models import BORROWING_BORROWED, BorrowingRecord, UserNotification, _utcnow, db
from . import greeting_name, mark_emailed

# Closing paragraph appended when a notification is re-sent by email.
CLOSINGS = {
    "book_ready": "Please visit the library to collect your book.\n\nThank you!",
    "book_approved": "Please visit the library to collect your book.\n\nThank you!",
    "deadline_reminder": "Please return or renew your book before the due date.\n\nThank you!",
    "overdue_notice": (
        "Please return this book to the library as soon as possible to avoid any penalties.\n\n"
        "Thank you for your cooperation."
    ),
    "welcome": "We're excited to have you as a member!",
}

SUBJECTS = {
    "book_ready": "Book Ready for Collection",
    "deadline_reminder": "Book Due Soon",
    "overdue_notice": "Overdue Book Notice",
    "welcome": "Welcome to the Library",
    "email_verification": "Email Verification",
}


def _summary(label, sent, failed, results):
    return {
        "message": f"{label} processed: {sent} sent, {failed} failed",
        "sent": sent,
        "failed": failed,
        "total": len(results),
        "results": results,
    }


def _due_at(record):
    # Dates carry no time; a book is due at the start of its due date (UTC).
    return datetime.combine(record.due_date, time.min, tzinfo=UTC)


def send_due_reminders(now=None):
    """Remind members about books that are overdue or due soon.

    A record is reminded at most once per calendar day. Returns a summary
    dict with per-record results.
    """
    from ..email_service import send_email

    now = now or _utcnow()
    today = now.date()
    window = timedelta(hours=current_app.config.get("DUE_SOON_HOURS", 24))

    records = (
        BorrowingRecord.query.filter(
            BorrowingRecord.status == BORROWING_BORROWED,
            BorrowingRecord.due_date.isnot(None),
        )
        .order_by(BorrowingRecord.due_date.asc())
        .all()
    )
    due = [r for r in records if _due_at(r) - now <= window]

    sent = failed = 0
    results = []
    for record in due:
        if record.last_reminder_sent == today:
            continue
        member = record.member
        if member is None or not member.email:
            failed += 1
            results.append({"recordId": record.id, "email": "unknown", "status": "failed", "error": "No member email found"})
            continue

        delta = _due_at(record) - now
        overdue = delta.total_seconds() < 0
        hours = abs(math.ceil(delta.total_seconds() / 3600))
        context = {
            "name": greeting_name(member),
            "book_title": record.book_title or (record.book.title if record.book else "Unknown Book"),
            "due_date": record.due_date,
            "borrowed_date": record.borrowed_date,
            "hours": hours,
            "days": max(1, hours // 24),
            "library_name": current_app.config["LIBRARY_NAME"],
        }
        if overdue:
            notification_type, title = "overdue_notice", "Book Overdue"
            subject = f'Overdue Book Reminder: "{context["book_title"]}"'
        else:
            notification_type, title = "deadline_reminder", "Book Due Soon"
            subject = f'Book Due Soon: "{context["book_title"]}"'

        message = render_template(f"notifications/{notification_type}.txt", **context).strip()
        try:
            # A reminder whose email failed on an earlier run is reused, not repeated.
            notification = UserNotification.query.filter_by(
                member_id=member.id,
                type=notification_type,
                related_borrowing_record_id=record.id,
                emailed_at=None,
            ).first()
            if notification is None:
                notification = UserNotification(
                    member_id=member.id,
                    type=notification_type,
                    title=title,
                    message=message,
                    related_borrowing_record_id=record.id,
                    related_book_id=record.book_id,
                )
                db.session.add(notification)
            else:
                notification.message = message
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Could not create reminder notification for record %s", record.id)
            failed += 1
            results.append({"recordId": record.id, "email": member.email, "status": "failed", "error": str(exc)})
            continue

        ok = send_email(
            to=member.email,
            subject=subject,
            message=render_template(f"email/{notification_type}.txt", **context).strip(),
            type=notification_type,
            user_id=member.id,
            book_id=record.book_id,
        )
        if not ok:
            failed += 1
            results.append({"recordId": record.id, "email": member.email, "status": "failed", "error": "Email sending failed"})
            continue

        mark_emailed(notification)
        try:
            record.last_reminder_sent = today
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Could not update last_reminder_sent for record %s", record.id)
        sent += 1
        results.append({"recordId": record.id, "email": member.email, "status": "sent", "type": notification_type})

    current_app.logger.info("Due reminders: %d sent, %d failed.", sent, failed)
    return _summary("Due book reminders", sent, failed, results)


def send_pending_notification_emails():
    """Email unread notifications that have not been emailed yet."""
    from ..email_service import send_email

    pending = (
        UserNotification.query.filter(
            UserNotification.is_read == False,  # noqa: E712
            UserNotification.emailed_at.is_(None),
        )
        .order_by(UserNotification.created_at.asc(), UserNotification.id.asc())
        .all()
    )

    sent = failed = 0
    results = []
    for notification in pending:
        member = notification.member
        if member is None or not member.email:
            failed += 1
            results.append(
                {"notificationId": notification.id, "email": "unknown", "status": "failed", "error": "No member email found"}
            )
            continue

        message = render_template(
            "email/notification.txt",
            name=greeting_name(member),
            message=notification.message,
            closing=CLOSINGS.get(notification.type),
            library_name=current_app.config["LIBRARY_NAME"],
        ).strip()
        ok = send_email(
            to=member.email,
            subject=notification.title or SUBJECTS.get(notification.type, "Library Notification"),
            message=message,
            type=notification.type,
            user_id=member.id,
            book_id=notification.related_book_id,
        )
        if ok:
            mark_emailed(notification)
            sent += 1
            results.append({"notificationId": notification.id, "email": member.email, "status": "sent"})
        else:
            failed += 1
            results.append(
                {"notificationId": notification.id, "email": member.email, "status": "failed", "error": "Email sending failed"}
            )

    current_app.logger.info("Notification emails: %d sent, %d failed.", sent, failed)
    return _summary("User notifications", sent, failed, results)
