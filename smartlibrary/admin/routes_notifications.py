from flask import jsonify

from .. import limiter
from ..audit import log_event
from ..email_service import send_email
from ..errors import error_response
from ..models import BORROWING_BORROWED, BorrowingRecord, EmailLog, UserNotification, _today
from .common import admin_bp, admin_required
from .forms import EmailSendForm

DUE_SOON_DAYS = 3
RECENT_EMAIL_LIMIT = 200

# ── Notification overview ─────────────────────────────────────────


def _iso(value):
    return value.isoformat() if value is not None else None


def _due_status(days_until_due):
    if days_until_due < 0:
        return "overdue"
    if days_until_due <= DUE_SOON_DAYS:
        return "due_soon"
    return "normal"


@admin_bp.route("/notifications")
@admin_required
def notifications_overview():
    today = _today()

    user_notifications = UserNotification.query.order_by(UserNotification.created_at.desc()).all()
    email_logs = EmailLog.query.order_by(EmailLog.created_at.desc()).limit(RECENT_EMAIL_LIMIT).all()
    borrowed = (
        BorrowingRecord.query.filter_by(status=BORROWING_BORROWED)
        .order_by(BorrowingRecord.due_date.asc())
        .all()
    )

    due_date_analysis = []
    for record in borrowed:
        days_until_due = (record.due_date - today).days if record.due_date else None
        due_date_analysis.append(
            {
                "id": record.id,
                "user": record.member.name if record.member else "Unknown",
                "email": (record.member.email if record.member else None) or "",
                "book": record.book_title or f"Book ID: {record.book_id}",
                "dueDate": _iso(record.due_date),
                "borrowedDate": _iso(record.borrowed_date),
                "daysUntilDue": days_until_due,
                "status": _due_status(days_until_due) if days_until_due is not None else "normal",
            }
        )

    stats = {
        "totalEmailNotifications": len(email_logs),
        "sentEmailNotifications": sum(1 for log in email_logs if log.status == "sent"),
        "failedEmailNotifications": sum(1 for log in email_logs if log.status != "sent"),
        "totalUserNotifications": len(user_notifications),
        "unreadUserNotifications": sum(1 for n in user_notifications if not n.is_read),
        "pendingEmailNotifications": sum(1 for n in user_notifications if not n.is_read and n.emailed_at is None),
        "overdueItems": sum(1 for item in due_date_analysis if item["status"] == "overdue"),
        "dueSoonItems": sum(
            1 for item in due_date_analysis if item["status"] == "due_soon" and item["daysUntilDue"] > 0
        ),
    }

    return jsonify(
        {
            "success": True,
            "userNotifications": [
                {
                    "id": n.id,
                    "type": n.type,
                    "user": n.member.name if n.member else "Unknown",
                    "email": (n.member.email if n.member else None) or "",
                    "title": n.title,
                    "message": n.message,
                    "isRead": n.is_read,
                    "createdAt": _iso(n.created_at),
                    "readAt": _iso(n.read_at),
                    "emailedAt": _iso(n.emailed_at),
                }
                for n in user_notifications
            ],
            "emailNotifications": [
                {
                    "id": log.id,
                    "type": log.type,
                    "email": log.recipient,
                    "subject": log.subject,
                    "book": f"Book ID: {log.book_id}" if log.book_id else "General",
                    "provider": log.provider,
                    "status": log.status,
                    "error": log.error,
                    "sentTime": _iso(log.created_at),
                }
                for log in email_logs
            ],
            "dueDateAnalysis": due_date_analysis,
            "stats": stats,
        }
    )


# ── Test email ────────────────────────────────────────────────────


@admin_bp.route("/email/send", methods=["POST"])
@admin_required
@limiter.limit("10 per minute")
def send_test_email():
    form = EmailSendForm()
    if not form.validate():
        return error_response(form.first_error(), 400)

    sent = send_email(
        to=form.to.data.strip(),
        subject=form.subject.data.strip(),
        message=form.message.data,
        type=form.type.data or "test",
    )
    if not sent:
        return error_response("Failed to send email", 500)

    log_event(action="test_email_sent", target_type="email", detail=f"Test email sent to {form.to.data.strip()}")
    return jsonify({"success": True, "message": "Email sent successfully"})
