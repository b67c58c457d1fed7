import hmac

from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import current_user

from .. import limiter
from ..auth import bearer_token, member_required
from ..models import UserNotification, _utcnow, db

notifications_bp = Blueprint("notifications", __name__)


def _serialize(notification):
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "is_read": notification.is_read,
        "related_request_id": notification.related_request_id,
        "related_book_id": notification.related_book_id,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
        "read_at": notification.read_at.isoformat() if notification.read_at else None,
        "emailed_at": notification.emailed_at.isoformat() if notification.emailed_at else None,
    }


def _own_notification(notification_id):
    notification = UserNotification.query.filter_by(id=notification_id, member_id=current_user.member_id).first()
    if notification is None:
        abort(404)
    return notification


# ── Member inbox ──────────────────────────────────────────────────


@notifications_bp.route("/user/notifications")
@member_required
def list_notifications():
    notifications = (
        UserNotification.query.filter_by(member_id=current_user.member_id)
        .order_by(UserNotification.created_at.desc(), UserNotification.id.desc())
        .all()
    )
    return jsonify(
        {
            "success": True,
            "notifications": [_serialize(n) for n in notifications],
            "unreadCount": sum(1 for n in notifications if not n.is_read),
        }
    )


@notifications_bp.route("/user/notifications/<int:notification_id>", methods=["PUT"])
@member_required
def mark_read(notification_id):
    notification = _own_notification(notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = _utcnow()
        db.session.commit()
    return jsonify({"success": True, "notification": _serialize(notification)})


@notifications_bp.route("/user/notifications/<int:notification_id>", methods=["DELETE"])
@member_required
def delete_notification(notification_id):
    notification = _own_notification(notification_id)
    db.session.delete(notification)
    db.session.commit()
    return jsonify({"success": True})


# ── Cron ──────────────────────────────────────────────────────────


def _cron_authorized():
    secret = current_app.config.get("CRON_SECRET")
    if not secret:
        return True
    supplied = (
        request.headers.get("X-Cron-Secret")
        or request.args.get("secret")
        or bearer_token(request.headers.get("Authorization"))
        or ""
    )
    return hmac.compare_digest(supplied.encode(), secret.encode())


@notifications_bp.route("/cron/send-notifications", methods=["GET", "POST"])
@limiter.limit("12 per hour")
def cron_send_notifications():
    if not _cron_authorized():
        abort(401)

    from .batch import send_due_reminders, send_pending_notification_emails

    reminders = send_due_reminders()
    notifications = send_pending_notification_emails()
    current_app.logger.info(
        "Cron run: reminders %d sent / %d failed, notifications %d sent / %d failed",
        reminders["sent"],
        reminders["failed"],
        notifications["sent"],
        notifications["failed"],
    )
    return jsonify(
        {
            "success": True,
            "message": "Notification jobs completed",
            "dueReminders": reminders,
            "userNotifications": notifications,
        }
    )
