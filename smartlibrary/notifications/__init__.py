"""In-app notifications and the emails that accompany them.

``emit`` is called after a lifecycle transition has committed. Nothing in
here may raise back into the caller: a failed insert or a failed email is
logged and the transition still stands.
"""

from flask import current_app, render_template
from sqlalchemy.exc import SQLAlchemyError

from ..models import Member, UserNotification, _utcnow, db

# outcome -> (notification type, title, email subject, sends email)
OUTCOMES = {
    "approve": ("book_approved", "Book Request Approved", "Book Request Approved: {title}", True),
    "decline": ("book_declined", "Book Request Declined", "Book Request Declined: {title}", True),
    "collect": ("book_received", "Book Pickup Confirmed", "Book Pickup Confirmed: {title}", True),
    "submit": ("book_request", "Book Request Submitted", None, False),
}


def greeting_name(member, fallback_name=None):
    name = fallback_name or (member.name if member is not None else None)
    return name or "Library Member"


def _resolve_member(book_request, member):
    if member is not None or book_request.member_id is None:
        return member
    try:
        return db.session.get(Member, book_request.member_id)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Could not load member %s for notification", book_request.member_id)
        return None


def _book_title(book_request, book):
    if book_request.book_title:
        return book_request.book_title
    if book is not None:
        return book.title
    return "the requested book"


def emit(outcome, book_request, member=None, book=None):
    """Record the in-app notification for ``outcome`` and email it.

    Returns the notification row, or None if it could not be written.
    """
    try:
        return _emit(outcome, book_request, member, book)
    except Exception:
        # Last-resort boundary: template and provider errors must not reach
        # a transition that has already committed.
        db.session.rollback()
        current_app.logger.exception(
            "Notification %s for request %s failed", outcome, getattr(book_request, "id", None)
        )
        return None


def _emit(outcome, book_request, member, book):
    notification_type, title, subject_template, sends_email = OUTCOMES[outcome]
    member = _resolve_member(book_request, member)
    context = {
        "book_title": _book_title(book_request, book),
        "due_date": book_request.due_date,
        "requested_days": book_request.requested_days,
        "name": greeting_name(member, book_request.user_name),
        "library_name": current_app.config["LIBRARY_NAME"],
    }

    notification = UserNotification(
        member_id=book_request.member_id,
        type=notification_type,
        title=title,
        message=render_template(f"notifications/{outcome}.txt", **context).strip(),
        related_request_id=book_request.id,
        related_book_id=book_request.book_id,
        is_read=False,
    )
    try:
        db.session.add(notification)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not create %s notification for request %s", notification_type, book_request.id)
        notification = None

    if not sends_email:
        return notification

    recipient = book_request.user_email or (member.email if member is not None else None)
    if not recipient:
        current_app.logger.info("No email address for request %s; %s email not sent", book_request.id, outcome)
        return notification

    from ..email_service import send_email

    sent = send_email(
        to=recipient,
        subject=subject_template.format(title=context["book_title"]),
        message=render_template(f"email/{outcome}.txt", **context).strip(),
        type=notification_type,
        user_id=book_request.member_id,
        book_id=book_request.book_id,
    )
    if not sent:
        current_app.logger.warning("%s email for request %s was not sent", notification_type, book_request.id)
    elif notification is not None:
        mark_emailed(notification)
    return notification


def mark_emailed(notification):
    """Stamp ``emailed_at``; failures are logged, never raised."""
    try:
        notification.emailed_at = _utcnow()
        db.session.commit()
        return True
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not stamp emailed_at on notification %s", notification.id)
        return False
