"""Book request lifecycle.

State machine::

    pending ──approve──> approved ──collect──> collected
       └─────decline──> declined

Any request may be deleted. Each transition commits its primary effect
first and only then hands the outcome to the notification emitter, whose
failures are logged and never undo the transition.
"""

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..audit import log_event
from ..models import (
    ADJUDICABLE_STATUSES,
    APPROVAL_FAMILY,
    STATUS_APPROVED,
    STATUS_COLLECTED,
    STATUS_DECLINED,
    Book,
    Member,
    UserNotification,
    _today,
    db,
)
from . import inventory, store
from .exceptions import InvalidState, LibraryError, NotFoundError, PersistenceError, ValidationError

def _notify(outcome, book_request, member=None, book=None):
    from ..notifications import emit

    emit(outcome, book_request, member=member, book=book)


def _audit(action, book_request, detail):
    # The transition is already committed; a lost audit row is only logged.
    try:
        log_event(action=action, target_type="book_request", target_id=book_request.id, detail=detail)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Audit entry %s for request %s was not written", action, book_request.id)


def _commit(failure_message):
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError(f"{failure_message}: {store.driver_message(exc)}") from exc


# ── Member submission ──────────────────────────────────────────────


def resolve_member(user_id, email=None, name=None):
    """Find the member a submission is for, creating one from the email if needed.

    A numeric ``user_id`` naming an existing member wins. Anything else (an
    external auth id, or an unknown number) is resolved through ``email``.
    """
    user_id = str(user_id).strip() if user_id is not None else ""
    if user_id.isdigit():
        member = db.session.get(Member, int(user_id))
        if member is not None:
            return member

    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Unable to resolve a valid member ID for this user")

    member = Member.query.filter_by(email=email).first()
    if member is not None:
        return member

    member = Member(
        name=(name or "").strip() or email.split("@", 1)[0],
        email=email,
        join_date=_today(),
        status="Active",
    )
    db.session.add(member)
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise ValidationError("Unable to resolve a valid member ID for this user") from exc
    current_app.logger.info("Created library member %s for %s", member.id, email)
    return member


def submit_request(book_id, requested_days, user_id, email=None, name=None):
    """Create a pending request on behalf of a member."""
    try:
        days = store.validate_requested_days(requested_days)
        book = db.session.get(Book, book_id)
        if book is None:
            raise NotFoundError("Book not found")
        if not book.available or book.quantity <= 0:
            raise ValidationError("Book is not available for borrowing")

        member = resolve_member(user_id, email=email, name=name)
        book_request = store.create_request(member, book, days)
    except LibraryError:
        db.session.rollback()
        raise
    _commit("Failed to create book request")

    current_app.logger.info(
        "Book request %s submitted by member %s for book %s", book_request.id, member.id, book.id
    )
    _audit(
        "book_request_submitted",
        book_request,
        f"Member {member.id} requested '{book.title}' for {days} day(s), due {book_request.due_date.isoformat()}",
    )
    _notify("submit", book_request, member=member, book=book)
    return book_request


# ── Admin transitions ──────────────────────────────────────────────


def approve_request(request_id):
    """Approve a pending request: reserve a copy, open a borrowing record, mark approved.

    All three writes commit together; if any fails none of them stick.
    """
    try:
        book_request = store.get_request(request_id)
        if book_request.status not in ADJUDICABLE_STATUSES:
            raise InvalidState("Request has already been processed")
        book = db.session.get(Book, book_request.book_id) if book_request.book_id is not None else None
        if book is None:
            raise NotFoundError("Book not found")

        inventory.reserve_copy(book.id)
        store.record_borrowing(book_request)
        store.update_status(book_request.id, STATUS_APPROVED)
    except LibraryError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError(f"Failed to approve request: {store.driver_message(exc)}") from exc
    _commit(f"Failed to update request. Tried status value: {STATUS_APPROVED}. Last error")

    current_app.logger.info("Book request %s approved (book %s)", book_request.id, book.id)
    _audit("book_request_approved", book_request, f"Approved '{book_request.book_title or book.title}'")
    _notify("approve", book_request, book=book)
    return book_request


def decline_request(request_id):
    try:
        book_request = store.get_request(request_id)
        if book_request.status not in ADJUDICABLE_STATUSES:
            raise InvalidState("Request has already been processed")
        store.update_status(book_request.id, STATUS_DECLINED)
    except LibraryError:
        db.session.rollback()
        raise
    _commit(f"Failed to update request. Tried status value: {STATUS_DECLINED}. Last error")

    current_app.logger.info("Book request %s declined", book_request.id)
    _audit("book_request_declined", book_request, f"Declined '{book_request.book_title}'")
    _notify("decline", book_request)
    return book_request


def collect_request(request_id):
    """Confirm the member picked the book up.

    Only an approved request can be collected. Collecting twice is a no-op.
    """
    try:
        book_request = store.get_request(request_id)
        if book_request.status == STATUS_COLLECTED:
            return book_request
        if book_request.status not in APPROVAL_FAMILY:
            raise InvalidState("Only approved requests can be marked as collected")
        store.update_status(book_request.id, STATUS_COLLECTED)
    except LibraryError:
        db.session.rollback()
        raise
    _commit(f"Failed to update request. Tried status value: {STATUS_COLLECTED}. Last error")

    current_app.logger.info("Book request %s collected", book_request.id)
    _audit("book_request_collected", book_request, f"Collected '{book_request.book_title}'")
    _notify("collect", book_request)
    return book_request


_TRANSITIONS = {
    "approve": approve_request,
    "decline": decline_request,
    "collect": collect_request,
}

_SUCCESS_MESSAGES = {
    "approve": "Book request approved successfully",
    "decline": "Book request declined successfully",
    "collect": "Book pickup confirmed successfully",
}


def apply_action(request_id, action):
    """Run an admin action by name. Returns (request, success message)."""
    transition = _TRANSITIONS.get(action)
    if transition is None:
        raise ValidationError('Action must be one of "approve", "decline" or "collect"')
    return transition(request_id), _SUCCESS_MESSAGES[action]


# ── Delete ─────────────────────────────────────────────────────────


def delete_request(request_id):
    """Delete a request and the rows that hang off it.

    Cleanup of notifications and borrowing records runs first and commits on
    its own, so it sticks even if the final delete fails. A failed cleanup
    step is logged and does not stop the delete.
    """
    book_request = store.get_request(request_id)
    snapshot = {
        "id": book_request.id,
        "member_id": book_request.member_id,
        "book_id": book_request.book_id,
        "due_date": book_request.due_date,
        "status": book_request.status,
        "book_title": book_request.book_title,
    }

    _cleanup_step(
        "notifications",
        snapshot["id"],
        lambda: UserNotification.query.filter_by(related_request_id=snapshot["id"]).delete(
            synchronize_session=False
        ),
    )
    # Only an approval opened a borrowing record; other statuses own none.
    if snapshot["status"] in APPROVAL_FAMILY:
        _cleanup_step(
            "borrowing record",
            snapshot["id"],
            lambda: store.remove_borrowing_record(snapshot["member_id"], snapshot["book_id"], snapshot["due_date"]),
        )
    if (
        current_app.config.get("RELEASE_COPY_ON_DELETE")
        and snapshot["status"] in APPROVAL_FAMILY
        and snapshot["status"] != STATUS_COLLECTED
        and snapshot["book_id"] is not None
    ):
        _cleanup_step("inventory", snapshot["id"], lambda: inventory.release_copy(snapshot["book_id"]))

    try:
        store.delete_request(snapshot["id"])
    except LibraryError:
        db.session.rollback()
        raise
    _commit("Failed to delete request")

    current_app.logger.info("Book request %s deleted", snapshot["id"])
    try:
        log_event(
            action="book_request_deleted",
            target_type="book_request",
            target_id=snapshot["id"],
            detail=f"Deleted request for '{snapshot['book_title']}' (status {snapshot['status']})",
        )
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Audit entry book_request_deleted for request %s was not written", snapshot["id"])


def _cleanup_step(label, request_id, fn):
    try:
        result = fn()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not clean up %s for request %s", label, request_id)
        return None
    current_app.logger.debug("Cleaned up %s for request %s: %s", label, request_id, result)
    return result


# ── Listing ────────────────────────────────────────────────────────


def list_requests(status_filter=None):
    """Enriched requests and the stats block for the admin table."""
    book_requests = store.list_requests(status_filter)
    members, books = store.load_related(book_requests)
    return (
        [store.serialize_request(r, members=members, books=books) for r in book_requests],
        store.request_stats(book_requests),
    )
