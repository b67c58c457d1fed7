"""Book request rows and the borrowing records that follow an approval."""

from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from ..models import (
    APPROVAL_FAMILY,
    BORROWING_BORROWED,
    DECLINE_FAMILY,
    REQUEST_STATUSES,
    STATUS_PENDING,
    Book,
    BookRequest,
    BorrowingRecord,
    Member,
    _today,
    db,
)
from .exceptions import NotFoundError, PersistenceError, ValidationError

MIN_BORROWING_DAYS = 1
MAX_BORROWING_DAYS = 30

STATUS_FILTERS = {
    "pending": frozenset({STATUS_PENDING}),
    "approved": APPROVAL_FAMILY,
    "declined": DECLINE_FAMILY,
    "collected": frozenset({"collected"}),
}


def validate_requested_days(requested_days):
    if isinstance(requested_days, bool) or isinstance(requested_days, float) and not requested_days.is_integer():
        raise ValidationError("Borrowing days must be a whole number")
    try:
        days = int(requested_days)
    except (TypeError, ValueError):
        raise ValidationError("Borrowing days must be a whole number") from None
    if days < MIN_BORROWING_DAYS or days > MAX_BORROWING_DAYS:
        raise ValidationError(
            f"Borrowing period must be between {MIN_BORROWING_DAYS} and {MAX_BORROWING_DAYS} days"
        )
    return days


def create_request(member, book, requested_days, *, today=None):
    """Add a pending request with the book and member snapshotted onto it.

    The row is flushed, not committed.
    """
    if member is None or member.id is None:
        raise ValidationError("Unable to resolve a valid member ID for this user")
    if book is None or book.id is None:
        raise NotFoundError("Book not found")

    days = validate_requested_days(requested_days)
    request_date = today or _today()

    book_request = BookRequest(
        member_id=member.id,
        book_id=book.id,
        requested_days=days,
        request_date=request_date,
        due_date=request_date + timedelta(days=days),
        status=STATUS_PENDING,
        book_title=book.title,
        book_author=book.author,
        book_subject=book.subject,
        user_name=member.name,
        user_email=member.email,
    )
    db.session.add(book_request)
    _flush("create book request")
    return book_request


def get_request(request_id):
    book_request = db.session.get(BookRequest, request_id)
    if book_request is None:
        raise NotFoundError("Request not found")
    return book_request


def update_status(request_id, status, processed_date=None):
    """Write a status token. Only the known vocabulary is accepted."""
    if status not in REQUEST_STATUSES:
        raise PersistenceError(f"Failed to update request. Tried status value: {status}. Last error: unknown status")
    book_request = get_request(request_id)
    book_request.status = status
    book_request.processed_date = processed_date or _today()
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        raise PersistenceError(
            f"Failed to update request. Tried status value: {status}. Last error: {driver_message(exc)}"
        ) from exc
    return book_request


def delete_request(request_id):
    book_request = get_request(request_id)
    db.session.delete(book_request)
    _flush("delete request")


def list_requests(status_filter=None):
    query = BookRequest.query
    statuses = STATUS_FILTERS.get(status_filter)
    if statuses is not None:
        query = query.filter(BookRequest.status.in_(sorted(statuses)))
    return query.order_by(BookRequest.created_at.desc(), BookRequest.id.desc()).all()


def request_stats(book_requests):
    return {
        "totalRequests": len(book_requests),
        "pendingRequests": sum(1 for r in book_requests if r.status == STATUS_PENDING),
        "approvedRequests": sum(1 for r in book_requests if r.status in APPROVAL_FAMILY),
        "declinedRequests": sum(1 for r in book_requests if r.status in DECLINE_FAMILY),
    }


def _needs_member(book_request):
    return not (book_request.user_name and book_request.user_email)


def _needs_book(book_request):
    return not (book_request.book_title and book_request.book_author)


def serialize_request(book_request, members=None, books=None):
    """Request as a JSON-ready dict.

    Snapshot columns win; missing ones are filled from the live member and
    book rows (looked up in the given maps, or via the relationships).
    """
    member = book = None
    if _needs_member(book_request):
        member = (members or {}).get(book_request.member_id) or book_request.member
    if _needs_book(book_request):
        book = (books or {}).get(book_request.book_id) or book_request.book

    return {
        "id": book_request.id,
        "member_id": book_request.member_id,
        "book_id": book_request.book_id,
        "status": book_request.status,
        "request_date": _iso(book_request.request_date),
        "requested_days": book_request.requested_days,
        "due_date": _iso(book_request.due_date),
        "processed_date": _iso(book_request.processed_date),
        "created_at": _iso(book_request.created_at),
        "book_title": book_request.book_title or (book.title if book else f"Book ID: {book_request.book_id}"),
        "book_author": book_request.book_author or (book.author if book and book.author else "Unknown Author"),
        "book_subject": book_request.book_subject or (book.subject if book else None),
        "user_name": book_request.user_name or (member.name if member else f"User {book_request.member_id}"),
        "user_email": book_request.user_email or (member.email if member else None),
    }


def load_related(book_requests):
    """Batch-load members and books for requests missing snapshot data."""
    member_ids = {r.member_id for r in book_requests if r.member_id and _needs_member(r)}
    book_ids = {r.book_id for r in book_requests if r.book_id and _needs_book(r)}
    members = {m.id: m for m in Member.query.filter(Member.id.in_(member_ids))} if member_ids else {}
    books = {b.id: b for b in Book.query.filter(Book.id.in_(book_ids))} if book_ids else {}
    return members, books


# ── Borrowing records ──────────────────────────────────────────────


def record_borrowing(book_request, *, borrowed_date=None):
    record = BorrowingRecord(
        member_id=book_request.member_id,
        book_id=book_request.book_id,
        borrowed_date=borrowed_date or _today(),
        due_date=book_request.due_date,
        status=BORROWING_BORROWED,
        book_title=book_request.book_title,
    )
    db.session.add(record)
    _flush("create borrowing record")
    return record


def remove_borrowing_record(member_id, book_id, due_date):
    """Delete the borrowing record created for a request.

    Matches member, book and due date exactly. Records written without a due
    date cannot match that way, so when nothing matches, one open record for
    the member and book with no due date is removed instead. At most one row
    is deleted; returns the number deleted.
    """
    if member_id is None or book_id is None:
        return 0

    record_id = None
    if due_date is not None:
        record_id = _first_borrowing_id(
            BorrowingRecord.member_id == member_id,
            BorrowingRecord.book_id == book_id,
            BorrowingRecord.due_date == due_date,
        )
    if record_id is None:
        record_id = _first_borrowing_id(
            BorrowingRecord.member_id == member_id,
            BorrowingRecord.book_id == book_id,
            BorrowingRecord.due_date.is_(None),
            BorrowingRecord.status == BORROWING_BORROWED,
        )
    if record_id is None:
        return 0
    return BorrowingRecord.query.filter_by(id=record_id).delete(synchronize_session=False)


def _first_borrowing_id(*criteria):
    # Oldest first, so the record opened by the earliest approval goes.
    return (
        db.session.query(BorrowingRecord.id)
        .filter(*criteria)
        .order_by(BorrowingRecord.id.asc())
        .limit(1)
        .scalar()
    )


def _flush(action):
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        raise PersistenceError(f"Failed to {action}: {driver_message(exc)}") from exc


def driver_message(exc):
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


def _iso(value):
    return value.isoformat() if value is not None else None
