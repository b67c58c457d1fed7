import sqlite3
from datetime import UTC, datetime

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()


def _utcnow():
    return datetime.now(UTC)


def _today():
    return _utcnow().date()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# ── Request status vocabulary ───────────────────────────────────────
#
# Only the canonical tokens are ever written. The legacy tokens are kept in
# the CHECK constraint so rows imported from the old system still load.

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_DECLINED = "declined"
STATUS_COLLECTED = "collected"

CANONICAL_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_DECLINED, STATUS_COLLECTED)
LEGACY_STATUSES = ("accepted", "ready", "cancelled", "rejected")
REQUEST_STATUSES = CANONICAL_STATUSES + LEGACY_STATUSES

APPROVAL_FAMILY = frozenset({"accepted", STATUS_APPROVED, "ready", STATUS_COLLECTED})
DECLINE_FAMILY = frozenset({"cancelled", STATUS_DECLINED, "rejected"})
ADJUDICABLE_STATUSES = frozenset({STATUS_PENDING, "ready"})

BORROWING_BORROWED = "borrowed"
BORROWING_RETURNED = "returned"

NOTIFICATION_TYPES = (
    "book_approved",
    "book_declined",
    "book_received",
    "book_request",
    "book_ready",
    "deadline_reminder",
    "overdue_notice",
    "welcome",
    "email_verification",
)


def _status_check_sql():
    allowed = ", ".join(f"'{status}'" for status in REQUEST_STATUSES)
    return f"status IN ({allowed})"


# ── Member ──────────────────────────────────────────────────────────


class Member(db.Model):
    __tablename__ = "library_members"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=True, index=True)
    join_date = db.Column(db.Date, nullable=False, default=_today)
    status = db.Column(db.String(20), nullable=False, default="Active")
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<Member {self.id} {self.email}>"


# ── Book ────────────────────────────────────────────────────────────


class Book(db.Model):
    __tablename__ = "books"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(500), nullable=False, index=True)
    author = db.Column(db.String(500), nullable=True)
    subject = db.Column(db.String(255), nullable=True)
    isbn = db.Column(db.String(20), nullable=True)
    shelf_location = db.Column(db.String(100), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    available = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (db.CheckConstraint("quantity >= 0", name="ck_books_quantity_non_negative"),)

    def __repr__(self):
        return f"<Book {self.title[:40]}>"


# ── Book Request ────────────────────────────────────────────────────


class BookRequest(db.Model):
    __tablename__ = "book_requests"

    id = db.Column(db.Integer, primary_key=True)
    # Nullable so a request outlives its member or book; the snapshot
    # columns below keep it displayable.
    member_id = db.Column(
        db.Integer, db.ForeignKey("library_members.id", ondelete="SET NULL"), nullable=True, index=True
    )
    book_id = db.Column(db.Integer, db.ForeignKey("books.id", ondelete="SET NULL"), nullable=True, index=True)
    requested_days = db.Column(db.Integer, nullable=False)
    request_date = db.Column(db.Date, nullable=False, default=_today)
    due_date = db.Column(db.Date, nullable=True)
    processed_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    # Snapshot at time of request
    book_title = db.Column(db.String(500), nullable=True)
    book_author = db.Column(db.String(500), nullable=True)
    book_subject = db.Column(db.String(255), nullable=True)
    user_name = db.Column(db.String(255), nullable=True)
    user_email = db.Column(db.String(255), nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            "requested_days >= 1 AND requested_days <= 30",
            name="ck_book_requests_requested_days_range",
        ),
        db.CheckConstraint(_status_check_sql(), name="ck_book_requests_status"),
    )

    member = db.relationship("Member", backref=db.backref("book_requests", lazy="dynamic"))
    book = db.relationship("Book", backref=db.backref("book_requests", lazy="dynamic"))

    @property
    def is_approved(self):
        return self.status in APPROVAL_FAMILY

    @property
    def is_declined(self):
        return self.status in DECLINE_FAMILY

    def __repr__(self):
        return f"<BookRequest {self.id} book={self.book_id} member={self.member_id} ({self.status})>"


# ── Borrowing Record ────────────────────────────────────────────────


class BorrowingRecord(db.Model):
    __tablename__ = "borrowing_records"

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(
        db.Integer, db.ForeignKey("library_members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    book_id = db.Column(db.Integer, db.ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    borrowed_date = db.Column(db.Date, nullable=False, default=_today)
    # Legacy records were written without a due date.
    due_date = db.Column(db.Date, nullable=True)
    returned_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=BORROWING_BORROWED, index=True)
    last_reminder_sent = db.Column(db.Date, nullable=True)
    book_title = db.Column(db.String(500), nullable=True)

    __table_args__ = (
        db.CheckConstraint("status IN ('borrowed', 'returned')", name="ck_borrowing_records_status"),
    )

    member = db.relationship("Member", backref=db.backref("borrowing_records", lazy="dynamic"))
    book = db.relationship("Book")

    def __repr__(self):
        return f"<BorrowingRecord {self.id} book={self.book_id} member={self.member_id} ({self.status})>"


# ── User Notification ───────────────────────────────────────────────


class UserNotification(db.Model):
    __tablename__ = "user_notifications"

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(
        db.Integer, db.ForeignKey("library_members.id", ondelete="CASCADE"), nullable=True, index=True
    )
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    # Plain columns, not foreign keys: deleting a request removes these rows
    # explicitly before the request itself goes.
    related_request_id = db.Column(db.Integer, nullable=True, index=True)
    related_borrowing_record_id = db.Column(db.Integer, nullable=True)
    related_book_id = db.Column(db.Integer, nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime, nullable=True)
    emailed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow, index=True)

    member = db.relationship("Member", backref=db.backref("notifications", lazy="dynamic"))

    def __repr__(self):
        return f"<UserNotification {self.id} {self.type} member={self.member_id}>"


# ── Email Log ───────────────────────────────────────────────────────


class EmailLog(db.Model):
    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    recipient = db.Column(db.String(255), nullable=False)
    subject = db.Column(db.String(500), nullable=False)
    type = db.Column(db.String(50), nullable=True)
    member_id = db.Column(db.Integer, nullable=True)
    book_id = db.Column(db.Integer, nullable=True)
    provider = db.Column(db.String(20), nullable=True)
    status = db.Column(db.String(20), nullable=False)  # sent, failed, skipped
    error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow, index=True)


# ── Audit Log ───────────────────────────────────────────────────────


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=_utcnow, index=True)
    actor = db.Column(db.String(100), nullable=True)
    action = db.Column(db.String(100), nullable=False, index=True)
    target_type = db.Column(db.String(50), nullable=True)  # book_request, book, notification
    target_id = db.Column(db.Integer, nullable=True)
    detail = db.Column(db.Text, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    def __repr__(self):
        return f"<AuditLog {self.action} at {self.timestamp}>"
