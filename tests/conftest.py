from datetime import timedelta
from unittest.mock import patch

import pytest

from smartlibrary.auth import make_member_token
from smartlibrary.models import Book, BookRequest, BorrowingRecord, Member, _today
from smartlibrary.models import db as _db

ADMIN_TOKEN = "admin-test-token"


@pytest.fixture(scope="session")
def app():
    """Create a Flask application configured for testing (session-scoped)."""
    with patch("smartlibrary.upgrade"):
        from smartlibrary import create_app

        _app = create_app("testing")

    yield _app


@pytest.fixture(autouse=True)
def db(app):
    """Create all tables before each test, drop them after."""
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(autouse=True)
def _reset_config(app):
    """Undo per-test config tweaks so the session-scoped app stays clean."""
    saved = dict(app.config)
    yield
    app.config.clear()
    app.config.update(saved)


@pytest.fixture()
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


def _make_member(name="Test Member", email="member@test.com"):
    """Create and persist a Member. Callable multiple times per test."""
    member = Member(name=name, email=email)
    _db.session.add(member)
    _db.session.commit()
    return member


def _make_book(title="Test Book", author="Test Author", subject="Fiction", quantity=1, available=None):
    """Create and persist a Book. Callable multiple times per test."""
    book = Book(
        title=title,
        author=author,
        subject=subject,
        quantity=quantity,
        available=(quantity > 0) if available is None else available,
    )
    _db.session.add(book)
    _db.session.commit()
    return book


def _make_request(member, book, requested_days=7, status="pending", snapshot=True):
    """Create and persist a BookRequest, bypassing the lifecycle."""
    today = _today()
    book_request = BookRequest(
        member_id=member.id if member else None,
        book_id=book.id if book else None,
        requested_days=requested_days,
        request_date=today,
        due_date=today + timedelta(days=requested_days),
        status=status,
    )
    if snapshot:
        book_request.book_title = book.title if book else None
        book_request.book_author = book.author if book else None
        book_request.user_name = member.name if member else None
        book_request.user_email = member.email if member else None
    _db.session.add(book_request)
    _db.session.commit()
    return book_request


def _make_borrowing(member, book, due_date=None, status="borrowed", borrowed_date=None, last_reminder_sent=None):
    record = BorrowingRecord(
        member_id=member.id,
        book_id=book.id,
        borrowed_date=borrowed_date or _today(),
        due_date=due_date,
        status=status,
        book_title=book.title,
        last_reminder_sent=last_reminder_sent,
    )
    _db.session.add(record)
    _db.session.commit()
    return record


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers():
    return _bearer(ADMIN_TOKEN)


@pytest.fixture()
def member(db):
    """A default library member."""
    return _make_member()


@pytest.fixture()
def member_headers(member):
    return _bearer(make_member_token(member.id, issued_at=1700000000))
