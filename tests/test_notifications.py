"""Tests for the notification emitter."""

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from smartlibrary.notifications import OUTCOMES, emit, greeting_name
from smartlibrary.models import UserNotification, db
from tests.conftest import _make_book, _make_member, _make_request


def test_greeting_name_fallbacks():
    member = _make_member(name="Reader")
    assert greeting_name(member) == "Reader"
    assert greeting_name(member, "Snapshot Name") == "Snapshot Name"
    assert greeting_name(None) == "Library Member"


def test_every_outcome_has_templates(app):
    book_request = _make_request(_make_member(), _make_book(title="Template Check"))
    with patch("smartlibrary.email_service.send_email", return_value=True):
        for outcome in OUTCOMES:
            notification = emit(outcome, book_request)
            assert notification is not None
            assert "Template Check" in notification.message


def test_emit_approve_email_content():
    member = _make_member(name="Mail Reader", email="mail@test.com")
    book_request = _make_request(member, _make_book(title="Mailed Book"), requested_days=1)

    with patch("smartlibrary.email_service.send_email", return_value=True) as mock_send:
        notification = emit("approve", book_request)

    kwargs = mock_send.call_args.kwargs
    assert kwargs["subject"] == "Book Request Approved: Mailed Book"
    assert "Dear Mail Reader" in kwargs["message"]
    assert "Borrowing period: 1 day\n" in kwargs["message"]
    assert "Smart Library System" in kwargs["message"]
    assert notification.emailed_at is not None
    assert "has been approved! You can now pick up the book." in notification.message


def test_emit_prefers_snapshot_email():
    member = _make_member(email="live@test.com")
    book_request = _make_request(member, _make_book())
    book_request.user_email = "snapshot@test.com"
    db.session.commit()

    with patch("smartlibrary.email_service.send_email", return_value=True) as mock_send:
        emit("decline", book_request)

    assert mock_send.call_args.kwargs["to"] == "snapshot@test.com"


def test_emit_falls_back_to_member_email():
    member = _make_member(email="live@test.com")
    book_request = _make_request(member, _make_book(), snapshot=False)

    with patch("smartlibrary.email_service.send_email", return_value=True) as mock_send:
        emit("collect", book_request)

    assert mock_send.call_args.kwargs["to"] == "live@test.com"


def test_emit_without_email_still_records_notification():
    member = _make_member(email=None)
    book_request = _make_request(member, _make_book())

    with patch("smartlibrary.email_service.send_email") as mock_send:
        notification = emit("approve", book_request)

    mock_send.assert_not_called()
    assert notification is not None
    assert notification.emailed_at is None
    assert UserNotification.query.count() == 1


def test_emit_failed_email_leaves_emailed_at_unset():
    book_request = _make_request(_make_member(), _make_book())

    with patch("smartlibrary.email_service.send_email", return_value=False):
        notification = emit("decline", book_request)

    assert notification.emailed_at is None


def test_emit_submit_sends_no_email():
    book_request = _make_request(_make_member(), _make_book())

    with patch("smartlibrary.email_service.send_email") as mock_send:
        notification = emit("submit", book_request)

    mock_send.assert_not_called()
    assert notification.type == "book_request"


def test_emit_survives_insert_failure():
    book_request = _make_request(_make_member(), _make_book())

    def _fail():
        raise OperationalError("INSERT INTO user_notifications", {}, Exception("disk I/O error"))

    with (
        patch.object(db.session, "commit", side_effect=_fail),
        patch("smartlibrary.email_service.send_email", return_value=True) as mock_send,
    ):
        result = emit("approve", book_request)

    assert result is None
    # The email still goes out even though the in-app row was lost.
    mock_send.assert_called_once()


def test_emit_never_raises():
    book_request = _make_request(_make_member(), _make_book())

    with patch("smartlibrary.email_service.send_email", side_effect=RuntimeError("provider SDK crashed")):
        result = emit("approve", book_request)

    assert result is None
