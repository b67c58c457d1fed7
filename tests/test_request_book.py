"""Tests for the member-facing book request endpoint."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from smartlibrary.models import BookRequest, UserNotification, _today
from tests.conftest import _make_book, _make_member


def test_request_book_requires_token(client):
    rv = client.post("/request-book", json={"bookId": 1, "borrowingDays": 7, "userId": "1"})
    assert rv.status_code == 401


def test_request_book_success(client, member, member_headers):
    book = _make_book(title="Requested", quantity=2)

    with patch("smartlibrary.email_service.send_email") as mock_send:
        rv = client.post(
            "/request-book",
            json={"bookId": book.id, "borrowingDays": 14, "userId": str(member.id)},
            headers=member_headers,
        )

    assert rv.status_code == 200
    data = rv.get_json()
    assert data["success"] is True
    assert data["message"] == "Book request submitted successfully"
    assert data["request"]["bookTitle"] == "Requested"
    assert data["request"]["borrowingDays"] == 14
    assert data["request"]["status"] == "pending"
    assert data["request"]["dueDate"] == (_today() + timedelta(days=14)).isoformat()
    mock_send.assert_not_called()

    notification = UserNotification.query.one()
    assert notification.member_id == member.id
    assert notification.type == "book_request"


def test_request_book_with_external_user_id(client, member_headers):
    book = _make_book()
    rv = client.post(
        "/request-book",
        json={"bookId": str(book.id), "borrowingDays": "3", "userId": "auth0|abc", "email": "ext@test.com", "name": "Ext"},
        headers=member_headers,
    )
    assert rv.status_code == 200
    book_request = BookRequest.query.one()
    assert book_request.user_email == "ext@test.com"
    assert book_request.user_name == "Ext"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"borrowingDays": 7, "userId": "1"},
        {"bookId": 1, "userId": "1"},
        {"bookId": 1, "borrowingDays": 7},
        {"bookId": None, "borrowingDays": 7, "userId": "1"},
    ],
)
def test_request_book_missing_fields(client, member_headers, payload):
    rv = client.post("/request-book", json=payload, headers=member_headers)
    assert rv.status_code == 400
    assert rv.get_json()["error"] == "Book ID, borrowing days, and user ID are required"


@pytest.mark.parametrize("days", [0, 31, 100])
def test_request_book_out_of_range_days(client, member, member_headers, days):
    book = _make_book()
    rv = client.post(
        "/request-book",
        json={"bookId": book.id, "borrowingDays": days, "userId": str(member.id)},
        headers=member_headers,
    )
    assert rv.status_code == 400
    assert "between 1 and 30" in rv.get_json()["error"]
    assert BookRequest.query.count() == 0


def test_request_book_unknown_book(client, member, member_headers):
    rv = client.post(
        "/request-book",
        json={"bookId": 9999, "borrowingDays": 7, "userId": str(member.id)},
        headers=member_headers,
    )
    assert rv.status_code == 404
    assert rv.get_json()["error"] == "Book not found"


def test_request_book_unavailable(client, member, member_headers):
    book = _make_book(quantity=0)
    rv = client.post(
        "/request-book",
        json={"bookId": book.id, "borrowingDays": 7, "userId": str(member.id)},
        headers=member_headers,
    )
    assert rv.status_code == 400
    assert rv.get_json()["error"] == "Book is not available for borrowing"


def test_request_book_unresolvable_member(client, member_headers):
    book = _make_book()
    rv = client.post(
        "/request-book",
        json={"bookId": book.id, "borrowingDays": 7, "userId": "nobody"},
        headers=member_headers,
    )
    assert rv.status_code == 400
    assert rv.get_json()["error"] == "Unable to resolve a valid member ID for this user"


def test_request_book_does_not_reserve(client, member_headers):
    member = _make_member(email="reserve@test.com")
    book = _make_book(quantity=1)
    for _ in range(2):
        rv = client.post(
            "/request-book",
            json={"bookId": book.id, "borrowingDays": 7, "userId": str(member.id)},
            headers=member_headers,
        )
        assert rv.status_code == 200
    assert BookRequest.query.count() == 2
