"""Tests for the transactional email sender."""

from unittest.mock import patch

import httpx
import pytest

from smartlibrary.email_service import BREVO_URL, RESEND_URL, send_email
from smartlibrary.models import EmailLog


def _response(status_code, url=BREVO_URL):
    return httpx.Response(status_code, json={}, request=httpx.Request("POST", url))


@pytest.fixture()
def brevo(app):
    app.config["EMAIL_PROVIDER"] = "brevo"
    app.config["BREVO_API_KEY"] = "brevo-key"
    app.config["MAIL_DEFAULT_SENDER"] = "library@test.com"
    app.config["MAIL_DEFAULT_SENDER_NAME"] = "Test Library"
    return app


def test_missing_api_key_skips_send(app):
    with patch("smartlibrary.email_service.httpx.post") as mock_post:
        assert send_email("reader@test.com", "Subject", "Body", type="book_approved") is False

    mock_post.assert_not_called()
    log = EmailLog.query.one()
    assert log.status == "skipped"
    assert log.recipient == "reader@test.com"
    assert log.type == "book_approved"


def test_brevo_send(brevo):
    with patch("smartlibrary.email_service.httpx.post", return_value=_response(201)) as mock_post:
        ok = send_email(
            "reader@test.com",
            "Book Request Approved: Dune",
            "Dear Reader,\n\nGood news!",
            type="book_approved",
            user_id=3,
            book_id=9,
        )

    assert ok is True
    args, kwargs = mock_post.call_args
    assert args[0] == BREVO_URL
    assert kwargs["headers"]["api-key"] == "brevo-key"
    payload = kwargs["json"]
    assert payload["sender"] == {"name": "Test Library", "email": "library@test.com"}
    assert payload["to"] == [{"email": "reader@test.com"}]
    assert payload["subject"] == "Book Request Approved: Dune"
    assert payload["textContent"] == "Dear Reader,\n\nGood news!"
    assert "<p style=\"margin: 0 0 4px 0;\">Good news!</p>" in payload["htmlContent"]
    assert kwargs["timeout"] == brevo.config["EMAIL_TIMEOUT_SECONDS"]

    log = EmailLog.query.one()
    assert log.status == "sent"
    assert log.provider == "brevo"
    assert log.member_id == 3
    assert log.book_id == 9


def test_html_body_escapes_message(brevo):
    with patch("smartlibrary.email_service.httpx.post", return_value=_response(201)) as mock_post:
        send_email("reader@test.com", "Subject", "<script>alert(1)</script>")

    assert "<script>" not in mock_post.call_args.kwargs["json"]["htmlContent"]


def test_resend_send(app):
    app.config["EMAIL_PROVIDER"] = "resend"
    app.config["RESEND_API_KEY"] = "re_key"
    app.config["MAIL_DEFAULT_SENDER"] = "library@test.com"
    app.config["MAIL_DEFAULT_SENDER_NAME"] = "Test Library"

    with patch("smartlibrary.email_service.httpx.post", return_value=_response(200, RESEND_URL)) as mock_post:
        assert send_email("reader@test.com", "Subject", "Body") is True

    args, kwargs = mock_post.call_args
    assert args[0] == RESEND_URL
    assert kwargs["headers"]["Authorization"] == "Bearer re_key"
    assert kwargs["json"]["from"] == "Test Library <library@test.com>"
    assert kwargs["json"]["to"] == ["reader@test.com"]
    assert EmailLog.query.one().provider == "resend"


def test_provider_rejection_returns_false(brevo):
    with patch("smartlibrary.email_service.httpx.post", return_value=_response(400)):
        assert send_email("reader@test.com", "Subject", "Body") is False

    log = EmailLog.query.one()
    assert log.status == "failed"
    assert "400" in log.error


def test_network_error_returns_false(brevo):
    with patch("smartlibrary.email_service.httpx.post", side_effect=httpx.ConnectError("connection refused")):
        assert send_email("reader@test.com", "Subject", "Body") is False

    assert EmailLog.query.one().error == "connection refused"
