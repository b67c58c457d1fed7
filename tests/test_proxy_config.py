"""Tests for conditional ProxyFix wrapping."""

from unittest.mock import patch

import pytest
from werkzeug.middleware.proxy_fix import ProxyFix


def test_testing_app_does_not_wrap_proxy_by_default(app):
    assert not isinstance(app.wsgi_app, ProxyFix)


@pytest.fixture()
def production_env(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "StrongProductionKey0123456789ABCDEF")
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    monkeypatch.delenv("WEB_CONCURRENCY", raising=False)
    return monkeypatch


def _production_app():
    with patch("smartlibrary.upgrade"):
        from smartlibrary import create_app

        return create_app("production")


def test_production_app_wraps_proxy_when_trusted(production_env):
    production_env.setenv("TRUST_PROXY", "true")
    prod_app = _production_app()
    assert isinstance(prod_app.wsgi_app, ProxyFix)
    assert not hasattr(prod_app, "scheduler")


def test_production_app_can_disable_proxy_trust_via_env(production_env):
    production_env.setenv("TRUST_PROXY", "false")
    prod_app = _production_app()
    assert not isinstance(prod_app.wsgi_app, ProxyFix)
