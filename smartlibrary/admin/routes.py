"""Admin blueprint. Importing this module registers every admin route."""

from . import routes_notifications, routes_requests  # noqa: F401
from .common import admin_bp

__all__ = ["admin_bp"]
