from flask import Blueprint

from ..auth import admin_required

admin_bp = Blueprint("admin", __name__)

__all__ = ["admin_bp", "admin_required"]
