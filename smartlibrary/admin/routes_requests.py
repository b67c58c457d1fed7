from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .. import limiter
from ..errors import error_response
from ..lending import service, store
from ..models import db
from .common import admin_bp, admin_required
from .forms import BookRequestActionForm, BookRequestDeleteForm

# ── Book Requests ─────────────────────────────────────────────────


@admin_bp.route("/book-requests", methods=["GET"])
@admin_required
def book_requests():
    status_filter = request.args.get("status", "all")
    try:
        requests, stats = service.list_requests(status_filter)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Listing book requests failed")
        return jsonify(
            {
                "success": True,
                "requests": [],
                "stats": store.request_stats([]),
                "message": f"Unable to load book requests. Please check the database connection. ({store.driver_message(exc)})",
            }
        )

    return jsonify({"success": True, "requests": requests, "stats": stats})


@admin_bp.route("/book-requests", methods=["PUT"])
@admin_required
@limiter.limit("60 per minute")
def book_request_action():
    form = BookRequestActionForm()
    if not form.validate():
        return error_response(form.first_error(), 400)

    book_request, message = service.apply_action(form.request_id.data, form.action.data)
    return jsonify(
        {
            "success": True,
            "message": message,
            "request": store.serialize_request(book_request),
        }
    )


@admin_bp.route("/book-requests", methods=["DELETE"])
@admin_required
@limiter.limit("30 per minute")
def book_request_delete():
    form = BookRequestDeleteForm()
    if not form.validate():
        return error_response(form.first_error(), 400)

    service.delete_request(form.request_id.data)
    return jsonify({"success": True, "message": "Book request deleted successfully"})
