from flask import Blueprint, jsonify
from flask_login import login_required

from .. import limiter
from ..errors import error_response
from .forms import BookRequestForm
from .service import submit_request

lending_bp = Blueprint("lending", __name__)


@lending_bp.route("/request-book", methods=["POST"])
@login_required
@limiter.limit("10 per minute")
def request_book():
    form = BookRequestForm()
    if not form.validate():
        return error_response(form.first_error(), 400)

    book_request = submit_request(
        book_id=form.book_id.data,
        requested_days=form.borrowing_days.data,
        user_id=form.user_id.data,
        email=form.email.data,
        name=form.name.data,
    )
    return jsonify(
        {
            "success": True,
            "message": "Book request submitted successfully",
            "request": {
                "id": book_request.id,
                "bookTitle": book_request.book_title,
                "borrowingDays": book_request.requested_days,
                "dueDate": book_request.due_date.isoformat(),
                "status": book_request.status,
            },
        }
    )
