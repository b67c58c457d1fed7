from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from .lending.exceptions import LibraryError
from .models import db


def error_response(message, status_code):
    return jsonify({"error": message}), status_code


def register_error_handlers(app):
    @app.errorhandler(LibraryError)
    def library_error(e):
        if e.status_code >= 500:
            app.logger.error("%s %s failed: %s", request.method, request.path, e)
        return error_response(e.message, e.status_code)

    @app.errorhandler(401)
    def unauthorized(e):
        return error_response(_description(e, "Unauthorized"), 401)

    @app.errorhandler(403)
    def forbidden(e):
        app.logger.warning("403 Forbidden: %s", request.path)
        return error_response("Forbidden", 403)

    @app.errorhandler(404)
    def not_found(e):
        return error_response("Not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return error_response("Method not allowed", 405)

    @app.errorhandler(429)
    def rate_limited(e):
        return error_response("Too many requests. Please try again later.", 429)

    @app.errorhandler(500)
    def internal_error(e):
        db.session.rollback()
        app.logger.exception("Internal server error: %s", e)
        return error_response("Internal server error", 500)


def _description(e, default):
    # abort(401) carries werkzeug's generic text; only explicit descriptions pass through.
    if isinstance(e, HTTPException) and e.description != type(e).description:
        return e.description
    return default
