"""Error handlers for the application."""
from flask import jsonify
from werkzeug.exceptions import HTTPException

from autograder.core.errors import APIError, InternalError


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(APIError)
    def handle_api_error(error: APIError):
        """Render a resolver/endpoint failure. Details stay in the log."""
        if isinstance(error, InternalError):
            app.logger.error("API error: %s", error.log_line())
        else:
            app.logger.warning("API error: %s", error.log_line())

        body = error.to_dict()
        body["success"] = False
        return jsonify(body), error.status

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 Not Found errors."""
        return jsonify({"success": False, "code": "not_found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        """Handle 405 Method Not Allowed errors."""
        return jsonify({"success": False, "code": "method_not_allowed", "message": "Method not allowed"}), 405

    @app.errorhandler(413)
    def request_too_large(error):
        """Handle payload too large errors."""
        return jsonify({"success": False, "code": "bad_request", "message": "Request payload too large"}), 413

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        # Pass through HTTP errors
        if isinstance(error, HTTPException):
            return jsonify({
                "success": False,
                "code": "http_error",
                "message": error.description or error.name,
            }), error.code

        # ALWAYS log the full error (even in production) - logs are secure
        app.logger.error(f"Unhandled exception: {error}", exc_info=True)

        return jsonify({
            "success": False,
            "code": "internal",
            "message": "An unexpected error occurred",
        }), 500
