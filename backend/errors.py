import logging

from flask import jsonify

logger = logging.getLogger(__name__)


class RentalError(Exception):
    """Base class for failures the API reports back to the caller."""
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"message": self.message}


class ValidationError(RentalError):
    status_code = 400


class NotFoundError(RentalError):
    status_code = 404


class ConflictError(RentalError):
    """The record changed since the caller read it; re-read and retry."""
    status_code = 409


def register_error_handlers(app):
    @app.errorhandler(RentalError)
    def rental_error(e):
        logger.info("%s: %s", type(e).__name__, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"message": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"message": "Method not allowed"}), 405

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"message": "Internal server error"}), 500
