from flask import current_app

from ..extensions import db


def internal_error(message: str):
    """Log the active exception, drop the session's pending work, return a 500 body."""
    current_app.logger.exception(message)
    db.session.rollback()
    return {"error": "Internal server error"}, 500
