"""
Error kinds raised by the services, and the Flask handler that renders them.

Every error carries a message key (see messages.py) and an HTTP status. The
handler only ever exposes the localized message, never internal detail.
"""
import logging

from flask import jsonify

from messages import render

logger = logging.getLogger(__name__)


class CoworkError(Exception):
    """Base error for the check-in and payment services."""
    status_code = 500
    default_key = 'internal_error'

    def __init__(self, detail='', key=None, **params):
        super().__init__(detail or key or self.default_key)
        self.detail = detail
        self.key = key or self.default_key
        self.params = params


class NotFound(CoworkError):
    status_code = 404
    default_key = 'not_found'


class ValidationError(CoworkError):
    status_code = 400
    default_key = 'invalid_input'


class Conflict(CoworkError):
    status_code = 409
    default_key = 'conflict'


class InvalidStateTransition(CoworkError):
    status_code = 409
    default_key = 'invalid_transition'


class AccessDenied(CoworkError):
    status_code = 403
    default_key = 'access_denied'


class GatewayError(CoworkError):
    """The payment gateway was unreachable or answered something unusable."""
    status_code = 502
    default_key = 'gateway_unavailable'


class UnknownReference(CoworkError):
    """A gateway callback referenced no known payment record."""
    status_code = 404
    default_key = 'unknown_reference'


def register_error_handlers(app):
    """Render service errors as {'error': <message>, 'code': <key>}."""

    @app.errorhandler(CoworkError)
    def handle_cowork_error(error):
        if error.status_code >= 500:
            logger.error("%s: %s", type(error).__name__, error.detail or error.key)
        else:
            logger.info("%s: %s", type(error).__name__, error.detail or error.key)
        message = render(error.key, app.config.get('LANGUAGE'), **error.params)
        return jsonify({'error': message, 'code': error.key}), error.status_code
