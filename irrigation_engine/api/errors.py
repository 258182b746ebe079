"""Mapping of engine exceptions to JSON error responses."""
import logging
from flask import jsonify

from irrigation_engine.exceptions import (
    IrrigationEngineError, InvalidConfigurationError, PermissionDenied,
    OperationRejected, StoreUnavailable
)

logger = logging.getLogger(__name__)

# Most specific first
STATUS_CODES = (
    (InvalidConfigurationError, 400),
    (PermissionDenied, 403),
    (OperationRejected, 409),
    (StoreUnavailable, 503),
)


def error_response(error: Exception):
    """Build a ``{'success': False, ...}`` response for an exception."""
    if isinstance(error, IrrigationEngineError):
        for exc_type, status in STATUS_CODES:
            if isinstance(error, exc_type):
                break
        else:
            status = 500
        body = {'success': False, 'error': error.message}
        if error.details:
            body['details'] = error.details
        return jsonify(body), status

    logger.exception("Unhandled API error")
    return jsonify({
        'success': False,
        'error': str(error)
    }), 500


def not_initialized(name: str):
    return jsonify({
        'success': False,
        'error': f'{name} not initialized'
    }), 500
