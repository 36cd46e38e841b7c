"""
Shared request/response plumbing for the HTTP Cloud Functions.

Status mapping:
    input errors -> 400 with the reason
    cancellation -> 504
    anything else -> 500 with a generic message (traceback only in logs)
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Tuple

from .errors import InputError, InvalidRequest, OperationCancelled

logger = logging.getLogger(__name__)

PREFLIGHT_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'POST',
    'Access-Control-Allow-Headers': 'Content-Type',
    'Access-Control-Max-Age': '3600'
}

RESPONSE_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Content-Type': 'application/json',
}


def preflight_response() -> Tuple[str, int, Dict]:
    return ('', 204, dict(PREFLIGHT_HEADERS))


def json_response(payload: Dict, status: int = 200) -> Tuple[str, int, Dict]:
    return (json.dumps(payload), status, dict(RESPONSE_HEADERS))


def error_response(error: Exception) -> Tuple[str, int, Dict]:
    """Map an exception raised by a handler onto a JSON error response."""
    if isinstance(error, InputError):
        logger.info('Rejected request: %s', error.message)
        return json_response({'success': False, 'error': error.to_dict()}, 400)

    if isinstance(error, OperationCancelled):
        logger.warning('Request cancelled: %s', error.message)
        return json_response({'success': False, 'error': error.to_dict()}, 504)

    logger.error('Unhandled error while processing request', exc_info=error)
    return json_response({
        'success': False,
        'error': {
            'stage': 'processing',
            'message': 'Internal error',
            'recoverable': False
        }
    }, 500)


def read_json(request) -> Dict:
    """
    Parse the request body as a JSON object.

    Raises:
        InvalidRequest: body is missing or not an object
    """
    request_json = request.get_json(silent=True)
    if not isinstance(request_json, dict):
        raise InvalidRequest('Request body must be a JSON object')
    return request_json


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
