"""
JSON error bodies for the API.

Every error leaves the service as::

    {"error": "<message>", "code": "<CODE>", "details": {...}}

``details`` is omitted when empty. Engine exceptions carry their own code and
component; the codes below cover what the blueprints and the HTTP-level
handlers in ``create_app`` produce themselves.
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes raised outside the exception hierarchy."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    NOT_FOUND = "ERR_NOT_FOUND"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    RATE_LIMITED = "ERR_RATE_LIMITED"
    INTERNAL = "ERR_INTERNAL"
    CATALOG_EMPTY = "CATALOG_EMPTY"


_STATUS_BY_CODE = {
    E.VALIDATION_REQUIRED: 400,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.PAYLOAD_TOO_LARGE: 413,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(response, status)`` for a Flask view; status defaults from the code, else 400."""
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)


def error_from_exception(exc, status: int | None = None):
    """Body for a ``DacumError``; the component always lands in ``details``."""
    details = {**(exc.details or {}), "component": exc.component}
    return api_error(exc.code, exc.message, status=status or 500, details=details)
