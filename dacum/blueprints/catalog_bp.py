"""Reference catalog blueprint.

  GET  /api/v1/catalog/status   progress marker and record count
  POST /api/v1/catalog/build    build increment ``{from_page, to_page?}`` or ``{resume: N}``
  POST /api/v1/catalog/search   keyword search ``{q, limit?}``
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from dacum.services import get_services
from dacum.utils.errors import E, api_error

logger = logging.getLogger(__name__)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/v1")


@catalog_bp.route("/catalog/status", methods=["GET"])
def status():
    return jsonify(get_services().catalog.status()), 200


@catalog_bp.route("/catalog/build", methods=["POST"])
def build():
    data = request.get_json(silent=True) or {}
    services = get_services()
    if "resume" in data:
        result = services.catalog.resume(data.get("resume") or 1)
    elif "from_page" in data:
        result = services.catalog.build_increment(data["from_page"], data.get("to_page"))
    else:
        return api_error(E.VALIDATION_REQUIRED, "from_page (or resume) is required")
    if result["added"]:
        services.matching.invalidate()
    return jsonify(result), 200


@catalog_bp.route("/catalog/search", methods=["POST"])
def search():
    data = request.get_json(silent=True) or {}
    query = data.get("q", data.get("query"))
    if not isinstance(query, str):
        return api_error(E.VALIDATION_REQUIRED, "q is required")
    return jsonify(get_services().catalog.search(query, data.get("limit", 50))), 200
