"""CU comparator blueprint.

  POST /api/v1/compare
       {"cus": [{cu_code, cu_title, work_activities}], "top_k"?, "accept_threshold"?}
       or {"session_id": "..."} to compare the session's applied chart.

Embedding failures surface as 503 EMBEDDING_UNAVAILABLE; an empty catalog as
422 CATALOG_EMPTY.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from dacum.services import get_services
from dacum.utils.errors import E, api_error

logger = logging.getLogger(__name__)

compare_bp = Blueprint("compare", __name__, url_prefix="/api/v1")


@compare_bp.route("/compare", methods=["POST"])
def compare():
    data = request.get_json(silent=True) or {}
    cus = data.get("cus")
    session_id = data.get("session_id")
    if cus is None and not session_id:
        return api_error(E.VALIDATION_REQUIRED, "cus or session_id is required")
    if cus is not None and not isinstance(cus, list):
        return api_error(E.VALIDATION_REQUIRED, "cus must be a list")

    options = {k: data[k] for k in ("top_k", "accept_threshold") if k in data}
    result = get_services().compare.compare(cus=cus, session_id=session_id, options=options)
    return jsonify(result), 200
