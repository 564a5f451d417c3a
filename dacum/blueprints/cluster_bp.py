"""Clustering blueprint.

  POST /api/v1/sessions/<sid>/clusters/run     cluster the session's cards
  POST /api/v1/clusters/preview                cluster ad-hoc items
  GET  /api/v1/sessions/<sid>/clusters         latest stored result
  POST /api/v1/sessions/<sid>/clusters/apply   apply a result into the chart

Body options: ``mode`` (lexical | vector | generative), ``similarity_threshold``,
``min_cluster_size``, ``max_clusters``, ``stable_min_size``, ``keep_empty``,
``language``.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from dacum.services import get_services
from dacum.utils.errors import E, api_error

logger = logging.getLogger(__name__)

cluster_bp = Blueprint("cluster", __name__, url_prefix="/api/v1")

_OPTION_KEYS = (
    "similarity_threshold", "min_cluster_size", "max_clusters",
    "stable_min_size", "keep_empty", "language",
)


def _options(data: dict) -> dict:
    nested = data.get("options")
    source = nested if isinstance(nested, dict) else data
    return {k: source[k] for k in _OPTION_KEYS if k in source}


@cluster_bp.route("/sessions/<sid>/clusters/run", methods=["POST"])
def run_clustering(sid):
    data = request.get_json(silent=True) or {}
    mode = str(data.get("mode") or "lexical").lower()
    result = get_services().clusters.run(sid, _options(data), mode=mode)
    return jsonify(result), 200


@cluster_bp.route("/clusters/preview", methods=["POST"])
def preview():
    """Body: ``{"items": [{"id", "text"} | "text"], "vectors"?: [[...]], ...options}``."""
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    if not isinstance(items, list):
        return api_error(E.VALIDATION_REQUIRED, "items must be a list")
    vectors = data.get("vectors")
    if vectors is not None and not isinstance(vectors, list):
        return api_error(E.VALIDATION_REQUIRED, "vectors must be a list")
    mode = str(data.get("mode") or "lexical").lower()
    result = get_services().clusters.preview(items, _options(data), mode=mode, vectors=vectors)
    return jsonify(result), 200


@cluster_bp.route("/sessions/<sid>/clusters", methods=["GET"])
def latest(sid):
    return jsonify(get_services().clusters.latest(sid)), 200


@cluster_bp.route("/sessions/<sid>/clusters/apply", methods=["POST"])
def apply(sid):
    """Apply the stored result, or ``{"cluster_result": {...}}`` from the body."""
    data = request.get_json(silent=True) or {}
    supplied = data.get("cluster_result")
    if supplied is not None and not isinstance(supplied, dict):
        return api_error(E.VALIDATION_REQUIRED, "cluster_result must be an object")
    return jsonify(get_services().clusters.apply(sid, supplied)), 200
