"""Panel session blueprint: activity cards, session language, summary and chart.

Endpoint groups:
  Cards        GET/POST /api/v1/sessions/<sid>/cards
               POST     /api/v1/sessions/<sid>/cards/seed
  Language     GET/PUT  /api/v1/sessions/<sid>/config
               POST     /api/v1/sessions/<sid>/lock-language
  Read models  GET      /api/v1/sessions/<sid>/summary
               GET      /api/v1/sessions/<sid>/chart
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from dacum.services import get_services
from dacum.utils.errors import E, api_error

logger = logging.getLogger(__name__)

session_bp = Blueprint("session", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════
# Cards
# ═════════════════════════════════════════════════════════════════════════


@session_bp.route("/sessions/<sid>/cards", methods=["GET"])
def list_cards(sid):
    cards = get_services().sessions.list_cards(sid)
    return jsonify({"session_id": sid, "items": cards, "total": len(cards)}), 200


@session_bp.route("/sessions/<sid>/cards", methods=["POST"])
def add_cards(sid):
    """Add one card (an object) or many (``{"cards": [...]}`` or a JSON list).

    Returns: created card(s) (201).
    """
    data = request.get_json(silent=True)
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")

    sessions = get_services().sessions
    if isinstance(data, list) or (isinstance(data, dict) and "cards" in data):
        items = data if isinstance(data, list) else data["cards"]
        if not isinstance(items, list) or not items:
            return api_error(E.VALIDATION_REQUIRED, "cards must be a non-empty list")
        cards = sessions.add_cards(sid, items)
        return jsonify({"session_id": sid, "items": cards, "total": len(cards)}), 201

    return jsonify(sessions.add_card(sid, data)), 201


@session_bp.route("/sessions/<sid>/cards/seed", methods=["POST"])
def seed_cards(sid):
    """Body: ``{"wa_titles": ["..."]}``. Blank titles are skipped."""
    data = request.get_json(silent=True) or {}
    titles = data.get("wa_titles", data.get("waTitles"))
    if not isinstance(titles, list):
        return api_error(E.VALIDATION_REQUIRED, "wa_titles must be a list")
    cards = get_services().sessions.seed_cards(sid, titles)
    return jsonify({"session_id": sid, "items": cards, "seeded": len(cards)}), 201


# ═════════════════════════════════════════════════════════════════════════
# Language
# ═════════════════════════════════════════════════════════════════════════


@session_bp.route("/sessions/<sid>/config", methods=["GET"])
def get_config(sid):
    return jsonify(get_services().sessions.get_config(sid)), 200


@session_bp.route("/sessions/<sid>/config", methods=["PUT"])
def put_config(sid):
    data = request.get_json(silent=True) or {}
    if "language" not in data:
        return api_error(E.VALIDATION_REQUIRED, "language is required")
    return jsonify(get_services().sessions.set_language(sid, data["language"])), 200


@session_bp.route("/sessions/<sid>/lock-language", methods=["POST"])
def lock_language(sid):
    return jsonify(get_services().sessions.lock_language(sid)), 200


# ═════════════════════════════════════════════════════════════════════════
# Summary & chart
# ═════════════════════════════════════════════════════════════════════════


@session_bp.route("/sessions/<sid>/summary", methods=["GET"])
def summary(sid):
    return jsonify(get_services().sessions.summary(sid)), 200


@session_bp.route("/sessions/<sid>/chart", methods=["GET"])
def chart(sid):
    return jsonify(get_services().sessions.get_chart(sid)), 200
