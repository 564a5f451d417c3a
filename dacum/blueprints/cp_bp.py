"""Competency Profile document blueprint.

Endpoint groups:
  Drafting      POST /api/v1/cp/draft
                POST /api/v1/cp/validate
  Working copy  GET/PUT /api/v1/cp/<sid>/<cu>            (?version=N|latest)
  History       GET  /api/v1/cp/<sid>/<cu>/versions
  Lock cycle    POST /api/v1/cp/<sid>/<cu>/lock
                POST /api/v1/cp/<sid>/<cu>/unlock       (privileged only)
  Export        GET  /api/v1/cp/<sid>/<cu>/export

The unlock privilege is asserted by the caller (``privileged: true``); there is
no user model in this service, so the flag is the whole check.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from dacum.services import get_services
from dacum.services.cp_service import CPService
from dacum.utils.errors import E, api_error

logger = logging.getLogger(__name__)

cp_bp = Blueprint("cp", __name__, url_prefix="/api/v1")


def _actor(data: dict, default: str) -> str:
    return str(data.get("actor") or request.headers.get("X-Actor") or default)


# ═════════════════════════════════════════════════════════════════════════
# Drafting
# ═════════════════════════════════════════════════════════════════════════


@cp_bp.route("/cp/draft", methods=["POST"])
def generate_draft():
    """Body: ``{session_id, cu: {...} | "CU-01", language?, use_generation?, actor?}``.

    Returns: the stored draft (201).
    """
    data = request.get_json(silent=True) or {}
    session_id = str(data.get("session_id") or data.get("sessionId") or "").strip()
    if not session_id:
        return api_error(E.VALIDATION_REQUIRED, "session_id is required")
    cu = data.get("cu", data.get("cu_code"))
    if not cu or not isinstance(cu, (dict, str)):
        return api_error(E.VALIDATION_REQUIRED, "cu is required (object or CU code)")

    doc = get_services().cp.generate_draft(
        session_id,
        cu,
        language=data.get("language"),
        use_generation=bool(data.get("use_generation", False)),
        actor=_actor(data, "SYSTEM"),
    )
    return jsonify(doc.to_dict()), 201


@cp_bp.route("/cp/validate", methods=["POST"])
def validate_document():
    """Validate a document without storing it. Body: the document, or ``{"document": {...}}``."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON object body is required")
    doc = data.get("document") if isinstance(data.get("document"), dict) else data
    return jsonify(CPService.validate_document(doc).to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Working copy & history
# ═════════════════════════════════════════════════════════════════════════


@cp_bp.route("/cp/<sid>/<cu>", methods=["GET"])
def get_document(sid, cu):
    version = request.args.get("version", "latest")
    return jsonify(get_services().cp.get_version(sid, cu, version).to_dict()), 200


@cp_bp.route("/cp/<sid>/<cu>", methods=["PUT"])
def save_working(sid, cu):
    """Body: the edited document, or ``{"document": {...}, "actor"?}``. Never blocked by issues."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON object body is required")
    doc = data.get("document") if isinstance(data.get("document"), dict) else data
    stored = get_services().cp.save_working(sid, cu, doc, actor=_actor(data, "FACILITATOR"))
    return jsonify(stored.to_dict()), 200


@cp_bp.route("/cp/<sid>/<cu>/versions", methods=["GET"])
def list_versions(sid, cu):
    versions = get_services().cp.list_versions(sid, cu)
    return jsonify({"session_id": sid, "cu_code": cu, "items": versions, "total": len(versions)}), 200


# ═════════════════════════════════════════════════════════════════════════
# Lock cycle
# ═════════════════════════════════════════════════════════════════════════


@cp_bp.route("/cp/<sid>/<cu>/lock", methods=["POST"])
def lock(sid, cu):
    data = request.get_json(silent=True) or {}
    stored = get_services().cp.lock(sid, cu, actor=_actor(data, "PANEL"))
    return jsonify(stored.to_dict()), 200


@cp_bp.route("/cp/<sid>/<cu>/unlock", methods=["POST"])
def unlock(sid, cu):
    data = request.get_json(silent=True) or {}
    stored = get_services().cp.unlock(
        sid, cu,
        actor=_actor(data, "ADMIN"),
        privileged=data.get("privileged") is True,
    )
    return jsonify(stored.to_dict()), 200


@cp_bp.route("/cp/<sid>/<cu>/export", methods=["GET"])
def export(sid, cu):
    version = request.args.get("version", "latest")
    return jsonify(get_services().cp.export_document(sid, cu, version)), 200
