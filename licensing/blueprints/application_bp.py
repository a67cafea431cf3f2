"""
Application workflow blueprint.

Routes:
  GET    /api/v1/phases                              – phase table
  GET    /api/v1/applications                        – queue for the caller's role
  POST   /api/v1/applications                        – intake (entry-phase role only)
  GET    /api/v1/applications/<id>                   – one application + next-phase preview
  GET    /api/v1/applications/<id>/history           – transition history
  POST   /api/v1/applications/<id>/advance           – move to the next phase

Every route except /phases needs an authenticated actor.  /advance is
additionally gated by ``authorize_phase``; the service layer owns all
business rules and commits.
"""

import logging

from flask import Blueprint, g, jsonify, request

from licensing.core.exceptions import BadStateError, NotFoundError, ValidationError
from licensing.core.phases import phase_table
from licensing.middleware.jwt_auth import current_actor, require_actor
from licensing.middleware.phase_guard import authorize_phase
from licensing.services import application_service
from licensing.services.phase_transition import compute_next_status
from licensing.utils.errors import register_workflow_error_handlers

logger = logging.getLogger(__name__)

application_bp = Blueprint("applications", __name__, url_prefix="/api/v1")

register_workflow_error_handlers(application_bp)


# ── helpers ──────────────────────────────────────────────────────────────

def _json_object() -> dict:
    """Request body as a dict; an absent body is ``{}``, any other JSON type is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", details={"body": "must be an object"})
    return data


def _advance_payload(data: dict) -> dict:
    """Validate and normalise the /advance body."""
    comment = data.get("comment")
    additions = data.get("additions")
    documents = data.get("documents")

    errors = {}
    if comment is not None and not isinstance(comment, str):
        errors["comment"] = "must be a string"
    if additions is not None and not isinstance(additions, dict):
        errors["additions"] = "must be an object"
    if documents is not None:
        if not isinstance(documents, list):
            errors["documents"] = "must be an array"
        elif not all(isinstance(doc, dict) for doc in documents):
            errors["documents"] = "every document must be an object"
    if errors:
        raise ValidationError("Invalid advance payload", details=errors)

    return {
        "comment": comment or "",
        "additions": additions or {},
        "documents": documents or [],
    }


# ═════════════════════════════════════════════════════════════════════════════
# READ
# ═════════════════════════════════════════════════════════════════════════════

@application_bp.route("/phases", methods=["GET"])
def list_phases():
    """Ordered phase table with the owning role of each phase."""
    return jsonify({"phases": phase_table()})


@application_bp.route("/applications", methods=["GET"])
@require_actor
def list_applications():
    """Applications currently waiting on the caller's role, newest-updated first."""
    items = application_service.list_for_role(current_actor().role)
    return jsonify({"items": items, "total": len(items)})


@application_bp.route("/applications/<int:application_id>", methods=["GET"])
@require_actor
def get_application(application_id):
    app_dict = application_service.get_by_id(application_id)
    if app_dict is None:
        raise NotFoundError(resource="Application", resource_id=application_id)
    try:
        app_dict["next_phase"] = compute_next_status(app_dict["status"], current_actor().role)
    except BadStateError:
        app_dict["next_phase"] = None
    return jsonify(app_dict)


@application_bp.route("/applications/<int:application_id>/history", methods=["GET"])
@require_actor
def get_application_history(application_id):
    history = application_service.get_history(application_id)
    return jsonify({"application_id": application_id, "history": history})


# ═════════════════════════════════════════════════════════════════════════════
# WRITE
# ═════════════════════════════════════════════════════════════════════════════

@application_bp.route("/applications", methods=["POST"])
@require_actor
def create_application():
    """Register a new application at the entry phase.

    Body: { title, data? }
    """
    data = _json_object()
    created = application_service.create_application(
        title=data.get("title"),
        actor=current_actor(),
        data=data.get("data"),
    )
    return jsonify(created), 201


@application_bp.route("/applications/<int:application_id>/advance", methods=["POST"])
@require_actor
@authorize_phase()
def advance_application(application_id):
    """Advance the application to the next phase.

    Body: { comment?, additions?, documents? }
    """
    payload = _advance_payload(_json_object())
    logger.debug("Advancing application %s from %s", application_id, g.application["status"])
    result = application_service.advance(application_id, current_actor(), payload)
    return jsonify(result)
