"""
Phase Guard: confirms the caller may act on an application right now.

Placed before every mutating application endpoint:

    @application_bp.route("/applications/<int:application_id>/advance", methods=["POST"])
    @require_actor
    @authorize_phase()
    def advance_application(application_id):
        ...

The guard performs one read and no writes.  On success the loaded
application is exposed as a read-only snapshot in ``g.application``; the
advance service still re-reads the row inside its own transaction.

Failures are raised as ``ForbiddenError`` / ``NotFoundError`` and rendered by
the blueprint error handlers.
"""

import functools
import logging

from flask import g

from licensing.core.actor import Actor
from licensing.core.exceptions import ForbiddenError, NotFoundError
from licensing.core.phases import ROLE_TO_PHASE
from licensing.models import db
from licensing.models.application import Application

logger = logging.getLogger(__name__)


def check_phase_access(actor: Actor | None, application_id: int) -> dict:
    """
    Verify that ``actor``'s role owns ``application_id``'s current phase.

    Returns:
        Snapshot dict of the application.

    Raises:
        ForbiddenError: role missing, unknown, or not owning the current phase.
        NotFoundError: no such application.
    """
    if actor is None or not actor.role:
        raise ForbiddenError(ForbiddenError.ROLE_MISSING)

    allowed_phase = ROLE_TO_PHASE.get(actor.role)
    if not allowed_phase:
        raise ForbiddenError(ForbiddenError.UNKNOWN_ROLE, role=actor.role)

    row = db.session.get(Application, application_id)
    if not row:
        raise NotFoundError(resource="Application", resource_id=application_id)

    if row.status != allowed_phase:
        logger.info(
            "Role %s denied on application %s: status=%s required=%s",
            actor.role, application_id, row.status, allowed_phase,
            extra={"application_id": application_id, "role": actor.role},
        )
        raise ForbiddenError(
            ForbiddenError.WRONG_STAGE,
            role=actor.role,
            current_status=row.status,
            required_phase=allowed_phase,
        )

    return row.to_dict()


def authorize_phase(id_kwarg: str = "application_id"):
    """
    Decorator: run ``check_phase_access`` for the route's application id.

    Args:
        id_kwarg: Name of the URL variable holding the application id.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            g.application = check_phase_access(getattr(g, "actor", None), kwargs[id_kwarg])
            return f(*args, **kwargs)
        return decorated
    return decorator
