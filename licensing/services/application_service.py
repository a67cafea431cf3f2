"""
Application Service: the transactional core of the licensing workflow.

Every status change goes through ``advance``:
  - re-reads the application inside its own transaction with a row lock
  - writes with an optimistic version check, so of two racing advances only
    one commits; the other is rejected against the state the winner left
  - validates state, then role against the current phase
  - merges role-scoped additions, appends documents and one history entry
  - bumps status and version, commits, then emits ``application.advanced``

Any failure before the commit rolls the whole transaction back, so no
partial section merge or history append is ever visible.  The event is
emitted only after a successful commit and is not part of the atomicity
guarantee.

Usage:
    from licensing.services.application_service import advance

    result = advance(
        application_id=7,
        actor=Actor(id="u-12", role="police"),
        payload={"comment": "Record clean", "additions": {"case_no": "P-88"}},
    )
"""

from __future__ import annotations

import logging
from typing import NoReturn

from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from licensing.core.actor import Actor
from licensing.core.exceptions import BadStateError, ForbiddenError, NotFoundError, ValidationError
from licensing.core.phases import INITIAL_PHASE, PHASES, ROLE_TO_PHASE, phase_for_role, phase_index
from licensing.models import db
from licensing.models.application import Application, ApplicationHistory
from licensing.services.events import APPLICATION_ADVANCED, emit
from licensing.services.phase_transition import compute_next_status
from licensing.utils.errors import E

logger = logging.getLogger(__name__)


# ── Reads ────────────────────────────────────────────────────────────────────


def list_for_role(role: str | None) -> list[dict]:
    """Applications waiting in ``role``'s queue, most recently updated first."""
    phase = phase_for_role(role)
    if not phase:
        return []
    rows = (
        Application.query
        .filter_by(status=phase)
        .order_by(Application.updated_at.desc(), Application.id.desc())
        .all()
    )
    return [row.to_dict() for row in rows]


def get_by_id(application_id: int) -> dict | None:
    row = db.session.get(Application, application_id)
    return row.to_dict() if row else None


def get_history(application_id: int) -> list[dict]:
    """Ordered transition history of one application.

    Raises:
        NotFoundError: unknown application id.
    """
    row = db.session.get(Application, application_id)
    if not row:
        raise NotFoundError(resource="Application", resource_id=application_id)
    return [h.to_dict() for h in row.history]


# ── Intake ───────────────────────────────────────────────────────────────────


def create_application(title: str, actor: Actor, data: dict | None = None) -> dict:
    """
    Register a new application at the entry phase.

    Only the role owning PHASES[0] performs intake.

    Raises:
        ValidationError: missing or non-string title, non-object ``data``.
        ForbiddenError: actor cannot perform intake.
    """
    if title is not None and not isinstance(title, str):
        raise ValidationError("title must be a string", details={"title": "must be a string"})
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"},
                              code=E.VALIDATION_REQUIRED)
    if data is not None and not isinstance(data, dict):
        raise ValidationError("data must be an object", details={"data": "must be an object"})

    _ensure_known_role(actor)
    if phase_for_role(actor.role) != INITIAL_PHASE:
        raise ForbiddenError(
            ForbiddenError.WRONG_STAGE,
            role=actor.role,
            required_phase=phase_for_role(actor.role),
        )

    row = Application(
        title=title,
        data=dict(data or {}),
        status=compute_next_status(None, actor.role),
        sections={},
        documents=[],
        version=0,
        created_by=actor.identity,
    )
    db.session.add(row)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Application %s created at %s by %s",
        row.id, row.status, actor.identity,
        extra={"application_id": row.id, "role": actor.role},
    )
    return row.to_dict()


# ── Advance ──────────────────────────────────────────────────────────────────


def advance(application_id: int, actor: Actor, payload: dict | None = None) -> dict:
    """
    Move an application one phase forward.

    Args:
        application_id: Primary key of the application.
        actor: Authenticated actor; its role must own the current phase.
        payload: Optional ``{"comment": str, "additions": dict, "documents": list}``.

    Returns:
        The updated application as a plain dict.

    Raises:
        NotFoundError, ForbiddenError, BadStateError
    """
    payload = payload or {}

    try:
        row = _load_for_update(application_id)
        if row is None:
            raise NotFoundError(resource="Application", resource_id=application_id)

        current_index = _check_can_advance(row, actor)

        previous_status = row.status
        next_phase = PHASES[current_index + 1]

        additions = payload.get("additions")
        if isinstance(additions, dict) and additions:
            sections = dict(row.sections or {})
            sections[actor.role] = {**(sections.get(actor.role) or {}), **additions}
            row.sections = sections

        documents = payload.get("documents")
        if isinstance(documents, list) and documents:
            row.documents = list(row.documents or []) + list(documents)

        row.history.append(ApplicationHistory(
            by=actor.identity,
            role=actor.role,
            from_phase=previous_status,
            to_phase=next_phase,
            comment=payload.get("comment") or "",
        ))

        row.status = next_phase
        row.version = (row.version or 0) + 1

        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        _raise_lost_race(application_id, actor)
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Application %s advanced to %s by %s/%s",
        application_id, next_phase, actor.role, actor.identity,
        extra={"application_id": application_id, "role": actor.role, "event_type": APPLICATION_ADVANCED},
    )

    result = row.to_dict()
    emit(APPLICATION_ADVANCED, {
        "applicationId": application_id,
        "by": actor.to_dict(),
        "to": next_phase,
    })
    return result


# ── Helpers ──────────────────────────────────────────────────────────────────


def _load_for_update(application_id: int) -> Application | None:
    """Fresh, row-locked read inside the current transaction."""
    stmt = (
        select(Application)
        .where(Application.id == application_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.session.execute(stmt).scalar_one_or_none()


def _check_can_advance(row: Application, actor: Actor) -> int:
    """Return the index of ``row.status`` if ``actor`` may advance it now.

    State guards come first: a terminal application is locked for every actor.
    """
    current_index = _require_advanceable(row.status)
    _ensure_known_role(actor)
    required_phase = ROLE_TO_PHASE[actor.role]
    if row.status != required_phase:
        raise ForbiddenError(
            ForbiddenError.WRONG_STAGE,
            role=actor.role,
            current_status=row.status,
            required_phase=required_phase,
        )
    return current_index


def _raise_lost_race(application_id: int, actor: Actor) -> NoReturn:
    """Another writer committed first: re-read and reject against the new state."""
    row = _load_for_update(application_id)
    try:
        if row is None:
            raise NotFoundError(resource="Application", resource_id=application_id)
        logger.info(
            "Application %s: concurrent advance by %s lost the race (status=%s v%s)",
            application_id, actor.role, row.status, row.version,
            extra={"application_id": application_id, "role": actor.role},
        )
        _check_can_advance(row, actor)
        # Same phase, newer version: the caller acted on a stale view.
        raise ForbiddenError(
            ForbiddenError.WRONG_STAGE,
            role=actor.role,
            current_status=row.status,
            required_phase=ROLE_TO_PHASE[actor.role],
        )
    finally:
        db.session.rollback()


def _require_advanceable(status: str | None) -> int:
    """Return the index of ``status``; reject unknown and final phases."""
    idx = phase_index(status)
    if idx < 0:
        raise BadStateError(BadStateError.UNKNOWN_STATUS, current_status=status)
    if idx == len(PHASES) - 1:
        raise BadStateError(BadStateError.ALREADY_FINAL, current_status=status)
    return idx


def _ensure_known_role(actor: Actor | None) -> None:
    if actor is None or not actor.role:
        raise ForbiddenError(ForbiddenError.ROLE_MISSING)
    if actor.role not in ROLE_TO_PHASE:
        raise ForbiddenError(ForbiddenError.UNKNOWN_ROLE, role=actor.role)
