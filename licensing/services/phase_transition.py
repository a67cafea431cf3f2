"""
Next-phase computation.

Pure function, no I/O: the same (status, role) pair always yields the same
answer.  The advance service re-derives the successor itself inside its
transaction; this helper answers "what would this role move the application
to?" for intake bootstrapping and read-only previews.
"""

from licensing.core.exceptions import BadStateError
from licensing.core.phases import PHASES, ROLE_TO_PHASE


def compute_next_status(current_status: str | None, actor_role: str | None) -> str | None:
    """
    Return the phase ``actor_role`` may move an application into, or None.

    - No current status (brand-new application) -> PHASES[0].
    - Final phase -> None.
    - Otherwise the successor phase, but only when ``actor_role`` owns it.

    Raises:
        BadStateError: ``current_status`` is set but is not a known phase.
    """
    if not current_status:
        return PHASES[0]
    if current_status not in PHASES:
        raise BadStateError(BadStateError.UNKNOWN_STATUS, current_status=current_status)

    idx = PHASES.index(current_status)
    if idx == len(PHASES) - 1:
        return None
    nxt = PHASES[idx + 1]
    if ROLE_TO_PHASE.get(actor_role) == nxt:
        return nxt
    return None
