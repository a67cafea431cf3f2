"""
Workflow exception hierarchy.

Services raise these; blueprints register handlers against them once and
render a consistent JSON body through ``licensing.utils.errors.api_error``.

Every rejection carries enough context (reason, current status, required
phase) for a client to explain to the user why they cannot act yet.

Usage:
    from licensing.core.exceptions import ForbiddenError, NotFoundError

    raise NotFoundError(resource="Application", resource_id=42)
    raise ForbiddenError(ForbiddenError.WRONG_STAGE,
                         current_status="phase2_club", required_phase="phase3_police")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Application").
        resource_id: The primary key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ForbiddenError(Exception):
    """Raised when the actor may not act on an application right now.

    Three causes share this category; ``reason`` tells them apart:
      - role_missing: the actor carries no role
      - unknown_role: the role is not in the phase table
      - wrong_stage:  the role does not own the application's current phase

    Maps to HTTP 403.
    """

    ROLE_MISSING = "role_missing"
    UNKNOWN_ROLE = "unknown_role"
    WRONG_STAGE = "wrong_stage"

    _MESSAGES = {
        ROLE_MISSING: "User role missing",
        UNKNOWN_ROLE: "Unknown role or not allowed to advance",
        WRONG_STAGE: "Your role cannot advance this application at its current stage",
    }

    def __init__(
        self,
        reason: str,
        *,
        role: str | None = None,
        current_status: str | None = None,
        required_phase: str | None = None,
    ) -> None:
        self.reason = reason
        self.role = role
        self.current_status = current_status
        self.required_phase = required_phase
        super().__init__(self._MESSAGES.get(reason, "Forbidden"))

    def to_details(self) -> dict:
        details = {"reason": self.reason}
        if self.role is not None:
            details["role"] = self.role
        if self.current_status is not None:
            details["current_status"] = self.current_status
        if self.required_phase is not None:
            details["required_phase"] = self.required_phase
        return details


class BadStateError(Exception):
    """Raised when the stored application state does not allow an advance.

    Reasons:
      - unknown_status: stored status is not a recognised phase
      - already_final:  application is at the terminal phase

    Maps to HTTP 409.
    """

    UNKNOWN_STATUS = "unknown_status"
    ALREADY_FINAL = "already_final"

    _MESSAGES = {
        UNKNOWN_STATUS: "Application has unknown status",
        ALREADY_FINAL: "Application already at final phase",
    }

    def __init__(self, reason: str, *, current_status: str | None = None) -> None:
        self.reason = reason
        self.current_status = current_status
        super().__init__(self._MESSAGES.get(reason, "Invalid application state"))

    def to_details(self) -> dict:
        return {"reason": self.reason, "current_status": self.current_status}


class ValidationError(Exception):
    """Raised when a request body is well-formed JSON but has the wrong shape.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
        code: Error code override (e.g. ``ERR_VALIDATION_REQUIRED`` for a
              missing field); defaults to ``ERR_VALIDATION_INVALID``.
    """

    def __init__(self, message: str, details: dict | None = None, code: str | None = None) -> None:
        self.details = details or {}
        self.code = code
        super().__init__(message)
