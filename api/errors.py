"""
Domain errors for the fleet core.

Every error is recoverable by the caller. Routers never catch these; the
handler registered in main.py renders them as JSON with the mapped status.
"""


class FleetError(Exception):
    status_code = 400
    code = "FLEET_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(FleetError):
    """Malformed or missing required input."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(FleetError):
    """Referenced entity does not exist."""
    status_code = 404
    code = "NOT_FOUND"


class InvalidStateError(FleetError):
    """Operation not permitted in the entity's current state, or a lost race."""
    status_code = 409
    code = "INVALID_STATE"


class InvalidTransitionError(FleetError):
    """Payment-status or damage-status transition not allowed."""
    status_code = 409
    code = "INVALID_TRANSITION"


class NotEligibleError(FleetError):
    """Business-rule gate, e.g. inactive rider."""
    status_code = 422
    code = "NOT_ELIGIBLE"


class ConflictError(FleetError):
    """Unique business key already taken."""
    status_code = 409
    code = "CONFLICT"
