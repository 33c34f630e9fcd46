"""Error taxonomy shared by the workflow engine, services and API."""


class EcoWheelsError(Exception):
    """Base class for errors surfaced to the driver."""

    code = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


class InvalidInputError(EcoWheelsError):
    """Missing or malformed input; nothing was written."""

    code = "validation_error"
    status_code = 422


class AuthenticationError(EcoWheelsError):
    """No valid session for the caller."""

    code = "authentication_required"
    status_code = 401


class AuthorizationError(EcoWheelsError):
    """Caller is authenticated but does not own the resource."""

    code = "not_authorized"
    status_code = 403


class InvalidTransitionError(EcoWheelsError):
    """The order's current status does not allow the requested action."""

    code = "invalid_transition"
    status_code = 409


class ConflictError(EcoWheelsError):
    """The request conflicts with existing state."""

    code = "conflict"
    status_code = 409


class AssignmentConflictError(ConflictError):
    """The order is already assigned to a driver."""

    code = "already_assigned"


class NotFoundError(EcoWheelsError):
    code = "not_found"
    status_code = 404


class StoreError(EcoWheelsError):
    """The document store or file storage could not complete the request."""

    code = "store_unavailable"
    status_code = 503
