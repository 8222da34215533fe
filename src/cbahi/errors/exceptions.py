"""Custom exception classes for the CBAHI workflow service."""


class CbahiError(Exception):
    """Base exception for the workflow service."""

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class ValidationError(CbahiError):
    """Request payload or business-rule validation failure."""

    def __init__(self, message: str, details=None):
        super().__init__("VALIDATION_ERROR", message, details, status_code=400)


class CommentsRequiredError(CbahiError):
    """Reject and request-modifications actions need a reason."""

    def __init__(self, message: str = "Comments are required for this action"):
        super().__init__("COMMENTS_REQUIRED", message, status_code=400)


class NotFoundError(CbahiError):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource} '{resource_id}' not found",
            status_code=404,
        )


class AuthenticationError(CbahiError):
    """Authentication required or token invalid."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__("AUTHENTICATION_ERROR", message, status_code=401)


class AuthorizationError(CbahiError):
    """Actor is not allowed to perform the operation."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__("FORBIDDEN", message, status_code=403)


class ConflictError(CbahiError):
    """Resource state conflict."""

    def __init__(self, message: str, details=None):
        super().__init__("CONFLICT", message, details, status_code=409)


class AlreadyProcessedError(CbahiError):
    """The approval step has already been decided."""

    def __init__(self, step_id: str, status: str):
        super().__init__(
            "ALREADY_PROCESSED",
            f"This approval has already been {status}",
            {"step_id": step_id, "status": status},
            status_code=409,
        )


class ActiveRequestExistsError(CbahiError):
    """The applicant already has a draft, pending or in-review request."""

    def __init__(self, existing_request_id: str):
        super().__init__(
            "ACTIVE_REQUEST_EXISTS",
            "You already have an active privilege request. Please complete or cancel it first.",
            {"existing_request_id": existing_request_id},
            status_code=409,
        )


class NoApproversError(CbahiError):
    """No approver could be found for any level of the chain."""

    def __init__(self, request_id: str):
        super().__init__(
            "NO_APPROVERS",
            "No approvers found for your request. Please contact the administrator.",
            {"request_id": request_id},
            status_code=422,
        )


class SweepInProgressError(CbahiError):
    """Another escalation sweep holds the lock."""

    def __init__(self):
        super().__init__("SWEEP_IN_PROGRESS", "An escalation sweep is already running", status_code=409)
