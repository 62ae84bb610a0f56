"""
Platform-wide exception hierarchy.

Every service raises these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Usage:
    from approvals.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Request", resource_id=42)
    raise ValidationError("title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a referenced request or user does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Request", "User").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or misses a required field.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
                 Keys are field names; values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when the caller is authenticated but may not perform the action.

    The existence of the request is not hidden: a 403 is returned rather
    than a 404.

    Maps to HTTP 403.
    """

    def __init__(self, user_id: int | None, action: str, request_id: int | None = None) -> None:
        self.user_id = user_id
        self.action = action
        self.request_id = request_id
        msg = f"User {user_id} may not '{action}'"
        if request_id is not None:
            msg += f" request {request_id}"
        super().__init__(msg)


class ConflictError(Exception):
    """Raised when a request is no longer in a state that allows the action.

    Covers both already-finalized requests and a concurrent actor that
    committed first. Callers re-fetch and re-render; nothing is retried.

    Maps to HTTP 409.
    """

    def __init__(self, request_id: int, action: str, current_status: str | None = None) -> None:
        self.request_id = request_id
        self.action = action
        self.current_status = current_status
        msg = f"Cannot '{action}' request {request_id}"
        if current_status:
            msg += f" (status={current_status})"
        super().__init__(msg)


class DependencyError(Exception):
    """Raised when the persistence layer is unavailable.

    The current operation is rolled back before this is raised. Maps to
    HTTP 500; the underlying message is logged, never returned.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Persistence failure during {operation}")
