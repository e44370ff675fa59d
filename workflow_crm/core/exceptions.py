"""
Application-wide exception hierarchy.

Services raise these types and nothing else for business failures.
Blueprints register handlers against them once
(``workflow_crm.blueprints.register_error_handlers``) and every response
carries the same ``{success, message, code}`` triad.

Usage:
    from workflow_crm.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Enquiry", resource_id=42)
    raise ValidationError("enquiry_amount must be a non-negative number",
                          details={"enquiry_amount": "-5"})
"""


class NotFoundError(Exception):
    """Raised when a referenced record does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Enquiry", "DesignWork").
        resource_id: The key that was looked up. Included in logs and message.
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
    """Raised when input is missing, malformed or breaks a business rule.

    Raised before any mutation, so the caller never sees partial state.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthorizationError(Exception):
    """Raised when the actor lacks the role or ownership an operation needs.

    Maps to HTTP 403.

    Args:
        message: What the actor attempted.
        actor_id: The acting user, for logs.
    """

    def __init__(self, message: str = "Access denied", actor_id: int | None = None) -> None:
        self.actor_id = actor_id
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class DependencyDegraded(Exception):
    """A best-effort side effect failed.

    Never propagated to callers: the workflow engine catches it, logs a
    structured warning and carries on with the primary mutation.

    Args:
        step: Name of the side effect (e.g. "design_work_upsert").
        enquiry_id: Enquiry the side effect belonged to.
    """

    def __init__(self, step: str, enquiry_id: int | None = None, cause: Exception | None = None) -> None:
        self.step = step
        self.enquiry_id = enquiry_id
        self.cause = cause
        msg = f"{step} degraded"
        if enquiry_id is not None:
            msg += f" for enquiry id={enquiry_id}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)
