"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from pmtracker.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Change", resource_id=42)
    raise ValidationError("title is required", details={"title": "required"})
    raise InvalidStateError("Change", 42, current_status="Requested",
                            transition="approve", required_status="Under Review")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Change", "Person").
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
    """Raised when input is missing or malformed.

    Maps to HTTP 400 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names;
                 values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidStateError(Exception):
    """Raised when a workflow transition is not legal from the current state.

    Carries the current state so the caller can explain the blocked action.
    Maps to HTTP 409.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None,
        *,
        current_status: str | None,
        transition: str,
        required_status: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.current_status = current_status
        self.transition = transition
        self.required_status = required_status
        msg = f"Cannot '{transition}' {resource} id={resource_id} (status={current_status})"
        if reason:
            msg += f": {reason}"
        elif required_status:
            msg += f": status must be '{required_status}'"
        super().__init__(msg)

    @property
    def details(self) -> dict:
        details = {
            "current_status": self.current_status,
            "transition": self.transition,
        }
        if self.required_status:
            details["required_status"] = self.required_status
        return details


class DirectMutationNotAllowed(Exception):
    """Raised when a generic edit tries to bypass the approval workflow.

    A policy violation, not a data error. Maps to HTTP 403.

    Args:
        resource: Entity name.
        target_status: The status the caller tried to set.
        use: Name of the workflow operation that must be used instead.
    """

    def __init__(self, resource: str, target_status: str, use: str | None = None) -> None:
        self.resource = resource
        self.target_status = target_status
        self.use = use
        msg = f"Cannot set {resource} status to '{target_status}' directly"
        if use:
            msg += f". Use the '{use}' workflow operation"
        super().__init__(msg)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)
