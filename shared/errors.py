"""
Shared error handling for the Task Manager API.

Every exception carries a machine-readable ``code``, a human ``message``,
optional ``details`` and the HTTP ``status_code`` it maps to. The handlers in
``shared.base_service`` render them into the response envelope.
"""

from typing import Dict, Any, Iterable, List, Optional


class TaskManagerException(Exception):
    """Base exception for Task Manager services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(TaskManagerException):
    """Malformed or missing input. ``details['errors']`` maps field -> messages."""

    status_code = 422

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[Dict[str, List[str]]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        payload = dict(details or {})
        payload["errors"] = errors or {}
        super().__init__("VALIDATION_ERROR", message, payload)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors={field: [message]})


class AuthenticationError(TaskManagerException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Unauthenticated", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class AuthorizationError(TaskManagerException):
    """Policy denial."""

    status_code = 403

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class NotFoundError(TaskManagerException):
    """Requested entity does not exist."""

    status_code = 404

    def __init__(self, entity: str = "Resource", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", f"{entity} not found.", details)


class DependenciesIncompleteError(TaskManagerException):
    """A task cannot be completed while any of its dependencies is not completed."""

    status_code = 400

    def __init__(self, incomplete_ids: Iterable[int] = (), details: Optional[Dict[str, Any]] = None):
        payload = dict(details or {})
        payload["incomplete_dependency_ids"] = sorted(incomplete_ids)
        super().__init__(
            "DEPENDENCIES_INCOMPLETE",
            "Cannot complete task until all dependencies are completed.",
            payload,
        )


class InvalidReferenceError(TaskManagerException):
    """A foreign identifier points at nothing."""

    status_code = 422

    def __init__(self, field: str, missing_ids: Iterable[int], details: Optional[Dict[str, Any]] = None):
        missing = sorted(set(missing_ids))
        message = f"The selected {field} is invalid."
        payload = dict(details or {})
        payload["errors"] = {field: [message]}
        payload["missing_ids"] = missing
        super().__init__("INVALID_REFERENCE", message, payload)


class ServiceError(TaskManagerException):
    """Unexpected service-side failure; the message is not shown to callers."""

    status_code = 500

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)
