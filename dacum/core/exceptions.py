"""
Platform-wide exception hierarchy.

Services raise these types; the app factory registers one handler per type
so every blueprint gets the same HTTP status and body shape.

Every exception carries ``component`` (which part of the engine raised it),
``code`` (machine-readable) and a human-readable message, so a blocking
error can be rendered in a UI without further translation.

Usage:
    from dacum.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="CPDocument", resource_id="s1/cu-01")
    raise ValidationError("cu_code is required", details={"cu_code": "missing"})
"""


class DacumError(Exception):
    """Base class. Subclasses set ``default_code`` and ``default_component``."""

    default_code = "ERR_INTERNAL"
    default_component = "core"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        component: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.component = component or self.default_component
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        body = {
            "component": self.component,
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(DacumError):
    """Raised when a session, card, CU or document version does not exist.

    Args:
        resource: Human-readable entity name (e.g. "CPDocument", "Session").
        resource_id: The key that was looked up.
    """

    default_code = "ERR_NOT_FOUND"

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        *,
        component: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg, component=component)


class ValidationError(DacumError):
    """Well-formed input that violates a business rule. Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
    """

    default_code = "ERR_VALIDATION_INVALID"

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        *,
        code: str | None = None,
        component: str | None = None,
    ) -> None:
        super().__init__(message, code=code, component=component, details=details)


class ConflictError(DacumError):
    """Operation conflicts with current state (duplicate key, already locked). HTTP 409."""

    default_code = "ERR_CONFLICT_STATE"

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        *,
        message: str | None = None,
        component: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} conflicts with current state"
        super().__init__(msg, component=component)


class ForbiddenError(DacumError):
    """Caller lacks the privilege required for the operation. HTTP 403."""

    default_code = "ERR_FORBIDDEN"


class ValidationBlocked(DacumError):
    """A state change was attempted while ERROR-level issues are outstanding.

    ``issues`` holds the validator's typed issue list so callers can render it.
    """

    default_code = "VALIDATION_BLOCKED"
    default_component = "validator"

    def __init__(self, message: str, issues: list | None = None, *, component: str | None = None) -> None:
        self.issues = list(issues or [])
        super().__init__(
            message,
            component=component,
            details={"issues": [_issue_dict(i) for i in self.issues]},
        )


class LockRejected(ValidationBlocked):
    """Lock refused because the latest version does not validate."""

    default_code = "LOCK_REJECTED"
    default_component = "cp_document"


class EmbeddingUnavailable(DacumError):
    """The embedding collaborator failed. Matching cannot proceed. HTTP 503."""

    default_code = "EMBEDDING_UNAVAILABLE"
    default_component = "embedding"


class GenerationUnavailable(DacumError):
    """The text generation collaborator failed. Callers fall back to heuristics."""

    default_code = "GENERATION_UNAVAILABLE"
    default_component = "generation"


class MalformedExternalOutput(DacumError):
    """Generation returned something that could not be parsed. Always recovered."""

    default_code = "MALFORMED_EXTERNAL_OUTPUT"
    default_component = "generation"


def _issue_dict(issue) -> dict:
    return issue.to_dict() if hasattr(issue, "to_dict") else dict(issue)
