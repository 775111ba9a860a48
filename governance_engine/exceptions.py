"""
Error Taxonomy Module

Typed exceptions raised by the workflow engine and audit chain. Every
exception carries a machine-readable ``code`` and structured ``details``
so the API layer can render actionable responses without parsing messages.
"""

from typing import Any, Dict, List, Optional


class GovernanceError(Exception):
    """Base exception for all governance engine errors"""

    code: str = "GOVERNANCE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(GovernanceError, ValueError):
    """Malformed definition or input. Carries every violation found."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.errors = list(errors or [message])
        merged = dict(details or {})
        merged.setdefault("errors", self.errors)
        super().__init__(message, merged)


class FieldNotEditableInState(ValidationError):
    """A field update targeted a field that is locked in the current state"""

    code: str = "FIELD_NOT_EDITABLE_IN_STATE"

    def __init__(self, field_name: str, state_id: str):
        self.field_name = field_name
        self.state_id = state_id
        message = f"Field '{field_name}' is not editable in state '{state_id}'"
        super().__init__(
            message,
            errors=[message],
            details={"field": field_name, "state": state_id},
        )


class NotFound(GovernanceError):
    """Unknown definition, instance or transition"""

    code: str = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str, message: Optional[str] = None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            message or f"{resource} not found: {resource_id}",
            {"resource": resource, "id": resource_id},
        )


class Forbidden(GovernanceError):
    """Role or committee guard failed"""

    code: str = "FORBIDDEN"

    def __init__(self, message: str, guard: str = "role",
                 details: Optional[Dict[str, Any]] = None):
        self.guard = guard
        merged = dict(details or {})
        merged["guard"] = guard
        super().__init__(message, merged)


class GuardFailed(GovernanceError):
    """A non-authorization guard (conditions, comment, attachments, vote) is unmet"""

    code: str = "GUARD_FAILED"

    def __init__(self, guard: str, message: str,
                 details: Optional[Dict[str, Any]] = None):
        self.guard = guard
        merged = dict(details or {})
        merged["guard"] = guard
        super().__init__(message, merged)


class Conflict(GovernanceError):
    """Lost a compare-and-set race after exhausting retries"""

    code: str = "CONFLICT"


class IntegrityViolation(GovernanceError):
    """Audit chain verification found a hash mismatch"""

    code: str = "INTEGRITY_VIOLATION"

    def __init__(self, partition: str, event_id: Optional[str], reason: str):
        self.partition = partition
        self.event_id = event_id
        self.reason = reason
        super().__init__(
            f"Audit chain broken in partition '{partition}' at event {event_id}: {reason}",
            {"partition": partition, "event_id": event_id, "reason": reason},
        )
