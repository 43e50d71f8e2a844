"""
Exception hierarchy for securegate

Every error carries only sanitized data: secret types and counts, never the
matched values themselves.
"""
from typing import Any, Dict, List, Optional


class SecureGateError(Exception):
    """Base exception for securegate errors"""
    pass


class ValidationError(SecureGateError):
    """Malformed or dangerous input, rejected before any external call"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class SecretRejection(ValidationError):
    """A critical secret was found before generation (fail-closed)"""

    def __init__(self, message: str, secret_types: List[str], total_found: int, critical_found: int):
        super().__init__(message, {
            "secret_types": secret_types,
            "total_found": total_found,
            "critical_found": critical_found
        })
        self.secret_types = secret_types
        self.total_found = total_found
        self.critical_found = critical_found


class SecurityException(SecureGateError):
    """Generated output failed validation and was quarantined for manual review"""

    def __init__(self, message: str, review_id: Optional[str] = None, issues: Optional[List[str]] = None):
        super().__init__(message)
        self.review_id = review_id
        self.issues = issues or []


class CircuitBreakerOpenError(SecureGateError):
    """Dependency is degraded; the call was refused without being attempted"""

    def __init__(self, service_name: str, last_error: Optional[str] = None):
        message = (
            f"Circuit breaker is OPEN for {service_name}. "
            f"Service is temporarily unavailable, retry later."
        )
        if last_error:
            message += f" Last error: {last_error}"
        super().__init__(message)
        self.service_name = service_name
        self.last_error = last_error


class AuthorizationDenied(SecureGateError):
    """An RBAC check failed"""

    def __init__(self, user_id: str, permission: str, resource: Optional[str] = None,
                 reason: Optional[str] = None):
        target = f" on {resource}" if resource else ""
        message = f"User {user_id or '<unknown>'} is not authorized to {permission}{target}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.user_id = user_id
        self.permission = permission
        self.resource = resource
        self.reason = reason


class RecordNotFoundError(SecureGateError, KeyError):
    """No approval record exists for the given summary id"""

    def __init__(self, summary_id: str):
        super().__init__(f"No approval record for summary {summary_id}")
        self.summary_id = summary_id

    def __str__(self) -> str:
        return self.args[0]


class IllegalTransitionError(SecureGateError):
    """Requested approval state change is not an edge of the approval graph"""

    def __init__(self, summary_id: str, current_state: str, requested_state: str):
        super().__init__(
            f"Summary {summary_id} cannot move from {current_state} to {requested_state}"
        )
        self.summary_id = summary_id
        self.current_state = current_state
        self.requested_state = requested_state
