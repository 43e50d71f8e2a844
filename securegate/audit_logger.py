"""
Security audit trail

Events are sanitized, stamped and appended to one or more sinks. Sinks only
support appending; there is no way to rewrite or remove an event once it has
been logged.
"""
import json
import logging
import os
import platform
import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .models import SecretSeverity
from .security.log_sanitizer import sanitize_for_logging
from .utils import generate_secure_id, utc_now_iso

logger = logging.getLogger(__name__)
critical_logger = logging.getLogger("securegate.audit.critical")


class SecurityEventType(str, Enum):
    """Audit event taxonomy"""
    # Authentication and authorization
    AUTH_SUCCESS = "AUTH_SUCCESS"
    AUTH_FAILURE = "AUTH_FAILURE"
    AUTH_UNAUTHORIZED = "AUTH_UNAUTHORIZED"
    PERMISSION_GRANTED = "PERMISSION_GRANTED"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    # Commands
    COMMAND_INVOKED = "COMMAND_INVOKED"
    COMMAND_BLOCKED = "COMMAND_BLOCKED"
    COMMAND_FAILED = "COMMAND_FAILED"

    # Translation lifecycle and document access
    TRANSLATION_REQUESTED = "TRANSLATION_REQUESTED"
    TRANSLATION_GENERATED = "TRANSLATION_GENERATED"
    TRANSLATION_FAILED = "TRANSLATION_FAILED"
    TRANSLATION_APPROVED = "TRANSLATION_APPROVED"
    TRANSLATION_REJECTED = "TRANSLATION_REJECTED"
    TRANSLATION_PUBLISHED = "TRANSLATION_PUBLISHED"
    DOCUMENT_ACCESSED = "DOCUMENT_ACCESSED"
    DOCUMENT_REJECTED_SIZE = "DOCUMENT_REJECTED_SIZE"
    REVIEW_QUEUED = "REVIEW_QUEUED"

    # Secrets
    SECRET_DETECTED = "SECRET_DETECTED"
    SECRET_REDACTED = "SECRET_REDACTED"
    SECRETS_LEAK_DETECTED = "SECRETS_LEAK_DETECTED"
    SERVICE_PAUSED_LEAK = "SERVICE_PAUSED_LEAK"

    # Configuration
    CONFIG_READ = "CONFIG_READ"
    CONFIG_MODIFIED = "CONFIG_MODIFIED"

    # Abuse
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"

    # System
    SYSTEM_STARTUP = "SYSTEM_STARTUP"
    SYSTEM_SHUTDOWN = "SYSTEM_SHUTDOWN"
    SECURITY_EXCEPTION = "SECURITY_EXCEPTION"
    SERVICE_DEGRADED = "SERVICE_DEGRADED"
    SERVICE_RECOVERED = "SERVICE_RECOVERED"


class EventSeverity(str, Enum):
    INFO = "INFO"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Outcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    BLOCKED = "BLOCKED"
    PENDING = "PENDING"


@dataclass(frozen=True)
class SecurityEvent:
    """One audit record; details must already be sanitized when appended to a sink"""
    event_type: SecurityEventType
    severity: EventSeverity
    action: str
    outcome: Outcome
    details: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    username: Optional[str] = None
    resource: Optional[str] = None
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "timestamp": self.timestamp,
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "action": self.action,
            "outcome": self.outcome.value,
            "details": self.details,
        }
        for key in ("user_id", "username", "resource", "session_id", "request_id"):
            if (value := getattr(self, key)) is not None:
                data[key] = value
        return data


class AuditSink(ABC):
    """Append-only destination for security events"""

    @abstractmethod
    def append(self, event: SecurityEvent) -> None:
        pass


class JsonLinesAuditSink(AuditSink):
    """Writes one JSON object per line to a file opened in append mode"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        try:
            os.chmod(self.path.parent, 0o700)
        except OSError as e:
            logger.warning(f"Could not restrict permissions on {self.path.parent}: {e}")

    def append(self, event: SecurityEvent) -> None:
        line = json.dumps(event.to_dict(), default=str, ensure_ascii=False)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")

    def __repr__(self) -> str:
        return f"JsonLinesAuditSink(path='{self.path}')"


class MemoryAuditSink(AuditSink):
    """In-process sink; events are exposed read-only"""

    def __init__(self):
        self._events: List[SecurityEvent] = []
        self._lock = threading.Lock()

    def append(self, event: SecurityEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> Tuple[SecurityEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def of_type(self, event_type: SecurityEventType) -> List[SecurityEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def __len__(self) -> int:
        return len(self.events)


class AuditLogger:
    """Builds, sanitizes and records security events"""

    def __init__(self, sinks: Optional[Iterable[AuditSink]] = None):
        self.sinks: List[AuditSink] = list(sinks) if sinks is not None else [MemoryAuditSink()]

    def log_event(self, event: SecurityEvent) -> SecurityEvent:
        """
        Sanitize and append an event to every sink.

        Returns:
            The event as recorded
        """
        recorded = SecurityEvent(
            event_type=event.event_type,
            severity=event.severity,
            action=event.action,
            outcome=event.outcome,
            details=sanitize_for_logging(event.details),
            user_id=event.user_id,
            username=event.username,
            resource=sanitize_for_logging(event.resource) if event.resource else event.resource,
            session_id=event.session_id,
            request_id=event.request_id or f"req_{generate_secure_id(12)}",
            timestamp=event.timestamp,
        )

        for sink in self.sinks:
            try:
                sink.append(recorded)
            except OSError as e:
                logger.error(f"Failed to write audit event {recorded.event_type.value} to {sink!r}: {e}")
                raise

        if recorded.severity == EventSeverity.CRITICAL:
            critical_logger.error(
                f"{recorded.severity.value} - {recorded.event_type.value}: {recorded.action} "
                f"{json.dumps(recorded.details, default=str)}"
            )

        return recorded

    def _log(self, event_type: SecurityEventType, severity: EventSeverity, action: str,
             outcome: Outcome, details: Optional[Dict[str, Any]] = None, **fields: Any) -> SecurityEvent:
        return self.log_event(SecurityEvent(
            event_type=event_type,
            severity=severity,
            action=action,
            outcome=outcome,
            details=details or {},
            **fields
        ))

    # Authentication

    def auth_success(self, user_id: str, username: str, details: Optional[Dict[str, Any]] = None):
        return self._log(SecurityEventType.AUTH_SUCCESS, EventSeverity.INFO,
                         "User authenticated successfully", Outcome.SUCCESS, details,
                         user_id=user_id, username=username)

    def auth_failure(self, user_id: str, reason: str, details: Optional[Dict[str, Any]] = None):
        return self._log(SecurityEventType.AUTH_FAILURE, EventSeverity.MEDIUM,
                         "Authentication failed", Outcome.FAILURE, {"reason": reason, **(details or {})},
                         user_id=user_id)

    def auth_unauthorized(self, user_id: str, resource: str, details: Optional[Dict[str, Any]] = None):
        return self._log(SecurityEventType.AUTH_UNAUTHORIZED, EventSeverity.MEDIUM,
                         "Unauthorized access attempt", Outcome.BLOCKED, details,
                         user_id=user_id, resource=resource)

    # Permissions

    def permission_granted(self, user_id: str, username: Optional[str], permission: str,
                           resource: Optional[str] = None):
        return self._log(SecurityEventType.PERMISSION_GRANTED, EventSeverity.INFO,
                         "Permission granted", Outcome.SUCCESS, {"permission": permission},
                         user_id=user_id, username=username, resource=resource)

    def permission_denied(self, user_id: str, username: Optional[str], permission: str,
                          resource: Optional[str] = None, reason: Optional[str] = None):
        details = {"permission": permission}
        if reason:
            details["reason"] = reason
        return self._log(SecurityEventType.PERMISSION_DENIED, EventSeverity.MEDIUM,
                         "Permission denied", Outcome.BLOCKED, details,
                         user_id=user_id, username=username, resource=resource)

    # Commands

    def command_invoked(self, user_id: str, username: Optional[str], command: str,
                        args: Optional[List[str]] = None):
        # Only the first five arguments are kept
        return self._log(SecurityEventType.COMMAND_INVOKED, EventSeverity.INFO,
                         "Command executed", Outcome.SUCCESS,
                         {"command": command, "args": list(args or [])[:5]},
                         user_id=user_id, username=username)

    def command_blocked(self, user_id: str, username: Optional[str], command: str, reason: str):
        return self._log(SecurityEventType.COMMAND_BLOCKED, EventSeverity.MEDIUM,
                         "Command blocked", Outcome.BLOCKED, {"command": command, "reason": reason},
                         user_id=user_id, username=username)

    def command_failed(self, user_id: str, username: Optional[str], command: str, error: str):
        return self._log(SecurityEventType.COMMAND_FAILED, EventSeverity.LOW,
                         "Command failed", Outcome.FAILURE, {"command": command, "error": error},
                         user_id=user_id, username=username)

    # Translation lifecycle

    def translation_requested(self, user_id: str, username: Optional[str], documents: List[str],
                              format: str, audience: str):
        return self._log(SecurityEventType.TRANSLATION_REQUESTED, EventSeverity.INFO,
                         "Translation requested", Outcome.PENDING,
                         {"documents": documents, "format": format, "audience": audience},
                         user_id=user_id, username=username)

    def translation_generated(self, user_id: str, username: Optional[str], documents: List[str],
                              format: str, summary_id: Optional[str] = None):
        return self._log(SecurityEventType.TRANSLATION_GENERATED, EventSeverity.INFO,
                         "Translation generated successfully", Outcome.SUCCESS,
                         {"documents": documents, "format": format, "summary_id": summary_id},
                         user_id=user_id, username=username, resource=summary_id)

    def translation_failed(self, user_id: str, username: Optional[str], documents: List[str], error: str):
        return self._log(SecurityEventType.TRANSLATION_FAILED, EventSeverity.MEDIUM,
                         "Translation generation failed", Outcome.FAILURE,
                         {"documents": documents, "error": error},
                         user_id=user_id, username=username)

    def translation_approved(self, user_id: str, username: Optional[str], summary_id: str,
                             approval_count: Optional[int] = None):
        return self._log(SecurityEventType.TRANSLATION_APPROVED, EventSeverity.INFO,
                         "Translation approved for distribution", Outcome.SUCCESS,
                         {"summary_id": summary_id, "distinct_approvals": approval_count},
                         user_id=user_id, username=username, resource=summary_id)

    def translation_rejected(self, user_id: str, username: Optional[str], summary_id: str,
                             notes: Optional[str] = None):
        return self._log(SecurityEventType.TRANSLATION_REJECTED, EventSeverity.INFO,
                         "Translation rejected", Outcome.SUCCESS,
                         {"summary_id": summary_id, "notes": notes},
                         user_id=user_id, username=username, resource=summary_id)

    def translation_published(self, user_id: str, username: Optional[str], summary_id: str,
                              approval_count: int):
        return self._log(SecurityEventType.TRANSLATION_PUBLISHED, EventSeverity.HIGH,
                         "Translation published", Outcome.SUCCESS,
                         {"summary_id": summary_id, "distinct_approvals": approval_count},
                         user_id=user_id, username=username, resource=summary_id)

    def review_queued(self, user_id: Optional[str], review_id: str, reason: str, issues: List[str]):
        return self._log(SecurityEventType.REVIEW_QUEUED, EventSeverity.HIGH,
                         "Draft quarantined for manual review", Outcome.PENDING,
                         {"review_id": review_id, "reason": reason, "issues": issues},
                         user_id=user_id, resource=review_id)

    # Documents

    def document_accessed(self, user_id: str, username: Optional[str], document_path: str):
        return self._log(SecurityEventType.DOCUMENT_ACCESSED, EventSeverity.INFO,
                         "Document accessed", Outcome.SUCCESS, {"document_path": document_path},
                         user_id=user_id, username=username, resource=document_path)

    def document_rejected_size(self, user_id: str, username: Optional[str], document_path: str,
                               size: int, max_size: int, metric: Optional[str] = None):
        return self._log(SecurityEventType.DOCUMENT_REJECTED_SIZE, EventSeverity.MEDIUM,
                         "Document rejected due to size limits", Outcome.BLOCKED,
                         {"document_path": document_path, "size": size, "max_size": max_size, "metric": metric},
                         user_id=user_id, username=username, resource=document_path)

    # Secrets

    def secret_detected(self, location: str, secret_type: str, severity: Union[SecretSeverity, EventSeverity],
                        user_id: Optional[str] = None):
        event_severity = EventSeverity.CRITICAL if severity.value == "CRITICAL" else EventSeverity.HIGH
        return self._log(SecurityEventType.SECRET_DETECTED, event_severity,
                         "Secret detected in document", Outcome.BLOCKED,
                         {"location": location, "secret_type": secret_type},
                         user_id=user_id, resource=location)

    def secret_redacted(self, location: str, secret_types: List[str], count: int,
                        user_id: Optional[str] = None):
        return self._log(SecurityEventType.SECRET_REDACTED, EventSeverity.MEDIUM,
                         "Secrets redacted before generation", Outcome.SUCCESS,
                         {"location": location, "secret_types": secret_types, "count": count},
                         user_id=user_id, resource=location)

    def secrets_leak_detected(self, location: str, secret_count: int, critical_count: int):
        return self._log(SecurityEventType.SECRETS_LEAK_DETECTED, EventSeverity.CRITICAL,
                         "Secrets leak detected", Outcome.BLOCKED,
                         {"location": location, "secret_count": secret_count, "critical_count": critical_count},
                         resource=location)

    def service_paused_leak(self, reason: str):
        return self._log(SecurityEventType.SERVICE_PAUSED_LEAK, EventSeverity.CRITICAL,
                         "Service paused due to secrets leak", Outcome.BLOCKED, {"reason": reason})

    # Configuration

    def config_read(self, user_id: str, username: Optional[str], config_key: str):
        return self._log(SecurityEventType.CONFIG_READ, EventSeverity.INFO,
                         "Configuration read", Outcome.SUCCESS, {"config_key": config_key},
                         user_id=user_id, username=username)

    def config_modified(self, user_id: str, username: Optional[str], config_key: str,
                        old_value: Any = None, new_value: Any = None):
        # Always HIGH regardless of what changed
        return self._log(SecurityEventType.CONFIG_MODIFIED, EventSeverity.HIGH,
                         "Configuration modified", Outcome.SUCCESS,
                         {"config_key": config_key, "old_value": old_value, "new_value": new_value},
                         user_id=user_id, username=username)

    # Abuse

    def rate_limit_exceeded(self, user_id: str, username: Optional[str], limit_type: str,
                            session_id: Optional[str] = None):
        return self._log(SecurityEventType.RATE_LIMIT_EXCEEDED, EventSeverity.MEDIUM,
                         "Rate limit exceeded", Outcome.BLOCKED, {"limit_type": limit_type},
                         user_id=user_id, username=username, session_id=session_id)

    def suspicious_activity(self, user_id: Optional[str], description: str,
                            details: Optional[Dict[str, Any]] = None):
        return self._log(SecurityEventType.SUSPICIOUS_ACTIVITY, EventSeverity.HIGH,
                         "Suspicious activity detected", Outcome.BLOCKED,
                         {"description": description, **(details or {})}, user_id=user_id)

    # System

    def system_startup(self, details: Optional[Dict[str, Any]] = None):
        return self._log(SecurityEventType.SYSTEM_STARTUP, EventSeverity.INFO,
                         "System started", Outcome.SUCCESS,
                         {"python_version": sys.version.split()[0], "platform": platform.system(),
                          **(details or {})})

    def system_shutdown(self):
        return self._log(SecurityEventType.SYSTEM_SHUTDOWN, EventSeverity.INFO,
                         "System shutdown", Outcome.SUCCESS)

    def security_exception(self, user_id: Optional[str], action: str, error: BaseException,
                           details: Optional[Dict[str, Any]] = None):
        return self._log(SecurityEventType.SECURITY_EXCEPTION, EventSeverity.HIGH,
                         "Security exception occurred", Outcome.FAILURE,
                         {"action": action, "error": str(error), "error_type": type(error).__name__,
                          **(details or {})},
                         user_id=user_id)

    def service_degraded(self, service: str, error: Optional[str] = None):
        return self._log(SecurityEventType.SERVICE_DEGRADED, EventSeverity.HIGH,
                         "Service degraded", Outcome.FAILURE, {"service": service, "error": error},
                         resource=service)

    def service_recovered(self, service: str):
        return self._log(SecurityEventType.SERVICE_RECOVERED, EventSeverity.INFO,
                         "Service recovered", Outcome.SUCCESS, {"service": service}, resource=service)
