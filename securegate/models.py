"""
Data models for the translation pipeline
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SecretSeverity(str, Enum):
    """Severity of a detected secret"""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


class ApprovalState(str, Enum):
    """Lifecycle state of a generated summary"""
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"


class CircuitPhase(str, Enum):
    """Circuit breaker phase"""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class Document:
    """An internal document; copied, never mutated, through sanitize/redact stages"""
    name: str
    content: str
    size_bytes: Optional[int] = None
    page_count: Optional[int] = None
    last_modified: Optional[datetime] = None


@dataclass
class ScanFinding:
    """A single secret match; transient, never persisted with matched_value"""
    type: str
    severity: SecretSeverity
    location: int
    matched_value: str
    context: str

    @property
    def end(self) -> int:
        return self.location + len(self.matched_value)

    def to_safe_dict(self) -> Dict[str, Any]:
        """Finding without the raw value or its surrounding context"""
        return {
            "type": self.type,
            "severity": self.severity.value,
            "location": self.location,
            "length": len(self.matched_value)
        }

    def __repr__(self) -> str:
        return f"ScanFinding(type='{self.type}', severity={self.severity.value}, location={self.location})"


@dataclass
class ScanResult:
    """Result of a secret scan; redacted_content is the only exportable form of the text"""
    has_secrets: bool
    total_found: int
    critical_found: int
    findings: List[ScanFinding] = field(default_factory=list)
    redacted_content: str = ""

    @property
    def secret_types(self) -> List[str]:
        """Distinct finding types in detection order"""
        return list(dict.fromkeys(f.type for f in self.findings))


@dataclass
class Approval:
    """One append-only approval entry"""
    summary_id: str
    state: ApprovalState
    approved_by: str
    approved_by_username: Optional[str]
    approved_at: datetime
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class ApprovalRecord:
    """Approval lifecycle of a generated summary"""
    summary_id: str
    content: str
    format: str
    audience: str
    current_state: ApprovalState
    created_at: datetime
    updated_at: datetime
    approvals: List[Approval] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["current_state"] = self.current_state.value
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        data["approvals"] = [
            {
                **asdict(a),
                "state": a.state.value,
                "approved_at": a.approved_at.isoformat()
            }
            for a in self.approvals
        ]
        return data


@dataclass
class CircuitState:
    """Persisted state of one dependency's circuit breaker"""
    name: str
    phase: CircuitPhase = CircuitPhase.CLOSED
    consecutive_failures: int = 0
    opened_at: Optional[float] = None
    total_requests: int = 0
    last_error: Optional[str] = None


@dataclass
class WorkflowState:
    """Ordinal progress through a multi-step interaction"""
    step: int
    total_steps: int
    data: Dict[str, Any] = field(default_factory=dict)
    completed: bool = False


@dataclass
class Session:
    """Interactive user session"""
    session_id: str
    user_id: str
    created_at: float
    last_activity: float
    expires_at: float
    action_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    state: Dict[str, Any] = field(default_factory=dict)
    workflow: Optional[WorkflowState] = None


@dataclass
class ValidationResult:
    """Outcome of a pure input validation"""
    valid: bool
    sanitized: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class PathValidationResult(ValidationResult):
    """Outcome of validating a batch of document paths"""
    resolved_paths: List[str] = field(default_factory=list)


@dataclass
class TranslationRequest:
    """A request to summarise documents for an audience"""
    documents: List[Document]
    format: str
    audience: str
    requested_by: str
    requested_by_username: Optional[str] = None


@dataclass
class TranslationMetadata:
    """Security metadata attached to a delivered draft"""
    content_sanitized: bool
    removed_patterns: List[str]
    validation_passed: bool
    validation_issues: List[str]
    requires_manual_review: bool
    summary_id: Optional[str] = None
    documents: List[str] = field(default_factory=list)


@dataclass
class TranslationResult:
    """Draft content plus its security metadata"""
    content: str
    metadata: TranslationMetadata

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
