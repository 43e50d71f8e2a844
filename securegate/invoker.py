"""
Secure translation pipeline

Every request passes through, in order: request validation, size limits,
prompt-injection sanitization, secret scanning (critical secrets are fatal,
others are redacted), the generation provider behind a circuit breaker, and
output validation. Only drafts that pass all stages get an approval record.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .approval_workflow import ApprovalWorkflow
from .audit_logger import AuditLogger
from .circuit_breaker import CircuitBreakerRegistry
from .config import CircuitBreakerConfig
from .errors import CircuitBreakerOpenError, SecretRejection, SecurityException, ValidationError
from .input_validator import InputValidator
from .models import (
    CircuitPhase,
    Document,
    SecretSeverity,
    TranslationMetadata,
    TranslationRequest,
    TranslationResult,
)
from .review_queue import ReviewQueue
from .security.base import OutputContext
from .security.content_sanitizer import ContentSanitizer
from .security.output_policies import OutputValidator
from .security.secret_scanner import SecretScanner
from .size_guard import DocumentSizeGuard
from .utils import generate_secure_id

logger = logging.getLogger(__name__)

GENERATION_SERVICE = "generation"
AGGREGATE_LOCATION = "aggregate"


@dataclass
class GenerationContext:
    """What the generation provider receives: sanitized, redacted documents only"""
    documents: List[Document]
    format: str
    audience: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "audience": self.audience,
            "documents": [{"name": d.name, "content": d.content} for d in self.documents],
        }


class GenerationProvider(ABC):
    """External text generation service"""

    @abstractmethod
    async def generate(self, context: GenerationContext) -> str:
        pass


@dataclass
class Resolution:
    """Outcome of resolving a requested document path"""
    original_path: str
    exists: bool
    path: Optional[Path] = None
    error: Optional[str] = None
    last_modified: Optional[datetime] = None


class DocumentResolver(ABC):
    """Maps validated relative paths to readable documents"""

    @abstractmethod
    def resolve(self, path: str) -> Resolution:
        pass

    @abstractmethod
    def read(self, resolution: Resolution) -> str:
        """
        Read a resolved document.

        Raises:
            OSError: the document could not be read
        """
        pass


class DocumentLoader:
    """Validates, resolves and reads requested documents"""

    def __init__(self, validator: InputValidator, resolver: DocumentResolver, audit: AuditLogger):
        self.validator = validator
        self.resolver = resolver
        self.audit = audit

    def load(self, paths: Sequence[str], requested_by: str, username: Optional[str] = None) -> List[Document]:
        """
        Raises:
            ValidationError: a path is invalid, missing or unreadable
        """
        validation = self.validator.validate_paths(paths)
        if not validation.valid:
            self.audit.command_blocked(requested_by, username, "translate",
                                       f"Invalid document paths: {'; '.join(validation.errors)}")
            raise ValidationError("Invalid document paths",
                                  {"errors": validation.errors, "warnings": validation.warnings})
        for warning in validation.warnings:
            logger.info(f"Document path warning for {requested_by}: {warning}")

        resolutions = [self.resolver.resolve(p) for p in validation.resolved_paths]
        if missing := [r for r in resolutions if not r.exists]:
            errors = [f"{r.original_path}: {r.error or 'not found'}" for r in missing]
            self.audit.command_blocked(requested_by, username, "translate",
                                       f"Documents not found: {'; '.join(errors)}")
            raise ValidationError("Documents not found", {"errors": errors})

        documents = []
        for resolution in resolutions:
            try:
                content = self.resolver.read(resolution)
            except OSError as e:
                logger.error(f"Failed to read {resolution.original_path}: {e}")
                self.audit.command_failed(requested_by, username, "translate",
                                          f"Failed to read {resolution.original_path}")
                raise ValidationError(f"Failed to read {resolution.original_path}") from e

            self.audit.document_accessed(requested_by, username, resolution.original_path)
            documents.append(Document(
                name=resolution.original_path,
                content=content,
                size_bytes=len(content.encode("utf-8")),
                last_modified=resolution.last_modified,
            ))

        logger.info(f"Read {len(documents)} documents ({sum(len(d.content) for d in documents)} characters) "
                    f"for {requested_by}")
        return documents


class SecureTranslationInvoker:
    """Runs translation requests through every security control before and after generation"""

    def __init__(
        self,
        provider: GenerationProvider,
        audit: AuditLogger,
        validator: Optional[InputValidator] = None,
        size_guard: Optional[DocumentSizeGuard] = None,
        sanitizer: Optional[ContentSanitizer] = None,
        scanner: Optional[SecretScanner] = None,
        output_validator: Optional[OutputValidator] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        workflow: Optional[ApprovalWorkflow] = None,
        review_queue: Optional[ReviewQueue] = None,
        loader: Optional[DocumentLoader] = None,
    ):
        self.provider = provider
        self.audit = audit
        self.validator = validator or InputValidator()
        self.size_guard = size_guard or DocumentSizeGuard()
        self.sanitizer = sanitizer or ContentSanitizer()
        self.scanner = scanner or SecretScanner()
        self.output_validator = output_validator or OutputValidator(
            scanner=self.scanner, sanitizer=self.sanitizer
        )
        self.breakers = breakers or CircuitBreakerRegistry(on_state_change=self._on_breaker_change)
        self.breaker_config = breaker_config
        self.workflow = workflow or ApprovalWorkflow()
        self.review_queue = review_queue or ReviewQueue(scanner=self.scanner)
        self.loader = loader

    def _on_breaker_change(self, name: str, old: CircuitPhase, new: CircuitPhase) -> None:
        if new == CircuitPhase.OPEN:
            self.audit.service_degraded(name, f"circuit {old.value} -> {new.value}")
        elif new == CircuitPhase.CLOSED:
            self.audit.service_recovered(name)

    async def translate(self, paths: Sequence[str], format: str, audience: str, requested_by: str,
                        username: Optional[str] = None) -> TranslationResult:
        """Load documents by path and generate a draft from them"""
        if self.loader is None:
            raise RuntimeError("No document loader configured")
        documents = self.loader.load(paths, requested_by, username)
        return await self.generate(TranslationRequest(
            documents=documents,
            format=format,
            audience=audience,
            requested_by=requested_by,
            requested_by_username=username,
        ))

    async def generate(self, request: TranslationRequest) -> TranslationResult:
        """
        Generate a draft for the request.

        Raises:
            ValidationError: malformed request or size limits exceeded
            SecretRejection: a critical secret was found; nothing was sent to the provider
            CircuitBreakerOpenError: the provider is degraded
            SecurityException: the draft failed output validation and was quarantined
        """
        user_id = request.requested_by
        username = request.requested_by_username

        format_name, audience = self._validate_request(request)
        documents = self._enforce_size(request.documents, user_id, username)
        names = [d.name for d in documents]

        self.audit.translation_requested(user_id, username, names, format_name, audience)
        logger.info(f"Translation requested by {user_id}: {len(documents)} documents, format={format_name}")

        documents, removed_patterns = self._sanitize(documents)
        documents = self._scan_and_redact(documents, user_id)

        context = GenerationContext(documents=documents, format=format_name, audience=audience)
        breaker = self.breakers.get_or_create(GENERATION_SERVICE, self.breaker_config)
        try:
            content = await breaker.call(self.provider.generate, context)
        except CircuitBreakerOpenError as e:
            logger.warning(f"Generation refused, circuit breaker open: {e}")
            self.audit.service_degraded(GENERATION_SERVICE, e.last_error)
            raise
        except Exception as e:
            logger.error(f"Generation failed for {user_id}: {type(e).__name__}: {e}")
            self.audit.translation_failed(user_id, username, names, f"{type(e).__name__}: {e}")
            raise

        validation = self.output_validator.validate(
            OutputContext(content=content, requested_by=user_id, format=format_name, audience=audience)
        )
        if not validation.valid:
            self._quarantine(content, validation.issues or validation.warnings, user_id, format_name, audience, names)

        summary_id = generate_secure_id()
        self.workflow.create_record(summary_id, content, format_name, audience)
        self.audit.translation_generated(user_id, username, names, format_name, summary_id)

        content_sanitized = bool(removed_patterns)
        return TranslationResult(
            content=content,
            metadata=TranslationMetadata(
                content_sanitized=content_sanitized,
                removed_patterns=removed_patterns,
                validation_passed=True,
                validation_issues=[*validation.issues, *validation.warnings],
                requires_manual_review=content_sanitized or bool(validation.warnings),
                summary_id=summary_id,
                documents=names,
            )
        )

    def _validate_request(self, request: TranslationRequest) -> Tuple[str, str]:
        errors: List[str] = []

        if not isinstance(request.requested_by, str) or not request.requested_by.strip():
            errors.append("Requester is required")
        if not request.documents:
            errors.append("At least one document is required")

        format_result = self.validator.validate_format(request.format)
        audience_result = self.validator.validate_audience(request.audience)
        errors.extend(format_result.errors)
        errors.extend(audience_result.errors)

        if errors:
            self.audit.command_blocked(request.requested_by or "", request.requested_by_username,
                                       "translate", "; ".join(errors))
            raise ValidationError("Invalid translation request", {"errors": errors})

        return format_result.sanitized, audience_result.sanitized

    def _enforce_size(self, documents: Sequence[Document], user_id: str,
                      username: Optional[str]) -> List[Document]:
        try:
            return self.size_guard.enforce(documents)
        except ValidationError as e:
            self.audit.document_rejected_size(
                user_id, username,
                e.details.get("document", "batch"),
                e.details.get("current_value", 0),
                e.details.get("max_value", 0),
                e.details.get("metric"),
            )
            raise

    def _sanitize(self, documents: Sequence[Document]) -> Tuple[List[Document], List[str]]:
        sanitized: List[Document] = []
        removed: List[str] = []

        for document in documents:
            result = self.sanitizer.sanitize(document.content)
            if result.removed_patterns:
                removed.extend(f"{document.name}: {pattern}" for pattern in result.removed_patterns)
            if result.flagged:
                logger.warning(f"Document {document.name} sanitized: {result.reason}")
            sanitized.append(replace(document, content=result.sanitized, size_bytes=None))

        return sanitized, removed

    def _scan_and_redact(self, documents: Sequence[Document], user_id: str) -> List[Document]:
        """Reject on any critical secret; otherwise redact what was found"""
        scans = [(document, self.scanner.scan(document.content)) for document in documents]

        critical = [
            (document.name, finding)
            for document, scan in scans
            for finding in scan.findings
            if finding.severity == SecretSeverity.CRITICAL
        ]
        if not critical:
            aggregate = self.scanner.scan("\n\n".join(d.content for d in documents))
            critical = [(AGGREGATE_LOCATION, f) for f in aggregate.findings if f.severity == SecretSeverity.CRITICAL]

        if critical:
            reported = set()
            for location, finding in critical:
                if (location, finding.type) not in reported:
                    reported.add((location, finding.type))
                    self.audit.secret_detected(location, finding.type, finding.severity, user_id)

            secret_types = list(dict.fromkeys(finding.type for _, finding in critical))
            total = sum(scan.total_found for _, scan in scans)
            logger.error(f"Translation rejected for {user_id}: {len(critical)} critical secrets ({secret_types})")
            raise SecretRejection(
                f"Critical secrets detected ({', '.join(secret_types)}). "
                f"Remove them from the documents before requesting a translation.",
                secret_types=secret_types,
                total_found=max(total, len(critical)),
                critical_found=len(critical),
            )

        redacted = []
        for document, scan in scans:
            if scan.has_secrets:
                self.audit.secret_redacted(document.name, scan.secret_types, scan.total_found, user_id)
                document = replace(document, content=scan.redacted_content)
            redacted.append(document)
        return redacted

    def _quarantine(self, content: str, issues: List[str], user_id: str, format_name: str,
                    audience: str, names: List[str]) -> None:
        reason = "Generated output failed security validation"
        review_id = self.review_queue.flag(
            content, reason, user_id, issues,
            {"format": format_name, "audience": audience, "documents": names}
        )
        self.audit.review_queued(user_id, review_id, reason, issues)

        error = SecurityException(f"{reason}; queued for manual review as {review_id}", review_id, issues)
        self.audit.security_exception(user_id, "translate", error, {"review_id": review_id})
        raise error
