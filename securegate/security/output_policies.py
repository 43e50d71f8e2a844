"""
Post-generation output validation
Runs every enabled content policy over a generated draft before delivery
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .base import ContentPolicy, OutputContext, PolicyResult
from .content_sanitizer import ContentSanitizer
from .secret_scanner import SecretScanner

logger = logging.getLogger(__name__)


class SecretLeakPolicy(ContentPolicy):
    """Blocks drafts in which the secret scanner finds anything"""

    def __init__(self, config: Dict[str, Any], scanner: Optional[SecretScanner] = None):
        super().__init__(config)
        self.scanner = scanner or SecretScanner()

    def _is_enabled(self) -> bool:
        return self.config.get("secret_leak_check", True)

    def validate(self, context: OutputContext) -> PolicyResult:
        result = self.scanner.scan(context.content)
        if not result.has_secrets:
            return PolicyResult(allowed=True)

        issues = [f"Leaked secret in output: {secret_type}" for secret_type in result.secret_types]
        logger.error(f"Generated output contains {result.total_found} secrets "
                     f"({result.critical_found} critical): {result.secret_types}")
        return PolicyResult(allowed=False, issues=issues)

    @property
    def name(self) -> str:
        return "SecretLeakPolicy"


class SensitiveKeywordPolicy(ContentPolicy):
    """Blocks credential-shaped keywords and warns on distribution markers"""

    BLOCK_PATTERNS: List[Tuple[str, re.Pattern]] = [
        ('password', re.compile(r'password\s*[:=]', re.IGNORECASE)),
        ('private key', re.compile(r'private\s+key', re.IGNORECASE)),
        ('secret', re.compile(r'secret\s*[:=]', re.IGNORECASE)),
        ('api_key', re.compile(r'api[_-]?key\s*[:=]', re.IGNORECASE)),
        ('token', re.compile(r'token\s*[:=]', re.IGNORECASE)),
        ('credential', re.compile(r'credential', re.IGNORECASE)),
    ]

    WARN_PATTERNS: List[Tuple[str, re.Pattern]] = [
        ('confidential', re.compile(r'confidential', re.IGNORECASE)),
        ('internal only', re.compile(r'internal\s+only', re.IGNORECASE)),
        ('do not share', re.compile(r'do\s+not\s+share', re.IGNORECASE)),
        ('proprietary', re.compile(r'proprietary', re.IGNORECASE)),
    ]

    def _is_enabled(self) -> bool:
        return self.config.get("keyword_check", True)

    def validate(self, context: OutputContext) -> PolicyResult:
        issues = [
            f'Sensitive keyword detected: "{keyword}"'
            for keyword, pattern in self.BLOCK_PATTERNS if pattern.search(context.content)
        ]
        warnings = [
            f'Distribution marker detected: "{keyword}"'
            for keyword, pattern in self.WARN_PATTERNS if pattern.search(context.content)
        ]
        return PolicyResult(allowed=not issues, issues=issues, warnings=warnings)

    @property
    def name(self) -> str:
        return "SensitiveKeywordPolicy"


class InjectionEchoPolicy(ContentPolicy):
    """Blocks drafts that carry prompt-injection payloads onward"""

    def __init__(self, config: Dict[str, Any], sanitizer: Optional[ContentSanitizer] = None):
        super().__init__(config)
        self.sanitizer = sanitizer or ContentSanitizer()

    def _is_enabled(self) -> bool:
        return self.config.get("injection_echo_check", True)

    def validate(self, context: OutputContext) -> PolicyResult:
        if found := self.sanitizer.contains_injection(context.content):
            return PolicyResult(
                allowed=False,
                issues=[f"Prompt injection payload in output: {name}" for name in found]
            )
        return PolicyResult(allowed=True)

    @property
    def name(self) -> str:
        return "InjectionEchoPolicy"


@dataclass
class OutputValidationResult:
    """Aggregate result of all output policies"""
    valid: bool
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    requires_manual_review: bool = False


class OutputValidator:
    """Orchestrates output policy validation"""

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 scanner: Optional[SecretScanner] = None,
                 sanitizer: Optional[ContentSanitizer] = None):
        """
        Initialize with output policy configuration.

        Recognized keys: secret_leak_check, keyword_check, injection_echo_check
        (all default True) and strict_mode (default False). In strict mode any
        warning fails validation.
        """
        self.config = {"strict_mode": False, **(config or {})}
        self.strict_mode = bool(self.config["strict_mode"])

        self.policies: List[ContentPolicy] = [
            SecretLeakPolicy(self.config, scanner),
            SensitiveKeywordPolicy(self.config),
            InjectionEchoPolicy(self.config, sanitizer),
        ]

        logger.info(f"Initialized output validator with policies: "
                    f"{[p.name for p in self.policies if p.enabled]}")

    def validate(self, context: OutputContext) -> OutputValidationResult:
        issues: List[str] = []
        warnings: List[str] = []

        for policy in self.policies:
            if not policy.enabled:
                continue
            result = policy.validate(context)
            issues.extend(result.issues)
            warnings.extend(result.warnings)
            if not result.allowed:
                logger.warning(f"{policy.name} rejected generated output: {result.issues}")

        valid = not issues and not (self.strict_mode and warnings)
        return OutputValidationResult(
            valid=valid,
            issues=issues,
            warnings=warnings,
            requires_manual_review=not valid or bool(warnings)
        )
