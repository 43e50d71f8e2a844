"""
Secret detection and redaction

Content is scanned before it is allowed past any trust boundary. The only
form of scanned text that may be handed on is ScanResult.redacted_content.
"""
import logging
import math
import re
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import ScanFinding, ScanResult, SecretSeverity
from .secret_patterns import GENERIC_MARKER, LONG_ALPHANUMERIC, SECRET_PATTERNS, SecretPattern

logger = logging.getLogger(__name__)

PLACEHOLDER_WORDS = ("example", "placeholder", "test", "dummy", "fake")
HEX_ONLY = re.compile(r"^[a-f0-9]+$", re.IGNORECASE)
MIN_ENTROPY_BITS = 3.0

# Redaction is repeated on its own output until nothing matches
MAX_REDACTION_PASSES = 5

_SEVERITY_RANK = {
    SecretSeverity.CRITICAL: 0,
    SecretSeverity.HIGH: 1,
    SecretSeverity.MEDIUM: 2,
}


def shannon_entropy(value: str) -> float:
    """Shannon entropy in bits per character"""
    if not value:
        return 0.0
    length = len(value)
    return -sum((count / length) * math.log2(count / length) for count in Counter(value).values())


def extract_context(content: str, location: int, length: int, context_length: int) -> str:
    """Text surrounding a match, with ellipses where it was cut"""
    start = max(0, location - context_length)
    end = min(len(content), location + length + context_length)
    context = content[start:end]
    if start > 0:
        context = "..." + context
    if end < len(content):
        context = context + "..."
    return context


class SecretScanner:
    """Pattern-driven secret scanner"""

    def __init__(self, patterns: Optional[Iterable[SecretPattern]] = None):
        self.patterns: List[SecretPattern] = list(patterns if patterns is not None else SECRET_PATTERNS)

    def add_pattern(self, pattern: SecretPattern) -> None:
        """Register an additional detector"""
        self.patterns.append(pattern)
        logger.info(f"Registered secret pattern {pattern.name} ({pattern.severity.value})")

    def scan(self, content: str, skip_false_positives: bool = True, context_length: int = 50) -> ScanResult:
        """
        Scan content for secrets and build its redacted form.

        Args:
            content: Text to scan
            skip_false_positives: Apply the placeholder / hash / URL / entropy filter
            context_length: Characters of context captured on each side of a match

        Returns:
            ScanResult with findings sorted by location
        """
        findings = self._find(content, skip_false_positives, context_length)
        critical_found = sum(1 for f in findings if f.severity == SecretSeverity.CRITICAL)

        for finding in findings:
            logger.warning(
                f"Secret detected: {finding.type} ({finding.severity.value}) at offset {finding.location}"
            )
        if findings:
            logger.info(f"Scan complete: {len(findings)} secrets found ({critical_found} critical)")

        return ScanResult(
            has_secrets=bool(findings),
            total_found=len(findings),
            critical_found=critical_found,
            findings=findings,
            redacted_content=self._redact_until_clean(content, findings, skip_false_positives)
        )

    def redact(self, content: str, skip_false_positives: bool = True) -> str:
        """Redacted form of content"""
        return self.scan(content, skip_false_positives=skip_false_positives).redacted_content

    def contains_secrets(self, content: str) -> bool:
        return bool(self._find(content, True, 0))

    def get_statistics(self) -> Dict[str, int]:
        """Pattern counts by severity"""
        counts = Counter(p.severity for p in self.patterns)
        return {
            "total_patterns": len(self.patterns),
            "critical_patterns": counts[SecretSeverity.CRITICAL],
            "high_patterns": counts[SecretSeverity.HIGH],
            "medium_patterns": counts[SecretSeverity.MEDIUM],
        }

    def _find(self, content: str, skip_false_positives: bool, context_length: int) -> List[ScanFinding]:
        findings = []
        for pattern in self.patterns:
            for match in pattern.regex.finditer(content):
                value = match.group(0)
                if not value:
                    continue
                location = match.start()
                if skip_false_positives and self._is_false_positive(pattern.name, value, content, location):
                    logger.debug(f"Skipping false positive: {pattern.name} at {location}")
                    continue
                findings.append(ScanFinding(
                    type=pattern.name,
                    severity=pattern.severity,
                    location=location,
                    matched_value=value,
                    context=extract_context(content, location, len(value), context_length)
                ))
        # Stable sort keeps table order for findings at the same offset
        findings.sort(key=lambda f: f.location)
        return findings

    def _is_false_positive(self, secret_type: str, value: str, content: str, location: int) -> bool:
        if secret_type == LONG_ALPHANUMERIC:
            if HEX_ONLY.match(value):
                return True  # commit hashes, digests
            before = content[max(0, location - 100):location]
            if "http://" in before or "https://" in before:
                return True
            if shannon_entropy(value) < MIN_ENTROPY_BITS:
                return True

        if GENERIC_MARKER in secret_type:
            around = extract_context(content, location, len(value), 100).lower()
            if any(word in around for word in PLACEHOLDER_WORDS):
                return True

        return False

    def _redact_until_clean(self, content: str, findings: List[ScanFinding], skip_false_positives: bool) -> str:
        redacted = self._redact_once(content, findings)
        for _ in range(MAX_REDACTION_PASSES):
            if not (remaining := self._find(redacted, skip_false_positives, 0)):
                return redacted
            redacted = self._redact_once(redacted, remaining)

        if self._find(redacted, skip_false_positives, 0):
            logger.error("Redaction did not converge; secret patterns still match redacted content")
        return redacted

    @staticmethod
    def _merge_spans(findings: Sequence[ScanFinding]) -> List[Tuple[int, int, ScanFinding]]:
        """Collapse overlapping matches; each span is labelled by its most severe finding"""
        spans: List[Tuple[int, int, ScanFinding]] = []
        for finding in sorted(findings, key=lambda f: (f.location, -len(f.matched_value))):
            if spans and finding.location < spans[-1][1]:
                start, end, label = spans[-1]
                if _SEVERITY_RANK[finding.severity] < _SEVERITY_RANK[label.severity]:
                    label = finding
                spans[-1] = (start, max(end, finding.end), label)
            else:
                spans.append((finding.location, finding.end, finding))
        return spans

    def _redact_once(self, content: str, findings: Sequence[ScanFinding]) -> str:
        if not findings:
            return content
        parts = []
        cursor = 0
        for start, end, label in self._merge_spans(findings):
            parts.append(content[cursor:start])
            parts.append(f"[REDACTED: {label.type}]")
            cursor = end
        parts.append(content[cursor:])
        return "".join(parts)


# Shared default instance
secret_scanner = SecretScanner()
