"""
Prompt-injection sanitizer
Strips hidden characters and instruction-impersonation payloads from document
text before it is scanned for secrets and sent to a generation provider.
"""
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

REDACTION = "[REDACTED]"


@dataclass
class SanitizationResult:
    """Result of sanitizing one piece of content"""
    sanitized: str
    flagged: bool = False
    removed_patterns: List[str] = field(default_factory=list)
    reason: Optional[str] = None


class ContentSanitizer:
    """Removes prompt-injection payloads from untrusted text"""

    ZERO_WIDTH_CHARS: Dict[str, str] = {
        '\u200b': 'U+200B zero-width space',
        '\u200c': 'U+200C zero-width non-joiner',
        '\u200d': 'U+200D zero-width joiner',
        '\u2060': 'U+2060 word joiner',
        '\ufeff': 'U+FEFF zero-width no-break space',
        '\u00ad': 'U+00AD soft hyphen',
    }

    UNICODE_SPACES = re.compile('[\u00a0\u1680\u2000-\u200a\u202f\u205f\u3000]')

    HIDING_PATTERNS: Dict[str, re.Pattern] = {
        'white text': re.compile(r'color\s*:\s*(?:white|#fff(?:fff)?\b|rgb\(\s*255\s*,\s*255\s*,\s*255\s*\))', re.IGNORECASE),
        'transparent text': re.compile(r'color\s*:\s*transparent', re.IGNORECASE),
        'zero opacity': re.compile(r'opacity\s*:\s*0(?:\.0+)?(?![.\d])', re.IGNORECASE),
        'display none': re.compile(r'display\s*:\s*none', re.IGNORECASE),
        'visibility hidden': re.compile(r'visibility\s*:\s*hidden', re.IGNORECASE),
        'zero font size': re.compile(r'font-size\s*:\s*0(?:px|pt|em)?(?![.\d])', re.IGNORECASE),
    }

    INJECTION_PATTERNS: Dict[str, re.Pattern] = {
        'system prefix': re.compile(r'\bsystem\s*:', re.IGNORECASE),
        'ignore instructions': re.compile(
            r'\bignore\s+(?:all\s+)?(?:(?:previous|prior|above|earlier)\s+)?instructions\b', re.IGNORECASE),
        'disregard previous': re.compile(
            r'\bdisregard\s+(?:all\s+)?(?:previous|prior|above|earlier)\b(?:\s+instructions)?', re.IGNORECASE),
        'forget previous': re.compile(
            r'\bforget\s+(?:all\s+)?(?:previous|prior|above|earlier)\b(?:\s+(?:instructions|context))?',
            re.IGNORECASE),
        'role reassignment': re.compile(r'\byou\s+are\s+now\b', re.IGNORECASE),
        'new instructions': re.compile(r'\bnew\s+instructions\s*:', re.IGNORECASE),
        'override instructions': re.compile(
            r'\boverride\s+(?:all\s+)?(?:previous\s+)?(?:instructions|rules|security)\b', re.IGNORECASE),
        'execute command': re.compile(r'\bexecute\s+commands?\b', re.IGNORECASE),
        'run script': re.compile(r'\brun\s+script\b', re.IGNORECASE),
        'eval call': re.compile(r'\beval\s*\(', re.IGNORECASE),
        'exec call': re.compile(r'\bexec\s*\(', re.IGNORECASE),
        'system code block': re.compile(r'```\s*system\b', re.IGNORECASE),
        'system tag': re.compile(r'\[\s*system\s*\]', re.IGNORECASE),
        'system xml tag': re.compile(r'</?\s*system\s*>', re.IGNORECASE),
        'you must': re.compile(r'\byou\s+must\b', re.IGNORECASE),
        'new role': re.compile(r'\byour\s+new\s+role\b', re.IGNORECASE),
        'developer mode': re.compile(r'\bdeveloper\s+mode\b', re.IGNORECASE),
    }

    INSTRUCTIONAL_WORDS = frozenset({
        'must', 'always', 'never', 'should', 'required', 'mandatory',
        'instruction', 'instructions', 'command', 'commands',
        'directive', 'directives', 'rule', 'rules', 'policy', 'obey',
    })

    WORD = re.compile(r"[a-z]+")

    def __init__(self, instructional_ratio: float = 0.10, max_removed_ratio: float = 0.90):
        """
        Initialize sanitizer.

        Args:
            instructional_ratio: Share of instructional words above which content is flagged
            max_removed_ratio: Share of removed content above which sanitization is considered destructive
        """
        self.instructional_ratio = instructional_ratio
        self.max_removed_ratio = max_removed_ratio

    def sanitize(self, content: str) -> SanitizationResult:
        """Sanitize untrusted content"""
        if not content:
            return SanitizationResult(sanitized='')

        removed: List[str] = []
        reasons: List[str] = []

        text = unicodedata.normalize('NFC', content)

        hidden_found = False
        for char, description in self.ZERO_WIDTH_CHARS.items():
            if (count := text.count(char)):
                removed.append(f"Zero-width character {description} ({count} occurrences)")
                text = text.replace(char, '')
                hidden_found = True

        if (spaces := self.UNICODE_SPACES.findall(text)):
            kinds = sorted({f"U+{ord(c):04X}" for c in spaces})
            removed.append(f"Invisible Unicode spaces normalized: {', '.join(kinds)}")
            text = self.UNICODE_SPACES.sub(' ', text)
            hidden_found = True

        for description, pattern in self.HIDING_PATTERNS.items():
            if pattern.search(text):
                removed.append(f"Potential color-based hiding: {description}")
                hidden_found = True

        if hidden_found:
            reasons.append("Hidden text detected")

        if self._has_excessive_instructions(text):
            reasons.append("Excessive instructional content")

        injection_found = False
        for description, pattern in self.INJECTION_PATTERNS.items():
            if (matches := pattern.findall(text)):
                for matched in dict.fromkeys(matches):
                    removed.append(f"Prompt injection ({description}): {matched}")
                text = pattern.sub(REDACTION, text)
                injection_found = True

        if injection_found:
            reasons.append("Prompt injection keywords detected")

        text = self._normalize_whitespace(text)
        flagged = bool(reasons)

        if flagged:
            logger.warning(f"Content flagged during sanitization: {'; '.join(reasons)} "
                           f"({len(removed)} items removed)")

        return SanitizationResult(
            sanitized=text,
            flagged=flagged,
            removed_patterns=removed,
            reason='; '.join(reasons) if reasons else None
        )

    def contains_injection(self, text: str) -> List[str]:
        """Names of injection patterns present in text"""
        if not text:
            return []
        normalized = unicodedata.normalize('NFC', text)
        for char in self.ZERO_WIDTH_CHARS:
            normalized = normalized.replace(char, '')
        return [name for name, pattern in self.INJECTION_PATTERNS.items() if pattern.search(normalized)]

    def validate_sanitization(self, original: str, sanitized: str) -> bool:
        """
        Check that sanitization was effective without being destructive.

        Returns:
            False if an injection pattern survived or too much content was removed
        """
        if survivors := self.contains_injection(sanitized):
            logger.error(f"Sanitization incomplete, patterns survived: {survivors}")
            return False

        if original and len(sanitized) < len(original) * (1 - self.max_removed_ratio):
            logger.warning(
                f"Sanitization removed too much content ({len(sanitized)}/{len(original)} characters kept)"
            )
            return False

        return True

    def _has_excessive_instructions(self, text: str) -> bool:
        words = self.WORD.findall(text.lower())
        if not words:
            return False
        instructional = sum(1 for word in words if word in self.INSTRUCTIONAL_WORDS)
        return instructional / len(words) > self.instructional_ratio

    @staticmethod
    def _normalize_whitespace(text: str) -> str:
        text = re.sub(r'[ \t]+', ' ', text)
        text = re.sub(r' *\n *', '\n', text)
        text = re.sub(r'\n{3,}', '\n\n', text)
        return text.strip()
