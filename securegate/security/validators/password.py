"""Exposed password detector using zxcvbn and entropy analysis"""
import math
import re
from typing import List, Tuple

import zxcvbn

from .base import SensitiveDataValidator


class PasswordValidator(SensitiveDataValidator):
    """Finds password-like values in key/value text"""

    PASSWORD_PATTERNS = [
        re.compile(r'(?i)(?:password|passwd|pwd|passphrase)\s*[:=]\s*[\'"]?([^\s\'"]+)[\'"]?'),
        re.compile(r'(?i)[\'"](?:password|passwd|pwd|passphrase)[\'"]\s*:\s*[\'"]([^\'"]+)[\'"]'),
        re.compile(r'(?i)https?://[^:/\s@]+:([^@\s]+)@'),
    ]

    PLACEHOLDER_PASSWORDS = {
        'xxx', '***', '...', 'null', 'none', 'undefined', 'empty',
        'test', 'demo', 'example', 'sample', 'placeholder',
        'changeme', 'password', 'redacted', '[redacted]',
    }

    SPECIAL_CHARS = "!@#$%^&*()-=+[]{};'\",.<>?/\\|_~"

    def __init__(self, min_password_length: int = 8, min_entropy: float = 40.0):
        """
        Args:
            min_password_length: Minimum length for a value to be considered a password
            min_entropy: Minimum entropy (bits) for a value to be considered a real password
        """
        super().__init__('password')
        self.min_password_length = min_password_length
        self.min_entropy = min_entropy

    def _calculate_entropy(self, password: str) -> float:
        """Character-set entropy in bits"""
        charset = 0
        if any(c.islower() for c in password):
            charset += 26
        if any(c.isupper() for c in password):
            charset += 26
        if any(c.isdigit() for c in password):
            charset += 10
        if any(c in self.SPECIAL_CHARS for c in password):
            charset += 32
        if charset == 0:
            return 0.0
        return len(password) * math.log2(charset)

    def _is_suspicious_password(self, password: str) -> bool:
        """True when the value looks like a real password rather than a placeholder"""
        if not self.min_password_length <= len(password) <= 64:
            return False
        if password.lower() in self.PLACEHOLDER_PASSWORDS or password.startswith('[REDACTED'):
            return False
        if re.fullmatch(r'[a-zA-Z]+', password):
            return False

        # Score: 0 = very weak ... 4 = very strong
        if zxcvbn.zxcvbn(password)['score'] >= 2:
            return True
        if self._calculate_entropy(password) >= self.min_entropy:
            return True

        char_types = sum([
            any(c.islower() for c in password),
            any(c.isupper() for c in password),
            any(c.isdigit() for c in password),
            any(c in self.SPECIAL_CHARS for c in password),
        ])
        return char_types >= 2

    def find_matches(self, text: str) -> List[Tuple[str, int, int]]:
        """Spans covering only the password value, not its key"""
        matches = []
        seen = set()

        for pattern in self.PASSWORD_PATTERNS:
            for match in pattern.finditer(text):
                password = match.group(1)
                if password.startswith(('$', '%')):
                    continue  # variable reference
                if not self._is_suspicious_password(password):
                    continue
                span = (match.start(1), match.end(1))
                if span not in seen:
                    seen.add(span)
                    matches.append((password, *span))

        return matches
