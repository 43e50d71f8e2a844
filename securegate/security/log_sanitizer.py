"""
Redaction of structured data before it is written to the audit trail
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from .secret_scanner import SecretScanner, secret_scanner
from .validators import (
    CreditCardValidator,
    EmailValidator,
    PasswordValidator,
    PhoneValidator,
    SensitiveDataValidator,
)

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

# Compared after lower-casing and dropping '_' and '-'
SENSITIVE_KEYS = frozenset({
    "token", "accesstoken", "refreshtoken", "password", "passwd", "secret",
    "clientsecret", "apikey", "authorization", "privatekey", "credentials",
})

MAX_DEPTH = 10


class LogSanitizer:
    """Removes secrets and personal data from nested log payloads"""

    def __init__(self, scanner: Optional[SecretScanner] = None,
                 validators: Optional[List[SensitiveDataValidator]] = None):
        self.scanner = scanner or secret_scanner
        # Card numbers go before phone numbers so digit runs are claimed by the stricter check
        self.validators = validators if validators is not None else [
            PasswordValidator(),
            CreditCardValidator(),
            EmailValidator(),
            PhoneValidator(),
        ]

    @staticmethod
    def is_sensitive_key(key: Any) -> bool:
        normalized = str(key).lower().replace("_", "").replace("-", "")
        return normalized in SENSITIVE_KEYS

    def sanitize(self, value: Any, _depth: int = 0) -> Any:
        """Return a redacted copy of value; the input is not modified"""
        if _depth > MAX_DEPTH:
            return "[TRUNCATED]"

        match value:
            case None | bool() | int() | float():
                return value
            case Enum():
                return self.sanitize(value.value, _depth)
            case str():
                return self.sanitize_text(value)
            case datetime():
                return value.isoformat()
            case dict():
                return {
                    str(k): REDACTED if self.is_sensitive_key(k) else self.sanitize(v, _depth + 1)
                    for k, v in value.items()
                }
            case list() | tuple() | set() | frozenset():
                return [self.sanitize(item, _depth + 1) for item in value]
            case BaseException():
                return self.sanitize_text(str(value))
            case _:
                return self.sanitize_text(repr(value))

    def sanitize_text(self, text: str) -> str:
        if not text:
            return text
        redacted = self.scanner.redact(text)
        for validator in self.validators:
            redacted = validator.redact(redacted)
        return redacted


_default_sanitizer: Optional[LogSanitizer] = None


def sanitize_for_logging(value: Any) -> Any:
    """Redact secrets, credentials and personal data from a log payload"""
    global _default_sanitizer
    if _default_sanitizer is None:
        _default_sanitizer = LogSanitizer()
    return _default_sanitizer.sanitize(value)
