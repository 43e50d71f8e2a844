"""
Content security layer: secret scanning, injection sanitizing and output policies
"""
from .base import ContentPolicy, OutputContext, PolicyResult
from .content_sanitizer import ContentSanitizer, SanitizationResult
from .log_sanitizer import LogSanitizer, sanitize_for_logging
from .output_policies import (
    InjectionEchoPolicy,
    OutputValidationResult,
    OutputValidator,
    SecretLeakPolicy,
    SensitiveKeywordPolicy,
)
from .secret_patterns import SECRET_PATTERNS, SecretPattern
from .secret_scanner import SecretScanner, secret_scanner

__all__ = [
    'ContentPolicy',
    'OutputContext',
    'PolicyResult',
    'ContentSanitizer',
    'SanitizationResult',
    'LogSanitizer',
    'sanitize_for_logging',
    'InjectionEchoPolicy',
    'OutputValidationResult',
    'OutputValidator',
    'SecretLeakPolicy',
    'SensitiveKeywordPolicy',
    'SECRET_PATTERNS',
    'SecretPattern',
    'SecretScanner',
    'secret_scanner',
]
