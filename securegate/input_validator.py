"""
Input validation for translation requests

Every check is a pure function of its arguments: nothing is logged, read or
written here, callers decide what to do with the result.
"""
import html
import re
from typing import Any, Iterable, List, Optional, Sequence

from .models import PathValidationResult, ValidationResult

ALLOWED_FORMATS = ("executive", "marketing", "product", "engineering", "unified")

ABSOLUTE_PATH_PATTERNS = [
    re.compile(r'^/'),
    re.compile(r'^[A-Za-z]:[\\/]'),
    re.compile(r'^\\\\'),
]

TRAVERSAL_PATTERNS = [
    re.compile(r'\.\.'),
    re.compile(r'~/'),
    re.compile(r'\x00'),
    re.compile(r'%2e%2e', re.IGNORECASE),
    re.compile(r'%252e%252e', re.IGNORECASE),
    re.compile(r'\.%2e', re.IGNORECASE),
    re.compile(r'%2e\.', re.IGNORECASE),
    re.compile(r'%00'),
    re.compile(r'%2500'),
    re.compile(r'~%2f', re.IGNORECASE),
    re.compile(r'%7e%2f', re.IGNORECASE),
    re.compile(r'\.\\\.'),
]

SHELL_METACHARACTERS = re.compile(r'[;&|`$(){}\[\]<>\\\r\n]')

SYSTEM_DIRECTORIES = (
    "/etc/", "/var/", "/usr/", "/bin/", "/sbin/", "/boot/", "/dev/", "/proc/", "/sys/",
    "c:\\windows\\", "c:\\program files\\",
)

AUDIENCE_PATTERN = re.compile(r'^[a-zA-Z0-9\s,.\-()]+$')
COMMAND_PATTERN = re.compile(r'^[a-z0-9-]+$')
CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')


class InputValidator:
    """Validates user-supplied paths, audiences, formats and command arguments"""

    def __init__(
        self,
        max_path_length: int = 500,
        max_documents_per_request: int = 10,
        allowed_extensions: Sequence[str] = (".md", ".gdoc"),
        max_audience_length: int = 200,
        allowed_formats: Sequence[str] = ALLOWED_FORMATS,
    ):
        self.max_path_length = max_path_length
        self.max_documents_per_request = max_documents_per_request
        self.allowed_extensions = tuple(ext.lower() for ext in allowed_extensions)
        self.max_audience_length = max_audience_length
        self.allowed_formats = tuple(allowed_formats)

    def validate_path(self, path: Any) -> ValidationResult:
        """
        Validate a single document path.

        Checks run in a fixed order and the first failure is the only error
        reported.
        """
        if path is None or not isinstance(path, str):
            return self._invalid("Path must be a non-empty string")

        trimmed = path.strip()
        if not trimmed:
            return self._invalid("Path cannot be empty")

        if len(trimmed) > self.max_path_length:
            return self._invalid(f"Path too long (max {self.max_path_length} characters)")

        if any(pattern.search(trimmed) for pattern in ABSOLUTE_PATH_PATTERNS):
            return self._invalid("Absolute paths are not allowed")

        if any(pattern.search(trimmed) for pattern in TRAVERSAL_PATTERNS):
            return self._invalid("Path traversal detected")

        if SHELL_METACHARACTERS.search(trimmed):
            return self._invalid("Path contains shell metacharacters")

        lowered = trimmed.lower()
        if any(directory in lowered for directory in SYSTEM_DIRECTORIES):
            return self._invalid("Access to system directories is not allowed")

        if not lowered.endswith(self.allowed_extensions):
            return self._invalid(
                f"Invalid file extension (allowed: {', '.join(self.allowed_extensions)})"
            )

        warnings = []
        if trimmed.replace("\\", "/").rsplit("/", 1)[-1].startswith("."):
            warnings.append("Hidden files may not be accessible")

        return ValidationResult(valid=True, sanitized=trimmed, warnings=warnings)

    def validate_paths(self, paths: Any) -> PathValidationResult:
        """Validate a batch of paths, dropping duplicates with a warning"""
        if not isinstance(paths, (list, tuple)):
            return PathValidationResult(valid=False, errors=["Document paths must be provided as a list"])

        if not paths:
            return PathValidationResult(valid=False, errors=["At least one document path is required"])

        if len(paths) > self.max_documents_per_request:
            return PathValidationResult(
                valid=False,
                errors=[f"Too many documents ({len(paths)}, max {self.max_documents_per_request})"]
            )

        errors: List[str] = []
        warnings: List[str] = []
        resolved: List[str] = []

        for index, path in enumerate(paths, start=1):
            result = self.validate_path(path)
            if not result.valid:
                errors.extend(f"Document {index} ({path}): {error}" for error in result.errors)
                continue
            warnings.extend(f"Document {index} ({path}): {warning}" for warning in result.warnings)
            resolved.append(result.sanitized)

        unique = list(dict.fromkeys(resolved))
        if len(unique) < len(resolved):
            warnings.append(f"Removed {len(resolved) - len(unique)} duplicate document path(s)")

        return PathValidationResult(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            resolved_paths=unique if not errors else []
        )

    def validate_audience(self, audience: Any) -> ValidationResult:
        if audience is None or not isinstance(audience, str) or not audience.strip():
            return self._invalid("Audience is required")

        trimmed = audience.strip()
        if len(trimmed) > self.max_audience_length:
            return self._invalid(f"Audience too long (max {self.max_audience_length} characters)")

        if not AUDIENCE_PATTERN.match(trimmed):
            return self._invalid(
                "Audience contains invalid characters "
                "(letters, numbers, spaces, commas, periods, hyphens and parentheses only)"
            )

        return ValidationResult(valid=True, sanitized=trimmed)

    def validate_format(self, format_name: Any) -> ValidationResult:
        if format_name is None or not isinstance(format_name, str) or not format_name.strip():
            return self._invalid("Format is required")

        normalized = format_name.strip().lower()
        if normalized not in self.allowed_formats:
            return self._invalid(
                f"Invalid format '{normalized}' (allowed: {', '.join(self.allowed_formats)})"
            )

        return ValidationResult(valid=True, sanitized=normalized)

    def validate_command_args(self, command: Any, args: Optional[Iterable[Any]] = None) -> ValidationResult:
        """Validate a command name and its free-form arguments"""
        if command is None or not isinstance(command, str) or not command.strip():
            return self._invalid("Command is required")

        normalized = command.strip().lower()
        if not COMMAND_PATTERN.match(normalized):
            return self._invalid("Command contains invalid characters")

        errors = []
        for index, arg in enumerate(args or [], start=1):
            if not isinstance(arg, str):
                errors.append(f"Argument {index} must be a string")
            elif SHELL_METACHARACTERS.search(arg) or "\x00" in arg:
                errors.append(f"Argument {index} contains shell metacharacters")

        if errors:
            return ValidationResult(valid=False, errors=errors)
        return ValidationResult(valid=True, sanitized=normalized)

    @staticmethod
    def sanitize_for_display(text: Any, max_length: int = 200) -> str:
        """Printable, HTML-escaped, length-bounded rendition of user input"""
        if text is None:
            return ""
        cleaned = CONTROL_CHARS.sub("", str(text)).strip()
        if len(cleaned) > max_length:
            cleaned = cleaned[:max_length] + "..."
        return html.escape(cleaned)

    @staticmethod
    def _invalid(error: str) -> ValidationResult:
        return ValidationResult(valid=False, errors=[error])


input_validator = InputValidator()
