"""
Utility functions for securegate
"""
import logging
import os
import re
import secrets
from datetime import datetime, timezone
from typing import Pattern

logger = logging.getLogger(__name__)

# Pre-compile regex pattern for better performance
ENV_VAR_PATTERN: Pattern[str] = re.compile(r'\$\{([^}]+)\}')


def substitute_env_vars(value: str, warn_missing: bool = True) -> str:
    """Substitute environment variables in a string.

    Args:
        value: String that may contain ${VAR_NAME} placeholders
        warn_missing: Whether to log warnings for missing variables

    Returns:
        String with environment variables substituted

    Example:
        >>> os.environ['AUDIT_DIR'] = '/var/log/securegate'
        >>> substitute_env_vars('${AUDIT_DIR}/audit.jsonl')
        '/var/log/securegate/audit.jsonl'
    """
    def replace_var(match: re.Match[str]) -> str:
        var_name = match.group(1)

        if (var_value := os.environ.get(var_name)) is not None:
            return var_value

        if warn_missing:
            logger.warning(f"Environment variable ${{{var_name}}} is not set")
        return match.group(0)  # Return the original ${VAR_NAME}

    return ENV_VAR_PATTERN.sub(replace_var, value)


def has_unresolved_env_vars(value: str) -> bool:
    """True when a ${VAR} placeholder survived substitution"""
    return bool(ENV_VAR_PATTERN.search(value))


def utc_now() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string"""
    return utc_now().isoformat()


def generate_secure_id(num_bytes: int = 16) -> str:
    """URL-safe identifier from the OS CSPRNG"""
    return secrets.token_urlsafe(num_bytes)
