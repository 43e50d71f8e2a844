"""
Configuration module for securegate
"""
import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .utils import substitute_env_vars

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Base exception for configuration errors"""
    pass


class SecurityPolicyError(ConfigurationError):
    """Exception for RBAC / security policy configuration errors"""
    pass


@dataclass
class RBACConfig:
    """Role-based access control configuration"""
    approval_roles: List[str] = field(default_factory=lambda: ["product_manager", "tech_lead", "cto"])
    authorized_reviewers: List[str] = field(default_factory=list)
    # Publishing is disabled until publishers are listed explicitly
    authorized_publishers: List[str] = field(default_factory=list)
    multi_approval_actions: List[str] = field(default_factory=lambda: ["blog_publishing"])
    minimum_approvals: int = 2
    require_approval: bool = True

    # The external configuration document uses camelCase keys
    KEY_ALIASES = {
        "approvalRoles": "approval_roles",
        "authorizedReviewers": "authorized_reviewers",
        "authorizedPublishers": "authorized_publishers",
        "multiApprovalActions": "multi_approval_actions",
        "minimumApprovals": "minimum_approvals",
        "requireApproval": "require_approval",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RBACConfig":
        normalized = {cls.KEY_ALIASES.get(key, key): value for key, value in data.items()}
        known = {f.name for f in fields(cls)}
        if unknown := set(normalized) - known:
            raise SecurityPolicyError(f"Unknown RBAC configuration keys: {', '.join(sorted(unknown))}")

        for list_key in ("approval_roles", "authorized_reviewers", "authorized_publishers", "multi_approval_actions"):
            if list_key in normalized and not isinstance(normalized[list_key], list):
                raise SecurityPolicyError(f"{list_key} must be a list")

        config = cls(**normalized)
        if not isinstance(config.minimum_approvals, int) or config.minimum_approvals < 1:
            raise SecurityPolicyError("minimum_approvals must be a positive integer")
        return config

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class SizeLimitsConfig:
    """Per-document and per-batch size ceilings"""
    max_pages: int = 50
    max_characters: int = 100_000
    max_size_bytes: int = 10 * 1024 * 1024
    max_documents: int = 10
    max_total_characters: int = 500_000
    strategy: str = "reject"


@dataclass
class CircuitBreakerConfig:
    """Failure threshold and recovery timing for one dependency"""
    failure_threshold: int = 5
    reset_timeout_seconds: float = 60.0
    call_timeout_seconds: Optional[float] = 120.0


@dataclass
class SessionConfig:
    """Session lifetime and abuse bounds"""
    ttl_seconds: float = 30 * 60
    max_actions: int = 100
    max_sessions: int = 1000


@dataclass
class AuditConfig:
    """Audit trail destination"""
    log_file: str = "logs/security-audit.jsonl"


@dataclass
class ResolverConfig:
    """Directories documents may be read from"""
    base_dir: str = "."
    allowed_dirs: List[str] = field(default_factory=lambda: ["docs", "integration/docs", "examples"])


@dataclass
class ProviderConfig:
    """Subprocess-backed generation provider"""
    command: str = ""
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    timeout: int = 120

    def get_full_command(self) -> List[str]:
        """Get the full command as a list (command + args)"""
        return [self.command] + self.args


@dataclass
class GatewayConfig:
    """Complete securegate configuration"""
    rbac: RBACConfig = field(default_factory=RBACConfig)
    limits: SizeLimitsConfig = field(default_factory=SizeLimitsConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    strict_output_validation: bool = False
    # Static user -> roles mapping for deployments without a directory service
    user_roles: Dict[str, List[str]] = field(default_factory=dict)


class ConfigurationManager:
    """Manages configuration for securegate"""

    def __init__(self, config_file: Union[str, Path]):
        self.config_file = Path(config_file)
        self.config: Dict = {}  # Store full configuration
        self.gateway_config: Optional[GatewayConfig] = None

    def load(self) -> GatewayConfig:
        """Load configuration from JSON file"""
        if not self.config_file.exists():
            error_msg = f"Configuration file not found: {self.config_file}"
            logger.error(error_msg)
            raise FileNotFoundError(error_msg)

        try:
            with self.config_file.open('r') as f:
                config_data = json.load(f)

            if not isinstance(config_data, dict):
                raise ValueError("Configuration root must be a JSON object")

            self.config = config_data
            self.gateway_config = self._create_gateway_config(config_data)

            rbac = self.gateway_config.rbac
            logger.info(
                f"Loaded configuration: {len(rbac.approval_roles)} approval roles, "
                f"{len(rbac.authorized_publishers)} publishers, "
                f"minimum approvals {rbac.minimum_approvals}"
            )
            return self.gateway_config

        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in configuration file: {e}")
            raise ConfigurationError(f"Invalid JSON: {e}") from e
        except SecurityPolicyError as e:
            logger.error(f"Security policy error: {e}")
            raise
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Configuration error: {e}")
            raise ConfigurationError(str(e)) from e

    def _create_gateway_config(self, data: Dict[str, Any]) -> GatewayConfig:
        """Create the typed configuration from the raw document"""
        limits = SizeLimitsConfig(**data.get("limits", {}))
        if limits.strategy not in ("reject", "truncate_by_recency"):
            raise ValueError(f"Unknown size limit strategy: {limits.strategy}")

        breaker = CircuitBreakerConfig(**data.get("circuit_breaker", {}))
        if breaker.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")

        audit_data = data.get("audit", {})
        audit = AuditConfig(
            log_file=substitute_env_vars(audit_data.get("log_file", AuditConfig.log_file))
        )

        resolver_data = data.get("resolver", {})
        resolver = ResolverConfig(
            base_dir=substitute_env_vars(resolver_data.get("base_dir", ".")),
            allowed_dirs=resolver_data.get("allowed_dirs", ResolverConfig().allowed_dirs)
        )

        provider_data = data.get("provider", {})
        provider = ProviderConfig(
            command=substitute_env_vars(provider_data.get("command", "")),
            args=[substitute_env_vars(arg) for arg in provider_data.get("args", [])],
            env=provider_data.get("env", {}),  # substituted at launch
            timeout=provider_data.get("timeout", 120)
        )

        user_roles = data.get("user_roles", {})
        if not isinstance(user_roles, dict) or not all(isinstance(r, list) for r in user_roles.values()):
            raise ValueError("user_roles must map user ids to lists of roles")

        return GatewayConfig(
            rbac=RBACConfig.from_dict(data.get("rbac", {})),
            limits=limits,
            circuit_breaker=breaker,
            sessions=SessionConfig(**data.get("sessions", {})),
            audit=audit,
            resolver=resolver,
            provider=provider,
            strict_output_validation=data.get("strict_output_validation", False),
            user_roles=user_roles
        )
