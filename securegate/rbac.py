"""
Role-based access control for approval and publication

Every check fails closed: a missing user, a missing role lookup or any error
raised while resolving roles results in a denial.
"""
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

from .audit_logger import AuditLogger
from .config import RBACConfig, SecurityPolicyError

logger = logging.getLogger(__name__)

UNRESOLVABLE_USER_IDS = frozenset({"", "null", "undefined", "none"})

_ROLE_SEPARATORS = re.compile(r"[\s\-]+")


def normalize_role(role: str) -> str:
    """'Product Manager' and 'product-manager' both become 'product_manager'"""
    return _ROLE_SEPARATORS.sub("_", role.strip().lower())


class RoleLookup(ABC):
    """External source of a user's roles"""

    @abstractmethod
    async def get_roles(self, user_id: str, context_id: Optional[str] = None) -> List[str]:
        """
        Resolve the roles held by a user.

        May raise; callers treat any exception as holding no roles.
        """
        pass


class StaticRoleLookup(RoleLookup):
    """Roles from a fixed user -> roles mapping"""

    def __init__(self, roles_by_user: Dict[str, Iterable[str]]):
        self.roles_by_user = {user: list(roles) for user, roles in roles_by_user.items()}

    async def get_roles(self, user_id: str, context_id: Optional[str] = None) -> List[str]:
        return list(self.roles_by_user.get(user_id, []))


class RBAC:
    """Resolves approval and publication permissions"""

    def __init__(self, config: Optional[RBACConfig] = None,
                 role_lookup: Optional[RoleLookup] = None,
                 audit: Optional[AuditLogger] = None):
        self.config = config or RBACConfig()
        self.role_lookup = role_lookup
        self.audit = audit

        valid, errors = self.validate_config()
        if not valid:
            logger.warning(f"RBAC configuration has problems: {errors}")
        if not self.config.authorized_publishers:
            logger.info("No authorized publishers configured, publishing is disabled")

    @staticmethod
    def _is_resolvable(user_id: Optional[str]) -> bool:
        return isinstance(user_id, str) and user_id.strip().lower() not in UNRESOLVABLE_USER_IDS

    async def can_approve(self, user_id: Optional[str], context_id: Optional[str] = None,
                          username: Optional[str] = None) -> bool:
        """
        True only if the user holds an approval role and, when a reviewer
        allow-list is configured, is on it.
        """
        try:
            if not self._is_resolvable(user_id):
                return self._deny(user_id, username, "approve", "unresolvable user")

            if self.role_lookup is None:
                return self._deny(user_id, username, "approve", "no role lookup configured")

            try:
                roles = await self.role_lookup.get_roles(user_id, context_id)
            except Exception as e:
                logger.error(f"Role lookup failed for user {user_id}: {e}")
                return self._deny(user_id, username, "approve", "role lookup failed")

            held = {normalize_role(r) for r in roles or [] if isinstance(r, str)}
            eligible = {normalize_role(r) for r in self.config.approval_roles}
            if not held & eligible:
                return self._deny(user_id, username, "approve", "no approval role")

            if self.config.authorized_reviewers and user_id not in self.config.authorized_reviewers:
                return self._deny(user_id, username, "approve", "not an authorized reviewer")

            if self.audit:
                self.audit.permission_granted(user_id, username, "approve", context_id)
            return True

        except Exception as e:
            logger.error(f"Approval permission check failed for user {user_id}: {e}")
            return False

    def can_publish(self, user_id: Optional[str]) -> bool:
        """Independent of roles; publishers must be listed explicitly"""
        if not self._is_resolvable(user_id):
            return False
        return user_id in self.config.authorized_publishers

    def _deny(self, user_id: Optional[str], username: Optional[str], permission: str, reason: str) -> bool:
        logger.info(f"Denied {permission} for user {user_id}: {reason}")
        if self.audit:
            self.audit.permission_denied(user_id or "", username, permission, reason=reason)
        return False

    def requires_multi_approval(self, action: str) -> bool:
        return action in self.config.multi_approval_actions

    def get_minimum_approvals(self) -> int:
        return self.config.minimum_approvals

    def get_approval_roles(self) -> List[str]:
        return list(self.config.approval_roles)

    def get_authorized_reviewers(self) -> List[str]:
        return list(self.config.authorized_reviewers)

    def get_authorized_publishers(self) -> List[str]:
        return list(self.config.authorized_publishers)

    def is_approval_required(self) -> bool:
        return self.config.require_approval

    def validate_config(self, config: Optional[RBACConfig] = None) -> Tuple[bool, List[str]]:
        """Check a configuration for internal consistency"""
        config = config or self.config
        errors = []

        if not config.approval_roles:
            errors.append("At least one approval role must be configured")
        if not all(isinstance(r, str) and r.strip() for r in config.approval_roles):
            errors.append("Approval roles must be non-empty strings")
        if not isinstance(config.minimum_approvals, int) or config.minimum_approvals < 1:
            errors.append("minimum_approvals must be at least 1")
        elif config.authorized_reviewers and len(set(config.authorized_reviewers)) < config.minimum_approvals:
            errors.append(
                f"{len(set(config.authorized_reviewers))} authorized reviewers cannot reach "
                f"minimum_approvals={config.minimum_approvals}"
            )

        return not errors, errors

    def update_config(self, new_config: RBACConfig, user_id: str, username: Optional[str] = None) -> RBACConfig:
        """Replace the configuration; the change is always audited"""
        valid, errors = self.validate_config(new_config)
        if not valid:
            raise SecurityPolicyError(f"Invalid RBAC configuration: {'; '.join(errors)}")

        old_config = self.config
        self.config = replace(new_config)
        logger.warning(f"RBAC configuration changed by {user_id}")
        if self.audit:
            self.audit.config_modified(user_id, username, "rbac", old_config.to_dict(), self.config.to_dict())
        return self.config
