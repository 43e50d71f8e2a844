"""
RBAC-gated approval, rejection and publication of generated summaries
"""
import logging
from typing import Any, Dict, Optional

from .approval_workflow import ApprovalWorkflow, is_legal_transition
from .audit_logger import AuditLogger
from .errors import AuthorizationDenied, IllegalTransitionError, RecordNotFoundError, SecurityException
from .models import ApprovalRecord, ApprovalState
from .rbac import RBAC
from .security.secret_scanner import SecretScanner

logger = logging.getLogger(__name__)

PUBLISH_ACTION = "blog_publishing"


class PublicationGate:
    """Advances approval records after checking permissions, state and thresholds"""

    def __init__(self, workflow: ApprovalWorkflow, rbac: RBAC, audit: AuditLogger,
                 scanner: Optional[SecretScanner] = None):
        self.workflow = workflow
        self.rbac = rbac
        self.audit = audit
        self.scanner = scanner or SecretScanner()

    def required_approvals(self) -> int:
        """Distinct approvals needed before publishing"""
        if self.rbac.is_approval_required() and self.rbac.requires_multi_approval(PUBLISH_ACTION):
            return self.rbac.get_minimum_approvals()
        return 1

    async def approve(self, summary_id: str, user_id: str, username: Optional[str] = None,
                      notes: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> ApprovalRecord:
        """
        Record an approval.

        A repeated approval by the same user is recorded but does not add to
        the distinct approver count.
        """
        self._require_record(summary_id, user_id, username, "approve")

        await self._require_approver(summary_id, user_id, username, "approve")

        repeated = self.workflow.has_user_approved(summary_id, user_id)
        updated = self._track(summary_id, ApprovalState.APPROVED, user_id, username, "approve",
                              notes=notes, metadata=metadata)
        distinct = self.workflow.count_distinct_approvers(summary_id)
        if repeated:
            logger.info(f"User {user_id} approved summary {summary_id} again; distinct approvals stay at {distinct}")

        self.audit.translation_approved(user_id, username, summary_id, distinct)
        return updated

    async def reject(self, summary_id: str, user_id: str, username: Optional[str] = None,
                     notes: Optional[str] = None) -> ApprovalRecord:
        self._require_record(summary_id, user_id, username, "reject")

        await self._require_approver(summary_id, user_id, username, "reject")

        updated = self._track(summary_id, ApprovalState.REJECTED, user_id, username, "reject", notes=notes)
        self.audit.translation_rejected(user_id, username, summary_id, notes)
        return updated

    async def publish(self, summary_id: str, user_id: str, username: Optional[str] = None) -> ApprovalRecord:
        """
        Publish an approved summary.

        Raises:
            AuthorizationDenied: the user may not publish, or too few distinct approvals
            IllegalTransitionError: the summary is not APPROVED
            SecurityException: the final content contains a critical secret
        """
        record = self._require_record(summary_id, user_id, username, "publish")

        if not self.rbac.can_publish(user_id):
            self.audit.permission_denied(user_id, username, "publish", summary_id,
                                         reason="not an authorized publisher")
            raise AuthorizationDenied(user_id, "publish", summary_id)

        self._require_transition(record, ApprovalState.PUBLISHED, user_id, username, "publish")

        required = self.required_approvals()
        if (distinct := self.workflow.count_distinct_approvers(summary_id)) < required:
            reason = f"{distinct} of {required} required distinct approvals"
            self.audit.permission_denied(user_id, username, "publish", summary_id, reason=reason)
            raise AuthorizationDenied(user_id, "publish", summary_id, reason)

        scan = self.scanner.scan(record.content)
        if scan.critical_found:
            location = f"summary:{summary_id}"
            for finding in scan.findings:
                self.audit.secret_detected(location, finding.type, finding.severity, user_id)
            error = SecurityException(
                f"Summary {summary_id} contains {scan.critical_found} critical secrets and cannot be published",
                issues=[f"Critical secret in final content: {t}" for t in scan.secret_types]
            )
            self.audit.security_exception(user_id, "publish", error, {"summary_id": summary_id})
            raise error

        updated = self._track(summary_id, ApprovalState.PUBLISHED, user_id, username, "publish",
                              metadata={"distinct_approvals": distinct})
        self.audit.translation_published(user_id, username, summary_id, distinct)
        logger.warning(f"Summary {summary_id} published by {user_id} with {distinct} distinct approvals")
        return updated

    def _require_record(self, summary_id: str, user_id: str, username: Optional[str],
                        command: str) -> ApprovalRecord:
        if (record := self.workflow.get_record(summary_id)) is None:
            self.audit.command_blocked(user_id, username, command, f"unknown summary {summary_id}")
            raise RecordNotFoundError(summary_id)
        return record

    async def _require_approver(self, summary_id: str, user_id: str, username: Optional[str],
                                command: str) -> None:
        if await self.rbac.can_approve(user_id, summary_id, username):
            return
        # RBAC audits its own denials when it has an audit logger
        if self.rbac.audit is None:
            self.audit.permission_denied(user_id, username, command, summary_id, reason="not an approver")
        raise AuthorizationDenied(user_id, command, summary_id)

    def _require_transition(self, record: ApprovalRecord, requested: ApprovalState, user_id: str,
                            username: Optional[str], command: str) -> None:
        if not is_legal_transition(record.current_state, requested):
            self.audit.command_blocked(
                user_id, username, command,
                f"summary {record.summary_id} is {record.current_state.value}"
            )
            raise IllegalTransitionError(record.summary_id, record.current_state.value, requested.value)

    def _track(self, summary_id: str, requested: ApprovalState, user_id: str, username: Optional[str],
               command: str, notes: Optional[str] = None,
               metadata: Optional[Dict[str, Any]] = None) -> ApprovalRecord:
        """Write the transition, re-checking the current state atomically with the write"""
        try:
            return self.workflow.track_approval(
                summary_id, requested, user_id, username, notes, metadata, enforce_transition=True
            )
        except IllegalTransitionError as e:
            self.audit.command_blocked(user_id, username, command, f"summary {summary_id} is {e.current_state}")
            raise
