"""
Approval lifecycle of generated summaries

The workflow records transitions; it does not decide whether a transition is
allowed. LEGAL_TRANSITIONS describes the approval graph for the layer that
does (see publication.PublicationGate), which checks permissions, state and
approval thresholds before calling track_approval.
"""
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from .errors import IllegalTransitionError, RecordNotFoundError
from .models import Approval, ApprovalRecord, ApprovalState
from .store import Repository, default_repository
from .utils import utc_now

logger = logging.getLogger(__name__)

LEGAL_TRANSITIONS: Dict[ApprovalState, FrozenSet[ApprovalState]] = {
    # Further approvals on an approved summary accumulate towards the threshold
    ApprovalState.PENDING_REVIEW: frozenset({ApprovalState.APPROVED, ApprovalState.REJECTED}),
    ApprovalState.APPROVED: frozenset({ApprovalState.APPROVED, ApprovalState.REJECTED, ApprovalState.PUBLISHED}),
    ApprovalState.REJECTED: frozenset(),
    ApprovalState.PUBLISHED: frozenset(),
}


def is_legal_transition(current: ApprovalState, requested: ApprovalState) -> bool:
    return requested in LEGAL_TRANSITIONS.get(current, frozenset())


class ApprovalWorkflow:
    """Tracks approval records and their append-only approval history"""

    def __init__(self, store: Optional[Repository[ApprovalRecord]] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.store = default_repository(store)
        self.clock = clock

    def create_record(self, summary_id: str, content: str, format: str, audience: str) -> ApprovalRecord:
        """Create a record in PENDING_REVIEW"""
        now = self.clock()
        record = ApprovalRecord(
            summary_id=summary_id,
            content=content,
            format=format,
            audience=audience,
            current_state=ApprovalState.PENDING_REVIEW,
            created_at=now,
            updated_at=now,
        )

        def create(existing: Optional[ApprovalRecord]) -> ApprovalRecord:
            if existing is not None:
                raise ValueError(f"Approval record for summary {summary_id} already exists")
            return record

        self.store.update(summary_id, create)
        logger.info(f"Approval record created for summary {summary_id} (format={format})")
        return record

    def track_approval(
        self,
        summary_id: str,
        new_state: ApprovalState,
        approver_id: str,
        approver_name: Optional[str] = None,
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        enforce_transition: bool = False,
    ) -> ApprovalRecord:
        """
        Append an approval entry and move the record to new_state.

        The transition is recorded as given unless enforce_transition is set,
        in which case the state read and the write happen in one atomic step.

        Raises:
            RecordNotFoundError: no record exists for summary_id
            IllegalTransitionError: enforce_transition is set and the record
                is not in a state that may move to new_state
        """
        now = self.clock()
        approval = Approval(
            summary_id=summary_id,
            state=ApprovalState(new_state),
            approved_by=approver_id,
            approved_by_username=approver_name,
            approved_at=now,
            notes=notes,
            metadata=dict(metadata) if metadata else None,
        )

        def append(record: Optional[ApprovalRecord]) -> ApprovalRecord:
            if record is None:
                raise RecordNotFoundError(summary_id)
            if not is_legal_transition(record.current_state, approval.state):
                if enforce_transition:
                    raise IllegalTransitionError(summary_id, record.current_state.value, approval.state.value)
                logger.warning(
                    f"Recording out-of-graph transition for summary {summary_id}: "
                    f"{record.current_state.value} -> {approval.state.value}"
                )
            return replace(
                record,
                approvals=[*record.approvals, approval],
                current_state=approval.state,
                updated_at=now,
            )

        updated = self.store.update(summary_id, append)
        logger.info(
            f"Approval tracked for summary {summary_id}: {approval.state.value} by {approver_id} "
            f"({len(updated.approvals)} entries)"
        )
        return updated

    def get_record(self, summary_id: str) -> Optional[ApprovalRecord]:
        return self.store.get(summary_id)

    def get_state(self, summary_id: str) -> Optional[ApprovalState]:
        record = self.store.get(summary_id)
        return record.current_state if record else None

    def get_approvals(self, summary_id: str) -> List[Approval]:
        record = self.store.get(summary_id)
        return list(record.approvals) if record else []

    def count_distinct_approvers(self, summary_id: str) -> int:
        return len({a.approved_by for a in self.get_approvals(summary_id) if a.state == ApprovalState.APPROVED})

    def has_minimum_approvals(self, summary_id: str, minimum_count: int) -> bool:
        """True when at least minimum_count distinct users recorded APPROVED"""
        current = self.count_distinct_approvers(summary_id)
        has_minimum = current >= minimum_count
        logger.debug(
            f"Minimum approvals for summary {summary_id}: {current}/{minimum_count} "
            f"({'met' if has_minimum else 'not met'})"
        )
        return has_minimum

    def has_user_approved(self, summary_id: str, user_id: str) -> bool:
        return any(
            a.approved_by == user_id and a.state == ApprovalState.APPROVED
            for a in self.get_approvals(summary_id)
        )

    def get_pending_approvals(self) -> List[ApprovalRecord]:
        """Records awaiting review, oldest first"""
        pending = [r for r in self.store.values() if r.current_state == ApprovalState.PENDING_REVIEW]
        return sorted(pending, key=lambda r: r.created_at)

    def get_statistics(self) -> Dict[str, Any]:
        by_state = {state.value: 0 for state in ApprovalState}
        records = self.store.values()
        for record in records:
            by_state[record.current_state.value] += 1
        return {"total": len(records), "by_state": by_state}

    def cleanup(self, days_to_keep: int = 90) -> int:
        """Remove records not updated within days_to_keep; returns the number removed"""
        cutoff = self.clock() - timedelta(days=days_to_keep)
        removed = 0
        for summary_id, record in self.store.items():
            if record.updated_at < cutoff and self.store.delete(summary_id):
                removed += 1

        if removed:
            logger.info(f"Cleaned up {removed} approval records older than {cutoff.isoformat()}")
        return removed
