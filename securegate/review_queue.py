"""
Manual-review quarantine for drafts that failed output validation
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .errors import SecureGateError
from .security.secret_scanner import SecretScanner
from .store import Repository, default_repository
from .utils import generate_secure_id, utc_now

logger = logging.getLogger(__name__)


class ReviewStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class ReviewItem:
    """A quarantined draft; content is stored redacted"""
    review_id: str
    content: str
    reason: str
    requested_by: Optional[str]
    issues: List[str]
    created_at: datetime
    status: str = ReviewStatus.PENDING
    metadata: Dict[str, Any] = field(default_factory=dict)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None


class ReviewQueue:
    """Holds drafts until a human decides on them"""

    def __init__(self, store: Optional[Repository[ReviewItem]] = None,
                 scanner: Optional[SecretScanner] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.store = default_repository(store)
        self.scanner = scanner or SecretScanner()
        self.clock = clock

    def flag(self, content: str, reason: str, requested_by: Optional[str] = None,
             issues: Optional[List[str]] = None, metadata: Optional[Dict[str, Any]] = None) -> str:
        """
        Quarantine a draft.

        Returns:
            The review id
        """
        review_id = f"review_{generate_secure_id()}"
        item = ReviewItem(
            review_id=review_id,
            content=self.scanner.redact(content),
            reason=reason,
            requested_by=requested_by,
            issues=list(issues or []),
            created_at=self.clock(),
            metadata=dict(metadata or {}),
        )
        self.store.put(review_id, item)
        logger.warning(f"Draft flagged for manual review {review_id}: {reason} ({len(item.issues)} issues)")
        return review_id

    def get(self, review_id: str) -> Optional[ReviewItem]:
        return self.store.get(review_id)

    def get_pending(self) -> List[ReviewItem]:
        """Pending items, oldest first"""
        pending = [item for item in self.store.values() if item.status == ReviewStatus.PENDING]
        return sorted(pending, key=lambda item: item.created_at)

    def resolve(self, review_id: str, reviewer_id: str, approved: bool,
                notes: Optional[str] = None) -> ReviewItem:
        """
        Record a reviewer's decision on a pending item.

        Raises:
            KeyError: unknown review id
            SecureGateError: the item was already resolved
        """
        now = self.clock()

        def decide(item: Optional[ReviewItem]) -> ReviewItem:
            if item is None:
                raise KeyError(review_id)
            if item.status != ReviewStatus.PENDING:
                raise SecureGateError(f"Review {review_id} is already {item.status}")
            return replace(
                item,
                status=ReviewStatus.APPROVED if approved else ReviewStatus.REJECTED,
                reviewed_by=reviewer_id,
                reviewed_at=now,
                review_notes=notes,
            )

        resolved = self.store.update(review_id, decide)
        logger.info(f"Review {review_id} resolved as {resolved.status} by {reviewer_id}")
        return resolved
