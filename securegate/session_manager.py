"""
Interactive user sessions with expiry, action limits and workflow progress
"""
import logging
import secrets
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from .audit_logger import AuditLogger
from .config import SessionConfig
from .models import Session, WorkflowState
from .store import Repository, default_repository

logger = logging.getLogger(__name__)


class SessionManager:
    """Creates and tracks sessions; all times are epoch seconds from the clock"""

    def __init__(self, config: Optional[SessionConfig] = None,
                 store: Optional[Repository[Session]] = None,
                 clock: Callable[[], float] = time.time,
                 audit: Optional[AuditLogger] = None):
        self.config = config or SessionConfig()
        self.store = default_repository(store)
        self.clock = clock
        self.audit = audit

    def create_session(self, user_id: str, metadata: Optional[Dict[str, Any]] = None) -> Session:
        now = self.clock()
        session = Session(
            session_id=secrets.token_hex(32),
            user_id=user_id,
            created_at=now,
            last_activity=now,
            expires_at=now + self.config.ttl_seconds,
            metadata=dict(metadata or {}),
        )
        self.store.put(session.session_id, session)
        self._evict_oldest()

        logger.info(f"Session created for user {user_id}, expires in {self.config.ttl_seconds}s")
        return session

    def _evict_oldest(self) -> None:
        sessions = self.store.values()
        if (excess := len(sessions) - self.config.max_sessions) <= 0:
            return
        for session in sorted(sessions, key=lambda s: s.last_activity)[:excess]:
            self.store.delete(session.session_id)
            logger.info(f"Session for user {session.user_id} evicted, capacity {self.config.max_sessions} reached")

    def get_session(self, session_id: str) -> Optional[Session]:
        """Return a live session and touch its last activity; expired sessions are destroyed"""
        now = self.clock()
        expired = False

        def touch(session: Optional[Session]) -> Optional[Session]:
            nonlocal expired
            if session is None:
                return None
            if now > session.expires_at:
                expired = True
                return None
            return replace(session, last_activity=now)

        session = self.store.update(session_id, touch)
        if expired:
            logger.info("Expired session destroyed")
        return session

    def update_state(self, session_id: str, state: Dict[str, Any]) -> Optional[Session]:
        """Merge state into the session state"""
        now = self.clock()

        def merge(session: Optional[Session]) -> Optional[Session]:
            if session is None or now > session.expires_at:
                return None
            return replace(session, state={**session.state, **state}, last_activity=now)

        if (session := self.store.update(session_id, merge)) is None:
            logger.warning("Attempted to update a missing or expired session")
        return session

    def record_action(self, session_id: str) -> bool:
        """
        Count an action against the session.

        Returns:
            False when the session is missing or expired, or when the action
            limit is exceeded, in which case the session is destroyed
        """
        now = self.clock()
        exceeded: Optional[Session] = None

        def increment(session: Optional[Session]) -> Optional[Session]:
            nonlocal exceeded
            if session is None or now > session.expires_at:
                return None
            updated = replace(session, action_count=session.action_count + 1, last_activity=now)
            if updated.action_count > self.config.max_actions:
                exceeded = updated
                return None
            return updated

        session = self.store.update(session_id, increment)

        if exceeded is not None:
            logger.warning(
                f"Session for user {exceeded.user_id} exceeded max actions "
                f"({exceeded.action_count}/{self.config.max_actions}), destroyed"
            )
            if self.audit:
                self.audit.rate_limit_exceeded(exceeded.user_id, None, "session_actions", session_id)
            return False

        return session is not None

    def extend_session(self, session_id: str, additional_ttl: Optional[float] = None) -> bool:
        now = self.clock()
        extension = additional_ttl or self.config.ttl_seconds

        def extend(session: Optional[Session]) -> Optional[Session]:
            if session is None or now > session.expires_at:
                return None
            return replace(session, expires_at=now + extension, last_activity=now)

        if (session := self.store.update(session_id, extend)) is None:
            return False
        logger.info(f"Session for user {session.user_id} extended by {extension}s")
        return True

    def destroy_session(self, session_id: str) -> bool:
        session = self.store.get(session_id)
        if session is None or not self.store.delete(session_id):
            return False
        logger.info(
            f"Session for user {session.user_id} destroyed after "
            f"{self.clock() - session.created_at:.0f}s and {session.action_count} actions"
        )
        return True

    def get_user_sessions(self, user_id: str) -> List[Session]:
        return [s for s in self.store.values() if s.user_id == user_id]

    def destroy_user_sessions(self, user_id: str) -> int:
        count = sum(1 for s in self.get_user_sessions(user_id) if self.store.delete(s.session_id))
        logger.info(f"Destroyed {count} sessions for user {user_id}")
        return count

    def get_active_session_count(self) -> int:
        return len(self.store)

    def get_statistics(self) -> Dict[str, float]:
        now = self.clock()
        sessions = self.store.values()
        if not (count := len(sessions)):
            return {
                "active_sessions": 0,
                "average_action_count": 0,
                "average_session_duration": 0,
                "oldest_session": 0,
            }
        return {
            "active_sessions": count,
            "average_action_count": sum(s.action_count for s in sessions) / count,
            "average_session_duration": sum(now - s.created_at for s in sessions) / count,
            "oldest_session": now - min(s.created_at for s in sessions),
        }

    def cleanup(self) -> int:
        """Remove expired sessions; returns the number removed"""
        now = self.clock()
        cleaned = sum(
            1 for session_id, session in self.store.items()
            if now > session.expires_at and self.store.delete(session_id)
        )
        if cleaned:
            logger.info(f"Session cleanup removed {cleaned} expired sessions")
        return cleaned

    # Multi-step workflows

    def init_workflow(self, session_id: str, total_steps: int) -> Optional[WorkflowState]:
        workflow = WorkflowState(step=1, total_steps=total_steps)
        if self._set_workflow(session_id, workflow) is None:
            return None
        return workflow

    def advance_workflow(self, session_id: str, step_data: Dict[str, Any]) -> Optional[WorkflowState]:
        """Merge step_data and move to the next step; completed once past the last step"""
        now = self.clock()

        def advance(session: Optional[Session]) -> Optional[Session]:
            if session is None or now > session.expires_at:
                return None
            if (current := session.workflow) is None:
                return session
            step = current.step + 1
            workflow = WorkflowState(
                step=step,
                total_steps=current.total_steps,
                data={**current.data, **step_data},
                completed=step > current.total_steps,
            )
            return replace(session, workflow=workflow, last_activity=now)

        session = self.store.update(session_id, advance)
        return session.workflow if session else None

    def _set_workflow(self, session_id: str, workflow: WorkflowState) -> Optional[Session]:
        now = self.clock()

        def assign(session: Optional[Session]) -> Optional[Session]:
            if session is None or now > session.expires_at:
                return None
            return replace(session, workflow=workflow, last_activity=now)

        return self.store.update(session_id, assign)
