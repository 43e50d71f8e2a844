"""Tests for the SessionManager module"""
import pytest

from securegate.audit_logger import SecurityEventType
from securegate.config import SessionConfig
from securegate.session_manager import SessionManager


class TestSessionManager:
    """Test cases for SessionManager"""

    @pytest.fixture
    def manager(self, clock, audit):
        return SessionManager(SessionConfig(ttl_seconds=60, max_actions=3, max_sessions=10),
                              clock=clock, audit=audit)

    def test_create_session(self, manager, clock):
        session = manager.create_session("u-1", {"channel": "cli"})

        assert len(session.session_id) == 64
        assert session.user_id == "u-1"
        assert session.expires_at == clock.now + 60
        assert session.metadata == {"channel": "cli"}
        assert manager.get_session(session.session_id) is not None

    def test_session_ids_are_unique(self, manager):
        ids = {manager.create_session("u-1").session_id for _ in range(20)}

        assert len(ids) == 20

    def test_get_session_touches_activity(self, manager, clock):
        session = manager.create_session("u-1")
        clock.advance(10)

        touched = manager.get_session(session.session_id)

        assert touched.last_activity == clock.now
        assert touched.expires_at == session.expires_at

    def test_expired_session_is_destroyed(self, manager, clock):
        """Test an expired session is removed on access"""
        session = manager.create_session("u-1")
        clock.advance(61)

        assert manager.get_session(session.session_id) is None
        assert manager.get_active_session_count() == 0

    def test_unknown_session(self, manager):
        assert manager.get_session("nope") is None
        assert not manager.record_action("nope")
        assert manager.update_state("nope", {"a": 1}) is None

    def test_update_state_merges(self, manager):
        session = manager.create_session("u-1")

        manager.update_state(session.session_id, {"format": "executive"})
        updated = manager.update_state(session.session_id, {"audience": "board"})

        assert updated.state == {"format": "executive", "audience": "board"}

    def test_action_limit_destroys_session(self, manager, audit_sink):
        """Test exceeding max actions destroys the session and is audited"""
        session = manager.create_session("u-1")

        assert all(manager.record_action(session.session_id) for _ in range(3))
        assert not manager.record_action(session.session_id)

        assert manager.get_session(session.session_id) is None
        event, = audit_sink.of_type(SecurityEventType.RATE_LIMIT_EXCEEDED)
        assert event.user_id == "u-1"
        assert event.session_id == session.session_id
        assert event.details == {"limit_type": "session_actions"}

    def test_record_action_on_expired_session(self, manager, clock):
        session = manager.create_session("u-1")
        clock.advance(61)

        assert not manager.record_action(session.session_id)

    def test_extend_session(self, manager, clock):
        session = manager.create_session("u-1")
        clock.advance(50)

        assert manager.extend_session(session.session_id, 120)
        clock.advance(100)

        assert manager.get_session(session.session_id) is not None
        assert not manager.extend_session("nope")

    def test_capacity_evicts_least_recently_active(self, clock):
        manager = SessionManager(SessionConfig(max_sessions=2), clock=clock)
        first = manager.create_session("u-1")
        clock.advance(1)
        second = manager.create_session("u-2")
        clock.advance(1)
        manager.get_session(first.session_id)
        clock.advance(1)

        manager.create_session("u-3")

        assert manager.get_active_session_count() == 2
        assert manager.get_session(second.session_id) is None
        assert manager.get_session(first.session_id) is not None

    def test_user_sessions(self, manager):
        manager.create_session("u-1")
        manager.create_session("u-1")
        manager.create_session("u-2")

        assert len(manager.get_user_sessions("u-1")) == 2
        assert manager.destroy_user_sessions("u-1") == 2
        assert manager.get_active_session_count() == 1

    def test_destroy_session(self, manager):
        session = manager.create_session("u-1")

        assert manager.destroy_session(session.session_id)
        assert not manager.destroy_session(session.session_id)

    def test_cleanup_removes_only_expired(self, manager, clock):
        old = manager.create_session("u-1")
        clock.advance(40)
        fresh = manager.create_session("u-2")
        clock.advance(30)

        assert manager.cleanup() == 1
        assert manager.get_session(old.session_id) is None
        assert manager.get_session(fresh.session_id) is not None

    def test_statistics(self, manager, clock):
        assert manager.get_statistics()["active_sessions"] == 0

        first = manager.create_session("u-1")
        clock.advance(10)
        manager.create_session("u-2")
        manager.record_action(first.session_id)
        manager.record_action(first.session_id)

        stats = manager.get_statistics()

        assert stats["active_sessions"] == 2
        assert stats["average_action_count"] == 1
        assert stats["average_session_duration"] == 5
        assert stats["oldest_session"] == 10

    def test_workflow_progress(self, manager):
        """Test a workflow advances step by step and completes past the last step"""
        session = manager.create_session("u-1")

        workflow = manager.init_workflow(session.session_id, total_steps=2)
        assert (workflow.step, workflow.completed) == (1, False)

        workflow = manager.advance_workflow(session.session_id, {"documents": ["docs/prd.md"]})
        assert (workflow.step, workflow.completed) == (2, False)

        workflow = manager.advance_workflow(session.session_id, {"format": "executive"})
        assert workflow.step == 3
        assert workflow.completed
        assert workflow.data == {"documents": ["docs/prd.md"], "format": "executive"}

    def test_workflow_requires_session(self, manager):
        assert manager.init_workflow("nope", 2) is None
        assert manager.advance_workflow("nope", {}) is None

    def test_advance_without_workflow(self, manager):
        session = manager.create_session("u-1")

        assert manager.advance_workflow(session.session_id, {"a": 1}) is None
