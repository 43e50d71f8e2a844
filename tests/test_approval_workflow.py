"""Tests for the ApprovalWorkflow module"""
import logging
from datetime import datetime, timedelta, timezone

import pytest

from securegate.approval_workflow import ApprovalWorkflow, is_legal_transition
from securegate.errors import IllegalTransitionError, RecordNotFoundError
from securegate.models import ApprovalState


class SteppingClock:
    """Returns a fixed datetime that tests move forward explicitly"""

    def __init__(self):
        self.now = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class TestApprovalWorkflow:
    """Test cases for ApprovalWorkflow"""

    @pytest.fixture
    def clock(self):
        return SteppingClock()

    @pytest.fixture
    def workflow(self, clock):
        return ApprovalWorkflow(clock=clock)

    def test_create_record(self, workflow, clock):
        record = workflow.create_record("s-1", "Draft text", "executive", "board")

        assert record.current_state == ApprovalState.PENDING_REVIEW
        assert record.approvals == []
        assert record.created_at == clock.now
        assert workflow.get_state("s-1") == ApprovalState.PENDING_REVIEW

    def test_create_duplicate_record_fails(self, workflow):
        workflow.create_record("s-1", "Draft", "unified", "all")

        with pytest.raises(ValueError):
            workflow.create_record("s-1", "Other draft", "unified", "all")

    def test_track_approval_appends(self, workflow, clock):
        """Test each tracked approval is appended and moves the state"""
        workflow.create_record("s-1", "Draft", "unified", "all")
        clock.advance(minutes=5)

        record = workflow.track_approval("s-1", ApprovalState.APPROVED, "u-pm", "pat", "looks good")

        assert record.current_state == ApprovalState.APPROVED
        assert record.updated_at == clock.now
        approval, = record.approvals
        assert approval.approved_by == "u-pm"
        assert approval.approved_by_username == "pat"
        assert approval.notes == "looks good"

    def test_track_unknown_summary(self, workflow):
        with pytest.raises(RecordNotFoundError):
            workflow.track_approval("missing", ApprovalState.APPROVED, "u-pm")

    def test_distinct_approvers(self, workflow):
        """Test repeated approvals by one user count once"""
        workflow.create_record("s-1", "Draft", "unified", "all")
        workflow.track_approval("s-1", ApprovalState.APPROVED, "u-pm")
        workflow.track_approval("s-1", ApprovalState.APPROVED, "u-pm")

        assert len(workflow.get_approvals("s-1")) == 2
        assert workflow.count_distinct_approvers("s-1") == 1
        assert not workflow.has_minimum_approvals("s-1", 2)

        workflow.track_approval("s-1", ApprovalState.APPROVED, "u-lead")

        assert workflow.has_minimum_approvals("s-1", 2)
        assert workflow.has_user_approved("s-1", "u-lead")
        assert not workflow.has_user_approved("s-1", "u-eng")

    def test_rejections_do_not_count(self, workflow):
        workflow.create_record("s-1", "Draft", "unified", "all")
        workflow.track_approval("s-1", ApprovalState.APPROVED, "u-pm")
        workflow.track_approval("s-1", ApprovalState.REJECTED, "u-lead")

        assert workflow.count_distinct_approvers("s-1") == 1
        assert workflow.get_state("s-1") == ApprovalState.REJECTED

    def test_out_of_graph_transition_is_recorded(self, workflow, caplog):
        """Test the workflow records what it is given and warns"""
        workflow.create_record("s-1", "Draft", "unified", "all")

        with caplog.at_level(logging.WARNING):
            record = workflow.track_approval("s-1", ApprovalState.PUBLISHED, "u-pub")

        assert record.current_state == ApprovalState.PUBLISHED
        assert "out-of-graph" in caplog.text

    def test_enforced_transition_leaves_record_unchanged(self, workflow):
        workflow.create_record("s-1", "Draft", "unified", "all")
        workflow.track_approval("s-1", ApprovalState.REJECTED, "u-lead", enforce_transition=True)

        with pytest.raises(IllegalTransitionError):
            workflow.track_approval("s-1", ApprovalState.APPROVED, "u-pm", enforce_transition=True)

        assert workflow.get_state("s-1") == ApprovalState.REJECTED
        assert len(workflow.get_approvals("s-1")) == 1

    def test_pending_approvals_oldest_first(self, workflow, clock):
        workflow.create_record("s-new", "Draft", "unified", "all")
        clock.advance(hours=-1)
        workflow.create_record("s-old", "Draft", "unified", "all")
        workflow.create_record("s-done", "Draft", "unified", "all")
        workflow.track_approval("s-done", ApprovalState.APPROVED, "u-pm")

        assert [r.summary_id for r in workflow.get_pending_approvals()] == ["s-old", "s-new"]

    def test_statistics(self, workflow):
        workflow.create_record("s-1", "Draft", "unified", "all")
        workflow.create_record("s-2", "Draft", "unified", "all")
        workflow.track_approval("s-2", ApprovalState.REJECTED, "u-pm")

        stats = workflow.get_statistics()

        assert stats["total"] == 2
        assert stats["by_state"] == {"pending_review": 1, "approved": 0, "rejected": 1, "published": 0}

    def test_cleanup(self, workflow, clock):
        workflow.create_record("s-old", "Draft", "unified", "all")
        clock.advance(days=100)
        workflow.create_record("s-new", "Draft", "unified", "all")

        assert workflow.cleanup(days_to_keep=90) == 1
        assert workflow.get_record("s-old") is None
        assert workflow.get_record("s-new") is not None

    def test_record_to_dict(self, workflow):
        workflow.create_record("s-1", "Draft", "unified", "all")
        record = workflow.track_approval("s-1", ApprovalState.APPROVED, "u-pm")

        data = record.to_dict()

        assert data["current_state"] == "approved"
        assert data["approvals"][0]["state"] == "approved"
        assert data["created_at"] == "2024-06-01T09:00:00+00:00"


@pytest.mark.parametrize("current, requested, legal", [
    (ApprovalState.PENDING_REVIEW, ApprovalState.APPROVED, True),
    (ApprovalState.PENDING_REVIEW, ApprovalState.REJECTED, True),
    (ApprovalState.PENDING_REVIEW, ApprovalState.PUBLISHED, False),
    (ApprovalState.APPROVED, ApprovalState.APPROVED, True),
    (ApprovalState.APPROVED, ApprovalState.PUBLISHED, True),
    (ApprovalState.APPROVED, ApprovalState.PENDING_REVIEW, False),
    (ApprovalState.REJECTED, ApprovalState.APPROVED, False),
    (ApprovalState.PUBLISHED, ApprovalState.REJECTED, False),
])
def test_legal_transitions(current, requested, legal):
    assert is_legal_transition(current, requested) is legal
