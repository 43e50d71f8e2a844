"""Tests for the DocumentSizeGuard module"""
from datetime import datetime, timedelta, timezone

import pytest

from securegate.config import SizeLimitsConfig
from securegate.errors import ValidationError
from securegate.models import Document
from securegate.size_guard import DocumentSizeGuard, SizeStrategy, document_size_bytes

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def doc(name: str, chars: int = 10, days_old=None, pages=None) -> Document:
    modified = NOW - timedelta(days=days_old) if days_old is not None else None
    return Document(name=name, content="x" * chars, page_count=pages, last_modified=modified)


class TestDocumentSizeGuard:
    """Test cases for DocumentSizeGuard"""

    @pytest.fixture
    def limits(self):
        return SizeLimitsConfig(
            max_pages=5, max_characters=100, max_size_bytes=200,
            max_documents=3, max_total_characters=150
        )

    @pytest.fixture
    def guard(self, limits):
        return DocumentSizeGuard(limits)

    def test_document_within_limits(self, guard):
        assert guard.validate_document(doc("a.md", 100)).valid

    def test_pages_checked_first(self, guard):
        """Test the page limit is reported before the character limit"""
        check = guard.validate_document(doc("a.md", 500, pages=9))

        assert not check.valid
        assert check.details == {"metric": "pages", "current_value": 9, "max_value": 5, "document": "a.md"}

    def test_character_limit(self, guard):
        check = guard.validate_document(doc("a.md", 101))

        assert not check.valid
        assert check.details["metric"] == "characters"
        assert check.details["current_value"] == 101
        assert check.details["max_value"] == 100

    def test_byte_limit_counts_utf8(self):
        guard = DocumentSizeGuard(SizeLimitsConfig(max_characters=1000, max_size_bytes=10))

        # Four characters, twelve bytes
        check = guard.validate_document(Document(name="a.md", content="€" * 4))

        assert not check.valid
        assert check.details["metric"] == "bytes"
        assert check.details["current_value"] == 12

    def test_declared_size_bytes_is_used(self):
        assert document_size_bytes(Document(name="a.md", content="abc", size_bytes=99)) == 99
        assert document_size_bytes(Document(name="a.md", content="abc")) == 3

    def test_batch_count_limit(self, guard):
        check = guard.validate_batch([doc(f"{i}.md") for i in range(4)])

        assert not check.valid
        assert check.details["metric"] == "documents"

    def test_batch_total_limit(self, guard):
        check = guard.validate_batch([doc("a.md", 80), doc("b.md", 80)])

        assert not check.valid
        assert check.details["metric"] == "total_characters"
        assert check.details["current_value"] == 160

    def test_batch_checks_each_document(self, guard):
        check = guard.validate_batch([doc("a.md", 10, pages=6)])

        assert not check.valid
        assert check.details["document"] == "a.md"

    def test_assert_valid_raises_with_details(self, guard):
        with pytest.raises(ValidationError) as exc_info:
            guard.assert_valid_document(doc("a.md", 101))

        assert exc_info.value.details["metric"] == "characters"

        with pytest.raises(ValidationError) as exc_info:
            guard.assert_valid_batch([doc("a.md", 80), doc("b.md", 80)])

        assert exc_info.value.details["max_value"] == 150
        guard.assert_valid_batch([doc("a.md", 80)])

    def test_enforce_reject_strategy(self, guard):
        """Test REJECT fails the whole batch"""
        assert guard.strategy == SizeStrategy.REJECT

        with pytest.raises(ValidationError):
            guard.enforce([doc("a.md", 80), doc("b.md", 80)])

    def test_enforce_truncate_keeps_most_recent(self, limits):
        """Test TRUNCATE_BY_RECENCY keeps the newest documents that fit"""
        limits.strategy = "truncate_by_recency"
        guard = DocumentSizeGuard(limits)
        old = doc("old.md", 80, days_old=30)
        new = doc("new.md", 80, days_old=1)

        kept = guard.enforce([old, new])

        assert kept == [new]

    def test_enforce_truncate_still_rejects_oversized_document(self, limits):
        limits.strategy = "truncate_by_recency"
        guard = DocumentSizeGuard(limits)

        with pytest.raises(ValidationError):
            guard.enforce([doc("huge.md", 101, days_old=1)])

    def test_enforce_truncate_reports_newest_document(self):
        """Test the error names the size of the document that was tried first"""
        guard = DocumentSizeGuard(SizeLimitsConfig(
            max_characters=100, max_total_characters=50, strategy="truncate_by_recency"
        ))

        with pytest.raises(ValidationError) as exc_info:
            guard.enforce([doc("old.md", 10, days_old=30), doc("new.md", 80, days_old=1)])

        assert exc_info.value.details["current_value"] == 80
        assert exc_info.value.details["max_value"] == 50

    def test_enforce_returns_batch_unchanged_when_valid(self, guard):
        documents = [doc("a.md"), doc("b.md")]

        assert guard.enforce(documents) == documents

    def test_prioritize_by_recency(self):
        """Test newest first, undated documents last in input order"""
        undated_a = doc("undated-a.md")
        undated_b = doc("undated-b.md")
        week = doc("week.md", days_old=7)
        today = doc("today.md", days_old=0)

        ranked = DocumentSizeGuard.prioritize_by_recency([undated_a, week, undated_b, today])

        assert [d.name for d in ranked] == ["today.md", "week.md", "undated-a.md", "undated-b.md"]
        assert DocumentSizeGuard.prioritize_by_recency([week, today], limit=1) == [today]

    def test_command_surface_limits(self):
        assert DocumentSizeGuard.validate_command_input("x" * 500).valid
        assert not DocumentSizeGuard.validate_command_input("x" * 501).valid

        check = DocumentSizeGuard.validate_parameter_length("audience", "x" * 101)
        assert not check.valid
        assert check.details["parameter"] == "audience"

        assert DocumentSizeGuard.validate_document_names(["a", "b", "c"]).valid
        assert not DocumentSizeGuard.validate_document_names(["a", "b", "c", "d"]).valid
