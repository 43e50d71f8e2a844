"""
Document and batch size ceilings
"""
import logging
from dataclasses import dataclass, field
from datetime import timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .config import SizeLimitsConfig
from .errors import ValidationError
from .models import Document

logger = logging.getLogger(__name__)

MAX_COMMAND_INPUT_LENGTH = 500
MAX_PARAMETER_LENGTH = 100
MAX_DOCUMENT_NAMES = 3


class SizeStrategy(str, Enum):
    """What to do with a batch over its aggregate ceilings"""
    REJECT = "reject"
    TRUNCATE_BY_RECENCY = "truncate_by_recency"


@dataclass
class SizeCheck:
    """Outcome of a size check; details describe the first violated ceiling"""
    valid: bool
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


def _violation(message: str, metric: str, current: int, maximum: int, **extra: Any) -> SizeCheck:
    return SizeCheck(
        valid=False,
        error=message,
        details={"metric": metric, "current_value": current, "max_value": maximum, **extra}
    )


def document_size_bytes(document: Document) -> int:
    if document.size_bytes is not None:
        return document.size_bytes
    return len(document.content.encode("utf-8"))


class DocumentSizeGuard:
    """Enforces per-document and per-batch size limits"""

    def __init__(self, limits: Optional[SizeLimitsConfig] = None):
        self.limits = limits or SizeLimitsConfig()
        self.strategy = SizeStrategy(self.limits.strategy)

    def validate_document(self, document: Document) -> SizeCheck:
        """Check pages, then characters, then bytes"""
        limits = self.limits

        if document.page_count is not None and document.page_count > limits.max_pages:
            return _violation(
                f"Document '{document.name}' has too many pages ({document.page_count}, max {limits.max_pages})",
                "pages", document.page_count, limits.max_pages, document=document.name
            )

        if (characters := len(document.content)) > limits.max_characters:
            return _violation(
                f"Document '{document.name}' is too long ({characters} characters, max {limits.max_characters})",
                "characters", characters, limits.max_characters, document=document.name
            )

        if (size := document_size_bytes(document)) > limits.max_size_bytes:
            return _violation(
                f"Document '{document.name}' is too large ({size} bytes, max {limits.max_size_bytes})",
                "bytes", size, limits.max_size_bytes, document=document.name
            )

        return SizeCheck(valid=True)

    def validate_batch(self, documents: Sequence[Document]) -> SizeCheck:
        """Check document count, then aggregate characters, then each document"""
        limits = self.limits

        if len(documents) > limits.max_documents:
            return _violation(
                f"Too many documents ({len(documents)}, max {limits.max_documents})",
                "documents", len(documents), limits.max_documents
            )

        if (total := sum(len(d.content) for d in documents)) > limits.max_total_characters:
            return _violation(
                f"Combined documents are too long ({total} characters, max {limits.max_total_characters})",
                "total_characters", total, limits.max_total_characters
            )

        for document in documents:
            if not (check := self.validate_document(document)).valid:
                return check

        return SizeCheck(valid=True)

    def assert_valid_document(self, document: Document) -> None:
        if not (check := self.validate_document(document)).valid:
            raise ValidationError(check.error, check.details)

    def assert_valid_batch(self, documents: Sequence[Document]) -> None:
        if not (check := self.validate_batch(documents)).valid:
            raise ValidationError(check.error, check.details)

    def enforce(self, documents: Sequence[Document]) -> List[Document]:
        """
        Apply the configured strategy to a batch.

        Returns:
            The documents to process; a subset only under TRUNCATE_BY_RECENCY

        Raises:
            ValidationError: on any per-document violation, or any batch
                violation under REJECT
        """
        if self.strategy == SizeStrategy.REJECT:
            self.assert_valid_batch(documents)
            return list(documents)

        for document in documents:
            self.assert_valid_document(document)

        if self.validate_batch(documents).valid:
            return list(documents)

        ranked = self.prioritize_by_recency(documents)
        kept: List[Document] = []
        total = 0
        for document in ranked:
            if len(kept) == self.limits.max_documents:
                break
            if total + len(document.content) > self.limits.max_total_characters:
                break
            kept.append(document)
            total += len(document.content)

        if not kept:
            raise ValidationError(
                "No document fits within the batch size limits",
                {"metric": "total_characters", "current_value": len(ranked[0].content),
                 "max_value": self.limits.max_total_characters}
            )

        kept_names = {id(d) for d in kept}
        dropped = [d.name for d in documents if id(d) not in kept_names]
        logger.warning(f"Batch over size limits, kept {len(kept)} most recent documents, dropped: {dropped}")
        return kept

    @staticmethod
    def prioritize_by_recency(documents: Sequence[Document], limit: Optional[int] = None) -> List[Document]:
        """Newest first; documents without a modification date go last in input order"""
        def sort_key(document: Document):
            modified = document.last_modified
            if modified is None:
                return (1, 0.0)
            if modified.tzinfo is None:
                modified = modified.replace(tzinfo=timezone.utc)
            return (0, -modified.timestamp())

        ranked = sorted(documents, key=sort_key)
        return ranked[:limit] if limit is not None else ranked

    # Command-surface helpers

    @staticmethod
    def validate_command_input(text: str, max_length: int = MAX_COMMAND_INPUT_LENGTH) -> SizeCheck:
        if len(text) > max_length:
            return _violation(
                f"Input too long ({len(text)} characters, max {max_length})",
                "input_length", len(text), max_length
            )
        return SizeCheck(valid=True)

    @staticmethod
    def validate_parameter_length(name: str, value: str, max_length: int = MAX_PARAMETER_LENGTH) -> SizeCheck:
        if len(value) > max_length:
            return _violation(
                f"Parameter '{name}' too long ({len(value)} characters, max {max_length})",
                "parameter_length", len(value), max_length, parameter=name
            )
        return SizeCheck(valid=True)

    @staticmethod
    def validate_document_names(names: Sequence[str], max_names: int = MAX_DOCUMENT_NAMES) -> SizeCheck:
        if len(names) > max_names:
            return _violation(
                f"Too many documents named ({len(names)}, max {max_names})",
                "document_names", len(names), max_names
            )
        return SizeCheck(valid=True)
