"""
Base interface for content policies
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class PolicyResult:
    """Result of a content policy validation"""
    allowed: bool
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class OutputContext:
    """Context for validating a generated draft"""
    content: str
    requested_by: Optional[str] = None
    format: Optional[str] = None
    audience: Optional[str] = None


class ContentPolicy(ABC):
    """Abstract base class for content policies"""

    def __init__(self, config: Dict[str, Any]):
        """Initialize with policy configuration"""
        self.config = config
        self.enabled = self._is_enabled()

    @abstractmethod
    def _is_enabled(self) -> bool:
        """Check if this policy is enabled in configuration"""
        pass

    @abstractmethod
    def validate(self, context: OutputContext) -> PolicyResult:
        """
        Validate a generated draft against this policy

        Args:
            context: Draft content and the request it was generated for

        Returns:
            PolicyResult indicating if the draft may be delivered
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the name of this policy"""
        pass
