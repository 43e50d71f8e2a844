"""Base class for personal-data detectors used when redacting audit details"""
from abc import ABC, abstractmethod
from typing import List, Tuple


class SensitiveDataValidator(ABC):
    """Abstract base class for sensitive data validators"""

    def __init__(self, name: str):
        """Initialize validator with a name"""
        self.name = name

    @property
    def placeholder(self) -> str:
        """Typed replacement written in place of a match"""
        return f"[{self.name.upper()} REDACTED]"

    @abstractmethod
    def find_matches(self, text: str) -> List[Tuple[str, int, int]]:
        """
        Find all matches of sensitive data in the given text.

        Args:
            text: The text to search for sensitive data

        Returns:
            List of tuples containing (matched_text, start_position, end_position)
        """
        pass

    def contains_sensitive_data(self, text: str) -> bool:
        return len(self.find_matches(text)) > 0

    def redact(self, text: str) -> str:
        """
        Replace every match with this validator's placeholder.

        Overlapping matches collapse into a single placeholder.
        """
        matches = sorted(self.find_matches(text), key=lambda m: m[1])
        if not matches:
            return text

        parts = []
        cursor = 0
        for _, start, end in matches:
            if start < cursor:
                cursor = max(cursor, end)
                continue
            parts.append(text[cursor:start])
            parts.append(self.placeholder)
            cursor = end
        parts.append(text[cursor:])
        return "".join(parts)

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"

    def __repr__(self) -> str:
        return self.__str__()
