"""Payment card number detector"""
import re
from typing import List, Tuple

from luhnchecker.luhn import Luhn

from .base import SensitiveDataValidator


class CreditCardValidator(SensitiveDataValidator):
    """Finds Luhn-valid card numbers from a recognised issuer"""

    CARD_PATTERNS = [
        re.compile(r'\b(?:\d{4}[\s\-]?){3}\d{4}\b'),  # 16 digits with optional separators
        re.compile(r'\b\d{4}[\s\-]?\d{6}[\s\-]?\d{5}\b'),  # Amex grouping
        re.compile(r'\b\d{13,19}\b'),
    ]

    def __init__(self):
        super().__init__('credit_card')
        self.checker = Luhn()

    def find_matches(self, text: str) -> List[Tuple[str, int, int]]:
        matches = []
        seen_spans = set()

        for pattern in self.CARD_PATTERNS:
            for match in pattern.finditer(text):
                card_match = match.group(0)
                digits = re.sub(r'[\s\-]', '', card_match)

                span = (match.start(), match.end())
                if not 13 <= len(digits) <= 19 or span in seen_spans:
                    continue
                if not self._is_card_number(digits):
                    continue

                seen_spans.add(span)
                matches.append((card_match, match.start(), match.end()))

        return matches

    def _is_card_number(self, digits: str) -> bool:
        # Published test numbers match as well
        try:
            if not self.checker.check_luhn(digits):
                return False
            return self.checker.credit_card_issuer(digits) != "invalid card number"
        except (ValueError, TypeError):
            return False
