"""Phone number detector using phonenumbers"""
import logging
from typing import List, Tuple

import phonenumbers
from phonenumbers import PhoneNumberMatcher

from .base import SensitiveDataValidator

logger = logging.getLogger(__name__)


class PhoneValidator(SensitiveDataValidator):
    """Finds phone numbers with Google's libphonenumber"""

    # Digits following these words are identifiers, not phone numbers
    IDENTIFIER_HINTS = ('key', 'token', 'secret', 'id', 'hash', 'summary', 'session', 'request')

    def __init__(self, default_region: str = None):
        """
        Args:
            default_region: Region used for numbers without a country code;
                None only accepts numbers written in international form
        """
        super().__init__('phone')
        self.default_region = default_region

    def find_matches(self, text: str) -> List[Tuple[str, int, int]]:
        matches = []
        seen_spans = set()

        try:
            for match in PhoneNumberMatcher(text, self.default_region):
                context = text[max(0, match.start - 20):match.start].lower()
                if any(hint in context for hint in self.IDENTIFIER_HINTS):
                    continue

                number = match.number
                if not (phonenumbers.is_valid_number(number) or phonenumbers.is_possible_number(number)):
                    continue

                # Repeats of one number are separate spans and each is redacted
                if (span := (match.start, match.end)) not in seen_spans:
                    seen_spans.add(span)
                    matches.append((match.raw_string, match.start, match.end))
        except phonenumbers.NumberParseException as e:
            logger.debug(f"Error processing phone numbers: {e}")

        return matches
