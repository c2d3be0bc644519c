"""Mention sources: where a monitoring run gets its mentions from.

A real social-media integration only has to implement ``MentionSource``;
the crisis rule and the aggregation layer never look past the drafts it
returns.
"""

import random
import string
from typing import List, Protocol

from schemas import MentionDraft, SentimentLabel

AUTHOR_ALPHABET = string.ascii_lowercase + string.digits


class MentionSource(Protocol):
    platform: str

    def fetch(self, brand_name: str) -> List[MentionDraft]:
        ...


def random_author(length: int = 9) -> str:
    return "user_" + "".join(random.choices(AUTHOR_ALPHABET, k=length))


class MockMentionSource:
    """Simulated Twitter search: three canned mentions with fixed sentiment."""

    platform = "twitter"
    confidence = 0.95

    templates = [
        ("Just got the new {brand} product and it's amazing!", SentimentLabel.positive, 0.8),
        ("{brand} customer service is terrible", SentimentLabel.negative, 0.2),
        ("Saw {brand} in the news today", SentimentLabel.neutral, 0.5),
    ]

    def fetch(self, brand_name: str) -> List[MentionDraft]:
        return [
            MentionDraft(
                mention_text=text.format(brand=brand_name),
                platform=self.platform,
                sentiment_label=label,
                sentiment_score=score,
                confidence=self.confidence,
                author_username=random_author(),
            )
            for text, label, score in self.templates
        ]
