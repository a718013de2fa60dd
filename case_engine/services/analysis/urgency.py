"""Tiered urgency detection.

Tiers are checked most-severe first and the first tier with any keyword
hit wins, so a text mentioning both "advice" (low) and "arrested"
(critical) is critical. Inside the winning tier the score starts at the
tier minimum and climbs 5 points per additional matching keyword, capped
at the tier maximum.

Texts with no tier keyword at all default to medium at the midpoint of
the medium range rather than to low.
"""

from __future__ import annotations

import structlog

from case_engine.models.domain import UrgencyAssessment, UrgencyLevel
from case_engine.services.analysis.lexicon import Lexicon
from case_engine.utils.text_cleaning import normalize_for_matching

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

POINTS_PER_EXTRA_HIT = 5


class UrgencyScorer:
    """Pure function of (text, category) over a fixed lexicon."""

    def __init__(self, lexicon: Lexicon) -> None:
        self._lexicon = lexicon

    def detect_urgency(self, text: str | None, category: str | None = None) -> UrgencyAssessment:
        """Return the urgency level and 0-100 score for a case description."""
        normalized = normalize_for_matching(text)

        if normalized:
            for tier in self._lexicon.ordered_tiers():
                hits = [kw for kw in tier.keywords_for(category) if kw in normalized]
                if hits:
                    score = min(tier.max_score, tier.min_score + POINTS_PER_EXTRA_HIT * (len(hits) - 1))
                    logger.debug(
                        "urgency_detected",
                        level=tier.level,
                        score=score,
                        hits=len(hits),
                        category=category,
                    )
                    return UrgencyAssessment(level=tier.level, score=score, matched_keywords=hits)

        medium = self._lexicon.tier(UrgencyLevel.MEDIUM)
        return UrgencyAssessment(
            level=UrgencyLevel.MEDIUM,
            score=medium.midpoint,
            matched_keywords=[],
            defaulted=True,
        )
