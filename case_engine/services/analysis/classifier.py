"""Deterministic legal-category classifier.

Every category in the lexicon is scored by summing the weights of its
keywords that occur as substrings of the normalised text. The highest
score wins; ties go to the category declared first in the lexicon.

    confidence = min(95, 60 + 2 * score)     when anything matched
    confidence = lexicon.default_confidence  for the default category

A manual category hint beats inference unless some other category scores
strictly higher than the hint's own keywords do. Classification never
raises: empty or unreadable text degrades to the default category.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from case_engine.models.domain import Classification, ClassificationHints
from case_engine.services.analysis.lexicon import Lexicon
from case_engine.utils.text_cleaning import normalize_for_matching

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

BASE_CONFIDENCE = 60
CONFIDENCE_PER_POINT = 2
MAX_CONFIDENCE = 95


@dataclass
class CategoryScore:
    """Score of one category against one text."""

    name: str
    order: int
    score: int = 0
    matched: list[str] = field(default_factory=list)


def score_categories(text: str, lexicon: Lexicon) -> list[CategoryScore]:
    """Score every category in declaration order against already-normalised text."""
    scores: list[CategoryScore] = []
    for order, rules in enumerate(lexicon.categories):
        entry = CategoryScore(name=rules.name, order=order)
        if text:
            for kw in rules.keywords:
                if kw.keyword in text:
                    entry.score += kw.weight
                    entry.matched.append(kw.keyword)
        scores.append(entry)
    return scores


def _confidence(score: int) -> int:
    return min(MAX_CONFIDENCE, BASE_CONFIDENCE + CONFIDENCE_PER_POINT * score)


def _canonical_category(name: str, lexicon: Lexicon) -> str:
    """Return the lexicon's spelling of ``name`` if it is a known category."""
    for known in lexicon.category_names():
        if known.lower() == name.strip().lower():
            return known
    return name.strip()


class CaseClassifier:
    """Keyword-weight classifier over a fixed lexicon."""

    def __init__(self, lexicon: Lexicon, *, low_confidence_threshold: int = 70) -> None:
        self._lexicon = lexicon
        self._low_confidence_threshold = low_confidence_threshold

    @property
    def lexicon(self) -> Lexicon:
        return self._lexicon

    def classify(
        self,
        text: str | None,
        hints: ClassificationHints | None = None,
    ) -> Classification:
        """Classify free text into a legal category with a confidence score."""
        normalized = normalize_for_matching(text)
        scores = score_categories(normalized, self._lexicon)

        # max() keeps the first maximal element, i.e. lexicon order on ties.
        best = max(scores, key=lambda s: s.score)
        inferred = best if best.score > 0 else None

        hint = hints.category.strip() if hints is not None and hints.category else ""
        if hint:
            result = self._apply_hint(hint, scores, inferred)
        elif inferred is not None:
            result = self._build(inferred.name, inferred.score, inferred.matched)
        else:
            result = self._build_default()

        logger.debug(
            "case_classified",
            category=result.category,
            confidence=result.confidence,
            score=result.score,
            hinted=bool(hint),
            suggested_category=result.suggested_category,
        )
        return result

    def _apply_hint(
        self,
        hint: str,
        scores: list[CategoryScore],
        inferred: CategoryScore | None,
    ) -> Classification:
        hint_name = _canonical_category(hint, self._lexicon)
        hint_score = next((s for s in scores if s.name == hint_name), None)
        own_score = hint_score.score if hint_score is not None else 0
        own_matched = hint_score.matched if hint_score is not None else []

        if inferred is not None and inferred.name != hint_name and inferred.score > own_score:
            return self._build(inferred.name, inferred.score, inferred.matched)

        suggested = None
        if inferred is not None and inferred.name != hint_name:
            suggested = inferred.name
        return self._build(hint_name, own_score, own_matched, suggested=suggested)

    def _build(
        self,
        category: str,
        score: int,
        matched: list[str],
        *,
        suggested: str | None = None,
    ) -> Classification:
        confidence = _confidence(score) if score > 0 else self._lexicon.default_confidence
        return Classification(
            category=category,
            confidence=confidence,
            score=score,
            matched_keywords=list(matched),
            suggested_category=suggested,
            low_confidence=confidence < self._low_confidence_threshold,
            lexicon_version=self._lexicon.version,
        )

    def _build_default(self) -> Classification:
        return self._build(self._lexicon.default_category, 0, [])
