"""Combined case analysis: category plus urgency.

Analysis is best-effort enrichment, never a gate on submission. If either
analyser blows up (a corrupt custom lexicon, say) the failure is logged
and the affected half degrades to the lexicon defaults.
"""

from __future__ import annotations

import structlog
from prometheus_client import Counter

from case_engine.models.domain import (
    Classification,
    ClassificationHints,
    UrgencyAssessment,
    UrgencyLevel,
)
from case_engine.services.analysis.classifier import CaseClassifier
from case_engine.services.analysis.lexicon import Lexicon
from case_engine.services.analysis.urgency import UrgencyScorer

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

ANALYSIS_COUNT = Counter(
    "case_analysis_total",
    "Case analyses by resulting category and urgency level",
    ["category", "urgency_level"],
)
ANALYSIS_DEGRADED = Counter(
    "case_analysis_degraded_total",
    "Analyses that fell back to defaults because an analyser failed",
    ["component"],
)


class CaseAnalyzer:
    """Runs the classifier and the urgency scorer over one description."""

    def __init__(self, lexicon: Lexicon, *, low_confidence_threshold: int = 70) -> None:
        self._lexicon = lexicon
        self.classifier = CaseClassifier(lexicon, low_confidence_threshold=low_confidence_threshold)
        self.urgency_scorer = UrgencyScorer(lexicon)

    def analyze(
        self,
        text: str | None,
        hints: ClassificationHints | None = None,
    ) -> tuple[Classification, UrgencyAssessment]:
        classification = self._classify(text, hints)

        # Category-specific urgency terms follow the client's own choice when
        # given, otherwise the inferred category.
        urgency_category = hints.category if hints is not None and hints.category else None
        urgency = self._detect_urgency(text, urgency_category or classification.category)

        ANALYSIS_COUNT.labels(
            category=classification.category,
            urgency_level=urgency.level.value,
        ).inc()
        return classification, urgency

    def _classify(self, text: str | None, hints: ClassificationHints | None) -> Classification:
        try:
            return self.classifier.classify(text, hints)
        except Exception:
            logger.exception("classification_degraded")
            ANALYSIS_DEGRADED.labels(component="classifier").inc()
            return Classification(
                category=self._lexicon.default_category,
                confidence=self._lexicon.default_confidence,
                low_confidence=True,
                lexicon_version=self._lexicon.version,
            )

    def _detect_urgency(self, text: str | None, category: str) -> UrgencyAssessment:
        try:
            return self.urgency_scorer.detect_urgency(text, category)
        except Exception:
            logger.exception("urgency_detection_degraded")
            ANALYSIS_DEGRADED.labels(component="urgency").inc()
            return UrgencyAssessment(
                level=UrgencyLevel.MEDIUM,
                score=self._lexicon.tier(UrgencyLevel.MEDIUM).midpoint,
                defaulted=True,
            )
