"""Rank available advocates against a case.

Scoring is deliberately simple and explainable:

    base  = round_half_up((rating * 10 + success_rate) / 2)
    score = min(100, base + specialization_boost)   if the advocate
                                                     practises the case's
                                                     category
Only verified advocates who are accepting cases and are below the load
ceiling are considered. Ordering is fully deterministic:
score desc, experience desc, rating desc, advocate id asc.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

import structlog

from case_engine.models.domain import (
    CaseProfile,
    ProviderProfile,
    RankingResult,
    Recommendation,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

NO_PROVIDERS_MESSAGE = "No providers available for this case right now"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative scores (Python's round() is banker's)."""
    return math.floor(value + 0.5)


def base_score(provider: ProviderProfile) -> int:
    return round_half_up((provider.rating * 10 + provider.success_rate) / 2)


def specializes_in(provider: ProviderProfile, category: str) -> bool:
    """Match "Property" against "property", "Property Law", "property law"."""
    wanted = category.strip().lower()
    if not wanted:
        return False
    for spec in provider.specializations:
        normalized = spec.strip().lower()
        if normalized.endswith(" law"):
            normalized = normalized[: -len(" law")]
        if normalized == wanted:
            return True
    return False


class MatchRanker:
    """Stateless ranker; safe to share across concurrent requests."""

    def __init__(
        self,
        *,
        max_results: int = 5,
        specialization_boost: int = 10,
        max_case_load: int = 15,
    ) -> None:
        self._max_results = max_results
        self._specialization_boost = specialization_boost
        self._max_case_load = max_case_load

    def is_eligible(self, provider: ProviderProfile) -> bool:
        return (
            provider.verified
            and provider.accepting_cases
            and provider.current_case_load < self._max_case_load
        )

    def rank(self, case: CaseProfile, candidates: Iterable[ProviderProfile]) -> RankingResult:
        """Return at most ``max_results`` recommendations, best first."""
        eligible = [p for p in candidates if self.is_eligible(p)]
        if not eligible:
            logger.info("no_providers_available", case_id=case.id, category=case.category)
            return RankingResult(
                recommendations=[],
                total_eligible=0,
                message=NO_PROVIDERS_MESSAGE,
            )

        scored = [(self._score(case, p), p) for p in eligible]
        scored.sort(key=lambda item: (-item[0], -item[1].experience_years, -item[1].rating, item[1].id))

        recommendations = [
            Recommendation(
                advocate_id=provider.id,
                rank=position,
                match_score=score,
                reasons=self._reasons(case, provider),
                name=provider.name,
                experience_years=provider.experience_years,
                rating=provider.rating,
                success_rate=provider.success_rate,
            )
            for position, (score, provider) in enumerate(scored[: self._max_results], start=1)
        ]

        logger.info(
            "providers_ranked",
            case_id=case.id,
            eligible=len(eligible),
            returned=len(recommendations),
            top_score=recommendations[0].match_score,
        )
        return RankingResult(recommendations=recommendations, total_eligible=len(eligible))

    def _score(self, case: CaseProfile, provider: ProviderProfile) -> int:
        score = base_score(provider)
        if specializes_in(provider, case.category):
            score += self._specialization_boost
        return max(0, min(100, score))

    def _reasons(self, case: CaseProfile, provider: ProviderProfile) -> list[str]:
        reasons: list[str] = []
        if specializes_in(provider, case.category):
            reasons.append(f"Specializes in {case.category} matters")
        reasons.append(f"Rated {provider.rating:.1f}/5")
        reasons.append(f"{provider.success_rate:.0f}% success rate")
        if provider.experience_years:
            reasons.append(f"{provider.experience_years} years of experience")
        if case.city and provider.city and case.city.strip().lower() == provider.city.strip().lower():
            reasons.append(f"Practises in {provider.city}")
        return reasons
