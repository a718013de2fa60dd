"""Versioned keyword lexicon for classification and urgency detection.

Category and urgency rules are data, not code: a JSON document shipped
next to this module (or supplied via ``LEXICON_PATH``) validated through
the models below. The analysers are pure functions over a ``Lexicon``
instance, so they can be tested against small hand-built lexicons
independently of the production keyword tables.

Keywords are stored lowercase. A keyword given as a bare string weighs
its word count, so multi-word phrases count for more than single words.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from case_engine.core.exceptions import LexiconError
from case_engine.models.domain import UrgencyLevel

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

DEFAULT_LEXICON_PATH = Path(__file__).with_name("lexicon.json")

# Evaluation order for urgency tiers; file order does not matter.
TIER_PRECEDENCE: tuple[UrgencyLevel, ...] = (
    UrgencyLevel.CRITICAL,
    UrgencyLevel.HIGH,
    UrgencyLevel.MEDIUM,
    UrgencyLevel.LOW,
)


class WeightedKeyword(BaseModel):
    """A keyword and how much a match contributes to its category score."""

    model_config = ConfigDict(frozen=True)

    keyword: str = Field(..., min_length=1)
    weight: int = Field(..., ge=1)

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            data = {"keyword": data}
        if isinstance(data, dict) and data.get("weight") is None and isinstance(
            data.get("keyword"), str
        ):
            data = {**data, "weight": max(1, len(data["keyword"].split()))}
        return data

    @field_validator("keyword")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("keyword must not be blank")
        return value


class CategoryRules(BaseModel):
    """Weighted keywords that point at one legal category."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    keywords: list[WeightedKeyword] = Field(..., min_length=1)


class UrgencyTier(BaseModel):
    """Keywords and score range for one urgency level."""

    model_config = ConfigDict(frozen=True)

    level: UrgencyLevel
    min_score: int = Field(..., ge=0, le=100)
    max_score: int = Field(..., ge=0, le=100)
    keywords: list[str] = Field(default_factory=list)
    category_keywords: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("keywords")
    @classmethod
    def _lowercase_keywords(cls, value: list[str]) -> list[str]:
        return [kw.strip().lower() for kw in value if kw.strip()]

    @field_validator("category_keywords")
    @classmethod
    def _lowercase_category_keywords(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        return {
            category.lower(): [kw.strip().lower() for kw in keywords if kw.strip()]
            for category, keywords in value.items()
        }

    @model_validator(mode="after")
    def _check_range(self) -> UrgencyTier:
        if self.min_score > self.max_score:
            msg = f"tier {self.level}: min_score {self.min_score} > max_score {self.max_score}"
            raise ValueError(msg)
        return self

    def keywords_for(self, category: str | None) -> list[str]:
        """Base keywords followed by any extras registered for ``category``."""
        if not category:
            return list(self.keywords)
        extra = self.category_keywords.get(category.lower(), [])
        return [*self.keywords, *(kw for kw in extra if kw not in self.keywords)]

    @property
    def midpoint(self) -> int:
        return (self.min_score + self.max_score) // 2


class Lexicon(BaseModel):
    """The complete, versioned rule set."""

    model_config = ConfigDict(frozen=True)

    version: str = Field(..., min_length=1)
    default_category: str = "General"
    default_confidence: int = Field(default=60, ge=0, le=100)
    categories: list[CategoryRules] = Field(..., min_length=1)
    tiers: list[UrgencyTier]

    @model_validator(mode="after")
    def _check_uniqueness(self) -> Lexicon:
        names = [c.name.lower() for c in self.categories]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate categories: {duplicates}")

        levels = [t.level for t in self.tiers]
        if sorted(levels) != sorted(TIER_PRECEDENCE):
            raise ValueError(f"tiers must define each urgency level exactly once, got {levels}")
        return self

    def tier(self, level: UrgencyLevel) -> UrgencyTier:
        for tier in self.tiers:
            if tier.level == level:
                return tier
        raise KeyError(level)

    def ordered_tiers(self) -> list[UrgencyTier]:
        """Tiers in precedence order, most severe first."""
        return [self.tier(level) for level in TIER_PRECEDENCE]

    def category_names(self) -> list[str]:
        return [c.name for c in self.categories]


def parse_lexicon(data: dict[str, Any]) -> Lexicon:
    """Validate a raw mapping into a ``Lexicon``, raising LexiconError on failure."""
    try:
        return Lexicon.model_validate(data)
    except ValidationError as exc:
        raise LexiconError(
            f"Invalid lexicon: {exc.error_count()} validation error(s)",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


@lru_cache(maxsize=4)
def load_lexicon(path: str | None = None) -> Lexicon:
    """Load and validate the lexicon once per process (per path)."""
    source = Path(path) if path else DEFAULT_LEXICON_PATH
    try:
        raw = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise LexiconError(
            f"Cannot read lexicon from {source}: {exc}",
            details={"path": str(source)},
        ) from exc

    if not isinstance(raw, dict):
        raise LexiconError(
            f"Expected a JSON object in {source}, got {type(raw).__name__}",
            details={"path": str(source)},
        )

    lexicon = parse_lexicon(raw)
    logger.info(
        "lexicon_loaded",
        path=str(source),
        version=lexicon.version,
        categories=len(lexicon.categories),
    )
    return lexicon
