"""Pydantic models for enrichment results and the exported condition document.

Output models serialise with camelCase keys (``conditionHash``, ``shortName``,
``categorySlug`` ...) because that is what the registry importer reads.
"""

from __future__ import annotations

from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field


# ── Categories ───────────────────────────────────────────────────────

class Category(str, Enum):
    SPORTS = "sports"
    CRYPTO = "crypto"
    WEATHER = "weather"
    TECH_SCIENCE = "tech-science"
    ECONOMY_FINANCE = "economy-finance"
    GEOPOLITICS = "geopolitics"
    CULTURE = "culture"

    @classmethod
    def parse(cls, value: str | None) -> "Category | None":
        """Return the matching category for a slug, or None."""
        if not value:
            return None
        slug = value.strip().lower()
        for member in cls:
            if member.value == slug:
                return member
        return None


DEFAULT_CATEGORY = Category.GEOPOLITICS

# Internal sentinel for "no rule matched"; never written to output
UNKNOWN = "unknown"

CategoryGuess = Union[Category, str]


# ── Enrichment ───────────────────────────────────────────────────────

class Source(str, Enum):
    RULE = "rule"
    LLM = "llm"
    FALLBACK = "fallback"


class EnrichmentResult(BaseModel):
    """Final category + short name for one market."""
    model_config = ConfigDict(frozen=True)

    market_id: str
    category: Category
    short_name: str = Field(min_length=1)
    category_source: Source = Source.RULE
    short_name_source: Source = Source.RULE


# ── Output document ──────────────────────────────────────────────────

class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class ConditionRecord(_CamelModel):
    condition_hash: str = Field(alias="conditionHash")
    question: str
    short_name: str = Field(alias="shortName")
    end_date: str = Field(alias="endDate")
    description: str = ""
    similar_markets: list[str] = Field(default_factory=list, alias="similarMarkets")
    category_slug: str = Field(alias="categorySlug")
    chain_id: int = Field(alias="chainId")
    group_title: str | None = Field(default=None, alias="groupTitle")


class ConditionGroup(_CamelModel):
    title: str
    category_slug: str = Field(alias="categorySlug")
    description: str = ""
    conditions: list[ConditionRecord] = Field(default_factory=list)


class DocumentMetadata(_CamelModel):
    generated_at: str = Field(alias="generatedAt")
    source: str = "Polymarket Gamma API"
    total_conditions: int = Field(alias="totalConditions")
    total_groups: int = Field(alias="totalGroups")
    binary_conditions: int = Field(alias="binaryConditions")


class OutputDocument(_CamelModel):
    metadata: DocumentMetadata
    groups: list[ConditionGroup] = Field(default_factory=list)
    ungrouped_conditions: list[ConditionRecord] = Field(
        default_factory=list, alias="ungroupedConditions"
    )

    def iter_conditions(self):
        for group in self.groups:
            yield from group.conditions
        yield from self.ungrouped_conditions
