"""Tests for src.engine.category_classifier: keyword category rules."""

from __future__ import annotations

import pytest

from src.connectors.polymarket_gamma import GammaMarket
from src.engine.category_classifier import classify_category, fallback_category, search_text
from src.storage.models import UNKNOWN, Category


def _market(question: str, **kwargs) -> GammaMarket:
    return GammaMarket(condition_id="c1", question=question, **kwargs)


# ═══════════════════════════════════════════════════════════════
#  KEYWORD RULES
# ═══════════════════════════════════════════════════════════════


class TestKeywordRules:
    """One representative question per category."""

    @pytest.mark.parametrize("question,expected", [
        ("Lakers vs. Celtics", Category.SPORTS),
        ("Will Bitcoin reach $150,000 in December?", Category.CRYPTO),
        ("Highest temperature in NYC on January 5?", Category.WEATHER),
        ("Will OpenAI release GPT-5 this year?", Category.TECH_SCIENCE),
        ("Will the Fed cut interest rates in March?", Category.ECONOMY_FINANCE),
        ("Who will win the presidential election?", Category.GEOPOLITICS),
        ("Will Taylor Swift win a Grammy?", Category.CULTURE),
    ])
    def test_keyword_rules(self, question, expected):
        assert classify_category(_market(question)) is expected

    def test_word_boundaries(self):
        # "ai" inside "said" must not count as tech
        m = _market("Will the mayor be reappointed as said?")
        assert classify_category(m) == UNKNOWN

    def test_no_match_is_unknown(self):
        assert classify_category(_market("Will X happen?")) == UNKNOWN


class TestPriority:
    def test_sports_market_type_wins(self):
        m = _market("Will the Fed cut rates?", sports_market_type="moneyline")
        assert classify_category(m) is Category.SPORTS

    def test_sports_before_crypto(self):
        m = _market("Will the Lakers accept crypto payments?")
        assert classify_category(m) is Category.SPORTS


class TestSearchText:
    def test_slug_is_searched(self):
        m = _market("Who wins game 7?", slug="nba-finals-game-7")
        assert classify_category(m) is Category.SPORTS

    def test_series_is_searched(self):
        m = _market("Who wins?", series_slug="premier-league")
        assert classify_category(m) is Category.SPORTS

    def test_lowercase_and_skips_empty_parts(self):
        m = _market("Lakers vs. Celtics", slug="nba-lal-bos")
        assert search_text(m) == "lakers vs. celtics nba-lal-bos"


class TestPurity:
    """Same record in, same answer out, however often it is asked."""

    @pytest.mark.parametrize("question", [
        "Lakers vs. Celtics",
        "Will Bitcoin reach $150,000 in December?",
        "Will X happen?",
    ])
    def test_repeated_calls_agree(self, question):
        m = _market(question, slug="some-slug")
        first = classify_category(m)
        assert classify_category(m) == first
        assert classify_category(m.model_copy()) == first

    def test_record_is_not_modified(self):
        m = _market("Will the Fed cut interest rates in March?")
        before = m.model_dump()
        classify_category(m)
        assert m.model_dump() == before


class TestFallback:
    def test_defaults_to_geopolitics(self):
        assert fallback_category(_market("Will X happen?")) is Category.GEOPOLITICS

    def test_keeps_rule_category(self):
        assert fallback_category(_market("Bitcoin above 100k?")) is Category.CRYPTO
