#!/usr/bin/env python3
"""
Tests for portfolio relevance scoring and feed filters.
"""

import math
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from portfolio_intel.models import (
    Impact, MentionType, NewsArticle, NewsCategory, RankedNewsItem, RelatedSymbol,
    portfolio_weight, portfolio_weights,
)
from portfolio_intel.scoring import (
    FeedFilter,
    PortfolioRelevanceScorer,
    apply_filter,
    category_stats,
    high_impact_news,
    most_mentioned_symbols,
    news_stats,
)

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_article(
    external_id="1",
    hours_ago=1.0,
    symbols=("AAPL",),
    impact=Impact.NEUTRAL,
    category=NewsCategory.GENERAL,
):
    return NewsArticle(
        external_id=external_id,
        headline=f"Headline {external_id}",
        published_at=NOW - timedelta(hours=hours_ago),
        impact=impact,
        category=category,
        related_symbols=[
            RelatedSymbol(symbol=s, relevance_score=0.9, mention_type=MentionType.PRIMARY) for s in symbols
        ],
    )


def ranked(article, score):
    return RankedNewsItem(article=article, relevance_score=score)


class TestPortfolioWeight:

    def test_log_of_shares_plus_one(self):
        assert portfolio_weight(100) == pytest.approx(math.log(101))
        assert portfolio_weight(0) == 0.0

    def test_negative_shares_clamp_to_zero(self):
        assert portfolio_weight(-5) == 0.0

    def test_increases_with_shares(self):
        assert portfolio_weight(10) < portfolio_weight(11) < portfolio_weight(1000)

    def test_weights_map_uppercases_symbols(self):
        assert portfolio_weights({" aapl": 100}) == {"AAPL": pytest.approx(math.log(101))}


class TestPortfolioRelevanceScorer:
    """Test score composition and ranking."""

    def setup_method(self):
        self.scorer = PortfolioRelevanceScorer(clock=lambda: NOW)

    def test_recency_decays_over_a_day(self):
        assert self.scorer.recency_score(NOW, NOW) == 1.0
        assert self.scorer.recency_score(NOW - timedelta(hours=12), NOW) == pytest.approx(0.5)
        assert self.scorer.recency_score(NOW - timedelta(hours=30), NOW) == 0.0

    def test_full_score_composition(self):
        article = make_article(impact=Impact.POSITIVE, category=NewsCategory.EARNINGS)

        score = self.scorer.score(article, ["AAPL"], {"AAPL": math.log(101)})

        expected = (23 / 24) * 10 + math.log(101) * 5 + 3 + 5
        assert score == pytest.approx(expected)
        assert score == pytest.approx(40.659, abs=1e-3)

    def test_missing_weight_defaults_to_one(self):
        article = make_article(hours_ago=48)
        assert self.scorer.score(article, ["AAPL"], {}) == pytest.approx(5.0)

    def test_only_held_symbols_count(self):
        article = make_article(hours_ago=48, symbols=("AAPL", "MSFT"))
        assert self.scorer.score(article, ["MSFT"], {"MSFT": 2.0, "AAPL": 9.0}) == pytest.approx(10.0)

    def test_category_boosts(self):
        old = dict(hours_ago=48, symbols=())
        assert self.scorer.score(make_article(category=NewsCategory.REGULATORY, **old), [], {}) == 4.0
        assert self.scorer.score(make_article(category=NewsCategory.PRODUCT, **old), [], {}) == 2.0
        assert self.scorer.score(make_article(category=NewsCategory.MARKET, **old), [], {}) == 0.0

    def test_negative_impact_is_boosted_too(self):
        article = make_article(hours_ago=48, symbols=(), impact=Impact.NEGATIVE)
        assert self.scorer.score(article, [], {}) == 3.0

    def test_rank_orders_by_score_then_recency(self):
        earnings = make_article("earnings", hours_ago=30, category=NewsCategory.EARNINGS)
        older_plain = make_article("older", hours_ago=40)
        newer_plain = make_article("newer", hours_ago=30)

        items = self.scorer.rank([older_plain, earnings, newer_plain], ["AAPL"], {"AAPL": 1.0})

        assert [item.article.external_id for item in items] == ["earnings", "newer", "older"]
        assert items[0].relevance_score == pytest.approx(10.0)

    def test_rank_does_not_mutate_articles(self):
        article = make_article()
        self.scorer.rank([article], ["AAPL"], {"AAPL": 3.0})
        assert article.related_symbols[0].relevance_score == 0.9


class TestFeedFilter:
    """Test narrowing a ranked feed."""

    def setup_method(self):
        self.items = [
            ranked(make_article("a", hours_ago=2, impact=Impact.POSITIVE, category=NewsCategory.EARNINGS), 20.0),
            ranked(make_article("b", hours_ago=24 * 3, impact=Impact.NEGATIVE), 12.0),
            ranked(make_article("c", hours_ago=24 * 20), 8.0),
            ranked(make_article("d", hours_ago=24 * 40), 4.0),
        ]

    def ids(self, items):
        return [item.article.external_id for item in items]

    def test_no_filter_returns_everything(self):
        assert apply_filter(self.items, None, NOW) is self.items
        assert self.ids(apply_filter(self.items, FeedFilter(), NOW)) == ["a", "b", "c", "d"]

    def test_impact_and_category(self):
        assert self.ids(apply_filter(self.items, FeedFilter(impact="negative"), NOW)) == ["b"]
        assert self.ids(apply_filter(self.items, FeedFilter(category="earnings"), NOW)) == ["a"]

    def test_all_means_no_constraint(self):
        feed_filter = FeedFilter(impact="all", category="all")
        assert feed_filter.impact is None
        assert len(apply_filter(self.items, feed_filter, NOW)) == 4

    def test_timeframes(self):
        assert self.ids(apply_filter(self.items, FeedFilter(timeframe="today"), NOW)) == ["a"]
        assert self.ids(apply_filter(self.items, FeedFilter(timeframe="week"), NOW)) == ["a", "b"]
        assert self.ids(apply_filter(self.items, FeedFilter(timeframe="month"), NOW)) == ["a", "b", "c"]

    def test_min_score_and_limit(self):
        feed_filter = FeedFilter(min_relevance_score=5.0, limit=2)
        assert self.ids(apply_filter(self.items, feed_filter, NOW)) == ["a", "b"]

    def test_invalid_values_are_rejected(self):
        with pytest.raises(ValidationError):
            FeedFilter(timeframe="decade")
        with pytest.raises(ValidationError):
            FeedFilter(limit=0)


class TestFeedStats:

    def setup_method(self):
        self.items = [
            ranked(make_article("1", symbols=("AAPL", "MSFT"), impact=Impact.POSITIVE,
                                category=NewsCategory.EARNINGS), 20.0),
            ranked(make_article("2", impact=Impact.POSITIVE), 4.0),
            ranked(make_article("3", symbols=("MSFT",), impact=Impact.NEGATIVE), 6.0),
        ]

    def test_news_stats(self):
        stats = news_stats(self.items)

        assert stats['total'] == 3
        assert stats['positive'] == 2
        assert stats['negative'] == 1
        assert stats['neutral'] == 0
        assert stats['positive_percentage'] == 67
        assert stats['negative_percentage'] == 33

    def test_empty_stats(self):
        assert news_stats([])['positive_percentage'] == 0

    def test_category_stats(self):
        assert category_stats(self.items) == {"earnings": 1, "general": 2}

    def test_most_mentioned_symbols(self):
        assert most_mentioned_symbols(self.items) == [("AAPL", 2), ("MSFT", 2)]

    def test_high_impact_news(self):
        assert [i.article.external_id for i in high_impact_news(self.items)] == ["1", "3"]
