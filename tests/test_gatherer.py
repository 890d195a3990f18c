import asyncio
import logging

import pytest
from aiohttp import ClientConnectionError

from config import FeedSource
from gatherer import ContentGatherer, categorize, relevance_score
from models import Article

RSS_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Mission News</title>
    <item>
      <title>Church planting movement grows in Asia</title>
      <link>https://news.example/planting</link>
      <description>&lt;p&gt;New &lt;b&gt;house churches&lt;/b&gt; among unreached peoples.&lt;/p&gt;</description>
      <category>Missions</category>
      <pubDate>Mon, 02 Mar 2026 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Revival and baptisms on campus</title>
      <link>https://news.example/revival</link>
      <description>Students report spiritual awakening and prayer.</description>
      <pubDate>Tue, 03 Mar 2026 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Local weather report</title>
      <link>https://news.example/weather</link>
      <description>Sunny skies expected.</description>
    </item>
  </channel>
</rss>
"""

ATOM_FEED = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Persecution Watch</title>
  <entry>
    <title>Believers imprisoned for their faith</title>
    <link href="https://watch.example/imprisoned"/>
    <updated>2026-03-04T08:00:00Z</updated>
    <summary>Underground church leaders detained.</summary>
  </entry>
</feed>
"""


def _article(title, description=""):
    return Article(title=title, link="", description=description, published_at="", category="General", source="test")


def test_relevance_counts_distinct_keywords():
    assert relevance_score(_article("Church church CHURCH")) == 1
    assert relevance_score(_article("Prayer and worship")) == 2
    assert relevance_score(_article("Weather report", "Sunny skies")) == 0


def test_categorize_orders_by_score_and_keeps_ties_stable():
    a = _article("Church news")
    b = _article("Prayer and worship")
    c = _article("Faith stories")
    d = _article("Weather report")

    buckets = categorize([a, b, c, d])

    assert buckets["top_stories"] == [b, a, c]
    assert d not in buckets["top_stories"]


def test_categorize_caps_bucket_sizes():
    articles = [_article(f"Mission report {i}") for i in range(8)]

    buckets = categorize(articles)

    assert len(buckets["top_stories"]) == 6
    assert len(buckets["mission_news"]) == 3
    assert buckets["mission_news"] == articles[:3]
    assert buckets["persecution_updates"] == []


@pytest.mark.asyncio
async def test_gather_parses_rss_and_atom(make_config, fake_session, fake_response):
    config = make_config(
        FEED_SOURCES=(
            FeedSource("Mission News", "https://news.example/feed"),
            FeedSource("Persecution Watch", "https://watch.example/atom"),
        ),
    )
    session = fake_session({
        "https://news.example/feed": fake_response(body=RSS_FEED),
        "https://watch.example/atom": fake_response(body=ATOM_FEED),
    })

    content = await ContentGatherer(config, session=session).gather(3, 2026)

    assert content.is_fallback is False
    assert content.metadata["articleCount"] == 4
    assert content.metadata["usedFallback"] is False
    assert content.monthly_theme.theme == "Kingdom Advancement"
    titles = [a.title for a in content.top_stories]
    assert "Local weather report" not in titles
    assert "Believers imprisoned for their faith" in titles

    planting = next(a for a in content.top_stories if a.link == "https://news.example/planting")
    assert planting.description == "New house churches among unreached peoples."
    assert planting.category == "Missions"
    assert planting.source == "Mission News"
    assert planting in content.mission_news
    assert [a.title for a in content.persecution_updates] == ["Believers imprisoned for their faith"]

    for _, _, kwargs in session.calls:
        assert kwargs["headers"]["User-Agent"] == config.USER_AGENT


@pytest.mark.asyncio
async def test_timed_out_feed_is_skipped(make_config, fake_session, fake_response, caplog):
    caplog.set_level(logging.WARNING, logger="KingdomReport")
    config = make_config(
        FEED_SOURCES=(
            FeedSource("Slow", "https://slow.example/feed"),
            FeedSource("Mission News", "https://news.example/feed"),
        ),
    )
    session = fake_session({
        "https://slow.example/feed": asyncio.TimeoutError(),
        "https://news.example/feed": fake_response(body=RSS_FEED),
    })

    content = await ContentGatherer(config, session=session).gather(3, 2026)

    assert content.is_fallback is False
    assert content.metadata["articleCount"] == 3
    assert "Feed Slow timed out after 10s" in caplog.text
    for _, _, kwargs in session.calls:
        assert kwargs["timeout"].total == 10

@pytest.mark.asyncio
async def test_item_limit_per_feed(make_config, fake_session, fake_response):
    config = make_config(FEED_SOURCES=(FeedSource("Mission News", "https://news.example/feed"),), FEED_ITEM_LIMIT=2)
    session = fake_session({"https://news.example/feed": fake_response(body=RSS_FEED)})

    articles = await ContentGatherer(config, session=session).gather_web_content()

    assert [a.link for a in articles] == ["https://news.example/planting", "https://news.example/revival"]


@pytest.mark.asyncio
async def test_failing_feeds_fall_back_to_curated_content(make_config, fake_session, fake_response):
    config = make_config(
        FEED_SOURCES=(
            FeedSource("Down", "https://down.example/feed"),
            FeedSource("Unreachable", "https://unreachable.example/feed"),
            FeedSource("Garbage", "https://garbage.example/feed"),
        ),
    )
    session = fake_session({
        "https://down.example/feed": fake_response(status=500, text="error"),
        "https://unreachable.example/feed": ClientConnectionError("connection refused"),
        "https://garbage.example/feed": fake_response(body=b"this is not xml at all"),
    })

    content = await ContentGatherer(config, session=session).gather(12, 2025)

    assert content.is_fallback is True
    assert content.monthly_theme.theme == "The King Has Come"
    assert len(content.top_stories) == 6
    assert content.metadata["usedFallback"] is True
    assert content.metadata["articleCount"] == 0
    assert content.metadata["month"] == 12
    assert content.metadata["year"] == 2025


@pytest.mark.asyncio
async def test_irrelevant_articles_do_not_trigger_fallback(make_config, fake_session, fake_response):
    feed = b"""<rss version="2.0"><channel><title>X</title>
    <item><title>Weather report</title><description>Sunny skies.</description></item>
    </channel></rss>"""
    config = make_config(FEED_SOURCES=(FeedSource("Weather", "https://weather.example/feed"),))
    session = fake_session({"https://weather.example/feed": fake_response(body=feed)})

    content = await ContentGatherer(config, session=session).gather(5, 2026)

    assert content.is_fallback is False
    assert content.top_stories == []
    assert content.metadata["articleCount"] == 1
