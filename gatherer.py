#!/usr/bin/env python3
"""
Content gathering for the monthly newsletter.

Fetches every configured RSS/Atom feed concurrently, scores articles for
Kingdom relevance, buckets them by topic and falls back to curated content
when no feed returns anything.
"""

import re
from asyncio import gather, get_running_loop, TimeoutError
from functools import partial
from typing import Any, Dict, List, Optional

import feedparser
from aiohttp import ClientError, ClientSession, ClientTimeout

from config import Config, FeedSource, get_logger
from fallback import fallback_content, monthly_theme
from models import Article, GatheredContent, utc_now_iso
from telemetry import add_span_attributes, trace_span
from utils import session_scope, strip_html

logger = get_logger("gatherer")

HTTP_OK = 200
DESCRIPTION_LIMIT = 300
TOP_STORY_LIMIT = 6
BUCKET_LIMIT = 3

RELEVANCE_KEYWORDS = (
    'kingdom', 'church', 'gospel', 'mission', 'revival', 'disciple',
    'persecution', 'faith', 'prayer', 'worship', 'christian', 'jesus',
    'lord', 'spirit', 'god', 'bible', 'scripture', 'ministry',
    'plant', 'evangel', 'believer', 'salvation', 'bapti', 'pastor',
    'community', 'transform', 'redemp', 'grace', 'mercy', 'hope',
)

BUCKET_PATTERNS = {
    'mission_news': re.compile(r'mission|plant|evangel|unreached', re.I),
    'persecution_updates': re.compile(r'persecut|martyr|imprison|underground', re.I),
    'revival_reports': re.compile(r'revival|awaken|movement|growth|bapti', re.I),
    'culture_influence': re.compile(r'culture|societ|education|government|business|art|media|transform', re.I),
}


def relevance_score(article: Article) -> int:
    """Number of distinct relevance keywords present in title and description."""
    text = f"{article.title} {article.description}".lower()
    return sum(1 for keyword in RELEVANCE_KEYWORDS if keyword in text)


def categorize(articles: List[Article]) -> Dict[str, List[Article]]:
    """Score, filter and bucket articles.

    Zero-score articles are dropped; the rest keep their input order among
    equal scores. Each bucket draws from the sorted relevant list.
    """
    for article in articles:
        article.relevance_score = relevance_score(article)
    relevant = sorted((a for a in articles if a.relevance_score > 0), key=lambda a: a.relevance_score, reverse=True)

    buckets: Dict[str, List[Article]] = {'top_stories': relevant[:TOP_STORY_LIMIT]}
    for name, pattern in BUCKET_PATTERNS.items():
        buckets[name] = [a for a in relevant if pattern.search(f"{a.title} {a.description}")][:BUCKET_LIMIT]
    return buckets


def _entry_to_article(entry: Any, source: FeedSource) -> Optional[Article]:
    title = strip_html(entry.get('title'))
    if not title:
        return None
    summary = entry.get('summary')
    if not summary and entry.get('content'):
        summary = entry['content'][0].get('value')
    tags = entry.get('tags') or []
    category = (tags[0].get('term') if tags else None) or 'General'
    return Article(
        title=title,
        link=(entry.get('link') or '').strip(),
        description=strip_html(summary)[:DESCRIPTION_LIMIT],
        published_at=entry.get('published') or entry.get('updated') or '',
        category=category.strip() or 'General',
        source=source.name,
    )


class ContentGatherer:
    """Fetches and curates articles from the configured feed sources."""

    def __init__(self, config: Config, session: Optional[ClientSession] = None):
        self.config = config
        self.session = session

    async def _fetch_feed(self, source: FeedSource, session: ClientSession) -> List[Article]:
        """Fetch one feed; any failure yields an empty list."""
        try:
            async with session.get(
                source.url,
                headers={'User-Agent': self.config.USER_AGENT},
                timeout=ClientTimeout(total=self.config.FEED_TIMEOUT),
            ) as response:
                if response.status != HTTP_OK:
                    logger.warning(f"Feed {source.name} returned HTTP {response.status}")
                    return []
                content = await response.read()
        except TimeoutError:
            logger.warning(f"Feed {source.name} timed out after {self.config.FEED_TIMEOUT}s")
            return []
        except (ClientError, OSError) as e:
            logger.warning(f"Feed {source.name} failed: {e}")
            return []

        try:
            # feedparser is not async, run in executor
            feed = await get_running_loop().run_in_executor(None, partial(feedparser.parse, content))
        except (ValueError, TypeError) as e:
            logger.warning(f"Feed {source.name} could not be parsed: {e}")
            return []
        if feed.bozo and not feed.entries:
            logger.warning(f"Feed {source.name} could not be parsed: {feed.get('bozo_exception')}")
            return []

        articles = []
        for entry in feed.entries[:self.config.FEED_ITEM_LIMIT]:
            article = _entry_to_article(entry, source)
            if article:
                articles.append(article)
        logger.info(f"Feed {source.name}: {len(articles)} articles ({feed.get('version') or 'unknown format'})")
        return articles

    async def gather_web_content(self) -> List[Article]:
        """Fetch all feeds concurrently and flatten the results in source order."""
        logger.info(f"📡 Fetching {len(self.config.FEED_SOURCES)} feeds")
        async with session_scope(self.session) as session:
            results = await gather(
                *(self._fetch_feed(source, session) for source in self.config.FEED_SOURCES),
                return_exceptions=True,
            )
        articles: List[Article] = []
        for source, result in zip(self.config.FEED_SOURCES, results):
            if isinstance(result, BaseException):
                logger.warning(f"Feed {source.name} raised {type(result).__name__}: {result}")
                continue
            articles.extend(result)
        logger.info(f"Total articles gathered: {len(articles)}")
        return articles

    @trace_span(
        "gather_content",
        tracer_name="gatherer",
        attr_from_args=lambda self, month, year: {"newsletter.month": month, "newsletter.year": year},
    )
    async def gather(self, month: int, year: int) -> GatheredContent:
        """Gather content for an issue, falling back to curated stories."""
        logger.info(f"Gathering content for {month}/{year}")
        articles = await self.gather_web_content()

        if articles:
            buckets = categorize(articles)
            content = GatheredContent(monthly_theme=monthly_theme(month), is_fallback=False, **buckets)
        else:
            logger.info("No articles from any feed; using fallback content")
            content = fallback_content(month)

        content.metadata = {
            'month': month,
            'year': year,
            'gatheredAt': utc_now_iso(),
            'articleCount': len(articles),
            'usedFallback': content.is_fallback,
        }
        add_span_attributes(**{'feed.articles': len(articles), 'newsletter.fallback': content.is_fallback})
        logger.info(
            f"✅ Content gathering complete: {len(articles)} articles, "
            f"{len(content.top_stories)} top stories, fallback={content.is_fallback}"
        )
        return content
