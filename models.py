#!/usr/bin/env python3
"""
Data models for the newsletter pipeline.

Plain dataclasses passed between the gatherer, generator, publisher and
sender. Newsletters and archive entries are persisted as JSON with camelCase
keys; ``to_dict``/``from_dict`` convert between the two shapes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

SECTION_KEYS: Tuple[str, ...] = (
    "pastoralMessage",
    "kingdomIntelligence",
    "kingdomLiving",
    "prayerFocus",
    "scriptureFocus",
    "upcoming",
)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Article:
    title: str
    link: str
    description: str
    published_at: str
    category: str
    source: str
    relevance_score: int = 0


@dataclass(frozen=True)
class MonthlyTheme:
    theme: str
    focus: str

    def to_dict(self) -> Dict[str, str]:
        return {"theme": self.theme, "focus": self.focus}


@dataclass
class GatheredContent:
    """Curated input for one issue: top stories, topic buckets and the theme."""
    top_stories: List[Article]
    mission_news: List[Article]
    persecution_updates: List[Article]
    revival_reports: List[Article]
    culture_influence: List[Article]
    monthly_theme: MonthlyTheme
    is_fallback: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NewsletterSection:
    title: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "content": self.content}


@dataclass(frozen=True)
class NewsletterMetadata:
    title: str
    subtitle: str
    month: int
    year: int
    month_name: str
    date_string: str
    generated_at: str
    ministry: str
    pastor: str
    content_source: str
    theme: Optional[MonthlyTheme] = None

    @property
    def date_key(self) -> str:
        return date_key(self.year, self.month)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "subtitle": self.subtitle,
            "month": self.month,
            "year": self.year,
            "monthName": self.month_name,
            "dateString": self.date_string,
            "generatedAt": self.generated_at,
            "ministry": self.ministry,
            "pastor": self.pastor,
            "contentSource": self.content_source,
            "theme": self.theme.to_dict() if self.theme else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NewsletterMetadata":
        theme = data.get("theme")
        if isinstance(theme, dict):
            theme = MonthlyTheme(theme=theme.get("theme", ""), focus=theme.get("focus", ""))
        elif isinstance(theme, str) and theme:
            theme = MonthlyTheme(theme=theme, focus="")
        else:
            theme = None
        return cls(
            title=data.get("title", ""),
            subtitle=data.get("subtitle", ""),
            month=int(data["month"]),
            year=int(data["year"]),
            month_name=data.get("monthName", ""),
            date_string=data.get("dateString", ""),
            generated_at=data.get("generatedAt", ""),
            ministry=data.get("ministry", ""),
            pastor=data.get("pastor", ""),
            content_source=data.get("contentSource", "web"),
            theme=theme,
        )


@dataclass(frozen=True)
class Newsletter:
    """One generated issue. ``sections`` is keyed by ``SECTION_KEYS`` in order."""
    metadata: NewsletterMetadata
    sections: Dict[str, NewsletterSection]

    def ordered_sections(self) -> List[Tuple[str, NewsletterSection]]:
        return [(key, self.sections[key]) for key in SECTION_KEYS if key in self.sections]

    @property
    def subject(self) -> str:
        return f"{self.metadata.title} - {self.metadata.date_string}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "sections": {key: section.to_dict() for key, section in self.ordered_sections()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Newsletter":
        sections = data.get("sections") or {}
        return cls(
            metadata=NewsletterMetadata.from_dict(data["metadata"]),
            sections={
                key: NewsletterSection(title=value.get("title", ""), content=value.get("content", ""))
                for key, value in sections.items()
                if isinstance(value, dict)
            },
        )


@dataclass(frozen=True)
class ArchiveEntry:
    date_key: str
    title: str
    date_string: str
    theme: Optional[str]
    generated_at: str
    json_file: str
    html_file: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "dateKey": self.date_key,
            "title": self.title,
            "dateString": self.date_string,
            "theme": self.theme,
            "generatedAt": self.generated_at,
            "jsonFile": self.json_file,
            "htmlFile": self.html_file,
        }


@dataclass
class Subscriber:
    name: str
    email: str
    subscribed_at: Optional[str] = None


@dataclass(frozen=True)
class PublishResult:
    json_path: str
    html_path: str
    latest_path: str
    archive_path: str
    date_key: str
    archive_entries: int


@dataclass
class DeliveryReport:
    sent: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.sent + self.failed


def date_key(year: int, month: int) -> str:
    """Archive key for an issue, e.g. ``2026-03``."""
    return f"{year:04d}-{month:02d}"
