#!/usr/bin/env python3
"""
Newsletter section generator.

Turns gathered content into the six sections of an issue by calling the
completion API once per section, strictly in order and through a rate
limiter. Any section failing after retries aborts the whole issue.
"""

from calendar import month_name as MONTH_NAMES
from typing import Any, Dict, List, Optional

import yaml

from config import Config, get_logger
from errors import ConfigurationError
from llm_client import chat_completion, create_client
from models import (
    SECTION_KEYS,
    Article,
    GatheredContent,
    MonthlyTheme,
    Newsletter,
    NewsletterMetadata,
    NewsletterSection,
    utc_now_iso,
)
from telemetry import trace_span
from utils import RateLimiter, first_saturday, format_long_date

logger = get_logger("generator")

DEFAULT_THEME = MonthlyTheme("The Kingdom of God", "Living under the reign of Christ")


def format_stories(stories: List[Article], placeholder: str) -> str:
    """Numbered story list used as context for the news section."""
    if not stories:
        return placeholder
    lines = []
    for i, story in enumerate(stories, 1):
        lines.append(f"{i}. {story.title} ({story.source})")
        lines.append(f"   {story.description}")
        lines.append("")
    return "\n".join(lines).rstrip()


class NewsletterGenerator:
    """Generates the six newsletter sections for a month."""

    def __init__(self, config: Config, client: Optional[Any] = None, rate_limiter: Optional[RateLimiter] = None):
        self.config = config
        self.prompts = self._load_prompts()
        self.client = client
        self.rate_limiter = rate_limiter or RateLimiter(config.AI_REQUESTS_PER_MINUTE)

    def _load_prompts(self) -> Dict[str, Any]:
        """Load prompt templates from the prompt.yaml configuration file."""
        try:
            with open(self.config.PROMPT_CONFIG_PATH, 'r', encoding='utf-8') as f:
                prompts = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Error loading prompts from {self.config.PROMPT_CONFIG_PATH}: {e}") from e
        sections = prompts.get('sections') or {}
        missing = [key for key in SECTION_KEYS if not (sections.get(key) or {}).get('prompt')]
        if missing or not prompts.get('system'):
            raise ConfigurationError(
                f"Prompt file {self.config.PROMPT_CONFIG_PATH} is missing templates: {', '.join(missing) or 'system'}",
                missing=missing,
            )
        return prompts

    def build_system_prompt(self) -> str:
        ministry = self.config.MINISTRY
        return self.prompts['system'].format(
            ministry_name=ministry.name,
            abbreviation=ministry.abbreviation,
            pastor=ministry.pastor,
            mission=self.config.MISSION,
            location=ministry.location,
            website=ministry.website,
            in_person=ministry.service_times.get('in_person', ''),
            online=ministry.service_times.get('online', ''),
            theology="\n".join(f"- {point}" for point in self.config.THEOLOGY),
        ).strip()

    def build_section_prompt(self, key: str, content: GatheredContent, month: int, year: int) -> str:
        ministry = self.config.MINISTRY
        theme = content.monthly_theme or DEFAULT_THEME
        values = {
            'month_name': MONTH_NAMES[month],
            'year': year,
            'theme': theme.theme,
            'focus': theme.focus,
            'stories': format_stories(content.top_stories, self.prompts.get('no_stories', '')),
            'abbreviation': ministry.abbreviation,
            'location': ministry.location,
            'online': ministry.service_times.get('online', ''),
            'giving_link': ministry.social.get('givelify', ''),
            'first_saturday': format_long_date(first_saturday(year, month)),
        }
        return self.prompts['sections'][key]['prompt'].format(**values).strip()

    async def _generate_section(self, key: str, system_prompt: str, content: GatheredContent, month: int, year: int) -> NewsletterSection:
        title = self.prompts['sections'][key].get('title') or key
        logger.info(f"✍️ Generating section: {title}")
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": self.build_section_prompt(key, content, month, year)},
        ]
        await self.rate_limiter.acquire()
        text = await chat_completion(self.client, messages, self.config, purpose=key)
        return NewsletterSection(title=title, content=text)

    @trace_span(
        "generate_newsletter",
        tracer_name="generator",
        attr_from_args=lambda self, content, month, year: {
            "newsletter.month": month,
            "newsletter.year": year,
            "newsletter.fallback": content.is_fallback,
        },
    )
    async def generate_newsletter(self, content: GatheredContent, month: int, year: int) -> Newsletter:
        """Generate all sections sequentially and assemble the newsletter.

        Raises:
            ConfigurationError: the completion API key is not configured
            CompletionError: a section could not be generated
        """
        if self.client is None:
            self.client = create_client(self.config)

        date_string = f"{MONTH_NAMES[month]} {year}"
        logger.info(f"Generating newsletter: {date_string}")
        system_prompt = self.build_system_prompt()

        sections: Dict[str, NewsletterSection] = {}
        for key in SECTION_KEYS:
            sections[key] = await self._generate_section(key, system_prompt, content, month, year)

        metadata = NewsletterMetadata(
            title=self.config.NEWSLETTER_TITLE,
            subtitle=self.config.NEWSLETTER_SUBTITLE,
            month=month,
            year=year,
            month_name=MONTH_NAMES[month],
            date_string=date_string,
            generated_at=utc_now_iso(),
            ministry=self.config.MINISTRY.name,
            pastor=self.config.MINISTRY.pastor,
            content_source="fallback" if content.is_fallback else "web",
            theme=content.monthly_theme,
        )
        logger.info(f"✅ Newsletter generation complete: {date_string}")
        return Newsletter(metadata=metadata, sections=sections)
