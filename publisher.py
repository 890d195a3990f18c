#!/usr/bin/env python3
"""
Newsletter publisher.

Writes a generated issue to the newsletters directory as dated JSON and HTML,
refreshes ``latest.json`` and keeps ``archive.json`` as a newest-first index
with at most one entry per month.

The archive is read, modified and written back without locking; two
publishes running at the same time can lose an entry.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markdown import markdown as md

from config import Config, get_logger
from models import ArchiveEntry, Newsletter, PublishResult
from telemetry import add_span_attributes, trace_span

logger = get_logger("publisher")

LATEST_FILE = "latest.json"
ARCHIVE_FILE = "archive.json"


def markdown_to_html(text: str) -> str:
    """Convert Markdown to HTML using the python-Markdown library."""
    return md(text or "", extensions=['extra', 'sane_lists'])


def template_environment(config: Config) -> Environment:
    return Environment(
        loader=FileSystemLoader(config.TEMPLATES_DIR),
        autoescape=select_autoescape(['html']),
    )


class NewsletterPublisher:
    """Persists newsletters and maintains the archive index."""

    def __init__(self, config: Config, output_dir: Optional[str] = None):
        self.config = config
        self.output_dir = Path(output_dir or config.NEWSLETTER_DIR)
        self.env = template_environment(config)

    @property
    def latest_path(self) -> Path:
        return self.output_dir / LATEST_FILE

    @property
    def archive_path(self) -> Path:
        return self.output_dir / ARCHIVE_FILE

    def render_html(self, newsletter: Newsletter) -> str:
        """Render the web/archive HTML page for an issue."""
        template = self.env.get_template('newsletter.html')
        sections = [
            {'key': key, 'title': section.title, 'html': markdown_to_html(section.content)}
            for key, section in newsletter.ordered_sections()
        ]
        return template.render(
            meta=newsletter.metadata,
            sections=sections,
            ministry=self.config.MINISTRY,
        )

    def _write_json(self, file_path: Path, data: Any) -> None:
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def load_archive(self) -> List[Dict[str, Any]]:
        """Read archive.json; anything missing or malformed yields an empty list."""
        if not self.archive_path.exists():
            return []
        try:
            with open(self.archive_path, 'r', encoding='utf-8') as f:
                archive = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not parse existing {self.archive_path}, starting fresh: {e}")
            return []
        if not isinstance(archive, list):
            logger.warning(f"{self.archive_path} does not hold a list, starting fresh")
            return []
        return archive

    def update_archive(self, entry: ArchiveEntry) -> List[Dict[str, Any]]:
        """Replace any entries for ``entry.date_key`` and put the new one first."""
        archive = [
            item for item in self.load_archive()
            if not (isinstance(item, dict) and item.get('dateKey') == entry.date_key)
        ]
        archive.insert(0, entry.to_dict())
        self._write_json(self.archive_path, archive)
        logger.info(f"Updated archive: {self.archive_path} ({len(archive)} entries)")
        return archive

    @trace_span(
        "publish_newsletter",
        tracer_name="publisher",
        attr_from_args=lambda self, newsletter: {"newsletter.date_key": newsletter.metadata.date_key},
    )
    def publish(self, newsletter: Newsletter) -> PublishResult:
        """Write the issue's JSON, latest pointer, HTML page and archive entry."""
        meta = newsletter.metadata
        key = meta.date_key
        logger.info(f"📰 Publishing newsletter: {key}")
        self.output_dir.mkdir(parents=True, exist_ok=True)

        data = newsletter.to_dict()
        json_path = self.output_dir / f"{key}.json"
        self._write_json(json_path, data)
        logger.info(f"Saved JSON: {json_path}")

        self._write_json(self.latest_path, data)
        logger.info(f"Saved latest: {self.latest_path}")

        html_path = self.output_dir / f"{key}.html"
        html_path.write_text(self.render_html(newsletter), encoding='utf-8')
        logger.info(f"Saved HTML: {html_path}")

        archive = self.update_archive(ArchiveEntry(
            date_key=key,
            title=meta.title,
            date_string=meta.date_string,
            theme=meta.theme.theme if meta.theme else None,
            generated_at=meta.generated_at,
            json_file=json_path.name,
            html_file=html_path.name,
        ))

        add_span_attributes(**{"archive.entries": len(archive)})
        logger.info(f"✅ Publishing complete: {key}")
        return PublishResult(
            json_path=str(json_path),
            html_path=str(html_path),
            latest_path=str(self.latest_path),
            archive_path=str(self.archive_path),
            date_key=key,
            archive_entries=len(archive),
        )

    def load_latest(self) -> Optional[Newsletter]:
        """Read latest.json back into a Newsletter, or None if unavailable."""
        if not self.latest_path.exists():
            logger.warning(f"No latest newsletter at {self.latest_path}")
            return None
        try:
            with open(self.latest_path, 'r', encoding='utf-8') as f:
                return Newsletter.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Could not read {self.latest_path}: {e}")
            return None
