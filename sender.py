#!/usr/bin/env python3
"""
Newsletter delivery.

Builds the email body from a published issue and sends it one recipient at a
time, in fixed-size batches with a pause between batches. A failed recipient
is counted and logged and never stops the run.
"""

from asyncio import sleep
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from jinja2 import Environment

from config import Config, get_logger
from email_client import EmailClient
from errors import DeliveryError
from models import DeliveryReport, Newsletter, Subscriber
from publisher import markdown_to_html, template_environment
from telemetry import add_span_attributes, trace_span
from utils import batched

logger = get_logger("sender")

UNSUBSCRIBE_SUBJECT = "Unsubscribe from Kingdom Report"


def unsubscribe_url(config: Config) -> str:
    return f"mailto:{config.MINISTRY.email}?subject={quote(UNSUBSCRIBE_SUBJECT)}"


def build_email_html(newsletter: Newsletter, config: Config, env: Optional[Environment] = None) -> str:
    """Render the email version of an issue."""
    template = (env or template_environment(config)).get_template('email.html')
    sections = [
        {'key': key, 'title': section.title, 'html': markdown_to_html(section.content)}
        for key, section in newsletter.ordered_sections()
        if section.content
    ]
    return template.render(
        meta=newsletter.metadata,
        sections=sections,
        ministry=config.MINISTRY,
        unsubscribe_url=unsubscribe_url(config),
    )


def write_preview(html: str, path: str) -> str:
    """Write rendered HTML to ``path`` for review in a browser."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(html, encoding='utf-8')
    logger.info(f"Preview saved to: {target}")
    return str(target)


class NewsletterSender:
    """Batch sender for newsletter emails."""

    def __init__(self, config: Config, client: EmailClient):
        self.config = config
        self.client = client

    @trace_span(
        "send_all",
        tracer_name="sender",
        attr_from_args=lambda self, subscribers, subject, html: {"sender.recipients": len(subscribers)},
    )
    async def send_all(self, subscribers: List[Subscriber], subject: str, html: str) -> DeliveryReport:
        """Send ``html`` to every subscriber.

        Exactly one send is attempted per subscriber, and the configured delay
        is awaited between batches only.
        """
        report = DeliveryReport()
        batch_size = self.config.SEND_BATCH_SIZE
        batches = list(batched(subscribers, batch_size))
        logger.info(f"📧 Sending to {len(subscribers)} subscriber(s) in {len(batches)} batch(es)")

        for number, batch in enumerate(batches, 1):
            logger.info(f"Batch {number}: sending to {len(batch)} subscriber(s)")
            for subscriber in batch:
                try:
                    await self.client.send_email(subscriber.email, subject, html)
                    report.sent += 1
                    logger.info(f"Sent: {subscriber.email}")
                except DeliveryError as e:
                    report.failed += 1
                    logger.error(f"FAILED: {subscriber.email} - {e}")
            if number < len(batches):
                logger.info(f"Waiting {self.config.SEND_BATCH_DELAY}s before next batch")
                await sleep(self.config.SEND_BATCH_DELAY)

        add_span_attributes(**{"sender.sent": report.sent, "sender.failed": report.failed})
        logger.info(f"✅ Delivery complete. Sent: {report.sent} | Failed: {report.failed} | Total: {report.total}")
        return report
