#!/usr/bin/env python3
"""
Kingdom Report Orchestrator

Command-line entry point for the ministry's automation jobs:

- generate: gather feed content, write the six sections with the completion
  API and publish the issue (JSON, HTML, latest pointer, archive)
- send: email the latest issue to subscribers (or a test address / preview)
- alert: push a "we're live" alert to ntfy, Telegram and email
- subscribers: list newsletter subscribers
- serve: run the newsletter signup endpoint

Each run is independent; the only shared state is the files the publisher
writes.
"""

import argparse
import asyncio
import sys
import time
from datetime import datetime
from typing import Optional

from aiohttp import web

from config import Config, get_logger, load_config, setup_logging
from email_client import EmailClient
from errors import KingdomReportError
from gatherer import ContentGatherer
from generator import NewsletterGenerator
from models import Subscriber
from notifier import PLATFORMS, LiveAlertNotifier, default_message
from publisher import NewsletterPublisher
from sender import NewsletterSender, build_email_html, write_preview
from signup import create_app
from subscribers import SubscriberSource, deduplicate_subscribers, format_emails_only, format_subscriber_list
from telemetry import init_telemetry, trace_span
from utils import format_duration, session_scope

# Module-specific logger
logger = get_logger("orchestrator")


class KingdomReportOrchestrator:
    """Runs one job per invocation and reports success as a bool."""

    def __init__(self, config: Config) -> None:
        self.config = config

    async def run_generate(self, month: int, year: int, dry_run: bool = False) -> bool:
        """Gather, generate and (unless dry-run) publish one issue."""
        logger.info(f"🚀 Generating {self.config.NEWSLETTER_TITLE} for {month}/{year} ({'DRY RUN' if dry_run else 'LIVE'})")
        try:
            return await self._run_generate_impl(month, year, dry_run)
        except KingdomReportError as e:
            logger.error(f"❌ Newsletter generation failed: {e}")
            return False

    @trace_span(
        "run_generate",
        tracer_name="orchestrator",
        attr_from_args=lambda self, month, year, dry_run=False: {"newsletter.month": month, "newsletter.year": year, "dry_run": dry_run},
    )
    async def _run_generate_impl(self, month: int, year: int, dry_run: bool) -> bool:
        start_time = time.time()
        # Fail before any network activity if the completion key is missing
        self.config.require("GROQ_API_KEY")

        logger.info("📡 [Step 1/3] Gathering content")
        content = await ContentGatherer(self.config).gather(month, year)

        logger.info("🧠 [Step 2/3] Generating newsletter sections")
        newsletter = await NewsletterGenerator(self.config).generate_newsletter(content, month, year)

        if dry_run:
            logger.info("[Step 3/3] DRY RUN - skipping publish")
            for _, section in newsletter.ordered_sections():
                logger.info(f"  {section.title}: {section.content[:100]}...")
        else:
            logger.info("📰 [Step 3/3] Publishing newsletter")
            result = NewsletterPublisher(self.config).publish(newsletter)
            logger.info(f"  JSON:    {result.json_path}")
            logger.info(f"  HTML:    {result.html_path}")
            logger.info(f"  Latest:  {result.latest_path}")
            logger.info(f"  Archive: {result.archive_path} ({result.archive_entries} entries)")

        logger.info(f"🎉 Generation completed in {format_duration(time.time() - start_time)}")
        return True

    async def run_send(self, test_email: Optional[str] = None, preview: bool = False) -> bool:
        """Send the latest issue to subscribers, a single test address, or a preview file."""
        mode = "PREVIEW" if preview else f"TEST ({test_email})" if test_email else "SEND TO ALL"
        logger.info(f"📧 Running newsletter sender ({mode})")
        try:
            return await self._run_send_impl(test_email, preview)
        except KingdomReportError as e:
            logger.error(f"❌ Newsletter sending failed: {e}")
            return False

    @trace_span("run_send", tracer_name="orchestrator")
    async def _run_send_impl(self, test_email: Optional[str], preview: bool) -> bool:
        publisher = NewsletterPublisher(self.config)
        newsletter = publisher.load_latest()
        if newsletter is None:
            logger.error(f"❌ No newsletter content found at {publisher.latest_path}")
            return False
        theme = newsletter.metadata.theme.theme if newsletter.metadata.theme else "No theme"
        logger.info(f"Newsletter: {newsletter.metadata.date_string} - \"{theme}\"")

        html = build_email_html(newsletter, self.config)
        if preview:
            write_preview(html, self.config.PREVIEW_PATH)
            return True

        self.config.require("RESEND_API_KEY")
        if test_email:
            recipients = [Subscriber(name="Test Subscriber", email=test_email)]
        else:
            self.config.require("NETLIFY_ACCESS_TOKEN", "NETLIFY_SITE_ID")
            recipients = deduplicate_subscribers(await SubscriberSource(self.config).get_subscribers())
            if not recipients:
                logger.info("No subscribers found; nothing to send")
                return True

        async with session_scope() as session:
            sender = NewsletterSender(self.config, EmailClient(self.config, session))
            await sender.send_all(recipients, newsletter.subject, html)
        return True

    async def run_alert(self, message: str, platform: str = "all", test: bool = False) -> bool:
        """Send a live alert; channel failures are reported, not fatal."""
        try:
            results = await LiveAlertNotifier(self.config).notify(message, platform=platform, test=test)
        except KingdomReportError as e:
            logger.error(f"❌ Live alert failed: {e}")
            return False
        sent = [name for name, ok in results.items() if ok]
        logger.info(f"✅ Live alert finished: {len(sent)}/{len(results)} channel(s) delivered")
        return True

    async def run_subscribers(self, since: Optional[str] = None) -> bool:
        """Print the deduplicated subscriber list."""
        logger.info("👥 Fetching newsletter subscribers")
        source = SubscriberSource(self.config)
        try:
            raw = await (source.get_new_subscribers(since) if since else source.get_subscribers())
        except KingdomReportError as e:
            logger.error(f"❌ Could not fetch subscribers: {e}")
            return False
        subscribers = deduplicate_subscribers(raw)
        print(format_subscriber_list(subscribers))
        print("\nEmail list (for BCC):")
        print(format_emails_only(subscribers))
        return True

    def run_server(self, host: str, port: int) -> None:
        """Serve the signup endpoint until interrupted."""
        logger.info(f"🌐 Serving signup endpoint on http://{host}:{port}")
        web.run_app(create_app(self.config), host=host, port=port, print=None)


def _month(value: str) -> int:
    month = int(value)
    if not 1 <= month <= 12:
        raise argparse.ArgumentTypeError("Invalid month. Must be 1-12.")
    return month


def _year(value: str) -> int:
    year = int(value)
    if year < 2020:
        raise argparse.ArgumentTypeError("Invalid year. Must be 2020 or later.")
    return year


def build_parser() -> argparse.ArgumentParser:
    now = datetime.now()
    parser = argparse.ArgumentParser(description='Kingdom Report newsletter and live-alert automation')
    commands = parser.add_subparsers(dest='command', required=True)

    gen = commands.add_parser('generate', help='Gather, generate and publish the monthly newsletter')
    gen.add_argument('--month', type=_month, default=now.month, help='Target month (1-12)')
    gen.add_argument('--year', type=_year, default=now.year, help='Target year (2020 or later)')
    gen.add_argument('--dry-run', action='store_true', help='Generate but do not save files')

    send = commands.add_parser('send', help='Email the latest newsletter')
    send.add_argument('--test', metavar='EMAIL', help='Send only to this address')
    send.add_argument('--preview', action='store_true', help='Write preview.html instead of sending')

    alert = commands.add_parser('alert', help="Send a 'we're live' alert")
    alert.add_argument('--message', help='Custom alert text')
    alert.add_argument('--test', action='store_true', help='Test mode (ntfy only)')
    alert.add_argument('--platform', choices=PLATFORMS, default='all', help='Channel to alert')

    subs = commands.add_parser('subscribers', help='List newsletter subscribers')
    subs.add_argument('--since', help='Only subscribers who joined after this date (e.g. 2025-01-15)')

    serve = commands.add_parser('serve', help='Run the newsletter signup endpoint')
    serve.add_argument('--host', default='0.0.0.0')
    serve.add_argument('--port', type=int, default=8080)
    return parser


def main(argv: Optional[list] = None):
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging()
    init_telemetry("kingdom-report")

    try:
        config = load_config()
        orchestrator = KingdomReportOrchestrator(config)

        if args.command == 'generate':
            success = asyncio.run(orchestrator.run_generate(args.month, args.year, dry_run=args.dry_run))
        elif args.command == 'send':
            success = asyncio.run(orchestrator.run_send(test_email=args.test, preview=args.preview))
        elif args.command == 'alert':
            message = args.message or default_message(config)
            success = asyncio.run(orchestrator.run_alert(message, platform=args.platform, test=args.test))
        elif args.command == 'subscribers':
            success = asyncio.run(orchestrator.run_subscribers(since=args.since))
        else:
            orchestrator.run_server(args.host, args.port)
            success = True
        sys.exit(0 if success else 1)

    except KeyboardInterrupt:
        logger.info("👋 Orchestrator shutting down")
    except ValueError as e:
        logger.error(f"❌ {e}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"💥 Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
