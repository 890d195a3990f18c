#!/usr/bin/env python3
"""
"We're LIVE" alert fan-out.

Sends one alert to every selected channel at the same time: an ntfy push
topic, a Telegram channel and a short email list. Each channel succeeds or
fails on its own and the result maps channel name to success.
"""

from asyncio import gather, sleep
from typing import Any, Dict, List, Optional

from aiohttp import ClientResponse, ClientSession

from config import Config, get_logger
from email_client import EmailClient
from errors import DeliveryError
from publisher import template_environment
from telemetry import add_span_attributes, trace_span
from utils import session_scope

logger = get_logger("notifier")

CHANNELS = ("ntfy", "telegram", "email")
PLATFORMS = ("all",) + CHANNELS
ALERT_TIMEOUT = 30


async def _json_body(resp: ClientResponse) -> Dict[str, Any]:
    """Decode a 2xx reply; a body that is not a JSON object yields ``{}``."""
    try:
        data = await resp.json(content_type=None)
    except ValueError:
        logger.warning(f"Non-JSON reply from {resp.url} (HTTP {resp.status})")
        return {}
    return data if isinstance(data, dict) else {}


def default_message(config: Config) -> str:
    who = config.MINISTRY.pastors or config.MINISTRY.name
    return f"{who} are LIVE now! Tap to watch Kingdom truth, faith, and discipleship."


def select_channels(platform: str = "all", test: bool = False) -> List[str]:
    """Channels to attempt for a platform choice; test mode is ntfy only."""
    if platform not in PLATFORMS:
        raise ValueError(f"Unknown platform {platform!r}; expected one of {', '.join(PLATFORMS)}")
    if test:
        return ["ntfy"]
    return list(CHANNELS) if platform == "all" else [platform]


class LiveAlertNotifier:
    """Delivers live-stream alerts to the configured channels."""

    def __init__(self, config: Config, session: Optional[ClientSession] = None, email_client: Optional[EmailClient] = None):
        self.config = config
        self.session = session
        self.email_client = email_client
        social = config.MINISTRY.social
        self.facebook_url = social.get("facebook", "")
        self.youtube_url = social.get("youtube", "")

    async def send_ntfy(self, message: str, session: ClientSession) -> bool:
        if not self.config.NTFY_TOPIC:
            logger.info("ntfy SKIPPED: no topic configured (set NTFY_TOPIC)")
            return False
        abbreviation = self.config.MINISTRY.abbreviation or self.config.MINISTRY.name
        headers = {
            "Title": f"{abbreviation} is LIVE!",
            "Tags": "rotating_light,video_camera",
            "Click": self.facebook_url,
            "Priority": "5",
            "Actions": f"view, Watch on Facebook, {self.facebook_url}; view, Watch on YouTube, {self.youtube_url}",
        }
        url = f"{self.config.NTFY_SERVER}/{self.config.NTFY_TOPIC}"
        async with session.post(url, data=message.encode("utf-8"), headers=headers) as resp:
            if not 200 <= resp.status < 300:
                raise DeliveryError(f"ntfy error: {resp.status}", status=resp.status, body=await resp.text())
            data = await _json_body(resp)
        logger.info(f"ntfy sent! Topic: {data.get('topic')} | ID: {data.get('id')}")
        return True

    async def send_telegram(self, message: str, session: ClientSession) -> bool:
        if not (self.config.TELEGRAM_BOT_TOKEN and self.config.TELEGRAM_CHANNEL_ID):
            logger.info("Telegram SKIPPED: set TELEGRAM_BOT_TOKEN and TELEGRAM_CHANNEL_ID")
            return False
        url = f"{self.config.TELEGRAM_API_BASE}/bot{self.config.TELEGRAM_BOT_TOKEN}/sendMessage"
        text = (
            f"🔴 *WE'RE LIVE!*\n\n{message}\n\n"
            f"[Watch on Facebook]({self.facebook_url}) | [Watch on YouTube]({self.youtube_url})"
        )
        payload = {
            "chat_id": self.config.TELEGRAM_CHANNEL_ID,
            "text": text,
            "parse_mode": "Markdown",
            "disable_web_page_preview": False,
        }
        async with session.post(url, json=payload) as resp:
            if not 200 <= resp.status < 300:
                body = await resp.text()
                raise DeliveryError(f"Telegram API {resp.status}: {body}", status=resp.status, body=body)
            data = await _json_body(resp)
        logger.info(f"Telegram sent! Message ID: {(data.get('result') or {}).get('message_id')}")
        return True

    def _alert_html(self, message: str) -> str:
        template = template_environment(self.config).get_template("live_alert.html")
        return template.render(message=message, ministry=self.config.MINISTRY, watch_url=self.facebook_url)

    async def send_email(self, message: str, session: ClientSession) -> bool:
        if not (self.config.RESEND_API_KEY and self.config.EMAIL_FROM):
            logger.info("Email SKIPPED: set RESEND_API_KEY and EMAIL_FROM")
            return False
        recipients = self.config.ALERT_RECIPIENTS
        if not recipients:
            logger.info("Email SKIPPED: no alert recipients configured")
            return False

        client = self.email_client or EmailClient(self.config, session)
        abbreviation = self.config.MINISTRY.abbreviation or self.config.MINISTRY.name
        subject = f"🔴 {abbreviation} is LIVE — Watch Now!"
        html = self._alert_html(message)
        sent = failed = 0
        for email in recipients:
            try:
                await client.send_email(email, subject, html)
            except DeliveryError as e:
                failed += 1
                logger.error(f"Email FAILED: {email} - {e}")
                continue
            sent += 1
            logger.info(f"Email sent: {email}")
            # Email API allows about two requests per second
            await sleep(self.config.ALERT_EMAIL_DELAY)
        logger.info(f"Email done: {sent} sent, {failed} failed")
        return sent > 0

    @trace_span(
        "notify",
        tracer_name="notifier",
        attr_from_args=lambda self, message, platform="all", test=False: {"alert.platform": platform, "alert.test": test},
    )
    async def notify(self, message: str, platform: str = "all", test: bool = False) -> Dict[str, bool]:
        """Send ``message`` to the selected channels concurrently.

        Returns:
            Mapping of each attempted channel to whether it delivered.
        """
        channels = select_channels(platform, test)
        logger.info(f"🔴 Live alert ({'TEST, ntfy only' if test else 'LIVE'}) to {', '.join(channels)}: {message}")
        senders = {"ntfy": self.send_ntfy, "telegram": self.send_telegram, "email": self.send_email}

        async with session_scope(self.session, ALERT_TIMEOUT) as session:
            outcomes = await gather(*(senders[name](message, session) for name in channels), return_exceptions=True)

        results: Dict[str, bool] = {}
        for name, outcome in zip(channels, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"{name} FAILED: {outcome}")
                results[name] = False
            else:
                results[name] = bool(outcome)
            logger.info(f"  {name}: {'SENT' if results[name] else 'FAILED/SKIPPED'}")
        add_span_attributes(**{f"alert.{name}": ok for name, ok in results.items()})
        return results
