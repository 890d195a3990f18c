#!/usr/bin/env python3
"""
Newsletter subscriber list from the Netlify Forms API.

Submissions of the ``newsletter-subscribers`` form are paged through, mapped
to ``Subscriber`` records and filtered for usable addresses. Duplicate
removal is a separate, explicit step (``deduplicate_subscribers``) because the
same form appears on every page of the site.
"""

from asyncio import TimeoutError
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from aiohttp import ClientError, ClientSession

from config import Config, get_logger
from errors import SubscriberSourceError
from models import Subscriber
from telemetry import add_span_attributes, trace_span
from utils import session_scope

logger = get_logger("subscribers")

PER_PAGE = 100
API_TIMEOUT = 30


def _parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp or date into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _earlier(a: Optional[str], b: Optional[str]) -> Optional[str]:
    da, db = _parse_timestamp(a), _parse_timestamp(b)
    if da is None:
        return b if db is not None else a
    if db is None:
        return a
    return b if db < da else a


def deduplicate_subscribers(subscribers: Iterable[Subscriber]) -> List[Subscriber]:
    """Collapse subscribers sharing an email address.

    Emails are compared trimmed and lower-cased. The first record seen keeps
    its position and name, its email is normalized and its ``subscribed_at``
    becomes the earliest timestamp seen for that address. Applying this twice
    gives the same result as applying it once.
    """
    unique: Dict[str, Subscriber] = {}
    for sub in subscribers:
        email = (sub.email or "").strip().lower()
        if not email:
            continue
        kept = unique.get(email)
        if kept is None:
            unique[email] = Subscriber(name=sub.name, email=email, subscribed_at=sub.subscribed_at)
        else:
            kept.subscribed_at = _earlier(kept.subscribed_at, sub.subscribed_at)
    return list(unique.values())


def format_subscriber_list(subscribers: List[Subscriber]) -> str:
    """Human-readable numbered subscriber listing."""
    if not subscribers:
        return "No subscribers found."
    rule = "=" * 50
    lines = [f"Newsletter Subscribers ({len(subscribers)} total)", rule, ""]
    for index, sub in enumerate(subscribers, 1):
        joined = _parse_timestamp(sub.subscribed_at)
        joined_str = f"{joined:%b} {joined.day}, {joined.year}" if joined else "unknown date"
        lines.append(f"{index}. {sub.name or 'Subscriber'} <{sub.email}> (joined {joined_str})")
    lines.extend(["", rule, f"Generated: {datetime.now(timezone.utc):%Y-%m-%d %H:%M UTC}"])
    return "\n".join(lines)


def format_emails_only(subscribers: List[Subscriber]) -> str:
    """Comma-separated addresses, handy for a BCC field."""
    return ", ".join(sub.email for sub in subscribers)


def _submission_to_subscriber(submission: Dict[str, Any]) -> Subscriber:
    data = submission.get("data") or {}
    return Subscriber(
        name=(data.get("name") or data.get("Name") or "").strip(),
        email=(data.get("email") or data.get("Email") or "").strip(),
        subscribed_at=submission.get("created_at"),
    )


class SubscriberSource:
    """Reads newsletter subscribers from the forms API."""

    def __init__(self, config: Config, session: Optional[ClientSession] = None):
        self.config = config
        self.session = session

    async def _get(self, session: ClientSession, endpoint: str) -> Any:
        url = f"{self.config.NETLIFY_API_BASE}{endpoint}"
        headers = {
            "Authorization": f"Bearer {self.config.NETLIFY_ACCESS_TOKEN}",
            "Content-Type": "application/json",
        }
        try:
            async with session.get(url, headers=headers) as resp:
                if not 200 <= resp.status < 300:
                    body = await resp.text()
                    raise SubscriberSourceError(f"Forms API error ({resp.status}) for {endpoint}: {body}")
                return await resp.json(content_type=None)
        except (ClientError, TimeoutError) as e:
            raise SubscriberSourceError(f"Forms API request failed for {endpoint}: {e or type(e).__name__}") from e
        except ValueError as e:
            raise SubscriberSourceError(f"Forms API returned a non-JSON body for {endpoint}: {e}") from e

    async def _get_form_id(self, session: ClientSession) -> str:
        forms = await self._get(session, f"/sites/{self.config.NETLIFY_SITE_ID}/forms")
        for form in forms or []:
            if isinstance(form, dict) and form.get("name") == self.config.FORM_NAME:
                return form["id"]
        raise SubscriberSourceError(
            f'Form "{self.config.FORM_NAME}" not found on this site. '
            "Check the form name and that at least one submission has been made."
        )

    @trace_span("get_subscribers", tracer_name="subscribers")
    async def get_subscribers(self) -> List[Subscriber]:
        """Fetch every submission of the newsletter form.

        Raises:
            ConfigurationError: access token or site id missing (no request is made)
            SubscriberSourceError: the form is missing or the API fails
        """
        self.config.require("NETLIFY_ACCESS_TOKEN", "NETLIFY_SITE_ID")
        submissions: List[Dict[str, Any]] = []
        async with session_scope(self.session, API_TIMEOUT) as session:
            form_id = await self._get_form_id(session)
            page = 1
            while True:
                batch = await self._get(
                    session,
                    f"/sites/{self.config.NETLIFY_SITE_ID}/forms/{form_id}/submissions?per_page={PER_PAGE}&page={page}",
                )
                if not batch:
                    break
                submissions.extend(batch)
                if len(batch) < PER_PAGE:
                    break
                page += 1

        subscribers = [_submission_to_subscriber(s) for s in submissions if isinstance(s, dict)]
        valid = [sub for sub in subscribers if "@" in sub.email]
        add_span_attributes(**{"subscribers.pages": page, "subscribers.valid": len(valid)})
        logger.info(f"Fetched {len(submissions)} submissions over {page} page(s); {len(valid)} with a valid email")
        return valid

    async def get_new_subscribers(self, since: Union[str, datetime]) -> List[Subscriber]:
        """Subscribers who signed up strictly after ``since``.

        Raises:
            ValueError: ``since`` is not a parseable date
        """
        since_dt = _parse_timestamp(since)
        if since_dt is None:
            raise ValueError(f'Invalid date: "{since}". Use a format like "2025-01-15".')
        result = []
        for sub in await self.get_subscribers():
            joined = _parse_timestamp(sub.subscribed_at)
            if joined is not None and joined > since_dt:
                result.append(sub)
        return result
