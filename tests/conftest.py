import json
from calendar import month_name
from dataclasses import replace

import pytest

from config import Config, MinistryInfo
from models import SECTION_KEYS, MonthlyTheme, Newsletter, NewsletterMetadata, NewsletterSection


class FakeResponse:
    """Minimal stand-in for an aiohttp response used as an async context manager."""

    def __init__(self, status=200, json_data=None, text=None, body=None, url="http://fake.test/"):
        self.status = status
        self.url = url
        self._json = json_data
        self._text = text
        self._body = body

    async def json(self, content_type=None):
        if self._json is None and self._text is not None:
            return json.loads(self._text)
        return self._json

    async def text(self):
        if self._text is not None:
            return self._text
        return json.dumps(self._json)

    async def read(self):
        if self._body is not None:
            return self._body
        return (await self.text()).encode("utf-8")

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Routes GET/POST calls by URL and records every request.

    A route value may be a FakeResponse, a list of them (consumed in order),
    an exception instance (raised when the request is made) or a callable
    taking ``(method, url, kwargs)``.
    """

    def __init__(self, routes=None, default=None):
        self.routes = dict(routes or {})
        self.default = default
        self.calls = []

    def _respond(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        handler = self.routes.get(url, self.default)
        if callable(handler) and not isinstance(handler, FakeResponse):
            handler = handler(method, url, kwargs)
        if isinstance(handler, list):
            handler = handler.pop(0)
        if isinstance(handler, BaseException):
            raise handler
        if handler is None:
            return FakeResponse(404, text="not found")
        return handler

    def get(self, url, **kwargs):
        return self._respond("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._respond("POST", url, kwargs)


TEST_MINISTRY = MinistryInfo(
    name="Test Ministry",
    abbreviation="TM",
    tagline="Advancing the Reign of God",
    pastor="Pastor Test",
    pastors="Pastors Test & Example",
    email="office@example.org",
    website="https://example.org",
    location="1 Main St, Springfield",
    social={
        "facebook": "https://facebook.example/tm",
        "youtube": "https://youtube.example/tm",
        "givelify": "https://give.example/tm",
    },
    service_times={"in_person": "First Saturday at Noon", "online": "Weekdays at 8:15 AM"},
)


@pytest.fixture(autouse=True)
def _no_telemetry(monkeypatch):
    monkeypatch.setenv("DISABLE_TELEMETRY", "true")


@pytest.fixture
def make_config(tmp_path):
    """Build a Config with test identity and paths under tmp_path."""
    base = Config(
        MINISTRY=TEST_MINISTRY,
        MISSION="Making mature disciples.",
        THEOLOGY=("Jesus is Lord over all creation.",),
        NEWSLETTER_SUBTITLE="Monthly Intelligence",
        EMAIL_FROM="Test Ministry <news@example.org>",
        REPLY_TO="office@example.org",
        NEWSLETTER_DIR=str(tmp_path / "newsletters"),
        PREVIEW_PATH=str(tmp_path / "preview.html"),
        SIGNUP_ALLOWED_ORIGIN="https://example.org",
    )

    def _make(**overrides):
        return replace(base, **overrides)

    return _make


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def make_newsletter():
    """Build a complete six-section issue with Markdown bodies."""

    def _make(month=3, year=2026, generated_at="2026-03-01T12:00:00.000Z"):
        meta = NewsletterMetadata(
            title="The Kingdom Report",
            subtitle="Monthly Intelligence",
            month=month,
            year=year,
            month_name=month_name[month],
            date_string=f"{month_name[month]} {year}",
            generated_at=generated_at,
            ministry="Test Ministry",
            pastor="Pastor Test",
            content_source="web",
            theme=MonthlyTheme("Kingdom Advancement", "Pressing forward"),
        )
        sections = {key: NewsletterSection(title=key.title(), content=f"**{key}** body") for key in SECTION_KEYS}
        return Newsletter(metadata=meta, sections=sections)

    return _make
