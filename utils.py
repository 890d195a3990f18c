#!/usr/bin/env python3
"""
Utility classes and functions shared by the newsletter and alert jobs.

This module contains rate limiting and retry pacing, HTTP session scoping,
text helpers and the small date helpers used when building prompts.
"""

from asyncio import Lock, sleep, Task, get_running_loop
from calendar import month_name
from contextlib import asynccontextmanager
from datetime import date
from time import monotonic
from typing import Any, AsyncIterator, Coroutine, Iterable, Iterator, List, Optional, Set, TypeVar
import re

from aiohttp import ClientSession, ClientTimeout
from bs4 import BeautifulSoup

from config import get_logger

# Module-specific logger
logger = get_logger("utils")

T = TypeVar("T")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class RateLimiter:
    """Spaces calls at least ``60 / requests_per_minute`` seconds apart.

    A value of 0 (or less) disables pacing. Callers await ``acquire()`` right
    before each request; concurrent callers queue on an internal lock.
    """

    def __init__(self, requests_per_minute: int):
        self.interval = 60.0 / requests_per_minute if requests_per_minute > 0 else 0.0
        self._next_allowed = 0.0
        self._lock = Lock()

    async def acquire(self) -> None:
        if not self.interval:
            return
        async with self._lock:
            wait = self._next_allowed - monotonic()
            if wait > 0:
                logger.debug(f"Pacing completion request: {wait:.2f}s")
                await sleep(wait)
            self._next_allowed = monotonic() + self.interval


class RetryHelper:
    """Linear backoff: after failed attempt ``n`` wait ``n * base_delay`` (capped)."""

    def __init__(self, max_attempts: int = 3, base_delay: float = 2.0, max_delay: float = 60.0):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay

    def calculate_delay(self, attempt: int) -> float:
        return min(self.base_delay * attempt, self.max_delay)


def batched(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive lists of at most ``size`` items."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) == size:
            yield batch
            batch = []
    if batch:
        yield batch


@asynccontextmanager
async def session_scope(session: Optional[ClientSession] = None, timeout: Optional[float] = None) -> AsyncIterator[ClientSession]:
    """Yield the caller's session, or an owned one that is closed on exit."""
    if session is not None:
        yield session
        return
    kwargs = {"timeout": ClientTimeout(total=timeout)} if timeout else {}
    async with ClientSession(**kwargs) as owned_session:
        yield owned_session


_background_tasks: Set[Task] = set()


def spawn_detached(coro: Coroutine[Any, Any, Any], name: str) -> Task:
    """Start ``coro`` as a named task that nobody awaits.

    A strong reference is held until the task finishes, and any failure is
    logged by the done-callback instead of surfacing to the caller.
    """
    task = get_running_loop().create_task(coro, name=name)
    _background_tasks.add(task)

    def _on_done(t: Task) -> None:
        _background_tasks.discard(t)
        if t.cancelled():
            logger.warning(f"Background task {t.get_name()} was cancelled")
            return
        exc = t.exception()
        if exc is not None:
            logger.error(f"Background task {t.get_name()} failed: {exc}", exc_info=exc)
        else:
            logger.debug(f"Background task {t.get_name()} finished")

    task.add_done_callback(_on_done)
    return task


def strip_html(text: Optional[str]) -> str:
    """Reduce an HTML fragment to collapsed plain text."""
    if not text:
        return ""
    plain = BeautifulSoup(text, 'html.parser').get_text(" ")
    return re.sub(r"\s+", " ", plain).strip()


def format_duration(seconds: float) -> str:
    """Compact elapsed time for run summaries, e.g. ``1m 5s``."""
    remaining = max(0, int(seconds))
    hours, remaining = divmod(remaining, 3600)
    minutes, secs = divmod(remaining, 60)
    parts = [f"{value}{unit}" for value, unit in ((hours, "h"), (minutes, "m")) if value]
    if secs or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email.strip()))


def first_saturday(year: int, month: int) -> date:
    """Date of the first Saturday of the given month."""
    first = date(year, month, 1)
    # Monday is 0, Saturday is 5
    return first.replace(day=1 + (5 - first.weekday()) % 7)


def format_long_date(value: date) -> str:
    """Format like "March 7, 2026" without platform-specific strftime flags."""
    return f"{month_name[value.month]} {value.day}, {value.year}"
