#!/usr/bin/env python3
"""
Publish dates for board pins, read from each board's RSS feed.

The pins endpoint does not expose creation dates, but every board also has an
RSS feed (the 50 most recent pins) whose items carry a pubDate and a guid that
is the pin's permalink. Boards whose names contain escaped characters have no
usable feed: the endpoint answers with an HTML page, which is reported and
treated as "no dates" rather than as a failure.
"""

from asyncio import get_event_loop
from calendar import timegm
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from functools import partial
from io import BytesIO
from typing import Any, Dict, Optional, Union

import feedparser

from cache import CacheStore
from config import config, get_logger
from fetcher import HttpGateway
from telemetry import trace_span

logger = get_logger("feeds")

PIN_URL_MARKER = "pin/"
FEED_CACHE_SUFFIX = "_RSS"

PinDateMap = Dict[str, datetime]


def pin_id_from_url(pin_url: str) -> Optional[str]:
    """Extract the pin id from a permalink such as ``https://host/pin/123/``."""
    if not pin_url:
        return None
    start = pin_url.find(PIN_URL_MARKER)
    if start == -1:
        return None
    start += len(PIN_URL_MARKER)
    end = pin_url.find("/", start)
    if end == -1:
        end = len(pin_url)
    return pin_url[start:end] or None


def _entry_published(entry) -> Optional[datetime]:
    parsed = entry.get("published_parsed")
    if parsed:
        return datetime.fromtimestamp(timegm(parsed), tz=timezone.utc)
    raw = entry.get("published")
    if not raw:
        return None
    try:
        dt = parsedate_to_datetime(raw)
    except (TypeError, ValueError, OverflowError) as e:
        logger.debug(f"Unable to parse publish date '{raw}': {e}")
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def pin_date_map_from_feed(content: Union[str, bytes], board: str) -> PinDateMap:
    """Build a pin id -> publish date mapping from a raw RSS document.

    Bytes are handed to feedparser as-is so it can detect the encoding.
    Returns an empty mapping when the document cannot be read as a feed.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    feed = feedparser.parse(BytesIO(content))
    entries = feed.get("entries") or []
    if not entries:
        if feed.get("bozo"):
            logger.warning(
                f"Error reading RSS feed for board {board}; publish dates unavailable. "
                f"This is expected when the board name contains an escaped character "
                f"({feed.get('bozo_exception')})"
            )
        else:
            logger.info(f"RSS feed for board {board} has no items")
        return {}

    pin_dates: PinDateMap = {}
    skipped = 0
    for entry in entries:
        pin_id = pin_id_from_url(entry.get("id") or "") or pin_id_from_url(entry.get("link") or "")
        published = _entry_published(entry)
        if not pin_id or published is None:
            skipped += 1
            continue
        pin_dates[pin_id] = published
    if skipped:
        logger.debug(f"Skipped {skipped} feed items without a pin id or publish date for board {board}")
    return pin_dates


class FeedDateResolver:
    """Looks up publish dates for the pins on a board, caching the raw feed."""

    def __init__(
        self,
        cache: CacheStore,
        gateway: HttpGateway,
        feed_url_template: Optional[str] = None,
    ) -> None:
        self.cache = cache
        self.gateway = gateway
        self.feed_url_template = feed_url_template or config.BOARD_FEED_URL

    def feed_url(self, username: str, board: str) -> str:
        return self.feed_url_template.format(username=username, board=board.replace("#", ""))

    async def run_in_executor(self, func, *args) -> Any:
        """Run a blocking function in the default thread pool executor."""
        loop = get_event_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    @trace_span(
        "resolve_pin_dates",
        tracer_name="feeds",
        attr_from_args=lambda self, username, board: {
            "pinterest.username": username,
            "pinterest.board": board,
        },
    )
    async def resolve_dates(self, username: str, board: str) -> PinDateMap:
        """Return a mapping of pin id to publish date for ``board``."""
        key = f"{username}/{board}{FEED_CACHE_SUFFIX}"
        content = await self.cache.get(key)
        if content is None:
            content = await self.gateway.fetch_bytes(self.feed_url(username, board))
            # The cache holds text; undecodable bytes are stored replaced
            await self.cache.put(key, content.decode("utf-8", errors="replace"))
        # feedparser is not async, run in executor
        pin_dates = await self.run_in_executor(pin_date_map_from_feed, content, board)
        logger.debug(f"Resolved {len(pin_dates)} publish dates for {username}/{board}")
        return pin_dates
