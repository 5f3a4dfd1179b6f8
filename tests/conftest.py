import asyncio
import copy

import pytest

from cache import CacheStore
from config import config
from errors import FetchError


SAMPLE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Board One</title>
    <link>https://www.pinterest.com/alice/board1/</link>
    <description>Pins on Board One</description>
    <item>
      <title>First pin</title>
      <link>https://www.pinterest.com/pin/123/</link>
      <guid>https://www.pinterest.com/pin/123/</guid>
      <pubDate>Mon, 08 Dec 2014 08:20:02 +0000</pubDate>
    </item>
    <item>
      <title>Second pin</title>
      <link>https://www.pinterest.com/pin/456/</link>
      <guid>https://www.pinterest.com/pin/456/</guid>
      <pubDate>Sat, 15 Nov 2014 16:00:00 +0000</pubDate>
    </item>
  </channel>
</rss>
"""

HTML_PAGE = """<!DOCTYPE html>
<html><head><title>Pinterest</title></head>
<body><div class="error">Sorry! We couldn't find that page.<br></div></body>
</html>
"""


class FakeGateway:
    """Stands in for HttpGateway: answers from a route table and records every URL."""

    def __init__(self, routes=None, handler=None):
        self.routes = dict(routes or {})
        self.handler = handler
        self.calls = []
        self.closed = False

    async def fetch(self, url, parse_json=False):
        self.calls.append(url)
        await asyncio.sleep(0)
        if url in self.routes:
            payload = self.routes[url]
        elif self.handler is not None:
            payload = await self.handler(url)
        else:
            raise FetchError(url, status=404)
        if isinstance(payload, Exception):
            raise payload
        return copy.deepcopy(payload)

    async def fetch_bytes(self, url):
        payload = await self.fetch(url)
        return payload.encode("utf-8") if isinstance(payload, str) else payload

    async def close(self):
        self.closed = True


def boards_url(username):
    return config.BOARDS_URL.format(username=username)


def board_pins_url(username, board):
    return config.BOARD_PINS_URL.format(username=username, board=board)


def board_feed_url(username, board):
    return config.BOARD_FEED_URL.format(username=username, board=board)


@pytest.fixture
def cache_store(tmp_path):
    return CacheStore(cache_dir=str(tmp_path / "cache"))


@pytest.fixture
def sample_feed():
    return SAMPLE_FEED


@pytest.fixture
def html_page():
    return HTML_PAGE
