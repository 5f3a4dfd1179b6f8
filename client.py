#!/usr/bin/env python3
"""
Pinterest board and pin client.

Coordinates the cache, the HTTP gateway and the feed date resolver to list a
user's boards, the pins on a board (stamped with publish dates), every pin the
user owns, and bulk metadata for arbitrary pin ids. Every raw response is
written through to the on-disk cache and served from it while fresh.
"""

from asyncio import Semaphore, create_task, gather
from json import dumps, loads, JSONDecodeError
from typing import Any, Coroutine, Dict, Iterable, List, Optional, Union

from cache import CacheStore
from config import config, get_logger
from feeds import FeedDateResolver
from fetcher import HttpGateway
from pagination import PaginatedResponse, PaginationState, build_response
from telemetry import init_telemetry, trace_span
from utils import chunked

logger = get_logger("client")
init_telemetry("pinterest-cache-client")

# The pin info endpoint accepts at most 10 ids per request
PIN_INFO_BATCH_SIZE = 10
PIN_INFO_CONCURRENCY = 50


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


async def _gather_all_or_cancel(coros: Iterable[Coroutine[Any, Any, Any]]) -> List[Any]:
    """Run ``coros`` concurrently and return their results in order.

    The first failure cancels every sibling still running and waits for them
    to unwind before the error is re-raised.
    """
    tasks = [create_task(coro) for coro in coros]
    try:
        return await gather(*tasks)
    except Exception:
        for task in tasks:
            task.cancel()
        await gather(*tasks, return_exceptions=True)
        raise


class PinterestClient:
    """Client for one user's boards and pins.

    Pagination settings belong to the instance, so separate clients can page
    through results independently. A single instance should not be shared by
    callers that need different page settings at the same time.
    """

    def __init__(
        self,
        username: str,
        *,
        cache: Optional[CacheStore] = None,
        gateway: Optional[HttpGateway] = None,
        date_resolver: Optional[FeedDateResolver] = None,
        pagination: Optional[PaginationState] = None,
    ) -> None:
        if not username:
            raise ValueError("A username is required")
        self.username = username
        self.cache = cache or CacheStore()
        self.gateway = gateway or HttpGateway()
        self.date_resolver = date_resolver or FeedDateResolver(self.cache, self.gateway)
        self.pagination = pagination or PaginationState(items_per_page=config.ITEMS_PER_PAGE)

    async def __aenter__(self) -> "PinterestClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.gateway.close()

    def get_items_per_page(self) -> Optional[int]:
        return self.pagination.items_per_page

    def set_items_per_page(self, items_per_page: Optional[int]) -> None:
        """Set the page size; None returns every result on a single page."""
        if items_per_page is not None and not _is_positive_int(items_per_page):
            raise ValueError(f"items_per_page must be a positive integer or None, got {items_per_page!r}")
        self.pagination.items_per_page = items_per_page

    def get_current_page(self) -> int:
        return self.pagination.current_page

    def set_current_page(self, current_page: int) -> None:
        if not _is_positive_int(current_page):
            raise ValueError(f"current_page must be an integer >= 1, got {current_page!r}")
        self.pagination.current_page = current_page

    def _paginate(self, items: List[Any]) -> PaginatedResponse:
        return build_response(items, self.pagination)

    async def _cached_json(self, key: str, url: str) -> Any:
        """Return the decoded JSON for ``key``, fetching ``url`` on a cache miss."""
        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return loads(cached)
            except JSONDecodeError:
                logger.warning(f"Discarding unreadable cache entry for {key}")
        response = await self.gateway.fetch(url, parse_json=True)
        await self.cache.put(key, dumps(response))
        return response

    @trace_span(
        "get_boards",
        tracer_name="client",
        attr_from_args=lambda self, paginate=False: {
            "pinterest.username": self.username,
            "pinterest.paginate": bool(paginate),
        },
    )
    async def get_boards(self, paginate: bool = False) -> Union[List[Dict[str, Any]], PaginatedResponse]:
        """List the user's boards, paginated on request."""
        url = config.BOARDS_URL.format(username=self.username)
        response = await self._cached_json(f"boards_{self.username}", url)
        boards = response.get("body") or []
        logger.info(f"Found {len(boards)} boards for {self.username}")
        return self._paginate(boards) if paginate else boards

    async def _get_raw_board_pins(self, board: str) -> List[Dict[str, Any]]:
        url = config.BOARD_PINS_URL.format(username=self.username, board=board.replace("#", ""))
        response = await self._cached_json(f"{self.username}/{board}", url)
        return (response.get("data") or {}).get("pins") or []

    @trace_span(
        "get_pins_from_board",
        tracer_name="client",
        attr_from_args=lambda self, board, paginate=False: {
            "pinterest.username": self.username,
            "pinterest.board": board,
            "pinterest.paginate": bool(paginate),
        },
    )
    async def get_pins_from_board(self, board: str, paginate: bool = False) -> Union[List[Dict[str, Any]], PaginatedResponse]:
        """List the pins on ``board`` with a ``created_at`` publish date on each."""
        pins, pin_dates = await _gather_all_or_cancel([
            self._get_raw_board_pins(board),
            self.date_resolver.resolve_dates(self.username, board),
        ])
        for pin in pins:
            published = pin_dates.get(str(pin.get("id")))
            pin["created_at"] = published.isoformat() if published else ""
        logger.info(f"Board {self.username}/{board}: {len(pins)} pins, {len(pin_dates)} publish dates")
        return self._paginate(pins) if paginate else pins

    def _owned_board_handle(self, board: Dict[str, Any]) -> Optional[str]:
        """Return the board handle from ``/<owner>/<handle>/`` if the owner is this user."""
        segments = (board.get("href") or "").split("/")
        if len(segments) > 2 and segments[1] == self.username and segments[2]:
            return segments[2]
        return None

    @trace_span(
        "get_pins",
        tracer_name="client",
        attr_from_args=lambda self: {"pinterest.username": self.username},
    )
    async def get_pins(self) -> PaginatedResponse:
        """List the pins from every board the user owns, in board order."""
        boards = await self.get_boards(paginate=False)
        # Boards followed from other users are listed too
        handles = [handle for handle in map(self._owned_board_handle, boards) if handle]
        skipped = len(boards) - len(handles)
        if skipped:
            logger.debug(f"Skipping {skipped} boards not owned by {self.username}")

        results = await _gather_all_or_cancel(
            self.get_pins_from_board(handle, paginate=False) for handle in handles
        )
        all_pins = [pin for pins in results for pin in pins]
        logger.info(f"Collected {len(all_pins)} pins across {len(handles)} boards for {self.username}")
        return self._paginate(all_pins)

    @trace_span(
        "get_data_for_pins",
        tracer_name="client",
        attr_from_args=lambda self, pin_ids: {"pinterest.pin_count": len(pin_ids)},
    )
    async def get_data_for_pins(self, pin_ids: Iterable[Any]) -> PaginatedResponse:
        """Fetch metadata for arbitrary pin ids, ten ids per request."""
        pin_ids = [str(pin_id) for pin_id in pin_ids]
        groups = list(chunked(pin_ids, PIN_INFO_BATCH_SIZE))
        semaphore = Semaphore(PIN_INFO_CONCURRENCY)
        all_pins_data: List[Dict[str, Any]] = []

        async def fetch_group(group: List[str]) -> None:
            async with semaphore:
                joined = ",".join(group)
                url = config.PIN_INFO_URL.format(pin_ids=joined)
                response = await self._cached_json(f"pins_info_{joined}", url)
                all_pins_data.extend(response.get("data") or [])

        logger.info(f"Fetching data for {len(pin_ids)} pins in {len(groups)} groups")
        await _gather_all_or_cancel(fetch_group(group) for group in groups)
        return self._paginate(all_pins_data)
