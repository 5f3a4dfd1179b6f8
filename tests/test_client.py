import asyncio
import os
from datetime import datetime, timezone
from time import time
from urllib.parse import parse_qs, urlparse

import pytest

from cache import CacheStatus
from client import PIN_INFO_CONCURRENCY, PinterestClient
from config import config
from errors import FetchError
from pagination import PaginatedResponse, PaginationState

from conftest import FakeGateway, board_feed_url, board_pins_url, boards_url


BOARDS = {"body": [{"href": "/alice/board1/"}, {"href": "/bob/board2/"}, {"href": "/alice/board3/"}]}
BOARD1_PINS = {"data": {"pins": [{"id": "123", "description": "dated"}, {"id": "999", "description": "undated"}]}}
BOARD2_PINS = {"data": {"pins": [{"id": "555"}]}}
BOARD3_PINS = {"data": {"pins": [{"id": "456"}]}}


@pytest.fixture
def routes(sample_feed, html_page):
    return {
        boards_url("alice"): BOARDS,
        board_pins_url("alice", "board1"): BOARD1_PINS,
        board_feed_url("alice", "board1"): sample_feed,
        board_pins_url("bob", "board2"): BOARD2_PINS,
        board_feed_url("bob", "board2"): sample_feed,
        board_pins_url("alice", "board3"): BOARD3_PINS,
        board_feed_url("alice", "board3"): html_page,
    }


@pytest.fixture
def gateway(routes):
    return FakeGateway(routes)


@pytest.fixture
def client(cache_store, gateway):
    return PinterestClient("alice", cache=cache_store, gateway=gateway, pagination=PaginationState())


def pin_info_handler(requested):
    async def handler(url):
        ids = parse_qs(urlparse(url).query)["pin_ids"][0].split(",")
        requested.append(ids)
        return {"data": [{"id": pin_id, "title": f"pin {pin_id}"} for pin_id in ids]}
    return handler


def test_username_is_required(cache_store):
    with pytest.raises(ValueError):
        PinterestClient("", cache=cache_store, gateway=FakeGateway())


def test_pagination_setters(client):
    assert client.get_items_per_page() is None
    assert client.get_current_page() == 1

    client.set_items_per_page(25)
    client.set_current_page(3)
    assert client.get_items_per_page() == 25
    assert client.get_current_page() == 3

    client.set_items_per_page(None)
    assert client.get_items_per_page() is None


@pytest.mark.parametrize("value", [0, -1, "10", 2.5, True])
def test_set_items_per_page_rejects_invalid(client, value):
    with pytest.raises(ValueError):
        client.set_items_per_page(value)


@pytest.mark.parametrize("value", [0, -3, None, True, False])
def test_set_current_page_rejects_invalid(client, value):
    with pytest.raises(ValueError):
        client.set_current_page(value)


def test_clients_keep_independent_pagination(cache_store):
    first = PinterestClient("alice", cache=cache_store, gateway=FakeGateway())
    second = PinterestClient("alice", cache=cache_store, gateway=FakeGateway())
    first.set_items_per_page(5)
    first.set_current_page(2)
    assert second.get_current_page() == 1
    assert second.get_items_per_page() == config.ITEMS_PER_PAGE


@pytest.mark.asyncio
async def test_get_boards_raw_list_and_cache(client, gateway):
    boards = await client.get_boards()
    assert boards == BOARDS["body"]

    again = await client.get_boards()
    assert again == BOARDS["body"]
    assert gateway.calls == [boards_url("alice")]


@pytest.mark.asyncio
async def test_get_boards_paginated(client):
    client.set_items_per_page(2)
    client.set_current_page(2)

    response = await client.get_boards(paginate=True)

    assert isinstance(response, PaginatedResponse)
    assert response.total_items == 3
    assert response.total_pages == 2
    assert response.current_page == 2
    assert response.data == [{"href": "/alice/board3/"}]


@pytest.mark.asyncio
async def test_stale_cache_is_refetched(client, gateway, cache_store):
    await client.get_boards()
    path = cache_store.path_for("boards_alice")
    past = time() - 2 * 60 * 60
    os.utime(path, (past, past))

    await client.get_boards()
    assert gateway.calls == [boards_url("alice"), boards_url("alice")]


@pytest.mark.asyncio
async def test_unreadable_cached_json_is_refetched(client, gateway, cache_store):
    await cache_store.put("boards_alice", "{not json")
    boards = await client.get_boards()
    assert boards == BOARDS["body"]
    assert gateway.calls == [boards_url("alice")]


@pytest.mark.asyncio
async def test_get_pins_from_board_stamps_publish_dates(client):
    pins = await client.get_pins_from_board("board1")

    by_id = {pin["id"]: pin for pin in pins}
    assert by_id["123"]["created_at"] == "2014-12-08T08:20:02+00:00"
    assert by_id["999"]["created_at"] == ""
    assert by_id["123"]["description"] == "dated"


@pytest.mark.asyncio
async def test_get_pins_from_board_without_feed_dates(client):
    pins = await client.get_pins_from_board("board3")
    assert [pin["created_at"] for pin in pins] == [""]


@pytest.mark.asyncio
async def test_get_pins_from_board_paginated(client):
    client.set_items_per_page(1)
    response = await client.get_pins_from_board("board1", paginate=True)
    assert response.total_items == 2
    assert response.total_pages == 2
    assert [pin["id"] for pin in response.data] == ["123"]


@pytest.mark.asyncio
async def test_get_pins_from_board_waits_for_both_branches(cache_store, routes):
    class SlowResolver:
        async def resolve_dates(self, username, board):
            await asyncio.sleep(0.05)
            return {"999": datetime(2015, 1, 2, 3, 4, 5, tzinfo=timezone.utc)}

    client = PinterestClient(
        "alice",
        cache=cache_store,
        gateway=FakeGateway(routes),
        date_resolver=SlowResolver(),
        pagination=PaginationState(),
    )
    pins = await client.get_pins_from_board("board1")
    assert {pin["id"]: pin["created_at"] for pin in pins} == {
        "123": "",
        "999": "2015-01-02T03:04:05+00:00",
    }


@pytest.mark.asyncio
async def test_get_pins_from_board_fails_when_pins_fetch_fails(cache_store, sample_feed):
    gateway = FakeGateway({board_feed_url("alice", "board1"): sample_feed})
    client = PinterestClient("alice", cache=cache_store, gateway=gateway)
    with pytest.raises(FetchError):
        await client.get_pins_from_board("board1")


@pytest.mark.asyncio
async def test_get_pins_only_includes_owned_boards(client, gateway):
    response = await client.get_pins()

    assert isinstance(response, PaginatedResponse)
    assert response.total_items == 3
    assert [pin["id"] for pin in response.data] == ["123", "999", "456"]
    assert board_pins_url("bob", "board2") not in gateway.calls
    assert board_pins_url("alice", "board2") not in gateway.calls


@pytest.mark.asyncio
async def test_get_pins_with_hrefs_without_trailing_slash(cache_store, routes):
    routes[boards_url("alice")] = {"body": [{"href": "/alice/board1"}, {"href": "/bob/board2"}]}
    client = PinterestClient("alice", cache=cache_store, gateway=FakeGateway(routes), pagination=PaginationState())

    response = await client.get_pins()

    assert sorted(pin["id"] for pin in response.data) == ["123", "999"]


@pytest.mark.asyncio
async def test_get_pins_is_paginated(client):
    client.set_items_per_page(2)
    client.set_current_page(2)
    response = await client.get_pins()
    assert response.total_items == 3
    assert response.total_pages == 2
    assert [pin["id"] for pin in response.data] == ["456"]


@pytest.mark.asyncio
async def test_get_data_for_pins_groups_by_ten(cache_store):
    requested = []
    client = PinterestClient(
        "alice",
        cache=cache_store,
        gateway=FakeGateway(handler=pin_info_handler(requested)),
        pagination=PaginationState(),
    )
    pin_ids = [str(1000 + i) for i in range(25)]

    response = await client.get_data_for_pins(pin_ids)

    assert sorted(len(group) for group in requested) == [5, 10, 10]
    assert response.total_items == 25
    returned = [item["id"] for item in response.data]
    assert sorted(returned) == sorted(pin_ids)
    assert len(set(returned)) == 25


@pytest.mark.asyncio
async def test_get_data_for_pins_uses_cache(cache_store):
    requested = []
    client = PinterestClient(
        "alice",
        cache=cache_store,
        gateway=FakeGateway(handler=pin_info_handler(requested)),
        pagination=PaginationState(),
    )
    await client.get_data_for_pins([1, 2, 3])
    await client.get_data_for_pins([1, 2, 3])
    assert requested == [["1", "2", "3"]]


@pytest.mark.asyncio
async def test_get_data_for_pins_caps_concurrent_groups(cache_store):
    in_flight = 0
    peak = 0

    async def handler(url):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        ids = parse_qs(urlparse(url).query)["pin_ids"][0].split(",")
        return {"data": [{"id": pin_id} for pin_id in ids]}

    client = PinterestClient(
        "alice",
        cache=cache_store,
        gateway=FakeGateway(handler=handler),
        pagination=PaginationState(),
    )
    response = await client.get_data_for_pins(range(1200))

    assert response.total_items == 1200
    assert 1 < peak <= PIN_INFO_CONCURRENCY


@pytest.mark.asyncio
async def test_get_data_for_pins_fails_fast(cache_store):
    async def handler(url):
        if "pin_ids=10," in url:
            raise FetchError(url, status=500)
        ids = parse_qs(urlparse(url).query)["pin_ids"][0].split(",")
        return {"data": [{"id": pin_id} for pin_id in ids]}

    client = PinterestClient("alice", cache=cache_store, gateway=FakeGateway(handler=handler))
    with pytest.raises(FetchError):
        await client.get_data_for_pins(range(30))


@pytest.mark.asyncio
async def test_get_data_for_pins_empty(client, gateway):
    response = await client.get_data_for_pins([])
    assert response.total_items == 0
    assert response.data == []
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_context_manager_closes_gateway(cache_store):
    gateway = FakeGateway()
    async with PinterestClient("alice", cache=cache_store, gateway=gateway):
        pass
    assert gateway.closed


@pytest.mark.asyncio
async def test_unreadable_cached_bytes_are_refetched(client, gateway, cache_store):
    await cache_store.put("boards_alice", "{}")
    with open(cache_store.path_for("boards_alice"), "wb") as f:
        f.write(b"\xff\xfe{}")

    boards = await client.get_boards()

    assert boards == BOARDS["body"]
    assert gateway.calls == [boards_url("alice")]
    assert (await cache_store.lookup("boards_alice")).fresh


@pytest.mark.asyncio
async def test_get_pins_from_board_cancels_date_lookup_when_pins_fail(cache_store):
    class HangingResolver:
        cancelled = False

        async def resolve_dates(self, username, board):
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
            return {}

    resolver = HangingResolver()
    client = PinterestClient("alice", cache=cache_store, gateway=FakeGateway(), date_resolver=resolver)

    with pytest.raises(FetchError):
        await asyncio.wait_for(client.get_pins_from_board("board1"), timeout=2)
    assert resolver.cancelled


@pytest.mark.asyncio
async def test_get_pins_cancels_other_boards_when_one_fails(cache_store, routes):
    finished = []

    async def slow_board(url):
        await asyncio.sleep(0.2)
        finished.append(url)
        return BOARD3_PINS

    routes[board_pins_url("alice", "board1")] = FetchError(board_pins_url("alice", "board1"), status=500)
    del routes[board_pins_url("alice", "board3")]
    client = PinterestClient(
        "alice",
        cache=cache_store,
        gateway=FakeGateway(routes, handler=slow_board),
        pagination=PaginationState(),
    )

    with pytest.raises(FetchError):
        await client.get_pins()
    await asyncio.sleep(0.3)

    assert finished == []
    assert (await cache_store.lookup("alice/board3")).status is CacheStatus.ABSENT


@pytest.mark.asyncio
async def test_get_data_for_pins_cancels_pending_groups_on_failure(cache_store):
    finished = []

    async def handler(url):
        if "pin_ids=0," in url:
            raise FetchError(url, status=500)
        await asyncio.sleep(0.2)
        finished.append(url)
        return {"data": []}

    client = PinterestClient("alice", cache=cache_store, gateway=FakeGateway(handler=handler))
    with pytest.raises(FetchError):
        await client.get_data_for_pins(range(30))
    await asyncio.sleep(0.3)

    assert finished == []
