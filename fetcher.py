#!/usr/bin/env python3
"""
HTTP fetch gateway.

A thin wrapper over an aiohttp ClientSession that performs a GET and returns
the body as raw bytes, text or decoded JSON. Any transport failure, non-2xx
status or undecodable body raises FetchError; nothing is retried.
"""

from asyncio import TimeoutError
from json import loads, JSONDecodeError
from typing import Any, List, Optional, Tuple

from aiohttp import ClientSession, ClientError

from config import config, get_logger
from errors import FetchError
from telemetry import trace_span

logger = get_logger("fetcher")


class HttpGateway:
    """Performs GET requests for the client, owning its session unless one is injected."""

    def __init__(self, session: Optional[ClientSession] = None, user_agent: Optional[str] = None) -> None:
        self._session = session
        self._owns_session = session is None
        self.user_agent = user_agent or config.USER_AGENT

    async def __aenter__(self) -> "HttpGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the underlying session if this gateway created it."""
        if self._owns_session and self._session is not None:
            if not self._session.closed:
                await self._session.close()
                logger.debug("HTTP session closed")
            self._session = None

    async def _get(self, url: str) -> Tuple[bytes, Optional[str]]:
        """GET ``url`` and return the raw body with the charset the server declared."""
        session = self._get_session()
        logger.debug(f"GET {url}")
        try:
            async with session.get(url, headers={'User-Agent': self.user_agent}) as response:
                if not 200 <= response.status < 300:
                    logger.error(f"Did not receive a 2xx response when making GET request to {url}: HTTP {response.status}")
                    raise FetchError(url, status=response.status)
                content = await response.read()
                return content, response.charset
        except TimeoutError as e:
            logger.error(f"Timed out making GET request to {url}")
            raise FetchError(url, detail="timed out") from e
        except ClientError as e:
            detail = self._format_client_error(e)
            logger.error(f"Error making GET request to {url}: {detail}")
            raise FetchError(url, status=getattr(e, 'status', None), detail=detail) from e

    @trace_span(
        "http_get",
        tracer_name="fetcher",
        attr_from_args=lambda self, url, parse_json=False: {
            "http.url": url,
            "http.parse_json": bool(parse_json),
        },
    )
    async def fetch(self, url: str, parse_json: bool = False) -> Any:
        """GET ``url`` and return its body, decoded as JSON when ``parse_json`` is set."""
        content, charset = await self._get(url)
        try:
            body = content.decode(charset or "utf-8")
        except (UnicodeDecodeError, LookupError) as e:
            logger.error(f"Response from {url} could not be decoded as {charset or 'utf-8'}: {e}")
            raise FetchError(url, detail=f"undecodable body: {e}") from e

        if not parse_json:
            return body
        try:
            return loads(body)
        except JSONDecodeError as e:
            logger.error(f"Response from {url} is not valid JSON: {e}")
            raise FetchError(url, detail=f"invalid JSON body: {e}") from e

    @trace_span(
        "http_get_bytes",
        tracer_name="fetcher",
        attr_from_args=lambda self, url: {"http.url": url},
    )
    async def fetch_bytes(self, url: str) -> bytes:
        """GET ``url`` and return the undecoded body, for parsers that sniff their own encoding."""
        content, _ = await self._get(url)
        return content

    def _format_client_error(self, error: ClientError) -> str:
        """Describe aiohttp client errors with any available status/errno."""
        parts: List[str] = [error.__class__.__name__]
        status = getattr(error, 'status', None)
        if status is not None:
            parts.append(f"status={status}")
        os_error = getattr(error, 'os_error', None)
        if os_error is not None:
            errno = getattr(os_error, 'errno', None)
            strerror = getattr(os_error, 'strerror', None)
            if errno is not None:
                parts.append(f"errno={errno}")
            if strerror:
                parts.append(str(strerror))
        message = str(error)
        if message:
            parts.append(message)
        return " ".join(parts)
