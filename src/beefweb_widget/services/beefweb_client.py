"""Beefweb player API client using aiohttp."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import quote

import aiohttp

from beefweb_widget.errors import (
    ConfigurationMissing,
    DecodeFailure,
    NetworkFailure,
    RequestTimeout,
)
from beefweb_widget.runtime_config import DEFAULT_API_URL, normalize_api_url
from beefweb_widget.utils.cancellation import CancellationScope

from .player_api import (
    STATE_COLUMNS,
    TRANSPORT_COMMANDS,
    PlayerSnapshot,
    TransportCommand,
    decode_player_state,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_S = 5.0

# Beefweb expects the percent signs of title-format expressions escaped.
_COLUMNS_QUERY = ",".join(quote(column, safe="") for column in STATE_COLUMNS)
_NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store", "Pragma": "no-cache"}

_Reader = Callable[[aiohttp.ClientResponse], Awaitable[Any]]


class BeefwebClient:
    """Remote state client for the Beefweb control API.

    The aiohttp session is created lazily on first use so the client can be
    constructed outside a running event loop.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        timeout_s: float = REQUEST_TIMEOUT_S,
        session: aiohttp.ClientSession | None = None,
        ticks: Callable[[], int] = time.time_ns,
    ) -> None:
        self._base_url = normalize_api_url(base_url)
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session = session
        self._owns_session = session is None
        self._ticks = ticks

    @property
    def base_url(self) -> str:
        return self._base_url

    @base_url.setter
    def base_url(self, value: str) -> None:
        self._base_url = normalize_api_url(value)

    async def fetch_player_state(self, scope: CancellationScope) -> PlayerSnapshot:
        base = self._require_base_url()
        url = f"{base}/player?columns={_COLUMNS_QUERY}&_={self._ticks()}"
        payload = await self._request(scope, "GET", url, reader=_read_json)
        return decode_player_state(payload)

    async def fetch_artwork(
        self, playlist_id: str, index: int, scope: CancellationScope
    ) -> bytes | None:
        """Return raw artwork bytes, or ``None`` when the player has none."""
        base = self._require_base_url()
        url = f"{base}/artwork/{quote(playlist_id, safe='')}/{index}?t={self._ticks()}"
        return await self._request(
            scope,
            "GET",
            url,
            reader=_read_artwork,
            headers=_NO_CACHE_HEADERS,
            not_found_ok=True,
        )

    async def send_command(
        self, command: TransportCommand, scope: CancellationScope
    ) -> None:
        if command not in TRANSPORT_COMMANDS:
            raise ValueError(f"Unsupported transport command: {command!r}")
        base = self._require_base_url()
        await self._request(scope, "POST", f"{base}/player/{command}", reader=_discard)

    async def close(self) -> None:
        session = self._session
        self._session = None
        if session is not None and self._owns_session and not session.closed:
            await session.close()

    def _require_base_url(self) -> str:
        if not self._base_url:
            raise ConfigurationMissing("Beefweb API URL is not configured.")
        return self._base_url

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
            logger.debug("Opened HTTP session for %s", self._base_url or "<unset>")
        return self._session

    async def _request(
        self,
        scope: CancellationScope,
        method: str,
        url: str,
        *,
        reader: _Reader,
        headers: dict[str, str] | None = None,
        not_found_ok: bool = False,
    ) -> Any:
        scope.raise_if_cancelled()
        session = self._get_session()

        async def _send() -> Any:
            async with session.request(
                method, url, headers=headers, timeout=self._timeout
            ) as response:
                if response.status == 404 and not_found_ok:
                    return None
                if not 200 <= response.status < 300:
                    raise NetworkFailure(
                        f"{method} {url} returned HTTP {response.status}",
                        status=response.status,
                    )
                return await reader(response)

        try:
            return await scope.run(_send())
        except asyncio.TimeoutError as exc:
            raise RequestTimeout(
                f"{method} {url} timed out after {self._timeout.total}s"
            ) from exc
        except aiohttp.ClientError as exc:
            raise NetworkFailure(f"{method} {url} failed: {exc}") from exc


async def _read_json(response: aiohttp.ClientResponse) -> Any:
    body = await response.read()
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeFailure(f"Malformed player response: {exc}") from exc


async def _read_artwork(response: aiohttp.ClientResponse) -> bytes | None:
    body = await response.read()
    return body or None


async def _discard(response: aiohttp.ClientResponse) -> None:
    await response.release()
