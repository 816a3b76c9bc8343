"""Refresh orchestration between the host, the player client, and the renderer.

`WidgetInstance` owns the player snapshot, the art cache, and the background
override. All of them are mutated only while the refresh lock is held, and
every in-flight operation checks the cancellation scope it captured at start
rather than whatever scope the instance holds when it resumes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Literal, Protocol, TypeVar

from beefweb_widget.errors import (
    ConfigurationMissing,
    DecodeFailure,
    NetworkFailure,
    RequestCancelled,
    RequestTimeout,
    WidgetError,
)
from beefweb_widget.events import FrameReady
from beefweb_widget.render.icons import IconSet, load_icons
from beefweb_widget.render.layout import Layout, compute_layout, hit_test
from beefweb_widget.render.renderer import BLACK, FontSet, Frame, load_fonts, render
from beefweb_widget.runtime_config import (
    API_URL_SETTING_KEY,
    DEFAULT_POLL_INTERVAL_S,
    resolve_api_url,
)
from beefweb_widget.services.art_cache import RGB, ArtCache, ArtCacheEntry, identity_of
from beefweb_widget.services.player_api import (
    PlayerClient,
    PlayerSnapshot,
    TransportCommand,
)
from beefweb_widget.utils.cancellation import CancellationScope

logger = logging.getLogger(__name__)

T = TypeVar("T")

WidgetStatus = Literal["idle", "refreshing", "sleeping", "disposed"]
ClickType = Literal["single", "double"]

DEFAULT_CANVAS_SIZE = (480, 200)
INITIAL_POLL_DELAY_S = 0.1
ERROR_BACKOFF_S = 5.0
COMMAND_SETTLE_S = 0.3

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_ARTIST = "Unknown Album Artist"
UNKNOWN_ALBUM = "Unknown Album"
IDLE_TITLE = "Foobar2000"
NO_TRACK_TITLE = "No active track"


class HostManager(Protocol):
    """Settings capability supplied by the hosting application."""

    def load_setting(self, instance_id: str, key: str) -> str | None: ...

    def store_setting(self, instance_id: str, key: str, value: str) -> None: ...


@dataclass(frozen=True)
class DisplayText:
    title: str
    artist: str
    album: str


def display_text(snapshot: PlayerSnapshot | None) -> DisplayText:
    """Texts shown for a snapshot, with fallbacks for missing columns."""
    track = snapshot.active_track if snapshot is not None else None
    if track is not None:
        return DisplayText(
            title=track.column(0, UNKNOWN_TITLE),
            artist=track.column(1, UNKNOWN_ARTIST),
            album=track.column(2, UNKNOWN_ALBUM),
        )
    if snapshot is None or snapshot.playback_state == "stopped":
        return DisplayText(IDLE_TITLE, "", "")
    return DisplayText(NO_TRACK_TITLE, "", "")


class WidgetInstance:
    """One widget on the host's canvas, kept in sync with a remote player."""

    def __init__(
        self,
        *,
        client: PlayerClient,
        emit_event: Callable[[FrameReady], Awaitable[None]],
        instance_id: str = "default",
        manager: HostManager | None = None,
        canvas_size: tuple[int, int] = DEFAULT_CANVAS_SIZE,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        initial_delay_s: float = INITIAL_POLL_DELAY_S,
        error_backoff_s: float = ERROR_BACKOFF_S,
        command_settle_s: float = COMMAND_SETTLE_S,
        icons: IconSet | None = None,
        fonts: FontSet | None = None,
    ) -> None:
        self.instance_id = instance_id
        self._client = client
        self._emit_event = emit_event
        self._manager = manager
        self._settings_loaded = False
        self._canvas_size = canvas_size
        self._poll_interval_s = max(0.0, float(poll_interval_s))
        self._initial_delay_s = max(0.0, float(initial_delay_s))
        self._error_backoff_s = max(0.0, float(error_backoff_s))
        self._command_settle_s = max(0.0, float(command_settle_s))
        self._owns_icons = icons is None
        self._icons = icons or load_icons()
        self._fonts = fonts or load_fonts()
        self._metrics = self._fonts.metrics()
        self._lock = asyncio.Lock()
        self._scope = CancellationScope(name=f"widget:{instance_id}")
        self._poll_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._snapshot: PlayerSnapshot | None = None
        self._identity = ""
        self._cache = ArtCache()
        self._background: RGB | None = None
        self._sleeping = False
        self._disposed = False

    @property
    def status(self) -> WidgetStatus:
        if self._disposed:
            return "disposed"
        if self._lock.locked():
            return "refreshing"
        if self._sleeping:
            return "sleeping"
        return "idle"

    @property
    def snapshot(self) -> PlayerSnapshot | None:
        return self._snapshot

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def art_entry(self) -> ArtCacheEntry:
        return self._cache.entry

    @property
    def background_color(self) -> RGB:
        """Effective frame background: failure override, else the art accent."""
        if self._background is not None:
            return self._background
        return self._cache.accent_color

    @property
    def canvas_size(self) -> tuple[int, int]:
        return self._canvas_size

    @property
    def scope(self) -> CancellationScope:
        return self._scope

    @property
    def api_url(self) -> str:
        return self._client.base_url

    @property
    def manager(self) -> HostManager | None:
        return self._manager

    @manager.setter
    def manager(self, value: HostManager | None) -> None:
        self._manager = value
        self._settings_loaded = False

    async def start(self) -> None:
        """Begin background polling (the host's create step)."""
        if self._disposed or self._sleeping:
            return
        self._start_polling()

    async def refresh(self) -> bool:
        """Run one refresh now. Returns ``False`` when skipped or unsuccessful."""
        self._load_settings_once()
        return await self._refresh(self._scope)

    def request_update(self) -> asyncio.Task[bool]:
        """Schedule a refresh without waiting for it."""
        self._load_settings_once()
        return self._track(self._refresh(self._scope))

    def click(
        self, click_type: ClickType | str, x: int, y: int
    ) -> asyncio.Task[None] | None:
        """Dispatch a single click on a transport button; other clicks are ignored."""
        if self._disposed or click_type != "single":
            return None
        command = hit_test(self._layout(), x, y)
        if command is None:
            return None
        logger.debug("Click at (%s, %s) mapped to %s", x, y, command)
        return self.command(command)

    def command(self, command: TransportCommand) -> asyncio.Task[None] | None:
        """Send a transport command, then refresh once the player settles."""
        if self._disposed:
            return None
        self._load_settings_once()
        return self._track(self._send_command(command, self._scope))

    def resize(self, width: int, height: int) -> None:
        self._canvas_size = (width, height)

    def configure_api_url(self, value: str | None) -> str:
        """Apply (and persist, when a manager is attached) a new API URL."""
        url = resolve_api_url(value)
        if self._manager is not None:
            self._manager.store_setting(self.instance_id, API_URL_SETTING_KEY, url)
        self._client.base_url = url
        self._settings_loaded = True
        logger.info("API URL configured to: %s", url)
        return url

    async def sleep(self) -> None:
        """Pause polling and revoke everything in flight."""
        if self._disposed or self._sleeping:
            return
        logger.info("Entering sleep state. Polling paused.")
        self._sleeping = True
        self._replace_scope()
        await self._stop_polling()

    async def wake(self) -> asyncio.Task[bool] | None:
        """Resume polling and schedule an immediate refresh."""
        if self._disposed:
            return None
        logger.info("Exiting sleep state. Resuming updates.")
        self._sleeping = False
        self._replace_scope()
        await self._stop_polling()
        self._start_polling()
        return self.request_update()

    async def dispose(self) -> None:
        """Cancel all work and release the client, cached art, and icons."""
        if self._disposed:
            return
        self._disposed = True
        self._scope.cancel()
        await self._stop_polling()
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self._client.close()
        self._cache.clear()
        if self._owns_icons:
            self._icons.close()
        self._snapshot = None
        logger.info("Widget disposed, background polling stopped.")

    def render_frame(self) -> Frame:
        """Render the current state without fetching anything."""
        width, height = self._canvas_size
        texts = display_text(self._snapshot)
        return render(
            self._snapshot,
            self._cache.entry,
            self._layout(),
            texts.title,
            texts.artist,
            texts.album,
            canvas_size=(width, height),
            icons=self._icons,
            fonts=self._fonts,
            background=self._background,
        )

    def _layout(self) -> Layout | None:
        width, height = self._canvas_size
        return compute_layout(width, height, self._metrics)

    def _load_settings_once(self) -> None:
        if self._settings_loaded or self._manager is None:
            return
        self._settings_loaded = True
        stored = self._manager.load_setting(self.instance_id, API_URL_SETTING_KEY)
        if stored is None or not stored.strip():
            logger.info(
                "Could not load %r or it was empty; using default.",
                API_URL_SETTING_KEY,
            )
        self._client.base_url = resolve_api_url(stored)
        logger.info("API URL configured to: %s", self._client.base_url)

    def _replace_scope(self) -> None:
        self._scope.cancel()
        self._scope = CancellationScope(name=f"widget:{self.instance_id}")

    def _start_polling(self) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop(self._scope))

    async def _stop_polling(self) -> None:
        if self._poll_task is None:
            return
        self._poll_task.cancel()
        with suppress(asyncio.CancelledError):
            await self._poll_task
        self._poll_task = None

    def _track(self, coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _poll_loop(self, scope: CancellationScope) -> None:
        try:
            await scope.sleep(self._initial_delay_s)
            while not scope.cancelled:
                try:
                    self._load_settings_once()
                    await scope.sleep(self._poll_interval_s)
                    await self._refresh(scope)
                except RequestCancelled:
                    raise
                except Exception as exc:
                    logger.warning("Polling error: %s", exc, exc_info=True)
                    await scope.sleep(self._error_backoff_s)
        except RequestCancelled:
            logger.debug("Polling loop for %s stopped.", self.instance_id)

    async def _refresh(self, scope: CancellationScope) -> bool:
        if self._disposed or scope.cancelled:
            return False
        if self._lock.locked():
            logger.debug("Refresh already in progress; trigger dropped.")
            return False
        async with self._lock:
            return await self._refresh_locked(scope)

    async def _refresh_locked(self, scope: CancellationScope) -> bool:
        base_url = self._client.base_url
        if not base_url:
            logger.warning("Beefweb API URL is not configured. Cannot update widget.")
            return False
        try:
            snapshot = await self._client.fetch_player_state(scope)
            scope.raise_if_cancelled()
            await self._cache.ensure_art(snapshot, self._client.fetch_artwork, scope)
        except RequestCancelled:
            logger.debug("Widget refresh was cancelled.")
            return False
        except ConfigurationMissing as exc:
            logger.warning("Cannot update widget: %s", exc)
            return False
        except (NetworkFailure, RequestTimeout, DecodeFailure) as exc:
            logger.warning(
                "Error updating widget: %s. Check foobar2000/Beefweb connection "
                "to '%s'.",
                exc,
                base_url,
            )
            self._background = BLACK
            return False
        except Exception:
            logger.exception("Unexpected error updating widget.")
            self._background = BLACK
            return False

        identity = identity_of(snapshot)
        if identity != self._identity:
            logger.debug("Active track changed: %r", identity)
        self._snapshot = snapshot
        self._identity = identity
        self._background = None
        try:
            frame = self.render_frame()
            event = FrameReady(instance_id=self.instance_id, frame=frame)
            await self._emit_event(event)
        except Exception:
            logger.exception("Failed to render or publish widget frame.")
            return False
        return True

    async def _send_command(
        self, command: TransportCommand, scope: CancellationScope
    ) -> None:
        if self._disposed or scope.cancelled or not self._client.base_url:
            return
        try:
            await self._client.send_command(command, scope)
            await scope.sleep(self._command_settle_s)
        except RequestCancelled:
            logger.debug("%s command cancelled.", command)
            return
        except WidgetError as exc:
            logger.warning("%s command failed: %s", command, exc)
            return
        await self._refresh(scope)
