"""Tests for the refresh orchestrator driven by the in-memory player client."""

from __future__ import annotations

import asyncio
import logging
import time

from beefweb_widget.errors import DecodeFailure, NetworkFailure
from beefweb_widget.events import FrameReady
from beefweb_widget.render.renderer import BLACK, WHITE
from beefweb_widget.runtime_config import API_URL_SETTING_KEY, DEFAULT_API_URL
from beefweb_widget.services.art_cache import ArtCacheEntry
from beefweb_widget.services.fake_client import FakePlayerClient
from beefweb_widget.services.player_api import PlayerSnapshot, TrackRef
from beefweb_widget.widget import (
    IDLE_TITLE,
    NO_TRACK_TITLE,
    DisplayText,
    WidgetInstance,
    display_text,
)

PLAY_PAUSE_POINT = (335, 150)


def _run(coro):
    return asyncio.run(coro)


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.005)


class _Settings:
    """In-memory host settings capability."""

    def __init__(self, values: dict[tuple[str, str], str] | None = None) -> None:
        self.values = dict(values or {})
        self.loads = 0
        self.stored: list[tuple[str, str, str]] = []

    def load_setting(self, instance_id: str, key: str) -> str | None:
        self.loads += 1
        return self.values.get((instance_id, key))

    def store_setting(self, instance_id: str, key: str, value: str) -> None:
        self.values[(instance_id, key)] = value
        self.stored.append((instance_id, key, value))


def _widget(
    client: FakePlayerClient, events: list[FrameReady], icons, fonts, **kwargs
) -> WidgetInstance:
    async def emit_event(event: FrameReady) -> None:
        events.append(event)

    kwargs.setdefault("command_settle_s", 0.0)
    kwargs.setdefault("initial_delay_s", 0.0)
    return WidgetInstance(
        client=client, emit_event=emit_event, icons=icons, fonts=fonts, **kwargs
    )


def test_display_text_fallbacks() -> None:
    track = TrackRef("p1", 0, ("Song", "", ""))
    assert display_text(PlayerSnapshot(active_track=track)) == DisplayText(
        "Song", "Unknown Album Artist", "Unknown Album"
    )
    assert display_text(None) == DisplayText(IDLE_TITLE, "", "")
    assert display_text(PlayerSnapshot()) == DisplayText(IDLE_TITLE, "", "")
    assert display_text(PlayerSnapshot(playback_state="playing")) == DisplayText(
        NO_TRACK_TITLE, "", ""
    )


def test_refresh_publishes_frame_with_art_accent(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()

    async def run() -> WidgetInstance:
        widget = _widget(client, events, icons, fonts)
        assert await widget.refresh() is True
        return widget

    widget = _run(run())
    assert len(events) == 1
    event = events[0]
    assert event.offset == (0, 0)
    assert event.wait_max_ms == 1000
    assert event.instance_id == "default"
    frame = event.frame
    assert frame.background == (250, 110, 110)
    assert frame.foreground == BLACK
    assert (frame.title, frame.artist, frame.album) == ("Song A", "Artist A", "Album A")
    assert frame.play_pause_icon == "pause"
    assert widget.identity == "p1:0:Song A:Artist A:Album A"
    assert widget.art_entry.attempted is True
    assert widget.art_entry.image is not None
    assert client.calls == ["state", "artwork:p1/0"]


def test_stopped_without_track_shows_idle_title(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient(active_index=None, playback_state="stopped")

    async def run() -> WidgetInstance:
        widget = _widget(client, events, icons, fonts)
        await widget.refresh()
        return widget

    widget = _run(run())
    frame = events[-1].frame
    assert (frame.title, frame.artist, frame.album) == (IDLE_TITLE, "", "")
    assert frame.background == BLACK
    assert widget.art_entry == ArtCacheEntry()
    assert widget.identity == ""
    assert client.calls == ["state"]


def test_missing_artwork_is_attempted_once(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient(active_index=2)

    async def run() -> WidgetInstance:
        widget = _widget(client, events, icons, fonts)
        await widget.refresh()
        await widget.refresh()
        return widget

    widget = _run(run())
    assert client.calls == ["state", "artwork:p1/2", "state"]
    assert widget.art_entry.attempted is True
    assert widget.art_entry.image is None
    assert widget.background_color == BLACK
    assert events[-1].frame.art_placeholder is True


def test_track_change_refetches_artwork(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()

    async def run() -> None:
        widget = _widget(client, events, icons, fonts)
        await widget.refresh()
        client.set_active(1)
        await widget.refresh()

    _run(run())
    assert client.calls == ["state", "artwork:p1/0", "state", "artwork:p1/1"]
    assert events[-1].frame.background == (40, 70, 160)
    assert events[-1].frame.foreground == WHITE


def test_concurrent_trigger_is_dropped(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient(latency_s=0.05)

    async def run() -> tuple[bool, bool]:
        widget = _widget(client, events, icons, fonts)
        first = asyncio.create_task(widget.refresh())
        await _wait_until(lambda: client.in_flight > 0)
        assert widget.status == "refreshing"
        second = await widget.refresh()
        return await first, second

    first, second = _run(run())
    assert first is True
    assert second is False
    assert client.calls.count("state") == 1
    assert client.max_in_flight == 1
    assert len(events) == 1


def test_sleep_cancels_refresh_without_mutation(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()

    async def run() -> None:
        widget = _widget(client, events, icons, fonts)
        await widget.refresh()
        snapshot = widget.snapshot
        entry = widget.art_entry
        identity = widget.identity

        client.latency_s = 1.0
        client.set_active(1)
        pending = asyncio.create_task(widget.refresh())
        await _wait_until(lambda: client.in_flight > 0)
        await widget.sleep()
        assert await asyncio.wait_for(pending, timeout=1) is False

        assert widget.status == "sleeping"
        assert widget.snapshot is snapshot
        assert widget.art_entry is entry
        assert widget.identity == identity
        await widget.dispose()

    _run(run())
    assert len(events) == 1


def test_cancel_during_artwork_fetch_keeps_cache(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()

    async def run() -> None:
        widget = _widget(client, events, icons, fonts)
        await widget.refresh()
        entry = widget.art_entry

        client.set_active(1)
        original = client.fetch_artwork
        started = asyncio.Event()

        async def slow_artwork(playlist_id, index, scope):
            started.set()
            await scope.sleep(1.0)
            return await original(playlist_id, index, scope)

        client.fetch_artwork = slow_artwork  # type: ignore[method-assign]
        pending = asyncio.create_task(widget.refresh())
        await asyncio.wait_for(started.wait(), timeout=1)
        widget.scope.cancel()
        assert await asyncio.wait_for(pending, timeout=1) is False
        assert widget.art_entry is entry
        assert widget.identity.startswith("p1:0:")

    _run(run())
    assert len(events) == 1


def test_state_failure_sets_black_background_and_keeps_last_state(
    icons, fonts, caplog
) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()

    async def run() -> WidgetInstance:
        widget = _widget(client, events, icons, fonts)
        await widget.refresh()
        client.state_failure = NetworkFailure("connection refused")
        with caplog.at_level(logging.WARNING):
            assert await widget.refresh() is False
        return widget

    widget = _run(run())
    assert len(events) == 1
    assert widget.background_color == BLACK
    assert widget.snapshot is not None
    assert widget.render_frame().background == BLACK
    assert widget.render_frame().title == "Song A"
    assert any("Error updating widget" in r.message for r in caplog.records)


def test_recovery_after_failure_restores_accent(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()

    async def run() -> None:
        widget = _widget(client, events, icons, fonts)
        client.state_failure = DecodeFailure("garbage")
        assert await widget.refresh() is False
        client.state_failure = None
        assert await widget.refresh() is True

    _run(run())
    assert events[-1].frame.background == (250, 110, 110)


def test_unexpected_client_error_is_contained(icons, fonts, caplog) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()
    client.state_failure = RuntimeError("bug")

    async def run() -> WidgetInstance:
        widget = _widget(client, events, icons, fonts)
        with caplog.at_level(logging.ERROR):
            assert await widget.refresh() is False
        return widget

    widget = _run(run())
    assert events == []
    assert widget.background_color == BLACK
    assert any("Unexpected error" in r.message for r in caplog.records)


def test_publish_failure_is_logged_and_keeps_accent(icons, fonts, caplog) -> None:
    client = FakePlayerClient()

    async def emit_event(event: FrameReady) -> None:
        raise RuntimeError("host gone")

    async def run() -> WidgetInstance:
        widget = WidgetInstance(
            client=client,
            emit_event=emit_event,
            icons=icons,
            fonts=fonts,
            initial_delay_s=0.0,
        )
        with caplog.at_level(logging.ERROR):
            assert await widget.refresh() is False
        return widget

    widget = _run(run())
    assert widget.snapshot is not None
    assert widget.identity == "p1:0:Song A:Artist A:Album A"
    assert widget.background_color == (250, 110, 110)
    assert any("Failed to render or publish" in r.message for r in caplog.records)


def test_missing_api_url_skips_network(icons, fonts, caplog) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient(base_url="")

    async def run() -> None:
        widget = _widget(client, events, icons, fonts)
        with caplog.at_level(logging.WARNING):
            assert await widget.refresh() is False

    _run(run())
    assert client.calls == []
    assert events == []
    assert any("not configured" in r.message for r in caplog.records)


def test_click_on_play_pause_sends_command_then_refreshes(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()

    async def run() -> None:
        widget = _widget(client, events, icons, fonts)
        await widget.refresh()
        task = widget.click("single", *PLAY_PAUSE_POINT)
        assert task is not None
        await task

    _run(run())
    assert client.calls == ["state", "artwork:p1/0", "command:play-pause", "state"]
    assert events[-1].frame.play_pause_icon == "play"


def test_click_outside_buttons_or_double_click_is_ignored(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()

    async def run() -> None:
        widget = _widget(client, events, icons, fonts)
        assert widget.click("single", 50, 50) is None
        assert widget.click("double", *PLAY_PAUSE_POINT) is None
        widget.resize(200, 200)
        assert widget.click("single", *PLAY_PAUSE_POINT) is None

    _run(run())
    assert client.calls == []


def test_next_command_advances_track(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()

    async def run() -> None:
        widget = _widget(client, events, icons, fonts)
        task = widget.click("single", 393, 150)
        assert task is not None
        await task

    _run(run())
    assert client.calls[0] == "command:next"
    assert events[-1].frame.title == "Song B"


def test_command_failure_is_logged_and_swallowed(icons, fonts, caplog) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()
    client.command_failure = NetworkFailure("HTTP 500", status=500)

    async def run() -> None:
        widget = _widget(client, events, icons, fonts)
        task = widget.command("next")
        assert task is not None
        with caplog.at_level(logging.WARNING):
            await task
        assert task.exception() is None

    _run(run())
    assert client.calls == ["command:next"]
    assert events == []
    assert any("next command failed" in r.message for r in caplog.records)


def test_poll_loop_refreshes_until_sleep_and_resumes_on_wake(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()

    async def run() -> None:
        widget = _widget(client, events, icons, fonts, poll_interval_s=0.01)
        await widget.start()
        await _wait_until(lambda: len(events) >= 2)

        await widget.sleep()
        assert widget.status == "sleeping"
        paused_at = client.calls.count("state")
        await asyncio.sleep(0.05)
        assert client.calls.count("state") == paused_at

        woke = await widget.wake()
        assert woke is not None
        await woke
        assert widget.status in {"idle", "refreshing"}
        await _wait_until(lambda: client.calls.count("state") >= paused_at + 2)
        await widget.dispose()

    _run(run())


def test_poll_loop_backs_off_after_unexpected_error(icons, fonts, caplog) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()

    class _BrokenSettings(_Settings):
        def load_setting(self, instance_id: str, key: str) -> str | None:
            raise RuntimeError("settings backend down")

    async def run() -> None:
        widget = _widget(
            client,
            events,
            icons,
            fonts,
            manager=_BrokenSettings(),
            poll_interval_s=0.01,
            error_backoff_s=0.01,
        )
        with caplog.at_level(logging.WARNING):
            await widget.start()
            await _wait_until(lambda: len(events) >= 1)
        await widget.dispose()

    _run(run())
    assert any("Polling error" in r.message for r in caplog.records)


def test_dispose_releases_resources_and_is_idempotent(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()

    async def run() -> WidgetInstance:
        widget = _widget(client, events, icons, fonts, poll_interval_s=0.01)
        await widget.start()
        await widget.refresh()
        await widget.dispose()
        await widget.dispose()
        assert await widget.refresh() is False
        assert widget.click("single", *PLAY_PAUSE_POINT) is None
        assert await widget.wake() is None
        return widget

    widget = _run(run())
    assert widget.status == "disposed"
    assert client.closed is True
    assert widget.art_entry == ArtCacheEntry()
    assert widget.snapshot is None


def test_settings_loaded_once_and_normalized(icons, fonts) -> None:
    events: list[FrameReady] = []
    client = FakePlayerClient()
    settings = _Settings({("w1", API_URL_SETTING_KEY): " http://media:8880/api/ "})

    async def run() -> WidgetInstance:
        widget = _widget(client, events, icons, fonts, instance_id="w1")
        await widget.refresh()
        assert widget.api_url == DEFAULT_API_URL
        widget.manager = settings
        await widget.refresh()
        await widget.refresh()
        return widget

    widget = _run(run())
    assert settings.loads == 1
    assert widget.api_url == "http://media:8880/api"
    assert events[-1].instance_id == "w1"


def test_blank_setting_falls_back_to_default(icons, fonts) -> None:
    client = FakePlayerClient(base_url="http://elsewhere/api")
    settings = _Settings({("default", API_URL_SETTING_KEY): "   "})

    async def run() -> WidgetInstance:
        widget = _widget(client, [], icons, fonts, manager=settings)
        await widget.request_update()
        return widget

    widget = _run(run())
    assert widget.api_url == DEFAULT_API_URL


def test_configure_api_url_persists_setting(icons, fonts) -> None:
    client = FakePlayerClient()
    settings = _Settings()
    widget = _widget(client, [], icons, fonts, manager=settings)

    assert widget.configure_api_url("http://box:9000/api/") == "http://box:9000/api"
    assert widget.api_url == "http://box:9000/api"
    assert settings.stored == [("default", API_URL_SETTING_KEY, "http://box:9000/api")]
    assert settings.loads == 0
