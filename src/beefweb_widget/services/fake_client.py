"""In-memory player client for deterministic tests and offline previews."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from io import BytesIO

from PIL import Image

from beefweb_widget.runtime_config import DEFAULT_API_URL, normalize_api_url
from beefweb_widget.utils.cancellation import CancellationScope

from .player_api import (
    TRANSPORT_COMMANDS,
    PlaybackState,
    PlayerSnapshot,
    TrackRef,
    TransportCommand,
)


@dataclass(frozen=True)
class FakeTrack:
    title: str
    artist: str
    album: str
    art: bytes | None = None


def solid_artwork(color: tuple[int, int, int], size: int = 64) -> bytes:
    """Encode a single-color PNG, used as stand-in cover art."""
    buffer = BytesIO()
    Image.new("RGB", (size, size), color).save(buffer, format="PNG")
    return buffer.getvalue()


def demo_tracks() -> list[FakeTrack]:
    return [
        FakeTrack("Song A", "Artist A", "Album A", solid_artwork((250, 110, 110))),
        FakeTrack("Song B", "Artist B", "Album B", solid_artwork((40, 70, 160))),
        FakeTrack("Song C", "Artist C", "Album C", None),
    ]


class FakePlayerClient:
    """Simulates a single-playlist player with optional latency and failures.

    Failure attributes (`state_failure`, `artwork_failure`, `command_failure`)
    are raised by every matching call while set.
    """

    def __init__(
        self,
        *,
        tracks: Sequence[FakeTrack] | None = None,
        playlist_id: str = "p1",
        playback_state: PlaybackState = "playing",
        active_index: int | None = 0,
        latency_s: float = 0.0,
        base_url: str = DEFAULT_API_URL,
    ) -> None:
        self._base_url = normalize_api_url(base_url)
        self._tracks = list(tracks) if tracks is not None else demo_tracks()
        self._playlist_id = playlist_id
        self._playback_state: PlaybackState = playback_state
        self._active_index = active_index if self._tracks else None
        self.latency_s = latency_s
        self.state_failure: Exception | None = None
        self.artwork_failure: Exception | None = None
        self.command_failure: Exception | None = None
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    @property
    def base_url(self) -> str:
        return self._base_url

    @base_url.setter
    def base_url(self, value: str) -> None:
        self._base_url = normalize_api_url(value)

    def set_active(self, index: int | None) -> None:
        self._active_index = index

    def set_playback_state(self, state: PlaybackState) -> None:
        self._playback_state = state

    async def fetch_player_state(self, scope: CancellationScope) -> PlayerSnapshot:
        self.calls.append("state")
        await self._simulate_latency(scope)
        if self.state_failure is not None:
            raise self.state_failure
        if self._active_index is None:
            return PlayerSnapshot(playback_state=self._playback_state)
        track = self._tracks[self._active_index]
        return PlayerSnapshot(
            active_track=TrackRef(
                playlist_id=self._playlist_id,
                index=self._active_index,
                columns=(track.title, track.artist, track.album),
            ),
            playback_state=self._playback_state,
        )

    async def fetch_artwork(
        self, playlist_id: str, index: int, scope: CancellationScope
    ) -> bytes | None:
        self.calls.append(f"artwork:{playlist_id}/{index}")
        await self._simulate_latency(scope)
        if self.artwork_failure is not None:
            raise self.artwork_failure
        if playlist_id != self._playlist_id or not 0 <= index < len(self._tracks):
            return None
        return self._tracks[index].art

    async def send_command(
        self, command: TransportCommand, scope: CancellationScope
    ) -> None:
        if command not in TRANSPORT_COMMANDS:
            raise ValueError(f"Unsupported transport command: {command!r}")
        self.calls.append(f"command:{command}")
        await self._simulate_latency(scope)
        if self.command_failure is not None:
            raise self.command_failure
        count = len(self._tracks)
        if command == "play-pause":
            self._playback_state = (
                "paused" if self._playback_state == "playing" else "playing"
            )
        elif count and self._active_index is not None:
            step = 1 if command == "next" else -1
            self._active_index = (self._active_index + step) % count

    async def close(self) -> None:
        self.closed = True

    async def _simulate_latency(self, scope: CancellationScope) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency_s > 0:
                await scope.sleep(self.latency_s)
            else:
                scope.raise_if_cancelled()
        finally:
            self.in_flight -= 1
