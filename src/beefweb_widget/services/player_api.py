"""Player API contracts, snapshot models, and response decoding.

`WidgetInstance` depends on the `PlayerClient` protocol to stay transport
agnostic. Concrete implementations (Beefweb over HTTP, in-memory fake)
translate their responses into the immutable snapshot types defined here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Protocol

from beefweb_widget.errors import DecodeFailure

if TYPE_CHECKING:
    from beefweb_widget.utils.cancellation import CancellationScope

PlaybackState = Literal["stopped", "playing", "paused"]
TransportCommand = Literal["previous", "play-pause", "next"]

PLAYBACK_STATES: tuple[PlaybackState, ...] = ("stopped", "playing", "paused")
TRANSPORT_COMMANDS: tuple[TransportCommand, ...] = ("previous", "play-pause", "next")

# Title formatting expressions requested from the player, in display order.
STATE_COLUMNS = ("%title%", "%album artist%", "%album%")


@dataclass(frozen=True)
class TrackRef:
    """Coordinates and display columns of the player's active item."""

    playlist_id: str
    index: int
    columns: tuple[str, ...] = ()

    def column(self, position: int, default: str) -> str:
        if position < len(self.columns) and self.columns[position]:
            return self.columns[position]
        return default


@dataclass(frozen=True)
class PlayerSnapshot:
    """Player state captured by one successful fetch. Replaced, never mutated."""

    active_track: TrackRef | None = None
    playback_state: PlaybackState = "stopped"


class PlayerClient(Protocol):
    """Remote player operations consumed by `WidgetInstance`."""

    base_url: str

    async def fetch_player_state(self, scope: CancellationScope) -> PlayerSnapshot: ...

    async def fetch_artwork(
        self, playlist_id: str, index: int, scope: CancellationScope
    ) -> bytes | None: ...

    async def send_command(
        self, command: TransportCommand, scope: CancellationScope
    ) -> None: ...

    async def close(self) -> None: ...


def decode_player_state(payload: Any) -> PlayerSnapshot:
    """Decode a `GET /player` JSON body into a snapshot.

    Optional fields are tolerated: a missing `player` or `activeItem` object
    yields no active track, and an unknown playback state reads as stopped.
    An active item with a negative index is the player's "nothing selected"
    marker and is treated the same way.
    """
    if not isinstance(payload, dict):
        raise DecodeFailure("player response is not a JSON object")
    player = payload.get("player")
    if player is None:
        return PlayerSnapshot()
    if not isinstance(player, dict):
        raise DecodeFailure("'player' is not a JSON object")
    return PlayerSnapshot(
        active_track=_decode_active_item(player.get("activeItem")),
        playback_state=_decode_playback_state(player.get("playbackState")),
    )


def _decode_active_item(value: Any) -> TrackRef | None:
    if not isinstance(value, dict):
        return None
    index = value.get("index")
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        return None
    playlist_id = value.get("playlistId")
    raw_columns = value.get("columns")
    columns: tuple[str, ...] = ()
    if isinstance(raw_columns, list):
        columns = tuple("" if item is None else str(item) for item in raw_columns)
    return TrackRef(
        playlist_id=playlist_id if isinstance(playlist_id, str) else "",
        index=index,
        columns=columns,
    )


def _decode_playback_state(value: Any) -> PlaybackState:
    if isinstance(value, str):
        normalized = value.strip().lower()
        for state in PLAYBACK_STATES:
            if state == normalized:
                return state
    return "stopped"
