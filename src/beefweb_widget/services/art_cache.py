"""Track identity and the single-slot cover-art cache.

The cache is owned by one `WidgetInstance` and is only touched inside its
refresh lock; it has no locking of its own. Every await in `ensure_art`
happens on a working copy, and the slot is swapped in one step at the end, so
a cancelled refresh leaves the previous entry in place.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from io import BytesIO
from typing import cast

from PIL import Image

from beefweb_widget.errors import (
    ConfigurationMissing,
    DecodeFailure,
    NetworkFailure,
    RequestCancelled,
    RequestTimeout,
)
from beefweb_widget.utils.async_utils import run_blocking
from beefweb_widget.utils.cancellation import CancellationScope

from .player_api import PlayerSnapshot, TrackRef

logger = logging.getLogger(__name__)

RGB = tuple[int, int, int]
FALLBACK_ACCENT: RGB = (0, 0, 0)

ArtworkFetcher = Callable[[str, int, CancellationScope], Awaitable[bytes | None]]


def identity_of(snapshot: PlayerSnapshot | None) -> str:
    """Return the change-detection key for the snapshot's active track.

    Two snapshots with the same playlist id, index, and first three columns
    map to the same key. No active track maps to the empty string.
    """
    if snapshot is None or snapshot.active_track is None:
        return ""
    track = snapshot.active_track
    meta = ":".join(track.columns[:3])
    return f"{track.playlist_id or 'N/A'}:{track.index}:{meta}"


@dataclass(frozen=True)
class ArtCacheEntry:
    """Cached artwork for one track identity."""

    identity: str = ""
    image: Image.Image | None = None
    accent_color: RGB = FALLBACK_ACCENT
    attempted: bool = False


def accent_color_of(image: Image.Image) -> RGB:
    """Downsample to one pixel and use its color, fully opaque, as the accent."""
    with image.convert("RGB") as rgb:
        with rgb.resize((1, 1), resample=Image.Resampling.BICUBIC) as tiny:
            r, g, b = cast("tuple[int, int, int]", tiny.getpixel((0, 0)))
    return (int(r), int(g), int(b))


def decode_artwork(data: bytes) -> tuple[Image.Image, RGB]:
    """Decode image bytes into a stream-independent RGBA image plus accent."""
    with Image.open(BytesIO(data)) as source:
        image = source.convert("RGBA")
    return image, accent_color_of(image)


class ArtCache:
    """Single-slot artwork cache keyed by track identity."""

    def __init__(self) -> None:
        self._entry = ArtCacheEntry()

    @property
    def entry(self) -> ArtCacheEntry:
        return self._entry

    @property
    def accent_color(self) -> RGB:
        return self._entry.accent_color

    async def ensure_art(
        self,
        snapshot: PlayerSnapshot,
        fetcher: ArtworkFetcher,
        scope: CancellationScope,
    ) -> ArtCacheEntry:
        """Bring the slot in line with the snapshot, fetching art at most once.

        Raises `RequestCancelled` without modifying the slot when `scope` is
        revoked mid-fetch.
        """
        track = snapshot.active_track
        if track is None:
            if self._entry != ArtCacheEntry():
                self._swap(ArtCacheEntry())
            return self._entry

        identity = identity_of(snapshot)
        working = self._entry
        if working.identity != identity:
            working = ArtCacheEntry(identity=identity)
        if working.image is None and not working.attempted:
            working = await self._load(
                track, replace(working, attempted=True), fetcher, scope
            )
        self._swap(working)
        return working

    def clear(self) -> None:
        """Release the cached image and empty the slot."""
        self._swap(ArtCacheEntry())

    async def _load(
        self,
        track: TrackRef,
        working: ArtCacheEntry,
        fetcher: ArtworkFetcher,
        scope: CancellationScope,
    ) -> ArtCacheEntry:
        if not track.playlist_id:
            return working
        try:
            data = await fetcher(track.playlist_id, track.index, scope)
        except (
            NetworkFailure,
            RequestTimeout,
            DecodeFailure,
            ConfigurationMissing,
        ) as exc:
            logger.warning(
                "Failed to get album art (%s/%s): %s",
                track.playlist_id,
                track.index,
                exc,
            )
            return working
        if data is None:
            logger.debug("No album art for %s/%s", track.playlist_id, track.index)
            return working
        try:
            image, accent = await run_blocking(decode_artwork, data)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            logger.warning(
                "Album art for %s/%s could not be decoded: %s",
                track.playlist_id,
                track.index,
                exc,
            )
            return working
        if scope.cancelled:
            image.close()
            raise RequestCancelled(f"{scope.name} cancelled")
        return replace(working, image=image, accent_color=accent)

    def _swap(self, entry: ArtCacheEntry) -> None:
        previous = self._entry
        self._entry = entry
        if previous.image is not None and previous.image is not entry.image:
            previous.image.close()
