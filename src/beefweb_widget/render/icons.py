"""Transport control icons.

Icons are created once per widget instance and are read-only afterwards, so
renders share them without locking. A host may supply PNG resources; any
missing or unreadable file falls back to a drawn glyph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageDraw

from .layout import BUTTON_SIZE

logger = logging.getLogger(__name__)

ICON_FILES = {
    "previous": "prev.png",
    "play": "play.png",
    "pause": "pause.png",
    "next": "next.png",
}
_ICON_COLOR = (255, 255, 255, 255)


@dataclass(frozen=True)
class IconSet:
    previous: Image.Image
    play: Image.Image
    pause: Image.Image
    next: Image.Image

    def close(self) -> None:
        for image in (self.previous, self.play, self.pause, self.next):
            image.close()


def load_icons(directory: Path | None = None, size: int = BUTTON_SIZE) -> IconSet:
    """Load icons from `directory` when given, drawing any that are missing."""
    images = {
        name: _load_icon_file(directory / filename, size) if directory else None
        for name, filename in ICON_FILES.items()
    }
    if directory is not None and any(image is None for image in images.values()):
        logger.warning(
            "One or more control icons failed to load from %s; using drawn icons.",
            directory,
        )
    return IconSet(
        previous=images["previous"] or _draw_icon("previous", size),
        play=images["play"] or _draw_icon("play", size),
        pause=images["pause"] or _draw_icon("pause", size),
        next=images["next"] or _draw_icon("next", size),
    )


def _load_icon_file(path: Path, size: int) -> Image.Image | None:
    try:
        with Image.open(path) as source:
            icon = source.convert("RGBA")
    except (OSError, ValueError) as exc:
        logger.debug("Icon resource %s unavailable: %s", path, exc)
        return None
    if icon.size != (size, size):
        resized = icon.resize((size, size), resample=Image.Resampling.LANCZOS)
        icon.close()
        return resized
    return icon


def _draw_icon(name: str, size: int) -> Image.Image:
    icon = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(icon)
    m = size // 4
    mid = size // 2
    bar = max(2, size // 10)
    if name == "play":
        draw.polygon([(m, m), (size - m, mid), (m, size - m)], fill=_ICON_COLOR)
    elif name == "pause":
        draw.rectangle([m, m, m + bar * 2, size - m], fill=_ICON_COLOR)
        draw.rectangle([size - m - bar * 2, m, size - m, size - m], fill=_ICON_COLOR)
    elif name == "next":
        draw.polygon([(m, m), (size - m - bar, mid), (m, size - m)], fill=_ICON_COLOR)
        draw.rectangle([size - m - bar, m, size - m, size - m], fill=_ICON_COLOR)
    else:
        draw.rectangle([m, m, m + bar, size - m], fill=_ICON_COLOR)
        draw.polygon(
            [(size - m, m), (m + bar, mid), (size - m, size - m)], fill=_ICON_COLOR
        )
    return icon
