"""Widget frame renderer.

`render` is a pure function of its inputs: it performs no I/O and never
mutates the snapshot, cache entry, icons, or fonts it is given.
"""

from __future__ import annotations

import colorsys
import logging
from dataclasses import dataclass
from typing import Literal

from PIL import Image, ImageDraw, ImageFont

from beefweb_widget.services.art_cache import RGB, ArtCacheEntry
from beefweb_widget.services.player_api import PlayerSnapshot, TransportCommand

from .icons import IconSet
from .layout import Layout, Rect, TextMetrics, art_rect

logger = logging.getLogger(__name__)

Font = ImageFont.FreeTypeFont | ImageFont.ImageFont

TITLE_FONT_SIZE = 24
INFO_FONT_SIZE = 20
DARK_TEXT_THRESHOLD = 0.65
BLACK: RGB = (0, 0, 0)
WHITE: RGB = (255, 255, 255)
PLACEHOLDER_FILL = (128, 128, 128, 100)
NO_ART_LABEL = "No Art"
ELLIPSIS = "…"

_BOLD_FONT_CANDIDATES = ("DejaVuSans-Bold.ttf", "arialbd.ttf", "Arial Bold.ttf")
_REGULAR_FONT_CANDIDATES = ("DejaVuSans.ttf", "arial.ttf", "Arial.ttf")


@dataclass(frozen=True)
class FontSet:
    title: Font
    info: Font

    def metrics(self) -> TextMetrics:
        return TextMetrics(
            title_height=line_height(self.title),
            info_height=line_height(self.info),
        )


@dataclass(frozen=True)
class Frame:
    """Rendered bitmap plus what was drawn on it."""

    image: Image.Image
    background: RGB
    foreground: RGB
    title: str = ""
    artist: str = ""
    album: str = ""
    art_placeholder: bool = False
    play_pause_icon: Literal["play", "pause"] | None = None
    buttons_drawn: tuple[TransportCommand, ...] = ()


def load_fonts(
    title_size: int = TITLE_FONT_SIZE, info_size: int = INFO_FONT_SIZE
) -> FontSet:
    return FontSet(
        title=_load_font(_BOLD_FONT_CANDIDATES, title_size),
        info=_load_font(_REGULAR_FONT_CANDIDATES, info_size),
    )


def _load_font(candidates: tuple[str, ...], size: int) -> Font:
    for name in candidates:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    logger.debug("No TrueType font found among %s; using Pillow default", candidates)
    return ImageFont.load_default(size=size)


def line_height(font: Font) -> int:
    getmetrics = getattr(font, "getmetrics", None)
    if callable(getmetrics):
        ascent, descent = getmetrics()
        return int(ascent + descent)
    return int(font.getbbox("Ag")[3])


def brightness(color: RGB) -> float:
    """HSL lightness in [0, 1]."""
    r, g, b = color
    return colorsys.rgb_to_hls(r / 255.0, g / 255.0, b / 255.0)[1]


def text_color_for(background: RGB) -> RGB:
    return BLACK if brightness(background) > DARK_TEXT_THRESHOLD else WHITE


def truncate_text(text: str, font: Font, max_width: int) -> str:
    """Fit `text` on one line, replacing the overflowing tail with an ellipsis."""
    if max_width <= 0 or not text:
        return ""
    if font.getlength(text) <= max_width:
        return text
    if font.getlength(ELLIPSIS) > max_width:
        return ""
    lo, hi = 0, len(text)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if font.getlength(text[:mid].rstrip() + ELLIPSIS) <= max_width:
            lo = mid
        else:
            hi = mid - 1
    return text[:lo].rstrip() + ELLIPSIS


def render(
    snapshot: PlayerSnapshot | None,
    cache: ArtCacheEntry,
    layout: Layout | None,
    title: str,
    artist: str,
    album: str,
    *,
    canvas_size: tuple[int, int],
    icons: IconSet,
    fonts: FontSet,
    background: RGB | None = None,
) -> Frame:
    """Draw one widget frame.

    With no layout (text column too narrow) only the background and the art
    area are drawn.
    """
    width, height = canvas_size
    bg = background if background is not None else cache.accent_color
    fg = text_color_for(bg)
    image = Image.new("RGBA", (max(1, width), max(1, height)), (*bg, 255))

    art = layout.art if layout is not None else art_rect(width, height)
    placeholder = False
    if not art.is_empty:
        if cache.image is not None:
            with cache.image.resize(
                (art.width, art.height), resample=Image.Resampling.BICUBIC
            ) as scaled:
                image.alpha_composite(scaled, dest=(art.x, art.y))
        else:
            placeholder = True
            veil = Image.new("RGBA", (art.width, art.height), PLACEHOLDER_FILL)
            with veil:
                image.alpha_composite(veil, dest=(art.x, art.y))
            _draw_centered(ImageDraw.Draw(image), art, NO_ART_LABEL, fonts.info, fg)

    if layout is None:
        return Frame(
            image=image, background=bg, foreground=fg, art_placeholder=placeholder
        )

    draw = ImageDraw.Draw(image)
    drawn_title = _draw_line(draw, layout.title, title, fonts.title, fg)
    drawn_artist = _draw_line(draw, layout.artist, artist, fonts.info, fg)
    drawn_album = _draw_line(draw, layout.album, album, fonts.info, fg)

    playing = snapshot is not None and snapshot.playback_state == "playing"
    play_pause: Literal["play", "pause"] = "pause" if playing else "play"
    glyphs = {
        "previous": icons.previous,
        "play-pause": icons.pause if playing else icons.play,
        "next": icons.next,
    }
    drawn_buttons: list[TransportCommand] = []
    for command, rect in layout.visible_buttons():
        glyph = _fit_icon(glyphs[command], rect)
        image.alpha_composite(glyph, dest=(rect.x, rect.y))
        drawn_buttons.append(command)

    return Frame(
        image=image,
        background=bg,
        foreground=fg,
        title=drawn_title,
        artist=drawn_artist,
        album=drawn_album,
        art_placeholder=placeholder,
        play_pause_icon=play_pause if "play-pause" in drawn_buttons else None,
        buttons_drawn=tuple(drawn_buttons),
    )


def _draw_line(
    draw: ImageDraw.ImageDraw, rect: Rect, text: str, font: Font, fill: RGB
) -> str:
    fitted = truncate_text(text, font, rect.width)
    if fitted:
        draw.text((rect.x, rect.y), fitted, font=font, fill=fill)
    return fitted


def _draw_centered(
    draw: ImageDraw.ImageDraw, rect: Rect, text: str, font: Font, fill: RGB
) -> None:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = rect.x + (rect.width - (right - left)) / 2 - left
    y = rect.y + (rect.height - (bottom - top)) / 2 - top
    draw.text((x, y), text, font=font, fill=fill)


def _fit_icon(icon: Image.Image, rect: Rect) -> Image.Image:
    if icon.size == (rect.width, rect.height):
        return icon
    size = (rect.width, rect.height)
    return icon.resize(size, resample=Image.Resampling.LANCZOS)
