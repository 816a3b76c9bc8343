"""Deterministic widget layout and hit testing.

Layout is a pure function of canvas size and text metrics. Rendering and click
handling both call `compute_layout`, so a button is clickable exactly where it
is drawn.
"""

from __future__ import annotations

from dataclasses import dataclass

from beefweb_widget.services.player_api import TransportCommand

PADDING = 10
BUTTON_SIZE = 48
BUTTON_SPACING = 10
BUTTON_BOTTOM_GAP = 15
LINE_SPACING = 5
TEXT_BLOCK_EXTRA = 10
# Rough height kept free for the button row when clamping the text block.
BUTTON_ROW_RESERVE = 60


@dataclass(frozen=True)
class Rect:
    """Integer rectangle; `contains` is half-open on the right and bottom edges."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def contains(self, px: int, py: int) -> bool:
        return self.x <= px < self.right and self.y <= py < self.bottom

    def as_box(self) -> tuple[int, int, int, int]:
        """Pillow-style (left, top, right, bottom) box."""
        return (self.x, self.y, self.right, self.bottom)


@dataclass(frozen=True)
class TextMetrics:
    """Line heights of the title and info fonts, in pixels."""

    title_height: int = 28
    info_height: int = 23


DEFAULT_METRICS = TextMetrics()


@dataclass(frozen=True)
class Layout:
    canvas_width: int
    canvas_height: int
    art: Rect
    title: Rect
    artist: Rect
    album: Rect
    previous: Rect
    play_pause: Rect
    next: Rect

    @property
    def buttons(self) -> tuple[tuple[TransportCommand, Rect], ...]:
        """Transport buttons in left-to-right order."""
        return (
            ("previous", self.previous),
            ("play-pause", self.play_pause),
            ("next", self.next),
        )

    def visible_buttons(self) -> tuple[tuple[TransportCommand, Rect], ...]:
        """Buttons that are non-degenerate and end inside the right padding."""
        limit = self.canvas_width - PADDING
        return tuple(
            (command, rect)
            for command, rect in self.buttons
            if not rect.is_empty and rect.right <= limit
        )


def art_rect(canvas_width: int, canvas_height: int) -> Rect:
    """Square art area anchored at the top-left padding corner."""
    side = min(canvas_width - 2 * PADDING, canvas_height - 2 * PADDING)
    side = max(0, side)
    return Rect(PADDING, PADDING, side, side)


def compute_layout(
    canvas_width: int,
    canvas_height: int,
    metrics: TextMetrics = DEFAULT_METRICS,
) -> Layout | None:
    """Compute widget rectangles, or ``None`` when no text column fits."""
    if canvas_width <= 0 or canvas_height <= 0:
        return None
    art = art_rect(canvas_width, canvas_height)
    text_x = art.right + PADDING
    text_width = max(0, canvas_width - text_x - PADDING)
    if text_width <= 0:
        return None

    block_height = metrics.title_height + metrics.info_height * 2 + TEXT_BLOCK_EXTRA
    art_center_y = art.y + art.height // 2
    block_top = max(art_center_y - block_height // 2, PADDING)
    block_top = min(
        block_top,
        max(PADDING, canvas_height - PADDING - block_height - BUTTON_ROW_RESERVE),
    )
    title = Rect(text_x, block_top, text_width, metrics.title_height)
    artist = Rect(text_x, title.bottom + LINE_SPACING, text_width, metrics.info_height)
    album = Rect(text_x, artist.bottom + LINE_SPACING, text_width, metrics.info_height)

    buttons_top = max(
        PADDING, canvas_height - PADDING - BUTTON_SIZE - BUTTON_BOTTOM_GAP
    )
    row_width = 3 * BUTTON_SIZE + 2 * BUTTON_SPACING
    start_x = text_x
    if row_width < text_width:
        start_x = text_x + (text_width - row_width) // 2
    start_x = max(text_x, start_x, PADDING)

    previous = Rect(start_x, buttons_top, BUTTON_SIZE, BUTTON_SIZE)
    play_pause = Rect(
        previous.right + BUTTON_SPACING, buttons_top, BUTTON_SIZE, BUTTON_SIZE
    )
    next_button = Rect(
        play_pause.right + BUTTON_SPACING, buttons_top, BUTTON_SIZE, BUTTON_SIZE
    )
    return Layout(
        canvas_width=canvas_width,
        canvas_height=canvas_height,
        art=art,
        title=title,
        artist=artist,
        album=album,
        previous=previous,
        play_pause=play_pause,
        next=next_button,
    )


def hit_test(layout: Layout | None, x: int, y: int) -> TransportCommand | None:
    """Return the transport command of the visible button under a canvas point."""
    if layout is None:
        return None
    for command, rect in layout.visible_buttons():
        if rect.contains(x, y):
            return command
    return None
