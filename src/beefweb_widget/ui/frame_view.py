"""Terminal view of rendered widget frames.

Each terminal cell shows two vertically stacked pixels using an upper
half-block glyph: the foreground color is the top pixel, the background the
bottom one. Clicks are mapped back to canvas pixel coordinates.
"""

from __future__ import annotations

from typing import cast

from PIL import Image
from rich.color import Color
from rich.style import Style
from rich.text import Text
from textual.events import Click
from textual.widget import Widget

from beefweb_widget.events import FrameClicked
from beefweb_widget.render.renderer import Frame

HALF_BLOCK = "▀"
WAITING_TEXT = "Waiting for the first frame..."


def fit_scale(canvas_size: tuple[int, int], cells: tuple[int, int]) -> float:
    """Largest canvas-to-pixel scale that fits the frame into the cell grid."""
    width, height = canvas_size
    cols, rows = cells
    if width <= 0 or height <= 0 or cols <= 0 or rows <= 0:
        return 0.0
    return min(cols / width, (rows * 2) / height)


def frame_to_text(image: Image.Image, cols: int, rows: int) -> tuple[Text, float]:
    """Downsample `image` into half-block text. Returns the text and scale."""
    scale = fit_scale(image.size, (cols, rows))
    if scale <= 0:
        return Text(""), 0.0
    px_width = max(1, int(image.width * scale))
    px_height = max(2, int(image.height * scale))
    px_height += px_height % 2
    text = Text(no_wrap=True, overflow="crop")
    with image.convert("RGB") as rgb:
        small = rgb.resize((px_width, px_height), resample=Image.Resampling.BOX)
    with small:
        for y in range(0, px_height, 2):
            if y:
                text.append("\n")
            for x in range(px_width):
                top = _rgb_at(small, x, y)
                bottom = _rgb_at(small, x, y + 1)
                style = Style(
                    color=Color.from_rgb(*top), bgcolor=Color.from_rgb(*bottom)
                )
                text.append(HALF_BLOCK, style=style)
    return text, scale


def _rgb_at(image: Image.Image, x: int, y: int) -> tuple[int, int, int]:
    r, g, b = cast("tuple[int, int, int]", image.getpixel((x, y)))
    return r, g, b


def cell_to_canvas(cell_x: int, cell_y: int, scale: float) -> tuple[int, int] | None:
    """Map a cell to the canvas pixel under its center."""
    if scale <= 0 or cell_x < 0 or cell_y < 0:
        return None
    return int((cell_x + 0.5) / scale), int((cell_y * 2 + 1) / scale)


class FrameView(Widget):
    """Shows the latest widget frame and forwards clicks on it."""

    DEFAULT_CSS = """
    FrameView {
        height: 1fr;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._frame: Frame | None = None
        self._scale = 0.0

    @property
    def frame(self) -> Frame | None:
        return self._frame

    @property
    def scale(self) -> float:
        return self._scale

    def show_frame(self, frame: Frame) -> None:
        self._frame = frame
        self.refresh()

    def render(self) -> Text:
        if self._frame is None:
            self._scale = 0.0
            return Text(WAITING_TEXT, no_wrap=True)
        text, self._scale = frame_to_text(
            self._frame.image, self.size.width, self.size.height
        )
        return text

    def on_click(self, event: Click) -> None:
        point = cell_to_canvas(event.x, event.y, self._scale)
        if point is None:
            return
        chain = getattr(event, "chain", 1)
        click_type = "single" if chain <= 1 else "double"
        self.post_message(FrameClicked(point[0], point[1], click_type=click_type))
        event.stop()
