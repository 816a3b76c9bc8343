"""Cross-module event/message models for widget and host communication.

Dataclass events are used for widget-to-host signaling, while `textual.message`
types are used for preview-host interaction routing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from textual.message import Message

if TYPE_CHECKING:
    from beefweb_widget.render.renderer import Frame

DEFAULT_WAIT_MAX_MS = 1000


@dataclass(frozen=True)
class FrameReady:
    """Widget event carrying a freshly rendered frame for the host to display.

    `wait_max_ms` is how long the host may take to present the frame before
    the widget considers it dropped.
    """

    instance_id: str
    frame: Frame
    offset: tuple[int, int] = (0, 0)
    wait_max_ms: int = DEFAULT_WAIT_MAX_MS


class FrameClicked(Message):
    """UI message for a click on the frame view, in canvas pixel coordinates."""

    def __init__(self, x: int, y: int, *, click_type: str = "single") -> None:
        super().__init__()
        self.x = x
        self.y = y
        self.click_type = click_type
