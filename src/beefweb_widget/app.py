"""Textual preview host for beefweb-widget.

The app plays the role of the desktop widget host: it owns one
`WidgetInstance`, shows every published frame, forwards clicks on the frame,
and maps sleep/wake to a key so the lifecycle can be exercised by hand.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from textual.app import App, ComposeResult
from textual.widgets import Footer, Header, Static

from . import __version__
from .events import FrameClicked, FrameReady
from .logging_utils import setup_logging
from .paths import log_dir, settings_path
from .render.renderer import Frame
from .runtime_config import (
    BACKENDS,
    DEFAULT_POLL_INTERVAL_S,
    clamp_poll_interval,
    resolve_log_level,
)
from .services.beefweb_client import BeefwebClient
from .services.fake_client import FakePlayerClient
from .services.player_api import PlayerClient
from .settings_store import JsonSettingsStore
from .ui.frame_view import FrameView
from .version import build_help_epilog
from .widget import DEFAULT_CANVAS_SIZE, HostManager, WidgetInstance

logger = logging.getLogger(__name__)


class BeefwebWidgetApp(App):
    TITLE = "beefweb-widget"
    CSS = """
    Screen {
        layout: vertical;
    }

    #frame-view {
        height: 1fr;
    }

    #status-line {
        height: 1;
        padding: 0 1;
    }
    """
    BINDINGS = [
        ("r", "refresh", "Refresh"),
        ("s", "toggle_sleep", "Sleep/Wake"),
        ("space", "play_pause", "Play/Pause"),
        ("n", "next_track", "Next"),
        ("p", "previous_track", "Previous"),
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        *,
        client: PlayerClient,
        settings: HostManager | None = None,
        instance_id: str = "default",
        api_url: str | None = None,
        canvas_size: tuple[int, int] = DEFAULT_CANVAS_SIZE,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        auto_start: bool = True,
    ) -> None:
        super().__init__()
        self.widget = WidgetInstance(
            client=client,
            emit_event=self._handle_frame_ready,
            instance_id=instance_id,
            manager=settings,
            canvas_size=canvas_size,
            poll_interval_s=poll_interval_s,
        )
        self._api_url = api_url
        self._auto_start = auto_start
        self.frames_received = 0

    def compose(self) -> ComposeResult:
        yield Header()
        yield FrameView(id="frame-view")
        yield Static("", id="status-line")
        yield Footer()

    async def on_mount(self) -> None:
        if self._api_url is not None:
            self.widget.configure_api_url(self._api_url)
        self._update_status_line()
        if self._auto_start:
            await self.widget.start()
            self.widget.request_update()

    async def on_unmount(self) -> None:
        await self.widget.dispose()

    async def on_frame_clicked(self, message: FrameClicked) -> None:
        self.widget.click(message.click_type, message.x, message.y)

    async def action_refresh(self) -> None:
        self.widget.request_update()

    async def action_toggle_sleep(self) -> None:
        if self.widget.status == "sleeping":
            await self.widget.wake()
        else:
            await self.widget.sleep()
        self._update_status_line()

    async def action_play_pause(self) -> None:
        self.widget.command("play-pause")

    async def action_next_track(self) -> None:
        self.widget.command("next")

    async def action_previous_track(self) -> None:
        self.widget.command("previous")

    async def action_quit(self) -> None:
        self.exit()

    async def _handle_frame_ready(self, event: FrameReady) -> None:
        self.frames_received += 1
        self._show_frame(event.frame)

    def _show_frame(self, frame: Frame) -> None:
        self.query_one(FrameView).show_frame(frame)
        self._update_status_line()

    def _update_status_line(self) -> None:
        snapshot = self.widget.snapshot
        playback = snapshot.playback_state if snapshot is not None else "unknown"
        self.query_one("#status-line", Static).update(
            f"{self.widget.status} | {playback} | {self.widget.api_url or '<unset>'}"
        )


def _build_client(name: str) -> PlayerClient:
    logger.info("Player client selected: %s", name)
    if name == "fake":
        return FakePlayerClient()
    return BeefwebClient()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="beefweb-widget",
        description="Preview the foobar2000 Beefweb sidebar widget in a terminal.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=build_help_epilog(),
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        default="beefweb",
        help="Player client to use (fake or beefweb).",
    )
    parser.add_argument(
        "--api-url",
        help="Beefweb API base URL; stored as the instance setting.",
    )
    parser.add_argument(
        "--instance", default="default", help="Widget instance id for settings."
    )
    parser.add_argument(
        "--width", type=int, default=DEFAULT_CANVAS_SIZE[0], help="Canvas width."
    )
    parser.add_argument(
        "--height", type=int, default=DEFAULT_CANVAS_SIZE[1], help="Canvas height."
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL_S,
        help="Seconds between refreshes (clamped to 0.5-30).",
    )
    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    try:
        level = resolve_log_level(verbose=args.verbose, quiet=args.quiet)
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
            console=False,
        )
        logging.getLogger(__name__).info("Starting beefweb-widget preview")
        BeefwebWidgetApp(
            client=_build_client(args.backend),
            settings=JsonSettingsStore(settings_path()),
            instance_id=args.instance,
            api_url=args.api_url,
            canvas_size=(args.width, args.height),
            poll_interval_s=clamp_poll_interval(args.poll_interval),
        ).run()
        return 0
    except Exception as exc:  # pragma: no cover - top-level safety net
        logging.getLogger(__name__).exception("Fatal startup error: %s", exc)
        print(
            "Startup failed. Verify settings/log paths and re-run with --verbose.",
            file=sys.stderr,
        )
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
