"""Command-line interface: render one widget frame to a PNG, or run diagnostics."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from . import __version__
from .doctor import render_report, run_doctor
from .events import FrameReady
from .logging_utils import setup_logging
from .paths import log_dir, settings_path
from .render.renderer import Frame
from .runtime_config import (
    API_URL_SETTING_KEY,
    BACKENDS,
    resolve_api_url,
    resolve_log_level,
)
from .services.beefweb_client import BeefwebClient
from .services.fake_client import FakePlayerClient
from .services.player_api import PlayerClient
from .settings_store import JsonSettingsStore
from .version import build_help_epilog
from .widget import DEFAULT_CANVAS_SIZE, WidgetInstance

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="beefweb-widget-snapshot",
        description="Render a single beefweb-widget frame to a PNG file.",
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
        "--output",
        default="beefweb-widget.png",
        help="PNG file to write (default: beefweb-widget.png).",
    )
    parser.add_argument(
        "--doctor",
        action="store_true",
        help="Check dependencies and API reachability instead of rendering.",
    )
    return parser


async def render_snapshot(
    *,
    client: PlayerClient,
    settings: JsonSettingsStore | None,
    instance_id: str,
    api_url: str | None,
    canvas_size: tuple[int, int],
) -> tuple[Frame, bool]:
    """Refresh once and return the resulting frame and whether it succeeded.

    A failed refresh still yields a frame rendered from the fallback state.
    """
    published: list[Frame] = []

    async def _capture(event: FrameReady) -> None:
        published.append(event.frame)

    widget = WidgetInstance(
        client=client,
        emit_event=_capture,
        instance_id=instance_id,
        manager=settings,
        canvas_size=canvas_size,
    )
    try:
        if api_url is not None:
            widget.configure_api_url(api_url)
        ok = await widget.refresh()
        frame = published[-1] if published else widget.render_frame()
    finally:
        await widget.dispose()
    return frame, ok


def _build_client(name: str) -> PlayerClient:
    if name == "fake":
        return FakePlayerClient()
    return BeefwebClient()


def _doctor_api_url(args: argparse.Namespace, settings: JsonSettingsStore) -> str:
    if args.api_url is not None:
        return resolve_api_url(args.api_url)
    return resolve_api_url(settings.load_setting(args.instance, API_URL_SETTING_KEY))


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        level = resolve_log_level(verbose=args.verbose, quiet=args.quiet)
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
        )
        settings = JsonSettingsStore(settings_path())
        if args.doctor:
            report = run_doctor(
                _doctor_api_url(args, settings),
                require_api=args.backend == "beefweb",
            )
            print(render_report(report))
            return report.exit_code

        frame, ok = asyncio.run(
            render_snapshot(
                client=_build_client(args.backend),
                settings=settings,
                instance_id=args.instance,
                api_url=args.api_url,
                canvas_size=(args.width, args.height),
            )
        )
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        frame.image.save(output, format="PNG")
        logger.info("Snapshot written to %s", output)
        if not ok:
            print(
                f"Player state unavailable; wrote fallback frame to {output}.",
                file=sys.stderr,
            )
            return 2
        print(f"Snapshot written to {output}")
        return 0
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Unhandled error: %s", exc)
        print("Unexpected error. Re-run with --verbose for details.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
