"""Tests for frame rendering, text fitting, and icons."""

from __future__ import annotations

import logging

import pytest
from PIL import Image

from beefweb_widget.render.icons import ICON_FILES, load_icons
from beefweb_widget.render.layout import compute_layout
from beefweb_widget.render.renderer import (
    BLACK,
    ELLIPSIS,
    WHITE,
    brightness,
    render,
    text_color_for,
    truncate_text,
)
from beefweb_widget.services.art_cache import ArtCacheEntry, decode_artwork
from beefweb_widget.services.fake_client import solid_artwork
from beefweb_widget.services.player_api import PlayerSnapshot, TrackRef

CANVAS = (480, 200)


def _snapshot(state: str = "playing") -> PlayerSnapshot:
    return PlayerSnapshot(
        active_track=TrackRef("p1", 0, ("Song A", "Artist A", "Album A")),
        playback_state=state,  # type: ignore[arg-type]
    )


def _red_entry() -> ArtCacheEntry:
    image, accent = decode_artwork(solid_artwork((250, 110, 110)))
    return ArtCacheEntry(
        identity="p1:0:Song A:Artist A:Album A",
        image=image,
        accent_color=accent,
        attempted=True,
    )


def _render(snapshot, entry, icons, fonts, *, size=CANVAS, texts=None, **kwargs):
    layout = compute_layout(size[0], size[1], fonts.metrics())
    title, artist, album = texts or ("Song A", "Artist A", "Album A")
    return render(
        snapshot,
        entry,
        layout,
        title,
        artist,
        album,
        canvas_size=size,
        icons=icons,
        fonts=fonts,
        **kwargs,
    )


def test_red_art_frame_uses_accent_and_dark_text(icons, fonts) -> None:
    frame = _render(_snapshot(), _red_entry(), icons, fonts)

    assert frame.image.size == CANVAS
    assert frame.background == (250, 110, 110)
    assert frame.foreground == BLACK
    assert (frame.title, frame.artist, frame.album) == ("Song A", "Artist A", "Album A")
    assert frame.play_pause_icon == "pause"
    assert frame.art_placeholder is False
    assert frame.buttons_drawn == ("previous", "play-pause", "next")
    assert frame.image.getpixel((CANVAS[0] - 2, 2)) == (250, 110, 110, 255)
    assert frame.image.getpixel((100, 100)) == (250, 110, 110, 255)


def test_missing_art_draws_placeholder_on_black(icons, fonts) -> None:
    frame = _render(_snapshot("paused"), ArtCacheEntry(attempted=True), icons, fonts)

    assert frame.background == BLACK
    assert frame.foreground == WHITE
    assert frame.art_placeholder is True
    assert frame.play_pause_icon == "play"
    r, g, b, a = frame.image.getpixel((12, 12))
    assert a == 255
    assert r == g == b
    assert 40 <= r <= 60
    assert frame.image.getpixel((CANVAS[0] - 2, CANVAS[1] - 2)) == (0, 0, 0, 255)


def test_background_override_wins_over_accent(icons, fonts) -> None:
    frame = _render(_snapshot(), _red_entry(), icons, fonts, background=BLACK)
    assert frame.background == BLACK
    assert frame.foreground == WHITE
    assert frame.image.getpixel((CANVAS[0] - 2, 2)) == (0, 0, 0, 255)


def test_invalid_layout_draws_only_background_and_art(icons, fonts) -> None:
    frame = _render(_snapshot(), ArtCacheEntry(), icons, fonts, size=(200, 200))

    assert frame.image.size == (200, 200)
    assert frame.art_placeholder is True
    assert (frame.title, frame.artist, frame.album) == ("", "", "")
    assert frame.buttons_drawn == ()
    assert frame.play_pause_icon is None


def test_buttons_outside_padding_are_not_drawn(icons, fonts) -> None:
    frame = _render(_snapshot(), ArtCacheEntry(), icons, fonts, size=(250, 120))
    assert frame.buttons_drawn == ("previous", "play-pause")
    assert frame.play_pause_icon == "pause"


def test_long_title_is_truncated_with_ellipsis(icons, fonts) -> None:
    long_title = "A very long song title that cannot possibly fit " * 3
    frame = _render(
        _snapshot(),
        ArtCacheEntry(),
        icons,
        fonts,
        texts=(long_title, "Artist A", ""),
    )
    layout = compute_layout(*CANVAS, fonts.metrics())
    assert layout is not None
    assert frame.title.endswith(ELLIPSIS)
    assert fonts.title.getlength(frame.title) <= layout.title.width
    assert frame.album == ""


def test_truncate_text_edges(fonts) -> None:
    assert truncate_text("Short", fonts.info, 500) == "Short"
    assert truncate_text("Short", fonts.info, 0) == ""
    assert truncate_text("", fonts.info, 100) == ""
    fitted = truncate_text("Wordy words and more words", fonts.info, 60)
    assert fitted.endswith(ELLIPSIS)
    assert fonts.info.getlength(fitted) <= 60
    assert truncate_text("Anything", fonts.info, 1) == ""


@pytest.mark.parametrize(
    ("color", "expected"),
    [
        ((255, 255, 255), BLACK),
        ((250, 110, 110), BLACK),
        ((0, 0, 0), WHITE),
        ((40, 70, 160), WHITE),
        ((128, 128, 128), WHITE),
    ],
)
def test_text_color_threshold(color, expected) -> None:
    assert text_color_for(color) == expected


def test_brightness_is_hls_lightness() -> None:
    assert brightness((0, 0, 0)) == 0.0
    assert brightness((255, 255, 255)) == 1.0
    assert brightness((250, 110, 110)) == pytest.approx(0.706, abs=0.001)


def test_fonts_expose_positive_metrics(fonts) -> None:
    metrics = fonts.metrics()
    assert metrics.title_height > 0
    assert metrics.info_height > 0


def test_load_icons_draws_fallbacks_when_resources_missing(tmp_path, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        icons = load_icons(tmp_path)
    assert icons.play.size == (48, 48)
    assert icons.play.mode == "RGBA"
    assert icons.play.getpixel((24, 24))[3] == 255
    assert any("failed to load" in record.message for record in caplog.records)


def test_load_icons_reads_and_resizes_resources(tmp_path) -> None:
    for index, filename in enumerate(ICON_FILES.values()):
        Image.new("RGBA", (32, 32), (index * 40, 0, 0, 255)).save(tmp_path / filename)
    icons = load_icons(tmp_path)
    assert icons.previous.size == (48, 48)
    assert icons.pause.getpixel((10, 10)) == (80, 0, 0, 255)
    icons.close()
