"""Tests for runtime config precedence behavior."""

from __future__ import annotations

import pytest

from beefweb_widget.app import build_parser as app_build_parser
from beefweb_widget.cli import build_parser as cli_build_parser
from beefweb_widget.runtime_config import (
    DEFAULT_API_URL,
    DEFAULT_POLL_INTERVAL_S,
    clamp_poll_interval,
    normalize_api_url,
    resolve_api_url,
    resolve_log_level,
)


def test_resolve_log_level_precedence_matrix() -> None:
    assert resolve_log_level(verbose=False, quiet=False) == "INFO"
    assert resolve_log_level(verbose=True, quiet=False) == "DEBUG"
    assert resolve_log_level(verbose=False, quiet=True) == "WARNING"
    assert resolve_log_level(verbose=True, quiet=True) == "WARNING"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, ""),
        ("", ""),
        ("   ", ""),
        ("http://host:8880/api", "http://host:8880/api"),
        (" http://host:8880/api/ ", "http://host:8880/api"),
        ("http://host/api///", "http://host/api"),
    ],
)
def test_normalize_api_url(value, expected) -> None:
    assert normalize_api_url(value) == expected


def test_resolve_api_url_falls_back_to_default() -> None:
    assert resolve_api_url(None) == DEFAULT_API_URL
    assert resolve_api_url("  ") == DEFAULT_API_URL
    assert resolve_api_url("http://media/api/") == "http://media/api"


def test_clamp_poll_interval() -> None:
    assert clamp_poll_interval(0.0) == 0.5
    assert clamp_poll_interval(2.0) == 2.0
    assert clamp_poll_interval(120) == 30.0


def test_parsers_share_defaults() -> None:
    for build in (app_build_parser, cli_build_parser):
        args = build().parse_args([])
        assert args.backend == "beefweb"
        assert args.api_url is None
        assert args.instance == "default"
        assert (args.width, args.height) == (480, 200)
        assert args.verbose is False
        assert args.quiet is False
    assert app_build_parser().parse_args([]).poll_interval == DEFAULT_POLL_INTERVAL_S


def test_parser_rejects_unknown_backend() -> None:
    with pytest.raises(SystemExit):
        cli_build_parser().parse_args(["--backend", "vlc"])
