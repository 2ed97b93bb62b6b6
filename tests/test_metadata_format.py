from __future__ import annotations

import pytest

from helpers import metadata_line
from playersync.lib.errors import ParseFailure
from playersync.lib.metadata_format import (FORMAT_TEMPLATE, file_url_to_path, is_local_art,
                                            parse_metadata_line)
from playersync.lib.models import PlaybackStatus


def test_template_lists_every_field_in_order() -> None:
    assert FORMAT_TEMPLATE == (
        "{{title}}|||{{artist}}|||{{album}}|||{{status}}|||{{playerName}}"
        "|||{{position}}|||{{mpris:length}}|||{{mpris:artUrl}}"
    )


def test_parses_full_line() -> None:
    media = parse_metadata_line(metadata_line(art_url="https://i.scdn.co/image/abc") + "\n")

    assert media.title == "Song A"
    assert media.artist == "Artist"
    assert media.album == "Album"
    assert media.status is PlaybackStatus.PLAYING
    assert media.player == "spotify"
    assert media.position == 1_000_000
    assert media.length == 200_000_000
    assert media.art_url == "https://i.scdn.co/image/abc"


def test_titles_containing_single_pipes_survive() -> None:
    media = parse_metadata_line(metadata_line(title="Live | Remastered"))
    assert media.title == "Live | Remastered"


def test_five_fields_are_enough() -> None:
    media = parse_metadata_line("T|||A|||B|||Paused|||vlc")

    assert media.status is PlaybackStatus.PAUSED
    assert media.player == "vlc"
    assert media.position is None
    assert media.length is None
    assert media.art_url is None


def test_empty_fields_become_unknown_or_absent() -> None:
    media = parse_metadata_line(metadata_line(
        title="", artist="", album="", status="Stopped", player="mpv",
        position="", length="", art_url=""))

    assert (media.title, media.artist, media.album) == ("Unknown", "Unknown", "Unknown")
    assert media.position is None
    assert media.art_url is None


def test_bad_numbers_are_absent() -> None:
    media = parse_metadata_line(metadata_line(position="abc", length="-5"))
    assert media.position is None
    assert media.length is None


def test_too_few_fields_is_parse_failure() -> None:
    with pytest.raises(ParseFailure) as excinfo:
        parse_metadata_line("Song|||Artist|||Album|||Playing")
    assert excinfo.value.line == "Song|||Artist|||Album|||Playing"


def test_local_art_detection_and_path() -> None:
    assert is_local_art("file:///tmp/cover.jpg")
    assert not is_local_art("https://example.com/cover.jpg")
    assert not is_local_art(None)
    assert file_url_to_path("file:///home/me/My%20Cover.jpg") == "/home/me/My Cover.jpg"
