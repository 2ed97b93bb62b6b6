"""
Wire format for playerctl metadata lines.

Both the one-shot ``metadata`` query and the ``metadata --follow`` stream use
the same ``--format`` template, so a single parser serves both.  Fields are
joined with ``|||`` rather than ``|`` because real titles contain pipes.

Field order: title, artist, album, status, player name, position, length,
art URL.  The last three are optional; fewer than five fields is a
ParseFailure.
"""

from urllib.parse import unquote, urlparse

from .errors import ParseFailure
from .models import UNKNOWN, MediaDescriptor, PlaybackStatus

DELIMITER = "|||"
MIN_FIELDS = 5

TEMPLATE_FIELDS = (
    "title",
    "artist",
    "album",
    "status",
    "playerName",
    "position",
    "mpris:length",
    "mpris:artUrl",
)

FORMAT_TEMPLATE = DELIMITER.join("{{%s}}" % name for name in TEMPLATE_FIELDS)


def _parse_micros(text: str) -> int | None:
    text = text.strip()
    if not text:
        return None
    try:
        value = int(text)
    except ValueError:
        try:
            value = int(float(text))
        except ValueError:
            return None
    return value if value >= 0 else None


def parse_metadata_line(line: str) -> MediaDescriptor:
    """Parse one formatted line.  Raises ParseFailure if it has < 5 fields."""
    parts = [p.strip() for p in line.rstrip("\r\n").split(DELIMITER)]
    if len(parts) < MIN_FIELDS:
        raise ParseFailure(line, f"expected >= {MIN_FIELDS} fields, got {len(parts)}")

    def part(i):
        return parts[i] if i < len(parts) else ""

    return MediaDescriptor(
        title=part(0) or UNKNOWN,
        artist=part(1) or UNKNOWN,
        album=part(2) or UNKNOWN,
        status=PlaybackStatus.parse(part(3)),
        player=part(4),
        position=_parse_micros(part(5)),
        length=_parse_micros(part(6)),
        art_url=part(7) or None,
    )


def is_local_art(url: str | None) -> bool:
    return bool(url) and url.lower().startswith("file://")


def file_url_to_path(url: str) -> str:
    """``file:///home/me/My%20Cover.jpg`` -> ``/home/me/My Cover.jpg``"""
    parsed = urlparse(url)
    path = unquote(parsed.path)
    if parsed.netloc and parsed.netloc != "localhost":
        path = f"//{parsed.netloc}{path}"
    return path
