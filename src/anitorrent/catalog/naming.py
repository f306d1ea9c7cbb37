"""Release-name parsing for anime episode files.

Handles the common fansub layouts:

    [Group] Title - 01 [1080p][MultiSub] (JA)
    [Group] Title 2nd Season - 05v2 [1080p].mkv
    Title.S01E05.Episode.Name.1080p.WEB.mkv
"""

import logging
from pathlib import Path

import regex
from pydantic import BaseModel

logger = logging.getLogger(__name__)

_EXTENSION = regex.compile(r"\.(?:mkv|mp4|m4v|avi|webm|ts)$", regex.IGNORECASE)
_BRACKET_GROUP = regex.compile(r"\[[^\]]*\]|\{[^}]*\}")
# Parenthesized tags: variant markers like (JA)/(CA) and technical blocks like (1080p HEVC)
_PAREN_TAG = regex.compile(
    r"\((?:[A-Z]{2,3}|[^)]*\b(?:\d{3,4}p|WEB(?:-DL)?|AAC|HEVC|AVC|x26[45])\b[^)]*)\)",
    regex.IGNORECASE,
)
_SEASON_EPISODE = regex.compile(
    r"^(?P<title>.+?)[\s._-]+S(?P<season>\d{1,2})E(?P<episode>\d{1,4})(?:v\d)?"
    r"(?:[\s._-]+(?P<rest>.+))?$",
    regex.IGNORECASE,
)
_DASH_EPISODE = regex.compile(
    r"^(?P<title>.+?)\s+-\s+(?:E|EP|Episode\s*)?(?P<episode>\d{1,4})(?:v\d)?"
    r"(?:\s+-\s+(?P<rest>.+))?$",
    regex.IGNORECASE,
)
_TITLE_SEASON = regex.compile(
    r"^(?P<title>.+?)\s+(?:S(?P<s1>\d{1,2})|(?P<s2>\d{1,2})(?:st|nd|rd|th)\s+Season"
    r"|Season\s+(?P<s3>\d{1,2}))$",
    regex.IGNORECASE,
)
# Technical tokens that end a dotted episode title ("Name.1080p.WEB")
_TECH_TOKEN = regex.compile(
    r"[\s.](?:\d{3,4}p|WEB(?:-?DL|Rip)?|BluRay|HDTV|x26[45]|HEVC|AAC)\b.*$", regex.IGNORECASE
)


class ReleaseInfo(BaseModel):
    """Fields recognized in a release or file name."""

    title: str | None = None
    season: int | None = None
    episode: int | None = None
    episode_title: str | None = None


def _clean(name: str) -> str:
    name = _EXTENSION.sub("", name.strip())
    name = _BRACKET_GROUP.sub(" ", name)
    name = _PAREN_TAG.sub(" ", name)
    return regex.sub(r"\s+", " ", name).strip()


def _split_season(title: str) -> tuple[str, int | None]:
    match = _TITLE_SEASON.match(title)
    if not match:
        return title, None
    season = match.group("s1") or match.group("s2") or match.group("s3")
    return match.group("title").strip(), int(season)


def parse_release(name: str) -> ReleaseInfo:
    """Parse a release title or file name.

    Args:
        name: Release title, e.g. "[Erai-raws] Sousou no Frieren - 01 [1080p].mkv"

    Returns:
        ReleaseInfo; unrecognized fields are None
    """
    cleaned = _clean(name)

    match = _SEASON_EPISODE.match(cleaned)
    if match:
        title = regex.sub(r"[._]", " ", match.group("title")).strip()
        rest = match.group("rest")
        episode_title = None
        if rest:
            episode_title = regex.sub(r"[._]", " ", _TECH_TOKEN.sub("", rest)).strip() or None
        return ReleaseInfo(
            title=title or None,
            season=int(match.group("season")),
            episode=int(match.group("episode")),
            episode_title=episode_title,
        )

    match = _DASH_EPISODE.match(cleaned)
    if match:
        title, season = _split_season(match.group("title").strip())
        rest = match.group("rest")
        return ReleaseInfo(
            title=title or None,
            season=season,
            episode=int(match.group("episode")),
            episode_title=rest.strip() if rest else None,
        )

    logger.debug(f"No episode number recognized in {name!r}")
    return ReleaseInfo(title=cleaned or None)


def build_video_name(file_name: str, release: ReleaseInfo | None = None) -> str:
    """Name a video "Title+Words_SxxEyy", or the file stem when unparsable."""
    release = release or parse_release(file_name)
    if release.title and release.episode is not None:
        title = release.title.replace(" ", "+")
        season = release.season or 1
        return f"{title}_S{season:02d}E{release.episode:02d}"
    return Path(file_name).stem
