"""Turn raw provider payloads (Deezer tracks, YouTube search items) into songs.

Loading only transforms data: no normalization, ranking or authority
decisions happen here. Ids are deterministic and dates are never inferred.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from metadata.errors import InputError
from metadata.normalize import normalize_text
from metadata.types import SOURCE_DEEZER, SOURCE_YOUTUBE, Song, create_song

logger = logging.getLogger(__name__)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class VersionInfo:
    type: str
    detail: str | None = None
    is_forbidden: bool = False


def _rule(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


_LIVE_WORD_RE = _rule(r"\blive\b")
_VENUE_WORD_RE = _rule(r"\b(at|from|in|on|session)\b")

# (pattern, version type, detail) for versions rejected at load time.
_FORBIDDEN_RULES: tuple[tuple[re.Pattern[str], str, str | None], ...] = (
    (_rule(r"\b(live\s*version|live\s*performance|en\s*vivo|en\s*directo)\b"), "live", "live_explicit"),
    (_rule(r"\b(acoustic|acustic[ao]?|unplugged|stripped)\b"), "acoustic", None),
    (_rule(r"\bcover\b"), "cover", None),
    (_rule(r"\b(tribute|homenaje|originally\s*by|performed\s*by|in\s*the\s*style\s*of)\b"), "cover", "tribute"),
    (_rule(r"\b(karaoke|instrumental|backing\s*track)\b"), "karaoke", None),
    (_rule(r"\b(sped\s*up|speed\s*up|nightcore)\b"), "sped_up", None),
    (_rule(r"\b(slowed|slowed\s*[\+&]\s*reverb|8d\s*audio)\b"), "slowed", None),
    (_rule(r"\bdemo\b"), "demo", None),
    (_rule(r"\bturreo\b"), "turreo_edit", "turreo"),
    (_rule(r"\brkt(ero)?\b"), "rkt_edit", "rkt"),
    (_rule(r"\bbootleg\b"), "bootleg", None),
    (_rule(r"\bmash\s*up\b|\bmashup\b"), "mashup", None),
    (_rule(r"^(?=.*\bvip\b)(?=.*\b(edit|mix|version)\b)"), "vip_edit", None),
    # an edit with DJ context; radio edits stay allowed
    (_rule(r"^(?!.*\bradio\s*edit\b)(?=.*\bedit\b)(?=.*\b(dj|club|party|bootleg)\b)"), "dj_edit", "club_edit"),
    (_rule(r"\bflip\b"), "flip", None),
    (_rule(r"\brework\b"), "rework", None),
)

_REMIX_DETAIL_RES = (_rule(r"\(([^)]*remix[^)]*)\)"), _rule(r"\[([^\]]*remix[^\]]*)\]"))
_REMASTER_YEAR_RES = (_rule(r"(\d{4})\s*remaster"), _rule(r"remaster(?:ed)?\s*(\d{4})"))

_TRASH_ARTISTS = (
    "kidz bop",
    "rockabye baby",
    "vitamin string quartet",
    "piano tribute",
    "baby einstein",
    "lullaby",
    "sweet little band",
    "twinkle twinkle",
    "sleep baby",
    "relaxing baby",
    "meditation music",
)

_TRASH_TITLE_PATTERNS = tuple(
    _rule(pattern)
    for pattern in (
        r"\bkaraoke\b",
        r"\blullaby\b",
        r"\bfor\s*kids\b",
        r"\binfantil\b",
        r"\bbacking\s*track\b",
        r"\bmidi\b",
        r"\btutorial\b",
        r"\blesson\b",
        r"\bringtone\b",
        r"\bmusic\s*box\b",
    )
)


def detect_version(title: str | None) -> VersionInfo:
    """Classify the version a raw title describes."""
    if not title:
        return VersionInfo(type="original")

    if _LIVE_WORD_RE.search(title) and _VENUE_WORD_RE.search(title):
        return VersionInfo(type="live", detail="live_venue", is_forbidden=True)
    for pattern, version_type, detail in _FORBIDDEN_RULES:
        if pattern.search(title):
            return VersionInfo(type=version_type, detail=detail, is_forbidden=True)

    if re.search(r"\bremix\b", title, re.IGNORECASE):
        detail = None
        for detail_re in _REMIX_DETAIL_RES:
            match = detail_re.search(title)
            if match:
                detail = match.group(1).strip()
                break
        return VersionInfo(type="remix", detail=detail)
    if re.search(r"\bremaster(ed)?\b", title, re.IGNORECASE):
        year = None
        for year_re in _REMASTER_YEAR_RES:
            match = year_re.search(title)
            if match:
                year = match.group(1)
                break
        return VersionInfo(type="remaster", detail=year)
    if re.search(r"\bradio\s*(edit|version)\b", title, re.IGNORECASE):
        return VersionInfo(type="radio_edit")
    if re.search(r"\bextended\b", title, re.IGNORECASE):
        return VersionInfo(type="extended")
    return VersionInfo(type="original")


def extract_artist_name(item: dict[str, Any] | None) -> str:
    """Best-effort artist name across provider payload shapes."""
    if not item:
        return ""
    for key in ("primaryArtists", "artist"):
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    artists = item.get("artists")
    if isinstance(artists, dict):
        artists = artists.get("primary")
    if isinstance(artists, list):
        names = [str(a.get("name") if isinstance(a, dict) else a) for a in artists if a]
        names = [name for name in names if name and name != "None"]
        if names:
            return ", ".join(names)
    if isinstance(artists, str) and artists.strip():
        return artists.strip()
    for key in ("channelTitle", "subtitle"):
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def is_trash_content(title: str | None, artist: str | None) -> tuple[bool, str | None]:
    normalized_artist = normalize_text(artist)
    for trash in _TRASH_ARTISTS:
        if trash in normalized_artist:
            return True, f"trash_artist:{trash}"
    lowered = str(title or "").lower()
    for pattern in _TRASH_TITLE_PATTERNS:
        if pattern.search(lowered):
            return True, "trash_content"
    return False, None


def _iso_date_or_none(value: Any) -> str | None:
    if isinstance(value, str) and _ISO_DATE_RE.match(value):
        return value
    return None


def transform_deezer_track(track: dict[str, Any]) -> Song | None:
    """Map a Deezer API track to a song, or ``None`` when it cannot be used."""
    if not track.get("id"):
        logger.info("[LOADER] deezer track without id skipped")
        return None
    duration = track.get("duration") or 0
    if not duration or duration <= 0:
        logger.info("[LOADER] deezer track %r skipped: no valid duration", track.get("title"))
        return None

    artist_names: list[str] = []
    artist = track.get("artist") if isinstance(track.get("artist"), dict) else {}
    if artist.get("name"):
        artist_names.append(artist["name"])
    for contributor in track.get("contributors") or []:
        name = contributor.get("name") if isinstance(contributor, dict) else None
        if name and name not in artist_names:
            artist_names.append(name)
    if not artist_names:
        artist_names.append("Unknown")

    title = track.get("title") or "Unknown"
    version = detect_version(title)
    if version.is_forbidden:
        logger.info("[LOADER] deezer track %r skipped: forbidden version %s", title, version.type)
        return None

    album = track.get("album") if isinstance(track.get("album"), dict) else {}
    release_date = _iso_date_or_none(track.get("release_date")) or _iso_date_or_none(album.get("release_date"))
    return create_song(
        id=f"dz_{track['id']}",
        title=title,
        artist_names=artist_names,
        album=album.get("title") or None,
        release_date=release_date,
        duration=duration,
        version_type=version.type,
        version_details=version.detail,
        source=SOURCE_DEEZER,
        source_id=str(track["id"]),
        metadata={
            "isrc": track.get("isrc"),
            "explicit_lyrics": track.get("explicit_lyrics"),
            "bpm": track.get("bpm"),
            "rank": track.get("rank"),
            "disk_number": track.get("disk_number"),
            "track_position": track.get("track_position"),
            "preview": track.get("preview"),
            "albumId": album.get("id"),
            "albumCover": album.get("cover_medium") or album.get("cover"),
            "artistId": artist.get("id"),
        },
    )


def transform_youtube_item(item: dict[str, Any]) -> Song | None:
    """Map a YouTube search result to a song, or ``None`` when it is not a studio track."""
    video_id = item.get("videoId") or item.get("id")
    if not video_id:
        return None
    duration = item.get("duration") or item.get("lengthSeconds") or 0
    if not duration or duration <= 0:
        return None

    title = item.get("name") or item.get("title") or "Unknown"
    artist = extract_artist_name(item) or "Unknown"
    trash, reason = is_trash_content(title, artist)
    if trash:
        logger.info("[LOADER] ignored trash content (%s): %r", reason, title)
        return None
    version = detect_version(title)
    if version.is_forbidden:
        logger.info("[LOADER] ignored forbidden version (%s): %r", version.type, title)
        return None

    return create_song(
        id=str(video_id),
        title=title,
        artist_names=[artist],
        duration=duration,
        version_type=version.type,
        version_details=version.detail,
        source=SOURCE_YOUTUBE,
        source_id=str(video_id),
        metadata={
            "channelId": item.get("channelId"),
            "channelTitle": item.get("channelTitle") or item.get("subtitle"),
            "thumbnails": item.get("thumbnails") or item.get("thumbnail"),
            "description": item.get("description"),
            "publishedAt": item.get("publishedAt"),
            "isrc": item.get("isrc"),
        },
    )


@dataclass
class LoadResult:
    total_processed: int = 0
    songs: list[Song] = field(default_factory=list)
    by_source: dict[str, int] = field(default_factory=lambda: {SOURCE_YOUTUBE: 0, SOURCE_DEEZER: 0})
    errors: list[str] = field(default_factory=list)

    @property
    def total_added(self) -> int:
        return len(self.songs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalProcessed": self.total_processed,
            "totalAdded": self.total_added,
            "bySource": dict(self.by_source),
            "errors": list(self.errors),
        }


def load_songs(
    *,
    youtube_items: Iterable[dict[str, Any]] = (),
    deezer_tracks: Iterable[dict[str, Any]] = (),
) -> LoadResult:
    """Transform every payload; a bad item is logged and skipped, never fatal."""
    result = LoadResult()
    batches = ((SOURCE_YOUTUBE, youtube_items, transform_youtube_item), (SOURCE_DEEZER, deezer_tracks, transform_deezer_track))
    for source, items, transform in batches:
        for item in items:
            result.total_processed += 1
            try:
                song = transform(item)
            except (InputError, AttributeError, TypeError) as exc:
                logger.warning("[LOADER] %s item failed: %s", source, exc)
                result.errors.append(f"{source}: {exc}")
                continue
            if song is not None:
                result.songs.append(song)
                result.by_source[source] += 1
    logger.info(
        "[LOADER] processed=%s added=%s youtube=%s deezer=%s errors=%s",
        result.total_processed,
        result.total_added,
        result.by_source[SOURCE_YOUTUBE],
        result.by_source[SOURCE_DEEZER],
        len(result.errors),
    )
    return result


__all__ = [
    "LoadResult",
    "VersionInfo",
    "detect_version",
    "extract_artist_name",
    "is_trash_content",
    "load_songs",
    "transform_deezer_track",
    "transform_youtube_item",
]
