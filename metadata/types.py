"""Immutable catalog records shared by identity, authority and ranking code."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from metadata.errors import InputError

logger = logging.getLogger(__name__)

VERSION_ORIGINAL = "original"
VERSION_REMIX = "remix"
VERSION_REMASTER = "remaster"
VERSION_RADIO_EDIT = "radio_edit"
VERSION_EXTENDED = "extended"
VERSION_ALBUM_VERSION = "album_version"
VERSION_LIVE = "live"

VERSION_TYPES = (
    VERSION_ORIGINAL,
    VERSION_REMIX,
    VERSION_REMASTER,
    VERSION_RADIO_EDIT,
    VERSION_EXTENDED,
    VERSION_ALBUM_VERSION,
    VERSION_LIVE,
)

SOURCE_YOUTUBE = "youtube"
SOURCE_DEEZER = "deezer"
SOURCE_SAAVN = "saavn"

SOURCE_TYPES = (SOURCE_YOUTUBE, SOURCE_DEEZER, SOURCE_SAAVN)

LEVEL_HIGH = "high"
LEVEL_MEDIUM = "medium"
LEVEL_LOW = "low"

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Accepted spellings for incoming song dictionaries.
_FIELD_ALIASES = {
    "artist_names": ("artist_names", "artistNames"),
    "release_date": ("release_date", "releaseDate"),
    "version_type": ("version_type", "versionType"),
    "version_details": ("version_details", "versionDetails"),
    "source_id": ("source_id", "sourceId"),
}


@dataclass(frozen=True)
class Song:
    """Song as reported by one external catalog. Never mutated after creation."""

    id: str
    title: str
    artist_names: tuple[str, ...]
    duration: float
    version_type: str
    source: str
    source_id: str
    album: str | None = None
    release_date: str | None = None
    version_details: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "artist_names", tuple(self.artist_names or ()))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))

    @property
    def channel_title(self) -> str:
        return str(self.metadata.get("channelTitle") or "")


@dataclass(frozen=True)
class SongIdentity:
    """Stable cross-source identity derived from one song."""

    song_id: str
    title_raw: str
    title_clean: str
    title_identity: str
    title_normalized: str
    artist_raw: tuple[str, ...]
    artist_normalized: tuple[str, ...]
    version_type: str
    duration_bucket: int
    identity_key: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "songId": self.song_id,
            "titleRaw": self.title_raw,
            "titleClean": self.title_clean,
            "titleIdentity": self.title_identity,
            "titleNormalized": self.title_normalized,
            "artistRaw": list(self.artist_raw),
            "artistNormalized": list(self.artist_normalized),
            "versionType": self.version_type,
            "durationBucket": self.duration_bucket,
            "identityKey": self.identity_key,
        }


@dataclass(frozen=True)
class SourceAuthority:
    song_id: str
    score: int
    level: str
    reasons: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "songId": self.song_id,
            "score": self.score,
            "level": self.level,
            "reasons": list(self.reasons),
        }


@dataclass(frozen=True)
class NonOfficialResult:
    is_non_official: bool
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"isNonOfficial": self.is_non_official, "reason": self.reason}


OFFICIAL = NonOfficialResult(is_non_official=False, reason=None)


@dataclass(frozen=True)
class CanonicalGroup:
    """Songs sharing one identity key, in input order."""

    identity_key: str
    songs: tuple[Song, ...]
    identities: tuple[SongIdentity, ...] = ()

    @property
    def size(self) -> int:
        return len(self.songs)


@dataclass(frozen=True)
class CanonicalSelection:
    identity_key: str
    canonical_song: Song
    alternatives: tuple[Song, ...]
    canonical_authority: SourceAuthority

    def song_ids(self) -> set[str]:
        return {self.canonical_song.id, *(song.id for song in self.alternatives)}

    def to_dict(self) -> dict[str, Any]:
        return {
            "identityKey": self.identity_key,
            "canonicalSong": song_to_dict(self.canonical_song),
            "alternatives": [song_to_dict(song) for song in self.alternatives],
            "canonicalAuthority": self.canonical_authority.to_dict(),
        }


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: tuple[str, ...] = ()


def _field(payload: Mapping[str, Any], name: str, default: Any = None) -> Any:
    for key in _FIELD_ALIASES.get(name, (name,)):
        if key in payload:
            return payload[key]
    return default


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_song(obj: Any) -> ValidationResult:
    """Check required song fields without raising."""
    if not isinstance(obj, Mapping):
        return ValidationResult(valid=False, errors=("input is not a mapping",))

    errors: list[str] = []
    song_id = _field(obj, "id")
    title = _field(obj, "title")
    artist_names = _field(obj, "artist_names")
    duration = _field(obj, "duration")
    version_type = _field(obj, "version_type")
    source = _field(obj, "source")
    source_id = _field(obj, "source_id")

    if not song_id or not isinstance(song_id, str):
        errors.append("id is required")
    if not title or not isinstance(title, str):
        errors.append("title is required")
    if not isinstance(artist_names, (list, tuple)) or not [a for a in artist_names if a]:
        errors.append("artistNames must be a non-empty list")
    if not _is_number(duration) or duration < 0:
        errors.append("duration must be a number >= 0")
    if not version_type:
        errors.append("versionType is required")
    elif version_type not in VERSION_TYPES:
        errors.append(f"versionType {version_type!r} is not valid")
    if not source:
        errors.append("source is required")
    elif source not in SOURCE_TYPES:
        errors.append(f"source {source!r} is not valid")
    if not source_id or not isinstance(source_id, str):
        errors.append("sourceId is required")

    return ValidationResult(valid=not errors, errors=tuple(errors))


def create_song(**fields: Any) -> Song:
    """Build a validated ``Song``; raises ``InputError`` listing every problem."""
    result = validate_song(fields)
    if not result.valid:
        raise InputError(f"invalid song: {'; '.join(result.errors)}", list(result.errors))

    release_date = _field(fields, "release_date")
    if release_date and not (isinstance(release_date, str) and _ISO_DATE_RE.match(release_date)):
        logger.warning("Song %s release date %r is not YYYY-MM-DD; dropping it", fields.get("id"), release_date)
        release_date = None

    album = _field(fields, "album")
    version_details = _field(fields, "version_details")
    return Song(
        id=fields["id"],
        title=fields["title"],
        artist_names=tuple(str(name) for name in _field(fields, "artist_names") if name),
        duration=_field(fields, "duration"),
        version_type=_field(fields, "version_type"),
        source=fields["source"],
        source_id=_field(fields, "source_id"),
        album=album if isinstance(album, str) and album else None,
        release_date=release_date or None,
        version_details=version_details if isinstance(version_details, str) and version_details else None,
        metadata=_field(fields, "metadata") or {},
    )


def song_from_dict(payload: Mapping[str, Any]) -> Song:
    """Build a song from a camelCase or snake_case dictionary."""
    return create_song(**dict(payload))


def song_to_dict(song: Song) -> dict[str, Any]:
    return {
        "id": song.id,
        "title": song.title,
        "artistNames": list(song.artist_names),
        "album": song.album,
        "releaseDate": song.release_date,
        "duration": song.duration,
        "versionType": song.version_type,
        "versionDetails": song.version_details,
        "source": song.source,
        "sourceId": song.source_id,
        "metadata": dict(song.metadata),
    }


__all__ = [
    "CanonicalGroup",
    "CanonicalSelection",
    "NonOfficialResult",
    "OFFICIAL",
    "SOURCE_TYPES",
    "Song",
    "SongIdentity",
    "SourceAuthority",
    "VERSION_TYPES",
    "ValidationResult",
    "create_song",
    "song_from_dict",
    "song_to_dict",
    "validate_song",
]
